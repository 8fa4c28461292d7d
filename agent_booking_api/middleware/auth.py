"""Authentication middleware resolving the caller's user id."""

import logging
from collections.abc import Callable

import jwt
from fastapi import HTTPException, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from ..config import settings
from ..telemetry import TelemetryEvents, set_request_context, track_event

logger = logging.getLogger(__name__)

DEV_USER_ID = "dev-user"


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware for authenticating requests with a Bearer JWT.

    In dev mode (auth_required=False) the caller id comes from the
    X-User-ID header, falling back to 'dev-user'.

    Sets on request.state:
    - user_id: User identifier from JWT 'sub' (or 'userId') claim
    """

    # Paths that don't require authentication
    PUBLIC_PATHS = [
        "/",
        "/health",
        "/version",
        "/docs",
        "/redoc",
        "/openapi.json",
    ]

    @staticmethod
    async def _ensure_user_exists(user_id: str) -> None:
        """Ensure a user exists, creating it with the starting balance.

        Args:
            user_id: User identifier
        """
        try:
            from ..core import get_core

            await get_core().balance.ensure_user(user_id)
        except Exception as e:
            # Log but don't fail the request if user creation fails
            logger.warning(f"Failed to ensure user exists: {e}")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request through authentication."""
        # Skip auth for public endpoints
        if request.url.path in self.PUBLIC_PATHS:
            return await call_next(request)

        # Skip auth if not required (dev mode)
        if not settings.auth_required:
            user_id = request.headers.get(settings.dev_user_header) or DEV_USER_ID
            request.state.user_id = user_id
            set_request_context(request_id=self._request_id(request), user_id=user_id)
            await self._ensure_user_exists(user_id)

            logger.debug(f"Auth disabled - using dev credentials (user_id={user_id})")
            return await call_next(request)

        try:
            user_id = self._verify_jwt(request)

            request.state.user_id = user_id
            set_request_context(request_id=self._request_id(request), user_id=user_id)
            await self._ensure_user_exists(user_id)

            logger.debug(f"Authenticated request: user_id={user_id}")
            return await call_next(request)

        except HTTPException as e:
            track_event(
                TelemetryEvents.AUTHENTICATION_FAILED,
                {"endpoint": request.url.path, "reason": e.detail},
            )
            # Convert HTTPException to JSONResponse
            return JSONResponse(status_code=e.status_code, content={"detail": e.detail})

    @staticmethod
    def _request_id(request: Request) -> str:
        # Set by TelemetryMiddleware, which wraps this one
        return getattr(request.state, "request_id", "")

    @staticmethod
    def _verify_jwt(request: Request) -> str:
        """Verify JWT and return user_id.

        Args:
            request: FastAPI request

        Returns:
            user_id from the JWT 'sub' (or 'userId') claim

        Raises:
            HTTPException: If JWT missing, invalid, or expired
        """
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            raise HTTPException(
                status_code=401,
                detail="Missing or invalid Authorization header (expected: Bearer <token>)",
            )

        token = auth_header.split(" ", 1)[1]

        try:
            if settings.jwt_algorithm == "HS256":
                payload = jwt.decode(
                    token,
                    settings.secret_key,
                    algorithms=["HS256"],
                    options={"verify_aud": False},
                )
            else:
                # RS256 tokens come from the identity provider; signature is not checked here
                payload = jwt.decode(
                    token,
                    options={"verify_signature": False},
                    algorithms=["RS256"],
                )
        except jwt.ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="JWT expired") from None
        except jwt.InvalidTokenError as e:
            raise HTTPException(status_code=401, detail=f"Invalid JWT: {str(e)}") from None

        user_id = payload.get("sub") or payload.get("userId")
        if not user_id:
            raise HTTPException(status_code=401, detail="JWT missing 'sub' claim (user_id)")

        # Verify issuer if configured
        if settings.jwt_issuer and payload.get("iss") != settings.jwt_issuer:
            raise HTTPException(status_code=401, detail="Invalid JWT issuer")

        # Verify audience if configured
        if settings.jwt_audience and payload.get("aud") != settings.jwt_audience:
            raise HTTPException(status_code=401, detail="Invalid JWT audience")

        return str(user_id)
