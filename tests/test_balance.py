"""Tests for the balance service."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from agent_booking_api.core import ErrorKind
from agent_booking_api.storage import TRANSACTIONS, USERS


@pytest.mark.asyncio
class TestSpend:
    """Test spending points."""

    async def test_spend_success(self, core, make_user, get_points, hub):
        """Test a spend updates balance, ledger and notifies."""
        await make_user("alice", points=30)

        result = await core.balance.spend("alice", 10, "Private session", "s1")

        assert result.ok
        assert result.value.new_balance == 20
        assert result.value.transaction.balance_before == 30
        assert result.value.transaction.balance_after == 20
        assert await get_points("alice") == 20

        updates = hub.of("alice", "points_updated")
        assert updates[-1]["balance"] == 20
        assert updates[-1]["kind"] == "spend"
        assert updates[-1]["message"]

    async def test_insufficient_funds(self, core, make_user, get_points, store):
        """Test that overspending changes nothing."""
        await make_user("alice", points=5)

        result = await core.balance.spend("alice", 10, "Private session")

        assert not result.ok
        assert result.error == ErrorKind.INSUFFICIENT_FUNDS
        assert await get_points("alice") == 5
        assert await store.count(TRANSACTIONS, {"user_id": "alice"}) == 0

    async def test_spend_exact_balance(self, core, make_user, get_points):
        """Test that a balance can be spent down to zero."""
        await make_user("alice", points=10)

        result = await core.balance.spend("alice", 10, "All in")

        assert result.ok
        assert await get_points("alice") == 0

    async def test_unknown_user(self, core):
        """Test spending for a user that does not exist."""
        result = await core.balance.spend("ghost", 1, "x")
        assert result.error == ErrorKind.USER_NOT_FOUND

    @pytest.mark.parametrize("amount", [0, -5])
    async def test_invalid_amount(self, core, make_user, amount):
        """Test that non-positive amounts are rejected."""
        await make_user("alice", points=10)

        result = await core.balance.spend("alice", amount, "x")

        assert result.error == ErrorKind.INVALID_AMOUNT
        assert result.detail == "Invalid amount"

    async def test_deactivated_account(self, core, make_user):
        """Test that an inactive account cannot spend."""
        await make_user("alice", points=50, is_active=False)

        result = await core.balance.spend("alice", 10, "x")

        assert result.error == ErrorKind.ACCOUNT_DEACTIVATED

    async def test_concurrent_spends_serialized(self, core, make_user, get_points, store):
        """Test that concurrent spends cannot overdraw the balance."""
        await make_user("alice", points=25)

        results = await asyncio.gather(
            *(core.balance.spend("alice", 10, f"spend-{i}") for i in range(5))
        )

        succeeded = [r for r in results if r.ok]
        failed = [r for r in results if not r.ok]
        assert len(succeeded) == 2
        assert all(r.error == ErrorKind.INSUFFICIENT_FUNDS for r in failed)
        assert await get_points("alice") == 5
        assert await store.count(TRANSACTIONS, {"user_id": "alice"}) == 2
        assert await core.ledger.verify_chain("alice", 5)

        befores = sorted(r.value.transaction.balance_before for r in succeeded)
        assert befores == [15, 25]


@pytest.mark.asyncio
class TestEarnAndRegenerate:
    """Test additive movements."""

    async def test_earn_may_exceed_cap(self, core, make_user, get_points):
        """Test that refunds and earnings are not clamped."""
        await make_user("alice", points=95)

        result = await core.balance.earn("alice", 10, "refund", "s1")

        assert result.ok
        assert await get_points("alice") == 105

    async def test_bonus(self, core, make_user, get_points):
        """Test bonus transactions."""
        await make_user("alice", points=0)

        result = await core.balance.bonus("alice", 7, "Welcome bonus")

        assert result.value.transaction.kind == "bonus"
        assert await get_points("alice") == 7

    async def test_regenerate_clamps_to_cap(self, core, make_user, get_points):
        """Test that regeneration stops at max_points."""
        await make_user("alice", points=90)

        result = await core.balance.regenerate("alice", 20, "top-up")

        assert result.ok
        assert result.value.transaction.amount == 10
        assert await get_points("alice") == 100

    async def test_regenerate_at_cap_is_noop(self, core, make_user, get_points, store):
        """Test that a user at the cap gets no transaction."""
        await make_user("alice", points=100)

        result = await core.balance.regenerate("alice", 20, "top-up")

        assert result.ok
        assert result.value.transaction is None
        assert await get_points("alice") == 100
        assert await store.count(TRANSACTIONS, {"user_id": "alice"}) == 0

    async def test_chain_after_mixed_operations(self, core, make_user, get_points):
        """Test chain consistency over a mix of movements."""
        await make_user("alice", points=50)

        await core.balance.spend("alice", 20, "a")
        await core.balance.earn("alice", 5, "b")
        await core.balance.regenerate("alice", 100, "c")
        await core.balance.spend("alice", 99, "d")
        await core.balance.spend("alice", 5, "e")  # rejected

        balance = await get_points("alice")
        history, _ = await core.ledger.history("alice")
        assert history[0].balance_after == balance
        assert await core.ledger.verify_chain("alice", balance)


@pytest.mark.asyncio
class TestUsers:
    """Test user provisioning."""

    async def test_ensure_user_creates_with_defaults(self, core, test_settings):
        """Test that a new user starts with initial points and a regen date."""
        user = await core.balance.ensure_user("newbie")

        assert user.points == test_settings.initial_points
        assert user.next_regen_at is not None
        assert user.is_active is True

    async def test_ensure_user_is_idempotent(self, core, make_user):
        """Test that an existing user is returned unchanged."""
        await make_user("alice", points=3)

        user = await core.balance.ensure_user("alice")

        assert user.points == 3

    async def test_get_balance(self, core, make_user):
        """Test balance lookup and missing user."""
        await make_user("alice", points=42)

        assert (await core.balance.get_balance("alice")).value.points == 42
        assert (await core.balance.get_balance("ghost")).error == ErrorKind.USER_NOT_FOUND


@pytest.mark.asyncio
class TestLedgerFailure:
    """Test that a failed ledger append leaves the balance untouched."""

    async def test_balance_restored_when_append_fails(self, core, make_user, get_points, store):
        """Test compensation when the transaction cannot be written."""
        await make_user("alice", points=30)
        core.balance.ledger.record = AsyncMock(side_effect=ConnectionError("store down"))

        with pytest.raises(ConnectionError):
            await core.balance.spend("alice", 10, "x")

        assert await get_points("alice") == 30
        assert await store.count(TRANSACTIONS, {"user_id": "alice"}) == 0
        assert (await store.find_by_id(USERS, "alice"))["points"] == 30
