"""PostgreSQL schema definitions for the Agent Booking API."""

# Helper function for auto-updating timestamps
CREATE_UPDATED_AT_TRIGGER = """
CREATE OR REPLACE FUNCTION update_updated_at_column()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = NOW();
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;
"""

# Users table - identity subset plus the points balance
CREATE_USERS_TABLE = """
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    name VARCHAR(255),
    email VARCHAR(255),
    points INTEGER NOT NULL DEFAULT 100,
    next_regen_at TIMESTAMPTZ,
    is_active BOOLEAN NOT NULL DEFAULT true,
    total_sessions INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

    CONSTRAINT users_points_check CHECK (points >= 0),
    CONSTRAINT users_total_sessions_check CHECK (total_sessions >= 0)
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email ON users(email) WHERE email IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_users_next_regen_at ON users(is_active, next_regen_at);

DROP TRIGGER IF EXISTS update_users_updated_at ON users;
CREATE TRIGGER update_users_updated_at
    BEFORE UPDATE ON users
    FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();
"""

# Transactions table - append-only points ledger
CREATE_TRANSACTIONS_TABLE = """
CREATE TABLE IF NOT EXISTS transactions (
    transaction_id TEXT PRIMARY KEY,
    seq BIGSERIAL NOT NULL,
    user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    kind VARCHAR(20) NOT NULL,
    amount INTEGER NOT NULL,
    description VARCHAR(255) NOT NULL,
    related_id TEXT,
    balance_before INTEGER NOT NULL,
    balance_after INTEGER NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

    CONSTRAINT transactions_kind_check CHECK (kind IN ('spend', 'earn', 'regenerate', 'bonus')),
    CONSTRAINT transactions_amount_check CHECK (amount > 0),
    CONSTRAINT transactions_balance_check CHECK (
        (kind = 'spend' AND balance_after = balance_before - amount)
        OR (kind <> 'spend' AND balance_after = balance_before + amount)
    )
);

CREATE INDEX IF NOT EXISTS idx_transactions_user_created ON transactions(user_id, created_at, seq);
CREATE INDEX IF NOT EXISTS idx_transactions_kind ON transactions(kind);
"""

# Agents table - optional catalog of bookable agents
CREATE_AGENTS_TABLE = """
CREATE TABLE IF NOT EXISTS agents (
    agent_id TEXT PRIMARY KEY,
    display_name VARCHAR(255) NOT NULL,
    access_type VARCHAR(20) NOT NULL DEFAULT 'premium',
    points_cost INTEGER,
    session_duration_minutes DOUBLE PRECISION,
    is_active BOOLEAN NOT NULL DEFAULT true,
    description TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

    CONSTRAINT agents_access_type_check CHECK (access_type IN ('free', 'premium')),
    CONSTRAINT agents_points_cost_check CHECK (points_cost IS NULL OR points_cost >= 0)
);

CREATE INDEX IF NOT EXISTS idx_agents_access_active ON agents(access_type, is_active);

DROP TRIGGER IF EXISTS update_agents_updated_at ON agents;
CREATE TRIGGER update_agents_updated_at
    BEFORE UPDATE ON agents
    FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();
"""

# Sessions table - bookings and their lifecycle
CREATE_SESSIONS_TABLE = """
CREATE TABLE IF NOT EXISTS sessions (
    session_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    agent_id TEXT NOT NULL,
    type VARCHAR(20) NOT NULL DEFAULT 'private',
    status VARCHAR(20) NOT NULL DEFAULT 'queued',
    duration DOUBLE PRECISION NOT NULL DEFAULT 5,
    points_cost INTEGER NOT NULL DEFAULT 10,
    queue_position INTEGER,
    estimated_wait_time INTEGER,
    start_time TIMESTAMPTZ,
    end_time TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

    CONSTRAINT sessions_type_check CHECK (type IN ('private', 'public')),
    CONSTRAINT sessions_status_check CHECK (status IN ('queued', 'active', 'completed', 'cancelled'))
);

CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id);
CREATE INDEX IF NOT EXISTS idx_sessions_agent_status ON sessions(agent_id, status);
CREATE INDEX IF NOT EXISTS idx_sessions_status_created ON sessions(status, created_at);

-- One open booking per user, one active session per agent
CREATE UNIQUE INDEX IF NOT EXISTS idx_sessions_one_open_per_user
    ON sessions(user_id) WHERE status IN ('queued', 'active');
CREATE UNIQUE INDEX IF NOT EXISTS idx_sessions_one_active_per_agent
    ON sessions(agent_id) WHERE status = 'active';

DROP TRIGGER IF EXISTS update_sessions_updated_at ON sessions;
CREATE TRIGGER update_sessions_updated_at
    BEFORE UPDATE ON sessions
    FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();
"""

# Comments - messages users post to an agent's chat
CREATE_COMMENTS_TABLE = """
CREATE TABLE IF NOT EXISTS comments (
    comment_id TEXT PRIMARY KEY,
    seq BIGSERIAL NOT NULL,
    agent_id TEXT NOT NULL,
    user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    message VARCHAR(500) NOT NULL,
    handle VARCHAR(255),
    avatar TEXT,
    read_by_agent BOOLEAN NOT NULL DEFAULT false,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_comments_agent_created ON comments(agent_id, created_at DESC, seq DESC);
CREATE INDEX IF NOT EXISTS idx_comments_unread ON comments(agent_id, created_at) WHERE NOT read_by_agent;

DROP TRIGGER IF EXISTS update_comments_updated_at ON comments;
CREATE TRIGGER update_comments_updated_at
    BEFORE UPDATE ON comments
    FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();
"""

# Agent responses - what an agent said back in its chat
CREATE_AGENT_RESPONSES_TABLE = """
CREATE TABLE IF NOT EXISTS agent_responses (
    response_id TEXT PRIMARY KEY,
    seq BIGSERIAL NOT NULL,
    agent_id TEXT NOT NULL,
    text TEXT NOT NULL,
    thought TEXT,
    reply_to_comment_id TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_agent_responses_agent_created
    ON agent_responses(agent_id, created_at DESC, seq DESC);
"""

# Columns per table, used to validate identifiers before building SQL
TABLE_COLUMNS: dict[str, frozenset[str]] = {
    "users": frozenset(
        {
            "user_id",
            "name",
            "email",
            "points",
            "next_regen_at",
            "is_active",
            "total_sessions",
            "created_at",
            "updated_at",
        }
    ),
    "transactions": frozenset(
        {
            "transaction_id",
            "seq",
            "user_id",
            "kind",
            "amount",
            "description",
            "related_id",
            "balance_before",
            "balance_after",
            "created_at",
            "updated_at",
        }
    ),
    "agents": frozenset(
        {
            "agent_id",
            "display_name",
            "access_type",
            "points_cost",
            "session_duration_minutes",
            "is_active",
            "description",
            "created_at",
            "updated_at",
        }
    ),
    "sessions": frozenset(
        {
            "session_id",
            "user_id",
            "agent_id",
            "type",
            "status",
            "duration",
            "points_cost",
            "queue_position",
            "estimated_wait_time",
            "start_time",
            "end_time",
            "created_at",
            "updated_at",
        }
    ),
    "comments": frozenset(
        {
            "comment_id",
            "seq",
            "agent_id",
            "user_id",
            "message",
            "handle",
            "avatar",
            "read_by_agent",
            "created_at",
            "updated_at",
        }
    ),
    "agent_responses": frozenset(
        {
            "response_id",
            "seq",
            "agent_id",
            "text",
            "thought",
            "reply_to_comment_id",
            "created_at",
            "updated_at",
        }
    ),
}

# Complete schema initialization - executes in order
INIT_SCHEMA = f"""
-- Create helper functions
{CREATE_UPDATED_AT_TRIGGER}

-- Create tables in dependency order
{CREATE_USERS_TABLE}
{CREATE_TRANSACTIONS_TABLE}
{CREATE_AGENTS_TABLE}
{CREATE_SESSIONS_TABLE}
{CREATE_COMMENTS_TABLE}
{CREATE_AGENT_RESPONSES_TABLE}
"""
