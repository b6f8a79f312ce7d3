"""
Database Schema Setup for the Raffle Store
Creates the per-guild raffle document table and the history log
"""

from sqlalchemy import inspect, text
import logging

logger = logging.getLogger(__name__)

RAFFLE_SCHEMA_SQL = """
-- ============================================
-- RAFFLE STORE DATABASE SCHEMA
-- ============================================

-- One raffle document per guild, overwritten in place
CREATE TABLE IF NOT EXISTS guild_raffles (
    guild_id TEXT PRIMARY KEY,
    document TEXT NOT NULL,           -- JSON raffle state
    version INTEGER NOT NULL DEFAULT 1,  -- Bumped on every save (compare-and-swap)
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Completed raffle summaries (append-only)
CREATE TABLE IF NOT EXISTS raffle_history (
    id TEXT PRIMARY KEY,
    guild_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,          -- ISO-8601 UTC, sorts chronologically
    summary TEXT NOT NULL,            -- JSON raffle summary
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_raffle_history_guild_time ON raffle_history(guild_id, timestamp);
"""

REQUIRED_TABLES = ['guild_raffles', 'raffle_history']


def _split_statements(sql):
    """Split schema SQL into single statements (SQLite runs one at a time)"""
    statements = []
    current_statement = []

    for line in sql.split('\n'):
        stripped = line.strip()
        if not stripped or stripped.startswith('--'):
            continue

        current_statement.append(line)

        if stripped.endswith(';'):
            statements.append('\n'.join(current_statement))
            current_statement = []

    return statements


def setup_raffle_database(engine):
    """
    Create the raffle store tables and indices

    Args:
        engine: SQLAlchemy engine instance

    Returns:
        bool: True if successful, False otherwise
    """
    try:
        logger.info("Setting up raffle store schema...")

        with engine.begin() as conn:
            for statement in _split_statements(RAFFLE_SCHEMA_SQL):
                conn.execute(text(statement))

        logger.info("✅ Raffle store schema ready")
        return True

    except Exception as e:
        logger.error(f"❌ Failed to setup raffle database: {e}")
        return False


def verify_raffle_schema(engine):
    """
    Verify that all required tables exist

    Returns:
        dict: Status of each table (True/False)
    """
    status = {table: False for table in REQUIRED_TABLES}

    try:
        existing = set(inspect(engine).get_table_names())
        for table in REQUIRED_TABLES:
            status[table] = table in existing
    except Exception as e:
        logger.error(f"Failed to verify schema: {e}")

    return status
