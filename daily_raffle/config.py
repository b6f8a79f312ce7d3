"""
Daily Raffle Configuration
All configurable parameters for the raffle bot
"""

import os

# Database (SQLite for local testing, PostgreSQL in production)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///raffle.db")
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE")  # None = console only

# Keep-alive web endpoint
KEEP_ALIVE_PORT = int(os.getenv("PORT", "3000"))

# History & status display
HISTORY_LIMIT = int(os.getenv("RAFFLE_HISTORY_LIMIT", "5"))
RECENT_WINNERS_SHOWN = int(os.getenv("RAFFLE_RECENT_WINNERS_SHOWN", "5"))
HISTORY_WINNERS_SHOWN = 10
EMBED_TITLE_LIMIT = 256         # Discord embed title limit
EMBED_FIELD_LIMIT = 1024        # Discord embed field value limit
EMBED_DESCRIPTION_LIMIT = 4096  # Discord embed description limit

# Optimistic concurrency: how many times a command reloads and retries
# after another interaction saved the same guild's raffle first (0 = never)
CONFLICT_RETRIES = int(os.getenv("RAFFLE_CONFLICT_RETRIES", "6"))
CONFLICT_BACKOFF_BASE = float(os.getenv("RAFFLE_CONFLICT_BACKOFF", "0.05"))  # seconds, doubles per retry
CONFLICT_BACKOFF_MAX = 2.0  # seconds

# Raffle post
JOIN_BUTTON_CUSTOM_ID = "raffle_join"
DEFAULT_RAFFLE_TITLE = "🎟️ Raffle Time!"
DEFAULT_RAFFLE_DESCRIPTION = "Click the button below to use your raffle ticket!"
