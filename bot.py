"""
Daily Raffle Bot entrypoint
Loads configuration, prepares the database and runs the Discord client
"""

import os

from dotenv import load_dotenv

# -------------------------
# Load config
# -------------------------
load_dotenv()

import discord
from discord.ext import commands
from sqlalchemy import create_engine

from daily_raffle import config
from daily_raffle.commands import setup as setup_raffle_commands
from daily_raffle.database import setup_raffle_database
from daily_raffle.keep_alive import start_keep_alive
from utils.logging_config import log_error, setup_logging

logger = setup_logging(None, config.LOG_LEVEL, config.LOG_FILE)

DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
if not DISCORD_TOKEN:
    raise ValueError("DISCORD_TOKEN not found in environment variables")

if config.DATABASE_URL.startswith("sqlite"):
    logger.warning("⚠️ Using local SQLite database. For production, set DATABASE_URL to PostgreSQL.")

# -------------------------
# Database setup
# -------------------------
engine = create_engine(
    config.DATABASE_URL,
    future=True,
    pool_pre_ping=True,     # Detect disconnections
    pool_recycle=1800,      # Recycle connections after 30 minutes
    echo=False,
    connect_args={
        "connect_timeout": 10,
        "keepalives": 1,
        "keepalives_idle": 30,
        "keepalives_interval": 10,
        "keepalives_count": 5
    } if config.DATABASE_URL.startswith('postgresql') else {}
)

if not setup_raffle_database(engine):
    raise SystemExit("❌ Could not prepare the raffle database")


# -------------------------
# Discord client
# -------------------------
class RaffleBot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()
        intents.members = True  # Needed to give tickets to everyone
        super().__init__(command_prefix="!", intents=intents)
        self.keep_alive_runner = None

    async def setup_hook(self):
        await setup_raffle_commands(self, engine)

        synced = await self.tree.sync()
        logger.info(f"✅ Synced {len(synced)} application commands")

        try:
            self.keep_alive_runner = await start_keep_alive(config.KEEP_ALIVE_PORT)
        except OSError as e:
            log_error(logger, e, "Keep-alive server failed to start")

    async def close(self):
        if self.keep_alive_runner:
            await self.keep_alive_runner.cleanup()
        await super().close()
        engine.dispose()

    async def on_ready(self):
        logger.info(f"🎉 Logged in as {self.user} (ID: {self.user.id})")
        await self.change_presence(activity=discord.Game(name="for raffle tickets!"))


bot = RaffleBot()

if __name__ == "__main__":
    bot.run(DISCORD_TOKEN, log_handler=None)
