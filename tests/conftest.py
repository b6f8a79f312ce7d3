"""Pytest configuration and fixtures."""

import os
import sys

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from daily_raffle.database import setup_raffle_database
from daily_raffle.errors import PersistenceError
from daily_raffle.prizes import Prize
from daily_raffle.state import RaffleState
from daily_raffle.store import RaffleStore

GUILD_ID = 1366877692485697537


class ScriptedRandom:
    """Random source returning pre-set rolls, for pinning draws in tests"""

    def __init__(self, rolls):
        self.rolls = list(rolls)
        self.calls = []

    def randrange(self, stop):
        self.calls.append(stop)
        roll = self.rolls.pop(0)
        assert 0 <= roll < stop
        return roll


class FailingSaveStore(RaffleStore):
    """Store whose saves always fail"""

    def __init__(self, engine):
        super().__init__(engine)
        self.save_attempts = 0

    async def save_state(self, guild_id, state):
        self.save_attempts += 1
        raise PersistenceError("store unreachable")


@pytest.fixture
def engine():
    """In-memory SQLite engine with the raffle schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    assert setup_raffle_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return RaffleStore(engine)


@pytest.fixture
def active_state():
    """Active raffle with two prizes and no limits."""
    state = RaffleState()
    state.start([Prize("Nitro", 10), Prize("GiftCard", 5)])
    return state


async def save_new(store, state, guild_id=GUILD_ID):
    """Persist a hand-built state as the guild's first document."""
    await store.save_state(guild_id, state)
    return state
