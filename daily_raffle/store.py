"""
Raffle Store
Persists one raffle document per guild plus the append-only history log

Saves use optimistic concurrency: each document carries a version and a
save only lands if the stored version still matches the one that was
loaded. Blocking SQLAlchemy work runs in a worker thread so interactions
keep flowing on the event loop.
"""

import asyncio
import json
import logging
import uuid

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .errors import ConflictError, PersistenceError, ValidationError
from .state import RaffleState, RaffleSummary

logger = logging.getLogger(__name__)


class RaffleStore:
    """Document-style raffle persistence on top of a SQLAlchemy engine"""

    def __init__(self, engine):
        self.engine = engine

    # ========================================
    # RAFFLE STATE
    # ========================================

    async def load_state(self, guild_id) -> RaffleState:
        """
        Load a guild's raffle, or inactive defaults if it was never saved

        Raises:
            PersistenceError: Store unreachable or document unreadable
        """
        return await asyncio.to_thread(self._load_state_sync, str(guild_id))

    async def save_state(self, guild_id, state):
        """
        Write the full state back if nobody saved it since it was loaded

        On success ``state.version`` is bumped to the stored version.

        Returns:
            int: The new version

        Raises:
            ConflictError: The stored version moved on (reload and retry)
            PersistenceError: Any other store failure
        """
        new_version = await asyncio.to_thread(self._save_state_sync, str(guild_id), state, None)
        state.version = new_version
        return new_version

    async def archive_and_save(self, guild_id, state, summary):
        """Save the reset state and append its summary in one transaction"""
        new_version = await asyncio.to_thread(self._save_state_sync, str(guild_id), state, summary)
        state.version = new_version
        return new_version

    def _load_state_sync(self, guild_id):
        try:
            with self.engine.begin() as conn:
                row = conn.execute(text("""
                    SELECT document, version FROM guild_raffles
                    WHERE guild_id = :guild_id
                """), {'guild_id': guild_id}).fetchone()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load raffle for guild {guild_id}: {e}")
            raise PersistenceError(f"Could not load raffle for guild {guild_id}") from e

        if not row:
            return RaffleState()

        try:
            return RaffleState.from_document(json.loads(row[0]), version=row[1])
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            logger.error(f"Corrupt raffle document for guild {guild_id}: {e}")
            raise PersistenceError(f"Unreadable raffle document for guild {guild_id}") from e

    def _save_state_sync(self, guild_id, state, summary):
        document = json.dumps(state.to_document())
        expected_version = state.version

        try:
            with self.engine.begin() as conn:
                if expected_version == 0:
                    conn.execute(text("""
                        INSERT INTO guild_raffles (guild_id, document, version, updated_at)
                        VALUES (:guild_id, :document, 1, CURRENT_TIMESTAMP)
                    """), {'guild_id': guild_id, 'document': document})
                else:
                    result = conn.execute(text("""
                        UPDATE guild_raffles
                        SET
                            document = :document,
                            version = version + 1,
                            updated_at = CURRENT_TIMESTAMP
                        WHERE guild_id = :guild_id AND version = :expected_version
                    """), {
                        'guild_id': guild_id,
                        'document': document,
                        'expected_version': expected_version
                    })
                    if result.rowcount != 1:
                        raise ConflictError(
                            f"Raffle for guild {guild_id} changed since version {expected_version}"
                        )

                if summary is not None:
                    self._insert_summary(conn, guild_id, summary)

        except ConflictError:
            logger.warning(f"Save conflict for guild {guild_id} at version {expected_version}")
            raise
        except IntegrityError as e:
            # First save raced another first save
            logger.warning(f"Save conflict for guild {guild_id}: raffle created concurrently")
            raise ConflictError(f"Raffle for guild {guild_id} was created concurrently") from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to save raffle for guild {guild_id}: {e}")
            raise PersistenceError(f"Could not save raffle for guild {guild_id}") from e

        return expected_version + 1

    # ========================================
    # HISTORY
    # ========================================

    async def append_history(self, guild_id, summary):
        """Append a completed raffle summary; returns the record id"""
        return await asyncio.to_thread(self._append_history_sync, str(guild_id), summary)

    async def list_history(self, guild_id, limit=5):
        """
        Get recent raffle summaries for a guild

        Returns:
            list: RaffleSummary objects, newest first
        """
        return await asyncio.to_thread(self._list_history_sync, str(guild_id), limit)

    def _insert_summary(self, conn, guild_id, summary):
        record_id = uuid.uuid4().hex
        conn.execute(text("""
            INSERT INTO raffle_history (id, guild_id, timestamp, summary)
            VALUES (:id, :guild_id, :timestamp, :summary)
        """), {
            'id': record_id,
            'guild_id': guild_id,
            'timestamp': summary.timestamp,
            'summary': json.dumps(summary.to_document())
        })
        return record_id

    def _append_history_sync(self, guild_id, summary):
        try:
            with self.engine.begin() as conn:
                return self._insert_summary(conn, guild_id, summary)
        except SQLAlchemyError as e:
            logger.error(f"Failed to append raffle history for guild {guild_id}: {e}")
            raise PersistenceError(f"Could not save raffle history for guild {guild_id}") from e

    def _list_history_sync(self, guild_id, limit):
        try:
            with self.engine.begin() as conn:
                rows = conn.execute(text("""
                    SELECT summary FROM raffle_history
                    WHERE guild_id = :guild_id
                    ORDER BY timestamp DESC
                    LIMIT :limit
                """), {'guild_id': guild_id, 'limit': limit}).fetchall()
        except SQLAlchemyError as e:
            logger.error(f"Failed to get raffle history for guild {guild_id}: {e}")
            raise PersistenceError(f"Could not load raffle history for guild {guild_id}") from e

        try:
            return [RaffleSummary.from_document(json.loads(row[0])) for row in rows]
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            logger.error(f"Corrupt raffle history for guild {guild_id}: {e}")
            raise PersistenceError(f"Unreadable raffle history for guild {guild_id}") from e
