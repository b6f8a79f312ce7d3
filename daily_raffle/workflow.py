"""
Raffle Workflows
Ticket redemption and the admin command surface, on top of the raffle store
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Optional

from . import config
from .draw import filter_eligible_prizes, is_prize_exhausted, is_user_exhausted, select_prize
from .errors import (
    AllPrizesExhaustedError,
    ConflictError,
    InactiveRaffleError,
    NoPrizesConfiguredError,
    NoTicketsError,
    UserLimitReachedError,
    ValidationError,
)
from .prizes import Prize, parse_prize_spec
from .state import RaffleState, RaffleSummary, WinnerRecord, utc_now_iso


class MemberDirectory:
    """Lists the guild members eligible for a ticket grant to everyone"""

    async def list_member_ids(self):
        """Return ids of all non-bot members"""
        raise NotImplementedError


@dataclass(frozen=True)
class RedemptionResult:
    prize: Prize
    remaining_tickets: int
    winner: WinnerRecord
    state: RaffleState


class RedemptionWorkflow:
    """
    One ticket redemption attempt, end to end

    load -> check -> consume ticket -> draw -> prize-limit fallback
    -> record win -> save -> report
    """

    def __init__(self, store, rng=None, clock=None):
        self.store = store
        self.rng = rng
        self.clock = clock or utc_now_iso

    async def redeem(self, guild_id, user_id, user_tag) -> RedemptionResult:
        """
        Spend one of the user's tickets on a prize draw

        A ticket buys a draw, not a guaranteed prize: once consumed it is
        saved even when every prize turns out to be exhausted.

        Raises:
            InactiveRaffleError, NoTicketsError, UserLimitReachedError:
                Nothing was changed
            NoPrizesConfiguredError, AllPrizesExhaustedError:
                The ticket was consumed and saved, no win recorded
            ConflictError: Another interaction saved first, nothing recorded
            PersistenceError: The save failed, nothing recorded
        """
        state = await self.store.load_state(guild_id)
        working = state.copy()

        try:
            result = self.apply(working, user_id, user_tag)
        except (NoPrizesConfiguredError, AllPrizesExhaustedError):
            await self.store.save_state(guild_id, working)
            raise

        await self.store.save_state(guild_id, working)
        return result

    def apply(self, state, user_id, user_tag) -> RedemptionResult:
        """Run the in-memory redemption steps against ``state``"""
        user_id = str(user_id)

        if not state.active:
            raise InactiveRaffleError()
        if state.ticket_balance(user_id) <= 0:
            raise NoTicketsError()
        if is_user_exhausted(state.user_wins_count.get(user_id, 0), state.max_wins_per_user):
            raise UserLimitReachedError(state.max_wins_per_user)

        state.tickets[user_id] -= 1
        state.tickets_redeemed += 1

        prize = self._draw(state)

        state.user_wins_count[user_id] = state.user_wins_count.get(user_id, 0) + 1
        state.prize_wins_count[prize.name] = state.prize_wins_count.get(prize.name, 0) + 1
        winner = WinnerRecord(
            user_id=user_id,
            user_tag=user_tag,
            prize_name=prize.name,
            timestamp=self.clock(),
        )
        state.current_winners.append(winner)

        return RedemptionResult(
            prize=prize,
            remaining_tickets=state.ticket_balance(user_id),
            winner=winner,
            state=state,
        )

    def _draw(self, state):
        prize = select_prize(state.prizes, self.rng)
        if prize is None:
            raise NoPrizesConfiguredError()

        if not is_prize_exhausted(state.prize_wins_count.get(prize.name, 0), state.max_wins_per_prize):
            return prize

        # Drawn prize is used up: one re-draw among what is left
        eligible = filter_eligible_prizes(state.prizes, state.prize_wins_count, state.max_wins_per_prize)
        prize = select_prize(eligible, self.rng)
        if prize is None:
            raise AllPrizesExhaustedError()
        return prize


class RaffleService:
    """
    Raffle command surface for the chat layer

    Every mutating command loads the guild's raffle, applies the change and
    saves it with compare-and-swap. When another interaction saved in
    between, the whole command waits a short random backoff and re-runs on
    fresh state, up to ``conflict_retries`` extra times.
    """

    def __init__(self, store, rng=None, clock=None, conflict_retries=None, backoff_base=None):
        self.store = store
        self.clock = clock or utc_now_iso
        self.redemptions = RedemptionWorkflow(store, rng=rng, clock=self.clock)
        if conflict_retries is None:
            conflict_retries = config.CONFLICT_RETRIES
        if conflict_retries < 0:
            raise ValueError("conflict_retries must be 0 or more")
        self.conflict_retries = conflict_retries
        self.backoff_base = config.CONFLICT_BACKOFF_BASE if backoff_base is None else backoff_base

    def _backoff_delay(self, retry):
        # Full jitter: interactions that collided reload at different times
        ceiling = min(config.CONFLICT_BACKOFF_MAX, self.backoff_base * 2 ** retry)
        return random.uniform(0, ceiling)

    async def _retry_on_conflict(self, operation):
        retry = 0
        while True:
            try:
                return await operation()
            except ConflictError:
                if retry >= self.conflict_retries:
                    raise
                await asyncio.sleep(self._backoff_delay(retry))
                retry += 1

    async def _mutate(self, guild_id, mutation):
        """Load, apply ``mutation(state)``, save; returns (state, mutation result)"""
        async def operation():
            state = await self.store.load_state(guild_id)
            outcome = mutation(state)
            await self.store.save_state(guild_id, state)
            return state, outcome

        return await self._retry_on_conflict(operation)

    # ========================================
    # LIFECYCLE
    # ========================================

    async def preview_start(self, guild_id, prize_spec_text) -> RaffleState:
        """
        State the raffle would have after start(), without saving anything

        Lets the chat layer publish the raffle post before committing.

        Raises:
            ValidationError: Bad prize spec
            StateError: A raffle is already active
        """
        prizes = parse_prize_spec(prize_spec_text)
        state = await self.store.load_state(guild_id)
        return state.start(prizes)

    async def start(self, guild_id, prize_spec_text, title=None, description=None, message=None) -> RaffleState:
        """
        Parse the prize spec and activate a new raffle run

        Args:
            message: Optional (message_id, channel_id) of an already sent
                     raffle post, bound in the same save as the start
        """
        prizes = parse_prize_spec(prize_spec_text)

        def mutation(state):
            state.start(prizes, title, description)
            if message is not None:
                state.bind_message(*message)

        state, _ = await self._mutate(guild_id, mutation)
        return state

    async def end(self, guild_id) -> RaffleSummary:
        """End the active raffle, saving its summary to the history log"""
        async def operation():
            state = await self.store.load_state(guild_id)
            summary = state.end(now=self.clock())
            await self.store.archive_and_save(guild_id, state, summary)
            return summary

        return await self._retry_on_conflict(operation)

    async def bind_message(self, guild_id, message_id, channel_id):
        state, _ = await self._mutate(guild_id, lambda s: s.bind_message(message_id, channel_id))
        return state

    # ========================================
    # TICKETS
    # ========================================

    async def grant_tickets(self, guild_id, amount, user_id=None, member_directory: Optional[MemberDirectory] = None):
        """
        Give tickets to one user, or to every non-bot member

        Args:
            guild_id: Guild the raffle belongs to
            amount: Tickets per user (must be > 0)
            user_id: Target user (None = everyone)
            member_directory: Source of member ids when user_id is None

        Returns:
            dict: New balance per user id
        """
        if user_id is None and member_directory is None:
            raise ValidationError("Pick a user, or give tickets to everyone from a server.")

        # Member list is fetched once, and only after the raffle is known to accept tickets
        user_ids = [user_id] if user_id is not None else None

        async def operation():
            nonlocal user_ids
            state = await self.store.load_state(guild_id)
            state.check_grant(amount)
            if user_ids is None:
                user_ids = await member_directory.list_member_ids()
            balances = state.grant_tickets(amount, user_ids)
            await self.store.save_state(guild_id, state)
            return balances

        return await self._retry_on_conflict(operation)

    async def redeem(self, guild_id, user_id, user_tag) -> RedemptionResult:
        return await self._retry_on_conflict(
            lambda: self.redemptions.redeem(guild_id, user_id, user_tag)
        )

    # ========================================
    # SETTINGS & QUERIES
    # ========================================

    async def set_announce_channel(self, guild_id, channel_id):
        state, _ = await self._mutate(guild_id, lambda s: s.set_announce_channel(channel_id))
        return state

    async def set_max_wins(self, guild_id, kind, amount):
        state, _ = await self._mutate(guild_id, lambda s: s.set_max_wins(kind, amount))
        return state

    async def list_entries(self, guild_id) -> RaffleState:
        return await self.store.load_state(guild_id)

    async def history(self, guild_id, limit=None):
        return await self.store.list_history(guild_id, limit or config.HISTORY_LIMIT)
