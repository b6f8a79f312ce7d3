"""Tests for the raffle command surface."""

import asyncio

import pytest
from sqlalchemy import create_engine

from daily_raffle.database import setup_raffle_database
from daily_raffle.errors import (
    ConflictError,
    InactiveRaffleError,
    StateError,
    ValidationError,
)
from daily_raffle.prizes import Prize
from daily_raffle.state import RaffleState
from daily_raffle.store import RaffleStore
from daily_raffle.workflow import MemberDirectory, RaffleService

from conftest import GUILD_ID, ScriptedRandom

NOW = "2026-10-17T12:00:00+00:00"


class StaticMembers(MemberDirectory):
    def __init__(self, member_ids):
        self.member_ids = member_ids

    async def list_member_ids(self):
        return list(self.member_ids)


class ConflictOnceStore(RaffleStore):
    """Store that loses the first ``conflicts`` saves to a rival writer"""

    def __init__(self, engine, conflicts=1):
        super().__init__(engine)
        self.conflicts = conflicts
        self.save_attempts = 0

    async def save_state(self, guild_id, state):
        self.save_attempts += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            raise ConflictError("rival save")
        return await super().save_state(guild_id, state)


@pytest.fixture
def service(store):
    return RaffleService(store, rng=ScriptedRandom([0] * 10), clock=lambda: NOW)


@pytest.mark.asyncio
async def test_start_parses_prizes_and_activates(service, store):
    state = await service.start(GUILD_ID, "Nitro:10, Gift Card:5")

    assert state.active is True
    assert state.prizes == [Prize("Nitro", 10), Prize("Gift Card", 5)]
    assert (await store.load_state(GUILD_ID)).prizes == state.prizes


@pytest.mark.asyncio
@pytest.mark.parametrize("spec", ["", "Nitro", "Nitro:ten", "Nitro:-1", "Nitro:1:2", ":5"])
async def test_invalid_prize_spec_commits_nothing(service, store, spec):
    with pytest.raises(ValidationError):
        await service.start(GUILD_ID, spec)

    assert (await store.load_state(GUILD_ID)).version == 0


@pytest.mark.asyncio
async def test_start_while_active_is_rejected(service):
    await service.start(GUILD_ID, "Nitro:10")
    with pytest.raises(StateError):
        await service.start(GUILD_ID, "Other:1")


@pytest.mark.asyncio
async def test_full_raffle_run(service, store):
    await service.start(GUILD_ID, "Nitro:10")
    await service.grant_tickets(GUILD_ID, 1, user_id=1)
    await service.grant_tickets(GUILD_ID, 2, user_id=2)

    first = await service.redeem(GUILD_ID, 1, "alice")
    second = await service.redeem(GUILD_ID, 2, "bob")
    assert first.prize.name == second.prize.name == "Nitro"
    assert second.remaining_tickets == 1

    summary = await service.end(GUILD_ID)

    assert summary.total_entries == 3
    assert [w.user_tag for w in summary.winners] == ["alice", "bob"]
    assert summary.timestamp == NOW

    state = await store.load_state(GUILD_ID)
    assert state.active is False
    assert state.prizes == []
    assert state.tickets == {}
    assert state.current_winners == []
    assert await service.history(GUILD_ID) == [summary]


@pytest.mark.asyncio
async def test_end_without_active_raffle(service, store):
    with pytest.raises(StateError):
        await service.end(GUILD_ID)
    assert await store.list_history(GUILD_ID) == []


@pytest.mark.asyncio
async def test_limits_and_channel_survive_restart(service):
    await service.set_max_wins(GUILD_ID, "user", 2)
    await service.set_max_wins(GUILD_ID, "prize", 1)
    await service.set_announce_channel(GUILD_ID, 999)
    await service.start(GUILD_ID, "Nitro:10")
    await service.end(GUILD_ID)

    state = await service.start(GUILD_ID, "Nitro:10")
    assert state.max_wins_per_user == 2
    assert state.max_wins_per_prize == 1
    assert state.announce_channel_id == "999"


@pytest.mark.asyncio
async def test_invalid_limit_kind(service):
    with pytest.raises(ValidationError):
        await service.set_max_wins(GUILD_ID, "guild", 1)


@pytest.mark.asyncio
async def test_grant_to_everyone(service):
    await service.start(GUILD_ID, "Nitro:10")
    await service.grant_tickets(GUILD_ID, 1, user_id=3)

    balances = await service.grant_tickets(GUILD_ID, 2, member_directory=StaticMembers([3, 4, 5]))

    assert balances == {"3": 3, "4": 2, "5": 2}
    state = await service.list_entries(GUILD_ID)
    assert state.total_tickets == 7


@pytest.mark.asyncio
async def test_grant_needs_a_target(service):
    await service.start(GUILD_ID, "Nitro:10")
    with pytest.raises(ValidationError):
        await service.grant_tickets(GUILD_ID, 1)


@pytest.mark.asyncio
async def test_grant_requires_active_raffle(service):
    with pytest.raises(StateError):
        await service.grant_tickets(GUILD_ID, 1, user_id=1)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -3])
async def test_grant_rejects_non_positive_amount(service, amount):
    await service.start(GUILD_ID, "Nitro:10")
    with pytest.raises(ValidationError):
        await service.grant_tickets(GUILD_ID, amount, user_id=1)


@pytest.mark.asyncio
async def test_redeem_without_raffle(service):
    with pytest.raises(InactiveRaffleError):
        await service.redeem(GUILD_ID, 1, "alice")


@pytest.mark.asyncio
async def test_bind_message_is_cleared_by_end(service, store):
    await service.start(GUILD_ID, "Nitro:10")
    state = await service.bind_message(GUILD_ID, 123, 456)
    assert (state.message_binding.message_id, state.message_binding.channel_id) == ("123", "456")

    await service.end(GUILD_ID)
    assert (await store.load_state(GUILD_ID)).message_binding is None


@pytest.mark.asyncio
async def test_conflict_is_retried_on_fresh_state(engine):
    store = ConflictOnceStore(engine, conflicts=1)
    service = RaffleService(store, rng=ScriptedRandom([0, 0]), clock=lambda: NOW, conflict_retries=3, backoff_base=0)

    await RaffleStore(engine).save_state(GUILD_ID, _active_with_ticket())
    result = await service.redeem(GUILD_ID, 1, "alice")

    assert result.prize.name == "Nitro"
    assert store.save_attempts == 2
    saved = await store.load_state(GUILD_ID)
    assert saved.tickets == {"1": 0}
    assert len(saved.current_winners) == 1


@pytest.mark.asyncio
async def test_conflict_retries_give_up(engine):
    store = ConflictOnceStore(engine, conflicts=5)
    service = RaffleService(store, clock=lambda: NOW, conflict_retries=2, backoff_base=0)

    with pytest.raises(ConflictError):
        await service.set_announce_channel(GUILD_ID, 1)
    assert store.save_attempts == 3


@pytest.mark.asyncio
async def test_history_respects_limit(service):
    for _ in range(3):
        await service.start(GUILD_ID, "Nitro:10")
        await service.end(GUILD_ID)

    assert len(await service.history(GUILD_ID, limit=2)) == 2
    assert len(await service.history(GUILD_ID)) == 3


def _active_with_ticket():
    state = RaffleState()
    state.start([Prize("Nitro", 10)])
    state.grant_tickets(1, ["1"])
    return state


class CountingMembers(StaticMembers):
    def __init__(self, member_ids):
        super().__init__(member_ids)
        self.calls = 0

    async def list_member_ids(self):
        self.calls += 1
        return await super().list_member_ids()


@pytest.mark.asyncio
async def test_zero_retries_means_a_single_attempt(engine):
    store = ConflictOnceStore(engine, conflicts=1)
    service = RaffleService(store, clock=lambda: NOW, conflict_retries=0)

    with pytest.raises(ConflictError):
        await service.set_announce_channel(GUILD_ID, 1)
    assert store.save_attempts == 1


def test_negative_retries_rejected(store):
    with pytest.raises(ValueError):
        RaffleService(store, conflict_retries=-1)


@pytest.mark.asyncio
async def test_simultaneous_redemptions_all_land(tmp_path):
    users = 12
    engine = create_engine(f"sqlite:///{tmp_path / 'raffle.db'}")
    assert setup_raffle_database(engine)
    store = RaffleStore(engine)
    state = RaffleState()
    state.start([Prize("Nitro", 1)])
    state.grant_tickets(1, [str(n) for n in range(users)])
    await store.save_state(GUILD_ID, state)

    # Every lost race means another redemption landed, so users - 1 retries always suffice
    service = RaffleService(store, clock=lambda: NOW, conflict_retries=users, backoff_base=0.005)
    results = await asyncio.gather(
        *(service.redeem(GUILD_ID, n, f"user{n}") for n in range(users)),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert failures == []
    saved = await store.load_state(GUILD_ID)
    assert saved.tickets_redeemed == users
    assert saved.total_tickets == 0
    assert len(saved.current_winners) == users
    assert saved.prize_wins_count == {"Nitro": users}
    engine.dispose()


@pytest.mark.asyncio
async def test_preview_start_saves_nothing(service, store):
    preview = await service.preview_start(GUILD_ID, "Nitro:10")

    assert preview.active is True
    assert preview.prizes == [Prize("Nitro", 10)]
    assert (await store.load_state(GUILD_ID)).version == 0


@pytest.mark.asyncio
async def test_preview_start_refuses_active_raffle(service):
    await service.start(GUILD_ID, "Nitro:10")
    with pytest.raises(StateError):
        await service.preview_start(GUILD_ID, "Other:1")


@pytest.mark.asyncio
async def test_start_binds_post_in_the_same_save(service, store):
    await service.start(GUILD_ID, "Nitro:10", message=(123, 456))

    saved = await store.load_state(GUILD_ID)
    assert saved.version == 1
    assert saved.active is True
    assert (saved.message_binding.message_id, saved.message_binding.channel_id) == ("123", "456")


@pytest.mark.asyncio
async def test_grant_to_everyone_skips_member_fetch_when_inactive(service):
    members = CountingMembers([1, 2])

    with pytest.raises(StateError):
        await service.grant_tickets(GUILD_ID, 1, member_directory=members)
    assert members.calls == 0


@pytest.mark.asyncio
async def test_grant_to_everyone_skips_member_fetch_for_bad_amount(service):
    await service.start(GUILD_ID, "Nitro:10")
    members = CountingMembers([1, 2])

    with pytest.raises(ValidationError):
        await service.grant_tickets(GUILD_ID, 0, member_directory=members)
    assert members.calls == 0


@pytest.mark.asyncio
async def test_grant_to_everyone_fetches_members_once_across_retries(engine):
    await RaffleStore(engine).save_state(GUILD_ID, _active_with_ticket())
    store = ConflictOnceStore(engine, conflicts=1)
    service = RaffleService(store, clock=lambda: NOW, backoff_base=0)
    members = CountingMembers([1, 2])

    balances = await service.grant_tickets(GUILD_ID, 2, member_directory=members)

    assert balances == {"1": 3, "2": 2}
    assert members.calls == 1
    assert store.save_attempts == 2
