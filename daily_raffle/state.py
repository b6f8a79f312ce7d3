"""
Raffle State
One guild's raffle: lifecycle, ticket ledger, win counters and document mapping
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .errors import StateError, ValidationError
from .prizes import Prize, validate_prizes

MAX_WINS_KINDS = ("user", "prize")


def utc_now_iso():
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class WinnerRecord:
    """One successful redemption"""
    user_id: str
    user_tag: str
    prize_name: str
    timestamp: str

    def to_dict(self):
        return {
            "userId": self.user_id,
            "userTag": self.user_tag,
            "prizeName": self.prize_name,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data) -> "WinnerRecord":
        return cls(
            user_id=str(data.get("userId") or ""),
            user_tag=data.get("userTag") or "Unknown",
            prize_name=data["prizeName"],
            timestamp=data.get("timestamp") or "",
        )


@dataclass(frozen=True)
class MessageBinding:
    """The currently displayed raffle post"""
    message_id: str
    channel_id: str


@dataclass(frozen=True)
class RaffleSummary:
    """Immutable record of a completed raffle run"""
    timestamp: str
    prizes: Tuple[Prize, ...]
    total_entries: int
    winners: Tuple[WinnerRecord, ...]
    max_wins_per_user: int
    max_wins_per_prize: int

    def to_document(self):
        return {
            "timestamp": self.timestamp,
            "prizes": [prize.to_dict() for prize in self.prizes],
            "totalEntries": self.total_entries,
            "winners": [winner.to_dict() for winner in self.winners],
            "maxWinsPerUser": self.max_wins_per_user,
            "maxWinsPerPrize": self.max_wins_per_prize,
        }

    @classmethod
    def from_document(cls, doc) -> "RaffleSummary":
        return cls(
            timestamp=doc["timestamp"],
            prizes=tuple(Prize.from_dict(p) for p in doc.get("prizes") or []),
            total_entries=int(doc.get("totalEntries") or 0),
            winners=tuple(WinnerRecord.from_dict(w) for w in doc.get("winners") or []),
            max_wins_per_user=int(doc.get("maxWinsPerUser") or 0),
            max_wins_per_prize=int(doc.get("maxWinsPerPrize") or 0),
        )


@dataclass
class RaffleState:
    """
    Aggregate state for one guild's raffle

    Limits and the announce channel are configured once and survive
    start/end cycles. Everything else belongs to a single raffle run.
    ``version`` is owned by the store and is 0 until the first save.
    """
    active: bool = False
    prizes: List[Prize] = field(default_factory=list)
    tickets: Dict[str, int] = field(default_factory=dict)
    tickets_redeemed: int = 0
    max_wins_per_user: int = 0
    max_wins_per_prize: int = 0
    user_wins_count: Dict[str, int] = field(default_factory=dict)
    prize_wins_count: Dict[str, int] = field(default_factory=dict)
    current_winners: List[WinnerRecord] = field(default_factory=list)
    announce_channel_id: Optional[str] = None
    message_binding: Optional[MessageBinding] = None
    version: int = 0

    # ========================================
    # LIFECYCLE
    # ========================================

    def start(self, prizes, title=None, description=None):
        """
        Activate a new raffle run with the given prizes

        Title and description only decorate the raffle post; the caller
        publishes the post and records it with bind_message().

        Raises:
            ValidationError: No prizes given
            StateError: A raffle is already active
        """
        prizes = validate_prizes(prizes)
        if not prizes:
            raise ValidationError("Prizes must be provided in 'Name:Chance' format (e.g., 'Nitro:10, Gift Card:5').")
        if self.active:
            raise StateError("A raffle is already active!")

        self.active = True
        self.prizes = prizes
        self._reset_run()
        return self

    def end(self, now=None) -> RaffleSummary:
        """
        Archive the current run and return to the inactive defaults

        Returns:
            RaffleSummary: Snapshot of the run for the history log

        Raises:
            StateError: No raffle is active
        """
        if not self.active:
            raise StateError("No raffle is currently active.")

        summary = RaffleSummary(
            timestamp=now or utc_now_iso(),
            prizes=tuple(self.prizes),
            total_entries=self.tickets_distributed,
            winners=tuple(self.current_winners),
            max_wins_per_user=self.max_wins_per_user,
            max_wins_per_prize=self.max_wins_per_prize,
        )

        self.active = False
        self.prizes = []
        self._reset_run()
        return summary

    def _reset_run(self):
        self.tickets = {}
        self.tickets_redeemed = 0
        self.user_wins_count = {}
        self.prize_wins_count = {}
        self.current_winners = []
        self.message_binding = None

    # ========================================
    # TICKETS & SETTINGS
    # ========================================

    def check_grant(self, amount):
        """Raise unless ``amount`` tickets could be granted right now"""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("Amount must be a positive number.")
        if not self.active:
            raise StateError("No raffle is currently active!")

    def grant_tickets(self, amount, user_ids):
        """
        Add ``amount`` tickets to every listed user

        Returns:
            dict: New balance per user id
        """
        self.check_grant(amount)

        balances = {}
        for user_id in user_ids:
            key = str(user_id)
            self.tickets[key] = self.tickets.get(key, 0) + amount
            balances[key] = self.tickets[key]
        return balances

    def set_announce_channel(self, channel_id):
        self.announce_channel_id = str(channel_id) if channel_id is not None else None

    def set_max_wins(self, kind, amount):
        if kind not in MAX_WINS_KINDS:
            raise ValidationError("Limit type must be 'user' or 'prize'.")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise ValidationError("Maximum wins must be 0 (no limit) or more.")

        if kind == "user":
            self.max_wins_per_user = amount
        else:
            self.max_wins_per_prize = amount

    def bind_message(self, message_id, channel_id):
        self.message_binding = MessageBinding(message_id=str(message_id), channel_id=str(channel_id))

    # ========================================
    # QUERIES
    # ========================================

    def ticket_balance(self, user_id):
        return self.tickets.get(str(user_id), 0)

    @property
    def total_tickets(self):
        """Tickets still waiting to be redeemed"""
        return sum(self.tickets.values())

    @property
    def tickets_distributed(self):
        """Tickets handed out this run, redeemed or not"""
        return self.total_tickets + self.tickets_redeemed

    def copy(self) -> "RaffleState":
        return copy.deepcopy(self)

    # ========================================
    # DOCUMENT MAPPING
    # ========================================

    def to_document(self):
        """Structured document stored per guild (version is kept by the store)"""
        binding = self.message_binding
        return {
            "active": self.active,
            "prizes": [prize.to_dict() for prize in self.prizes],
            "tickets": dict(self.tickets),
            "ticketsRedeemed": self.tickets_redeemed,
            "currentRaffleMessageId": binding.message_id if binding else None,
            "currentRaffleChannelId": binding.channel_id if binding else None,
            "winnerLogChannelId": self.announce_channel_id,
            "maxWinsPerUser": self.max_wins_per_user,
            "maxWinsPerPrize": self.max_wins_per_prize,
            "prizeWinsCount": dict(self.prize_wins_count),
            "userWinsCount": dict(self.user_wins_count),
            "currentWinners": [winner.to_dict() for winner in self.current_winners],
        }

    @classmethod
    def from_document(cls, doc, version=0) -> "RaffleState":
        doc = doc or {}
        message_id = doc.get("currentRaffleMessageId")
        channel_id = doc.get("currentRaffleChannelId")
        binding = None
        if message_id and channel_id:
            binding = MessageBinding(message_id=str(message_id), channel_id=str(channel_id))

        announce = doc.get("winnerLogChannelId")
        return cls(
            active=bool(doc.get("active", False)),
            prizes=[Prize.from_dict(p) for p in doc.get("prizes") or []],
            tickets={str(k): int(v) for k, v in (doc.get("tickets") or {}).items()},
            tickets_redeemed=int(doc.get("ticketsRedeemed") or 0),
            max_wins_per_user=int(doc.get("maxWinsPerUser") or 0),
            max_wins_per_prize=int(doc.get("maxWinsPerPrize") or 0),
            user_wins_count={str(k): int(v) for k, v in (doc.get("userWinsCount") or {}).items()},
            prize_wins_count={str(k): int(v) for k, v in (doc.get("prizeWinsCount") or {}).items()},
            current_winners=[WinnerRecord.from_dict(w) for w in doc.get("currentWinners") or []],
            announce_channel_id=str(announce) if announce else None,
            message_binding=binding,
            version=version,
        )
