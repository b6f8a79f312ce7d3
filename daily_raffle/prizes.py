"""
Prize Table
Validates and parses the weighted prize list configured for a raffle run
"""

import re
from dataclasses import dataclass
from typing import List

from .errors import ValidationError

_CHANCE_PATTERN = re.compile(r"^[0-9]+$")


@dataclass(frozen=True)
class Prize:
    """A prize and its relative draw weight"""
    name: str
    weight: int

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("Prize name cannot be empty.")
        if isinstance(self.weight, bool) or not isinstance(self.weight, int) or self.weight < 0:
            raise ValidationError(f'Prize "{self.name}" needs a whole-number chance of 0 or more.')

    def to_dict(self):
        return {"name": self.name, "chance": self.weight}

    @classmethod
    def from_dict(cls, data) -> "Prize":
        weight = data.get("chance", data.get("weight", 0))
        return cls(name=data["name"], weight=int(weight))


def validate_prizes(prizes) -> List[Prize]:
    """
    Check a prize list as a whole

    Names must be unique within one raffle. Order is preserved since the
    weighted draw walks prizes in the configured order.

    Returns:
        list: The prizes as a new list
    """
    seen = set()
    for prize in prizes:
        key = prize.name.casefold()
        if key in seen:
            raise ValidationError(f'Prize "{prize.name}" is listed more than once.')
        seen.add(key)
    return list(prizes)


def parse_prize_spec(prizes_string) -> List[Prize]:
    """
    Parse admin prize input into a prize list

    Format: comma-separated ``Name:Chance`` pairs, e.g. ``"Nitro:10, Gift Card:5"``.
    Blank entries between commas are skipped. Any malformed entry rejects
    the whole submission.

    Args:
        prizes_string: Raw text from the start command

    Returns:
        list: Parsed prizes (empty if the input has no entries)

    Raises:
        ValidationError: On the first malformed entry
    """
    if not prizes_string:
        return []

    prizes = []
    pairs = [s.strip() for s in prizes_string.split(",")]
    for pair in pairs:
        if not pair:
            continue

        parts = pair.split(":")
        if len(parts) != 2:
            raise ValidationError(f'Invalid prize format in "{pair}". Expected "Name:Chance".')

        name = parts[0].strip()
        chance = parts[1].strip()
        if not name or not _CHANCE_PATTERN.match(chance):
            raise ValidationError(
                f'Invalid prize format in "{pair}". Expected "Name:Chance" with a whole number for chance.'
            )
        prizes.append(Prize(name=name, weight=int(chance, 10)))

    return validate_prizes(prizes)
