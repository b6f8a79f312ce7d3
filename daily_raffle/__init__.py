"""
Daily Raffle Package
Weighted-prize ticket raffle for Discord servers with win limits and history
"""

__version__ = "1.0.0"

# Export main components
from .draw import filter_eligible_prizes, is_exhausted, select_prize
from .prizes import Prize, parse_prize_spec
from .state import RaffleState, RaffleSummary, WinnerRecord
from .store import RaffleStore
from .workflow import MemberDirectory, RaffleService, RedemptionWorkflow

__all__ = [
    'Prize',
    'parse_prize_spec',
    'select_prize',
    'is_exhausted',
    'filter_eligible_prizes',
    'RaffleState',
    'RaffleSummary',
    'WinnerRecord',
    'RaffleStore',
    'RedemptionWorkflow',
    'RaffleService',
    'MemberDirectory',
]
