from squares import db  # noqa: F401 - imported for model imports

from .contest import (
    ZERO_ADDRESS,
    BoxOwner,
    Contest,
    PayoutStrategy,
    group_box_owners,
    is_real_user,
)
from .game_score import GameScore, GameScoreSnapshot, ScoringPlay
from .pickem import LiveGameScore, PickemEntry, RankedEntry
from .settlement import SettlementEvent, WinningBoxEntry

__all__ = [
    "ZERO_ADDRESS",
    "BoxOwner",
    "Contest",
    "PayoutStrategy",
    "group_box_owners",
    "is_real_user",
    "GameScore",
    "GameScoreSnapshot",
    "ScoringPlay",
    "LiveGameScore",
    "PickemEntry",
    "RankedEntry",
    "SettlementEvent",
    "WinningBoxEntry",
]
