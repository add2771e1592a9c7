"""
Adaptive polling intervals

Each function maps the currently cached value of a resource to the number
of seconds until the next poll, or None once polling should stop.
"""

from enum import Enum

CONTEST_POLL_INTERVAL = 15
GAME_SCORES_POLL_INTERVAL = 12
GAME_SCORES_FAST_POLL_INTERVAL = 5


class PollState(Enum):
    ACTIVE = "active"
    FAST = "fast"
    IDLE = "idle"


def contest_poll_state(contest):
    if contest is None or contest.is_active:
        return PollState.ACTIVE
    return PollState.IDLE


def game_scores_poll_state(game_score):
    if game_score is None:
        return PollState.ACTIVE
    if game_score.is_final:
        return PollState.IDLE
    if game_score.request_in_progress:
        return PollState.FAST
    return PollState.ACTIVE


def contest_poll_interval(contest, interval=CONTEST_POLL_INTERVAL):
    if contest_poll_state(contest) == PollState.IDLE:
        return None
    return interval


def game_scores_poll_interval(
    game_score,
    interval=GAME_SCORES_POLL_INTERVAL,
    fast_interval=GAME_SCORES_FAST_POLL_INTERVAL,
):
    state = game_scores_poll_state(game_score)
    if state == PollState.IDLE:
        return None
    if state == PollState.FAST:
        return fast_interval
    return interval
