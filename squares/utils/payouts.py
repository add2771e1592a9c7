"""
Payout calculations for squares contests

A fixed treasury fee comes off gross rewards first; the remaining net pool
is split per settlement event according to the contest's payout strategy.
``PayoutSchedule`` is the one place the split percentages live: display
code and settlement code both read amounts from it.
"""

import logging
from dataclasses import dataclass

from squares.models.contest import PayoutStrategy
from squares.models.settlement import QUARTER, QUARTER_LABELS
from squares.utils.errors import UnsupportedStrategyError

logger = logging.getLogger(__name__)

TREASURY_FEE_RATE = 0.02

QUARTER_SHARES = {1: 0.15, 2: 0.20, 3: 0.15, 4: 0.50}


def treasury_fee(gross_rewards):
    return gross_rewards * TREASURY_FEE_RATE


def net_rewards(gross_rewards):
    return gross_rewards - treasury_fee(gross_rewards)


def _percent_label(fraction):
    return f"{fraction * 100:g}%"


@dataclass(frozen=True)
class PayoutSchedule:
    """Share of net rewards paid for each settlement event.

    ``quarters_pool`` is the fraction of net rewards split over the four
    quarter ends using ``QUARTER_SHARES``; ``score_changes_pool`` is the
    fraction divided evenly across all scoring plays.
    """

    strategy: PayoutStrategy
    quarters_pool: float
    score_changes_pool: float = 0.0

    def quarter_fraction(self, quarter):
        return self.quarters_pool * QUARTER_SHARES[quarter]

    def quarter_label(self, quarter):
        return f"{QUARTER_LABELS[quarter]} ({_percent_label(self.quarter_fraction(quarter))})"

    def quarter_amount(self, net, quarter):
        return net * self.quarter_fraction(quarter)

    def score_changes_allocation(self, net):
        return net * self.score_changes_pool

    def per_score_change_amount(self, net, scoring_play_count):
        if scoring_play_count <= 0:
            return 0
        return self.score_changes_allocation(net) / scoring_play_count

    def amount_for(self, event, gross_rewards, scoring_play_count=0):
        """Amount owed for one settlement event, net of the treasury fee"""
        net = net_rewards(gross_rewards)
        if event.kind == QUARTER:
            return self.quarter_amount(net, event.index)
        return self.per_score_change_amount(net, scoring_play_count)

    def breakdown(self, gross_rewards, scoring_play_count=0):
        """Full display view of the split for a contest"""
        net = net_rewards(gross_rewards)
        quarters = {
            f"q{quarter}": {
                "percentage": self.quarter_fraction(quarter) * 100,
                "amount": self.quarter_amount(net, quarter),
                "label": self.quarter_label(quarter),
            }
            for quarter in QUARTER_SHARES
        }
        data = {
            "strategy": self.strategy.value,
            "displayName": strategy_display_name(self.strategy),
            "description": strategy_description(self.strategy),
            "totalRewards": gross_rewards,
            "treasuryFee": treasury_fee(gross_rewards),
            "netRewards": net,
            "quarters": quarters,
        }
        if self.score_changes_pool:
            data["scoreChanges"] = {
                "totalAllocation": self.score_changes_allocation(net),
                "perScoreChange": self.per_score_change_amount(net, scoring_play_count),
                "count": scoring_play_count,
                "label": f"Score Changes ({_percent_label(self.score_changes_pool)})",
            }
        return data


QUARTERS_ONLY_SCHEDULE = PayoutSchedule(PayoutStrategy.QUARTERS_ONLY, quarters_pool=1.0)
SCORE_CHANGES_SCHEDULE = PayoutSchedule(
    PayoutStrategy.SCORE_CHANGES, quarters_pool=0.5, score_changes_pool=0.5
)

SCHEDULES = {
    PayoutStrategy.QUARTERS_ONLY: QUARTERS_ONLY_SCHEDULE,
    PayoutStrategy.SCORE_CHANGES: SCORE_CHANGES_SCHEDULE,
}


def schedule_for(strategy):
    try:
        return SCHEDULES[strategy]
    except KeyError:
        raise UnsupportedStrategyError(strategy) from None


class PayoutCalculator:
    """Computes amounts owed per settlement event for one strategy.

    Raises:
        UnsupportedStrategyError: on construction, for UNKNOWN strategies
    """

    def __init__(self, strategy):
        self.strategy = strategy
        self.schedule = schedule_for(strategy)

    def treasury_fee(self, gross_rewards):
        return treasury_fee(gross_rewards)

    def net_rewards(self, gross_rewards):
        return net_rewards(gross_rewards)

    def amount_for(self, event, gross_rewards, scoring_play_count=0):
        return self.schedule.amount_for(event, gross_rewards, scoring_play_count)

    def breakdown(self, gross_rewards, scoring_play_count=0):
        return self.schedule.breakdown(gross_rewards, scoring_play_count)


def resolve_strategy(address, quarters_only_address=None, score_changes_address=None):
    """Map a payout strategy contract address to a ``PayoutStrategy``.

    Unknown or legacy addresses resolve to UNKNOWN instead of raising.
    """
    if not address:
        return PayoutStrategy.UNKNOWN

    candidate = address.lower()
    if quarters_only_address and candidate == quarters_only_address.lower():
        return PayoutStrategy.QUARTERS_ONLY
    if score_changes_address and candidate == score_changes_address.lower():
        return PayoutStrategy.SCORE_CHANGES

    logger.warning(f"Unknown payout strategy address: {address}")
    return PayoutStrategy.UNKNOWN


def strategy_display_name(strategy):
    if strategy == PayoutStrategy.QUARTERS_ONLY:
        return "Quarters Only"
    if strategy == PayoutStrategy.SCORE_CHANGES:
        return "Score Changes + Quarters"
    if strategy == PayoutStrategy.UNKNOWN:
        return "Legacy Strategy"
    return "Unknown Strategy"


def strategy_description(strategy):
    if strategy == PayoutStrategy.QUARTERS_ONLY:
        return "Payouts are made at the end of each quarter. Winners can claim immediately."
    if strategy == PayoutStrategy.SCORE_CHANGES:
        return (
            "Payouts for score changes and quarters. "
            "All payouts are made only after the game is completely finished."
        )
    return ""
