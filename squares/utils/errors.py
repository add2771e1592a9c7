"""
Error taxonomy for the settlement engine.

None of these are fatal to the process: each one is scoped to a single
contest, box or game and callers degrade to "stale" or "pending".
"""


class SettlementError(Exception):
    """Base class for settlement engine errors"""


class OutOfRangeError(SettlementError, ValueError):
    """A token id or box coordinate falls outside its contest's grid"""

    def __init__(self, message, token_id=None, contest_id=None):
        super().__init__(message)
        self.token_id = token_id
        self.contest_id = contest_id


class UnsupportedStrategyError(SettlementError):
    """The payout strategy could not be resolved, so no split is computed"""

    def __init__(self, strategy):
        super().__init__(f"Unsupported payout strategy: {strategy}")
        self.strategy = strategy


class CacheUnavailable(SettlementError):
    """The shared cache store is unreachable or misconfigured"""


class UpstreamError(SettlementError):
    """A score feed or chain read failed"""


class UpstreamTimeout(UpstreamError):
    """A score feed or chain read did not answer in time"""
