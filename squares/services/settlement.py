"""
Settlement of squares contests

Turns a contest, its box owners and the current game score into the list of
winning boxes with the amount each one is owed. One entry is produced per
winning box; a box that wins several events accumulates their amounts and
labels. Entries are ordered most recent win first.
"""

from squares.models import PayoutStrategy, SettlementEvent, WinningBoxEntry, is_real_user
from squares.utils.attribution import box_wins, settlement_events
from squares.utils.errors import OutOfRangeError, UpstreamError
from squares.utils.logging_config import get_logger
from squares.utils.payouts import PayoutCalculator, strategy_display_name
from squares.utils.performance import timer
from squares.utils.token_grid import cell_to_box_position, to_grid

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 10
RECENT_CONTESTS_LIMIT = 20


def build_winning_entries(
    contest, box_owners, game_score, strategy, contract_address=None, game_date=""
):
    """
    Compute winning box entries for one contest.

    Args:
        contest: Contest with its digit assignments
        box_owners: BoxOwner list for the contest's 100 boxes
        game_score: current GameScore, or None before kickoff
        strategy: resolved PayoutStrategy
        contract_address: contests contract, whose boxes are not paid out
        game_date: ISO date string carried onto each entry

    Returns:
        list of WinningBoxEntry, most recently won first. Under an UNKNOWN
        strategy winners are still listed but amounts are None.
    """
    if game_score is None or not contest.random_values_set:
        return []

    calculator = None if strategy == PayoutStrategy.UNKNOWN else PayoutCalculator(strategy)

    owners_by_position = {}
    for box in box_owners:
        try:
            position = to_grid(box.token_id, contest.id)
        except OutOfRangeError as e:
            logger.warning(f"Skipping box owner record: {e}")
            continue
        owners_by_position[position.box_position] = box

    scoring_play_count = len(game_score.scoring_plays)
    matchup = game_score.matchup_label()
    entries = {}

    for event, (row, col) in settlement_events(contest, game_score, strategy):
        box_position = cell_to_box_position(row, col)
        box = owners_by_position.get(box_position)
        if box is None or not is_real_user(box.owner, contract_address):
            continue

        amount = None
        if calculator is not None:
            amount = calculator.amount_for(event, contest.total_rewards, scoring_play_count)
            if amount <= 0:
                continue

        entry = entries.get(box.token_id)
        if entry is None:
            entry = WinningBoxEntry(
                contest_id=contest.id,
                token_id=box.token_id,
                box_position=box_position,
                owner=box.owner,
                currency=contest.box_cost_currency,
                game_id=contest.game_id,
                matchup=matchup,
                game_date=game_date,
            )
            entries[box.token_id] = entry
        entry.add(event, amount)

    return sorted(entries.values(), key=lambda e: e.latest_sequence, reverse=True)


def box_winnings(contest, game_score, token_id, strategy):
    """Quarters and scoring plays won by one box, with the total owed.

    Raises:
        OutOfRangeError: ``token_id`` is not one of the contest's boxes
    """
    position = to_grid(token_id, contest.id)
    wins = box_wins(contest, game_score, position.row, position.col, strategy)

    total = None
    if strategy != PayoutStrategy.UNKNOWN:
        calculator = PayoutCalculator(strategy)
        play_count = len(game_score.scoring_plays) if game_score else 0
        total = sum(
            calculator.amount_for(SettlementEvent.quarter(q), contest.total_rewards, play_count)
            for q in wins["quarters"]
        ) + sum(
            calculator.amount_for(SettlementEvent.score_change(i), contest.total_rewards, play_count)
            for i in wins["scoring_plays"]
        )

    return {
        "tokenId": int(token_id),
        "boxPosition": position.box_position,
        "row": position.row,
        "col": position.col,
        "quarters": wins["quarters"],
        "scoringPlays": wins["scoring_plays"],
        "totalWinnings": total,
    }


def paginate(items, page=1, page_size=DEFAULT_PAGE_SIZE):
    """Slice ``items`` to a 1-based page; out-of-range pages come back empty"""
    page = max(int(page or 1), 1)
    page_size = max(int(page_size or DEFAULT_PAGE_SIZE), 1)
    total = len(items)
    start = (page - 1) * page_size
    return items[start:start + page_size], {
        "page": page,
        "pageSize": page_size,
        "total": total,
        "totalPages": (total + page_size - 1) // page_size,
    }


class SettlementOrchestrator:
    """Reads contests and scores through a ContestService and settles them"""

    def __init__(self, service, page_size=DEFAULT_PAGE_SIZE):
        self.service = service
        self.page_size = page_size

    @classmethod
    def from_app(cls, app, service):
        return cls(service, page_size=app.config.get("WINNING_BOXES_PAGE_SIZE", DEFAULT_PAGE_SIZE))

    def _game_date(self, game_id):
        try:
            return (self.service.get_game_details(game_id) or {}).get("date", "")
        except UpstreamError as e:
            logger.info(f"No game details for game {game_id}: {e}")
            return ""

    def _settle(self, contest, box_owners):
        strategy = self.service.strategy_for(contest)
        game_score = None
        game_date = ""
        if contest.random_values_set:
            game_score = self.service.get_game_score(contest.game_id)
            game_date = self._game_date(contest.game_id)

        entries = build_winning_entries(
            contest,
            box_owners,
            game_score,
            strategy,
            contract_address=self.service.app.config.get("CONTESTS_ADDRESS"),
            game_date=game_date,
        )
        return strategy, game_score, entries

    @timer
    def winning_boxes(self, contest_id, chain_id=None, page=1):
        contest, box_owners = self.service.get_contest(contest_id, chain_id)
        strategy, game_score, entries = self._settle(contest, box_owners)
        page_entries, pagination = paginate(entries, page, self.page_size)

        return {
            "contestId": contest.id,
            "strategy": strategy.value,
            "status": "pending" if strategy == PayoutStrategy.UNKNOWN else "ok",
            "finalized": bool(game_score and game_score.is_final),
            "winningBoxes": [entry.to_dict() for entry in page_entries],
            "pagination": pagination,
        }

    @timer
    def recent_winning_boxes(self, chain_id=None, page=1, limit=RECENT_CONTESTS_LIMIT):
        """Winning boxes across recent contests, latest game first.

        A contest whose chain or feed read fails is skipped and logged.
        """
        entries = []
        for payload in self.service.list_contests(chain_id)[:limit]:
            if not payload.get("randomValuesSet"):
                continue
            contest_id = payload.get("id")
            try:
                contest, box_owners = self.service.get_contest(contest_id, chain_id)
                _, _, contest_entries = self._settle(contest, box_owners)
            except UpstreamError as e:
                logger.warning(f"Skipping contest {contest_id} in recent winners: {e}")
                continue
            entries.extend(contest_entries)

        # Stable sorts: most recent win inside a game, then latest game first
        entries.sort(key=lambda e: e.latest_sequence, reverse=True)
        entries.sort(key=lambda e: e.game_date or "", reverse=True)

        page_entries, pagination = paginate(entries, page, self.page_size)
        return {
            "winningBoxes": [entry.to_dict() for entry in page_entries],
            "pagination": pagination,
        }

    def payouts(self, contest_id, chain_id=None):
        """Payout breakdown for display"""
        contest, _ = self.service.get_contest(contest_id, chain_id)
        strategy = self.service.strategy_for(contest)

        if strategy == PayoutStrategy.UNKNOWN:
            return {
                "contestId": contest.id,
                "strategy": strategy.value,
                "displayName": strategy_display_name(strategy),
                "status": "pending",
            }

        scoring_play_count = 0
        finalized = False
        if contest.random_values_set:
            game_score = self.service.get_game_score(contest.game_id)
            scoring_play_count = len(game_score.scoring_plays)
            finalized = game_score.is_final

        data = PayoutCalculator(strategy).breakdown(contest.total_rewards, scoring_play_count)
        data.update(
            {
                "contestId": contest.id,
                "status": "ok",
                "finalized": finalized,
                "rewardsPaid": contest.rewards_paid,
            }
        )
        return data

    def box_winnings(self, contest_id, token_id, chain_id=None):
        """What a single box has won so far"""
        contest, _ = self.service.get_contest(contest_id, chain_id)
        strategy = self.service.strategy_for(contest)
        game_score = None
        if contest.random_values_set:
            game_score = self.service.get_game_score(contest.game_id)

        data = box_winnings(contest, game_score, token_id, strategy)
        data.update(
            {
                "contestId": contest.id,
                "strategy": strategy.value,
                "finalized": bool(game_score and game_score.is_final),
            }
        )
        return data
