"""
Grid attribution for squares contests

Decides which grid cell wins each settlement event. A cell wins when its
row digit matches the home team's last digit and its column digit matches
the away team's last digit.
"""

from squares.models.contest import PayoutStrategy
from squares.models.game_score import FINAL_QUARTER
from squares.models.settlement import QUARTER, SettlementEvent
from squares.utils.digits import score_digits
from squares.utils.token_grid import cell_to_box_position


def find_cell(contest, home_digit, away_digit):
    """Return ``(row, col)`` whose digits match, or None.

    Rows and columns are scanned in index order and the first match wins,
    so a grid with duplicate digits still resolves deterministically.
    """
    if not contest.random_values_set:
        return None

    row = next((i for i, digit in enumerate(contest.rows) if digit == home_digit), None)
    col = next((i for i, digit in enumerate(contest.cols) if digit == away_digit), None)

    if row is None or col is None:
        return None
    return row, col


def find_box_position(contest, home_digit, away_digit):
    cell = find_cell(contest, home_digit, away_digit)
    if cell is None:
        return None
    return cell_to_box_position(*cell)


def winning_cell_for_quarter(contest, game_score, quarter):
    """Winning cell at the end of ``quarter`` (4 = final), or None if not final yet"""
    if not contest.random_values_set or game_score is None:
        return None
    if quarter < 1 or quarter > FINAL_QUARTER or quarter > game_score.q_complete:
        return None

    home_digit, away_digit = game_score.quarter_digits(quarter)
    return find_cell(contest, home_digit, away_digit)


def winning_cell_for_scoring_play(contest, play):
    home_digit, away_digit = score_digits(play.home_score, play.away_score)
    return find_cell(contest, home_digit, away_digit)


def settlement_events(contest, game_score, strategy):
    """Yield ``(event, (row, col))`` for every settled event of a contest.

    Quarter ends are evaluated for every strategy; scoring plays only count
    under SCORE_CHANGES. Events with no matching cell are skipped. Several
    events may yield the same cell.
    """
    if game_score is None or not contest.random_values_set:
        return

    for quarter in range(1, FINAL_QUARTER + 1):
        cell = winning_cell_for_quarter(contest, game_score, quarter)
        if cell is not None:
            yield SettlementEvent.quarter(quarter), cell

    if strategy != PayoutStrategy.SCORE_CHANGES:
        return

    for index, play in enumerate(game_score.scoring_plays, start=1):
        cell = winning_cell_for_scoring_play(contest, play)
        if cell is not None:
            yield SettlementEvent.score_change(index, play.period), cell


def box_wins(contest, game_score, row, col, strategy):
    """Quarters and 1-based scoring-play indices won by the box at ``(row, col)``"""
    quarters = []
    scoring_plays = []
    for event, cell in settlement_events(contest, game_score, strategy):
        if cell != (row, col):
            continue
        if event.kind == QUARTER:
            quarters.append(event.index)
        else:
            scoring_plays.append(event.index)
    return {"quarters": quarters, "scoring_plays": scoring_plays}
