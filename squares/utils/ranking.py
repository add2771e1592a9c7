"""
Live ranking for pick'em contests

Entries are ordered by correct picks (most first); ties are broken by
how close the tiebreaker guess is to 50 points. Entries equal on both keys
keep their input order.
"""

from squares.models.pickem import RankedEntry

TIEBREAKER_REFERENCE_POINTS = 50


def count_correct_picks(entry, game_ids, live_scores):
    """
    Count correct picks for an entry against live scores.

    Only games that have started and have a strict (non-tied) leader count
    toward correct picks.

    Returns:
        (correct_picks, total_scored_games)
    """
    correct_picks = 0
    total_scored_games = 0

    for game_index, pick in enumerate(entry.picks):
        if game_index >= len(game_ids):
            break

        live_score = live_scores.get(str(game_ids[game_index]))
        if live_score is None or not live_score.has_started:
            continue

        total_scored_games += 1
        winner = live_score.winner
        if winner is not None and pick == winner:
            correct_picks += 1

    return correct_picks, total_scored_games


def tiebreaker_distance(entry):
    return abs(entry.tiebreaker_points - TIEBREAKER_REFERENCE_POINTS)


def rank_entries(entries, game_ids, live_scores):
    """Score and order pick'em entries, assigning 1-based ranks"""
    ranked = []
    for entry in entries:
        correct, scored = count_correct_picks(entry, game_ids, live_scores)
        ranked.append(RankedEntry(entry=entry, correct_picks=correct, total_scored_games=scored))

    ranked.sort(key=lambda r: (-r.correct_picks, tiebreaker_distance(r.entry)))

    for position, ranked_entry in enumerate(ranked, start=1):
        ranked_entry.rank = position

    return ranked
