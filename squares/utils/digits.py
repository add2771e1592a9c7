def last_digit(score):
    """Return the last decimal digit of a score (``score mod 10``)."""
    return int(score) % 10


def score_digits(home_score, away_score):
    """Return the ``(home, away)`` last-digit pair for a running score."""
    return last_digit(home_score or 0), last_digit(away_score or 0)
