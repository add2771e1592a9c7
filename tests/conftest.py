import os
import sys

import pytest

# Ensure the project root (containing the `squares` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from squares import create_app, db  # noqa: E402
from squares.models import BoxOwner, Contest, GameScore, ScoringPlay  # noqa: E402
from squares.services.contest_service import contest_service  # noqa: E402
from squares.utils.query_cache import QueryCache  # noqa: E402
from squares.utils.token_grid import contest_token_ids, to_grid  # noqa: E402

ROWS = [3, 7, 0, 1, 2, 4, 5, 6, 8, 9]
COLS = [1, 7, 0, 2, 3, 4, 5, 6, 8, 9]


def owner_address(box_position):
    return "0x" + f"{box_position + 1:040x}"


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeContestReader:
    """In-memory stand-in for the chain reader"""

    def __init__(self):
        self.contests = {}
        self.box_owners = {}
        self.contest_reads = 0
        self.list_limit = None
        self.error = None

    def add(self, contest, box_owners=None):
        self.contests[contest.id] = contest
        self.box_owners[contest.id] = (
            box_owners if box_owners is not None else make_box_owners(contest.id)
        )

    def get_contest(self, contest_id):
        if self.error:
            raise self.error
        self.contest_reads += 1
        return self.contests[int(contest_id)]

    def get_box_owners(self, contest_id):
        return list(self.box_owners[int(contest_id)])

    def list_contests(self, limit=None):
        self.list_limit = limit
        contests = sorted(self.contests.values(), key=lambda c: c.id, reverse=True)
        return contests[:limit] if limit else contests


class FakeScoreFeed:
    """In-memory stand-in for the score feed"""

    def __init__(self):
        self.scores = {}
        self.details = {}
        self.week = {}
        self.error = None
        self.calls = 0

    def fetch_game_score(self, game_id):
        self.calls += 1
        if self.error:
            raise self.error
        return self.scores[int(game_id)]

    def fetch_game_details(self, game_id):
        if self.error:
            raise self.error
        return self.details.get(int(game_id), {"gameId": str(game_id)})

    def fetch_week_scores(self, year, season_type, week):
        if self.error:
            raise self.error
        return dict(self.week)


def make_box_owners(contest_id, owner_fn=owner_address):
    owners = []
    for token_id in contest_token_ids(contest_id):
        position = to_grid(token_id, contest_id)
        owners.append(
            BoxOwner(
                token_id=token_id,
                owner=owner_fn(position.box_position),
                row=position.row,
                col=position.col,
            )
        )
    return owners


def make_contest(contest_id=7, game_id=401, strategy_address="", **overrides):
    values = dict(
        id=contest_id,
        game_id=game_id,
        rows=list(ROWS),
        cols=list(COLS),
        box_cost_currency="0x0000000000000000000000000000000000000000",
        box_cost_amount=10**16,
        boxes_can_be_claimed=False,
        boxes_claimed=100,
        random_values_set=True,
        total_rewards=1000,
        payout_strategy=strategy_address,
        title="Test contest",
    )
    values.update(overrides)
    return Contest(**values)


def make_game_score(game_id=401, **overrides):
    values = dict(
        game_id=game_id,
        home_team_abbreviation="KC",
        away_team_abbreviation="BUF",
    )
    values.update(overrides)
    return GameScore(**values)


def make_play(home, away, period=1):
    return ScoringPlay(home_score=home, away_score=away, period=period)


@pytest.fixture()
def flask_app():
    application = create_app("testing")
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def reader():
    return FakeContestReader()


@pytest.fixture()
def feed():
    return FakeScoreFeed()


@pytest.fixture()
def service(flask_app, reader, feed, clock):
    return contest_service.init_app(
        flask_app, reader=reader, feed=feed, query_cache=QueryCache(clock=clock)
    )


@pytest.fixture()
def client(flask_app, service):
    return flask_app.test_client()
