import pytest
from conftest import make_box_owners, make_contest, make_game_score, make_play

from squares.models import ZERO_ADDRESS, BoxOwner, PayoutStrategy
from squares.services.settlement import (
    SettlementOrchestrator,
    box_winnings,
    build_winning_entries,
    paginate,
)
from squares.utils.errors import UpstreamError

CONTESTS_ADDRESS = "0x58500b8479a5a156710471acb246d2efee54d52a"


def final_game(**overrides):
    # Q1 -> (0,0), Q2 -> (1,1), Q3 -> (0,0), Final -> (2,2)
    values = dict(
        q_complete=4,
        home_q1_last_digit=3,
        away_q1_last_digit=1,
        home_q2_last_digit=7,
        away_q2_last_digit=7,
        home_q3_last_digit=3,
        away_q3_last_digit=1,
        home_f_last_digit=0,
        away_f_last_digit=0,
        home_score=20,
        away_score=30,
    )
    values.update(overrides)
    return make_game_score(**values)


def test_quarters_only_accumulates_per_box_latest_first():
    contest = make_contest()
    entries = build_winning_entries(
        contest, make_box_owners(7), final_game(), PayoutStrategy.QUARTERS_ONLY
    )

    assert [(e.box_position, e.settlement_label) for e in entries] == [
        (22, "Final"),
        (0, "Q1, Q3"),
        (11, "Q2"),
    ]
    assert [e.total_amount for e in entries] == pytest.approx([490, 294, 196])
    assert entries[1].token_id == 700
    assert entries[0].matchup == "BUF @ KC"


def test_score_changes_include_scoring_plays():
    contest = make_contest()
    game_score = final_game(
        scoring_plays=[make_play(3, 1, period=1), make_play(3, 8, period=2)]
    )
    entries = build_winning_entries(
        contest, make_box_owners(7), game_score, PayoutStrategy.SCORE_CHANGES
    )
    by_position = {e.box_position: e for e in entries}

    # net 980: quarters pool 490, two plays share 490
    assert by_position[0].settlement_label == "Q1, Q3, Score Change #1"
    assert by_position[0].total_amount == pytest.approx(73.5 + 73.5 + 245)
    assert by_position[8].settlement_label == "Score Change #2"
    assert by_position[8].total_amount == pytest.approx(245)


def test_unpaid_boxes_are_skipped():
    contest = make_contest()
    owners = make_box_owners(7)
    owners[22] = BoxOwner(token_id=722, owner=ZERO_ADDRESS, row=2, col=2)
    owners[11] = BoxOwner(token_id=711, owner=CONTESTS_ADDRESS.upper(), row=1, col=1)
    owners.append(BoxOwner(token_id=5, owner="0xabc"))

    entries = build_winning_entries(
        contest,
        owners,
        final_game(),
        PayoutStrategy.QUARTERS_ONLY,
        contract_address=CONTESTS_ADDRESS,
    )
    assert [e.box_position for e in entries] == [0]


def test_unknown_strategy_lists_winners_without_amounts():
    entries = build_winning_entries(
        make_contest(), make_box_owners(7), final_game(), PayoutStrategy.UNKNOWN
    )
    assert len(entries) == 3
    assert all(e.total_amount is None for e in entries)
    assert entries[0].to_dict()["amount"] is None


def test_zero_rewards_produce_no_entries():
    entries = build_winning_entries(
        make_contest(total_rewards=0), make_box_owners(7), final_game(), PayoutStrategy.QUARTERS_ONLY
    )
    assert entries == []


def test_no_entries_before_randomness_or_kickoff():
    assert build_winning_entries(
        make_contest(random_values_set=False), make_box_owners(7), final_game(), PayoutStrategy.QUARTERS_ONLY
    ) == []
    assert build_winning_entries(
        make_contest(), make_box_owners(7), None, PayoutStrategy.QUARTERS_ONLY
    ) == []


def test_paginate():
    items = list(range(25))
    page, pagination = paginate(items, page=3, page_size=10)
    assert page == [20, 21, 22, 23, 24]
    assert pagination == {"page": 3, "pageSize": 10, "total": 25, "totalPages": 3}

    page, pagination = paginate(items, page=0, page_size=10)
    assert page[0] == 0 and pagination["page"] == 1
    assert paginate(items, page=9, page_size=10)[0] == []


def test_orchestrator_winning_boxes(service, reader, feed, flask_app):
    reader.add(make_contest(strategy_address=flask_app.config["QUARTERS_ONLY_STRATEGY_ADDRESS"]))
    feed.scores[401] = final_game()
    feed.details[401] = {"gameId": "401", "date": "2025-09-07T17:00Z"}

    result = SettlementOrchestrator.from_app(flask_app, service).winning_boxes(7, page=1)

    assert result["status"] == "ok"
    assert result["finalized"] is True
    assert result["strategy"] == "quarters-only"
    assert result["pagination"]["total"] == 3
    assert result["winningBoxes"][0]["settlementLabel"] == "Final"
    assert result["winningBoxes"][0]["gameDate"] == "2025-09-07T17:00Z"


def test_orchestrator_unknown_strategy_is_pending(service, reader, feed, flask_app):
    reader.add(make_contest(strategy_address="0x000000000000000000000000000000000000dead"))
    feed.scores[401] = final_game()

    orchestrator = SettlementOrchestrator.from_app(flask_app, service)
    assert orchestrator.winning_boxes(7)["status"] == "pending"
    assert orchestrator.payouts(7) == {
        "contestId": 7,
        "strategy": "unknown",
        "displayName": "Legacy Strategy",
        "status": "pending",
    }


def test_orchestrator_payouts_counts_scoring_plays(service, reader, feed, flask_app):
    reader.add(make_contest(strategy_address=flask_app.config["SCORE_CHANGES_STRATEGY_ADDRESS"]))
    feed.scores[401] = final_game(scoring_plays=[make_play(7, 0), make_play(7, 7)])

    payouts = SettlementOrchestrator.from_app(flask_app, service).payouts(7)

    assert payouts["status"] == "ok"
    assert payouts["scoreChanges"]["count"] == 2
    assert payouts["scoreChanges"]["perScoreChange"] == pytest.approx(245)
    assert payouts["rewardsPaid"] == [False, False, False, False]


def test_recent_winning_boxes_skips_failing_contests(service, reader, feed, flask_app):
    strategy = flask_app.config["QUARTERS_ONLY_STRATEGY_ADDRESS"]
    reader.add(make_contest(contest_id=1, game_id=401, strategy_address=strategy))
    reader.add(make_contest(contest_id=2, game_id=402, strategy_address=strategy))
    reader.add(make_contest(contest_id=3, game_id=403, random_values_set=False))
    feed.scores[401] = final_game(game_id=401)
    feed.details[401] = {"date": "2025-09-07T17:00Z"}
    feed.details[402] = {"date": "2025-09-14T17:00Z"}

    class FlakyFeed(type(feed)):
        def fetch_game_score(self, game_id):
            if int(game_id) == 402:
                raise UpstreamError("feed down")
            return super().fetch_game_score(game_id)

    flaky = FlakyFeed()
    flaky.scores, flaky.details = feed.scores, feed.details
    service.feed = flaky

    result = SettlementOrchestrator.from_app(flask_app, service).recent_winning_boxes()

    assert result["pagination"]["total"] == 3
    assert {box["contestId"] for box in result["winningBoxes"]} == {1}


def test_box_winnings_totals_quarters():
    result = box_winnings(make_contest(), final_game(), 700, PayoutStrategy.QUARTERS_ONLY)

    assert result["boxPosition"] == 0
    assert result["quarters"] == [1, 3]
    assert result["scoringPlays"] == []
    assert result["totalWinnings"] == pytest.approx(294)


def test_box_winnings_unknown_strategy_has_no_total():
    result = box_winnings(make_contest(), final_game(), 722, PayoutStrategy.UNKNOWN)
    assert result["quarters"] == [4]
    assert result["totalWinnings"] is None
