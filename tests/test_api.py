import pytest
from conftest import make_contest, make_game_score, owner_address

from squares.models import GameScoreSnapshot, LiveGameScore
from squares.utils.cache_utils import contest_cache_key, user_profile_cache_key
from squares.utils.errors import UpstreamError, UpstreamTimeout


def add_contest(reader, flask_app, **overrides):
    contest = make_contest(
        strategy_address=flask_app.config["QUARTERS_ONLY_STRATEGY_ADDRESS"], **overrides
    )
    reader.add(contest)
    return contest


def test_get_contest_includes_boxes_and_no_store_headers(client, reader, flask_app):
    add_contest(reader, flask_app)

    res = client.get("/api/contest/7")

    assert res.status_code == 200
    data = res.get_json()
    assert data["id"] == "7"
    assert len(data["boxes"]) == 100
    assert data["boxes"][23] == {"tokenId": 723, "owner": data["boxes"][23]["owner"], "row": 2, "col": 3}
    assert "no-store" in res.headers["Cache-Control"]
    assert res.headers["Pragma"] == "no-cache"


def test_contest_reads_are_cached(client, reader, flask_app, service):
    add_contest(reader, flask_app)

    client.get("/api/contest/7")
    client.get("/api/contest/7")

    assert reader.contest_reads == 1
    assert service.tiered.get(contest_cache_key(7, 8453)) is not None


def test_cached_payload_without_boxes_is_refetched(client, reader, flask_app, service):
    add_contest(reader, flask_app)
    service.tiered.set(contest_cache_key(7, 8453), {"id": "7", "title": "stale"})

    data = client.get("/api/contest/7").get_json()

    assert len(data["boxes"]) == 100
    assert reader.contest_reads == 1


def test_refresh_recomputes_contest(client, reader, flask_app):
    add_contest(reader, flask_app)
    client.get("/api/contest/7")

    add_contest(reader, flask_app, title="Renamed")
    assert client.get("/api/contest/7").get_json()["title"] == "Test contest"

    res = client.post("/api/contest/7/refresh")
    assert res.status_code == 200
    assert res.get_json()["title"] == "Renamed"
    assert reader.contest_reads == 2


def test_chain_failure_without_cache_is_503(client, reader):
    reader.error = UpstreamError("rpc down")
    res = client.get("/api/contest/99")
    assert res.status_code == 503
    assert "error" in res.get_json()


def test_list_contests(client, reader, flask_app):
    add_contest(reader, flask_app, contest_id=1)
    add_contest(reader, flask_app, contest_id=2)

    data = client.get("/api/contests").get_json()

    assert [c["id"] for c in data] == ["2", "1"]


def test_list_contests_reads_only_newest(client, reader, flask_app):
    for contest_id in (1, 2, 3):
        add_contest(reader, flask_app, contest_id=contest_id)
    flask_app.config["CONTESTS_LIST_LIMIT"] = 2

    data = client.get("/api/contests").get_json()

    assert reader.list_limit == 2
    assert [c["id"] for c in data] == ["3", "2"]


def test_contest_owners_grouped(client, reader, flask_app):
    add_contest(reader, flask_app)
    data = client.get("/api/contest/7/owners").get_json()
    assert len(data) == 100
    assert data[0]["count"] == 1


def test_winning_boxes_route(client, reader, feed, flask_app):
    add_contest(reader, flask_app)
    feed.scores[401] = make_game_score(q_complete=1, home_q1_last_digit=3, away_q1_last_digit=1)

    data = client.get("/api/contest/7/winning-boxes?page=1").get_json()

    assert data["finalized"] is False
    assert data["winningBoxes"][0]["boxPosition"] == 0
    assert data["winningBoxes"][0]["settlementLabel"] == "Q1"
    assert data["winningBoxes"][0]["amount"] == pytest.approx(147)


def test_payouts_route(client, reader, feed, flask_app):
    add_contest(reader, flask_app)
    feed.scores[401] = make_game_score()

    data = client.get("/api/contest/7/payouts").get_json()

    assert data["strategy"] == "quarters-only"
    assert data["quarters"]["q4"]["label"] == "Final (50%)"


def test_game_scores_route_and_snapshot(client, feed, flask_app):
    feed.scores[401] = make_game_score(q_complete=2, home_score=14, away_score=10)

    data = client.get("/api/games/401/scores").get_json()

    assert data["qComplete"] == 2
    assert data["requestInProgress"] is False
    assert GameScoreSnapshot.latest(401).home_score == 14


def test_game_scores_timeout_serves_snapshot(client, feed, service):
    service._save_snapshot(make_game_score(q_complete=3, home_score=24))
    feed.error = UpstreamTimeout("slow")

    data = client.get("/api/games/401/scores").get_json()

    assert data["qComplete"] == 3
    assert data["homeScore"] == 24
    assert data["requestInProgress"] is True


def test_game_scores_timeout_without_snapshot_is_empty(client, feed):
    feed.error = UpstreamTimeout("slow")

    data = client.get("/api/games/402/scores").get_json()

    assert data["qComplete"] == 0
    assert data["requestInProgress"] is True


def test_snapshot_never_moves_backwards(flask_app, service):
    service._save_snapshot(make_game_score(q_complete=3, home_score=24))
    service._save_snapshot(make_game_score(q_complete=1, home_score=7))
    assert GameScoreSnapshot.latest(401).q_complete == 3


def test_game_details_route(client, feed):
    feed.details[401] = {"gameId": "401", "venue": {"fullName": "Arrowhead"}}
    data = client.get("/api/games/401/details").get_json()
    assert data["venue"]["fullName"] == "Arrowhead"


def test_live_rankings(client, feed):
    feed.week = {
        "g1": LiveGameScore(game_id="g1", home_score=21, away_score=7, status="final", completed=True),
        "g2": LiveGameScore(game_id="g2", status="scheduled"),
    }
    body = {
        "gameIds": ["g1", "g2"],
        "picks": [
            {"tokenId": 1, "picks": [0, 1], "tiebreakerPoints": 40},
            {"tokenId": 2, "picks": [1, 1], "tiebreakerPoints": 60},
        ],
        "year": 2025,
        "seasonType": 2,
        "weekNumber": 1,
    }

    data = client.post("/api/contest/3/live-rankings", json=body).get_json()

    assert [p["tokenId"] for p in data["picks"]] == [2, 1]
    assert data["picks"][0]["liveCorrectPicks"] == 1
    assert data["picks"][0]["liveTotalScoredGames"] == 1
    assert len(data["gameScores"]) == 2


def test_live_rankings_requires_parameters(client):
    res = client.post("/api/contest/3/live-rankings", json={"gameIds": ["g1"], "picks": []})
    assert res.status_code == 400
    assert res.get_json() == {"error": "Missing required parameters"}


def test_unknown_route_is_json_404(client):
    res = client.get("/api/nope")
    assert res.status_code == 404
    assert "error" in res.get_json()


def test_box_wins_route(client, reader, feed, flask_app):
    add_contest(reader, flask_app)
    feed.scores[401] = make_game_score(q_complete=1, home_q1_last_digit=3, away_q1_last_digit=1)

    data = client.get("/api/contest/7/boxes/700/wins").get_json()

    assert data["quarters"] == [1]
    assert data["totalWinnings"] == pytest.approx(147)


def test_box_wins_rejects_foreign_token(client, reader, feed, flask_app):
    add_contest(reader, flask_app)
    feed.scores[401] = make_game_score()
    res = client.get("/api/contest/7/boxes/5/wins")
    assert res.status_code == 400


def test_foreign_chain_id_uses_configured_chain_keys(client, reader, flask_app, service):
    add_contest(reader, flask_app, title="Old")
    client.get("/api/contest/7?chainId=84532")

    assert service.tiered.get(contest_cache_key(7, 84532)) is None
    assert service.tiered.get(contest_cache_key(7, 8453))["title"] == "Old"

    add_contest(reader, flask_app, title="New")
    res = client.post("/api/contest/7/refresh", json={"chainId": 84532})

    assert res.status_code == 200
    assert res.get_json()["title"] == "New"
    assert service.tiered.get(contest_cache_key(7, 8453))["title"] == "New"
    assert service.tiered.get(contest_cache_key(7, 84532)) is None


def test_user_profile_lists_holdings_and_is_cached(client, reader, flask_app, service):
    add_contest(reader, flask_app, contest_id=1)
    add_contest(reader, flask_app, contest_id=2)
    address = owner_address(5)

    data = client.get(f"/api/user-profile/{address}").get_json()

    assert data["address"] == address
    assert data["contests"] == [
        {"contestId": 2, "tokenIds": [205], "count": 1},
        {"contestId": 1, "tokenIds": [105], "count": 1},
    ]
    assert data["totalBoxes"] == 2
    assert service.tiered.get(user_profile_cache_key(address)) == data


def test_user_profile_rejects_bad_address(client):
    assert client.get("/api/user-profile/not-an-address").status_code == 400
