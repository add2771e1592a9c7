from functools import wraps

from flask import current_app, jsonify, request
from web3 import Web3

from squares import limiter
from squares.models import PickemEntry, group_box_owners
from squares.routes.api import bp
from squares.services.contest_service import contest_service
from squares.services.settlement import SettlementOrchestrator
from squares.utils.ranking import rank_entries


def no_store(f):
    """Contest and score data must never be cached by browsers or proxies"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = f(*args, **kwargs)
        if isinstance(response, tuple):
            response = current_app.make_response(response)
        if hasattr(response, "headers"):
            response.headers["Cache-Control"] = (
                "no-store, no-cache, must-revalidate, proxy-revalidate"
            )
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"
            response.headers["Surrogate-Control"] = "no-store"
        return response

    return decorated_function


def _chain_id():
    chain_id = request.args.get("chainId", type=int)
    if chain_id is None and request.is_json:
        body = request.get_json(silent=True) or {}
        if isinstance(body.get("chainId"), int):
            chain_id = body["chainId"]
    return chain_id


def _orchestrator():
    return SettlementOrchestrator.from_app(current_app, contest_service)


@bp.route("/contests")
@no_store
def list_contests():
    return jsonify(contest_service.list_contests(_chain_id()))


@bp.route("/contest/<int:contest_id>")
@no_store
def get_contest(contest_id):
    if request.args.get("forceRefresh") == "true":
        contest_service.force_refresh(contest_id, _chain_id())
    return jsonify(contest_service.get_contest_payload(contest_id, _chain_id()))


@bp.route("/contest/<int:contest_id>/refresh", methods=["POST"])
@limiter.limit("30 per minute")
@no_store
def refresh_contest(contest_id):
    """Drop cached state after a mutation and return the recomputed contest"""
    contest_service.force_refresh(contest_id, _chain_id())
    return jsonify(contest_service.get_contest_payload(contest_id, _chain_id()))


@bp.route("/contest/<int:contest_id>/owners")
@no_store
def contest_owners(contest_id):
    _, box_owners = contest_service.get_contest(contest_id, _chain_id())
    owners = group_box_owners(box_owners, current_app.config.get("CONTESTS_ADDRESS"))
    return jsonify(
        [
            {"address": owner["address"], "tokenIds": owner["token_ids"], "count": len(owner["token_ids"])}
            for owner in owners
        ]
    )


@bp.route("/contest/<int:contest_id>/winning-boxes")
@no_store
def contest_winning_boxes(contest_id):
    page = request.args.get("page", 1, type=int)
    return jsonify(_orchestrator().winning_boxes(contest_id, _chain_id(), page=page))


@bp.route("/contest/<int:contest_id>/boxes/<int:token_id>/wins")
@no_store
def contest_box_wins(contest_id, token_id):
    return jsonify(_orchestrator().box_winnings(contest_id, token_id, _chain_id()))


@bp.route("/contest/<int:contest_id>/payouts")
@no_store
def contest_payouts(contest_id):
    return jsonify(_orchestrator().payouts(contest_id, _chain_id()))


@bp.route("/winning-boxes")
@no_store
def recent_winning_boxes():
    page = request.args.get("page", 1, type=int)
    return jsonify(_orchestrator().recent_winning_boxes(_chain_id(), page=page))


@bp.route("/user-profile/<address>")
@no_store
def user_profile(address):
    if not Web3.is_address(address):
        return jsonify({"error": "Invalid address"}), 400
    return jsonify(contest_service.get_user_profile(address, _chain_id()))


@bp.route("/contest/<int:contest_id>/live-rankings", methods=["POST"])
@no_store
def live_rankings(contest_id):
    """Rank pick'em entries against the week's live scores"""
    data = request.get_json(silent=True) or {}
    required = ("gameIds", "picks", "year", "seasonType", "weekNumber")
    if any(not data.get(key) for key in required):
        return jsonify({"error": "Missing required parameters"}), 400

    try:
        entries = [PickemEntry.from_dict(pick) for pick in data["picks"]]
    except (AttributeError, TypeError, ValueError):
        return jsonify({"error": "Invalid picks"}), 400

    live_scores = contest_service.week_scores(
        data["year"], data["seasonType"], data["weekNumber"]
    )
    ranked = rank_entries(entries, data["gameIds"], live_scores)

    return jsonify(
        {
            "contestId": contest_id,
            "picks": [entry.to_dict() for entry in ranked],
            "gameScores": [score.to_dict() for score in live_scores.values()],
        }
    )


@bp.route("/games/<int:game_id>/scores")
@no_store
def game_scores(game_id):
    return jsonify(contest_service.get_game_score(game_id).to_api_dict())


@bp.route("/games/<int:game_id>/details")
@no_store
def game_details(game_id):
    return jsonify(contest_service.get_game_details(game_id))


@bp.route("/health")
@no_store
def health():
    return jsonify({"status": "ok", "cache": contest_service.tiered.stats()})
