"""
Contest and game score reads behind the two-tier cache

Contest state comes from the chain, game scores from the score feed. Contest
payloads go through both cache tiers; game scores stay in the per-process
query cache and fall back to the last stored snapshot when the feed stalls.
"""

from sqlalchemy.exc import SQLAlchemyError

from squares import cache, db
from squares.models import BoxOwner, Contest, GameScore, GameScoreSnapshot
from squares.utils.cache_utils import (
    TieredCache,
    build_cache_store,
    contest_cache_key,
    contests_list_cache_key,
    game_details_cache_key,
    user_profile_cache_key,
)
from squares.utils.chain_reader import ContestReader
from squares.utils.data_sync import ScoreFeed
from squares.utils.errors import UpstreamError, UpstreamTimeout
from squares.utils.logging_config import ContextualLogger, get_logger
from squares.utils.payouts import resolve_strategy
from squares.utils.performance import PerformanceMonitor
from squares.utils.polling import contest_poll_interval, game_scores_poll_interval
from squares.utils.query_cache import QueryCache, query_keys

logger = get_logger(__name__)

DEFAULT_CONTESTS_LIST_LIMIT = 20


def has_boxes(payload):
    """Cached contest payloads written before boxes were stored count as misses"""
    return isinstance(payload, dict) and bool(payload.get("boxes"))


class ContestService:
    def __init__(self):
        self.app = None
        self.reader = None
        self.feed = None
        self.tiered = TieredCache()
        self.chain_id = None
        self.watcher = None

    @property
    def query_cache(self):
        return self.tiered.query_cache

    def init_app(self, app, reader=None, feed=None, query_cache=None):
        self.app = app
        self.watcher = None
        self.chain_id = app.config["CHAIN_ID"]
        self.reader = reader or ContestReader.from_config(app.config)
        self.feed = feed or ScoreFeed.from_config(app.config)
        self.tiered = TieredCache(
            store=build_cache_store(app, cache),
            query_cache=query_cache or QueryCache(),
            ttls={
                "contest": app.config.get("CONTEST_CACHE_TTL"),
                "contestsList": app.config.get("CONTESTS_LIST_CACHE_TTL"),
                "gameDetails": app.config.get("GAME_DETAILS_CACHE_TTL"),
                "userProfile": app.config.get("USER_PROFILE_CACHE_TTL"),
            },
        )

        contest_interval = app.config.get("CONTEST_POLL_INTERVAL")
        scores_interval = app.config.get("GAME_SCORES_POLL_INTERVAL")
        fast_interval = app.config.get("GAME_SCORES_FAST_POLL_INTERVAL")

        self.query_cache.register_interval(
            "contest",
            lambda payload: contest_poll_interval(
                Contest.from_dict(payload) if payload else None, contest_interval
            ),
        )
        self.query_cache.register_interval(
            "gameScores",
            lambda game_score: game_scores_poll_interval(
                game_score, scores_interval, fast_interval
            ),
        )

        app.extensions["contest_service"] = self
        return self

    def _resolve_chain(self, chain_id):
        """The reader only talks to the configured chain, so cache keys always use it"""
        if chain_id is not None and int(chain_id) != self.chain_id:
            logger.warning(f"Ignoring requested chain {chain_id}, serving chain {self.chain_id}")
        return self.chain_id

    # Contests

    def _load_contest_payload(self, contest_id):
        with PerformanceMonitor(f"chain read contest {contest_id}", log_threshold=1.0):
            contest = self.reader.get_contest(contest_id)
            box_owners = self.reader.get_box_owners(contest_id)

        payload = contest.to_dict()
        payload["boxes"] = [box.to_dict() for box in box_owners]
        return payload

    def get_contest_payload(self, contest_id, chain_id=None):
        """Contest with its boxes, in the shape the HTTP API serves.

        A contest that is still active is handed to the watcher so it keeps
        being polled.
        """
        chain_id = self._resolve_chain(chain_id)
        payload = self.tiered.read(
            query_keys.contest(chain_id, contest_id),
            contest_cache_key(contest_id, chain_id),
            lambda: self._load_contest_payload(contest_id),
            ttl=self.tiered.ttls["contest"],
            stale_time=self.app.config.get("CONTEST_STALE_TIME", 15),
            is_valid=has_boxes,
        )
        if self.watcher is not None and self.contest_poll_interval(contest_id, chain_id, payload):
            self.watcher.watch_contest(contest_id, chain_id)
        return payload

    def get_contest(self, contest_id, chain_id=None):
        """Returns ``(Contest, [BoxOwner])``"""
        payload = self.get_contest_payload(contest_id, chain_id)
        box_owners = [BoxOwner.from_dict(box) for box in payload.get("boxes") or []]
        return Contest.from_dict(payload), box_owners

    def list_contests(self, chain_id=None):
        """Newest contests first, at most ``CONTESTS_LIST_LIMIT`` of them"""
        chain_id = self._resolve_chain(chain_id)
        limit = self.app.config.get("CONTESTS_LIST_LIMIT", DEFAULT_CONTESTS_LIST_LIMIT)

        def load():
            with PerformanceMonitor("chain read contests list", log_threshold=1.0):
                return [contest.to_dict() for contest in self.reader.list_contests(limit)]

        return self.tiered.read(
            query_keys.boxes_contests(chain_id),
            contests_list_cache_key(chain_id),
            load,
            ttl=self.tiered.ttls["contestsList"],
            stale_time=self.app.config.get("CONTEST_STALE_TIME", 15),
        )

    def force_refresh(self, contest_id, chain_id=None):
        chain_id = self._resolve_chain(chain_id)
        self.tiered.force_refresh(contest_id, chain_id)
        ContextualLogger(__name__, {"contest": contest_id, "chain": chain_id}).info(
            "Forced contest refresh"
        )

    def get_user_profile(self, address, chain_id=None):
        """Boxes an address holds across the listed contests"""
        address = address.lower()

        def load():
            holdings = []
            for payload in self.list_contests(chain_id):
                _, box_owners = self.get_contest(int(payload["id"]), chain_id)
                token_ids = [box.token_id for box in box_owners if box.owner.lower() == address]
                if token_ids:
                    holdings.append(
                        {"contestId": int(payload["id"]), "tokenIds": token_ids, "count": len(token_ids)}
                    )
            return {
                "address": address,
                "contests": holdings,
                "totalBoxes": sum(holding["count"] for holding in holdings),
            }

        return self.tiered.get_or_load(
            user_profile_cache_key(address), load, ttl=self.tiered.ttls["userProfile"]
        )

    def strategy_for(self, contest):
        return resolve_strategy(
            contest.payout_strategy,
            self.app.config.get("QUARTERS_ONLY_STRATEGY_ADDRESS"),
            self.app.config.get("SCORE_CHANGES_STRATEGY_ADDRESS"),
        )

    # Games

    def get_game_details(self, game_id):
        return self.tiered.read(
            query_keys.game_details(game_id),
            game_details_cache_key(game_id),
            lambda: self.feed.fetch_game_details(game_id),
            ttl=self.tiered.ttls["gameDetails"],
            stale_time=self.tiered.ttls["gameDetails"],
        )

    def _fetch_game_score(self, game_id):
        with PerformanceMonitor(f"score feed game {game_id}", log_threshold=1.0):
            game_score = self.feed.fetch_game_score(game_id)
        self._save_snapshot(game_score)
        return game_score

    def _save_snapshot(self, game_score):
        try:
            GameScoreSnapshot.save(game_score)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning(f"Could not store score snapshot for game {game_score.game_id}: {e}")

    def _last_snapshot(self, game_id):
        try:
            return GameScoreSnapshot.latest(game_id)
        except SQLAlchemyError as e:
            logger.warning(f"Could not read score snapshot for game {game_id}: {e}")
            return None

    def get_game_score(self, game_id):
        """Current score for a game, never older than the last good snapshot.

        While a feed request is timing out the result carries
        ``request_in_progress=True`` so pollers switch to the fast interval.
        A game that is not final is handed to the watcher.
        """
        game_score = self._read_game_score(game_id)
        if self.watcher is not None and self.game_scores_poll_interval(game_id, game_score):
            self.watcher.watch_game(game_id)
        return game_score

    def _read_game_score(self, game_id):
        key = query_keys.game_scores(game_id)
        try:
            game_score = self.query_cache.fetch(
                key,
                lambda: self._fetch_game_score(game_id),
                stale_time=self.app.config.get("GAME_SCORES_STALE_TIME", 5),
            )
        except UpstreamTimeout:
            snapshot = self._last_snapshot(game_id)
            logger.warning(
                f"Score feed timed out for game {game_id}, "
                f"serving {'stored snapshot' if snapshot else 'empty score'}"
            )
            return (snapshot or GameScore.empty(game_id)).with_request_in_progress(True)
        except UpstreamError:
            snapshot = self._last_snapshot(game_id)
            if snapshot is None:
                raise
            return snapshot

        entry = self.query_cache.get_entry(key)
        if entry is not None and entry.fetch_in_progress:
            return game_score.with_request_in_progress(True)
        return game_score

    def game_scores_poll_interval(self, game_id, game_score=None):
        return self.query_cache.poll_interval(query_keys.game_scores(game_id), game_score)

    def contest_poll_interval(self, contest_id, chain_id=None, payload=None):
        chain_id = self._resolve_chain(chain_id)
        return self.query_cache.poll_interval(query_keys.contest(chain_id, contest_id), payload)

    def week_scores(self, year, season_type, week):
        return self.feed.fetch_week_scores(year, season_type, week)


contest_service = ContestService()
