import logging
import time
from functools import wraps

import requests

from squares.models.game_score import FINAL_QUARTER, GameScore, ScoringPlay
from squares.models.pickem import LiveGameScore
from squares.utils.digits import last_digit
from squares.utils.errors import UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)

QUARTER_END_STATUSES = {"STATUS_END_PERIOD", "STATUS_HALFTIME"}


def rate_limit_decorator(max_retries=3, base_delay=1.0, backoff_factor=2.0):
    """
    Decorator to handle API rate limiting with exponential backoff

    Timeouts are not retried here: the caller keeps its last good snapshot
    and the next poll tries again.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return func(self, *args, **kwargs)

                except UpstreamTimeout:
                    raise

                except requests.exceptions.HTTPError as e:
                    status_code = e.response.status_code if e.response is not None else 0
                    if status_code != 429 and status_code < 500:
                        raise UpstreamError(f"HTTP error {status_code}") from e
                    delay = base_delay * (backoff_factor**attempt)
                    if status_code == 429 and e.response is not None:
                        delay = float(e.response.headers.get("Retry-After", delay))
                    logger.warning(
                        f"Upstream returned {status_code}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )
                    if attempt < max_retries - 1:
                        time.sleep(delay)

                except requests.exceptions.RequestException as e:
                    delay = base_delay * (backoff_factor**attempt)
                    logger.warning(
                        f"Request failed: {e}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                    )
                    if attempt < max_retries - 1:
                        time.sleep(delay)
                    else:
                        raise UpstreamError(str(e)) from e

            raise UpstreamError(f"Max retries ({max_retries}) exceeded")

        return wrapper

    return decorator


def _to_int(value):
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def normalize_status(name):
    """``STATUS_IN_PROGRESS`` -> ``in_progress``; missing -> ``scheduled``"""
    if not name:
        return "scheduled"
    name = str(name)
    if name.startswith("STATUS_"):
        name = name[len("STATUS_"):]
    return name.lower()


def quarters_complete(status):
    status_type = status.get("type") or {}
    if status_type.get("completed"):
        return FINAL_QUARTER

    period = _to_int(status.get("period"))
    if status_type.get("state") == "pre" or period <= 0:
        return 0

    done = period if status_type.get("name") in QUARTER_END_STATUSES else period - 1
    # Overtime folds into the final, which only settles on completion
    return max(0, min(done, FINAL_QUARTER - 1))


def _linescore_values(competitor):
    values = []
    for line in competitor.get("linescores") or []:
        if not isinstance(line, dict):
            continue
        values.append(_to_int(line.get("value", line.get("displayValue"))))
    return values


def _quarter_end_scores(competitor):
    """Cumulative score at the end of Q1, Q2, Q3 and the final score"""
    lines = _linescore_values(competitor)
    cumulative = []
    running = 0
    for quarter in range(3):
        running += lines[quarter] if quarter < len(lines) else 0
        cumulative.append(running)
    cumulative.append(_to_int(competitor.get("score")))
    return cumulative


def _team_info(team):
    if not isinstance(team, dict):
        return None
    info = {
        key: team.get(key)
        for key in ("id", "abbreviation", "displayName", "logo")
        if team.get(key) is not None
    }
    if not info.get("logo") and team.get("logos"):
        info["logo"] = (team["logos"][0] or {}).get("href")
    return info or None


def _split_competitors(competition):
    home = away = None
    for competitor in competition.get("competitors") or []:
        if not isinstance(competitor, dict):
            continue
        if competitor.get("homeAway") == "home":
            home = competitor
        elif competitor.get("homeAway") == "away":
            away = competitor
    return home, away


def normalize_scoring_plays(plays):
    normalized = []
    for play in plays or []:
        if not isinstance(play, dict):
            continue
        if play.get("homeScore") is None or play.get("awayScore") is None:
            continue
        period = play.get("period")
        if isinstance(period, dict):
            period = period.get("number")
        normalized.append(
            ScoringPlay(
                home_score=_to_int(play.get("homeScore")),
                away_score=_to_int(play.get("awayScore")),
                period=_to_int(period),
                description=play.get("text") or "",
                team=_team_info(play.get("team")),
            )
        )
    return normalized


def normalize_game_score(game_id, payload):
    """Map an ESPN game summary payload to a ``GameScore``.

    Unknown or malformed fields are dropped; a payload without competitors
    yields an empty snapshot.
    """
    header = payload.get("header") or {}
    competitions = header.get("competitions") or payload.get("competitions") or [{}]
    competition = competitions[0] if competitions else {}
    home, away = _split_competitors(competition)

    if not home or not away:
        return GameScore.empty(game_id)

    status = competition.get("status") or {}
    home_ends = _quarter_end_scores(home)
    away_ends = _quarter_end_scores(away)
    home_team = home.get("team") or {}
    away_team = away.get("team") or {}

    return GameScore(
        game_id=int(game_id),
        home_q1_last_digit=last_digit(home_ends[0]),
        home_q2_last_digit=last_digit(home_ends[1]),
        home_q3_last_digit=last_digit(home_ends[2]),
        home_f_last_digit=last_digit(home_ends[3]),
        away_q1_last_digit=last_digit(away_ends[0]),
        away_q2_last_digit=last_digit(away_ends[1]),
        away_q3_last_digit=last_digit(away_ends[2]),
        away_f_last_digit=last_digit(away_ends[3]),
        q_complete=quarters_complete(status),
        home_score=home_ends[3],
        away_score=away_ends[3],
        status=normalize_status((status.get("type") or {}).get("name")),
        home_team_name=home_team.get("displayName") or "",
        away_team_name=away_team.get("displayName") or "",
        home_team_abbreviation=home_team.get("abbreviation") or "",
        away_team_abbreviation=away_team.get("abbreviation") or "",
        scoring_plays=normalize_scoring_plays(payload.get("scoringPlays")),
    )


def normalize_game_details(game_id, payload):
    """Keep the handful of game detail fields the app displays"""
    header = payload.get("header") or {}
    competition = (header.get("competitions") or [{}])[0]
    game_info = payload.get("gameInfo") or {}
    details = {"gameId": str(game_id)}

    if competition.get("date"):
        details["date"] = competition["date"]

    venue = game_info.get("venue") or {}
    if venue.get("fullName"):
        details["venue"] = {"fullName": venue["fullName"]}
        address = venue.get("address") or {}
        if address.get("city"):
            details["venue"]["address"] = {
                "city": address.get("city"),
                "state": address.get("state", ""),
            }

    weather = game_info.get("weather") or {}
    if weather.get("displayValue"):
        details["weather"] = {
            "displayValue": weather["displayValue"],
            "temperature": _to_int(weather.get("temperature")),
        }

    broadcasts = []
    for broadcast in competition.get("broadcasts") or payload.get("broadcasts") or []:
        if not isinstance(broadcast, dict):
            continue
        media = broadcast.get("media") or {}
        name = media.get("shortName") or broadcast.get("shortName")
        if name:
            broadcasts.append(name)
    if broadcasts:
        details["broadcasts"] = broadcasts

    home, away = _split_competitors(competition)
    if home and away:
        details["homeTeam"] = _team_info(home.get("team"))
        details["awayTeam"] = _team_info(away.get("team"))

    return details


def normalize_week_scores(payload):
    """Map an ESPN scoreboard payload to ``{game_id: LiveGameScore}``"""
    scores = {}
    for event in payload.get("events") or []:
        competitions = event.get("competitions") or []
        if not competitions or event.get("id") is None:
            continue

        competition = competitions[0]
        home, away = _split_competitors(competition)
        if not home or not away:
            continue

        status_type = (competition.get("status") or {}).get("type") or {}
        game_id = str(event["id"])
        scores[game_id] = LiveGameScore(
            game_id=game_id,
            home_score=_to_int(home.get("score")),
            away_score=_to_int(away.get("score")),
            completed=bool(status_type.get("completed")),
            status=normalize_status(status_type.get("name")),
        )
    return scores


class ScoreFeed:
    """
    Reads game scores and details from the ESPN site API with rate limiting
    """

    def __init__(self, api_base_url=None, timeout=10):
        self.api_base_url = (
            api_base_url or "https://site.api.espn.com/apis/site/v2/sports/football/nfl"
        )
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "Squares-Settlement/1.0"})

        # Rate limiting configuration
        self.request_count = 0
        self.last_request_time = 0
        self.min_request_interval = 0.5  # Minimum 500ms between requests
        self.max_requests_per_minute = 60
        self.request_timestamps = []

    @classmethod
    def from_config(cls, config):
        return cls(
            api_base_url=config.get("SCORES_API_BASE_URL"),
            timeout=config.get("UPSTREAM_TIMEOUT", 10),
        )

    def _enforce_rate_limit(self):
        """Enforce rate limiting before making requests"""
        current_time = time.time()

        # Remove timestamps older than 1 minute
        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        if len(self.request_timestamps) >= self.max_requests_per_minute:
            sleep_time = 60 - (current_time - self.request_timestamps[0])
            if sleep_time > 0:
                logger.info(f"Rate limit reached. Sleeping for {sleep_time:.1f}s")
                time.sleep(sleep_time)
                self.request_timestamps = []

        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_request_interval:
            time.sleep(self.min_request_interval - time_since_last)

        self.last_request_time = time.time()
        self.request_timestamps.append(self.last_request_time)
        self.request_count += 1

    @rate_limit_decorator(max_retries=3, base_delay=2.0)
    def _make_api_request(self, path, params=None):
        """GET ``path`` under the API base URL and return the decoded JSON"""
        self._enforce_rate_limit()
        url = f"{self.api_base_url}/{path}"

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.warning(f"Request timeout for {url}")
            raise UpstreamTimeout(f"Timed out after {self.timeout}s: {url}") from e

        response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON from {url}") from e

    def fetch_game_score(self, game_id):
        payload = self._make_api_request("summary", params={"event": game_id})
        return normalize_game_score(game_id, payload)

    def fetch_game_details(self, game_id):
        payload = self._make_api_request("summary", params={"event": game_id})
        return normalize_game_details(game_id, payload)

    def fetch_week_scores(self, year, season_type, week):
        payload = self._make_api_request(
            "scoreboard",
            params={"dates": year, "seasontype": season_type, "week": week},
        )
        return normalize_week_scores(payload)
