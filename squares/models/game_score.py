from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone

from squares import db

FINAL_QUARTER = 4


@dataclass
class ScoringPlay:
    """Cumulative score right after one scoring play"""

    home_score: int
    away_score: int
    period: int = 0
    description: str = ""
    team: dict = None

    @classmethod
    def from_dict(cls, data):
        return cls(
            home_score=int(data.get("homeScore") or 0),
            away_score=int(data.get("awayScore") or 0),
            period=int(data.get("period") or 0),
            description=data.get("description") or "",
            team=data.get("team"),
        )

    def to_dict(self):
        return {
            "homeScore": self.home_score,
            "awayScore": self.away_score,
            "period": self.period,
            "description": self.description,
            "team": self.team,
        }


@dataclass
class GameScore:
    """Snapshot of one sporting event's running score.

    Quarter digits are always stored as ``score mod 10`` of the cumulative
    score at that quarter's end; ``q_complete`` counts finished quarters
    (4 means the game is final).
    """

    game_id: int
    home_q1_last_digit: int = 0
    home_q2_last_digit: int = 0
    home_q3_last_digit: int = 0
    home_f_last_digit: int = 0
    away_q1_last_digit: int = 0
    away_q2_last_digit: int = 0
    away_q3_last_digit: int = 0
    away_f_last_digit: int = 0
    q_complete: int = 0
    request_in_progress: bool = False
    home_score: int = 0
    away_score: int = 0
    status: str = "scheduled"
    home_team_name: str = ""
    away_team_name: str = ""
    home_team_abbreviation: str = ""
    away_team_abbreviation: str = ""
    scoring_plays: list = field(default_factory=list)

    @classmethod
    def empty(cls, game_id, request_in_progress=False):
        return cls(game_id=int(game_id), request_in_progress=request_in_progress)

    @property
    def is_final(self):
        return self.q_complete >= FINAL_QUARTER

    def quarter_digits(self, quarter):
        """``(home, away)`` last digits at the end of ``quarter`` (4 = final)"""
        if quarter == 1:
            return self.home_q1_last_digit, self.away_q1_last_digit
        if quarter == 2:
            return self.home_q2_last_digit, self.away_q2_last_digit
        if quarter == 3:
            return self.home_q3_last_digit, self.away_q3_last_digit
        if quarter == FINAL_QUARTER:
            return self.home_f_last_digit, self.away_f_last_digit
        raise ValueError(f"Invalid quarter: {quarter}")

    def matchup_label(self):
        home = self.home_team_abbreviation or self.home_team_name or "Home"
        away = self.away_team_abbreviation or self.away_team_name or "Away"
        return f"{away} @ {home}"

    def with_request_in_progress(self, in_progress=True):
        return replace(self, request_in_progress=in_progress)

    @classmethod
    def from_dict(cls, data):
        values = {
            key: data[key]
            for key in cls.__dataclass_fields__
            if key in data and key != "scoring_plays"
        }
        values["scoring_plays"] = [
            ScoringPlay.from_dict(play) if isinstance(play, dict) else play
            for play in data.get("scoring_plays") or []
        ]
        return cls(**values)

    def to_dict(self):
        data = asdict(self)
        data["scoring_plays"] = [play.to_dict() for play in self.scoring_plays]
        return data

    def to_api_dict(self):
        return {
            "id": self.game_id,
            "homeQ1LastDigit": self.home_q1_last_digit,
            "homeQ2LastDigit": self.home_q2_last_digit,
            "homeQ3LastDigit": self.home_q3_last_digit,
            "homeFLastDigit": self.home_f_last_digit,
            "awayQ1LastDigit": self.away_q1_last_digit,
            "awayQ2LastDigit": self.away_q2_last_digit,
            "awayQ3LastDigit": self.away_q3_last_digit,
            "awayFLastDigit": self.away_f_last_digit,
            "qComplete": self.q_complete,
            "requestInProgress": self.request_in_progress,
            "homeScore": self.home_score,
            "awayScore": self.away_score,
            "status": self.status,
            "homeTeamName": self.home_team_name,
            "awayTeamName": self.away_team_name,
            "homeTeamAbbreviation": self.home_team_abbreviation,
            "awayTeamAbbreviation": self.away_team_abbreviation,
            "scoringPlays": [play.to_dict() for play in self.scoring_plays],
        }


class GameScoreSnapshot(db.Model):
    """Last good score snapshot per game, served when the feed times out"""

    __tablename__ = "game_score_snapshots"

    game_id = db.Column(db.BigInteger, primary_key=True, autoincrement=False)
    q_complete = db.Column(db.Integer, nullable=False, default=0)
    payload = db.Column(db.JSON, nullable=False)

    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<GameScoreSnapshot game_id={self.game_id} q_complete={self.q_complete}>"

    def to_game_score(self):
        return GameScore.from_dict(self.payload)

    @staticmethod
    def save(game_score):
        """Upsert the snapshot for ``game_score``; caller commits.

        A snapshot never moves backwards: a payload reporting fewer completed
        quarters than the stored one is ignored.
        """
        snapshot = db.session.get(GameScoreSnapshot, game_score.game_id)
        if snapshot is None:
            snapshot = GameScoreSnapshot(game_id=game_score.game_id)
            db.session.add(snapshot)
        elif snapshot.q_complete > game_score.q_complete:
            return snapshot

        snapshot.q_complete = game_score.q_complete
        snapshot.payload = game_score.with_request_in_progress(False).to_dict()
        return snapshot

    @staticmethod
    def latest(game_id):
        snapshot = db.session.get(GameScoreSnapshot, int(game_id))
        return snapshot.to_game_score() if snapshot else None
