from dataclasses import dataclass, field

AWAY = 0
HOME = 1


@dataclass
class LiveGameScore:
    game_id: str
    home_score: int = 0
    away_score: int = 0
    completed: bool = False
    status: str = "scheduled"

    @property
    def winner(self):
        """1 for home, 0 for away, None while tied"""
        if self.home_score > self.away_score:
            return HOME
        if self.away_score > self.home_score:
            return AWAY
        return None

    @property
    def has_started(self):
        return self.home_score > 0 or self.away_score > 0 or self.status != "scheduled"

    def to_dict(self):
        return {
            "gameId": self.game_id,
            "homeScore": self.home_score,
            "awayScore": self.away_score,
            "winner": self.winner,
            "completed": self.completed,
            "status": self.status,
        }


@dataclass
class PickemEntry:
    token_id: int
    picks: list = field(default_factory=list)
    tiebreaker_points: int = 0
    owner: str = ""

    @classmethod
    def from_dict(cls, data):
        return cls(
            token_id=int(data.get("tokenId") or 0),
            picks=[int(p) for p in data.get("picks") or []],
            tiebreaker_points=int(data.get("tiebreakerPoints") or 0),
            owner=data.get("owner") or "",
        )


@dataclass
class RankedEntry:
    entry: PickemEntry
    correct_picks: int
    total_scored_games: int
    rank: int = 0

    def to_dict(self):
        return {
            "tokenId": self.entry.token_id,
            "owner": self.entry.owner,
            "picks": self.entry.picks,
            "tiebreakerPoints": self.entry.tiebreaker_points,
            "liveCorrectPicks": self.correct_picks,
            "liveTotalScoredGames": self.total_scored_games,
            "liveRank": self.rank,
        }
