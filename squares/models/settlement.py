from dataclasses import dataclass, field

QUARTER = "quarter"
SCORE_CHANGE = "score_change"

QUARTER_LABELS = {1: "Q1", 2: "Q2", 3: "Q3", 4: "Final"}


@dataclass(frozen=True)
class SettlementEvent:
    """A point at which a winning cell is determined.

    ``sequence`` orders events in game time: scoring plays of a period come
    before that period's quarter end.
    """

    kind: str
    index: int
    period: int = 0

    @classmethod
    def quarter(cls, quarter):
        return cls(QUARTER, quarter, quarter)

    @classmethod
    def score_change(cls, index, period=0):
        return cls(SCORE_CHANGE, index, period)

    @property
    def label(self):
        if self.kind == QUARTER:
            return QUARTER_LABELS[self.index]
        return f"Score Change #{self.index}"

    @property
    def sequence(self):
        if self.kind == QUARTER:
            return (self.index, 1, 0)
        period = min(self.period, 4) if self.period else 4
        return (period, 0, self.index)


@dataclass
class WinningBoxEntry:
    contest_id: int
    token_id: int
    box_position: int
    owner: str
    total_amount: float = 0.0
    currency: str = ""
    events: list = field(default_factory=list)
    game_id: int = 0
    matchup: str = ""
    game_date: str = ""

    @property
    def settlement_label(self):
        return ", ".join(event.label for event in self.events)

    @property
    def latest_sequence(self):
        return max(event.sequence for event in self.events)

    def add(self, event, amount):
        self.events.append(event)
        if amount is None or self.total_amount is None:
            self.total_amount = None
        else:
            self.total_amount += amount

    def to_dict(self):
        return {
            "contestId": self.contest_id,
            "tokenId": self.token_id,
            "boxPosition": self.box_position,
            "owner": self.owner,
            "amount": self.total_amount,
            "currency": self.currency,
            "settlementLabel": self.settlement_label,
            "gameId": self.game_id,
            "matchup": self.matchup,
            "gameDate": self.game_date,
        }
