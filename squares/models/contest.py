from dataclasses import dataclass, field
from enum import Enum

from squares.utils.token_grid import BOXES_PER_CONTEST, GRID_SIZE

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class PayoutStrategy(Enum):
    QUARTERS_ONLY = "quarters-only"
    SCORE_CHANGES = "score-changes"
    UNKNOWN = "unknown"


def _to_int(value, default=0):
    if value is None or value == "":
        return default
    return int(value)


@dataclass
class BoxOwner:
    token_id: int
    owner: str = ZERO_ADDRESS
    row: int = 0
    col: int = 0

    @property
    def is_unowned(self):
        return not self.owner or self.owner.lower() == ZERO_ADDRESS

    @classmethod
    def from_dict(cls, data):
        return cls(
            token_id=_to_int(data.get("tokenId")),
            owner=data.get("owner") or ZERO_ADDRESS,
            row=_to_int(data.get("row")),
            col=_to_int(data.get("col")),
        )

    def to_dict(self):
        return {
            "tokenId": self.token_id,
            "owner": self.owner,
            "row": self.row,
            "col": self.col,
        }


@dataclass
class Contest:
    """One 10x10 squares game tied to an external sporting event.

    ``rows`` and ``cols`` hold the digit assignments and are only meaningful
    once ``random_values_set`` is true. Amounts are in the currency's
    smallest unit.
    """

    id: int
    game_id: int
    creator: str = ZERO_ADDRESS
    rows: list = field(default_factory=list)
    cols: list = field(default_factory=list)
    box_cost_currency: str = ZERO_ADDRESS
    box_cost_amount: int = 0
    boxes_can_be_claimed: bool = True
    boxes_claimed: int = 0
    random_values_set: bool = False
    total_rewards: int = 0
    payout_strategy: str = ""
    total_payouts_made: int = 0
    total_amount_paid: int = 0
    title: str = ""
    description: str = ""

    @property
    def rewards_paid(self):
        """Per-quarter paid flags, in settlement order"""
        return [self.total_payouts_made >= quarter for quarter in range(1, 5)]

    @property
    def is_fully_claimed(self):
        return self.boxes_claimed >= BOXES_PER_CONTEST

    @property
    def has_valid_digits(self):
        return (
            self.random_values_set
            and len(self.rows) == GRID_SIZE
            and len(self.cols) == GRID_SIZE
        )

    @property
    def is_active(self):
        """Still claimable, not fully claimed, randomness pending or unsettled"""
        return (
            self.boxes_can_be_claimed
            or not self.is_fully_claimed
            or not self.random_values_set
            or self.total_payouts_made == 0
        )

    @classmethod
    def from_dict(cls, data):
        box_cost = data.get("boxCost") or {}
        payouts_paid = data.get("payoutsPaid") or {}
        return cls(
            id=_to_int(data.get("id")),
            game_id=_to_int(data.get("gameId")),
            creator=data.get("creator") or ZERO_ADDRESS,
            rows=[int(r) for r in data.get("rows") or []],
            cols=[int(c) for c in data.get("cols") or []],
            box_cost_currency=box_cost.get("currency") or ZERO_ADDRESS,
            box_cost_amount=_to_int(box_cost.get("amount")),
            boxes_can_be_claimed=bool(data.get("boxesCanBeClaimed")),
            boxes_claimed=_to_int(data.get("boxesClaimed")),
            random_values_set=bool(data.get("randomValuesSet")),
            total_rewards=_to_int(data.get("totalRewards")),
            payout_strategy=data.get("payoutStrategy") or "",
            total_payouts_made=_to_int(payouts_paid.get("totalPayoutsMade")),
            total_amount_paid=_to_int(payouts_paid.get("totalAmountPaid")),
            title=data.get("title") or "",
            description=data.get("description") or "",
        )

    def to_dict(self):
        """Serialize for the cache and the HTTP boundary (large ints as strings)"""
        return {
            "id": str(self.id),
            "gameId": str(self.game_id),
            "creator": self.creator,
            "rows": list(self.rows),
            "cols": list(self.cols),
            "boxCost": {
                "currency": self.box_cost_currency,
                "amount": str(self.box_cost_amount),
            },
            "boxesCanBeClaimed": self.boxes_can_be_claimed,
            "payoutsPaid": {
                "totalPayoutsMade": self.total_payouts_made,
                "totalAmountPaid": str(self.total_amount_paid),
            },
            "totalRewards": str(self.total_rewards),
            "boxesClaimed": str(self.boxes_claimed),
            "randomValuesSet": self.random_values_set,
            "title": self.title,
            "description": self.description,
            "payoutStrategy": self.payout_strategy,
        }


def is_real_user(address, contract_address=None):
    """False for unowned boxes and boxes still held by the contests contract"""
    if not address or address.lower() == ZERO_ADDRESS:
        return False
    return not (contract_address and address.lower() == contract_address.lower())


def group_box_owners(box_owners, contract_address=None):
    """Group claimed boxes by owner, most boxes first"""
    owners = {}
    for box in box_owners:
        if not is_real_user(box.owner, contract_address):
            continue
        address = box.owner.lower()
        entry = owners.setdefault(address, {"address": box.owner, "token_ids": []})
        entry["token_ids"].append(box.token_id)

    return sorted(owners.values(), key=lambda o: len(o["token_ids"]), reverse=True)
