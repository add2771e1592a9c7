"""
Read-only access to the contests and boxes contracts
"""

import logging

from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception

from squares.models.contest import ZERO_ADDRESS, BoxOwner, Contest
from squares.utils.errors import UpstreamError
from squares.utils.token_grid import contest_token_ids, to_grid

logger = logging.getLogger(__name__)

_BOX_COST = {
    "name": "boxCost",
    "type": "tuple",
    "components": [
        {"name": "currency", "type": "address"},
        {"name": "amount", "type": "uint256"},
    ],
}

_PAYOUTS_PAID = {
    "name": "payoutsPaid",
    "type": "tuple",
    "components": [
        {"name": "totalPayoutsMade", "type": "uint8"},
        {"name": "totalAmountPaid", "type": "uint256"},
    ],
}

CONTESTS_ABI = [
    {
        "name": "getContestData",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "contestId", "type": "uint256"}],
        "outputs": [
            {
                "name": "",
                "type": "tuple",
                "components": [
                    {"name": "id", "type": "uint256"},
                    {"name": "gameId", "type": "uint256"},
                    {"name": "creator", "type": "address"},
                    {"name": "rows", "type": "uint8[10]"},
                    {"name": "cols", "type": "uint8[10]"},
                    _BOX_COST,
                    {"name": "boxesCanBeClaimed", "type": "bool"},
                    _PAYOUTS_PAID,
                    {"name": "totalRewards", "type": "uint256"},
                    {"name": "boxesClaimed", "type": "uint256"},
                    {"name": "randomValuesSet", "type": "bool"},
                    {"name": "title", "type": "string"},
                    {"name": "description", "type": "string"},
                    {"name": "payoutStrategy", "type": "address"},
                ],
            }
        ],
    },
    {
        "name": "contestIdCounter",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

BOXES_ABI = [
    {
        "name": "ownerOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address"}],
    },
]


def contest_from_view(view):
    """Build a ``Contest`` from the positional ``getContestData`` tuple"""
    (
        contest_id,
        game_id,
        creator,
        rows,
        cols,
        box_cost,
        boxes_can_be_claimed,
        payouts_paid,
        total_rewards,
        boxes_claimed,
        random_values_set,
        title,
        description,
        payout_strategy,
    ) = view

    return Contest(
        id=int(contest_id),
        game_id=int(game_id),
        creator=creator,
        rows=[int(r) for r in rows],
        cols=[int(c) for c in cols],
        box_cost_currency=box_cost[0],
        box_cost_amount=int(box_cost[1]),
        boxes_can_be_claimed=bool(boxes_can_be_claimed),
        boxes_claimed=int(boxes_claimed),
        random_values_set=bool(random_values_set),
        total_rewards=int(total_rewards),
        payout_strategy=payout_strategy,
        total_payouts_made=int(payouts_paid[0]),
        total_amount_paid=int(payouts_paid[1]),
        title=title,
        description=description,
    )


class ContestReader:
    """Reads contest state and box ownership over JSON-RPC.

    The provider is created on first use so an app can start without a
    reachable node.
    """

    def __init__(self, rpc_url, contests_address, boxes_address, timeout=10):
        self.rpc_url = rpc_url
        self.contests_address = contests_address
        self.boxes_address = boxes_address
        self.timeout = timeout
        self._w3 = None

    @classmethod
    def from_config(cls, config):
        return cls(
            rpc_url=config.get("RPC_URL"),
            contests_address=config.get("CONTESTS_ADDRESS"),
            boxes_address=config.get("BOXES_ADDRESS"),
            timeout=config.get("UPSTREAM_TIMEOUT", 10),
        )

    @property
    def w3(self):
        if self._w3 is None:
            self._w3 = Web3(
                Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.timeout})
            )
            logger.info(f"Web3 provider created for {self.rpc_url}")
        return self._w3

    def _contract(self, address, abi):
        if not address:
            raise UpstreamError("Contract address not configured")
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    def get_contest(self, contest_id):
        contract = self._contract(self.contests_address, CONTESTS_ABI)
        try:
            view = contract.functions.getContestData(int(contest_id)).call()
        except (Web3Exception, ValueError, OSError) as e:
            logger.error(f"Failed to read contest {contest_id}: {e}")
            raise UpstreamError(f"Failed to read contest {contest_id}") from e
        return contest_from_view(view)

    def contest_count(self):
        contract = self._contract(self.contests_address, CONTESTS_ABI)
        try:
            return int(contract.functions.contestIdCounter().call())
        except (Web3Exception, ValueError, OSError) as e:
            raise UpstreamError("Failed to read contest counter") from e

    def list_contests(self, limit=None):
        """Most recent contests first"""
        count = self.contest_count()
        ids = list(range(count - 1, -1, -1))
        if limit is not None:
            ids = ids[:limit]
        return [self.get_contest(contest_id) for contest_id in ids]

    def _owner_of(self, contract, token_id):
        """Owner of one box; unminted tokens revert and read as unowned.

        Raises:
            UpstreamError: the node failed or refused the call
        """
        try:
            return contract.functions.ownerOf(token_id).call()
        except ContractLogicError as e:
            logger.debug(f"ownerOf({token_id}) reverted: {e}")
            return ZERO_ADDRESS
        except (Web3Exception, ValueError, OSError) as e:
            logger.error(f"Failed to read owner of token {token_id}: {e}")
            raise UpstreamError(f"Failed to read owner of token {token_id}") from e

    def get_box_owners(self, contest_id):
        """All 100 boxes of a contest with their owners and grid positions"""
        contract = self._contract(self.boxes_address, BOXES_ABI)
        owners = []
        for token_id in contest_token_ids(contest_id):
            position = to_grid(token_id, contest_id)
            owners.append(
                BoxOwner(
                    token_id=token_id,
                    owner=self._owner_of(contract, token_id),
                    row=position.row,
                    col=position.col,
                )
            )
        return owners
