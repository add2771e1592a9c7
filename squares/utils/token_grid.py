"""
Mapping between box token ids and grid coordinates.

Every contest owns a block of 100 token ids starting at
``contest_id * 100``; the position inside that block is the box position,
laid out row-major on the 10x10 grid.
"""

from collections import namedtuple

from squares.utils.errors import OutOfRangeError

GRID_SIZE = 10
BOXES_PER_CONTEST = GRID_SIZE * GRID_SIZE

GridPosition = namedtuple("GridPosition", ["box_position", "row", "col"])


def to_grid(token_id, contest_id):
    """Map a token id to its position on ``contest_id``'s grid.

    Raises:
        OutOfRangeError: the token does not belong to this contest
    """
    box_position = int(token_id) - int(contest_id) * BOXES_PER_CONTEST
    if not 0 <= box_position < BOXES_PER_CONTEST:
        raise OutOfRangeError(
            f"Token {token_id} is outside contest {contest_id}",
            token_id=token_id,
            contest_id=contest_id,
        )
    return GridPosition(box_position, box_position // GRID_SIZE, box_position % GRID_SIZE)


def to_token_id(contest_id, box_position):
    if not 0 <= int(box_position) < BOXES_PER_CONTEST:
        raise OutOfRangeError(
            f"Box position {box_position} is outside the grid", contest_id=contest_id
        )
    return int(contest_id) * BOXES_PER_CONTEST + int(box_position)


def cell_to_box_position(row, col):
    return row * GRID_SIZE + col


def contest_token_ids(contest_id):
    """All token ids of a contest in box-position order"""
    start = int(contest_id) * BOXES_PER_CONTEST
    return list(range(start, start + BOXES_PER_CONTEST))
