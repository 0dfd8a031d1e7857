# core.py
# This file is the synchronous core logic for a 2048 game: grid state, tile
# spawning, move resolution and terminal-state evaluation.

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple
import logging
import random

logger = logging.getLogger(__name__)

Position = Tuple[int, int]


class GameProgressState(Enum):
    """Represents the current progress state of the game."""
    IN_PROGRESS = 1
    GAME_OVER = 2  # Lost
    GAME_WON = 3


class DIRECTION(str, Enum):
    """Represents the possible move directions."""
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"


def _is_power_of_two(value: int) -> bool:
    return value >= 2 and value & (value - 1) == 0


@dataclass(frozen=True)
class Tile:
    """A tile at rest. The id is stable for the tile's whole lifetime."""
    id: int
    value: int
    row: int
    col: int

    @property
    def position(self) -> Position:
        return (self.row, self.col)


@dataclass(frozen=True)
class MergeEvent:
    """Two tiles combined during a move; `survivor_id` keeps living with `new_value`."""
    survivor_id: int
    consumed_id: int
    new_value: int
    row: int
    col: int


@dataclass(frozen=True)
class SlideEvent:
    """A tile travelled from `from_pos` to `to_pos` during a move."""
    tile_id: int
    from_pos: Position
    to_pos: Position


# --- Grid State ---

class Grid:
    """
    N x N board holding tiles by id.
    The cells store id references; the tiles themselves live in an arena keyed
    by id, so a slide or merge keeps identity while a spawn always gets a new id.
    """

    def __init__(self, size: int = 4, tiles: Iterable[Tile] = (), next_id: int = 1):
        if not isinstance(size, int) or size <= 0:
            raise ValueError("Board size must be a positive integer.")
        self.size = size
        self._tiles: Dict[int, Tile] = {}
        self._cells: List[List[Optional[int]]] = [[None] * size for _ in range(size)]
        self.next_id = next_id
        for tile in tiles:
            self._place(tile)

    @classmethod
    def from_values(cls, values: List[List[int]]) -> "Grid":
        """
        Builds a grid from a matrix of integers (0 for empty).
        Ids are handed out in row-major order starting at 1.
        Args:
            values (List[List[int]]): A non-empty square matrix.
        Returns:
            Grid: The new grid.
        Raises:
            ValueError: If the matrix is not square or empty.
        """
        n = get_board_size(values)
        grid = cls(n)
        for row in range(n):
            for col in range(n):
                if values[row][col]:
                    grid._place(Tile(grid._take_id(), values[row][col], row, col))
        return grid

    def _take_id(self) -> int:
        tile_id = self.next_id
        self.next_id += 1
        return tile_id

    def _place(self, tile: Tile) -> None:
        assert 0 <= tile.row < self.size and 0 <= tile.col < self.size, \
            f"tile {tile.id} placed outside the board at {tile.position}"
        assert self._cells[tile.row][tile.col] is None, \
            f"two tiles reported at cell {tile.position}"
        assert tile.id not in self._tiles, f"duplicate tile id {tile.id}"
        assert _is_power_of_two(tile.value), f"tile value {tile.value} is not a power of two"
        self._tiles[tile.id] = tile
        self._cells[tile.row][tile.col] = tile.id
        if tile.id >= self.next_id:
            self.next_id = tile.id + 1

    def copy(self) -> "Grid":
        return Grid(self.size, self._tiles.values(), self.next_id)

    def tile_at(self, row: int, col: int) -> Optional[Tile]:
        tile_id = self._cells[row][col]
        return None if tile_id is None else self._tiles[tile_id]

    def tile_by_id(self, tile_id: int) -> Optional[Tile]:
        return self._tiles.get(tile_id)

    def tiles(self) -> List[Tile]:
        """All live tiles in row-major order."""
        return [self._tiles[tile_id] for line in self._cells for tile_id in line if tile_id is not None]

    def empty_cells(self) -> Set[Position]:
        return {
            (row, col)
            for row in range(self.size)
            for col in range(self.size)
            if self._cells[row][col] is None
        }

    def values_snapshot(self) -> List[List[int]]:
        """N x N matrix of tile values, 0 for empty cells. Used for change detection."""
        return [
            [0 if tile_id is None else self._tiles[tile_id].value for tile_id in line]
            for line in self._cells
        ]

    def total_value(self) -> int:
        return sum(tile.value for tile in self._tiles.values())

    def max_value(self) -> int:
        return max((tile.value for tile in self._tiles.values()), default=0)

    def __len__(self) -> int:
        return len(self._tiles)

    def __repr__(self) -> str:
        return f"Grid(size={self.size}, values={self.values_snapshot()})"


# --- Board Helper Functions ---

def get_board_size(board: List[List[int]]) -> int:
    """
    Gets the size (N) of an N x N board.
    Args:
        board (List[List[int]]): The game board.
    Returns:
        int: The dimension of the board.
    Raises:
        ValueError: If the board is not square or empty.
    """
    if not board or not all(len(row) == len(board) for row in board):
        raise ValueError("Board must be a non-empty square matrix.")
    return len(board)


# --- Tile Spawner ---

def add_random_tile(grid: Grid, rng: Optional[random.Random] = None,
                    four_probability: float = 0.1) -> Tuple[Grid, Optional[Tile]]:
    """
    Adds a new tile (90% chance of 2, 10% chance of 4 by default) to a random
    empty cell on a copy of the grid.
    Args:
        grid (Grid): The current grid.
        rng (random.Random): Source of randomness; the module generator if None.
        four_probability (float): Probability that the new tile is a 4.
    Returns:
        Tuple[Grid, Optional[Tile]]: A new grid and the spawned tile.
                                     If there are no empty cells, returns an
                                     unchanged copy and None.
    """
    rng = rng or random
    new_grid = grid.copy()
    empty_cells = sorted(grid.empty_cells())
    if not empty_cells:
        return new_grid, None

    row, col = rng.choice(empty_cells)
    value = 4 if rng.random() < four_probability else 2
    tile = Tile(new_grid._take_id(), value, row, col)
    new_grid._place(tile)
    logger.debug("Spawned tile %d (value %d) at %s", tile.id, value, tile.position)
    return new_grid, tile


def initialize_grid(size: int = 4, rng: Optional[random.Random] = None,
                    four_probability: float = 0.1) -> Grid:
    """
    Creates a new grid with two random tiles.
    Raises:
        ValueError: If board size is not a positive integer.
    """
    grid = Grid(size)
    grid, _ = add_random_tile(grid, rng, four_probability)
    grid, _ = add_random_tile(grid, rng, four_probability)
    return grid


# --- Move Resolver ---

@dataclass
class MoveResult:
    """Outcome of resolving one direction against a grid."""
    grid: Grid
    changed: bool
    score_delta: int = 0
    merges: List[MergeEvent] = field(default_factory=list)
    slides: List[SlideEvent] = field(default_factory=list)


def _line_positions(size: int, direction: DIRECTION) -> List[List[Position]]:
    """
    Cell coordinates of every line, each ordered from the wall the tiles move
    towards to the opposite edge.
    """
    indices = range(size)
    if direction == DIRECTION.LEFT:
        return [[(r, c) for c in indices] for r in indices]
    if direction == DIRECTION.RIGHT:
        return [[(r, c) for c in reversed(indices)] for r in indices]
    if direction == DIRECTION.UP:
        return [[(r, c) for r in indices] for c in indices]
    if direction == DIRECTION.DOWN:
        return [[(r, c) for r in reversed(indices)] for c in indices]
    raise ValueError("Invalid direction specified for process_move.")


def _resolve_line(grid: Grid, line: List[Position], out: Grid,
                  merges: List[MergeEvent], slides: List[SlideEvent]) -> int:
    """
    Compacts one line of `grid` towards line[0], writing the tiles into `out`.
    Returns the score gained from merges in this line.
    """
    ordered = [tile for tile in (grid.tile_at(r, c) for r, c in line) if tile is not None]
    merged_ids: Set[int] = set()
    score = 0
    i = 0
    target = 0

    while i < len(ordered):
        tile = ordered[i]
        dest = line[target]
        nxt = ordered[i + 1] if i + 1 < len(ordered) else None

        if (nxt is not None and nxt.value == tile.value
                and tile.id not in merged_ids and nxt.id not in merged_ids):
            new_value = tile.value * 2
            out._place(Tile(tile.id, new_value, dest[0], dest[1]))
            merged_ids.add(tile.id)
            merges.append(MergeEvent(tile.id, nxt.id, new_value, dest[0], dest[1]))
            if tile.position != dest:
                slides.append(SlideEvent(tile.id, tile.position, dest))
            slides.append(SlideEvent(nxt.id, nxt.position, dest))
            score += new_value
            i += 2
        else:
            out._place(Tile(tile.id, tile.value, dest[0], dest[1]))
            if tile.position != dest:
                slides.append(SlideEvent(tile.id, tile.position, dest))
            i += 1
        target += 1

    return score


def process_move(grid: Grid, direction: DIRECTION) -> MoveResult:
    """
    Processes a move in the specified direction. The input grid is not modified.
    Args:
        grid (Grid): The current grid.
        direction (DIRECTION): The direction to move.
    Returns:
        MoveResult: The new grid, whether anything changed, the score gained and
                    the merge/slide events of this move. When nothing changed the
                    returned grid is the input grid and the event lists are empty.
    Raises:
        ValueError: If an invalid direction is specified.
    """
    direction = DIRECTION(direction)
    before = grid.values_snapshot()
    out = Grid(grid.size, next_id=grid.next_id)
    merges: List[MergeEvent] = []
    slides: List[SlideEvent] = []
    score_delta = 0

    for line in _line_positions(grid.size, direction):
        score_delta += _resolve_line(grid, line, out, merges, slides)

    # The snapshot comparison decides; the event lists must agree with it.
    changed = out.values_snapshot() != before
    if changed != bool(merges or slides):
        logger.warning("Move events disagree with snapshot comparison (changed=%s)", changed)
    if not changed:
        return MoveResult(grid=grid, changed=False)
    return MoveResult(grid=out, changed=True, score_delta=score_delta, merges=merges, slides=slides)


# --- Terminal Evaluator ---

def has_won(grid: Grid, win_tile: int = 2048) -> bool:
    """
    Check if any tile has reached the win tile value.
    Args:
        grid (Grid): The game grid.
        win_tile (int): The tile value that signifies a win. Default is 2048.
    Returns:
        bool: True if the game is won, False otherwise.
    """
    return any(tile.value >= win_tile for tile in grid.tiles())


def _has_equal_neighbours(values: List[List[int]]) -> bool:
    n = len(values)
    for r in range(n):
        for c in range(n):
            if values[r][c] == 0:
                continue
            if c + 1 < n and values[r][c] == values[r][c + 1]:
                return True
            if r + 1 < n and values[r][c] == values[r + 1][c]:
                return True
    return False


def is_exhausted(grid: Grid) -> bool:
    """
    True when the grid is full and no horizontally or vertically adjacent
    tiles share a value, i.e. no legal move remains.
    """
    if grid.empty_cells():
        return False
    return not _has_equal_neighbours(grid.values_snapshot())


def is_move_possible_in_direction(grid: Grid, direction: DIRECTION) -> bool:
    """
    Check if any tile can move or merge in the given specific direction.
    Args:
        grid (Grid): The game grid.
        direction (DIRECTION): The direction to check.
    Returns:
       bool: True if at least one tile can move or merge in that direction, False otherwise.
    """
    snapshot = grid.values_snapshot()
    for line in _line_positions(grid.size, DIRECTION(direction)):
        values = [snapshot[r][c] for r, c in line]
        for idx in range(1, len(values)):
            if values[idx] == 0:
                continue
            if values[idx - 1] == 0 or values[idx - 1] == values[idx]:
                return True
    return False


def available_moves(grid: Grid) -> List[DIRECTION]:
    """Directions that would change the grid, in declaration order."""
    return [direction for direction in DIRECTION if is_move_possible_in_direction(grid, direction)]


def determine_game_status(grid: Grid, win_tile: int = 2048) -> GameProgressState:
    """
    Determines the current progress state of the game based on the grid alone.
    A won grid reports GAME_WON even if it is also exhausted.
    Args:
        grid (Grid): The current game grid.
        win_tile (int): The tile value that signifies a win. Default is 2048.
    Returns:
        GameProgressState: The current state (IN_PROGRESS, GAME_WON, GAME_OVER).
    """
    if has_won(grid, win_tile):
        return GameProgressState.GAME_WON
    if is_exhausted(grid):
        return GameProgressState.GAME_OVER
    return GameProgressState.IN_PROGRESS
