# session.py
# A single game session: owns the grid, the score and the sticky win/over
# flags, and runs one turn at a time (resolve -> spawn -> evaluate).

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Set
import logging
import random

from core import (
    DIRECTION,
    GameProgressState,
    Grid,
    MoveResult,
    Tile,
    add_random_tile,
    available_moves,
    has_won,
    initialize_grid,
    is_exhausted,
    process_move,
)
from settings import GameSettings
from storage import BestScoreStore, InMemoryBestScoreStore

logger = logging.getLogger(__name__)

REJECT_GAME_OVER = "game_over"
REJECT_TURN_IN_PROGRESS = "turn_in_progress"
REJECT_NO_CHANGE = "no_change"


class TurnPhase(Enum):
    """Where the session is inside a turn. Presentation layers key animations off this."""
    IDLE = "idle"
    RESOLVING = "resolving"
    SPAWNING = "spawning"
    EVALUATING = "evaluating"


@dataclass(frozen=True)
class TileView:
    """What the renderer receives for one live tile after a turn."""
    id: int
    value: int
    row: int
    col: int
    merged_this_turn: bool
    spawned_this_turn: bool


@dataclass
class TurnOutcome:
    """Result of one player-issued direction."""
    accepted: bool
    reason: Optional[str] = None
    result: Optional[MoveResult] = None
    spawned: Optional[Tile] = None
    won_this_turn: bool = False

    @property
    def score_delta(self) -> int:
        return self.result.score_delta if self.accepted and self.result else 0


PhaseObserver = Callable[["GameSession", TurnPhase], None]


class GameSession:
    """
    Turn orchestration for one player.

    Moves are rejected (never raised) when the game is over, when a turn is
    already running, or when the direction would not change the grid. `has_won`
    latches the first time the win tile appears and play may continue;
    `is_over` latches when the grid is exhausted and blocks further moves.
    """

    def __init__(self, settings: Optional[GameSettings] = None,
                 store: Optional[BestScoreStore] = None,
                 rng: Optional[random.Random] = None,
                 on_phase: Optional[PhaseObserver] = None):
        self.settings = settings or GameSettings()
        self.store = store if store is not None else InMemoryBestScoreStore()
        self.rng = rng or random.Random()
        self.on_phase = on_phase
        self.phase = TurnPhase.IDLE
        self.best_score = 0
        self.new_game()

    # --- lifecycle ---

    def new_game(self) -> None:
        """Starts over with two fresh tiles. The best score is kept and refreshed from the store."""
        if self.phase is not TurnPhase.IDLE:
            raise RuntimeError("Cannot start a new game while a turn is in progress.")
        self.grid: Grid = initialize_grid(self.settings.size, self.rng, self.settings.four_probability)
        self.score = 0
        self.move_count = 0
        self.has_won = False
        self.is_over = False
        self._merged_ids: Set[int] = set()
        self.best_score = max(self.best_score, self._load_best_score())
        self._spawned_ids: Set[int] = {tile.id for tile in self.grid.tiles()}
        logger.info("New %dx%d game started (win tile %d)",
                    self.settings.size, self.settings.size, self.settings.win_tile)

    def load_grid(self, grid: Grid) -> None:
        """Replaces the board (e.g. a prepared position). Per-turn flags are cleared."""
        if self.phase is not TurnPhase.IDLE:
            raise RuntimeError("Cannot replace the grid while a turn is in progress.")
        self.grid = grid
        self._merged_ids = set()
        self._spawned_ids = set()
        self.is_over = is_exhausted(grid)

    def _enter(self, phase: TurnPhase) -> None:
        self.phase = phase
        if self.on_phase is not None:
            self.on_phase(self, phase)

    # --- turns ---

    def move(self, direction: DIRECTION) -> TurnOutcome:
        """
        Runs one turn.
        Args:
            direction (DIRECTION): Direction (or its string value) to slide.
        Returns:
            TurnOutcome: accepted=False with a reason when nothing happened.
        Raises:
            ValueError: If direction is not one of up/down/left/right.
        """
        if self.phase is not TurnPhase.IDLE:
            logger.debug("Rejected %s: turn already in progress (%s)", direction, self.phase.value)
            return TurnOutcome(accepted=False, reason=REJECT_TURN_IN_PROGRESS)
        if self.is_over:
            logger.debug("Rejected %s: game is over", direction)
            return TurnOutcome(accepted=False, reason=REJECT_GAME_OVER)
        direction = DIRECTION(direction)

        try:
            self._enter(TurnPhase.RESOLVING)
            result = process_move(self.grid, direction)
            if not result.changed:
                logger.debug("Rejected %s: grid unchanged", direction.value)
                return TurnOutcome(accepted=False, reason=REJECT_NO_CHANGE, result=result)

            self.grid = result.grid
            self.score += result.score_delta
            self.move_count += 1
            self._merged_ids = {merge.survivor_id for merge in result.merges}
            self._spawned_ids = set()

            self._enter(TurnPhase.SPAWNING)
            self.grid, spawned = add_random_tile(self.grid, self.rng, self.settings.four_probability)
            if spawned is not None:
                self._spawned_ids.add(spawned.id)

            self._enter(TurnPhase.EVALUATING)
            won_this_turn = False
            if not self.has_won and has_won(self.grid, self.settings.win_tile):
                self.has_won = True
                won_this_turn = True
                logger.info("Win tile %d reached with score %d", self.settings.win_tile, self.score)
            if is_exhausted(self.grid):
                self.is_over = True
                logger.info("Game over after %d moves with score %d", self.move_count, self.score)
            self._update_best_score()

            return TurnOutcome(accepted=True, result=result, spawned=spawned, won_this_turn=won_this_turn)
        finally:
            self._enter(TurnPhase.IDLE)

    # --- read-only views ---

    @property
    def progress(self) -> GameProgressState:
        if self.is_over:
            return GameProgressState.GAME_OVER
        if self.has_won:
            return GameProgressState.GAME_WON
        return GameProgressState.IN_PROGRESS

    def available_moves(self) -> List[DIRECTION]:
        if self.is_over:
            return []
        return available_moves(self.grid)

    def tile_views(self) -> List[TileView]:
        """Live tiles with the flags of the last accepted turn, row-major."""
        return [
            TileView(
                id=tile.id,
                value=tile.value,
                row=tile.row,
                col=tile.col,
                merged_this_turn=tile.id in self._merged_ids,
                spawned_this_turn=tile.id in self._spawned_ids,
            )
            for tile in self.grid.tiles()
        ]

    def share_message(self) -> str:
        if self.has_won:
            return f"I reached {self.settings.win_tile}! Final score: {self.score} points!"
        return f"I scored {self.score} points in 2048! Can you beat my score?"

    # --- best score ---

    def _load_best_score(self) -> int:
        try:
            return int(self.store.load_best_score())
        except Exception as e:
            logger.warning("Best score unavailable, starting from 0: %s", e)
            return 0

    def _update_best_score(self) -> None:
        # other sessions may share the store and have raised it since we last looked
        stored = self._load_best_score()
        self.best_score = max(self.best_score, stored, self.score)
        if self.best_score <= stored:
            return
        try:
            self.store.save_best_score(self.best_score)
        except Exception as e:
            logger.warning("Could not persist best score %d: %s", self.best_score, e)
