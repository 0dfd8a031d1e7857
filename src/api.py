from collections import OrderedDict
from typing import List, Optional, Tuple
import logging
import random
import uuid

from fastapi import FastAPI, HTTPException, Request, Response
from pydantic import BaseModel, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

import core
from gestures import direction_from_swipe
from session import GameSession, TurnOutcome, REJECT_GAME_OVER, REJECT_NO_CHANGE, REJECT_TURN_IN_PROGRESS
from settings import GameSettings, load_settings
from storage import BestScoreStore, InMemoryBestScoreStore, JsonFileBestScoreStore

logger = logging.getLogger(__name__)

REJECTION_MESSAGES = {
    REJECT_NO_CHANGE: "Move was not effective; board state unchanged by slide.",
    REJECT_GAME_OVER: "Game Over. No more valid moves.",
    REJECT_TURN_IN_PROGRESS: "A move is already being processed for this game.",
}


def build_store(settings: GameSettings) -> BestScoreStore:
    if settings.best_score_path:
        return JsonFileBestScoreStore(settings.best_score_path)
    return InMemoryBestScoreStore()


class SessionRegistry:
    """
    In-process map of game id -> GameSession sharing one best-score store.
    Holds at most `settings.max_games` games; creating one more drops the
    least recently used game.
    """

    def __init__(self, settings: GameSettings, store: BestScoreStore, rng: Optional[random.Random] = None):
        self.settings = settings
        self.store = store
        self.rng = rng
        self._sessions: "OrderedDict[str, GameSession]" = OrderedDict()

    def create(self, size: Optional[int] = None, win_tile: Optional[int] = None) -> Tuple[str, GameSession]:
        overrides = {k: v for k, v in (("size", size), ("win_tile", win_tile)) if v is not None}
        session_settings = GameSettings(**{**self.settings.model_dump(), **overrides})
        rng = random.Random(self.rng.random()) if self.rng is not None else None
        game_id = uuid.uuid4().hex
        session = GameSession(session_settings, self.store, rng)
        while len(self._sessions) >= self.settings.max_games:
            evicted_id, _ = self._sessions.popitem(last=False)
            logger.info("Dropped least recently used game %s", evicted_id)
        self._sessions[game_id] = session
        return game_id, session

    def get(self, game_id: str) -> GameSession:
        try:
            session = self._sessions[game_id]
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown game id: {game_id}")
        self._sessions.move_to_end(game_id)
        return session

    def remove(self, game_id: str) -> None:
        if self._sessions.pop(game_id, None) is None:
            raise HTTPException(status_code=404, detail=f"Unknown game id: {game_id}")

    def __contains__(self, game_id: str) -> bool:
        return game_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


# --- Pydantic Models for API requests and responses ---

class NewGameSettings(BaseModel):
    """Settings for creating a new game; omitted values use the server defaults."""
    size: Optional[int] = Field(
        default=None,
        gt=1,  # Board size must be at least 2x2
        le=8,
        description="Size of the N x N game board (e.g., 4 for a 4x4 board)."
    )
    win_tile: Optional[int] = Field(
        default=None,
        gt=2,
        description="The tile value to achieve for winning the game (e.g., 2048)."
    )


class TileData(BaseModel):
    """One live tile as the renderer needs it."""
    id: int
    value: int
    row: int
    col: int
    merged_this_turn: bool
    spawned_this_turn: bool


class MergeData(BaseModel):
    survivor_id: int
    consumed_id: int
    new_value: int
    row: int
    col: int


class SlideData(BaseModel):
    tile_id: int
    from_pos: List[int]
    to_pos: List[int]


class GameStateData(BaseModel):
    """Represents the complete state of a game instance."""
    game_id: str = Field(..., description="Identifier to pass to subsequent requests.")
    board: List[List[int]] = Field(..., description="The N x N game board, 0 for empty cells.")
    tiles: List[TileData] = Field(..., description="Live tiles with stable ids for animation.")
    score: int = Field(..., ge=0, description="Current score of the game.")
    best_score: int = Field(..., ge=0, description="Best score seen by this server.")
    has_won: bool
    is_over: bool
    progress: core.GameProgressState = Field(
        ...,
        description="Current progress state of the game (IN_PROGRESS, GAME_WON, GAME_OVER)."
    )
    win_tile: int = Field(..., gt=0, description="The tile value required to win this game instance.")
    board_size: int = Field(..., gt=0, description="The dimension N of the N x N board.")
    available_moves: List[core.DIRECTION] = Field(..., description="Directions that would change the board.")


class MoveRequestData(BaseModel):
    """Data required to make a move."""
    game_id: str
    direction: core.DIRECTION = Field(
        ...,
        description="Direction of the move (up, down, left, right)."
    )


class SwipeRequestData(BaseModel):
    """A raw swipe: delta between touch start and touch end in screen pixels."""
    game_id: str
    dx: float
    dy: float


class MoveResponseData(GameStateData):
    """Response after a move, including the new game state and move effectiveness."""
    move_was_effective: bool = Field(
        ...,
        description="True if the move resulted in a change to the board state, False otherwise."
    )
    score_delta: int = Field(default=0, ge=0)
    merges: List[MergeData] = Field(default_factory=list)
    slides: List[SlideData] = Field(default_factory=list)
    message: Optional[str] = Field(
        default=None,
        description="An optional message, e.g., if a move was invalid, game ended, or other info."
    )


class ShareData(BaseModel):
    message: str
    score: int
    has_won: bool


def game_state_payload(game_id: str, session: GameSession) -> dict:
    return dict(
        game_id=game_id,
        board=session.grid.values_snapshot(),
        tiles=[TileData(**vars(view)) for view in session.tile_views()],
        score=session.score,
        best_score=session.best_score,
        has_won=session.has_won,
        is_over=session.is_over,
        progress=session.progress,
        win_tile=session.settings.win_tile,
        board_size=session.settings.size,
        available_moves=session.available_moves(),
    )


def move_response(game_id: str, session: GameSession, outcome: Optional[TurnOutcome],
                  message: Optional[str] = None) -> MoveResponseData:
    merges: List[MergeData] = []
    slides: List[SlideData] = []
    if outcome is not None and outcome.accepted:
        merges = [MergeData(**vars(m)) for m in outcome.result.merges]
        slides = [SlideData(tile_id=s.tile_id, from_pos=list(s.from_pos), to_pos=list(s.to_pos))
                  for s in outcome.result.slides]
        # Enhance client message based on game status
        if outcome.won_this_turn:
            message = "Congratulations! You won!"
        if session.is_over:
            message = "Game Over. No more valid moves."
    elif outcome is not None:
        message = REJECTION_MESSAGES.get(outcome.reason, message)

    return MoveResponseData(
        **game_state_payload(game_id, session),
        move_was_effective=bool(outcome and outcome.accepted),
        score_delta=outcome.score_delta if outcome else 0,
        merges=merges,
        slides=slides,
        message=message,
    )


def create_app(settings: Optional[GameSettings] = None, store: Optional[BestScoreStore] = None,
               rng: Optional[random.Random] = None) -> FastAPI:
    """
    Builds the API application.
    Args:
        settings (GameSettings): Server defaults; read from the environment if None.
        store (BestScoreStore): Best score persistence; derived from settings if None.
        rng (random.Random): Seed source for the per-game generators (tests).
    """
    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level)

    # Initialize the rate limiter
    limiter = Limiter(key_func=get_remote_address)
    app = FastAPI(
        title="2048 Game API",
        description="Backend for the 2048 mini-app. Games live on the server; "
                    "the client renders tiles by id and sends one direction per turn.",
        version="1.0.0"
    )
    app.state.limiter = limiter
    app.state.settings = settings
    app.state.registry = SessionRegistry(settings, store if store is not None else build_store(settings), rng)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    registry: SessionRegistry = app.state.registry
    limit = settings.rate_limit

    # --- API Endpoints ---

    @app.post("/game/new", response_model=GameStateData, summary="Start a New 2048 Game")
    @limiter.limit(limit)
    async def start_new_game(request: Request, new_game: Optional[NewGameSettings] = None):
        """
        Initializes a new 2048 game.

        - **size**: Dimension of the N x N board (e.g., 4 for 4x4). Server default if omitted.
        - **win_tile**: Tile value to reach to win (e.g., 2048). Server default if omitted.

        Returns the initial game state with two random tiles and the game id to
        use for subsequent moves.
        """
        new_game = new_game or NewGameSettings()
        try:
            game_id, session = registry.create(new_game.size, new_game.win_tile)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error("Unexpected error in /game/new: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail=f"An unexpected error occurred during game creation: {str(e)}")
        logger.info("Created game %s (%d active)", game_id, len(registry))
        return GameStateData(**game_state_payload(game_id, session))

    @app.get("/game/{game_id}", response_model=GameStateData, summary="Get Game State")
    @limiter.limit(limit)
    async def get_game(request: Request, game_id: str):
        return GameStateData(**game_state_payload(game_id, registry.get(game_id)))

    @app.post("/game/move", response_model=MoveResponseData, summary="Make a Move in the Game")
    @limiter.limit(limit)
    async def make_move(request: Request, request_data: MoveRequestData):
        """
        Processes a player's move in the game.

        The server will:
        1. Attempt to process the move (slide tiles, merge).
        2. If the move changed the board, add a new random tile (2 or 4).
        3. Re-evaluate win and game-over.

        Returns the updated game state, the merge/slide events of the turn,
        whether the move was effective, and an optional message.
        """
        session = registry.get(request_data.game_id)
        try:
            outcome = session.move(request_data.direction)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Error processing move: {str(e)}")
        except Exception as e:
            logger.error("Unexpected error in /game/move: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail=f"An unexpected server error occurred while processing the move: {str(e)}")
        return move_response(request_data.game_id, session, outcome)

    @app.post("/game/swipe", response_model=MoveResponseData, summary="Make a Move from a Swipe")
    @limiter.limit(limit)
    async def swipe(request: Request, request_data: SwipeRequestData):
        session = registry.get(request_data.game_id)
        direction = direction_from_swipe(request_data.dx, request_data.dy)
        if direction is None:
            return move_response(request_data.game_id, session, None, message="Swipe too short; no move made.")
        return move_response(request_data.game_id, session, session.move(direction))

    @app.post("/game/{game_id}/reset", response_model=GameStateData, summary="Restart a Game")
    @limiter.limit(limit)
    async def reset_game(request: Request, game_id: str):
        session = registry.get(game_id)
        session.new_game()
        return GameStateData(**game_state_payload(game_id, session))

    @app.delete("/game/{game_id}", status_code=204, summary="Discard a Game")
    @limiter.limit(limit)
    async def delete_game(request: Request, game_id: str):
        registry.remove(game_id)
        logger.info("Deleted game %s (%d active)", game_id, len(registry))
        return Response(status_code=204)

    @app.get("/game/{game_id}/share", response_model=ShareData, summary="Text for Sharing the Score")
    @limiter.limit(limit)
    async def share(request: Request, game_id: str):
        session = registry.get(game_id)
        return ShareData(message=session.share_message(), score=session.score, has_won=session.has_won)

    return app


def main():
    import uvicorn

    uvicorn.run("api:create_app", factory=True, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
