# cli_driver.py
# This file is intended to be run to play or test the 2048 game on the CLI

from typing import Optional
import argparse
import logging
import random

from core import GameProgressState
from gestures import direction_from_key
from session import GameSession, REJECT_NO_CHANGE
from settings import load_settings
from storage import InMemoryBestScoreStore, JsonFileBestScoreStore


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Play 2048 in the terminal")
    parser.add_argument("--size", type=int, default=None, help="Board dimension (default: 4)")
    parser.add_argument("--win-tile", type=int, default=None,
                        help="Tile value that wins the game (default: 2048; e.g. 32 for testing)")
    parser.add_argument("--best-score-file", type=str, default=None,
                        help="JSON file used to keep the best score between runs")
    parser.add_argument("--seed", type=int, default=None, help="Seed for tile spawning")
    return parser.parse_args(argv)


def main(argv=None, input_fn=input):
    args = parse_args(argv)
    settings = load_settings(size=args.size, win_tile=args.win_tile, best_score_path=args.best_score_file)
    logging.basicConfig(level=settings.log_level)

    store = JsonFileBestScoreStore(settings.best_score_path) if settings.best_score_path else InMemoryBestScoreStore()
    rng = random.Random(args.seed) if args.seed is not None else None

    # 1. Initialize game
    session = GameSession(settings, store, rng)
    display_board_state(session)

    # 2. Game Loop
    while not session.is_over:
        # Get player input (simplified here)
        move_input = input_fn("Enter move (W/A/S/D for Up/Left/Down/Right, N for new game, Q to quit): ")

        if move_input.strip().upper() == 'Q':
            print("Quitting game.")
            break
        if move_input.strip().upper() == 'N':
            session.new_game()
            display_board_state(session)
            continue

        chosen_direction = direction_from_key(move_input)
        if not chosen_direction:
            print("Invalid input. Use W, A, S, D.")
            continue

        # 3. Process the move (spawn and win/over checks happen inside the turn)
        outcome = session.move(chosen_direction)
        if not outcome.accepted:
            if outcome.reason == REJECT_NO_CHANGE:
                print("Move did not change the board. Try a different direction.")
            continue

        if outcome.won_this_turn:
            print(f"Congratulations! You reached the {settings.win_tile} tile! Keep playing to beat your score.")
        display_board_state(session)

    # 4. Game Ended
    print("\n--- Final Board State ---")
    display_board_state(session)
    if session.is_over:
        print("No more moves possible. Better luck next time!")
    print(session.share_message())
    return session


# --- Display Function (Example of external usage) ---
def display_board_state(session: GameSession, width: Optional[int] = None):
    """Prints the board, score, and game status to the console."""
    progress = session.progress
    print(f"\nScore: {session.score}    Best: {session.best_score}")
    status_message = {
        GameProgressState.IN_PROGRESS: f"Status: {progress.name}",
        GameProgressState.GAME_WON: "YOU WON! (still playing)",
        GameProgressState.GAME_OVER: "GAME OVER!"
    }
    print(status_message.get(progress, f"Status: {progress.name} (Unknown)"))

    width = width or max(len(str(session.grid.max_value())), 1)
    for row in session.grid.values_snapshot():
        print("\t".join(str(v).rjust(width) if v else ".".rjust(width) for v in row))
    print("-" * (len(session.grid.values_snapshot()) * 6))  # Adjust width based on board size


if __name__ == "__main__":
    main()
