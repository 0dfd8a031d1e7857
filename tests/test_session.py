import random

import pytest

from core import DIRECTION, GameProgressState, Grid
from session import (
    GameSession,
    REJECT_GAME_OVER,
    REJECT_NO_CHANGE,
    REJECT_TURN_IN_PROGRESS,
    TurnPhase,
)
from settings import GameSettings
from storage import InMemoryBestScoreStore


def make_session(values=None, seed=0, store=None, **settings):
    session = GameSession(GameSettings(**settings), store or InMemoryBestScoreStore(), random.Random(seed))
    if values is not None:
        session.load_grid(Grid.from_values(values))
    return session


def empty_rows(n, size=4):
    return [[0] * size for _ in range(n)]


class BrokenStore:
    def load_best_score(self):
        raise OSError("storage unavailable")

    def save_best_score(self, score):
        raise OSError("storage unavailable")


def test_new_session_starts_with_two_spawned_tiles():
    session = make_session()
    views = session.tile_views()
    assert len(views) == 2
    assert all(view.spawned_this_turn and not view.merged_this_turn for view in views)
    assert session.score == 0
    assert session.progress == GameProgressState.IN_PROGRESS
    assert session.phase == TurnPhase.IDLE


def test_accepted_turn_merges_spawns_and_scores():
    session = make_session([[2, 2, 0, 0]] + empty_rows(3))
    survivor_id = session.grid.tile_at(0, 0).id

    outcome = session.move(DIRECTION.LEFT)

    assert outcome.accepted
    assert outcome.score_delta == 4
    assert session.score == 4
    assert session.move_count == 1
    # (pre-move tiles - merges) + spawned tile
    assert len(session.grid) == 2 - 1 + 1
    views = {view.id: view for view in session.tile_views()}
    assert views[survivor_id].merged_this_turn
    assert views[survivor_id].value == 4
    assert views[outcome.spawned.id].spawned_this_turn
    assert len({view.id for view in session.tile_views()}) == len(session.tile_views())


def test_flags_do_not_carry_over_to_next_turn():
    session = make_session([[2, 2, 0, 0]] + empty_rows(3), four_probability=0.0)
    first = session.move(DIRECTION.LEFT)
    # the 4 sits on the top row, so moving down always changes the grid
    second = session.move(DIRECTION.DOWN)
    assert second.accepted

    merged = [view for view in session.tile_views() if view.merged_this_turn]
    spawned = [view.id for view in session.tile_views() if view.spawned_this_turn]
    assert first.spawned.id not in spawned
    assert spawned == [second.spawned.id]
    assert merged == []


def test_no_change_move_is_rejected_without_side_effects():
    session = make_session([[2, 4, 0, 0]] + empty_rows(3))
    before = session.grid.values_snapshot()

    outcome = session.move(DIRECTION.LEFT)

    assert not outcome.accepted
    assert outcome.reason == REJECT_NO_CHANGE
    assert outcome.score_delta == 0
    assert session.grid.values_snapshot() == before
    assert session.move_count == 0
    assert session.phase == TurnPhase.IDLE


def test_invalid_direction_raises():
    session = make_session()
    with pytest.raises(ValueError):
        session.move("sideways")
    assert session.phase == TurnPhase.IDLE


def test_phases_run_in_order():
    phases = []
    session = make_session([[2, 2, 0, 0]] + empty_rows(3))
    session.on_phase = lambda s, phase: phases.append(phase)

    session.move(DIRECTION.LEFT)
    session.move(DIRECTION.LEFT)  # 4 and the spawn may or may not move; phases still start with RESOLVING

    assert phases[:4] == [TurnPhase.RESOLVING, TurnPhase.SPAWNING, TurnPhase.EVALUATING, TurnPhase.IDLE]
    assert phases[4] == TurnPhase.RESOLVING
    assert phases[-1] == TurnPhase.IDLE


def test_reentrant_move_during_turn_is_rejected():
    inner = []

    def observer(session, phase):
        if phase == TurnPhase.SPAWNING:
            inner.append(session.move(DIRECTION.RIGHT))

    session = make_session([[2, 2, 0, 0]] + empty_rows(3))
    session.on_phase = observer

    outcome = session.move(DIRECTION.LEFT)

    assert outcome.accepted
    assert len(inner) == 1
    assert not inner[0].accepted
    assert inner[0].reason == REJECT_TURN_IN_PROGRESS
    assert session.move_count == 1


def test_new_game_is_refused_mid_turn():
    errors = []

    def observer(session, phase):
        if phase == TurnPhase.RESOLVING:
            try:
                session.new_game()
            except RuntimeError as e:
                errors.append(e)

    session = make_session([[2, 2, 0, 0]] + empty_rows(3))
    session.on_phase = observer
    session.move(DIRECTION.LEFT)
    assert len(errors) == 1


def test_exhausted_grid_latches_game_over():
    session = make_session([[8, 4], [2, 2]], size=2, four_probability=0.0)

    outcome = session.move(DIRECTION.LEFT)

    assert outcome.accepted
    assert session.grid.values_snapshot() == [[8, 4], [4, 2]]
    assert session.is_over
    assert session.progress == GameProgressState.GAME_OVER
    assert session.available_moves() == []

    again = session.move(DIRECTION.UP)
    assert not again.accepted
    assert again.reason == REJECT_GAME_OVER


def test_win_is_sticky_and_play_continues():
    session = make_session([[4, 4, 0, 0]] + empty_rows(3), win_tile=8, four_probability=0.0)

    first = session.move(DIRECTION.LEFT)
    assert first.won_this_turn
    assert session.has_won
    assert session.progress == GameProgressState.GAME_WON

    second = session.move(DIRECTION.RIGHT)
    assert second.accepted
    assert not second.won_this_turn
    assert session.has_won


def test_score_is_monotonic_over_a_game():
    session = make_session(seed=42)
    rng = random.Random(42)
    last = 0
    for _ in range(200):
        if session.is_over:
            break
        session.move(rng.choice(list(DIRECTION)))
        assert session.score >= last
        last = session.score
        assert session.best_score >= session.score


def test_best_score_is_saved_and_kept_across_games():
    store = InMemoryBestScoreStore()
    session = make_session([[2, 2, 0, 0]] + empty_rows(3), store=store)

    session.move(DIRECTION.LEFT)
    assert session.best_score == 4
    assert store.load_best_score() == 4

    session.new_game()
    assert session.score == 0
    assert session.best_score == 4
    assert not session.has_won and not session.is_over


def test_best_score_loaded_from_store():
    session = make_session(store=InMemoryBestScoreStore(initial=512))
    assert session.best_score == 512


def test_broken_store_does_not_block_play():
    session = make_session([[2, 2, 0, 0]] + empty_rows(3), store=BrokenStore())
    assert session.best_score == 0
    outcome = session.move(DIRECTION.LEFT)
    assert outcome.accepted
    assert session.best_score == 4


def test_share_message():
    session = make_session([[4, 4, 0, 0]] + empty_rows(3), win_tile=8)
    assert "scored 0 points" in session.share_message()
    session.move(DIRECTION.LEFT)
    assert session.share_message() == "I reached 8! Final score: 8 points!"


def test_load_grid_clears_turn_flags():
    session = make_session([[2, 0, 0, 0]] + empty_rows(3))
    views = session.tile_views()
    assert len(views) == 1
    assert not views[0].spawned_this_turn and not views[0].merged_this_turn
    assert not session.is_over

    session.load_grid(Grid.from_values([[2, 4], [4, 2]]))
    assert session.is_over


def test_best_score_never_drops_with_shared_store():
    store = InMemoryBestScoreStore()
    high = make_session(store=store)
    low = make_session(store=store)  # created before `high` scored

    high.load_grid(Grid.from_values([[64, 64, 0, 0]] + empty_rows(3)))
    high.move(DIRECTION.LEFT)
    assert store.load_best_score() == 128

    low.load_grid(Grid.from_values([[2, 2, 0, 0]] + empty_rows(3)))
    low.move(DIRECTION.LEFT)

    assert store.load_best_score() == 128
    assert low.best_score == 128
    assert low.score == 4


def test_new_game_picks_up_best_score_from_other_sessions():
    store = InMemoryBestScoreStore()
    stale = make_session(store=store)
    store.save_best_score(300)

    stale.new_game()

    assert stale.best_score == 300
