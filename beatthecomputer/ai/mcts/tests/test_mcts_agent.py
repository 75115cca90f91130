"""
Pytest tests for the time-budgeted MCTS agent.
"""
import pickle
import threading
from datetime import timedelta

import pytest

from beatthecomputer.ai.errors import InvalidArgumentError
from beatthecomputer.ai.mcts.mcts_agent import MCTSAgent
from beatthecomputer.game.tictactoe import TicTacToe
from beatthecomputer.models.game import GameOutcome, Player
from .test_utils import FirstLegal, ScriptedGame


def board(x_cells, o_cells) -> TicTacToe:
    cells = [None] * 9
    for i in x_cells:
        cells[i] = Player.ONE
    for i in o_cells:
        cells[i] = Player.TWO
    to_move = Player.ONE if len(x_cells) == len(o_cells) else Player.TWO
    return TicTacToe(board=cells, to_move=to_move)


def test_evaluate_decided_position_skips_search():
    agent = MCTSAgent(time_limit=10_000, seed=1)
    won_by_x = board([0, 1, 2], [3, 4])

    assert won_by_x.active_player() is Player.TWO
    assert agent.evaluate(won_by_x) == 0.0, "Player to move has already lost"
    assert agent.evaluate(ScriptedGame(GameOutcome.DRAW)) == 0.0
    assert agent.evaluate(board([0, 1, 8], [3, 4, 5])) == -1.0, "Lost for ONE, ONE to move"
    assert agent.get_action_stats() == [], "No search should have run"


def test_choose_action_takes_immediate_win(game_seed):
    agent = MCTSAgent(time_limit=50, seed=game_seed)
    state = board([0, 1], [3, 4])

    assert agent.choose_action(state) == 2
    assert state.board[2] is None, "Search must not mutate the caller's state"


def test_evaluate_returns_best_score_for_player_to_move(game_seed):
    agent = MCTSAgent(time_limit=30, seed=game_seed)
    state = ScriptedGame({"a": {"x": GameOutcome.DRAW}, "b": {"x": GameOutcome.LOSS}})

    value = agent.evaluate(state)

    assert value == pytest.approx(0.0, abs=1e-3), "Best line for ONE is the draw"


def test_preset_cancel_runs_exactly_one_iteration(tictactoe, game_seed):
    agent = MCTSAgent(time_limit=60_000, seed=game_seed)
    cancel = threading.Event()
    cancel.set()

    root = agent.search(tictactoe, cancel)

    assert root.visits == 1
    assert root.children is not None, "The single iteration expands the root"
    assert agent.get_action_stats()[0]['visits'] == 0


def test_cancel_from_another_thread_stops_search(tictactoe, game_seed):
    agent = MCTSAgent(time_limit=60_000, seed=game_seed)
    cancel = threading.Event()
    timer = threading.Timer(0.05, cancel.set)
    timer.start()
    try:
        score = agent.evaluate(tictactoe, cancel)
    finally:
        timer.cancel()

    assert -1.0 <= score <= 1.0


def test_action_stats_are_sorted_by_visits(tictactoe, game_seed):
    agent = MCTSAgent(time_limit=30, seed=game_seed)
    agent.search(tictactoe)

    stats = agent.get_action_stats()
    visits = [entry['visits'] for entry in stats]

    assert len(stats) == 9
    assert visits == sorted(visits, reverse=True)
    assert sum(visits) == agent._last_root.visits - 1


def test_time_budget_is_a_timedelta():
    assert MCTSAgent(time_limit=250).time_budget == timedelta(milliseconds=250)


@pytest.mark.parametrize("kwargs", [
    {"time_limit": 0},
    {"time_limit": -5},
    {"rollout_workers": 0},
])
def test_invalid_settings_are_rejected(kwargs):
    with pytest.raises(InvalidArgumentError):
        MCTSAgent(**kwargs)


def test_clone_keeps_settings_and_splits_random_stream():
    agent = MCTSAgent(time_limit=20, explore_factor=2.0, rollouts_per_node=3, rollout_workers=2, seed=7)
    clone = agent.clone()

    assert (clone.time_limit, clone.explore_factor, clone.rollouts_per_node, clone.rollout_workers) == (20, 2.0, 3, 2)
    assert clone.rollout_behavior is not agent.rollout_behavior
    assert clone.rollout_behavior.rng is not agent.rollout_behavior.rng


def test_custom_rollout_behavior_is_used():
    agent = MCTSAgent(time_limit=20, rollout_behavior=FirstLegal())

    assert isinstance(agent.clone().rollout_behavior, FirstLegal)


def test_agent_with_rollout_pool_pickles_after_search(tictactoe, game_seed):
    agent = MCTSAgent(time_limit=20, rollouts_per_node=4, rollout_workers=2, seed=game_seed)
    try:
        agent.search(tictactoe)
        restored = pickle.loads(pickle.dumps(agent))
    finally:
        agent.close()

    assert restored.rollout_workers == 2
    assert restored.get_action_stats() == []
    assert agent._rollout_executor is None, "close() releases the pool"


def test_agent_plays_full_game_as_behavior(tictactoe, random_behavior):
    agent = MCTSAgent(time_limit=10, seed=3)

    outcome = tictactoe.simulate(agent, random_behavior)

    assert outcome is not GameOutcome.UNDECIDED
