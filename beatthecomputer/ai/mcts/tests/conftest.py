"""
Pytest configuration and shared fixtures for MCTS tests.
"""
import random

import pytest

from beatthecomputer.ai.behaviors import PlayRandom
from beatthecomputer.game.tictactoe import TicTacToe
from beatthecomputer.models.game import GameOutcome

MCTS_TEST_SEED = 42


@pytest.fixture
def game_seed():
    """Seed for random streams (deterministic rollouts and sampling)."""
    return MCTS_TEST_SEED


@pytest.fixture
def random_behavior(game_seed):
    return PlayRandom(random.Random(game_seed))


@pytest.fixture
def tictactoe():
    return TicTacToe()


@pytest.fixture
def three_way_tree():
    """Root with three undecided children, each with two terminal replies."""
    return {
        "a": {"x": GameOutcome.WIN, "y": GameOutcome.LOSS},
        "b": {"x": GameOutcome.DRAW, "y": GameOutcome.LOSS},
        "c": {"x": GameOutcome.WIN, "y": GameOutcome.DRAW},
    }
