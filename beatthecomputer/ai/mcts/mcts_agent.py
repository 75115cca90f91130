"""
MCTS Agent implementation.
Drives MCTSNode.step against a time budget. The agent is both the evaluator
used to label training examples and a Behavior that can play games.
"""
import logging
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any, Dict, List, Optional

from beatthecomputer.ai.behaviors import PlayRandom
from beatthecomputer.ai.errors import InvalidArgumentError
from beatthecomputer.ai.mcts.constants import (
    MCTS_EXPLORATION_CONSTANT,
    MCTS_ROLLOUT_WORKERS,
    MCTS_ROLLOUTS_PER_NODE,
    MCTS_TIME_LIMIT_MS,
)
from beatthecomputer.ai.mcts.mcts_node import MCTSNode
from beatthecomputer.models.game import Action, Behavior, GameContext, outcome_score

logger = logging.getLogger(__name__)


class MCTSAgent:
    """
    Monte Carlo Tree Search agent with a per-call time budget.
    """

    def __init__(
        self,
        time_limit: float = MCTS_TIME_LIMIT_MS,
        explore_factor: float = MCTS_EXPLORATION_CONSTANT,
        rollouts_per_node: int = MCTS_ROLLOUTS_PER_NODE,
        rollout_workers: int = MCTS_ROLLOUT_WORKERS,
        rollout_behavior: Optional[Behavior] = None,
        seed: Optional[int] = None,
    ):
        """
        Initialize MCTS agent.

        Args:
            time_limit: Search time per evaluation, in milliseconds
            explore_factor: UCT exploration constant
            rollouts_per_node: Number of playouts averaged per simulation
            rollout_workers: Threads the playouts of one simulation fan out over (1 = inline)
            rollout_behavior: Behavior used for playouts (default: uniform random)
            seed: Seed for the default rollout behavior's random stream
        """
        if time_limit <= 0:
            raise InvalidArgumentError(f"time_limit must be positive, got {time_limit}")
        if rollout_workers < 1:
            raise InvalidArgumentError(f"rollout_workers must be at least 1, got {rollout_workers}")

        self.time_limit = time_limit
        self.explore_factor = explore_factor
        self.rollouts_per_node = rollouts_per_node
        self.rollout_workers = rollout_workers
        self.rollout_behavior = rollout_behavior if rollout_behavior is not None else PlayRandom(random.Random(seed))
        self._rollout_executor: Optional[ThreadPoolExecutor] = None
        self._last_root: Optional[MCTSNode] = None

    @property
    def time_budget(self) -> timedelta:
        return timedelta(milliseconds=self.time_limit)

    def search(self, state: GameContext, cancel: Optional[threading.Event] = None) -> MCTSNode:
        """
        Grow a fresh tree from `state` until the time budget runs out.

        Cancellation is checked between whole iterations; at least one
        iteration always runs so the root is expanded.

        Returns:
            Root node of the search tree
        """
        root = MCTSNode(
            state,
            self.rollout_behavior,
            rollouts_per_node=self.rollouts_per_node,
            explore_factor=self.explore_factor,
            executor=self._executor(),
        )
        deadline = time.perf_counter() + self.time_limit / 1000.0

        iterations = 0
        while True:
            root.step(state)
            iterations += 1
            if cancel is not None and cancel.is_set():
                logger.debug("Search cancelled after %d iterations", iterations)
                break
            if time.perf_counter() >= deadline:
                break

        self._last_root = root
        return root

    def evaluate(self, state: GameContext, cancel: Optional[threading.Event] = None) -> float:
        """
        Value of `state` for its player to move.

        A decided position is worth its outcome score. Otherwise the value
        is the best action score found by the search. Scores are unbounded
        in general (+inf for a forced win); callers that need a label in
        [0, 1] clamp it.
        """
        if state.is_decided():
            return outcome_score(state.outcome(), state.active_player())

        root = self.search(state, cancel)
        return max(root.get_action_scores().values())

    def choose_action(self, state: GameContext) -> Action:
        root = self.search(state)
        scores = root.get_action_scores()
        return max(scores, key=scores.get)

    def clone(self) -> 'MCTSAgent':
        """Copy with the same settings and an independent rollout stream."""
        return MCTSAgent(
            time_limit=self.time_limit,
            explore_factor=self.explore_factor,
            rollouts_per_node=self.rollouts_per_node,
            rollout_workers=self.rollout_workers,
            rollout_behavior=self.rollout_behavior.clone(),
        )

    def get_action_stats(self) -> List[Dict[str, Any]]:
        """
        Get statistics for all actions from the last search.

        Returns:
            List of {action, visits, score} dictionaries, most visited first
        """
        if self._last_root is None or self._last_root.children is None:
            return []

        stats = [
            {'action': action, 'visits': child.visits, 'score': child.score}
            for action, child in self._last_root.children.items()
        ]
        stats.sort(key=lambda x: x['visits'], reverse=True)
        return stats

    def close(self):
        """Shut down the rollout thread pool, if one was started."""
        if self._rollout_executor is not None:
            self._rollout_executor.shutdown(wait=True)
            self._rollout_executor = None

    def _executor(self) -> Optional[ThreadPoolExecutor]:
        if self.rollout_workers <= 1:
            return None
        if self._rollout_executor is None:
            self._rollout_executor = ThreadPoolExecutor(
                max_workers=self.rollout_workers,
                thread_name_prefix="mcts-rollout",
            )
        return self._rollout_executor

    def __getstate__(self):
        # Pools and trees stay with the process that built them
        state = self.__dict__.copy()
        state['_rollout_executor'] = None
        state['_last_root'] = None
        return state

    def __repr__(self):
        return (f"MCTSAgent(time_limit={self.time_limit}, explore_factor={self.explore_factor}, "
                f"rollouts_per_node={self.rollouts_per_node}, rollout_workers={self.rollout_workers})")
