"""
MCTS Node implementation.
Each node represents a game position in the search tree and owns its children.
Implements the four phases: Selection, Expansion, Simulation, Backpropagation.
"""
import math
from concurrent.futures import Executor
from typing import Dict, List, Optional

from beatthecomputer.ai.errors import InvalidArgumentError, InvalidStateError
from beatthecomputer.ai.mcts.constants import (
    MCTS_EPSILON,
    MCTS_EXPLORATION_CONSTANT,
    MCTS_ROLLOUTS_PER_NODE,
)
from beatthecomputer.models.game import (
    Action,
    Behavior,
    GameContext,
    GameOutcome,
    Player,
)


class MCTSNode:
    """
    A node in the MCTS search tree.

    Statistics are kept in player ONE units: `p1_wins` accumulates the signed
    outcome (+1 win, -1 loss, 0 draw) of every simulation that passed through
    this node, and the perspective of the player choosing is applied only
    when reading `wins`.

    Attributes:
        active_player: Player to move at this node
        outcome: Decided outcome of the position (UNDECIDED if still in play)
        p1_wins: Accumulated signed player ONE outcome; +inf/-inf for forced win/loss
        visits: Number of simulations that passed through this node
        children: Mapping from action to child node, None until expanded
    """

    def __init__(
        self,
        state: GameContext,
        rollout_behavior: Behavior,
        rollouts_per_node: int = MCTS_ROLLOUTS_PER_NODE,
        explore_factor: float = MCTS_EXPLORATION_CONSTANT,
        executor: Optional[Executor] = None,
    ):
        """
        Initialize a node from the position it represents.

        Args:
            state: Position of this node (read, never stored)
            rollout_behavior: Behavior used for both seats during playouts
            rollouts_per_node: Number of playouts averaged per simulation
            explore_factor: UCT exploration constant
            executor: Optional pool the playouts of one simulation fan out over
        """
        if rollouts_per_node < 1:
            raise InvalidArgumentError(f"rollouts_per_node must be at least 1, got {rollouts_per_node}")

        self.explore_factor = explore_factor
        self.rollout_behavior = rollout_behavior
        self.rollouts_per_node = rollouts_per_node
        self.executor = executor

        self.active_player = state.active_player()
        self.outcome = state.outcome()
        if self.outcome is GameOutcome.WIN:
            self.p1_wins = math.inf
        elif self.outcome is GameOutcome.LOSS:
            self.p1_wins = -math.inf
        else:
            self.p1_wins = 0.0
        self.visits = 0
        self.children: Optional[Dict[Action, 'MCTSNode']] = None

    @property
    def is_leaf(self) -> bool:
        return self.children is None

    @property
    def is_terminal(self) -> bool:
        return self.outcome is not GameOutcome.UNDECIDED

    @property
    def score(self) -> float:
        """Value of this node for the player who moved into it."""
        return self.wins(self.active_player.opponent) / (self.visits + MCTS_EPSILON)

    def step(self, state: GameContext):
        """
        Run one search iteration from this node.

        Args:
            state: Position of this node; it is cloned and never mutated
        """
        visited: List[MCTSNode] = []
        current_state = state.clone()

        # Selection
        current = self
        visited.append(current)
        while not current.is_leaf:
            nxt = current.select()
            current_state.apply_action(current.action_of_child(nxt))
            current = nxt
            visited.append(current)

        # Expansion
        current.expand(current_state)

        # Simulation
        result = current.simulate(current_state)

        # Backpropagation
        current.backpropagate(result, visited)

    def select(self) -> 'MCTSNode':
        """
        Return the child with the highest UCT value for the player to move.
        Ties go to the earliest child, so unvisited children are taken in action order.
        """
        best_child = None
        best_value = -math.inf
        for child in self.children.values():
            value = child.uct(self.visits, self.active_player)
            if best_child is None or value > best_value:
                best_child = child
                best_value = value
        return best_child

    def expand(self, state: GameContext):
        """Create one child per legal action. Terminal nodes are never expanded."""
        if self.is_terminal:
            return
        self.children = {}
        for action in state.legal_actions():
            successor = state.clone()
            successor.apply_action(action)
            self.children[action] = MCTSNode(
                successor,
                self.rollout_behavior,
                rollouts_per_node=self.rollouts_per_node,
                explore_factor=self.explore_factor,
                executor=self.executor,
            )

    def simulate(self, state: GameContext) -> float:
        """
        Estimate the signed outcome of the game from `state` for player ONE.

        A decided position returns its outcome directly. Otherwise the
        playouts run with freshly cloned behaviors so no two of them share
        a random stream, fanning out over the executor when one is set.

        Returns:
            Average signed outcome in [-1, 1]
        """
        if state.is_decided():
            return float(state.outcome().to_scalar())

        playouts = [
            (self.rollout_behavior.clone(), self.rollout_behavior.clone())
            for _ in range(self.rollouts_per_node)
        ]
        if self.executor is None or len(playouts) == 1:
            outcomes = [state.simulate(one, two) for one, two in playouts]
        else:
            futures = [self.executor.submit(state.simulate, one, two) for one, two in playouts]
            outcomes = [future.result() for future in futures]

        return sum(outcome.to_scalar() for outcome in outcomes) / len(outcomes)

    def backpropagate(self, result: float, visited: List['MCTSNode']):
        """Add the simulation result to every node on the selected path."""
        for node in visited:
            node.update(result)

    def update(self, result: float):
        self.p1_wins += result
        self.visits += 1

    def get_action_scores(self) -> Dict[Action, float]:
        """
        Score every action available at this node.

        Returns:
            Mapping from action to the value of its child for the player taking it

        Raises:
            InvalidStateError: if this node has never been expanded
        """
        if self.children is None:
            raise InvalidStateError("Node has no children to compare")

        return {action: child.score for action, child in self.children.items()}

    def action_of_child(self, child: 'MCTSNode') -> Action:
        for action, node in self.children.items():
            # identity, not equality: two subtrees may hold identical statistics
            if node is child:
                return action
        raise InvalidArgumentError("The node passed in is not a child of this node")

    def uct(self, total_visits: float, player: Player) -> float:
        return self.exploit(player) + self.explore(total_visits) + MCTS_EPSILON

    def exploit(self, player: Player) -> float:
        return self.wins(player) / (self.visits + MCTS_EPSILON)

    def explore(self, total_visits: float) -> float:
        # ln(eps) < 0 for a parent that was expanded but never updated
        log_visits = max(0.0, math.log(total_visits + MCTS_EPSILON))
        return self.explore_factor * math.sqrt(log_visits / (self.visits + MCTS_EPSILON))

    def wins(self, player: Player) -> float:
        if player is Player.ONE:
            return self.p1_wins
        if player is Player.TWO:
            return self.visits - self.p1_wins
        raise InvalidArgumentError(f"Can't get wins of {player!r}")

    def __repr__(self):
        children = 0 if self.children is None else len(self.children)
        return (f"MCTSNode(player={self.active_player.name}, visits={self.visits}, "
                f"p1_wins={self.p1_wins:.2f}, children={children})")
