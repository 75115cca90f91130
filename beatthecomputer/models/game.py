"""
Value types and collaborator contracts shared by the search engine,
the example generator and the benchmark.

The engine never looks inside a game: it only talks to the surfaces
declared by GameContext, Behavior and Evaluator below.
"""
import threading
from datetime import timedelta
from enum import Enum
from typing import Hashable, List, Optional, Protocol, Tuple

from beatthecomputer.ai.errors import InvalidArgumentError

FeatureVector = Tuple[float, ...]
Action = Hashable


class Player(Enum):
    ONE = 0
    TWO = 1

    @property
    def opponent(self) -> 'Player':
        return Player.TWO if self is Player.ONE else Player.ONE


class GameOutcome(Enum):
    UNDECIDED = "undecided"
    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"

    def to_scalar(self) -> int:
        """
        Signed value of a decided outcome from player ONE's perspective.

        Raises:
            InvalidArgumentError: if the outcome is UNDECIDED
        """
        if self is GameOutcome.WIN:
            return 1
        if self is GameOutcome.LOSS:
            return -1
        if self is GameOutcome.DRAW:
            return 0
        raise InvalidArgumentError("Can't convert an undecided outcome to a scalar")


def win_share(outcome: GameOutcome, player: Player = Player.ONE) -> float:
    """
    Share of a decided game credited to `player`: 1 for a win, 0 for a loss
    and 0.5 for a draw.
    """
    share = (1 + outcome.to_scalar()) / 2
    return share if player is Player.ONE else 1 - share


def outcome_score(outcome: GameOutcome, player: Player) -> float:
    """
    Value of a decided outcome for `player` in search action-score units:
    the signed scalar for ONE, one minus it for TWO.
    """
    scalar = outcome.to_scalar()
    return float(scalar) if player is Player.ONE else 1.0 - scalar


class Behavior(Protocol):
    def clone(self) -> 'Behavior':
        ...

    def choose_action(self, state: 'GameContext') -> Action:
        ...


class GameContext(Protocol):
    """
    A game position. `simulate` must play on a copy and leave the
    receiver untouched; it returns UNDECIDED when cancelled mid-game.
    """

    def active_player(self) -> Player:
        ...

    def outcome(self) -> GameOutcome:
        ...

    def is_decided(self) -> bool:
        ...

    def clone(self) -> 'GameContext':
        ...

    def apply_action(self, action: Action) -> None:
        ...

    def legal_actions(self) -> List[Action]:
        ...

    def featurize(self) -> FeatureVector:
        ...

    def simulate(
        self,
        behavior_one: Behavior,
        behavior_two: Behavior,
        cancel: Optional[threading.Event] = None,
    ) -> GameOutcome:
        ...


class Evaluator(Protocol):
    time_limit: float

    @property
    def time_budget(self) -> timedelta:
        ...

    def evaluate(self, state: GameContext, cancel: Optional[threading.Event] = None) -> float:
        ...

    def clone(self) -> 'Evaluator':
        ...
