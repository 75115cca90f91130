"""
Tic-tac-toe implementing the GameContext surface.

Used by the console scripts and the tests as a small, fully known game.
Cells are indexed 0-8 row by row; an action is the index of an empty cell.
"""
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from beatthecomputer.models.game import Behavior, FeatureVector, GameOutcome, Player

LINES = (
    (0, 1, 2), (3, 4, 5), (6, 7, 8),
    (0, 3, 6), (1, 4, 7), (2, 5, 8),
    (0, 4, 8), (2, 4, 6),
)


@dataclass
class TicTacToe:
    board: List[Optional[Player]] = field(default_factory=lambda: [None] * 9)
    to_move: Player = Player.ONE

    def active_player(self) -> Player:
        return self.to_move

    def outcome(self) -> GameOutcome:
        for a, b, c in LINES:
            owner = self.board[a]
            if owner is not None and owner == self.board[b] == self.board[c]:
                return GameOutcome.WIN if owner is Player.ONE else GameOutcome.LOSS
        if all(cell is not None for cell in self.board):
            return GameOutcome.DRAW
        return GameOutcome.UNDECIDED

    def is_decided(self) -> bool:
        return self.outcome() is not GameOutcome.UNDECIDED

    def clone(self) -> 'TicTacToe':
        return TicTacToe(board=self.board.copy(), to_move=self.to_move)

    def legal_actions(self) -> List[int]:
        if self.is_decided():
            return []
        return [i for i, cell in enumerate(self.board) if cell is None]

    def apply_action(self, action: int) -> None:
        if self.board[action] is not None:
            raise ValueError(f"Cell {action} is already taken")
        self.board[action] = self.to_move
        self.to_move = self.to_move.opponent

    def featurize(self) -> FeatureVector:
        """One feature per cell (+1 ONE, -1 TWO, 0 empty) plus the side to move."""
        cells = tuple(
            0.0 if cell is None else (1.0 if cell is Player.ONE else -1.0)
            for cell in self.board
        )
        return cells + (1.0 if self.to_move is Player.ONE else -1.0,)

    def simulate(
        self,
        behavior_one: Behavior,
        behavior_two: Behavior,
        cancel: Optional[threading.Event] = None,
    ) -> GameOutcome:
        state = self.clone()
        while not state.is_decided():
            if cancel is not None and cancel.is_set():
                return GameOutcome.UNDECIDED
            behavior = behavior_one if state.to_move is Player.ONE else behavior_two
            state.apply_action(behavior.choose_action(state))
        return state.outcome()

    def __str__(self) -> str:
        marks = {None: ".", Player.ONE: "X", Player.TWO: "O"}
        rows = ["".join(marks[c] for c in self.board[r * 3:r * 3 + 3]) for r in range(3)]
        return "\n".join(rows)
