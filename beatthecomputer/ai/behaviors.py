"""
Simple behaviors usable as rollout policies or benchmark opponents.
"""
import random
from typing import Optional

from beatthecomputer.models.game import Action, GameContext


class PlayRandom:
    """
    Picks a legal action uniformly at random.

    Each instance owns its random stream. `clone` seeds the copy from this
    stream, so clones never share state with their source.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng if rng is not None else random.Random()

    def clone(self) -> 'PlayRandom':
        return PlayRandom(random.Random(self.rng.getrandbits(64)))

    def choose_action(self, state: GameContext) -> Action:
        return self.rng.choice(state.legal_actions())

    def __repr__(self):
        return "PlayRandom()"
