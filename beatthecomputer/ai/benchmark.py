"""
Console script for pitting two behaviors against each other.

Plays many independent games from the same initial position, optionally in
parallel and optionally swapping seats every game, and reports each outcome
through a callback.
"""
import argparse
import logging
import random
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Optional

import numpy as np

from beatthecomputer.ai.behaviors import PlayRandom
from beatthecomputer.ai.constants import (
    BENCHMARK_BEHAVIORS,
    BENCHMARK_CONFIDENCE_Z,
    BENCHMARK_NUM_GAMES,
    BENCHMARK_TIME_LIMIT_MS,
)
from beatthecomputer.ai.mcts.mcts_agent import MCTSAgent
from beatthecomputer.ai.utils import configure_logging
from beatthecomputer.game.tictactoe import TicTacToe
from beatthecomputer.models.game import Behavior, GameContext, GameOutcome, Player, win_share

logger = logging.getLogger(__name__)

Callback = Callable[[GameOutcome], None]


def get_player(
    role: Player,
    behavior_one: Behavior,
    behavior_two: Behavior,
    simulation_num: int,
    alternate: bool,
) -> Behavior:
    """
    Behavior occupying `role` in game number `simulation_num`.

    Without alternation behavior_one always plays ONE. With alternation
    behavior_one plays ONE in even-numbered games and TWO in odd-numbered ones.
    """
    one_first = not alternate or simulation_num % 2 == 0
    if role is Player.ONE:
        return behavior_one if one_first else behavior_two
    return behavior_two if one_first else behavior_one


def play_game(
    behavior_one: Behavior,
    behavior_two: Behavior,
    context: GameContext,
    simulation_num: int,
    alternate: bool,
    cancel: Optional[threading.Event] = None,
) -> GameOutcome:
    """Play one game with fresh clones of both behaviors, closing the clones afterwards."""
    player_one = get_player(Player.ONE, behavior_one, behavior_two, simulation_num, alternate).clone()
    player_two = get_player(Player.TWO, behavior_one, behavior_two, simulation_num, alternate).clone()
    try:
        return context.simulate(player_one, player_two, cancel)
    finally:
        for player in (player_one, player_two):
            close = getattr(player, "close", None)
            if close is not None:
                close()


def simulate_games(
    behavior_one: Behavior,
    behavior_two: Behavior,
    context: GameContext,
    simulations: int,
    parallel: bool,
    alternate: bool,
    callback: Callback,
    cancel: Optional[threading.Event] = None,
    max_workers: Optional[int] = None,
):
    """
    Play `simulations` games between two behaviors.

    Sequentially, cancellation is checked before each game, and a game
    that comes back after cancellation isn't reported. In parallel, no game
    starts once cancellation is signaled, but games already running finish
    and are reported. Parallel callbacks arrive in no particular order and
    may run concurrently. A failing game stops further games from starting
    and its error is raised here; `cancel` itself is never set.

    Each game plays fresh clones of both behaviors, closed when the game ends.

    Args:
        behavior_one: First behavior
        behavior_two: Second behavior
        context: Initial position of every game
        simulations: Number of games
        parallel: Play games concurrently
        alternate: Swap seats every other game
        callback: Receives the outcome of every reported game
        cancel: Event that stops further games when set
        max_workers: Thread pool size in parallel mode (None = executor default)
    """
    if cancel is None:
        cancel = threading.Event()

    if parallel:
        _simulate_parallel(behavior_one, behavior_two, context, simulations, alternate, callback, cancel, max_workers)
        return

    for i in range(simulations):
        if cancel.is_set():
            logger.info("Benchmark cancelled after %d/%d games", i, simulations)
            break
        result = play_game(behavior_one, behavior_two, context, i, alternate, cancel)
        if cancel.is_set():
            break
        callback(result)


def _simulate_parallel(
    behavior_one: Behavior,
    behavior_two: Behavior,
    context: GameContext,
    simulations: int,
    alternate: bool,
    callback: Callback,
    cancel: threading.Event,
    max_workers: Optional[int],
):
    # set on the first failure; the caller's cancel event is only ever read
    stop = threading.Event()

    def run(simulation_num: int):
        if cancel.is_set() or stop.is_set():
            return
        try:
            # no cancel here: games already started run to the end
            result = play_game(behavior_one, behavior_two, context, simulation_num, alternate)
            callback(result)
        except BaseException:
            stop.set()
            raise

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="benchmark") as executor:
        futures = [executor.submit(run, i) for i in range(simulations)]
        try:
            for future in futures:
                future.result()
        except BaseException:
            stop.set()
            raise


class BenchmarkResults:
    """
    Thread-safe outcome tally, usable directly as a simulate_games callback.

    Outcomes are counted from player ONE's perspective.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.counts: Dict[GameOutcome, int] = {outcome: 0 for outcome in GameOutcome}

    def __call__(self, outcome: GameOutcome):
        with self._lock:
            self.counts[outcome] += 1

    @property
    def games(self) -> int:
        return sum(self.counts.values())

    @property
    def decided(self) -> int:
        return self.games - self.counts[GameOutcome.UNDECIDED]

    @property
    def wins(self) -> int:
        return self.counts[GameOutcome.WIN]

    @property
    def losses(self) -> int:
        return self.counts[GameOutcome.LOSS]

    @property
    def draws(self) -> int:
        return self.counts[GameOutcome.DRAW]

    @property
    def win_rate(self) -> float:
        return self._safe_rate(self.wins)

    @property
    def loss_rate(self) -> float:
        return self._safe_rate(self.losses)

    @property
    def draw_rate(self) -> float:
        return self._safe_rate(self.draws)

    def _safe_rate(self, value: int) -> float:
        return 0.0 if self.decided == 0 else value / self.decided

    def mean_score(self) -> float:
        """Average player ONE share over decided games (draws count half)."""
        shares = self._shares()
        return float(shares.mean()) if shares.size else 0.0

    def score_standard_error(self) -> float:
        shares = self._shares()
        if shares.size < 2:
            return 0.0
        return float(shares.std(ddof=1) / np.sqrt(shares.size))

    def confidence_interval(self, z: float = BENCHMARK_CONFIDENCE_Z) -> tuple:
        """
        Wilson score interval for player ONE's win rate over decided games.

        Returns:
            (low, high), or (0.0, 1.0) before any game is decided
        """
        n = self.decided
        if n == 0:
            return 0.0, 1.0
        p = self.wins / n
        denominator = 1 + z ** 2 / n
        center = (p + z ** 2 / (2 * n)) / denominator
        margin = z * np.sqrt(p * (1 - p) / n + z ** 2 / (4 * n ** 2)) / denominator
        return float(max(0.0, center - margin)), float(min(1.0, center + margin))

    def _shares(self) -> np.ndarray:
        with self._lock:
            counts = dict(self.counts)
        return np.repeat(
            [win_share(GameOutcome.WIN), win_share(GameOutcome.DRAW), win_share(GameOutcome.LOSS)],
            [counts[GameOutcome.WIN], counts[GameOutcome.DRAW], counts[GameOutcome.LOSS]],
        )

    def summary(self) -> Dict[str, float]:
        low, high = self.confidence_interval()
        return {
            "games": self.games,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "undecided": self.counts[GameOutcome.UNDECIDED],
            "win_rate": self.win_rate,
            "draw_rate": self.draw_rate,
            "loss_rate": self.loss_rate,
            "mean_score": self.mean_score(),
            "score_standard_error": self.score_standard_error(),
            "win_rate_low": low,
            "win_rate_high": high,
        }


def make_behavior(name: str, time_limit: float, seed: Optional[int]) -> Behavior:
    if name == "mcts":
        return MCTSAgent(time_limit=time_limit, seed=seed)
    if name == "random":
        return PlayRandom(random.Random(seed))
    raise ValueError(f"Unknown behavior {name!r}, expected one of {BENCHMARK_BEHAVIORS}")


def print_results(results: Dict[str, float], behavior_one: str, behavior_two: str, alternate: bool):
    """Print benchmark results."""
    print(f"\n=== Benchmark Results ===")
    print(f"Configuration:")
    print(f"  Behavior one: {behavior_one}")
    print(f"  Behavior two: {behavior_two}")
    print(f"  Alternate seats: {alternate}")
    print(f"\nResults (player ONE perspective):")
    print(f"  Games Played: {results['games']}")
    print(f"  Wins: {results['wins']} ({results['win_rate'] * 100:.2f}%)")
    print(f"  Draws: {results['draws']} ({results['draw_rate'] * 100:.2f}%)")
    print(f"  Losses: {results['losses']} ({results['loss_rate'] * 100:.2f}%)")
    if results['undecided']:
        print(f"  Undecided: {results['undecided']}")
    print(f"  Win rate 95% interval: [{results['win_rate_low'] * 100:.2f}%, {results['win_rate_high'] * 100:.2f}%]")
    print(f"  Mean score: {results['mean_score']:.3f} +/- {results['score_standard_error']:.3f}")


def main():
    """Console script entry point."""
    parser = argparse.ArgumentParser(
        description="Benchmark two behaviors against each other on tic-tac-toe."
    )
    parser.add_argument(
        "--behavior-one",
        choices=BENCHMARK_BEHAVIORS,
        default="mcts",
        help="First behavior (default: mcts)"
    )
    parser.add_argument(
        "--behavior-two",
        choices=BENCHMARK_BEHAVIORS,
        default="random",
        help="Second behavior (default: random)"
    )
    parser.add_argument(
        "--num-games",
        type=int,
        default=BENCHMARK_NUM_GAMES,
        help=f"Number of games to play (default: {BENCHMARK_NUM_GAMES})"
    )
    parser.add_argument(
        "--time-limit",
        type=float,
        default=BENCHMARK_TIME_LIMIT_MS,
        help=f"MCTS time per move in milliseconds (default: {BENCHMARK_TIME_LIMIT_MS})"
    )
    parser.add_argument(
        "--parallel",
        action="store_true",
        help="Play games concurrently"
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Concurrent games in parallel mode (default: executor default)"
    )
    parser.add_argument(
        "--alternate",
        action="store_true",
        help="Swap seats every other game"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for the behaviors' random streams (default: random seed)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print debug output"
    )

    args = parser.parse_args()
    configure_logging(args.verbose)

    seed_rng = random.Random(args.seed)
    behavior_one = make_behavior(args.behavior_one, args.time_limit, seed_rng.getrandbits(64))
    behavior_two = make_behavior(args.behavior_two, args.time_limit, seed_rng.getrandbits(64))

    results = BenchmarkResults()
    try:
        simulate_games(
            behavior_one,
            behavior_two,
            TicTacToe(),
            args.num_games,
            parallel=args.parallel,
            alternate=args.alternate,
            callback=results,
            max_workers=args.max_workers,
        )
    except KeyboardInterrupt:
        print("\nInterrupted by user. Reporting finished games...")

    print_results(results.summary(), args.behavior_one, args.behavior_two, args.alternate)


if __name__ == "__main__":
    main()
