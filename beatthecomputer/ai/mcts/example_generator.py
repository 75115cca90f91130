"""
Console script for mass-producing labeled training examples with MCTS.

Positions are sampled from random self-play games and labeled with an MCTS
evaluation. The work is split across independent workers that each keep
their own example store and file, checkpoint to a backup file while they
run, and are merged into one canonical file at the end.

Files in the output directory:
    examples.example                   canonical, merged result
    examples<N>.example                output of worker N
    examples<N>.example_backup.example last checkpoint of worker N

A crashed run is recovered by running again with --append: every example
file in the directory, backups included, is folded into the canonical file
before generation resumes.
"""
import argparse
import logging
import multiprocessing as mp
import os
import random
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from beatthecomputer.ai.behaviors import PlayRandom
from beatthecomputer.ai.errors import InvalidArgumentError
from beatthecomputer.ai.mcts.constants import (
    BACKUP_SUFFIX,
    CHECKPOINT_INTERVAL_MS,
    EXAMPLE_FILE_EXTENSION,
    EXAMPLE_FILE_STEM,
    GENERATE_NUM_EXAMPLES,
    GENERATE_TIME_LIMIT_MS,
    MAX_DUPLICATE_STREAK,
    MCTS_EXPLORATION_CONSTANT,
    MCTS_ROLLOUT_WORKERS,
    MCTS_ROLLOUTS_PER_NODE,
)
from beatthecomputer.ai.mcts.example_store import (
    ExampleStore,
    merge_example_files,
    read_examples,
    write_examples,
)
from beatthecomputer.ai.mcts.mcts_agent import MCTSAgent
from beatthecomputer.ai.utils import clamp, configure_logging, configure_worker_logging
from beatthecomputer.game.tictactoe import TicTacToe
from beatthecomputer.models.game import Evaluator, GameContext, Player

logger = logging.getLogger(__name__)

BACKENDS = ("process", "thread")


def default_num_workers() -> int:
    """Half the available CPUs, at least one; rollouts fan out on top of this."""
    return max(1, (os.cpu_count() or 1) // 2)


def checkpoint_batch_size(time_limit_ms: float) -> int:
    """Examples between checkpoints, so that a checkpoint happens roughly every two minutes."""
    return max(1, int(CHECKPOINT_INTERVAL_MS // time_limit_ms))


def partition(num_examples: int, num_workers: int) -> List[int]:
    """Split a count across workers; the last worker takes the remainder."""
    share = num_examples // num_workers
    quotas = [share] * num_workers
    quotas[-1] = num_examples - share * (num_workers - 1)
    return quotas


def canonical_file(example_dir: Path, extension: str = EXAMPLE_FILE_EXTENSION) -> Path:
    return Path(example_dir) / f"{EXAMPLE_FILE_STEM}{extension}"


def worker_file(example_dir: Path, worker_id: int, extension: str = EXAMPLE_FILE_EXTENSION) -> Path:
    return Path(example_dir) / f"{EXAMPLE_FILE_STEM}{worker_id}{extension}"


def backup_file(example_file: Path, extension: str = EXAMPLE_FILE_EXTENSION) -> Path:
    example_file = Path(example_file)
    return example_file.with_name(example_file.name + BACKUP_SUFFIX + extension)


@dataclass
class GenerationConfig:
    """
    Settings of one generation run.

    Attributes:
        num_examples: Examples to generate, split across the workers
        example_dir: Directory holding the canonical, worker and backup files
        append: Fold existing example files in and keep building on them
        num_workers: Independent workers (None = half the CPUs)
        backend: "process" or "thread" pool for the workers
        extension: Example file extension
        max_duplicate_streak: Consecutive known positions before a worker stops early (None = never)
    """
    num_examples: int
    example_dir: Path
    append: bool = False
    num_workers: Optional[int] = None
    backend: str = "process"
    extension: str = EXAMPLE_FILE_EXTENSION
    max_duplicate_streak: Optional[int] = MAX_DUPLICATE_STREAK

    def __post_init__(self):
        self.example_dir = Path(self.example_dir)
        if self.num_workers is None:
            self.num_workers = default_num_workers()
        if self.num_examples < 0:
            raise InvalidArgumentError(f"num_examples can't be negative, got {self.num_examples}")
        if self.num_workers < 1:
            raise InvalidArgumentError(f"num_workers must be at least 1, got {self.num_workers}")
        if self.backend not in BACKENDS:
            raise InvalidArgumentError(f"backend must be one of {BACKENDS}, got {self.backend!r}")


def random_context(new_game: Callable[[], GameContext], rng: random.Random) -> GameContext:
    """
    Play a random game to the end and return one of its positions.

    Every position of the game is equally likely, the initial and the
    final one included.
    """
    behavior_one = PlayRandom(random.Random(rng.getrandbits(64)))
    behavior_two = behavior_one.clone()

    state = new_game()
    history = [state.clone()]
    while not state.is_decided():
        behavior = behavior_one if state.active_player() is Player.ONE else behavior_two
        state.apply_action(behavior.choose_action(state))
        history.append(state.clone())

    return rng.choice(history)


def find_score(evaluator: Evaluator, state: GameContext) -> float:
    """Evaluator value for the player to move, clamped into a [0, 1] label."""
    return clamp(evaluator.evaluate(state, None), 0.0, 1.0)


def generate_examples_single_worker(
    evaluator: Evaluator,
    new_game: Callable[[], GameContext],
    num_examples: int,
    example_file: Path,
    seed: int,
    initial_examples: Optional[ExampleStore] = None,
    extension: str = EXAMPLE_FILE_EXTENSION,
    max_duplicate_streak: Optional[int] = MAX_DUPLICATE_STREAK,
) -> Dict[str, Any]:
    """
    Generate `num_examples` new examples into `example_file`.

    Positions already in the store are skipped without being evaluated.
    The store is checkpointed to the backup file every batch, and the
    backup is removed once the final file is written.

    Returns:
        Dictionary with the worker's statistics
    """
    examples = initial_examples if initial_examples is not None else ExampleStore()
    example_file = Path(example_file)
    backup = backup_file(example_file, extension)
    batch_size = checkpoint_batch_size(evaluator.time_limit)
    rng = random.Random(seed)

    logger.info("Worker %s: generating %d examples (checkpoint every %d, %d seeded)",
                example_file.name, num_examples, batch_size, len(examples))

    examples_added = 0
    duplicates = 0
    streak = 0
    stopped_early = False
    while examples_added < num_examples:
        context = random_context(new_game, rng)
        features = context.featurize()

        if features in examples:
            duplicates += 1
            streak += 1
            if max_duplicate_streak is not None and streak >= max_duplicate_streak:
                logger.warning("Worker %s: %d known positions in a row, stopping at %d/%d examples",
                               example_file.name, streak, examples_added, num_examples)
                stopped_early = True
                break
            continue

        streak = 0
        examples.add(features, find_score(evaluator, context))
        examples_added += 1

        if examples_added % batch_size == 0:
            write_examples(examples, backup)
            logger.info("Worker %s: checkpoint at %d/%d examples",
                        example_file.name, examples_added, num_examples)

    write_examples(examples, example_file)
    backup.unlink(missing_ok=True)

    return {
        'example_file': str(example_file),
        'examples_added': examples_added,
        'total_examples': len(examples),
        'duplicates_skipped': duplicates,
        'stopped_early': stopped_early,
    }


def _run_worker(args: tuple) -> Dict[str, Any]:
    """
    Pool entry point for one worker; unpacks the argument tuple built by
    MCTSExampleGenerator.run and releases the evaluator afterwards.
    """
    evaluator, new_game, num_examples, example_file, seed, initial_examples, extension, max_duplicate_streak = args
    try:
        return generate_examples_single_worker(
            evaluator,
            new_game,
            num_examples,
            example_file,
            seed,
            initial_examples=initial_examples,
            extension=extension,
            max_duplicate_streak=max_duplicate_streak,
        )
    finally:
        close = getattr(evaluator, "close", None)
        if close is not None:
            close()


class MCTSExampleGenerator:
    """
    Saves mappings from game features to evaluator labels to example files.
    """

    def __init__(
        self,
        evaluator: Evaluator,
        new_game: Callable[[], GameContext],
        seed: Optional[int] = None,
    ):
        """
        Args:
            evaluator: Labels positions; every worker gets its own clone
            new_game: Zero-argument factory for the initial position (must pickle for the process backend)
            seed: Seed for the per-worker random streams (None = random)
        """
        self.evaluator = evaluator
        self.new_game = new_game
        self.rng = random.Random(seed)

    def generate_examples(
        self,
        num_examples: int,
        example_dir: Path,
        append: bool = False,
        num_workers: Optional[int] = None,
        **options,
    ) -> ExampleStore:
        """
        Generate examples into `example_dir`.

        Args:
            num_examples: Number of new examples to generate
            example_dir: Output directory
            append: Fold existing example files in and seed a worker with them
            num_workers: Independent workers (None = half the CPUs)
            **options: Other GenerationConfig fields

        Returns:
            The merged store written to the canonical file
        """
        config = GenerationConfig(
            num_examples=num_examples,
            example_dir=example_dir,
            append=append,
            num_workers=num_workers,
            **options,
        )
        return self.run(config)

    def run(self, config: GenerationConfig) -> ExampleStore:
        """
        Run one generation and reduce the worker files into the canonical file.

        The reduce merges the worker files in worker order. An existing
        canonical file takes part only in append mode, where it already holds
        the folded examples; a fresh run replaces it with the workers' output.
        Worker files are deleted once the canonical file is written.
        """
        example_dir = config.example_dir
        example_dir.mkdir(parents=True, exist_ok=True)
        example_file = canonical_file(example_dir, config.extension)

        initial_examples = None
        existing_files = sorted(example_dir.glob(f"*{config.extension}"))
        if existing_files and config.append:
            initial_examples = self._fold_existing(example_file, existing_files)

        worker_files = [worker_file(example_dir, i + 1, config.extension) for i in range(config.num_workers)]
        quotas = partition(config.num_examples, config.num_workers)

        # TODO: subtract seeded examples from the quotas and spread them over all workers
        worker_args = []
        for i, (quota, path) in enumerate(zip(quotas, worker_files)):
            worker_args.append((
                self.evaluator.clone(),
                self.new_game,
                quota,
                path,
                self.rng.getrandbits(64),
                initial_examples if i == 0 else None,
                config.extension,
                config.max_duplicate_streak,
            ))

        logger.info("Generating %d examples with %d %s workers into %s",
                    config.num_examples, config.num_workers, config.backend, example_dir)
        results = self._run_workers(worker_args, config)
        for result in results:
            logger.debug("Worker result: %s", result)

        # Fresh runs leave an existing canonical file out of the reduce and overwrite it
        reduce_files = worker_files
        if config.append and example_file.exists():
            reduce_files = [example_file] + worker_files
        examples = merge_example_files(example_file, reduce_files)
        for path in worker_files:
            path.unlink(missing_ok=True)

        return examples

    def _fold_existing(self, example_file: Path, existing_files: List[Path]) -> ExampleStore:
        # Every file is parsed before any of them is deleted
        stores = [read_examples(path) for path in existing_files]

        examples = ExampleStore()
        for store in stores:
            examples.merge(store)
        write_examples(examples, example_file)

        for path in existing_files:
            if path != example_file:
                path.unlink()

        logger.info("Folded %d existing files into %s (%d examples)",
                    len(existing_files), example_file, len(examples))
        return examples

    def _run_workers(self, worker_args: List[tuple], config: GenerationConfig) -> List[Dict[str, Any]]:
        if config.num_workers == 1:
            return [_run_worker(worker_args[0])]

        if config.backend == "thread":
            with ThreadPoolExecutor(max_workers=config.num_workers, thread_name_prefix="example-worker") as executor:
                return list(executor.map(_run_worker, worker_args))

        ctx = mp.get_context('spawn')
        with ProcessPoolExecutor(
            max_workers=config.num_workers,
            mp_context=ctx,
            initializer=configure_worker_logging,
            initargs=(logging.getLogger().getEffectiveLevel(),),
        ) as executor:
            return list(executor.map(_run_worker, worker_args))


def main():
    """Console script entry point."""
    parser = argparse.ArgumentParser(
        description="Generate MCTS-labeled training examples from random tic-tac-toe positions."
    )
    parser.add_argument(
        "--num-examples",
        type=int,
        default=GENERATE_NUM_EXAMPLES,
        help=f"Number of examples to generate (default: {GENERATE_NUM_EXAMPLES})"
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        required=True,
        help="Directory for the example files"
    )
    parser.add_argument(
        "--append",
        action="store_true",
        help="Fold existing example files (backups included) in and keep building on them"
    )
    parser.add_argument(
        "--num-workers",
        type=int,
        default=None,
        help="Number of generation workers (default: half the CPUs)"
    )
    parser.add_argument(
        "--backend",
        choices=BACKENDS,
        default="process",
        help="Pool type for the workers (default: process)"
    )
    parser.add_argument(
        "--time-limit",
        type=float,
        default=GENERATE_TIME_LIMIT_MS,
        help=f"MCTS time per label in milliseconds (default: {GENERATE_TIME_LIMIT_MS})"
    )
    parser.add_argument(
        "--explore-factor",
        type=float,
        default=MCTS_EXPLORATION_CONSTANT,
        help=f"UCT exploration constant (default: {MCTS_EXPLORATION_CONSTANT})"
    )
    parser.add_argument(
        "--rollouts-per-node",
        type=int,
        default=MCTS_ROLLOUTS_PER_NODE,
        help=f"Playouts per simulation (default: {MCTS_ROLLOUTS_PER_NODE})"
    )
    parser.add_argument(
        "--rollout-workers",
        type=int,
        default=MCTS_ROLLOUT_WORKERS,
        help=f"Threads per simulation's playouts (default: {MCTS_ROLLOUT_WORKERS})"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Base seed for the workers' random streams (default: random seed)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print debug output"
    )

    args = parser.parse_args()
    configure_logging(args.verbose)

    evaluator = MCTSAgent(
        time_limit=args.time_limit,
        explore_factor=args.explore_factor,
        rollouts_per_node=args.rollouts_per_node,
        rollout_workers=args.rollout_workers,
        seed=args.seed,
    )
    generator = MCTSExampleGenerator(evaluator, TicTacToe, seed=args.seed)

    try:
        examples = generator.generate_examples(
            args.num_examples,
            Path(args.output_dir),
            append=args.append,
            num_workers=args.num_workers,
            backend=args.backend,
        )
    except KeyboardInterrupt:
        print("\nInterrupted by user. Backup files are kept; rerun with --append to resume.")
        return

    print()
    print("=== Generation Complete ===")
    print(f"Output file: {canonical_file(Path(args.output_dir))}")
    print(f"Examples: {len(examples)}")


if __name__ == "__main__":
    main()
