"""
Pytest tests for the multi-worker example generator: partitioning, file
naming, checkpointing, duplicate handling, append recovery and the final
reduce into the canonical file.
"""
import random
from functools import partial

import pytest

from beatthecomputer.ai.errors import ExampleFormatError, InvalidArgumentError
from beatthecomputer.ai.mcts.example_generator import (
    GenerationConfig,
    MCTSExampleGenerator,
    backup_file,
    canonical_file,
    checkpoint_batch_size,
    find_score,
    generate_examples_single_worker,
    partition,
    random_context,
    worker_file,
)
from beatthecomputer.ai.mcts.example_store import ExampleStore, read_examples, write_examples
from beatthecomputer.ai.mcts.mcts_agent import MCTSAgent
from beatthecomputer.game.tictactoe import TicTacToe
from beatthecomputer.models.game import GameOutcome
from .test_utils import ConstantEvaluator, ScriptedGame


@pytest.mark.parametrize("num_examples,num_workers,expected", [
    (11, 3, [3, 3, 5]),
    (9, 3, [3, 3, 3]),
    (2, 3, [0, 0, 2]),
    (7, 1, [7]),
    (0, 2, [0, 0]),
])
def test_partition(num_examples, num_workers, expected):
    quotas = partition(num_examples, num_workers)

    assert quotas == expected
    assert sum(quotas) == num_examples


@pytest.mark.parametrize("time_limit,expected", [
    (100, 1200),
    (1000, 120),
    (120000, 1),
    (500000, 1),
])
def test_checkpoint_batch_size(time_limit, expected):
    assert checkpoint_batch_size(time_limit) == expected


def test_file_names(tmp_path):
    worker = worker_file(tmp_path, 3)

    assert canonical_file(tmp_path) == tmp_path / "examples.example"
    assert worker == tmp_path / "examples3.example"
    assert backup_file(worker) == tmp_path / "examples3.example_backup.example"
    assert worker_file(tmp_path, 1, ".ex") == tmp_path / "examples1.ex"


def test_random_context_is_deterministic_per_seed():
    first = [random_context(TicTacToe, random.Random(5)).featurize() for _ in range(3)]
    second = [random_context(TicTacToe, random.Random(5)).featurize() for _ in range(3)]

    assert first == second


def test_random_context_can_return_initial_and_final_positions():
    new_game = partial(ScriptedGame, {"a": GameOutcome.WIN})
    rng = random.Random(0)

    seen = {random_context(new_game, rng).featurize() for _ in range(50)}

    assert seen == {(0.0,), (1.0, 97.0)}


@pytest.mark.parametrize("value,expected", [(1.7, 1.0), (-0.2, 0.0), (0.3, 0.3)])
def test_find_score_clamps_to_unit_interval(tictactoe, value, expected):
    assert find_score(ConstantEvaluator(value), tictactoe) == expected


def test_find_score_maps_signed_search_values_to_labels(tictactoe):
    lost = TicTacToe()
    for cell in (0, 3, 1, 4, 8, 5):
        lost.apply_action(cell)
    agent = MCTSAgent(time_limit=5, seed=2)

    assert agent.evaluate(lost) == -1.0
    assert find_score(agent, lost) == 0.0
    assert 0.0 <= find_score(agent, tictactoe) <= 1.0


def test_single_worker_writes_requested_examples(tmp_path):
    evaluator = ConstantEvaluator(0.25)
    path = tmp_path / "examples1.example"

    result = generate_examples_single_worker(evaluator, TicTacToe, 20, path, seed=1)

    assert result['examples_added'] == 20
    assert result['total_examples'] == 20
    assert not result['stopped_early']
    assert len(evaluator.calls) == 20, "Known positions must not be evaluated"
    assert len(set(evaluator.calls)) == 20
    stored = read_examples(path)
    assert len(stored) == 20
    assert all(label == 0.25 for _, label in stored.items())
    assert not backup_file(path).exists()


def test_single_worker_checkpoints_every_batch(tmp_path):
    path = tmp_path / "examples1.example"
    backup = backup_file(path)
    backup_sizes = []

    def observe():
        backup_sizes.append(len(read_examples(backup)) if backup.exists() else None)

    # 40000 ms per label gives a checkpoint every 3 examples
    evaluator = ConstantEvaluator(0.5, time_limit=40000, on_evaluate=observe)

    generate_examples_single_worker(evaluator, TicTacToe, 7, path, seed=3)

    assert backup_sizes == [None, None, None, 3, 3, 3, 6]
    assert not backup.exists(), "Backup is removed after the final write"
    assert len(read_examples(path)) == 7


def test_single_worker_keeps_seeded_examples(tmp_path):
    seeded = ExampleStore({(9.0, 9.0): 0.9})
    path = tmp_path / "examples1.example"

    result = generate_examples_single_worker(ConstantEvaluator(), TicTacToe, 5, path, seed=2,
                                             initial_examples=seeded)

    assert result['total_examples'] == 6
    assert read_examples(path)[(9.0, 9.0)] == 0.9


def test_single_worker_stops_after_duplicate_streak(tmp_path):
    new_game = partial(ScriptedGame, {"a": GameOutcome.WIN})
    evaluator = ConstantEvaluator()
    path = tmp_path / "examples1.example"

    result = generate_examples_single_worker(evaluator, new_game, 5, path, seed=0, max_duplicate_streak=20)

    assert result['stopped_early']
    assert result['examples_added'] == 2, "Only two distinct positions exist"
    assert result['duplicates_skipped'] >= 20
    assert len(read_examples(path)) == 2


@pytest.mark.parametrize("kwargs", [
    {"num_examples": -1},
    {"num_workers": 0},
    {"backend": "fork"},
])
def test_config_rejects_invalid_settings(tmp_path, kwargs):
    settings = {"num_examples": 10, "example_dir": tmp_path, "num_workers": 1}
    settings.update(kwargs)

    with pytest.raises(InvalidArgumentError):
        GenerationConfig(**settings)


def test_config_defaults_to_at_least_one_worker(tmp_path):
    assert GenerationConfig(num_examples=1, example_dir=str(tmp_path)).num_workers >= 1


def test_thread_workers_reduce_into_canonical_file(tmp_path):
    evaluator = ConstantEvaluator(0.5)
    generator = MCTSExampleGenerator(evaluator, TicTacToe, seed=1)

    examples = generator.generate_examples(10, tmp_path, num_workers=2, backend="thread")

    assert len(evaluator.calls) == 10
    assert 1 <= len(examples) <= 10
    assert read_examples(canonical_file(tmp_path)) == examples
    assert sorted(p.name for p in tmp_path.iterdir()) == ["examples.example"], \
        "Worker and backup files are removed after the reduce"


def test_fresh_run_overwrites_canonical_file(tmp_path):
    write_examples(ExampleStore({(1.0,): 0.2}), canonical_file(tmp_path))
    generator = MCTSExampleGenerator(ConstantEvaluator(), TicTacToe, seed=4)

    examples = generator.generate_examples(3, tmp_path, num_workers=1)

    assert (1.0,) not in examples
    assert (1.0,) not in read_examples(canonical_file(tmp_path))


def test_append_folds_existing_files_and_backups(tmp_path):
    write_examples(ExampleStore({(1.0,): 0.2}), canonical_file(tmp_path))
    write_examples(ExampleStore({(1.0,): 0.6}), worker_file(tmp_path, 1))
    write_examples(ExampleStore({(2.0,): 0.9}), backup_file(worker_file(tmp_path, 2)))
    evaluator = ConstantEvaluator()
    generator = MCTSExampleGenerator(evaluator, TicTacToe, seed=5)

    examples = generator.generate_examples(0, tmp_path, append=True, num_workers=1)

    assert dict(examples.items()) == {(1.0,): pytest.approx(0.4), (2.0,): 0.9}
    assert evaluator.calls == []
    assert sorted(p.name for p in tmp_path.iterdir()) == ["examples.example"]


def test_append_keeps_folded_examples_alongside_new_ones(tmp_path):
    write_examples(ExampleStore({(1.0,): 0.2}), canonical_file(tmp_path))
    generator = MCTSExampleGenerator(ConstantEvaluator(0.5), TicTacToe, seed=6)

    examples = generator.generate_examples(4, tmp_path, append=True, num_workers=2, backend="thread")

    assert examples[(1.0,)] == pytest.approx(0.2)
    assert len(examples) >= 2


def test_append_with_malformed_file_aborts_and_leaves_files_intact(tmp_path):
    canonical = write_examples(ExampleStore({(1.0,): 0.2}), canonical_file(tmp_path))
    broken = worker_file(tmp_path, 1)
    broken.write_text("[1.0]:0.6\nnot a record\n")
    evaluator = ConstantEvaluator()
    generator = MCTSExampleGenerator(evaluator, TicTacToe, seed=7)

    with pytest.raises(ExampleFormatError):
        generator.generate_examples(3, tmp_path, append=True, num_workers=1)

    assert canonical.read_text() == "[1.0]:0.2\n"
    assert broken.read_text() == "[1.0]:0.6\nnot a record\n"
    assert evaluator.calls == []


def test_process_workers_label_with_mcts(tmp_path):
    evaluator = MCTSAgent(time_limit=5, seed=1)
    generator = MCTSExampleGenerator(evaluator, TicTacToe, seed=8)

    examples = generator.generate_examples(4, tmp_path, num_workers=2, backend="process")

    assert 1 <= len(examples) <= 4
    assert all(0.0 <= label <= 1.0 for _, label in examples.items())
    assert all(len(features) == 10 for features in examples)
    assert not worker_file(tmp_path, 1).exists()
    assert not worker_file(tmp_path, 2).exists()
