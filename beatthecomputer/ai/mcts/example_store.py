"""
In-memory store of labeled training examples and its on-disk format.

Each line of an example file holds one record:

    [v0,v1,...,vn]:label

Numbers are written with repr() so reading a file back yields exactly the
floats that were written.

Feature vectors are keys compared exactly, component by component. Two
vectors that differ only in the last printed digit of one component are
different examples, and 0.0 and -0.0 are the same example.
"""
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Sequence, Tuple

from beatthecomputer.ai.errors import ExampleFormatError, InvalidArgumentError
from beatthecomputer.models.game import FeatureVector

logger = logging.getLogger(__name__)

_NUMBER = r'[-+]?(?:(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?|inf|nan)'
_RECORD = re.compile(rf'\[({_NUMBER}(?:,{_NUMBER})*)\]:({_NUMBER})')


class ExampleStore:
    """
    Mapping from feature vector to label.

    Adding a feature vector that is already stored replaces its label with
    the plain average of the stored and the new label. The average is not
    weighted by how often a key was seen, so the result depends on the
    order examples arrive in: the latest label always carries half the
    weight.
    """

    def __init__(self, examples: Optional[Dict[FeatureVector, float]] = None):
        self._examples: Dict[FeatureVector, float] = {}
        if examples:
            for features, label in examples.items():
                self.add(features, label)

    def add(self, features: Sequence[float], label: float) -> float:
        """
        Insert an example, merging with an existing one for the same features.

        Returns:
            The label stored for `features` after the insert
        """
        key = tuple(float(v) for v in features)
        if not key:
            raise InvalidArgumentError("Feature vectors can't be empty")

        current = self._examples.get(key)
        merged = float(label) if current is None else (current + float(label)) / 2
        self._examples[key] = merged
        return merged

    def merge(self, other: 'ExampleStore') -> 'ExampleStore':
        """Add every example of `other` to this store, in `other`'s order."""
        for features, label in other.items():
            self.add(features, label)
        return self

    def items(self) -> Iterable[Tuple[FeatureVector, float]]:
        return self._examples.items()

    def get(self, features: Sequence[float], default: Optional[float] = None) -> Optional[float]:
        return self._examples.get(tuple(float(v) for v in features), default)

    def __contains__(self, features) -> bool:
        return tuple(float(v) for v in features) in self._examples

    def __getitem__(self, features: Sequence[float]) -> float:
        return self._examples[tuple(float(v) for v in features)]

    def __len__(self) -> int:
        return len(self._examples)

    def __iter__(self) -> Iterator[FeatureVector]:
        return iter(self._examples)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ExampleStore):
            return NotImplemented
        return self._examples == other._examples

    def __repr__(self):
        return f"ExampleStore({len(self._examples)} examples)"


def format_example(features: FeatureVector, label: float) -> str:
    return "[" + ",".join(repr(float(v)) for v in features) + "]:" + repr(float(label))


def parse_example(line: str, path: Path = Path("<string>"), line_number: int = 1) -> Tuple[FeatureVector, float]:
    """
    Parse one record line.

    Raises:
        ExampleFormatError: if the line doesn't follow the record grammar exactly
    """
    match = _RECORD.fullmatch(line)
    if match is None:
        raise ExampleFormatError(path, line_number, line, "expected [v0,...,vn]:label")
    features = tuple(float(v) for v in match.group(1).split(","))
    return features, float(match.group(2))


def write_examples(examples: ExampleStore, example_file: Path) -> Path:
    """
    Write a store to `example_file`, replacing any previous content.

    The file is written next to its destination first and moved into place,
    so a crash mid-write leaves the previous version intact.
    """
    example_file = Path(example_file)
    example_file.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = example_file.with_name(example_file.name + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        for features, label in examples.items():
            f.write(format_example(features, label) + "\n")
    tmp_path.replace(example_file)
    return example_file


def read_examples(example_file: Path) -> ExampleStore:
    """
    Read an example file. A missing file reads as an empty store.

    Duplicate records within the file are merged in line order.

    Raises:
        ExampleFormatError: on the first malformed line
    """
    example_file = Path(example_file)
    examples = ExampleStore()
    if not example_file.exists():
        return examples

    with example_file.open("r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            features, label = parse_example(line.rstrip("\r\n"), example_file, line_number)
            examples.add(features, label)
    return examples


def merge_example_files(output_file: Path, example_files: Iterable[Path]) -> ExampleStore:
    """
    Fold several example files into one, in the order given, and write it.

    Returns:
        The merged store that was written to `output_file`
    """
    examples = ExampleStore()
    for example_file in example_files:
        examples.merge(read_examples(example_file))

    write_examples(examples, output_file)
    logger.info("Merged %d examples into %s", len(examples), output_file)
    return examples
