"""
Error kinds raised by the search engine and the example store.
"""


class InvalidStateError(RuntimeError):
    """An operation was requested on a node that can't serve it."""


class InvalidArgumentError(ValueError):
    """An argument is outside what the receiver accepts."""


class ExampleFormatError(ValueError):
    """A line in an example file doesn't follow the record grammar."""

    def __init__(self, path, line_number: int, line: str, reason: str):
        self.path = path
        self.line_number = line_number
        self.line = line
        super().__init__(f"{path}:{line_number}: {reason}: {line!r}")
