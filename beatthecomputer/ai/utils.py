"""
Shared utility functions for the search, generation and benchmark scripts.
"""
import logging

from rich.logging import RichHandler


def configure_logging(verbose: bool = False) -> None:
    """
    Route log records to the terminal through rich.

    Args:
        verbose: Show debug records instead of starting at info
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


def configure_worker_logging(level: int) -> None:
    """Logging for pool worker processes, which start with an unconfigured root logger."""
    logging.basicConfig(
        level=level,
        format="%(processName)s - %(name)s - %(message)s",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(high, max(low, value))
