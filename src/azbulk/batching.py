"""Fixed-size batching of resource identifiers."""

from collections.abc import Sequence
from typing import TypeVar

from azbulk.errors import InvalidArgumentError

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 100


def batch(items: Sequence[T], size: int = DEFAULT_BATCH_SIZE) -> list[tuple[T, ...]]:
    """Split items into contiguous chunks of at most ``size`` elements.

    Args:
        items: Ordered identifiers to split
        size: Maximum chunk size (must be positive)

    Returns:
        List of chunks; only the last one may be smaller than ``size``.
        Empty input yields an empty list.

    Raises:
        InvalidArgumentError: If size is not a positive integer

    Example:
        >>> batch(["a", "b", "c"], 2)
        [('a', 'b'), ('c',)]
    """
    if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
        raise InvalidArgumentError(f"Batch size must be a positive integer, got {size!r}")

    return [tuple(items[i : i + size]) for i in range(0, len(items), size)]


__all__ = ["DEFAULT_BATCH_SIZE", "batch"]
