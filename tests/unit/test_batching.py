"""Unit tests for batching module."""

import pytest

from azbulk.batching import DEFAULT_BATCH_SIZE, batch
from azbulk.errors import InvalidArgumentError


class TestBatch:
    """Test fixed-size batching."""

    def test_exact_multiple(self):
        """Test 1000 items in batches of 100."""
        items = list(range(1000))
        batches = batch(items, 100)
        assert len(batches) == 10
        assert all(len(b) == 100 for b in batches)

    def test_last_batch_smaller(self):
        """Test that only the last batch may be smaller."""
        batches = batch(list("abcdefg"), 3)
        assert batches == [("a", "b", "c"), ("d", "e", "f"), ("g",)]

    @pytest.mark.parametrize("count,size", [(0, 1), (1, 1), (7, 3), (99, 100), (101, 100), (250, 7)])
    def test_concatenation_equals_input(self, count, size):
        """Test batches partition the input contiguously and exhaustively."""
        items = [f"vm-{i}" for i in range(count)]
        batches = batch(items, size)

        assert [item for b in batches for item in b] == items
        assert all(0 < len(b) <= size for b in batches)
        assert all(len(b) == size for b in batches[:-1])

    def test_empty_input(self):
        """Test empty input yields no batches."""
        assert batch([], 100) == []

    def test_size_larger_than_input(self):
        """Test a single batch when size exceeds input length."""
        assert batch(["a", "b"], 100) == [("a", "b")]

    @pytest.mark.parametrize("size", [0, -1, -100])
    def test_non_positive_size_raises(self, size):
        """Test size <= 0 is a caller error."""
        with pytest.raises(InvalidArgumentError, match="positive integer"):
            batch(["a", "b", "c"], size)

    def test_non_integer_size_raises(self):
        """Test non-integer sizes are rejected."""
        with pytest.raises(InvalidArgumentError):
            batch(["a"], 2.5)  # type: ignore[arg-type]
        with pytest.raises(InvalidArgumentError):
            batch(["a"], True)  # type: ignore[arg-type]

    def test_invalid_argument_is_value_error(self):
        """Test InvalidArgumentError can be caught as ValueError."""
        with pytest.raises(ValueError):
            batch(["a"], 0)

    def test_idempotent(self):
        """Test batching the same list twice yields identical batches."""
        items = [f"vm-{i}" for i in range(523)]
        assert batch(items, 50) == batch(items, 50)

    def test_does_not_mutate_input(self):
        """Test input list is left untouched."""
        items = ["a", "b", "c"]
        batch(items, 2)
        assert items == ["a", "b", "c"]

    def test_default_size(self):
        """Test default batch size matches the service limit of 100."""
        assert DEFAULT_BATCH_SIZE == 100
        assert len(batch(list(range(250)))) == 3
