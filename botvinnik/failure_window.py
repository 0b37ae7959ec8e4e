"""Sliding-window failure counter for the sync loop.

The bot tolerates occasional failed sync requests, but stops once too
many of the most recent requests failed. Failures do not have to be
consecutive: the window always covers the last ``size`` outcomes, so one
failure long ago ages out once enough newer requests were recorded.
"""

from typing import List

# Number of outcomes kept before they are discarded
WINDOW_SIZE = 32


class FailureWindow:
    """Counts failures among the last ``size`` recorded operations.

    Args:
        limit: Maximum number of allowed failures. Values of ``size`` or
            more are clamped to ``size - 1``, so the window can always
            trip before every slot holds a failure.
        size: Number of outcomes kept.
    """

    def __init__(self, limit: int, size: int = WINDOW_SIZE):
        if size < 1:
            raise ValueError(f"window size must be positive, got {size}")
        if limit < 0:
            raise ValueError(f"failure limit must not be negative, got {limit}")
        self._size = size
        self._limit = min(limit, size - 1)
        self._status: List[bool] = [False] * size
        self._offset = 0

    def record(self, success: bool) -> None:
        """Record the outcome of one operation, overwriting the oldest one."""
        self._status[self._offset] = not success
        self._offset = (self._offset + 1) % self._size

    def count(self) -> int:
        """Number of failures currently in the window."""
        return sum(self._status)

    @property
    def limit(self) -> int:
        """Effective (clamped) number of allowed failures."""
        return self._limit

    @property
    def size(self) -> int:
        return self._size

    def tripped(self) -> bool:
        """Whether more failures than allowed are in the window."""
        return self.count() > self._limit

    def __repr__(self) -> str:
        return (
            f"FailureWindow(count={self.count()}, limit={self._limit}, "
            f"size={self._size})"
        )
