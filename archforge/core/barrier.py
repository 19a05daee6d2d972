"""Completion barrier — the single synchronization point of a run.

The merge phase may only proceed once every fan-out job has reached a
terminal state.  The wait is bounded: a job that never completes fails
the barrier instead of leaving the merge stuck forever.
"""

from __future__ import annotations

import logging
from concurrent.futures import ALL_COMPLETED, Future, wait

logger = logging.getLogger(__name__)


class BarrierTimeoutError(RuntimeError):
    """Raised when fan-out jobs are still running at the barrier deadline."""

    def __init__(self, pending: list[str], timeout_seconds: float | None) -> None:
        self.pending = sorted(pending)
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Completion barrier timed out after {timeout_seconds}s; "
            f"still running: {', '.join(self.pending)}"
        )


class CompletionBarrier:
    """Waits for a set of job futures with an optional deadline.

    Parameters
    ----------
    timeout_seconds:
        Maximum wait.  ``None`` waits indefinitely.
    """

    def __init__(self, timeout_seconds: float | None = None) -> None:
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.timeout_seconds = timeout_seconds

    def wait(self, futures: dict[Future, str]) -> None:
        """Block until every future in *futures* is done.

        *futures* maps each future to a label used in error messages.
        On timeout the unfinished futures are cancelled (queued ones never
        start) and ``BarrierTimeoutError`` is raised.
        """
        _, not_done = wait(futures, timeout=self.timeout_seconds, return_when=ALL_COMPLETED)
        if not_done:
            for future in not_done:
                future.cancel()
            pending = [futures[f] for f in not_done]
            logger.error("Barrier timed out waiting for: %s", ", ".join(sorted(pending)))
            raise BarrierTimeoutError(pending, self.timeout_seconds)
        logger.debug("Barrier released: %d jobs terminal", len(futures))
