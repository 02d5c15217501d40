"""Fire-and-forget ingest runs on a background worker."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Iterable

from backtester.types import OutputSize, RunId, RunReport

if TYPE_CHECKING:
    from backtester.pipeline.ingest import Pipeline

logger = logging.getLogger(__name__)


class RunHandle:
    """Handle on an ingest run submitted with :func:`ingest`.

    :param run_id: Identifier of the run.
    :param future: Future resolving to the run's :class:`RunReport`.
    """

    def __init__(self, run_id: RunId, future: Future[RunReport]) -> None:
        self.run_id = run_id
        self._future = future

    def done(self) -> bool:
        """True once the run has completed or failed."""
        return self._future.done()

    def result(self, timeout: float | None = None) -> RunReport:
        """Block until the run finishes and return its report.

        :param timeout: Seconds to wait, or None to wait indefinitely.
        :raises TimeoutError: If the run is still going after ``timeout``.
        """
        return self._future.result(timeout=timeout)

    def __repr__(self) -> str:
        state = "done" if self.done() else "running"
        return f"RunHandle({self.run_id!r}, {state})"


def ingest(
    pipeline: Pipeline,
    symbols: Iterable[str],
    size: OutputSize | str | None = None,
) -> RunHandle:
    """Start ``pipeline.run`` on a single background worker and return at once.

    The worker thread is not a daemon, so the interpreter waits for the run
    to finish on exit.

    :param pipeline: Configured pipeline.
    :param symbols: Symbols to ingest.
    :param size: History depth; defaults to the pipeline configuration.
    :returns: Handle exposing the run ID and the eventual report.
    """
    symbols = list(symbols)
    run_id = RunId(pipeline.new_run_id())
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ingest")
    future = executor.submit(pipeline.run, symbols, size, run_id)
    executor.shutdown(wait=False)
    logger.info("Submitted ingest run %s for %d symbols", run_id, len(symbols))
    return RunHandle(run_id, future)
