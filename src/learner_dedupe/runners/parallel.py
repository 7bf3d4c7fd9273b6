from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor

import structlog

from learner_dedupe.interfaces import ReconciliationPipeline
from learner_dedupe.models import ReconciliationReport

logger = structlog.get_logger(__name__)


class ParallelCohortRunner:
    """Fans independent cohorts out over a thread pool.

    ``driver_factory`` is called once per cohort inside the worker thread, so
    each cohort gets its own driver and store connection. Commits within a
    cohort stay sequential. A cohort that raises is reported with ``error``
    set; the other cohorts still return their reports.
    """

    def __init__(
        self,
        driver_factory: Callable[[str], ReconciliationPipeline],
        max_workers: int = 4,
    ) -> None:
        self._driver_factory = driver_factory
        self._max_workers = max(1, max_workers)

    def run(self, cohort_keys: Sequence[str], dry_run: bool = False) -> dict[str, ReconciliationReport]:
        keys = list(dict.fromkeys(cohort_keys))
        if not keys:
            return {}
        logger.info("parallel_run_started", cohorts=keys, workers=self._max_workers)
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(keys))) as pool:
            futures = {key: pool.submit(self._run_one, key, dry_run) for key in keys}
            return {key: _collect(key, future, dry_run) for key, future in futures.items()}

    def _run_one(self, cohort_key: str, dry_run: bool) -> ReconciliationReport:
        driver = self._driver_factory(cohort_key)
        try:
            return driver.run(cohort_key, dry_run=dry_run)
        finally:
            close = getattr(driver, "close", None)
            if close is not None:
                close()


def _collect(cohort_key: str, future: Future[ReconciliationReport], dry_run: bool) -> ReconciliationReport:
    try:
        return future.result()
    except Exception as exc:
        logger.error("cohort_failed", cohort_key=cohort_key, error_type=type(exc).__name__, error=str(exc))
        return ReconciliationReport(cohort_key=cohort_key, dry_run=dry_run, error=f"{type(exc).__name__}: {exc}")
