from __future__ import annotations

from collections.abc import Sequence

import structlog

from learner_dedupe.errors import MergeError
from learner_dedupe.interfaces import CandidateMatcher, IdentityStore, Migrator, Planner
from learner_dedupe.models import ManualOverride, MatchCandidate, MergeFailure, ReconciliationReport
from learner_dedupe.steps.planner import resolve_overrides

logger = structlog.get_logger(__name__)


class ReconciliationDriver:
    """Runs one cohort end to end: snapshot, match, plan, commit sequentially, report."""

    def __init__(
        self,
        store: IdentityStore,
        matcher: CandidateMatcher,
        planner: Planner,
        migrator: Migrator,
        dependent_collections: Sequence[str],
        overrides: Sequence[ManualOverride] = (),
    ) -> None:
        self._store = store
        self._matcher = matcher
        self._planner = planner
        self._migrator = migrator
        self._dependent_collections = list(dependent_collections)
        self._overrides = list(overrides)

    def close(self) -> None:
        close = getattr(self._store, "close", None)
        if close is not None:
            close()

    def run(self, cohort_key: str, dry_run: bool = False) -> ReconciliationReport:
        with structlog.contextvars.bound_contextvars(cohort_key=cohort_key):
            return self._run(cohort_key, dry_run)

    def _run(self, cohort_key: str, dry_run: bool) -> ReconciliationReport:
        report = ReconciliationReport(cohort_key=cohort_key, dry_run=dry_run)
        snapshot = self._store.query(cohort_key)
        logger.info("cohort_loaded", records=len(snapshot), dry_run=dry_run)

        overrides = [o for o in self._overrides if o.cohort_key == cohort_key]
        override_candidates: list[MatchCandidate] = []
        if overrides:
            override_candidates, rejected = resolve_overrides(snapshot, overrides, self._matcher.is_authoritative)
            report.rejected_overrides = [
                {"source": exc.source_code, "target": exc.target_code, "reason": exc.reason} for exc in rejected
            ]

        overridden = {candidate.source_id for candidate in override_candidates}
        outcome = self._matcher.match_cohort(
            [record for record in snapshot if record.internal_id not in overridden],
            cohort_key,
        )
        report.unmatched = outcome.unmatched
        report.ambiguous = outcome.ambiguous

        plans = [
            self._planner.plan(candidate, self._dependent_collections)
            for candidate in [*override_candidates, *outcome.candidates]
        ]
        if dry_run:
            report.planned = plans
            logger.info("cohort_planned", plans=len(plans))
            return report

        for plan in plans:
            try:
                report.merged.append(self._migrator.commit(plan))
            except MergeError as exc:
                logger.error(
                    "merge_failed",
                    canonical_id=plan.canonical_id,
                    retired_id=plan.retired_id,
                    kind=exc.kind,
                    error=str(exc),
                )
                report.failures.append(MergeFailure(plan=plan, error=str(exc), kind=exc.kind))

        logger.info(
            "cohort_reconciled",
            merged=len(report.merged),
            unmatched=len(report.unmatched),
            ambiguous=len(report.ambiguous),
            failed=len(report.failures),
            rejected_overrides=len(report.rejected_overrides),
        )
        return report
