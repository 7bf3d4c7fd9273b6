from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from learner_dedupe.errors import (
    DanglingReferenceDetected,
    StalePlanError,
    StoreTransactionFailure,
    TransientStoreError,
)
from learner_dedupe.interfaces import IdentityStore
from learner_dedupe.models import AuditEntry, MergePlan

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RelationshipMigrator:
    """Re-points dependents from the retired identity to the canonical one, then deletes it.

    Each plan runs in exactly one store transaction. Either every step lands
    (owner rewrite, straggler check, delete, audit insert) or none of them do.
    """

    def __init__(
        self,
        store: IdentityStore,
        retry_attempts: int = 3,
        retry_backoff: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._attempts = max(1, retry_attempts)
        self._backoff = max(0.0, retry_backoff)
        self._sleep = sleep
        self._clock = clock

    def commit(self, plan: MergePlan) -> AuditEntry:
        last_exc: TransientStoreError | None = None
        for attempt in range(1, self._attempts + 1):
            try:
                return self._commit_once(plan)
            except TransientStoreError as exc:
                last_exc = exc
                if attempt >= self._attempts:
                    break
                sleep_for = self._backoff * (2 ** (attempt - 1))
                logger.warning(
                    "merge_retrying",
                    retired_id=plan.retired_id,
                    attempt=attempt,
                    sleep_seconds=sleep_for,
                    error=str(exc),
                )
                if sleep_for:
                    self._sleep(sleep_for)
        assert last_exc is not None
        raise last_exc

    def _commit_once(self, plan: MergePlan) -> AuditEntry:
        store = self._store
        store.begin_transaction()
        try:
            entry = self._apply(plan)
        except Exception:
            store.rollback()
            raise
        try:
            store.commit()
        except StoreTransactionFailure:
            store.rollback()
            raise
        logger.info(
            "merge_committed",
            cohort_key=plan.cohort_key,
            canonical_id=plan.canonical_id,
            retired_id=plan.retired_id,
            moved=entry.moved_counts,
            rule=plan.rule,
        )
        return entry

    def _apply(self, plan: MergePlan) -> AuditEntry:
        store = self._store
        retired = store.get_entity(plan.retired_id)
        if retired is None:
            raise StalePlanError(f"retired identity {plan.retired_id} no longer exists")
        if store.get_entity(plan.canonical_id) is None:
            raise StalePlanError(f"canonical identity {plan.canonical_id} no longer exists")

        moved_counts: dict[str, int] = {}
        for collection in plan.dependent_collections:
            moved_counts[collection] = store.update_owner(collection, plan.retired_id, plan.canonical_id)

        stragglers = {
            collection: count
            for collection in store.reference_collections()
            if (count := store.count_owned_by(collection, plan.retired_id))
        }
        if stragglers:
            logger.error(
                "dangling_reference_detected",
                retired_id=plan.retired_id,
                stragglers=stragglers,
                configured=list(plan.dependent_collections),
            )
            raise DanglingReferenceDetected(plan.retired_id, stragglers)

        store.delete_entity(plan.retired_id)

        entry = AuditEntry(
            canonical_id=plan.canonical_id,
            retired_id=plan.retired_id,
            retired_snapshot=retired.snapshot(),
            moved_counts=moved_counts,
            timestamp=self._clock(),
            cohort_key=plan.cohort_key,
            rule=plan.rule,
            score=plan.score,
        )
        store.insert_audit_entry(entry)
        return entry
