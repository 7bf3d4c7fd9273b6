from __future__ import annotations

from typing import Protocol, Sequence

from learner_dedupe.models import (
    AuditEntry,
    EntityRecord,
    MatchCandidate,
    MatchOutcome,
    MergePlan,
    ReconciliationReport,
)


class IdentityStore(Protocol):
    """Transactional store holding entities, their dependents and the audit log."""

    def query(self, cohort_key: str) -> list[EntityRecord]:
        ...

    def get_entity(self, entity_id: str) -> EntityRecord | None:
        ...

    def update_owner(self, collection: str, old_owner_id: str, new_owner_id: str) -> int:
        ...

    def count_owned_by(self, collection: str, owner_id: str) -> int:
        ...

    def reference_collections(self) -> list[str]:
        """Every collection holding a foreign key to the entity table."""
        ...

    def delete_entity(self, entity_id: str) -> None:
        ...

    def begin_transaction(self) -> None:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def insert_audit_entry(self, entry: AuditEntry) -> None:
        ...

    def audit_entries(self, cohort_key: str | None = None) -> list[AuditEntry]:
        ...


class CandidateMatcher(Protocol):
    """Step 1: pair legacy records with authoritative ones inside a cohort."""

    def find_matches(self, records: Sequence[EntityRecord], cohort_key: str) -> list[MatchCandidate]:
        ...

    def match_cohort(self, records: Sequence[EntityRecord], cohort_key: str) -> MatchOutcome:
        ...

    def is_authoritative(self, record: EntityRecord) -> bool:
        ...


class Planner(Protocol):
    """Step 2: turn an accepted pair into a merge plan."""

    def plan(self, candidate: MatchCandidate, dependent_collections: Sequence[str]) -> MergePlan:
        ...


class Migrator(Protocol):
    """Step 3: apply a merge plan atomically."""

    def commit(self, plan: MergePlan) -> AuditEntry:
        ...


class ReconciliationPipeline(Protocol):
    """Unified driver interface for sequential or parallel execution."""

    def run(self, cohort_key: str, dry_run: bool = False) -> ReconciliationReport:
        ...
