from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(slots=True, frozen=True)
class EntityRecord:
    """Canonical representation of a learner identity row."""

    internal_id: str
    canonical_code: str
    given_name: str
    family_name: str
    cohort_key: str

    @property
    def full_name(self) -> str:
        return f"{self.given_name or ''} {self.family_name or ''}".strip()

    def snapshot(self) -> dict[str, str]:
        return {
            "canonical_code": self.canonical_code,
            "given_name": self.given_name,
            "family_name": self.family_name,
        }


@dataclass(slots=True)
class DependentRecord:
    """Child row that points at an entity through ``owner_id``."""

    internal_id: str
    owner_id: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class MatchCandidate:
    """Legacy record paired with the authoritative record it should merge into."""

    source_id: str
    target_id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ManualOverride:
    """Curated ``source -> target`` pair, addressed by admission code."""

    cohort_key: str
    source_code: str
    target_code: str
    reason: str = ""


@dataclass(slots=True)
class MatchOutcome:
    candidates: list[MatchCandidate] = field(default_factory=list)
    unmatched: list[EntityRecord] = field(default_factory=list)
    ambiguous: list[EntityRecord] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class MergePlan:
    """One merge, consumed once by the migrator."""

    canonical_id: str
    retired_id: str
    dependent_collections: tuple[str, ...]
    cohort_key: str
    score: float = 1.0
    rule: str = ""


@dataclass(slots=True, frozen=True)
class AuditEntry:
    """Durable trail of a committed merge."""

    canonical_id: str
    retired_id: str
    retired_snapshot: dict[str, str]
    moved_counts: dict[str, int]
    timestamp: datetime
    cohort_key: str
    rule: str = ""
    score: float = 1.0

    @property
    def moved_total(self) -> int:
        return sum(self.moved_counts.values())


@dataclass(slots=True)
class MergeFailure:
    plan: MergePlan
    error: str
    kind: str


@dataclass(slots=True)
class ReconciliationReport:
    """Everything one driver run produced for a cohort."""

    cohort_key: str
    merged: list[AuditEntry] = field(default_factory=list)
    unmatched: list[EntityRecord] = field(default_factory=list)
    ambiguous: list[EntityRecord] = field(default_factory=list)
    failures: list[MergeFailure] = field(default_factory=list)
    planned: list[MergePlan] = field(default_factory=list)
    rejected_overrides: list[dict[str, str]] = field(default_factory=list)
    dry_run: bool = False
    error: str | None = None
