"""Learner deduplication and merge-reconciliation engine."""

from learner_dedupe.models import (
    AuditEntry,
    DependentRecord,
    EntityRecord,
    ManualOverride,
    MatchCandidate,
    MergePlan,
    ReconciliationReport,
)
from learner_dedupe.schema import CodeFormat, MatchRule

__all__ = [
    "AuditEntry",
    "DependentRecord",
    "EntityRecord",
    "ManualOverride",
    "MatchCandidate",
    "MergePlan",
    "ReconciliationReport",
    "CodeFormat",
    "MatchRule",
]
