from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Sequence

import structlog

from learner_dedupe.errors import OverrideRejected
from learner_dedupe.models import EntityRecord, ManualOverride, MatchCandidate, MergePlan
from learner_dedupe.schema import MatchRule

logger = structlog.get_logger(__name__)


class MergePlanner:
    """Single survivorship policy: the authoritative-format record is always kept."""

    def plan(self, candidate: MatchCandidate, dependent_collections: Sequence[str]) -> MergePlan:
        if candidate.source_id == candidate.target_id:
            raise ValueError(f"cannot merge {candidate.source_id} into itself")
        collections = tuple(dict.fromkeys(dependent_collections))
        return MergePlan(
            canonical_id=candidate.target_id,
            retired_id=candidate.source_id,
            dependent_collections=collections,
            cohort_key=str(candidate.metadata.get("cohort_key", "")),
            score=candidate.score,
            rule=str(candidate.metadata.get("rule", "")),
        )


def resolve_overrides(
    records: Sequence[EntityRecord],
    overrides: Sequence[ManualOverride],
    is_authoritative: Callable[[EntityRecord], bool],
) -> tuple[list[MatchCandidate], list[OverrideRejected]]:
    """Validate curated pairs against a cohort snapshot.

    Returns accepted pairs as match candidates and the rejected ones with a reason.
    """
    by_code: dict[str, list[EntityRecord]] = {}
    for record in records:
        by_code.setdefault((record.canonical_code or "").strip().upper(), []).append(record)

    source_counts = Counter(o.source_code.strip().upper() for o in overrides)
    retired_codes = set(source_counts)

    accepted: list[MatchCandidate] = []
    rejected: list[OverrideRejected] = []
    for override in overrides:
        source_code = override.source_code.strip().upper()
        target_code = override.target_code.strip().upper()
        try:
            if source_code == target_code:
                raise OverrideRejected(override.source_code, override.target_code, "source equals target")
            if source_counts[source_code] > 1:
                raise OverrideRejected(override.source_code, override.target_code, "source listed more than once")
            if target_code in retired_codes:
                raise OverrideRejected(override.source_code, override.target_code, "target is itself retired")
            source = _single(by_code, source_code, override, "source")
            target = _single(by_code, target_code, override, "target")
            if not is_authoritative(target):
                raise OverrideRejected(override.source_code, override.target_code, "target is not authoritative")
        except OverrideRejected as exc:
            logger.warning(
                "override_rejected",
                cohort_key=override.cohort_key,
                source=override.source_code,
                target=override.target_code,
                reason=exc.reason,
            )
            rejected.append(exc)
            continue

        accepted.append(
            MatchCandidate(
                source_id=source.internal_id,
                target_id=target.internal_id,
                score=1.0,
                metadata={
                    "rule": str(MatchRule.MANUAL_OVERRIDE),
                    "cohort_key": source.cohort_key,
                    "source_code": source.canonical_code,
                    "target_code": target.canonical_code,
                    "source_name": source.full_name,
                    "target_name": target.full_name,
                    "reason": override.reason,
                },
            )
        )
    return accepted, rejected


def _single(
    by_code: dict[str, list[EntityRecord]],
    code: str,
    override: ManualOverride,
    side: str,
) -> EntityRecord:
    found = by_code.get(code, [])
    if not found:
        raise OverrideRejected(override.source_code, override.target_code, f"{side} not found in cohort")
    if len(found) > 1:
        raise OverrideRejected(override.source_code, override.target_code, f"{side} code is not unique")
    return found[0]
