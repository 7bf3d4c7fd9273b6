from __future__ import annotations

import math
from collections.abc import Callable, Sequence

import structlog

from learner_dedupe.errors import AmbiguousMatch, NoMatch
from learner_dedupe.models import EntityRecord, MatchCandidate, MatchOutcome
from learner_dedupe.steps.similarity import NameScore, NameSimilarityScorer

logger = structlog.get_logger(__name__)

_TIE_TOLERANCE = 1e-9


class CohortMatcher:
    """Pairs each legacy record with the single best authoritative record in its cohort."""

    def __init__(
        self,
        scorer: NameSimilarityScorer,
        is_authoritative: Callable[[EntityRecord], bool],
    ) -> None:
        self._scorer = scorer
        self._is_authoritative = is_authoritative

    def find_matches(self, records: Sequence[EntityRecord], cohort_key: str) -> list[MatchCandidate]:
        return self.match_cohort(records, cohort_key).candidates

    def match_cohort(self, records: Sequence[EntityRecord], cohort_key: str) -> MatchOutcome:
        in_cohort = [record for record in records if record.cohort_key == cohort_key]
        authoritative, legacy = self.partition(in_cohort)
        logger.info(
            "cohort_partitioned",
            cohort_key=cohort_key,
            authoritative=len(authoritative),
            legacy=len(legacy),
        )

        outcome = MatchOutcome()
        for record in legacy:
            try:
                outcome.candidates.append(self._best_candidate(record, authoritative))
            except AmbiguousMatch as exc:
                logger.warning(
                    "legacy_record_ambiguous",
                    internal_id=record.internal_id,
                    code=record.canonical_code,
                    name=record.full_name,
                    tied_with=exc.target_ids,
                    score=round(exc.score, 4),
                )
                outcome.ambiguous.append(record)
            except NoMatch:
                logger.info(
                    "legacy_record_unmatched",
                    internal_id=record.internal_id,
                    code=record.canonical_code,
                    name=record.full_name,
                )
                outcome.unmatched.append(record)
        return outcome

    def is_authoritative(self, record: EntityRecord) -> bool:
        return self._is_authoritative(record)

    def partition(self, records: Sequence[EntityRecord]) -> tuple[list[EntityRecord], list[EntityRecord]]:
        authoritative: list[EntityRecord] = []
        legacy: list[EntityRecord] = []
        for record in records:
            (authoritative if self._is_authoritative(record) else legacy).append(record)
        return authoritative, legacy

    def _best_candidate(self, record: EntityRecord, authoritative: Sequence[EntityRecord]) -> MatchCandidate:
        scored: list[tuple[NameScore, EntityRecord]] = []
        for target in authoritative:
            result = self._scorer.score(record.full_name, target.full_name)
            if result.matched:
                scored.append((result, target))
        if not scored:
            raise NoMatch(record.internal_id)

        best_value = max(result.value for result, _ in scored)
        best = [
            (result, target)
            for result, target in scored
            if math.isclose(result.value, best_value, abs_tol=_TIE_TOLERANCE)
        ]
        if len(best) > 1:
            raise AmbiguousMatch(record.internal_id, [target.internal_id for _, target in best], best_value)

        result, target = best[0]
        return MatchCandidate(
            source_id=record.internal_id,
            target_id=target.internal_id,
            score=result.value,
            metadata={
                "rule": str(result.rule),
                "cohort_key": record.cohort_key,
                "source_code": record.canonical_code,
                "target_code": target.canonical_code,
                "source_name": record.full_name,
                "target_name": target.full_name,
            },
        )
