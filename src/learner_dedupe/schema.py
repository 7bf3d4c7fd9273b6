from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from learner_dedupe.models import EntityRecord


class MatchRule(StrEnum):
    CONTAINMENT = "containment"
    EDIT_DISTANCE = "edit_distance"
    TOKEN_OVERLAP = "token_overlap"
    MANUAL_OVERRIDE = "manual_override"


@dataclass(frozen=True)
class CodeFormat:
    """Describes the authoritative admission-code scheme, e.g. ``ADM-PP1-007``."""

    prefix: str = "ADM"
    separator: str = "-"
    sequence_digits: int = 3
    require_cohort_segment: bool = True

    def pattern(self, segment: str | None = None) -> re.Pattern[str]:
        sep = re.escape(self.separator)
        parts = [re.escape(self.prefix)]
        if self.require_cohort_segment and segment:
            parts.append(re.escape(segment))
        else:
            parts.append(r"[A-Za-z0-9]+")
        parts.append(rf"\d{{{self.sequence_digits},}}")
        return re.compile("^" + sep.join(parts) + "$", re.IGNORECASE)

    def is_authoritative(self, code: str | None, segment: str | None = None) -> bool:
        if not code:
            return False
        return self.pattern(segment).match(code.strip()) is not None

    def predicate(self, segment: str | None = None) -> Callable[[EntityRecord], bool]:
        compiled = self.pattern(segment)

        def _is_authoritative(record: EntityRecord) -> bool:
            code = (record.canonical_code or "").strip()
            return bool(code) and compiled.match(code) is not None

        return _is_authoritative
