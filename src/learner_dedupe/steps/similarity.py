from __future__ import annotations

from dataclasses import dataclass

from learner_dedupe.schema import MatchRule
from learner_dedupe.steps.cleanup import normalize, tokenize

DEFAULT_THRESHOLD = 0.7


@dataclass(slots=True, frozen=True)
class NameScore:
    value: float
    rule: MatchRule | None

    @property
    def matched(self) -> bool:
        return self.rule is not None


def similarity(name_a: str | None, name_b: str | None) -> float:
    """Similarity of two raw names in ``[0, 1]``.

    Containment of one normalized name in the other counts as a full match,
    otherwise the score is one minus the edit distance over the longer length.
    """
    left = normalize(name_a)
    right = normalize(name_b)
    if not left or not right:
        return 0.0
    if left in right or right in left:
        return 1.0
    longest = max(len(left), len(right))
    return 1.0 - _edit_distance(left, right) / longest


def shared_tokens(name_a: str | None, name_b: str | None, min_length: int = 3) -> frozenset[str]:
    return tokenize(name_a, min_length) & tokenize(name_b, min_length)


class NameSimilarityScorer:
    """Edit-distance similarity OR'ed with token overlap.

    A pair is accepted when either heuristic fires; ``rule`` records which one.
    """

    def __init__(self, threshold: float = DEFAULT_THRESHOLD, min_token_length: int = 3) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")
        self._threshold = threshold
        self._min_token_length = min_token_length

    def score(self, name_a: str | None, name_b: str | None) -> NameScore:
        value = similarity(name_a, name_b)
        if value >= 1.0:
            return NameScore(value=value, rule=MatchRule.CONTAINMENT)
        if value > self._threshold:
            return NameScore(value=value, rule=MatchRule.EDIT_DISTANCE)
        if shared_tokens(name_a, name_b, self._min_token_length):
            return NameScore(value=value, rule=MatchRule.TOKEN_OVERLAP)
        return NameScore(value=value, rule=None)

    def is_match(self, name_a: str | None, name_b: str | None) -> bool:
        return self.score(name_a, name_b).matched


def _edit_distance(left: str, right: str) -> int:
    """Levenshtein distance where swapping two adjacent letters costs one edit."""
    if left == right:
        return 0
    if not left:
        return len(right)
    if not right:
        return len(left)

    before_prev: list[int] = []
    prev = list(range(len(right) + 1))
    for i, c1 in enumerate(left, start=1):
        curr = [i]
        for j, c2 in enumerate(right, start=1):
            cost = 0 if c1 == c2 else 1
            best = min(curr[j - 1] + 1, prev[j] + 1, prev[j - 1] + cost)
            if i > 1 and j > 1 and c1 == right[j - 2] and left[i - 2] == c2:
                best = min(best, before_prev[j - 2] + 1)
            curr.append(best)
        before_prev, prev = prev, curr
    return prev[-1]
