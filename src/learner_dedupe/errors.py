"""Exception hierarchy for matching, planning and merge commits."""

from __future__ import annotations

from collections.abc import Mapping, Sequence


class DedupeError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(DedupeError):
    pass


class AmbiguousMatch(DedupeError):
    """Several authoritative records tie for the best score."""

    def __init__(self, source_id: str, target_ids: Sequence[str], score: float) -> None:
        self.source_id = source_id
        self.target_ids = list(target_ids)
        self.score = score
        super().__init__(
            f"{source_id} ties at {score:.3f} with {', '.join(self.target_ids)}"
        )


class NoMatch(DedupeError):
    """No authoritative record cleared the threshold."""

    def __init__(self, source_id: str) -> None:
        self.source_id = source_id
        super().__init__(f"no authoritative candidate for {source_id}")


class OverrideRejected(DedupeError):
    def __init__(self, source_code: str, target_code: str, reason: str) -> None:
        self.source_code = source_code
        self.target_code = target_code
        self.reason = reason
        super().__init__(f"override {source_code} -> {target_code} rejected: {reason}")


class MergeError(DedupeError):
    """A single merge plan could not be committed; the transaction was rolled back."""

    kind = "merge_error"


class StalePlanError(MergeError):
    kind = "stale_plan"


class DanglingReferenceDetected(MergeError):
    """Records still point at the retired identity after the owner rewrite.

    Usually means the configured dependent-collection list is incomplete.
    """

    kind = "dangling_reference"

    def __init__(self, retired_id: str, stragglers: Mapping[str, int]) -> None:
        self.retired_id = retired_id
        self.stragglers = dict(stragglers)
        detail = ", ".join(f"{name}={count}" for name, count in sorted(self.stragglers.items()))
        super().__init__(f"{retired_id} still referenced after migration: {detail}")


class StoreTransactionFailure(MergeError):
    kind = "store_failure"
    transient = False


class TransientStoreError(StoreTransactionFailure):
    """Conflict or lock contention; safe to retry the whole unit of work."""

    kind = "store_transient"
    transient = True
