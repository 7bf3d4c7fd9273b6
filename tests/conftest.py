from collections.abc import Callable, Sequence

import pytest

from learner_dedupe.models import DependentRecord, EntityRecord, ManualOverride
from learner_dedupe.runners import ReconciliationDriver
from learner_dedupe.schema import CodeFormat
from learner_dedupe.steps import CohortMatcher, MergePlanner, NameSimilarityScorer, RelationshipMigrator
from learner_dedupe.stores import InMemoryIdentityStore


def make_learner(internal_id: str, code: str, name: str, cohort: str = "G1") -> EntityRecord:
    given, _, family = name.partition(" ")
    return EntityRecord(
        internal_id=internal_id,
        canonical_code=code,
        given_name=given,
        family_name=family,
        cohort_key=cohort,
    )


@pytest.fixture
def learner() -> Callable[..., EntityRecord]:
    return make_learner


@pytest.fixture
def omar_store() -> InMemoryIdentityStore:
    store = InMemoryIdentityStore(
        entities=[
            make_learner("A1", "ADM-G1-001", "Omar Ibrahim"),
            make_learner("L1", "1044", "Omar Ibrahim"),
        ],
        collections=["results"],
    )
    for i in range(3):
        store.add_dependent("results", DependentRecord(internal_id=f"r{i}", owner_id="L1", payload={"score": 60 + i}))
    return store


@pytest.fixture
def make_driver() -> Callable[..., ReconciliationDriver]:
    def _make(
        store: InMemoryIdentityStore,
        collections: Sequence[str] = ("results",),
        overrides: Sequence[ManualOverride] = (),
        segment: str | None = "G1",
        threshold: float = 0.7,
        migrator: RelationshipMigrator | None = None,
    ) -> ReconciliationDriver:
        matcher = CohortMatcher(
            scorer=NameSimilarityScorer(threshold=threshold),
            is_authoritative=CodeFormat().predicate(segment),
        )
        return ReconciliationDriver(
            store=store,
            matcher=matcher,
            planner=MergePlanner(),
            migrator=migrator or RelationshipMigrator(store, retry_backoff=0.0),
            dependent_collections=collections,
            overrides=overrides,
        )

    return _make
