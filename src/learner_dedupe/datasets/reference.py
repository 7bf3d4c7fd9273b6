from __future__ import annotations

import random
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from learner_dedupe.datasets.profiles import LEARNING_AREAS, SCHOOL_COLLECTIONS, SCHOOL_SCHEMA_SQL
from learner_dedupe.models import DependentRecord, EntityRecord
from learner_dedupe.stores.memory import InMemoryIdentityStore

_FIRST_NAMES = [
    "Omar",
    "Abdi",
    "Amina",
    "Mariam",
    "Hafidh",
    "Mawadha",
    "Umayma",
    "Zeitun",
    "Ramadhan",
    "Evaline",
    "Robin",
    "Sumeya",
    "Khalif",
    "Ilhan",
]
_LAST_NAMES = [
    "Ibrahim",
    "Hassan",
    "Mohamed",
    "Abdirahman",
    "Issack",
    "Osman",
    "Noor",
    "Shaban",
    "Munene",
    "Rashid",
    "Hussein",
]
_EXPANSIONS = {"hafidh": "Abdihafidh", "rahman": "Abdirahman", "aziz": "Abdiaziz"}
_ATTENDANCE_STATUSES = ["present", "absent", "late"]
_RATINGS = ["EE", "ME", "AE", "BE"]


@dataclass(slots=True)
class SchoolDataset:
    entities: list[EntityRecord] = field(default_factory=list)
    dependents: dict[str, list[DependentRecord]] = field(default_factory=dict)
    duplicate_of: dict[str, str] = field(default_factory=dict)


class SchoolDatasetGenerator:
    """Generate synthetic cohorts where legacy imports duplicate ADM-coded learners."""

    def __init__(self, seed: int = 7) -> None:
        self._rng = random.Random(seed)
        self._dependent_seq = 0

    def generate(
        self,
        cohort_keys: Sequence[str],
        size: int,
        duplicate_rate: float = 0.3,
    ) -> SchoolDataset:
        dataset = SchoolDataset(dependents={name: [] for name in SCHOOL_COLLECTIONS})
        if size <= 0:
            return dataset

        for cohort_key in cohort_keys:
            authoritative = self._authoritative(cohort_key, size)
            dataset.entities.extend(authoritative)

            duplicate_count = int(size * duplicate_rate)
            for n, source in enumerate(self._rng.sample(authoritative, min(duplicate_count, size))):
                given, family = self._name_variant(source.given_name, source.family_name)
                legacy = EntityRecord(
                    internal_id=f"{cohort_key.lower()}-l{n:03d}",
                    canonical_code=str(1000 + self._rng.randint(0, 8999)),
                    given_name=given,
                    family_name=family,
                    cohort_key=cohort_key,
                )
                dataset.entities.append(legacy)
                dataset.duplicate_of[legacy.internal_id] = source.internal_id

        for entity in dataset.entities:
            self._dependents_for(entity, dataset.dependents)
        return dataset

    def _authoritative(self, cohort_key: str, size: int) -> list[EntityRecord]:
        records: list[EntityRecord] = []
        seen: set[tuple[str, str]] = set()
        while len(records) < size:
            given = self._rng.choice(_FIRST_NAMES)
            family = self._rng.choice(_LAST_NAMES)
            if (given, family) in seen and len(seen) < len(_FIRST_NAMES) * len(_LAST_NAMES):
                continue
            seen.add((given, family))
            seq = len(records) + 1
            records.append(
                EntityRecord(
                    internal_id=f"{cohort_key.lower()}-a{seq:03d}",
                    canonical_code=f"ADM-{cohort_key}-{seq:03d}",
                    given_name=given,
                    family_name=family,
                    cohort_key=cohort_key,
                )
            )
        return records

    def _name_variant(self, given: str, family: str) -> tuple[str, str]:
        variant = self._rng.choice(["case", "typo", "expand", "swap", "extra"])
        if variant == "case":
            return given.upper(), family.lower()
        if variant == "typo" and len(given) > 3:
            i = self._rng.randint(1, len(given) - 2)
            return given[:i] + given[i + 1] + given[i] + given[i + 2 :], family
        if variant == "expand":
            return _EXPANSIONS.get(given.lower(), given), family
        if variant == "swap":
            return family, given
        return given, f"{family} {self._rng.choice(_LAST_NAMES)}"

    def _dependents_for(self, entity: EntityRecord, dependents: dict[str, list[DependentRecord]]) -> None:
        for area in self._rng.sample(LEARNING_AREAS, self._rng.randint(1, 3)):
            dependents["summative_results"].append(
                self._dependent(entity, learning_area=area, score=round(self._rng.uniform(20, 100), 1))
            )
        for day in range(1, self._rng.randint(2, 5)):
            dependents["attendance"].append(
                self._dependent(entity, day=f"2025-01-{day:02d}", status=self._rng.choice(_ATTENDANCE_STATUSES))
            )
        if self._rng.random() < 0.5:
            dependents["formative_assessments"].append(
                self._dependent(
                    entity,
                    learning_area=self._rng.choice(LEARNING_AREAS),
                    rating=self._rng.choice(_RATINGS),
                )
            )
        dependents["class_enrollments"].append(self._dependent(entity, class_name=f"{entity.cohort_key} East"))

    def _dependent(self, entity: EntityRecord, **payload: object) -> DependentRecord:
        self._dependent_seq += 1
        return DependentRecord(
            internal_id=f"dep-{self._dependent_seq:06d}",
            owner_id=entity.internal_id,
            payload=dict(payload),
        )


def to_memory_store(dataset: SchoolDataset) -> InMemoryIdentityStore:
    store = InMemoryIdentityStore(entities=dataset.entities, collections=dataset.dependents)
    for collection, records in dataset.dependents.items():
        for record in records:
            store.add_dependent(collection, record)
    return store


def write_sqlite(dataset: SchoolDataset, path: str | Path) -> None:
    conn = sqlite3.connect(str(path))
    try:
        conn.execute("PRAGMA foreign_keys = ON")
        conn.executescript(SCHOOL_SCHEMA_SQL)
        with conn:
            conn.executemany(
                "INSERT INTO learners (id, admission_number, first_name, last_name, cohort_key) VALUES (?, ?, ?, ?, ?)",
                [
                    (e.internal_id, e.canonical_code, e.given_name, e.family_name, e.cohort_key)
                    for e in dataset.entities
                ],
            )
            for collection, columns in SCHOOL_COLLECTIONS.items():
                placeholders = ", ".join("?" for _ in range(len(columns) + 2))
                conn.executemany(
                    f"INSERT INTO {collection} (id, learner_id, {', '.join(columns)}) VALUES ({placeholders})",
                    [
                        (r.internal_id, r.owner_id, *(r.payload[column] for column in columns))
                        for r in dataset.dependents.get(collection, [])
                    ],
                )
    finally:
        conn.close()
