from __future__ import annotations

import copy
import threading
from collections.abc import Iterable

from learner_dedupe.errors import StoreTransactionFailure
from learner_dedupe.models import AuditEntry, DependentRecord, EntityRecord


class InMemoryIdentityStore:
    """Dict-backed store with the same transactional contract as the SQL one.

    A transaction holds the store lock until commit or rollback, so concurrent
    cohorts serialize their writes the way ``BEGIN IMMEDIATE`` does in SQLite.
    Rollback restores a copy taken at ``begin_transaction``. Foreign keys are
    enforced: owners must exist and referenced entities cannot be deleted.
    """

    def __init__(
        self,
        entities: Iterable[EntityRecord] = (),
        collections: Iterable[str] = (),
    ) -> None:
        self._lock = threading.RLock()
        self._entities: dict[str, EntityRecord] = {}
        self._collections: dict[str, dict[str, DependentRecord]] = {name: {} for name in collections}
        self._audit: list[AuditEntry] = []
        self._saved: tuple | None = None
        for entity in entities:
            self.add_entity(entity)

    # -- seeding helpers -------------------------------------------------

    def add_entity(self, entity: EntityRecord) -> None:
        with self._lock:
            if entity.internal_id in self._entities:
                raise StoreTransactionFailure(f"duplicate entity id {entity.internal_id}")
            self._entities[entity.internal_id] = entity

    def add_dependent(self, collection: str, record: DependentRecord) -> None:
        with self._lock:
            self._require_owner(record.owner_id)
            self._collections.setdefault(collection, {})[record.internal_id] = record

    def dependents(self, collection: str) -> list[DependentRecord]:
        with self._lock:
            return [copy.copy(record) for record in self._table(collection).values()]

    def entity_ids(self) -> set[str]:
        with self._lock:
            return set(self._entities)

    # -- IdentityStore ---------------------------------------------------

    def query(self, cohort_key: str) -> list[EntityRecord]:
        with self._lock:
            return sorted(
                (entity for entity in self._entities.values() if entity.cohort_key == cohort_key),
                key=lambda entity: entity.internal_id,
            )

    def get_entity(self, entity_id: str) -> EntityRecord | None:
        with self._lock:
            return self._entities.get(entity_id)

    def update_owner(self, collection: str, old_owner_id: str, new_owner_id: str) -> int:
        with self._lock:
            self._require_owner(new_owner_id)
            moved = 0
            for record in self._table(collection).values():
                if record.owner_id == old_owner_id:
                    record.owner_id = new_owner_id
                    moved += 1
            return moved

    def count_owned_by(self, collection: str, owner_id: str) -> int:
        with self._lock:
            return sum(1 for record in self._table(collection).values() if record.owner_id == owner_id)

    def reference_collections(self) -> list[str]:
        with self._lock:
            return sorted(self._collections)

    def delete_entity(self, entity_id: str) -> None:
        with self._lock:
            if entity_id not in self._entities:
                raise StoreTransactionFailure(f"entity {entity_id} does not exist")
            for name in self._collections:
                if self.count_owned_by(name, entity_id):
                    raise StoreTransactionFailure(f"FOREIGN KEY constraint failed: {name} references {entity_id}")
            del self._entities[entity_id]

    def begin_transaction(self) -> None:
        self._lock.acquire()
        if self._saved is not None:
            self._lock.release()
            raise StoreTransactionFailure("transaction already open")
        self._saved = copy.deepcopy((self._entities, self._collections, self._audit))

    def commit(self) -> None:
        self._end_transaction()

    def rollback(self) -> None:
        saved = self._saved
        if saved is None:
            return
        self._entities, self._collections, self._audit = saved
        self._end_transaction()

    def insert_audit_entry(self, entry: AuditEntry) -> None:
        with self._lock:
            self._audit.append(entry)

    def audit_entries(self, cohort_key: str | None = None) -> list[AuditEntry]:
        with self._lock:
            return [entry for entry in self._audit if cohort_key is None or entry.cohort_key == cohort_key]

    # -- internals -------------------------------------------------------

    def _end_transaction(self) -> None:
        if self._saved is None:
            raise StoreTransactionFailure("no open transaction")
        self._saved = None
        self._lock.release()

    def _table(self, collection: str) -> dict[str, DependentRecord]:
        try:
            return self._collections[collection]
        except KeyError:
            raise StoreTransactionFailure(f"unknown collection {collection!r}") from None

    def _require_owner(self, owner_id: str) -> None:
        if owner_id not in self._entities:
            raise StoreTransactionFailure(f"FOREIGN KEY constraint failed: no entity {owner_id}")
