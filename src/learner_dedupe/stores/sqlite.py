"""SQLite-backed identity store.

Transactions are explicit (``BEGIN IMMEDIATE`` / ``COMMIT`` / ``ROLLBACK``) on an
autocommit connection, foreign keys are enforced, and the set of dependent
collections is discovered from the schema rather than configured by hand.
"""
from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import structlog

from learner_dedupe.errors import StoreTransactionFailure, TransientStoreError
from learner_dedupe.models import AuditEntry, EntityRecord

logger = structlog.get_logger(__name__)

AUDIT_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS merge_audit (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    canonical_id TEXT NOT NULL,
    retired_id TEXT NOT NULL,
    retired_snapshot TEXT NOT NULL,
    moved_counts TEXT NOT NULL,
    created_at TEXT NOT NULL,
    cohort_key TEXT NOT NULL,
    rule TEXT NOT NULL DEFAULT '',
    score REAL NOT NULL DEFAULT 1.0
);
CREATE INDEX IF NOT EXISTS idx_merge_audit_cohort ON merge_audit (cohort_key);
"""

_TRANSIENT_MARKERS = ("locked", "busy")


class SqliteIdentityStore:
    def __init__(
        self,
        path: str | Path,
        entity_table: str = "learners",
        timeout: float = 30.0,
    ) -> None:
        self._path = str(path)
        self._entity_table = entity_table
        self._conn = sqlite3.connect(self._path, timeout=timeout, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.execute(f"PRAGMA busy_timeout = {int(timeout * 1000)}")
        if self._path != ":memory:":
            self._conn.execute("PRAGMA journal_mode = WAL")
        self._owner_columns: dict[str, list[str]] | None = None
        self._conn.executescript(AUDIT_TABLE_SQL)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SqliteIdentityStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def query(self, cohort_key: str) -> list[EntityRecord]:
        with self._translate_errors("query"):
            rows = self._conn.execute(
                f'SELECT id, admission_number, first_name, last_name, cohort_key FROM "{self._entity_table}" '
                "WHERE cohort_key = ? ORDER BY id",
                (cohort_key,),
            ).fetchall()
        return [_entity_from_row(row) for row in rows]

    def get_entity(self, entity_id: str) -> EntityRecord | None:
        with self._translate_errors("get_entity"):
            row = self._conn.execute(
                f'SELECT id, admission_number, first_name, last_name, cohort_key FROM "{self._entity_table}" '
                "WHERE id = ?",
                (entity_id,),
            ).fetchone()
        return _entity_from_row(row) if row else None

    def update_owner(self, collection: str, old_owner_id: str, new_owner_id: str) -> int:
        """Re-point every learner reference in ``collection``; counts rewritten references."""
        moved = 0
        for column in self._owner_columns_for(collection):
            with self._translate_errors(f"update_owner({collection}.{column})"):
                cursor = self._conn.execute(
                    f'UPDATE "{collection}" SET "{column}" = ? WHERE "{column}" = ?',
                    (new_owner_id, old_owner_id),
                )
            moved += cursor.rowcount
        return moved

    def count_owned_by(self, collection: str, owner_id: str) -> int:
        columns = self._owner_columns_for(collection)
        where = " OR ".join(f'"{column}" = ?' for column in columns)
        with self._translate_errors(f"count_owned_by({collection})"):
            row = self._conn.execute(
                f'SELECT COUNT(*) FROM "{collection}" WHERE {where}',
                (owner_id,) * len(columns),
            ).fetchone()
        return int(row[0])

    def reference_collections(self) -> list[str]:
        return sorted(self._discover_owner_columns())

    def delete_entity(self, entity_id: str) -> None:
        with self._translate_errors("delete_entity"):
            cursor = self._conn.execute(f'DELETE FROM "{self._entity_table}" WHERE id = ?', (entity_id,))
        if cursor.rowcount != 1:
            raise StoreTransactionFailure(f"entity {entity_id} does not exist")

    def begin_transaction(self) -> None:
        with self._translate_errors("begin"):
            self._conn.execute("BEGIN IMMEDIATE")

    def commit(self) -> None:
        with self._translate_errors("commit"):
            self._conn.execute("COMMIT")

    def rollback(self) -> None:
        if not self._conn.in_transaction:
            return
        with self._translate_errors("rollback"):
            self._conn.execute("ROLLBACK")

    def insert_audit_entry(self, entry: AuditEntry) -> None:
        with self._translate_errors("insert_audit_entry"):
            self._conn.execute(
                "INSERT INTO merge_audit (canonical_id, retired_id, retired_snapshot, moved_counts, "
                "created_at, cohort_key, rule, score) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    entry.canonical_id,
                    entry.retired_id,
                    json.dumps(entry.retired_snapshot, sort_keys=True),
                    json.dumps(entry.moved_counts, sort_keys=True),
                    entry.timestamp.isoformat(),
                    entry.cohort_key,
                    entry.rule,
                    entry.score,
                ),
            )

    def audit_entries(self, cohort_key: str | None = None) -> list[AuditEntry]:
        sql = (
            "SELECT canonical_id, retired_id, retired_snapshot, moved_counts, created_at, cohort_key, rule, score "
            "FROM merge_audit"
        )
        params: tuple[str, ...] = ()
        if cohort_key is not None:
            sql += " WHERE cohort_key = ?"
            params = (cohort_key,)
        with self._translate_errors("audit_entries"):
            rows = self._conn.execute(sql + " ORDER BY id", params).fetchall()
        return [
            AuditEntry(
                canonical_id=row["canonical_id"],
                retired_id=row["retired_id"],
                retired_snapshot=json.loads(row["retired_snapshot"]),
                moved_counts=json.loads(row["moved_counts"]),
                timestamp=datetime.fromisoformat(row["created_at"]),
                cohort_key=row["cohort_key"],
                rule=row["rule"],
                score=float(row["score"]),
            )
            for row in rows
        ]

    def _owner_columns_for(self, collection: str) -> list[str]:
        columns = self._discover_owner_columns()
        if collection not in columns:
            raise StoreTransactionFailure(
                f"{collection!r} has no foreign key to {self._entity_table}; known: {sorted(columns)}"
            )
        return columns[collection]

    def _discover_owner_columns(self) -> dict[str, list[str]]:
        if self._owner_columns is not None:
            return self._owner_columns
        owners: dict[str, list[str]] = {}
        with self._translate_errors("schema discovery"):
            tables = [
                row[0]
                for row in self._conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
                )
            ]
            for table in tables:
                for fk in self._conn.execute(f'PRAGMA foreign_key_list("{table}")'):
                    if fk["table"] == self._entity_table:
                        owners.setdefault(table, []).append(fk["from"])
        logger.debug("reference_collections_discovered", collections=sorted(owners))
        self._owner_columns = owners
        return owners

    @contextmanager
    def _translate_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.OperationalError as exc:
            message = str(exc).lower()
            if any(marker in message for marker in _TRANSIENT_MARKERS):
                raise TransientStoreError(f"{action}: {exc}") from exc
            raise StoreTransactionFailure(f"{action}: {exc}") from exc
        except sqlite3.Error as exc:
            raise StoreTransactionFailure(f"{action}: {exc}") from exc


def _entity_from_row(row: sqlite3.Row) -> EntityRecord:
    return EntityRecord(
        internal_id=str(row["id"]),
        canonical_code=row["admission_number"] or "",
        given_name=row["first_name"] or "",
        family_name=row["last_name"] or "",
        cohort_key=row["cohort_key"],
    )
