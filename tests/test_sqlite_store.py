import sqlite3
from datetime import timezone

import pytest

from learner_dedupe.datasets import SCHOOL_SCHEMA_SQL
from learner_dedupe.errors import StoreTransactionFailure, TransientStoreError
from learner_dedupe.stores import SqliteIdentityStore


@pytest.fixture
def school_db(tmp_path):
    path = tmp_path / "school.sqlite3"
    conn = sqlite3.connect(path)
    conn.executescript(SCHOOL_SCHEMA_SQL)
    conn.executemany(
        "INSERT INTO learners (id, admission_number, first_name, last_name, cohort_key) VALUES (?, ?, ?, ?, ?)",
        [
            ("A1", "ADM-G1-001", "Omar", "Ibrahim", "G1"),
            ("L1", "1044", "Omar", "Ibrahim", "G1"),
            ("B1", "ADM-G2-001", "Amina", "Osman", "G2"),
        ],
    )
    conn.executemany(
        "INSERT INTO summative_results (id, learner_id, learning_area, score) VALUES (?, ?, ?, ?)",
        [(f"r{i}", "L1", "Mathematics", 50.0 + i) for i in range(3)],
    )
    conn.execute("INSERT INTO attendance (id, learner_id, day, status) VALUES ('t1', 'L1', '2025-01-02', 'present')")
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def store(school_db):
    with SqliteIdentityStore(school_db) as opened:
        yield opened


def _owners(path, table: str) -> set[str]:
    conn = sqlite3.connect(path)
    try:
        return {row[0] for row in conn.execute(f"SELECT learner_id FROM {table}")}
    finally:
        conn.close()


def test_query_is_scoped_to_the_cohort(store) -> None:
    assert [r.internal_id for r in store.query("G1")] == ["A1", "L1"]
    assert store.get_entity("B1").full_name == "Amina Osman"
    assert store.get_entity("missing") is None


def test_reference_collections_come_from_foreign_keys(store) -> None:
    assert store.reference_collections() == [
        "attendance",
        "class_enrollments",
        "formative_assessments",
        "summative_results",
    ]
    with pytest.raises(StoreTransactionFailure):
        store.count_owned_by("merge_audit", "L1")


def test_end_to_end_merge_on_sqlite(store, school_db, make_driver) -> None:
    report = make_driver(store, collections=["summative_results", "attendance"]).run("G1")

    assert [(e.canonical_id, e.retired_id) for e in report.merged] == [("A1", "L1")]
    assert report.merged[0].moved_counts == {"summative_results": 3, "attendance": 1}
    assert store.get_entity("L1") is None
    assert _owners(school_db, "summative_results") == {"A1"}
    assert _owners(school_db, "attendance") == {"A1"}
    assert store.connection.execute("PRAGMA foreign_key_check").fetchall() == []

    stored = store.audit_entries("G1")
    assert len(stored) == 1
    assert stored[0].retired_snapshot == {"canonical_code": "1044", "given_name": "Omar", "family_name": "Ibrahim"}
    assert stored[0].moved_counts == {"attendance": 1, "summative_results": 3}
    assert stored[0].timestamp.tzinfo == timezone.utc

    assert make_driver(store, collections=["summative_results", "attendance"]).run("G1").merged == []


def test_incomplete_collection_list_rolls_back_on_sqlite(store, school_db, make_driver) -> None:
    report = make_driver(store, collections=["summative_results"]).run("G1")

    assert report.merged == []
    assert [f.kind for f in report.failures] == ["dangling_reference"]
    assert store.get_entity("L1") is not None
    assert _owners(school_db, "summative_results") == {"L1"}
    assert store.audit_entries() == []
    assert not store.connection.in_transaction


def test_write_lock_contention_is_transient(school_db) -> None:
    with SqliteIdentityStore(school_db, timeout=0.05) as store:
        blocker = sqlite3.connect(school_db, isolation_level=None)
        try:
            blocker.execute("BEGIN IMMEDIATE")
            with pytest.raises(TransientStoreError):
                store.begin_transaction()
        finally:
            blocker.execute("ROLLBACK")
            blocker.close()

        store.begin_transaction()
        store.rollback()


def test_deleting_a_referenced_learner_is_a_permanent_failure(store) -> None:
    store.begin_transaction()
    try:
        with pytest.raises(StoreTransactionFailure) as excinfo:
            store.delete_entity("L1")
        assert not isinstance(excinfo.value, TransientStoreError)
    finally:
        store.rollback()
    assert store.get_entity("L1") is not None


def test_every_foreign_key_column_is_rewritten(school_db, make_driver) -> None:
    conn = sqlite3.connect(school_db)
    conn.executescript(
        """
        CREATE TABLE sibling_links (
            id TEXT PRIMARY KEY,
            learner_id TEXT NOT NULL REFERENCES learners (id),
            sibling_id TEXT NOT NULL REFERENCES learners (id)
        );
        INSERT INTO sibling_links VALUES ('s1', 'L1', 'B1'), ('s2', 'B1', 'L1');
        """
    )
    conn.commit()
    conn.close()

    with SqliteIdentityStore(school_db) as store:
        assert store.count_owned_by("sibling_links", "L1") == 2
        report = make_driver(store, collections=["summative_results", "attendance", "sibling_links"]).run("G1")

        assert report.failures == []
        assert report.merged[0].moved_counts["sibling_links"] == 2
        assert store.count_owned_by("sibling_links", "L1") == 0
        rows = store.connection.execute("SELECT id, learner_id, sibling_id FROM sibling_links ORDER BY id").fetchall()
        assert [tuple(row) for row in rows] == [("s1", "A1", "B1"), ("s2", "B1", "A1")]


def test_partial_rewrite_of_a_multi_column_table_is_a_dangling_reference(school_db, make_driver) -> None:
    conn = sqlite3.connect(school_db)
    conn.executescript(
        """
        CREATE TABLE sibling_links (
            id TEXT PRIMARY KEY,
            learner_id TEXT NOT NULL REFERENCES learners (id),
            sibling_id TEXT NOT NULL REFERENCES learners (id)
        );
        INSERT INTO sibling_links VALUES ('s2', 'B1', 'L1');
        """
    )
    conn.commit()
    conn.close()

    with SqliteIdentityStore(school_db) as store:
        report = make_driver(store, collections=["summative_results", "attendance"]).run("G1")

        assert [f.kind for f in report.failures] == ["dangling_reference"]
        assert store.get_entity("L1") is not None
