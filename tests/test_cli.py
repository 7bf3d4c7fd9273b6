import json

import pytest

from learner_dedupe.cli import main


@pytest.fixture
def demo_config(tmp_path):
    database = tmp_path / "school.sqlite3"
    config = tmp_path / "dedupe.yaml"
    config.write_text(
        f"database: {database}\nworkers: 2\ncohorts:\n  - key: PP1\n  - key: PP2\nretry:\n  backoff_seconds: 0\n",
        encoding="utf-8",
    )
    main(["seed-demo", "--database", str(database), "--cohort", "PP1", "--cohort", "PP2", "--size", "20", "--seed", "5"])
    return config


def test_seed_demo_refuses_to_overwrite(demo_config, tmp_path) -> None:
    with pytest.raises(SystemExit):
        main(["seed-demo", "--database", str(tmp_path / "school.sqlite3")])


def test_check_plans_without_merging(demo_config, tmp_path, capsys) -> None:
    capsys.readouterr()
    main(["check", "--config", str(demo_config), "--output-dir", str(tmp_path / "out")])

    report = json.loads((tmp_path / "out" / "report.json").read_text(encoding="utf-8"))
    assert sorted(report) == ["PP1", "PP2"]
    assert all(item["summary"]["dry_run"] for item in report.values())
    assert all(item["summary"]["merged_count"] == 0 for item in report.values())
    assert sum(item["summary"]["planned_count"] for item in report.values()) > 0
    assert "(dry run)" in capsys.readouterr().out

    main(["audit", "--config", str(demo_config)])
    assert json.loads(capsys.readouterr().out) == []


def test_reconcile_merges_then_settles(demo_config, tmp_path, capsys) -> None:
    main(["reconcile", "--config", str(demo_config), "--output-dir", str(tmp_path / "first")])
    first = json.loads((tmp_path / "first" / "report.json").read_text(encoding="utf-8"))
    merged = sum(item["summary"]["merged_count"] for item in first.values())
    assert merged > 0
    assert all(item["failures"] == [] for item in first.values())

    main(["reconcile", "--config", str(demo_config), "--cohort", "PP1", "--output-dir", str(tmp_path / "second")])
    second = json.loads((tmp_path / "second" / "report.json").read_text(encoding="utf-8"))
    assert list(second) == ["PP1"]
    assert second["PP1"]["summary"]["merged_count"] == 0

    capsys.readouterr()
    main(["audit", "--config", str(demo_config)])
    entries = json.loads(capsys.readouterr().out)
    assert len(entries) == merged
    assert {entry["cohort_key"] for entry in entries} <= {"PP1", "PP2"}


def test_missing_config_exits_with_usage_error(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    with pytest.raises(SystemExit) as excinfo:
        main(["reconcile"])
    assert excinfo.value.code == 2


def test_reconcile_exits_nonzero_when_a_merge_fails(demo_config, tmp_path) -> None:
    database = tmp_path / "school.sqlite3"
    config = tmp_path / "partial.yaml"
    config.write_text(
        f"database: {database}\ncohorts:\n  - key: PP1\ndependent_collections:\n  - summative_results\n"
        "retry:\n  backoff_seconds: 0\n",
        encoding="utf-8",
    )

    with pytest.raises(SystemExit) as excinfo:
        main(["reconcile", "--config", str(config), "--output-dir", str(tmp_path / "out")])

    assert excinfo.value.code == 1
    report = json.loads((tmp_path / "out" / "report.json").read_text(encoding="utf-8"))
    assert report["PP1"]["summary"]["merged_count"] == 0
    assert {failure["kind"] for failure in report["PP1"]["failures"]} == {"dangling_reference"}
