from pathlib import Path

import pytest

from learner_dedupe.config import Settings, find_config
from learner_dedupe.errors import ConfigError


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_load_reads_yaml_and_coerces_numeric_codes(tmp_path) -> None:
    config = _write(
        tmp_path / "dedupe.yaml",
        """
database: school.sqlite3
workers: 3
matching:
  similarity_threshold: 0.8
cohorts:
  - key: PP2
  - key: Grade 1
    code_segment: G1
overrides:
  - cohort: PP2
    source: 1272
    target: ADM-PP2-007
""",
    )

    settings = Settings.load(config)

    assert settings.workers == 3
    assert settings.matching.similarity_threshold == 0.8
    assert settings.matching.min_token_length == 3
    assert settings.cohort("Grade 1").segment == "G1"
    assert settings.cohort("PP2").segment == "PP2"
    assert settings.cohort("G4").segment == "G4"
    [override] = settings.manual_overrides()
    assert override.source_code == "1272"
    assert override.target_code == "ADM-PP2-007"
    assert settings.dependent_collections == [
        "summative_results",
        "attendance",
        "formative_assessments",
        "class_enrollments",
    ]


def test_empty_file_gives_defaults(tmp_path) -> None:
    settings = Settings.load(_write(tmp_path / "dedupe.yaml", ""))

    assert settings.retry.attempts == 3
    assert settings.code_format.build().is_authoritative("ADM-PP1-004", "PP1")


def test_threshold_out_of_range_is_a_config_error(tmp_path) -> None:
    config = _write(tmp_path / "dedupe.yaml", "matching:\n  similarity_threshold: 1.5\n")

    with pytest.raises(ConfigError, match="similarity_threshold"):
        Settings.load(config)


def test_override_for_unknown_cohort_is_rejected(tmp_path) -> None:
    config = _write(
        tmp_path / "dedupe.yaml",
        "cohorts:\n  - key: PP1\noverrides:\n  - cohort: PP9\n    source: '1'\n    target: ADM-PP9-001\n",
    )

    with pytest.raises(ConfigError, match="PP9"):
        Settings.load(config)


def test_unreadable_config_is_a_config_error(tmp_path) -> None:
    with pytest.raises(ConfigError):
        Settings.load(tmp_path / "missing.yaml")
    with pytest.raises(ConfigError):
        Settings.load(_write(tmp_path / "broken.yaml", "cohorts: [unclosed\n"))


def test_find_config_prefers_explicit_then_cwd(tmp_path, monkeypatch) -> None:
    explicit = tmp_path / "elsewhere.yaml"
    assert find_config(explicit) == explicit

    monkeypatch.chdir(tmp_path)
    with pytest.raises(ConfigError):
        find_config(None)

    _write(tmp_path / "dedupe.yml", "")
    assert find_config(None) == tmp_path / "dedupe.yml"
