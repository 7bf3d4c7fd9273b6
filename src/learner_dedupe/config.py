from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from learner_dedupe.errors import ConfigError
from learner_dedupe.models import ManualOverride
from learner_dedupe.schema import CodeFormat

DEFAULT_DEPENDENT_COLLECTIONS = [
    "summative_results",
    "attendance",
    "formative_assessments",
    "class_enrollments",
]


class MatchingSettings(BaseModel):
    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    min_token_length: int = Field(default=3, ge=1)


class CodeFormatSettings(BaseModel):
    prefix: str = "ADM"
    separator: str = "-"
    sequence_digits: int = Field(default=3, ge=1)
    require_cohort_segment: bool = True

    def build(self) -> CodeFormat:
        return CodeFormat(
            prefix=self.prefix,
            separator=self.separator,
            sequence_digits=self.sequence_digits,
            require_cohort_segment=self.require_cohort_segment,
        )


class CohortSettings(BaseModel):
    key: str
    code_segment: str | None = None

    @property
    def segment(self) -> str:
        return self.code_segment or self.key


class OverrideSettings(BaseModel):
    cohort: str
    source: str
    target: str
    reason: str = ""

    @field_validator("source", "target", mode="before")
    @classmethod
    def _as_text(cls, value: object) -> str:
        # YAML reads bare admission numbers like 1272 as integers.
        return str(value).strip()

    def build(self) -> ManualOverride:
        return ManualOverride(
            cohort_key=self.cohort,
            source_code=self.source,
            target_code=self.target,
            reason=self.reason,
        )


class RetrySettings(BaseModel):
    attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=0.5, ge=0.0)


class Settings(BaseModel):
    database: Path = Path("./school.sqlite3")
    entity_table: str = "learners"
    log_level: str = "INFO"
    workers: int = Field(default=1, ge=1)
    matching: MatchingSettings = MatchingSettings()
    code_format: CodeFormatSettings = CodeFormatSettings()
    cohorts: list[CohortSettings] = Field(default_factory=list)
    dependent_collections: list[str] = Field(default_factory=lambda: list(DEFAULT_DEPENDENT_COLLECTIONS))
    overrides: list[OverrideSettings] = Field(default_factory=list)
    retry: RetrySettings = RetrySettings()

    @field_validator("database", mode="before")
    @classmethod
    def _expand_database(cls, value: str | Path) -> Path:
        return Path(value).expanduser()

    @model_validator(mode="after")
    def _check_overrides(self) -> "Settings":
        known = {cohort.key for cohort in self.cohorts}
        unknown = sorted({o.cohort for o in self.overrides} - known)
        if known and unknown:
            raise ValueError(f"overrides reference unknown cohorts: {', '.join(unknown)}")
        return self

    def cohort(self, key: str) -> CohortSettings:
        for cohort in self.cohorts:
            if cohort.key == key:
                return cohort
        return CohortSettings(key=key)

    def manual_overrides(self) -> list[ManualOverride]:
        return [override.build() for override in self.overrides]

    @classmethod
    def load(cls, path: Path) -> "Settings":
        try:
            with path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"cannot read {path}: {exc}") from exc
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            raise ConfigError(f"invalid configuration in {path}:\n{exc}") from exc


def find_config(explicit_path: Path | None) -> Path:
    if explicit_path:
        return explicit_path
    cwd = Path.cwd()
    for candidate in (cwd / "dedupe.yaml", cwd / "dedupe.yml"):
        if candidate.exists():
            return candidate
    raise ConfigError("Could not find dedupe.yaml - pass --config explicitly.")
