from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import structlog

from learner_dedupe.config import Settings, find_config
from learner_dedupe.datasets import SchoolDatasetGenerator, write_sqlite
from learner_dedupe.errors import ConfigError
from learner_dedupe.logging_config import configure
from learner_dedupe.models import ReconciliationReport
from learner_dedupe.reporting import audit_entry_payload, format_summary_lines, write_report
from learner_dedupe.runners import ParallelCohortRunner, ReconciliationDriver
from learner_dedupe.steps import CohortMatcher, MergePlanner, NameSimilarityScorer, RelationshipMigrator
from learner_dedupe.stores import SqliteIdentityStore

logger = structlog.get_logger(__name__)


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "seed-demo":
        configure("INFO")
        seed_demo(
            database=args.database,
            cohorts=args.cohort or ["PP1", "PP2"],
            size=args.size,
            duplicate_rate=args.duplicate_rate,
            seed=args.seed,
        )
        return

    if args.command in {"reconcile", "check", "audit"}:
        try:
            settings = Settings.load(find_config(args.config))
        except ConfigError as exc:
            print(f"error: {exc}", file=sys.stderr)
            raise SystemExit(2) from exc
        if args.database is not None:
            settings.database = args.database
        configure(settings.log_level)

        if args.command == "audit":
            show_audit(settings, cohort=args.cohort)
            return

        reports = reconcile(
            settings,
            cohorts=args.cohort,
            dry_run=args.command == "check" or args.dry_run,
            output_dir=args.output_dir,
        )
        if any(report.failures or report.error for report in reports.values()):
            raise SystemExit(1)
        return

    parser.print_help()


def reconcile(
    settings: Settings,
    *,
    cohorts: list[str] | None,
    dry_run: bool,
    output_dir: Path | None,
) -> dict[str, ReconciliationReport]:
    cohort_keys = cohorts or [cohort.key for cohort in settings.cohorts]
    if not cohort_keys:
        raise SystemExit("no cohorts configured; pass --cohort or add cohorts to the config")

    def _driver_for(cohort_key: str) -> ReconciliationDriver:
        store = SqliteIdentityStore(settings.database, settings.entity_table)
        return build_driver(settings, store, cohort_key)

    runner = ParallelCohortRunner(driver_factory=_driver_for, max_workers=settings.workers)
    reports = runner.run(cohort_keys, dry_run=dry_run)

    for key in cohort_keys:
        for line in format_summary_lines(reports[key]):
            print(line)
        print("---")

    if output_dir is not None:
        report_path = output_dir / "report.json"
        write_report(report_path, reports)
        print(f"Report: {report_path}")
    return reports


def build_driver(settings: Settings, store: SqliteIdentityStore, cohort_key: str) -> ReconciliationDriver:
    cohort = settings.cohort(cohort_key)
    matcher = CohortMatcher(
        scorer=NameSimilarityScorer(
            threshold=settings.matching.similarity_threshold,
            min_token_length=settings.matching.min_token_length,
        ),
        is_authoritative=settings.code_format.build().predicate(cohort.segment),
    )
    return ReconciliationDriver(
        store=store,
        matcher=matcher,
        planner=MergePlanner(),
        migrator=RelationshipMigrator(
            store,
            retry_attempts=settings.retry.attempts,
            retry_backoff=settings.retry.backoff_seconds,
        ),
        dependent_collections=settings.dependent_collections,
        overrides=settings.manual_overrides(),
    )


def show_audit(settings: Settings, *, cohort: list[str] | None) -> None:
    with SqliteIdentityStore(settings.database, settings.entity_table) as store:
        keys = cohort or [None]
        entries = [entry for key in keys for entry in store.audit_entries(key)]
    print(json.dumps([audit_entry_payload(entry) for entry in entries], indent=2))


def seed_demo(*, database: Path, cohorts: list[str], size: int, duplicate_rate: float, seed: int) -> None:
    if database.exists():
        raise SystemExit(f"{database} already exists; refusing to overwrite")
    database.parent.mkdir(parents=True, exist_ok=True)
    dataset = SchoolDatasetGenerator(seed=seed).generate(cohorts, size=size, duplicate_rate=duplicate_rate)
    write_sqlite(dataset, database)
    logger.info(
        "demo_seeded",
        database=str(database),
        cohorts=cohorts,
        learners=len(dataset.entities),
        planted_duplicates=len(dataset.duplicate_of),
    )
    print(f"Database: {database}")
    print(f"learners={len(dataset.entities)}")
    print(f"planted_duplicates={len(dataset.duplicate_of)}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="learner-dedupe", description="Learner dedupe and merge CLI")
    subparsers = parser.add_subparsers(dest="command")

    reconcile_parser = subparsers.add_parser(
        "reconcile",
        help="Match legacy learners to ADM-coded ones and merge them, cohort by cohort",
    )
    _add_common(reconcile_parser)
    reconcile_parser.add_argument("--dry-run", action="store_true")
    reconcile_parser.add_argument("--output-dir", type=Path, default=None)

    check_parser = subparsers.add_parser("check", help="Report planned merges without touching the database")
    _add_common(check_parser)
    check_parser.add_argument("--output-dir", type=Path, default=None)
    check_parser.set_defaults(dry_run=True)

    audit_parser = subparsers.add_parser("audit", help="Print stored merge audit entries as JSON")
    _add_common(audit_parser)

    seed_parser = subparsers.add_parser("seed-demo", help="Create a synthetic school database with duplicates")
    seed_parser.add_argument("--database", type=Path, required=True)
    seed_parser.add_argument("--cohort", action="append", default=None)
    seed_parser.add_argument("--size", type=int, default=30)
    seed_parser.add_argument("--duplicate-rate", type=float, default=0.3)
    seed_parser.add_argument("--seed", type=int, default=42)

    return parser


def _add_common(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument("--config", type=Path, default=None)
    subparser.add_argument("--database", type=Path, default=None)
    subparser.add_argument("--cohort", action="append", default=None)


if __name__ == "__main__":
    main()
