from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import asdict
from pathlib import Path
from typing import Any

from learner_dedupe.models import AuditEntry, EntityRecord, ReconciliationReport


def build_summary(report: ReconciliationReport) -> dict[str, object]:
    moved: dict[str, int] = {}
    for entry in report.merged:
        for collection, count in entry.moved_counts.items():
            moved[collection] = moved.get(collection, 0) + count

    return {
        "cohort_key": report.cohort_key,
        "dry_run": report.dry_run,
        "merged_count": len(report.merged),
        "planned_count": len(report.planned),
        "unmatched_count": len(report.unmatched),
        "ambiguous_count": len(report.ambiguous),
        "failure_count": len(report.failures),
        "rejected_override_count": len(report.rejected_overrides),
        "error": report.error,
        "moved_by_collection": dict(sorted(moved.items())),
    }


def report_payload(report: ReconciliationReport) -> dict[str, Any]:
    return {
        "summary": build_summary(report),
        "merged": [audit_entry_payload(entry) for entry in report.merged],
        "planned": [asdict(plan) for plan in report.planned],
        "unmatched": [_record_payload(record) for record in report.unmatched],
        "ambiguous": [_record_payload(record) for record in report.ambiguous],
        "failures": [
            {
                "canonical_id": failure.plan.canonical_id,
                "retired_id": failure.plan.retired_id,
                "kind": failure.kind,
                "error": failure.error,
            }
            for failure in report.failures
        ],
        "rejected_overrides": list(report.rejected_overrides),
    }


def audit_entry_payload(entry: AuditEntry) -> dict[str, Any]:
    payload = asdict(entry)
    payload["timestamp"] = entry.timestamp.isoformat()
    return payload


def write_report(path: Path, reports: Mapping[str, ReconciliationReport]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump({key: report_payload(report) for key, report in reports.items()}, handle, indent=2)


def format_summary_lines(report: ReconciliationReport) -> list[str]:
    summary = build_summary(report)
    lines = [f"cohort={summary['cohort_key']}{' (dry run)' if report.dry_run else ''}"]
    if report.error:
        lines.append(f"error={report.error}")
        return lines
    if report.dry_run:
        lines.append(f"planned={summary['planned_count']}")
        for plan in report.planned:
            lines.append(f"  plan {plan.retired_id} -> {plan.canonical_id} rule={plan.rule} score={plan.score:.3f}")
    else:
        lines.append(f"merged={summary['merged_count']}")
        for entry in report.merged:
            snapshot = entry.retired_snapshot
            name = f"{snapshot.get('given_name', '')} {snapshot.get('family_name', '')}".strip()
            lines.append(
                f"  merged [{snapshot.get('canonical_code', '')}] {name} -> {entry.canonical_id} moved={entry.moved_total}"
            )
    lines.append(f"unmatched={summary['unmatched_count']}")
    lines.extend(f"  unmatched {_describe(record)}" for record in report.unmatched)
    lines.append(f"ambiguous={summary['ambiguous_count']}")
    lines.extend(f"  ambiguous {_describe(record)}" for record in report.ambiguous)
    if report.failures:
        lines.append(f"failures={summary['failure_count']}")
        lines.extend(f"  failed {f.plan.retired_id} -> {f.plan.canonical_id}: {f.error}" for f in report.failures)
    if report.rejected_overrides:
        lines.append(f"rejected_overrides={summary['rejected_override_count']}")
        lines.extend(
            f"  rejected {item['source']} -> {item['target']}: {item['reason']}" for item in report.rejected_overrides
        )
    return lines


def _record_payload(record: EntityRecord) -> dict[str, str]:
    return {
        "internal_id": record.internal_id,
        "canonical_code": record.canonical_code,
        "full_name": record.full_name,
        "cohort_key": record.cohort_key,
    }


def _describe(record: EntityRecord) -> str:
    return f"[{record.canonical_code}] {record.full_name} ({record.internal_id})"
