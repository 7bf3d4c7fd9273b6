from __future__ import annotations

import argparse
from pathlib import Path

from learner_dedupe.datasets import SchoolDatasetGenerator, write_sqlite


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a synthetic school database with duplicate learners")
    parser.add_argument("--size", type=int, default=40)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--duplicate-rate", type=float, default=0.3)
    parser.add_argument("--cohort", action="append", default=None)
    parser.add_argument("--output", type=Path, default=Path("data/reference_school.sqlite3"))
    args = parser.parse_args()

    if args.output.exists():
        raise SystemExit(f"{args.output} already exists")
    args.output.parent.mkdir(parents=True, exist_ok=True)

    dataset = SchoolDatasetGenerator(seed=args.seed).generate(
        cohort_keys=args.cohort or ["PP1", "PP2", "G1"],
        size=args.size,
        duplicate_rate=args.duplicate_rate,
    )
    write_sqlite(dataset, args.output)
    print(f"learners={len(dataset.entities)} planted_duplicates={len(dataset.duplicate_of)} -> {args.output}")


if __name__ == "__main__":
    main()
