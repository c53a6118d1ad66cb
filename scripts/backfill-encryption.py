#!/usr/bin/env python3
"""CLI tool for encrypting legacy plaintext rows in place.

Run once after enabling field encryption, before the application stops
accepting unencrypted legacy values. Safe to re-run: values that are already
envelopes are skipped.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

# Allow running from repo root: add backend/ to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from pydantic import ValidationError
from sqlmodel import create_engine

from fieldseal.config import Settings
from fieldseal.services.backfill import BackfillMigrator, BackfillReport
from fieldseal.services.policy import FIELD_POLICIES, backfill_targets, policy_for


def _split_column(name: str) -> tuple[str, str]:
    table, sep, column = name.partition(".")
    if not sep or not table or not column:
        raise KeyError(f"expected TABLE.COLUMN, got {name!r}")
    return table, column


def format_report(report: BackfillReport) -> str:
    lines: list[str] = []
    title = "=== Encryption Backfill"
    if report.dry_run:
        title += " (dry run, nothing written)"
    lines.append(title + " ===")
    lines.append(f"{'Column':<45} {'Migrated':>9} {'Already':>9} {'Failed':>7}")
    for t in report.targets:
        name = f"{t.table}.{t.column}"
        if t.error is not None:
            lines.append(f"{name:<45} ERROR: column could not be read (see log)")
            continue
        lines.append(f"{name:<45} {t.migrated:>9} {t.skipped:>9} {t.failed:>7}")
    lines.append(
        f"{'Total':<45} {report.migrated:>9} {report.skipped:>9} {report.failed:>7}"
    )
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Encrypt legacy plaintext values in encrypted columns."
    )
    parser.add_argument(
        "--db-url",
        type=str,
        default=None,
        help="Database URL (default: DB_URL from the environment)",
    )
    parser.add_argument(
        "--only",
        action="append",
        default=[],
        metavar="TABLE.COLUMN",
        help="Restrict the run to one column; may be repeated (default: all)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Classify and count rows without writing anything",
    )
    parser.add_argument("--verbose", "-v", action="store_true")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # --- Load key ---
    try:
        settings = Settings()
    except ValidationError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    # --- Select targets ---
    try:
        if args.only:
            policies = [policy_for(*_split_column(name)) for name in args.only]
        else:
            policies = list(FIELD_POLICIES)
    except KeyError as e:
        print(f"Error: unknown column: {e}", file=sys.stderr)
        return 1

    engine = create_engine(args.db_url or settings.db_url)
    try:
        migrator = BackfillMigrator(engine, settings.key, dry_run=args.dry_run)
        report = migrator.run(backfill_targets(policies))
    finally:
        engine.dispose()

    print(format_report(report))
    return 2 if report.failed or report.errored else 0


if __name__ == "__main__":
    sys.exit(main())
