"""
One-off reconciliation of the whole catalog.

    python -m stockdesk.app.db.resync [--dry-run]

Prints the consistency analysis, then (unless --dry-run) runs a full sync.
"""

from __future__ import annotations

import argparse
import logging
import sys

from stockdesk.app.config import settings
from stockdesk.app.db.session import SessionLocal
from stockdesk.services.consistency import analyze_inconsistencies
from stockdesk.services.reconcile import sync_all


def run_resync(dry_run: bool = False) -> int:
    db = SessionLocal()
    try:
        report = analyze_inconsistencies(db)
        print(
            f"ANALYSIS: {report.total} tracked products, {report.with_variants} with variants, "
            f"{report.needs_sync} need sync"
        )
        for item in report.inconsistent_products:
            print(f"  - #{item.id} {item.name}: {item.issue}")

        if dry_run or report.needs_sync == 0:
            return 0

        result = sync_all(db)
        print(
            f"SYNC {result.run_id}: updated={result.updated} skipped={result.skipped} "
            f"errors={result.errors}{' (aborted)' if result.aborted else ''}"
        )
        return 1 if result.errors or result.aborted else 0
    finally:
        db.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile manual stock of products with variants")
    parser.add_argument("--dry-run", action="store_true", help="only print the analysis")
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return run_resync(dry_run=args.dry_run)


if __name__ == "__main__":
    sys.exit(main())
