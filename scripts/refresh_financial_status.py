"""
Rebuild the student_financial_status cache from invoices.

Usage examples:

  python scripts/refresh_financial_status.py
  python scripts/refresh_financial_status.py --student-id 42 --dry-run

Connects with SQLALCHEMY_DATABASE_URI (see config.py).
"""

from __future__ import annotations

import argparse
import os
import sys

# Ensure project root is importable when running from scripts/
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app import app  # type: ignore  # noqa: E402
from utils.errors import DataStoreUnavailable  # type: ignore  # noqa: E402
from utils.financial_status import refresh_financial_status  # type: ignore  # noqa: E402


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="Recompute cached student balances from invoices")
    p.add_argument("--student-id", type=int, default=None, help="Only refresh this student")
    p.add_argument("--dry-run", action="store_true", help="Report drift without writing")
    args = p.parse_args(argv)

    with app.app_context():
        try:
            result = refresh_financial_status(student_id=args.student_id, dry_run=args.dry_run)
        except DataStoreUnavailable as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

    prefix = "DRY RUN: " if args.dry_run else ""
    print(
        f"{prefix}created={result['created']} updated={result['updated']} "
        f"unchanged={result['unchanged']}"
    )
    for student_id, class_id in result["drifted"]:
        print(f"  drift: student={student_id} class={class_id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
