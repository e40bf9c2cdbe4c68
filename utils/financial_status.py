"""Rebuild the ``student_financial_status`` cache from invoices.

Invoices are the source of truth; this is the only code path that writes
the cached balances, so the two can't drift apart through separate updates.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from extensions import db
from models import StudentFinancialStatus
from utils.aggregation import recompute_financial_status
from utils.ledger import LedgerReader
from utils.records import ZERO

logger = logging.getLogger(__name__)

CLEARED = {"total_fee": ZERO, "paid_amount": ZERO, "balance": ZERO, "next_payment_due": None}


def refresh_financial_status(
    student_id: Optional[int] = None,
    reader: Optional[LedgerReader] = None,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """Recompute cached balances for one student (or everyone).

    Returns counts of rows created/updated/unchanged plus the list of
    ``(student_id, class_id)`` keys whose cached values had drifted.
    """
    reader = reader or LedgerReader()
    fresh = recompute_financial_status(reader.fetch_all_invoices(student_id))

    q = StudentFinancialStatus.query
    if student_id is not None:
        q = q.filter_by(student_id=student_id)
    cached = {(r.student_id, r.class_id): r for r in q.all()}

    created = updated = unchanged = 0
    drifted = []
    for key, values in fresh.items():
        row = cached.get(key)
        if row is None:
            created += 1
            drifted.append(key)
            if not dry_run:
                db.session.add(StudentFinancialStatus(student_id=key[0], class_id=key[1], **values))
            continue
        current = {
            "total_fee": row.total_fee,
            "paid_amount": row.paid_amount,
            "balance": row.balance,
            "next_payment_due": row.next_payment_due,
        }
        if current == values:
            unchanged += 1
            continue
        updated += 1
        drifted.append(key)
        if not dry_run:
            for field, value in values.items():
                setattr(row, field, value)

    # Classes whose invoices were all cancelled or removed drop to zero
    for key in sorted(set(cached) - set(fresh)):
        row = cached[key]
        if not (row.total_fee or row.paid_amount or row.balance or row.next_payment_due):
            unchanged += 1
            continue
        updated += 1
        drifted.append(key)
        if not dry_run:
            for field, value in CLEARED.items():
                setattr(row, field, value)

    if dry_run:
        db.session.rollback()
    else:
        db.session.commit()
    logger.info(
        "financial status refresh student=%s created=%d updated=%d unchanged=%d dry_run=%s",
        student_id, created, updated, unchanged, dry_run,
    )
    return {
        "created": created,
        "updated": updated,
        "unchanged": unchanged,
        "drifted": drifted,
        "dry_run": dry_run,
    }
