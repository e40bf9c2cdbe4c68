"""Read-only access to payments, invoices and expenses.

This is the only place the reporting code talks to the database. Rows come
back as the frozen records in ``utils.records`` so the aggregation engine
never sees ORM objects or sessions.
"""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, time as dtime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from flask import current_app, has_app_context
from sqlalchemy import func
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError

from extensions import db
from models import (
    CATEGORY_TYPES,
    EXPENSE_STATUSES,
    INVOICE_STATUSES,
    PAYMENT_METHODS,
    PAYMENT_STATUSES,
    PROGRAM_TYPES,
    AutomatedDeduction,
    ExpenseBudget,
    ExpenseCategory,
    ExpenseRecord,
    Invoice,
    PaymentRecord,
    Program,
    Student,
    StudentFinancialStatus,
)
from utils import records
from utils.errors import DataStoreUnavailable, InvalidFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ``None`` means free-form; anything else is the allowed set of values
FILTER_VALUES: Dict[str, Optional[Tuple[str, ...]]] = {
    "program_type": PROGRAM_TYPES,
    "payment_method": PAYMENT_METHODS,
    "status": tuple(dict.fromkeys(("all",) + PAYMENT_STATUSES + INVOICE_STATUSES + EXPENSE_STATUSES)),
    "category_id": None,
    "category_type": CATEGORY_TYPES,
    "invoice_type": None,
}

OPEN_INVOICE_STATUSES = ("pending", "partial", "overdue")


def validate_filters(filters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Drop blank values and reject unknown keys or enum values."""
    cleaned: Dict[str, Any] = {}
    for key, value in (filters or {}).items():
        if key not in FILTER_VALUES:
            raise InvalidFilter(f"Unknown filter {key!r}")
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        if key == "category_id":
            try:
                cleaned[key] = int(value)
            except (TypeError, ValueError):
                raise InvalidFilter(f"category_id must be an integer, got {value!r}") from None
            continue
        value = str(value).strip().lower()
        allowed = FILTER_VALUES[key]
        if allowed is not None and value not in allowed:
            raise InvalidFilter(f"Invalid {key} {value!r}; expected one of {', '.join(allowed)}")
        cleaned[key] = value
    return cleaned


def _day_start(d: date) -> datetime:
    return datetime.combine(d, dtime.min)


def _day_after(d: date) -> datetime:
    return datetime.combine(d + timedelta(days=1), dtime.min)


def _money(value: Any) -> Decimal:
    if value is None:
        return records.ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


class LedgerReader:
    """Range + filter queries over the finance tables, with retry on connection loss."""

    def __init__(
        self,
        session=None,
        retries: Optional[int] = None,
        backoff: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        cfg = current_app.config if has_app_context() else {}
        self.session = session if session is not None else db.session
        self.retries = retries if retries is not None else int(cfg.get("LEDGER_RETRY_ATTEMPTS", 3))
        self.backoff = backoff if backoff is not None else float(cfg.get("LEDGER_RETRY_BACKOFF", 0.2))
        self._sleep = sleep

    # ------------------------------------------------------------------
    # retry wrapper
    # ------------------------------------------------------------------
    def _run(self, label: str, query: Callable[[], T]) -> T:
        attempts = max(1, self.retries)
        delay = self.backoff
        for attempt in range(1, attempts + 1):
            try:
                return query()
            except (OperationalError, InterfaceError) as exc:
                self._rollback(label)
                if attempt >= attempts:
                    logger.exception("ledger %s failed after %d attempts", label, attempts)
                    raise DataStoreUnavailable(f"Could not read {label}; the database is unavailable.") from exc
                logger.warning("ledger %s failed (attempt %d/%d), retrying in %.2fs", label, attempt, attempts, delay)
                self._sleep(delay)
                delay *= 2
        raise DataStoreUnavailable(f"Could not read {label}.")  # pragma: no cover

    def _rollback(self, label: str) -> None:
        # A dead connection can fail the rollback too; the retry loop decides what to raise
        try:
            self.session.rollback()
        except SQLAlchemyError:
            logger.warning("ledger %s rollback failed", label, exc_info=True)

    # ------------------------------------------------------------------
    # row conversion
    # ------------------------------------------------------------------
    @staticmethod
    def _payment(row: PaymentRecord, program_type: Optional[str]) -> records.PaymentRecord:
        return records.PaymentRecord(
            id=row.id,
            student_id=row.student_id,
            amount=_money(row.amount),
            payment_method=row.payment_method,
            status=row.status,
            transaction_type=row.transaction_type,
            created_at=row.created_at,
            program_code=row.program_code,
            program_type=program_type,
            class_id=row.class_id,
            invoice_id=row.invoice_id,
        )

    @staticmethod
    def _invoice(row: Invoice, program_type: Optional[str]) -> records.InvoiceRecord:
        return records.InvoiceRecord(
            id=row.id,
            student_id=row.student_id,
            amount=_money(row.amount),
            paid_amount=_money(row.paid_amount),
            due_date=row.due_date,
            status=row.status,
            created_at=row.created_at,
            class_id=row.class_id,
            program_code=row.program_code,
            program_type=program_type,
            invoice_type=row.invoice_type,
            invoice_number=row.invoice_number,
        )

    @staticmethod
    def _expense(row: ExpenseRecord) -> records.ExpenseRecord:
        return records.ExpenseRecord(
            id=row.id,
            category_id=row.category_id,
            amount=_money(row.amount),
            payment_date=row.payment_date,
            status=row.status,
            vendor_name=row.vendor_name,
            payment_method=row.payment_method,
        )

    # ------------------------------------------------------------------
    # payments
    # ------------------------------------------------------------------
    def _payment_query(self, filters: Mapping[str, Any]):
        q = (
            self.session.query(PaymentRecord, Program.program_type)
            .outerjoin(Program, Program.program_code == PaymentRecord.program_code)
        )
        status = filters.get("status")
        if status is None:
            q = q.filter(PaymentRecord.status == "completed")
        elif status != "all":
            q = q.filter(PaymentRecord.status == status)
        if filters.get("program_type"):
            q = q.filter(Program.program_type == filters["program_type"])
        if filters.get("payment_method"):
            q = q.filter(PaymentRecord.payment_method == filters["payment_method"])
        return q

    def fetch_payments(
        self,
        date_from: date,
        date_to: date,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> List[records.PaymentRecord]:
        """Completed payments created within ``[date_from, date_to]`` (whole days)."""
        filters = validate_filters(filters)

        def query():
            q = (
                self._payment_query(filters)
                .filter(PaymentRecord.created_at >= _day_start(date_from))
                .filter(PaymentRecord.created_at < _day_after(date_to))
                .order_by(PaymentRecord.created_at.desc(), PaymentRecord.id.desc())
            )
            return [self._payment(row, ptype) for row, ptype in q.all()]

        return self._run("payments", query)

    # ------------------------------------------------------------------
    # invoices
    # ------------------------------------------------------------------
    def _invoice_query(self, filters: Mapping[str, Any], statuses: Optional[Sequence[str]]):
        q = (
            self.session.query(Invoice, Program.program_type)
            .outerjoin(Program, Program.program_code == Invoice.program_code)
        )
        status = filters.get("status")
        if status and status != "all":
            q = q.filter(Invoice.status == status)
        elif status is None and statuses:
            q = q.filter(Invoice.status.in_(tuple(statuses)))
        elif status is None:
            q = q.filter(Invoice.status != "cancelled")
        if filters.get("program_type"):
            q = q.filter(Program.program_type == filters["program_type"])
        if filters.get("invoice_type"):
            q = q.filter(Invoice.invoice_type == filters["invoice_type"])
        return q

    def fetch_invoices(
        self,
        date_from: date,
        date_to: date,
        filters: Optional[Mapping[str, Any]] = None,
        date_field: str = "due_date",
        statuses: Optional[Sequence[str]] = None,
    ) -> List[records.InvoiceRecord]:
        """Invoices whose ``due_date`` (or ``created_at``) falls in the range.

        Without a ``status`` filter, ``statuses`` narrows the set; when both
        are absent every non-cancelled invoice is returned.
        """
        filters = validate_filters(filters)
        if date_field not in ("due_date", "created_at"):
            raise InvalidFilter(f"Invoices cannot be ranged by {date_field!r}")

        def query():
            q = self._invoice_query(filters, statuses)
            if date_field == "due_date":
                q = q.filter(Invoice.due_date >= date_from, Invoice.due_date <= date_to)
            else:
                q = q.filter(Invoice.created_at >= _day_start(date_from), Invoice.created_at < _day_after(date_to))
            q = q.order_by(Invoice.due_date.asc(), Invoice.id.asc())
            return [self._invoice(row, ptype) for row, ptype in q.all()]

        return self._run("invoices", query)

    # ------------------------------------------------------------------
    # expenses
    # ------------------------------------------------------------------
    def fetch_expenses(
        self,
        date_from: date,
        date_to: date,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> List[records.ExpenseRecord]:
        """Expenses paid within the range; realized vs pending is left to the engine."""
        filters = validate_filters(filters)

        def query():
            q = (
                self.session.query(ExpenseRecord)
                .join(ExpenseCategory, ExpenseCategory.id == ExpenseRecord.category_id)
                .filter(ExpenseRecord.payment_date >= date_from, ExpenseRecord.payment_date <= date_to)
            )
            status = filters.get("status")
            if status is None:
                q = q.filter(ExpenseRecord.status != "cancelled")
            elif status != "all":
                q = q.filter(ExpenseRecord.status == status)
            if filters.get("payment_method"):
                q = q.filter(ExpenseRecord.payment_method == filters["payment_method"])
            if filters.get("category_id"):
                q = q.filter(ExpenseRecord.category_id == filters["category_id"])
            if filters.get("category_type"):
                q = q.filter(ExpenseCategory.category_type == filters["category_type"])
            q = q.order_by(ExpenseRecord.payment_date.asc(), ExpenseRecord.id.asc())
            return [self._expense(row) for row in q.all()]

        return self._run("expenses", query)

    def fetch_categories(self) -> Dict[int, records.CategoryRecord]:
        def query():
            rows = self.session.query(ExpenseCategory).order_by(ExpenseCategory.id).all()
            return {
                c.id: records.CategoryRecord(
                    id=c.id,
                    name=c.name,
                    category_type=c.category_type,
                    budget_amount=None if c.budget_amount is None else _money(c.budget_amount),
                )
                for c in rows
            }

        return self._run("expense categories", query)

    def fetch_budgets(
        self,
        date_from: date,
        date_to: date,
        categories: Optional[Dict[int, records.CategoryRecord]] = None,
    ) -> Dict[int, Decimal]:
        """Budget per category for the range.

        Dated ``expense_budgets`` rows overlapping the range win; otherwise
        the category's own ``budget_amount`` applies. Categories with neither
        are left out (the variance treats them as a zero budget).
        """
        if categories is None:
            categories = self.fetch_categories()

        def query():
            rows = (
                self.session.query(ExpenseBudget.category_id, func.sum(ExpenseBudget.budget_amount))
                .filter(ExpenseBudget.period_start <= date_to, ExpenseBudget.period_end >= date_from)
                .group_by(ExpenseBudget.category_id)
                .all()
            )
            return {int(cid): _money(total) for cid, total in rows}

        budgets = self._run("expense budgets", query)
        for cid, category in categories.items():
            if cid not in budgets and category.budget_amount is not None:
                budgets[cid] = category.budget_amount
        return budgets

    def fetch_deductions(self) -> List[records.DeductionRecord]:
        def query():
            rows = (
                self.session.query(AutomatedDeduction)
                .filter(AutomatedDeduction.is_active.is_(True))
                .order_by(AutomatedDeduction.id)
                .all()
            )
            return [
                records.DeductionRecord(
                    deduction_type=d.deduction_type,
                    percentage=_money(d.percentage),
                    is_active=bool(d.is_active),
                )
                for d in rows
            ]

        return self._run("automated deductions", query)

    # ------------------------------------------------------------------
    # students
    # ------------------------------------------------------------------
    def fetch_student_ledger(
        self, student_id: int
    ) -> Tuple[List[records.InvoiceRecord], List[records.PaymentRecord]]:
        """Every invoice and payment for one student, regardless of date."""

        def query():
            invoices = (
                self._invoice_query({}, None)
                .filter(Invoice.student_id == student_id)
                .order_by(Invoice.due_date.asc(), Invoice.id.asc())
                .all()
            )
            payments = (
                self._payment_query({"status": "all"})
                .filter(PaymentRecord.student_id == student_id)
                .order_by(PaymentRecord.created_at.desc(), PaymentRecord.id.desc())
                .all()
            )
            return (
                [self._invoice(row, ptype) for row, ptype in invoices],
                [self._payment(row, ptype) for row, ptype in payments],
            )

        return self._run("student ledger", query)

    def fetch_invoices_by_id(self, invoice_ids: Iterable[int]) -> List[records.InvoiceRecord]:
        """Look up invoices by id whatever their dates (due dates for linked payments)."""
        ids = sorted({int(i) for i in invoice_ids if i is not None})
        if not ids:
            return []

        def query():
            q = (
                self.session.query(Invoice, Program.program_type)
                .outerjoin(Program, Program.program_code == Invoice.program_code)
                .filter(Invoice.id.in_(ids))
                .order_by(Invoice.id)
            )
            return [self._invoice(row, ptype) for row, ptype in q.all()]

        return self._run("invoices", query)

    def fetch_payments_for_invoices(self, invoice_ids: Iterable[int]) -> List[records.PaymentRecord]:
        """Every completed payment linked to the given invoices, whatever its date.

        ``paid_amount`` on an invoice is a lifetime total; reconciliation
        compares it with these, not with the payments inside a report range.
        """
        ids = sorted({int(i) for i in invoice_ids if i is not None})
        if not ids:
            return []

        def query():
            q = (
                self._payment_query({})
                .filter(PaymentRecord.invoice_id.in_(ids))
                .order_by(PaymentRecord.created_at.asc(), PaymentRecord.id.asc())
            )
            return [self._payment(row, ptype) for row, ptype in q.all()]

        return self._run("invoice payments", query)

    def fetch_all_invoices(self, student_id: Optional[int] = None) -> List[records.InvoiceRecord]:
        def query():
            q = self._invoice_query({}, None)
            if student_id is not None:
                q = q.filter(Invoice.student_id == student_id)
            return [self._invoice(row, ptype) for row, ptype in q.order_by(Invoice.id).all()]

        return self._run("invoices", query)

    @staticmethod
    def _status(row: StudentFinancialStatus) -> records.StatusRecord:
        return records.StatusRecord(
            student_id=row.student_id,
            class_id=row.class_id,
            total_fee=_money(row.total_fee),
            paid_amount=_money(row.paid_amount),
            balance=_money(row.balance),
            is_suspended=bool(row.is_suspended),
            next_payment_due=row.next_payment_due,
        )

    def fetch_financial_status(self, student_id: int) -> List[records.StatusRecord]:
        def query():
            rows = (
                self.session.query(StudentFinancialStatus)
                .filter(StudentFinancialStatus.student_id == student_id)
                .order_by(StudentFinancialStatus.class_id)
                .all()
            )
            return [self._status(r) for r in rows]

        return self._run("financial status", query)

    def fetch_all_financial_status(self) -> List[records.StatusRecord]:
        """Every cached balance row, by student then class."""

        def query():
            rows = (
                self.session.query(StudentFinancialStatus)
                .order_by(StudentFinancialStatus.student_id, StudentFinancialStatus.class_id)
                .all()
            )
            return [self._status(r) for r in rows]

        return self._run("financial status", query)

    def fetch_student_names(self, student_ids: Iterable[int]) -> Dict[int, str]:
        ids = sorted({int(i) for i in student_ids})
        if not ids:
            return {}

        def query():
            rows = self.session.query(Student).filter(Student.id.in_(ids)).all()
            return {s.id: s.full_name for s in rows}

        return self._run("students", query)

    def earliest_activity_date(self) -> Optional[date]:
        """Oldest payment, invoice or expense date on record."""

        def query():
            candidates = [
                self.session.query(func.min(PaymentRecord.created_at)).scalar(),
                self.session.query(func.min(Invoice.created_at)).scalar(),
                self.session.query(func.min(ExpenseRecord.payment_date)).scalar(),
            ]
            days = [c.date() if isinstance(c, datetime) else c for c in candidates if c is not None]
            return min(days) if days else None

        return self._run("earliest activity", query)
