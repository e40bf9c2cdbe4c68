"""Financial aggregation rules shared by every report.

All functions are pure and total: they take record lists (see
``utils.records``), never touch the database, and answer empty input or
zero denominators with zero values instead of raising. Money stays as
unrounded ``Decimal`` here; rounding happens when a report is rendered.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

from utils.records import (
    ZERO,
    CategoryRecord,
    DeductionRecord,
    ExpenseRecord,
    InvoiceRecord,
    PaymentRecord,
    StatusRecord,
)

COMPLETED = "completed"
REALIZED_EXPENSE_STATUSES = ("approved", "paid")
UNASSIGNED = "unassigned"
HUNDRED = Decimal("100")

AGING_ORDER = (
    "Over 90 days",
    "61-90 days",
    "31-60 days",
    "1-30 days",
    "Due in 7 days",
    "Due in 30 days",
    "Due after 30 days",
)


def _dec(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _ratio(part: Decimal, whole: Decimal) -> Decimal:
    """``100 * part / whole``, or 0 when there is nothing to divide by."""
    if not whole:
        return ZERO
    return part * HUNDRED / whole


def _mean(total: Decimal, count: int) -> Decimal:
    return total / count if count else ZERO


def _ordered(totals: Dict[Hashable, Decimal]) -> Dict[Hashable, Decimal]:
    # Largest first; equal amounts fall back to the key so output is stable
    return dict(sorted(totals.items(), key=lambda kv: (-kv[1], str(kv[0]))))


def _completed(payments: Iterable[PaymentRecord]) -> List[PaymentRecord]:
    return [p for p in payments if p.status == COMPLETED]


# ---------------------------------------------------------------------------
# Revenue
# ---------------------------------------------------------------------------

def by_program(record) -> Optional[str]:
    return record.program_code


def by_program_type(record) -> Optional[str]:
    return record.program_type


def by_method(record) -> Optional[str]:
    return record.payment_method


def by_transaction_type(record) -> Optional[str]:
    return record.transaction_type


def total_revenue(payments: Iterable[PaymentRecord]) -> Decimal:
    return sum((_dec(p.amount) for p in _completed(payments)), ZERO)


def revenue_by_dimension(
    payments: Iterable[PaymentRecord],
    key_fn: Callable[[PaymentRecord], Optional[Hashable]],
) -> Dict[Hashable, Decimal]:
    """Sum completed payments per key, largest group first.

    Payments without a key are grouped under ``"unassigned"`` so the groups
    always add up to ``total_revenue``.
    """
    totals: Dict[Hashable, Decimal] = {}
    for p in _completed(payments):
        key = key_fn(p)
        if key is None or key == "":
            key = UNASSIGNED
        totals[key] = totals.get(key, ZERO) + _dec(p.amount)
    return _ordered(totals)


def daily_trend(payments: Iterable[PaymentRecord]) -> List[Tuple[date, Decimal]]:
    totals: Dict[date, Decimal] = {}
    for p in _completed(payments):
        day = p.payment_date
        totals[day] = totals.get(day, ZERO) + _dec(p.amount)
    return sorted(totals.items())


def monthly_trend(
    records: Iterable[Any],
    date_fn: Callable[[Any], date],
    amount_fn: Callable[[Any], Any],
) -> Dict[str, Decimal]:
    """Total ``amount_fn`` per ``YYYY-MM`` of ``date_fn``, oldest month first."""
    totals: Dict[str, Decimal] = {}
    for r in records:
        day = date_fn(r)
        if day is None:
            continue
        month = day.strftime("%Y-%m")
        totals[month] = totals.get(month, ZERO) + _dec(amount_fn(r))
    return dict(sorted(totals.items()))


# ---------------------------------------------------------------------------
# Invoices: collection and aging
# ---------------------------------------------------------------------------

def is_overdue(invoice: InvoiceRecord, as_of: date) -> bool:
    return invoice.due_date < as_of and invoice.balance > 0


def effective_status(invoice: InvoiceRecord, as_of: date) -> str:
    """Status implied by the amounts and due date rather than the stored flag."""
    if invoice.status == "cancelled":
        return "cancelled"
    if invoice.balance <= 0:
        return "paid"
    if is_overdue(invoice, as_of):
        return "overdue"
    if invoice.status == "overdue":
        # Stored flag lags a due date that moved forward
        return "partial" if invoice.paid_amount > 0 else "pending"
    return invoice.status


def collection_rate(invoices: Iterable[InvoiceRecord]) -> Decimal:
    invoices = list(invoices)
    invoiced = sum((_dec(i.amount) for i in invoices), ZERO)
    paid = sum((_dec(i.paid_amount) for i in invoices), ZERO)
    return _ratio(paid, invoiced)


def collection_rate_by_program(
    invoices: Iterable[InvoiceRecord],
    key_fn: Callable[[InvoiceRecord], Optional[Hashable]] = by_program,
) -> Dict[Hashable, Dict[str, Any]]:
    groups: Dict[Hashable, List[InvoiceRecord]] = {}
    for inv in invoices:
        key = key_fn(inv)
        if key is None or key == "":
            key = UNASSIGNED
        groups.setdefault(key, []).append(inv)

    rows: Dict[Hashable, Dict[str, Any]] = {}
    for key, items in groups.items():
        rows[key] = {
            "invoices_issued": len(items),
            "total_invoiced": sum((_dec(i.amount) for i in items), ZERO),
            "total_collected": sum((_dec(i.paid_amount) for i in items), ZERO),
            "collection_rate": collection_rate(items),
        }
    return dict(sorted(rows.items(), key=lambda kv: (-kv[1]["collection_rate"], str(kv[0]))))


def aging_bucket(invoice: InvoiceRecord, as_of: date) -> Optional[str]:
    """Classify one invoice; fully paid invoices belong to no bucket."""
    if invoice.balance <= 0:
        return None
    if invoice.due_date < as_of:
        days = (as_of - invoice.due_date).days
        if days <= 30:
            return "1-30 days"
        if days <= 60:
            return "31-60 days"
        if days <= 90:
            return "61-90 days"
        return "Over 90 days"
    ahead = (invoice.due_date - as_of).days
    if ahead <= 7:
        return "Due in 7 days"
    if ahead <= 30:
        return "Due in 30 days"
    return "Due after 30 days"


def aging_buckets(invoices: Iterable[InvoiceRecord], as_of: date) -> Dict[str, Tuple[int, Decimal]]:
    counts = {name: 0 for name in AGING_ORDER}
    sums = {name: ZERO for name in AGING_ORDER}
    for inv in invoices:
        bucket = aging_bucket(inv, as_of)
        if bucket is None:
            continue
        counts[bucket] += 1
        sums[bucket] += inv.balance
    return {name: (counts[name], sums[name]) for name in AGING_ORDER}


def outstanding_summary(invoices: Iterable[InvoiceRecord], as_of: date) -> Dict[str, Any]:
    invoices = list(invoices)
    total_amount = sum((_dec(i.amount) for i in invoices), ZERO)
    total_paid = sum((_dec(i.paid_amount) for i in invoices), ZERO)
    total_balance = sum((i.balance for i in invoices), ZERO)
    overdue = [i for i in invoices if is_overdue(i, as_of)]
    due_soon = [
        i for i in invoices
        if i.balance > 0 and 0 <= (i.due_date - as_of).days <= 7
    ]
    return {
        "total_invoices": len(invoices),
        "total_amount": total_amount,
        "total_paid": total_paid,
        "total_balance": total_balance,
        "avg_balance": _mean(total_balance, len(invoices)),
        "overdue_count": len(overdue),
        "overdue_amount": sum((i.balance for i in overdue), ZERO),
        "due_soon_count": len(due_soon),
        "due_soon_amount": sum((i.balance for i in due_soon), ZERO),
        "collection_rate": _ratio(total_paid, total_amount),
    }


def outstanding_by_program(
    invoices: Iterable[InvoiceRecord],
    key_fn: Callable[[InvoiceRecord], Optional[Hashable]] = by_program,
) -> Dict[Hashable, Dict[str, Any]]:
    """Open balances per program, largest balance first."""
    groups: Dict[Hashable, List[InvoiceRecord]] = {}
    for inv in invoices:
        key = key_fn(inv)
        if key is None or key == "":
            key = UNASSIGNED
        groups.setdefault(key, []).append(inv)

    rows: Dict[Hashable, Dict[str, Any]] = {}
    for key, items in groups.items():
        balance = sum((i.balance for i in items), ZERO)
        rows[key] = {
            "invoice_count": len(items),
            "total_amount": sum((_dec(i.amount) for i in items), ZERO),
            "total_paid": sum((_dec(i.paid_amount) for i in items), ZERO),
            "total_balance": balance,
            "avg_balance": _mean(balance, len(items)),
        }
    return dict(sorted(rows.items(), key=lambda kv: (-kv[1]["total_balance"], str(kv[0]))))


def late_payer_ranking(
    invoices: Iterable[InvoiceRecord],
    as_of: date,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Students with overdue balances, largest overdue total first."""
    per_student: Dict[int, List[InvoiceRecord]] = {}
    for inv in invoices:
        if effective_status(inv, as_of) != "overdue":
            continue
        per_student.setdefault(inv.student_id, []).append(inv)

    rows = []
    for student_id, items in per_student.items():
        days_late = [(as_of - i.due_date).days for i in items]
        rows.append({
            "student_id": student_id,
            "overdue_invoices": len(items),
            "total_overdue": sum((i.balance for i in items), ZERO),
            "avg_days_late": _mean(Decimal(sum(days_late)), len(days_late)),
            "max_days_late": max(days_late),
        })
    rows.sort(key=lambda r: (-r["total_overdue"], r["student_id"]))
    return rows[:limit] if limit else rows


def prompt_payer_ranking(
    payments: Iterable[PaymentRecord],
    invoices: Iterable[InvoiceRecord],
    limit: Optional[int] = None,
    min_payments: int = 2,
) -> List[Dict[str, Any]]:
    """Students who pay ahead of their invoice due dates, earliest payers first.

    Only completed payments linked to a known invoice count, and a student
    needs at least ``min_payments`` of them to be ranked at all.
    """
    due_by_invoice = {inv.id: inv.due_date for inv in invoices}
    per_student: Dict[int, List[PaymentRecord]] = {}
    for p in _completed(payments):
        if p.invoice_id is None or p.invoice_id not in due_by_invoice:
            continue
        per_student.setdefault(p.student_id, []).append(p)

    rows = []
    for student_id, items in per_student.items():
        if len(items) < min_payments:
            continue
        days_early = [(due_by_invoice[p.invoice_id] - p.payment_date).days for p in items]
        total_paid = sum((_dec(p.amount) for p in items), ZERO)
        rows.append({
            "student_id": student_id,
            "payments_made": len(items),
            "total_paid": total_paid,
            "avg_payment": _mean(total_paid, len(items)),
            "avg_days_early": _mean(Decimal(sum(days_early)), len(days_early)),
            "first_payment": min(p.payment_date for p in items),
            "last_payment": max(p.payment_date for p in items),
        })
    rows.sort(key=lambda r: (-r["avg_days_early"], r["student_id"]))
    return rows[:limit] if limit else rows


def reconcile_invoices(
    invoices: Iterable[InvoiceRecord],
    payments: Iterable[PaymentRecord],
) -> List[Dict[str, Any]]:
    """Compare each invoice's recorded ``paid_amount`` with the completed
    payments linked to it. Fully paid invoices are kept (balance 0)."""
    linked: Dict[int, Decimal] = {}
    for p in _completed(payments):
        if p.invoice_id is not None:
            linked[p.invoice_id] = linked.get(p.invoice_id, ZERO) + _dec(p.amount)
    rows = []
    for inv in invoices:
        received = linked.get(inv.id, ZERO)
        rows.append({
            "invoice_id": inv.id,
            "student_id": inv.student_id,
            "amount": _dec(inv.amount),
            "paid_amount": _dec(inv.paid_amount),
            "balance": inv.balance,
            "payments_received": received,
            "difference": _dec(inv.paid_amount) - received,
        })
    return rows


def payment_summary(payments: Iterable[PaymentRecord]) -> Dict[str, Any]:
    done = _completed(payments)
    total = total_revenue(done)
    days = {p.payment_date for p in done}
    amounts = [_dec(p.amount) for p in done]
    return {
        "total_collected": total,
        "total_transactions": len(done),
        "unique_payers": len({p.student_id for p in done}),
        "avg_transaction": _mean(total, len(done)),
        "min_transaction": min(amounts) if amounts else ZERO,
        "max_transaction": max(amounts) if amounts else ZERO,
        "collection_days": len(days),
        "daily_avg": _mean(total, len(days)),
    }


def monthly_collection(payments: Iterable[PaymentRecord]) -> List[Dict[str, Any]]:
    """Per-month collection efficiency, most recent month first."""
    months: Dict[str, List[PaymentRecord]] = {}
    for p in _completed(payments):
        months.setdefault(p.payment_date.strftime("%Y-%m"), []).append(p)
    rows = []
    for month in sorted(months, reverse=True):
        items = months[month]
        amounts = [_dec(p.amount) for p in items]
        total = sum(amounts, ZERO)
        rows.append({
            "month": month,
            "active_students": len({p.student_id for p in items}),
            "transactions": len(items),
            "collected_amount": total,
            "avg_collection": _mean(total, len(items)),
            "max_collection": max(amounts),
            "min_collection": min(amounts),
        })
    return rows


def method_breakdown(payments: Iterable[PaymentRecord]) -> List[Dict[str, Any]]:
    done = _completed(payments)
    totals = revenue_by_dimension(done, by_method)
    rows = []
    for method, total in totals.items():
        items = [p for p in done if (p.payment_method or UNASSIGNED) == method]
        rows.append({
            "payment_method": method,
            "transactions": len(items),
            "total_amount": total,
            "avg_amount": _mean(total, len(items)),
            "unique_payers": len({p.student_id for p in items}),
        })
    return rows


# ---------------------------------------------------------------------------
# Expenses, budgets and profit
# ---------------------------------------------------------------------------

def _realized(expenses: Iterable[ExpenseRecord]) -> List[ExpenseRecord]:
    return [e for e in expenses if e.status in REALIZED_EXPENSE_STATUSES]


def expense_totals(expenses: Iterable[ExpenseRecord]) -> Dict[str, Any]:
    expenses = list(expenses)
    realized = _realized(expenses)
    total = sum((_dec(e.amount) for e in realized), ZERO)
    return {
        "total_expenses": total,
        "expense_count": len(realized),
        "avg_expense": _mean(total, len(realized)),
        "pending_expenses": sum((_dec(e.amount) for e in expenses if e.status == "pending"), ZERO),
    }


def actual_by_category(expenses: Iterable[ExpenseRecord]) -> Dict[int, Decimal]:
    totals: Dict[int, Decimal] = {}
    for e in _realized(expenses):
        totals[e.category_id] = totals.get(e.category_id, ZERO) + _dec(e.amount)
    return totals


def expenses_by_category(
    expenses: Iterable[ExpenseRecord],
    categories: Dict[int, CategoryRecord],
) -> List[Dict[str, Any]]:
    realized = _realized(expenses)
    grand_total = sum((_dec(e.amount) for e in realized), ZERO)
    counts: Dict[int, int] = {}
    for e in realized:
        counts[e.category_id] = counts.get(e.category_id, 0) + 1

    rows = []
    for category_id, amount in actual_by_category(realized).items():
        category = categories.get(category_id)
        rows.append({
            "category_id": category_id,
            "name": category.name if category else f"Category {category_id}",
            "category_type": category.category_type if category else "other",
            "total_amount": amount,
            "expense_count": counts[category_id],
            "percentage": _ratio(amount, grand_total),
        })
    rows.sort(key=lambda r: (-r["total_amount"], r["name"]))
    return rows


def category_type_total(
    expenses: Iterable[ExpenseRecord],
    categories: Dict[int, CategoryRecord],
    category_type: str,
) -> Decimal:
    return sum(
        (
            _dec(e.amount)
            for e in _realized(expenses)
            if e.category_id in categories and categories[e.category_id].category_type == category_type
        ),
        ZERO,
    )


def by_status(record) -> Optional[str]:
    return record.status


def expense_breakdown(
    expenses: Iterable[ExpenseRecord],
    key_fn: Callable[[ExpenseRecord], Optional[Hashable]],
) -> List[Dict[str, Any]]:
    """Count and total per key over every expense given, largest total first.

    Unlike the category table this keeps pending rows, so a status
    breakdown can show what is still awaiting approval.
    """
    counts: Dict[Hashable, int] = {}
    totals: Dict[Hashable, Decimal] = {}
    for e in expenses:
        key = key_fn(e)
        if key is None or key == "":
            key = UNASSIGNED
        counts[key] = counts.get(key, 0) + 1
        totals[key] = totals.get(key, ZERO) + _dec(e.amount)
    return [{"key": k, "count": counts[k], "total": t} for k, t in _ordered(totals).items()]


def expense_daily_trend(expenses: Iterable[ExpenseRecord]) -> List[Tuple[date, Decimal]]:
    totals: Dict[date, Decimal] = {}
    for e in _realized(expenses):
        totals[e.payment_date] = totals.get(e.payment_date, ZERO) + _dec(e.amount)
    return sorted(totals.items())


def top_expenses(expenses: Iterable[ExpenseRecord], limit: Optional[int] = None) -> List[ExpenseRecord]:
    """Largest realized expenses; ties go to the earlier record."""
    ranked = sorted(_realized(expenses), key=lambda e: (-_dec(e.amount), e.payment_date, e.id))
    return ranked[:limit] if limit else ranked


def top_revenue_sources(
    payments: Iterable[PaymentRecord],
    limit: Optional[int] = None,
    transaction_types: Sequence[str] = ("registration", "tuition"),
) -> List[Dict[str, Any]]:
    """Students ranked by completed registration and tuition payments."""
    groups: Dict[int, List[PaymentRecord]] = {}
    for p in _completed(payments):
        if p.transaction_type in transaction_types:
            groups.setdefault(p.student_id, []).append(p)
    rows = []
    for student_id, items in groups.items():
        rows.append({
            "student_id": student_id,
            "transaction_count": len(items),
            "total_paid": sum((_dec(p.amount) for p in items), ZERO),
            "last_payment": max(p.payment_date for p in items),
        })
    rows.sort(key=lambda r: (-r["total_paid"], r["student_id"]))
    return rows[:limit] if limit else rows


def budget_variance(
    actual_by_cat: Dict[Hashable, Decimal],
    budget_by_cat: Dict[Hashable, Decimal],
) -> Dict[Hashable, Decimal]:
    """``budget - actual`` per category; a missing budget counts as zero."""
    keys = list(actual_by_cat) + [k for k in budget_by_cat if k not in actual_by_cat]
    return {k: _dec(budget_by_cat.get(k)) - _dec(actual_by_cat.get(k)) for k in keys}


def profit_loss(revenue: Any, expenses: Any) -> Tuple[Decimal, Decimal]:
    revenue = _dec(revenue)
    net = revenue - _dec(expenses)
    margin = net * HUNDRED / revenue if revenue > 0 else ZERO
    return net, margin


def automated_deductions(revenue: Any, deductions: Sequence[DeductionRecord]) -> List[Dict[str, Any]]:
    """Projected tithe/reserve set-asides; nothing is booked from here."""
    revenue = _dec(revenue)
    return [
        {
            "deduction_type": d.deduction_type,
            "percentage": _dec(d.percentage),
            "amount": revenue * _dec(d.percentage) / HUNDRED,
        }
        for d in deductions
        if d.is_active
    ]


# ---------------------------------------------------------------------------
# Per-student roll-ups
# ---------------------------------------------------------------------------

def student_balance(
    invoices: Iterable[InvoiceRecord],
    payments: Iterable[PaymentRecord],
    as_of: date,
) -> Dict[str, Any]:
    live = [i for i in invoices if i.status != "cancelled"]
    done = _completed(payments)
    unpaid = [i for i in live if i.balance > 0]
    return {
        "total_invoiced": sum((_dec(i.amount) for i in live), ZERO),
        "total_paid": sum((_dec(i.paid_amount) for i in live), ZERO),
        "balance": sum((i.balance for i in live), ZERO),
        "overdue_balance": sum((i.balance for i in live if is_overdue(i, as_of)), ZERO),
        "next_payment_due": min((i.due_date for i in unpaid), default=None),
        "payments_total": total_revenue(done),
        "payment_count": len(done),
        "last_payment_date": max((p.payment_date for p in done), default=None),
    }


def recompute_financial_status(invoices: Iterable[InvoiceRecord]) -> Dict[Tuple[int, int], Dict[str, Any]]:
    """Re-derive the per-class balance cache from invoices."""
    groups: Dict[Tuple[int, int], List[InvoiceRecord]] = {}
    for inv in invoices:
        if inv.status == "cancelled" or inv.class_id is None:
            continue
        groups.setdefault((inv.student_id, inv.class_id), []).append(inv)

    status = {}
    for key, items in sorted(groups.items()):
        unpaid = [i for i in items if i.balance > 0]
        status[key] = {
            "total_fee": sum((_dec(i.amount) for i in items), ZERO),
            "paid_amount": sum((_dec(i.paid_amount) for i in items), ZERO),
            "balance": sum((i.balance for i in items), ZERO),
            "next_payment_due": min((i.due_date for i in unpaid), default=None),
        }
    return status


def payment_state(status: StatusRecord, as_of: date) -> str:
    """``cleared``, ``overdue``, ``partial`` or ``pending`` for one cached balance row."""
    if status.balance <= 0:
        return "cleared"
    if status.next_payment_due is not None and status.next_payment_due < as_of:
        return "overdue"
    if status.paid_amount > 0:
        return "partial"
    return "pending"
