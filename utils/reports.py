"""Report bundles assembled from one consistent ledger snapshot.

Each report resolves its period once, validates its filters once, reads each
record set once and derives every card, table and series from those same
lists, so a summary figure can never disagree with the chart next to it.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from flask import current_app, has_app_context

from models import INVOICE_STATUSES
from utils import aggregation as agg
from utils.errors import InvalidDateRange, UnknownReport
from utils.ledger import OPEN_INVOICE_STATUSES, LedgerReader, validate_filters
from utils.periods import DEFAULT_EPOCH_FLOOR, is_inverted, parse_date, resolve_period
from utils.records import ZERO
from utils.timezone_helpers import report_today

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

DEFAULT_PERIODS = {
    "revenue": "month",
    "outstanding": "all",
    "collection": "month",
    "expenses": "month",
    "profit_loss": "month",
    "invoices": "month",
    "financial_status": "all",
}
REPORT_NAMES = tuple(DEFAULT_PERIODS)

# Default CSV section per report
PRIMARY_SECTIONS = {
    "revenue": "transactions",
    "outstanding": "invoices",
    "collection": "monthly",
    "expenses": "categories",
    "profit_loss": "statement",
    "invoices": "invoices",
    "financial_status": "students",
    "student_dashboard": "invoices",
}


def money(value: Any) -> Decimal:
    """Round to cents for presentation; accumulation never rounds."""
    if value is None:
        return ZERO.quantize(CENT)
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(money(value))
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


class ReportBundle:
    """A named report: period, summary figures and row sections.

    ``columns`` declares every section's field order so empty sections still
    export a header row.
    """

    def __init__(
        self,
        name: str,
        period: Dict[str, Any],
        filters: Dict[str, Any],
        generated_on: date,
        summary: Dict[str, Any],
        sections: Dict[str, List[Dict[str, Any]]],
        columns: Dict[str, List[str]],
    ):
        self.name = name
        self.period = period
        self.filters = filters
        self.generated_on = generated_on
        self.summary = summary
        self.sections = sections
        self.columns = columns

    def section(self, key: str) -> List[Dict[str, Any]]:
        return self.sections.get(key, [])

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "period": to_plain(self.period),
            "filters": to_plain(self.filters),
            "generated_on": self.generated_on.isoformat(),
            "summary": to_plain(self.summary),
            "sections": to_plain(self.sections),
        }

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ReportBundle) and self.as_dict() == other.as_dict()

    def __repr__(self) -> str:
        return f"<ReportBundle {self.name} {self.period.get('from')}..{self.period.get('to')}>"


def _rows(mapping: Mapping[Any, Decimal], key_name: str, value_name: str = "total") -> List[Dict[str, Any]]:
    return [{key_name: k, value_name: v} for k, v in mapping.items()]


def _breakdown(expenses, key_fn: Callable, key_name: str) -> List[Dict[str, Any]]:
    return [
        {key_name: r["key"], "count": r["count"], "total": r["total"]}
        for r in agg.expense_breakdown(expenses, key_fn)
    ]


class _Snapshot:
    """Fetches for one report run; an inverted range reads nothing."""

    def __init__(self, reader: LedgerReader, date_from: date, date_to: date, filters: Dict[str, Any], empty: bool):
        self.reader = reader
        self.date_from = date_from
        self.date_to = date_to
        self.filters = filters
        self.empty = empty

    def payments(self, filters: Optional[Dict[str, Any]] = None):
        if self.empty:
            return []
        return self.reader.fetch_payments(self.date_from, self.date_to, self.filters if filters is None else filters)

    def invoices(self, date_field: str = "due_date", statuses=None):
        if self.empty:
            return []
        return self.reader.fetch_invoices(self.date_from, self.date_to, self.filters, date_field=date_field, statuses=statuses)

    def expenses(self, filters: Optional[Dict[str, Any]] = None):
        if self.empty:
            return []
        return self.reader.fetch_expenses(self.date_from, self.date_to, self.filters if filters is None else filters)

    def budgets(self, categories):
        if self.empty:
            return {}
        return self.reader.fetch_budgets(self.date_from, self.date_to, categories)

    def names(self, student_ids: Iterable[int]) -> Dict[int, str]:
        return self.reader.fetch_student_names(student_ids)

    def financial_status(self):
        if self.empty:
            return []
        return self.reader.fetch_all_financial_status()


def _report_config(key: str, default: Any) -> Any:
    if has_app_context():
        return current_app.config.get(key, default)
    return default


# ---------------------------------------------------------------------------
# Report builders
# ---------------------------------------------------------------------------

REVENUE_COLUMNS = {
    "by_program": ["program_code", "total"],
    "by_program_type": ["program_type", "total"],
    "by_method": ["payment_method", "total"],
    "by_type": ["transaction_type", "total"],
    "daily_trend": ["date", "total"],
    "transactions": [
        "id", "date", "student_id", "program_code", "program_type",
        "transaction_type", "payment_method", "status", "amount",
    ],
}


def _revenue(snap: _Snapshot, as_of: date, top_n: int):
    payments = snap.payments()
    total = agg.total_revenue(payments)
    by_type = agg.revenue_by_dimension(payments, agg.by_transaction_type)
    completed = [p for p in payments if p.status == agg.COMPLETED]
    summary = {
        "total_revenue": total,
        "transaction_count": len(completed),
        "average_transaction": total / len(completed) if completed else ZERO,
        "registration_revenue": by_type.get("registration", ZERO),
        "tuition_revenue": by_type.get("tuition", ZERO),
        "service_revenue": by_type.get("service", ZERO),
    }
    sections = {
        "by_program": _rows(agg.revenue_by_dimension(payments, agg.by_program), "program_code"),
        "by_program_type": _rows(agg.revenue_by_dimension(payments, agg.by_program_type), "program_type"),
        "by_method": _rows(agg.revenue_by_dimension(payments, agg.by_method), "payment_method"),
        "by_type": _rows(by_type, "transaction_type"),
        "daily_trend": [{"date": d, "total": t} for d, t in agg.daily_trend(payments)],
        "transactions": [
            {
                "id": p.id,
                "date": p.payment_date,
                "student_id": p.student_id,
                "program_code": p.program_code,
                "program_type": p.program_type,
                "transaction_type": p.transaction_type,
                "payment_method": p.payment_method,
                "status": p.status,
                "amount": p.amount,
            }
            for p in payments
        ],
    }
    return summary, sections, REVENUE_COLUMNS


OUTSTANDING_COLUMNS = {
    "aging": ["bucket", "count", "balance"],
    "invoices": [
        "id", "invoice_number", "student_id", "student_name", "program_code", "program_type",
        "invoice_type", "amount", "paid_amount", "balance", "due_date", "status",
        "days_overdue", "days_until_due", "aging_bucket",
    ],
    "by_program": ["program_code", "invoice_count", "total_amount", "total_paid", "total_balance", "avg_balance"],
    "late_payers": [
        "student_id", "student_name", "overdue_invoices", "total_overdue", "avg_days_late", "max_days_late",
    ],
}


def _outstanding(snap: _Snapshot, as_of: date, top_n: int):
    invoices = snap.invoices(date_field="due_date", statuses=OPEN_INVOICE_STATUSES)
    late = agg.late_payer_ranking(invoices, as_of, limit=top_n)
    names = snap.names([i.student_id for i in invoices])

    ordered = sorted(
        invoices,
        key=lambda i: (0 if i.due_date < as_of else 1, i.due_date, -i.amount, i.id),
    )
    invoice_rows = [
        {
            "id": i.id,
            "invoice_number": i.invoice_number,
            "student_id": i.student_id,
            "student_name": names.get(i.student_id, ""),
            "program_code": i.program_code,
            "program_type": i.program_type,
            "invoice_type": i.invoice_type,
            "amount": i.amount,
            "paid_amount": i.paid_amount,
            "balance": i.balance,
            "due_date": i.due_date,
            "status": agg.effective_status(i, as_of),
            "days_overdue": max((as_of - i.due_date).days, 0),
            "days_until_due": (i.due_date - as_of).days,
            "aging_bucket": agg.aging_bucket(i, as_of) or "",
        }
        for i in ordered
    ]
    aging = [
        {"bucket": name, "count": count, "balance": balance}
        for name, (count, balance) in agg.aging_buckets(invoices, as_of).items()
    ]
    for row in late:
        row["student_name"] = names.get(row["student_id"], "")
    by_program = [
        dict(program_code=code, **row)
        for code, row in agg.outstanding_by_program(invoices).items()
    ]
    sections = {"aging": aging, "invoices": invoice_rows, "late_payers": late, "by_program": by_program}
    return agg.outstanding_summary(invoices, as_of), sections, OUTSTANDING_COLUMNS


COLLECTION_COLUMNS = {
    "monthly": [
        "month", "active_students", "transactions", "collected_amount",
        "avg_collection", "max_collection", "min_collection",
    ],
    "by_method": ["payment_method", "transactions", "total_amount", "avg_amount", "unique_payers"],
    "by_program": ["program_code", "invoices_issued", "total_invoiced", "total_collected", "collection_rate"],
    "prompt_payers": [
        "student_id", "student_name", "payments_made", "total_paid", "avg_payment",
        "avg_days_early", "first_payment", "last_payment",
    ],
    "late_payers": OUTSTANDING_COLUMNS["late_payers"],
    "reconciliation": [
        "invoice_id", "student_id", "amount", "paid_amount", "balance", "payments_received", "difference",
    ],
}


def _collection(snap: _Snapshot, as_of: date, top_n: int):
    payments = snap.payments()
    invoices = snap.invoices(date_field="created_at")
    linked = snap.reader.fetch_invoices_by_id(p.invoice_id for p in payments) if payments else []
    prompt = agg.prompt_payer_ranking(payments, linked, limit=top_n)
    late = agg.late_payer_ranking(invoices, as_of, limit=top_n)
    names = snap.names([r["student_id"] for r in prompt + late])
    for row in prompt + late:
        row["student_name"] = names.get(row["student_id"], "")

    # paid_amount is lifetime, so reconcile against every linked payment
    lifetime = snap.reader.fetch_payments_for_invoices(i.id for i in invoices)

    summary = agg.payment_summary(payments)
    summary["total_invoiced"] = sum((i.amount for i in invoices), ZERO)
    summary["collection_rate"] = agg.collection_rate(invoices)
    by_program = [
        dict(program_code=code, **row)
        for code, row in agg.collection_rate_by_program(invoices).items()
    ]
    sections = {
        "monthly": agg.monthly_collection(payments),
        "by_method": agg.method_breakdown(payments),
        "by_program": by_program,
        "prompt_payers": prompt,
        "late_payers": late,
        "reconciliation": agg.reconcile_invoices(invoices, lifetime),
    }
    return summary, sections, COLLECTION_COLUMNS


EXPENSE_COLUMNS = {
    "categories": [
        "category_id", "name", "category_type", "expense_count", "total_amount",
        "percentage", "budget_amount", "variance",
    ],
    "monthly_trend": ["month", "total"],
    "daily_trend": ["date", "total"],
    "by_method": ["payment_method", "count", "total"],
    "by_status": ["status", "count", "total"],
    "by_category_type": ["category_type", "count", "total"],
}


def _expenses(snap: _Snapshot, as_of: date, top_n: int):
    expenses = snap.expenses()
    categories = snap.reader.fetch_categories()
    wanted = {
        cid: c for cid, c in categories.items()
        if snap.filters.get("category_id") in (None, cid)
        and snap.filters.get("category_type") in (None, c.category_type)
    }
    budgets = {cid: amount for cid, amount in snap.budgets(categories).items() if cid in wanted}
    actual = agg.actual_by_category(expenses)
    variance = agg.budget_variance(actual, budgets)

    rows = agg.expenses_by_category(expenses, categories)
    seen = {r["category_id"] for r in rows}
    for cid in budgets:
        if cid not in seen:
            c = categories[cid]
            rows.append({
                "category_id": cid,
                "name": c.name,
                "category_type": c.category_type,
                "total_amount": ZERO,
                "expense_count": 0,
                "percentage": ZERO,
            })
    for row in rows:
        row["budget_amount"] = budgets.get(row["category_id"], ZERO)
        row["variance"] = variance.get(row["category_id"], ZERO)

    summary = agg.expense_totals(expenses)
    summary["total_budget"] = sum(budgets.values(), ZERO)
    summary["total_variance"] = sum(variance.values(), ZERO)
    summary["tithe_total"] = agg.category_type_total(expenses, categories, "tithe")
    summary["reserve_total"] = agg.category_type_total(expenses, categories, "reserve")

    realized = [e for e in expenses if e.status in agg.REALIZED_EXPENSE_STATUSES]
    trend = agg.monthly_trend(realized, lambda e: e.payment_date, lambda e: e.amount)

    def category_type(e):
        c = categories.get(e.category_id)
        return c.category_type if c else None

    sections = {
        "categories": rows,
        "monthly_trend": _rows(trend, "month"),
        "daily_trend": [{"date": d, "total": t} for d, t in agg.expense_daily_trend(expenses)],
        "by_method": _breakdown(expenses, agg.by_method, "payment_method"),
        "by_status": _breakdown(expenses, agg.by_status, "status"),
        "by_category_type": _breakdown(expenses, category_type, "category_type"),
    }
    return summary, sections, EXPENSE_COLUMNS


PROFIT_LOSS_COLUMNS = {
    "statement": ["section", "line", "amount", "percentage"],
    "revenue_by_program_type": ["program_type", "total"],
    "deductions": ["deduction_type", "percentage", "amount"],
    "monthly": ["month", "revenue", "expenses", "profit", "margin"],
    "top_expenses": ["id", "date", "category", "category_type", "vendor_name", "amount"],
    "top_revenue_sources": ["student_id", "student_name", "transaction_count", "total_paid", "last_payment"],
}


def _profit_loss(snap: _Snapshot, as_of: date, top_n: int):
    payments = snap.payments()
    # A payment status has no meaning for expenses
    expense_filters = {k: v for k, v in snap.filters.items() if k != "status"}
    expenses = snap.expenses(expense_filters)
    categories = snap.reader.fetch_categories()

    revenue = agg.total_revenue(payments)
    totals = agg.expense_totals(expenses)
    net, margin = agg.profit_loss(revenue, totals["total_expenses"])

    statement: List[Dict[str, Any]] = []
    for line, amount in agg.revenue_by_dimension(payments, agg.by_transaction_type).items():
        statement.append({"section": "revenue", "line": line, "amount": amount,
                          "percentage": amount * agg.HUNDRED / revenue if revenue else ZERO})
    statement.append({"section": "revenue", "line": "TOTAL REVENUE", "amount": revenue,
                      "percentage": agg.HUNDRED if revenue else ZERO})
    for row in agg.expenses_by_category(expenses, categories):
        statement.append({"section": "expenses", "line": row["name"], "amount": row["total_amount"],
                          "percentage": row["total_amount"] * agg.HUNDRED / revenue if revenue else ZERO})
    statement.append({"section": "expenses", "line": "TOTAL EXPENSES", "amount": totals["total_expenses"],
                      "percentage": totals["total_expenses"] * agg.HUNDRED / revenue if revenue else ZERO})
    statement.append({"section": "net", "line": "NET PROFIT/LOSS", "amount": net, "percentage": margin})

    completed = [p for p in payments if p.status == agg.COMPLETED]
    realized = [e for e in expenses if e.status in agg.REALIZED_EXPENSE_STATUSES]
    rev_by_month = agg.monthly_trend(completed, lambda p: p.payment_date, lambda p: p.amount)
    exp_by_month = agg.monthly_trend(realized, lambda e: e.payment_date, lambda e: e.amount)
    monthly = []
    for month in sorted(set(rev_by_month) | set(exp_by_month)):
        m_net, m_margin = agg.profit_loss(rev_by_month.get(month, ZERO), exp_by_month.get(month, ZERO))
        monthly.append({
            "month": month,
            "revenue": rev_by_month.get(month, ZERO),
            "expenses": exp_by_month.get(month, ZERO),
            "profit": m_net,
            "margin": m_margin,
        })

    top_expenses = []
    for e in agg.top_expenses(expenses, limit=top_n):
        c = categories.get(e.category_id)
        top_expenses.append({
            "id": e.id,
            "date": e.payment_date,
            "category": c.name if c else f"Category {e.category_id}",
            "category_type": c.category_type if c else "other",
            "vendor_name": e.vendor_name,
            "amount": e.amount,
        })
    sources = agg.top_revenue_sources(payments, limit=top_n)
    names = snap.names([r["student_id"] for r in sources])
    for row in sources:
        row["student_name"] = names.get(row["student_id"], "")

    summary = {
        "total_revenue": revenue,
        "total_expenses": totals["total_expenses"],
        "pending_expenses": totals["pending_expenses"],
        "net_profit_loss": net,
        "profit_margin": margin,
        "is_profit": net >= 0,
    }
    sections = {
        "statement": statement,
        "revenue_by_program_type": _rows(agg.revenue_by_dimension(payments, agg.by_program_type), "program_type"),
        "deductions": agg.automated_deductions(revenue, [] if snap.empty else snap.reader.fetch_deductions()),
        "monthly": monthly,
        "top_expenses": top_expenses,
        "top_revenue_sources": sources,
    }
    return summary, sections, PROFIT_LOSS_COLUMNS


INVOICE_REGISTER_COLUMNS = {
    "invoices": [
        "id", "invoice_number", "created_on", "student_id", "student_name", "class_id",
        "program_code", "program_type", "invoice_type", "amount", "paid_amount", "balance",
        "due_date", "status",
    ],
    "by_status": ["status", "count", "amount", "balance"],
    "by_type": ["invoice_type", "count", "amount", "balance"],
}


def _grouped(rows: List[Dict[str, Any]], key_name: str) -> List[Dict[str, Any]]:
    groups: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        g = groups.setdefault(row[key_name], {key_name: row[key_name], "count": 0, "amount": ZERO, "balance": ZERO})
        g["count"] += 1
        g["amount"] += row["amount"]
        g["balance"] += row["balance"]
    return sorted(groups.values(), key=lambda g: (-g["amount"], g[key_name]))


def _invoice_register(snap: _Snapshot, as_of: date, top_n: int):
    # Every status, cancelled included, unless a status filter narrows it
    invoices = snap.invoices(date_field="created_at", statuses=INVOICE_STATUSES)
    names = snap.names([i.student_id for i in invoices])
    rows = [
        {
            "id": i.id,
            "invoice_number": i.invoice_number,
            "created_on": i.created_at.date() if i.created_at else None,
            "student_id": i.student_id,
            "student_name": names.get(i.student_id, ""),
            "class_id": i.class_id,
            "program_code": i.program_code,
            "program_type": i.program_type,
            "invoice_type": i.invoice_type,
            "amount": i.amount,
            "paid_amount": i.paid_amount,
            "balance": ZERO if i.status == "cancelled" else i.balance,
            "due_date": i.due_date,
            "status": agg.effective_status(i, as_of),
        }
        for i in invoices
    ]
    live = [i for i in invoices if i.status != "cancelled"]
    summary = {
        "total_invoices": len(rows),
        "cancelled_invoices": len(rows) - len(live),
        "total_amount": sum((i.amount for i in live), ZERO),
        "total_paid": sum((i.paid_amount for i in live), ZERO),
        "total_balance": sum((i.balance for i in live), ZERO),
        "collection_rate": agg.collection_rate(live),
    }
    sections = {
        "invoices": rows,
        "by_status": _grouped(rows, "status"),
        "by_type": _grouped(rows, "invoice_type"),
    }
    return summary, sections, INVOICE_REGISTER_COLUMNS


FINANCIAL_STATUS_COLUMNS = {
    "students": [
        "student_id", "student_name", "class_id", "total_fee", "paid_amount", "balance",
        "next_payment_due", "is_suspended", "payment_status",
    ],
}


def _financial_status(snap: _Snapshot, as_of: date, top_n: int):
    """The cached per-class balances for every student.

    Cache rows carry no dates or programs, so the period and filters only
    label the export.
    """
    statuses = snap.financial_status()
    names = snap.names([s.student_id for s in statuses])
    rows = [
        {
            "student_id": s.student_id,
            "student_name": names.get(s.student_id, ""),
            "class_id": s.class_id,
            "total_fee": s.total_fee,
            "paid_amount": s.paid_amount,
            "balance": s.balance,
            "next_payment_due": s.next_payment_due,
            "is_suspended": s.is_suspended,
            "payment_status": agg.payment_state(s, as_of),
        }
        for s in statuses
    ]
    summary = {
        "students": len({s.student_id for s in statuses}),
        "classes": len(statuses),
        "total_fee": sum((s.total_fee for s in statuses), ZERO),
        "total_paid": sum((s.paid_amount for s in statuses), ZERO),
        "total_balance": sum((s.balance for s in statuses), ZERO),
        "suspended": sum(1 for s in statuses if s.is_suspended),
        "overdue": sum(1 for r in rows if r["payment_status"] == "overdue"),
    }
    return summary, {"students": rows}, FINANCIAL_STATUS_COLUMNS


BUILDERS: Dict[str, Callable] = {
    "revenue": _revenue,
    "outstanding": _outstanding,
    "collection": _collection,
    "expenses": _expenses,
    "profit_loss": _profit_loss,
    "invoices": _invoice_register,
    "financial_status": _financial_status,
}


def generate_report(
    report_name: str,
    period_token: Optional[str] = None,
    date_from: Any = None,
    date_to: Any = None,
    filters: Optional[Mapping[str, Any]] = None,
    reader: Optional[LedgerReader] = None,
    today: Optional[date] = None,
) -> ReportBundle:
    """Build one named report over a single ``(from, to, filters)`` tuple.

    Raises ``UnknownReport``, ``InvalidFilter`` or ``InvalidDateRange`` for
    bad requests and lets ``DataStoreUnavailable`` through from the ledger.
    An empty ledger is not an error: the bundle is simply zero-valued.
    """
    builder = BUILDERS.get(report_name)
    if builder is None:
        raise UnknownReport(f"Unknown report {report_name!r}; expected one of {', '.join(REPORT_NAMES)}")

    clean = validate_filters(filters)
    reader = reader or LedgerReader()
    today = today or report_today()
    token = (period_token or DEFAULT_PERIODS[report_name]).strip().lower()
    floor = parse_date(_report_config("REPORT_EPOCH_FLOOR", None), "REPORT_EPOCH_FLOOR") or DEFAULT_EPOCH_FLOOR
    earliest = reader.earliest_activity_date() if token == "all" else None
    start, end = resolve_period(token, date_from, date_to, today=today, earliest=earliest, epoch_floor=floor)

    inverted = is_inverted(start, end)
    if inverted and _report_config("REPORT_INVERTED_RANGE", "empty") == "reject":
        raise InvalidDateRange(f"date_from {start.isoformat()} is after date_to {end.isoformat()}")

    top_n = int(_report_config("REPORT_TOP_N", 10))
    snap = _Snapshot(reader, start, end, clean, empty=inverted)
    summary, sections, columns = builder(snap, today, top_n)
    logger.info(
        "report %s %s..%s filters=%s rows=%s",
        report_name, start, end, clean, {k: len(v) for k, v in sections.items()},
    )
    return ReportBundle(
        name=report_name,
        period={"token": token, "from": start, "to": end},
        filters=clean,
        generated_on=today,
        summary=summary,
        sections=sections,
        columns=columns,
    )


# ---------------------------------------------------------------------------
# Student dashboard
# ---------------------------------------------------------------------------

STUDENT_COLUMNS = {
    "classes": ["class_id", "total_fee", "paid_amount", "balance", "next_payment_due", "is_suspended"],
    "invoices": [
        "id", "invoice_number", "class_id", "program_code", "invoice_type",
        "amount", "paid_amount", "balance", "due_date", "status",
    ],
    "payments": ["id", "date", "class_id", "transaction_type", "payment_method", "status", "amount"],
}


def student_dashboard(
    student_id: int,
    reader: Optional[LedgerReader] = None,
    today: Optional[date] = None,
    recent_payments: int = 10,
) -> ReportBundle:
    """Balances for one student, recomputed from invoices.

    The cached ``student_financial_status`` rows only contribute the
    suspension flag; every amount comes from the invoices themselves.
    """
    reader = reader or LedgerReader()
    today = today or report_today()
    invoices, payments = reader.fetch_student_ledger(student_id)
    cached = {s.class_id: s for s in reader.fetch_financial_status(student_id)}

    summary = agg.student_balance(invoices, payments, today)
    if summary["overdue_balance"] > 0:
        summary["alert"] = "overdue"
    elif summary["balance"] > 0:
        summary["alert"] = "outstanding"
    else:
        summary["alert"] = "clear"

    classes = []
    for (_, class_id), row in agg.recompute_financial_status(invoices).items():
        status = cached.get(class_id)
        classes.append(dict(class_id=class_id, is_suspended=bool(status and status.is_suspended), **row))
    summary["is_suspended"] = any(s.is_suspended for s in cached.values())

    sections = {
        "classes": classes,
        "invoices": [
            {
                "id": i.id,
                "invoice_number": i.invoice_number,
                "class_id": i.class_id,
                "program_code": i.program_code,
                "invoice_type": i.invoice_type,
                "amount": i.amount,
                "paid_amount": i.paid_amount,
                "balance": i.balance,
                "due_date": i.due_date,
                "status": agg.effective_status(i, today),
            }
            for i in invoices
        ],
        "payments": [
            {
                "id": p.id,
                "date": p.payment_date,
                "class_id": p.class_id,
                "transaction_type": p.transaction_type,
                "payment_method": p.payment_method,
                "status": p.status,
                "amount": p.amount,
            }
            for p in payments[:recent_payments]
        ],
    }
    dates = [i.created_at.date() for i in invoices if i.created_at] + [p.payment_date for p in payments]
    return ReportBundle(
        name="student_dashboard",
        period={"token": "all", "from": min(dates, default=today), "to": today},
        filters={"student_id": student_id},
        generated_on=today,
        summary=summary,
        sections=sections,
        columns=STUDENT_COLUMNS,
    )
