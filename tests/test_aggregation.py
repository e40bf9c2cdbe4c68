from datetime import date, datetime, timedelta
from decimal import Decimal

from utils import aggregation as agg
from utils.records import (
    CategoryRecord,
    DeductionRecord,
    ExpenseRecord,
    InvoiceRecord,
    PaymentRecord,
    StatusRecord,
)

AS_OF = date(2025, 6, 30)
D = Decimal


def pay(id, amount, status="completed", method="cash", ttype="tuition", day=date(2025, 6, 1),
        student_id=1, program_code="WEB101", program_type="onsite", invoice_id=None):
    return PaymentRecord(
        id=id,
        student_id=student_id,
        amount=D(amount),
        payment_method=method,
        status=status,
        transaction_type=ttype,
        created_at=datetime.combine(day, datetime.min.time()),
        program_code=program_code,
        program_type=program_type,
        invoice_id=invoice_id,
    )


def inv(id, amount, paid="0", due=AS_OF, status="pending", student_id=1, program_code="WEB101", class_id=1):
    return InvoiceRecord(
        id=id,
        student_id=student_id,
        amount=D(amount),
        paid_amount=D(paid),
        due_date=due,
        status=status,
        class_id=class_id,
        program_code=program_code,
    )


def exp(id, category_id, amount, status="paid", day=date(2025, 6, 10)):
    return ExpenseRecord(id=id, category_id=category_id, amount=D(amount), payment_date=day, status=status)


# -- revenue -----------------------------------------------------------------

def test_only_completed_payments_count_as_revenue():
    payments = [pay(1, "100"), pay(2, "50", status="pending"), pay(3, "25", status="refunded")]
    assert agg.total_revenue(payments) == D("100")


def test_revenue_groups_add_up_to_total():
    payments = [
        pay(1, "100.10", method="cash", program_type="onsite"),
        pay(2, "200.20", method="card", program_type="online"),
        pay(3, "300.30", method="card", program_type=None, program_code=None),
        pay(4, "999", method="card", status="failed"),
    ]
    total = agg.total_revenue(payments)
    for key_fn in (agg.by_program, agg.by_program_type, agg.by_method, agg.by_transaction_type):
        groups = agg.revenue_by_dimension(payments, key_fn)
        assert sum(groups.values(), D("0")) == total


def test_revenue_by_dimension_orders_largest_first_and_names_unassigned():
    payments = [pay(1, "10", program_code=None), pay(2, "30", program_code="DATA201"), pay(3, "20")]
    groups = agg.revenue_by_dimension(payments, agg.by_program)
    assert list(groups) == ["DATA201", "WEB101", "unassigned"]


def test_revenue_scenario_by_type():
    payments = [
        pay(1, "500", ttype="registration"),
        pay(2, "500", ttype="tuition"),
        pay(3, "1000", ttype="tuition", status="pending"),
    ]
    assert agg.total_revenue(payments) == D("1000")
    assert agg.revenue_by_dimension(payments, agg.by_transaction_type) == {
        "registration": D("500"),
        "tuition": D("500"),
    }


def test_daily_and_monthly_trends():
    payments = [
        pay(1, "10", day=date(2025, 5, 31)),
        pay(2, "15", day=date(2025, 6, 1)),
        pay(3, "5", day=date(2025, 6, 1)),
    ]
    assert agg.daily_trend(payments) == [(date(2025, 5, 31), D("10")), (date(2025, 6, 1), D("20"))]
    trend = agg.monthly_trend(payments, lambda p: p.payment_date, lambda p: p.amount)
    assert trend == {"2025-05": D("10"), "2025-06": D("20")}


def test_empty_input_gives_zero_values():
    assert agg.total_revenue([]) == 0
    assert agg.revenue_by_dimension([], agg.by_method) == {}
    assert agg.collection_rate([]) == 0
    summary = agg.payment_summary([])
    assert summary["avg_transaction"] == 0 and summary["daily_avg"] == 0
    assert agg.outstanding_summary([], AS_OF)["avg_balance"] == 0


# -- collection rate -----------------------------------------------------------

def test_collection_rate_zero_invoiced_is_zero():
    assert agg.collection_rate([inv(1, "0")]) == 0


def test_collection_rate_scenario():
    rate = agg.collection_rate([inv(1, "1000", paid="250"), inv(2, "1000", paid="750")])
    assert rate == D("50")


def test_collection_rate_by_program():
    rows = agg.collection_rate_by_program([
        inv(1, "100", paid="100", program_code="A"),
        inv(2, "100", paid="50", program_code="B"),
        inv(3, "100", paid="0", program_code="B"),
    ])
    assert list(rows) == ["A", "B"]
    assert rows["B"]["collection_rate"] == D("25")
    assert rows["B"]["invoices_issued"] == 2


# -- aging -------------------------------------------------------------------

def test_aging_bucket_boundaries():
    def bucket(days_overdue):
        return agg.aging_bucket(inv(1, "10", due=AS_OF - timedelta(days=days_overdue)), AS_OF)

    assert bucket(1) == "1-30 days"
    assert bucket(30) == "1-30 days"
    assert bucket(31) == "31-60 days"
    assert bucket(60) == "31-60 days"
    assert bucket(61) == "61-90 days"
    assert bucket(90) == "61-90 days"
    assert bucket(91) == "Over 90 days"
    assert bucket(0) == "Due in 7 days"
    assert bucket(-7) == "Due in 7 days"
    assert bucket(-8) == "Due in 30 days"
    assert bucket(-30) == "Due in 30 days"
    assert bucket(-31) == "Due after 30 days"


def test_fully_paid_invoice_has_no_bucket():
    paid = inv(1, "5000", paid="5000", due=AS_OF - timedelta(days=100))
    assert agg.aging_bucket(paid, AS_OF) is None
    buckets = agg.aging_buckets([paid], AS_OF)
    assert all(count == 0 for count, _ in buckets.values())


def test_aging_buckets_partition_unpaid_invoices():
    invoices = [
        inv(i, "100", paid=str(i % 3 * 50), due=AS_OF + timedelta(days=offset))
        for i, offset in enumerate((-120, -75, -45, -30, -1, 0, 3, 14, 45, -200), start=1)
    ]
    buckets = agg.aging_buckets(invoices, AS_OF)
    assert list(buckets) == list(agg.AGING_ORDER)
    unpaid = [i for i in invoices if i.balance > 0]
    assert sum(count for count, _ in buckets.values()) == len(unpaid)
    assert sum((total for _, total in buckets.values()), D("0")) == sum((i.balance for i in unpaid), D("0"))


def test_overpaid_invoice_balance_is_never_negative():
    assert inv(1, "100", paid="120").balance == 0


def test_effective_status_follows_amounts_and_due_date():
    assert agg.effective_status(inv(1, "100", due=AS_OF - timedelta(days=1)), AS_OF) == "overdue"
    assert agg.effective_status(inv(2, "100", paid="100", status="partial"), AS_OF) == "paid"
    assert agg.effective_status(inv(3, "100", paid="10", status="overdue", due=AS_OF + timedelta(days=3)), AS_OF) == "partial"
    assert agg.effective_status(inv(4, "100", status="cancelled", due=AS_OF - timedelta(days=9)), AS_OF) == "cancelled"


def test_outstanding_summary_counts_overdue_and_due_soon():
    summary = agg.outstanding_summary([
        inv(1, "100", due=AS_OF - timedelta(days=5)),
        inv(2, "200", paid="50", due=AS_OF + timedelta(days=7)),
        inv(3, "300", due=AS_OF + timedelta(days=20)),
    ], AS_OF)
    assert summary["total_balance"] == D("550")
    assert summary["overdue_count"] == 1 and summary["overdue_amount"] == D("100")
    assert summary["due_soon_count"] == 1 and summary["due_soon_amount"] == D("150")


def test_outstanding_by_program_largest_balance_first():
    rows = agg.outstanding_by_program([
        inv(1, "100", paid="40", program_code="WEB101"),
        inv(2, "300", program_code="DATA201"),
        inv(3, "200", paid="100", program_code="WEB101"),
        inv(4, "50", program_code=None),
    ])
    assert list(rows) == ["DATA201", "WEB101", "unassigned"]
    assert rows["WEB101"] == {
        "invoice_count": 2,
        "total_amount": D("300"),
        "total_paid": D("140"),
        "total_balance": D("160"),
        "avg_balance": D("80"),
    }


# -- payer rankings -------------------------------------------------------------

def test_late_payers_rank_by_overdue_total():
    invoices = [
        inv(1, "100", due=AS_OF - timedelta(days=10), student_id=7),
        inv(2, "500", due=AS_OF - timedelta(days=40), student_id=8),
        inv(3, "100", due=AS_OF - timedelta(days=20), student_id=7),
        inv(4, "900", due=AS_OF + timedelta(days=3), student_id=9),
    ]
    ranking = agg.late_payer_ranking(invoices, AS_OF)
    assert [r["student_id"] for r in ranking] == [8, 7]
    assert ranking[1]["total_overdue"] == D("200")
    assert ranking[1]["avg_days_late"] == D("15")
    assert ranking[1]["max_days_late"] == 20


def test_prompt_payers_need_two_payments():
    invoices = [inv(1, "100", due=date(2025, 6, 20)), inv(2, "100", due=date(2025, 6, 25), student_id=2)]
    payments = [
        pay(1, "100", day=date(2025, 6, 10), invoice_id=1, student_id=1),
        pay(2, "50", day=date(2025, 6, 5), invoice_id=2, student_id=2),
        pay(3, "50", day=date(2025, 6, 15), invoice_id=2, student_id=2),
    ]
    ranking = agg.prompt_payer_ranking(payments, invoices)
    assert [r["student_id"] for r in ranking] == [2]
    assert ranking[0]["avg_days_early"] == D("15")
    assert ranking[0]["payments_made"] == 2


def test_prompt_payers_earliest_first():
    invoices = [inv(1, "100", due=date(2025, 6, 20), student_id=1), inv(2, "100", due=date(2025, 6, 20), student_id=2)]
    payments = [
        pay(1, "50", day=date(2025, 6, 19), invoice_id=1, student_id=1),
        pay(2, "50", day=date(2025, 6, 18), invoice_id=1, student_id=1),
        pay(3, "50", day=date(2025, 6, 1), invoice_id=2, student_id=2),
        pay(4, "50", day=date(2025, 6, 25), invoice_id=2, student_id=2),
    ]
    ranking = agg.prompt_payer_ranking(payments, invoices)
    assert [r["student_id"] for r in ranking] == [2, 1]


# -- reconciliation and collection ------------------------------------------------

def test_reconciliation_keeps_fully_paid_invoices():
    rows = agg.reconcile_invoices(
        [inv(1, "5000", paid="5000"), inv(2, "300", paid="100")],
        [pay(1, "5000", invoice_id=1), pay(2, "60", invoice_id=2), pay(3, "40", invoice_id=2, status="failed")],
    )
    assert rows[0]["balance"] == 0 and rows[0]["difference"] == 0
    assert rows[1]["payments_received"] == D("60")
    assert rows[1]["difference"] == D("40")


def test_monthly_collection_most_recent_first():
    rows = agg.monthly_collection([
        pay(1, "10", day=date(2025, 4, 2)),
        pay(2, "30", day=date(2025, 6, 2), student_id=2),
        pay(3, "20", day=date(2025, 6, 9)),
    ])
    assert [r["month"] for r in rows] == ["2025-06", "2025-04"]
    assert rows[0]["active_students"] == 2
    assert rows[0]["min_collection"] == D("20") and rows[0]["max_collection"] == D("30")


def test_method_breakdown():
    rows = agg.method_breakdown([pay(1, "10", method="cash"), pay(2, "30", method="card"), pay(3, "5", method="card")])
    assert rows[0] == {
        "payment_method": "card",
        "transactions": 2,
        "total_amount": D("35"),
        "avg_amount": D("17.5"),
        "unique_payers": 1,
    }


# -- expenses, budgets and profit -------------------------------------------------

def test_only_approved_or_paid_expenses_are_realized():
    totals = agg.expense_totals([exp(1, 1, "100"), exp(2, 1, "50", status="approved"), exp(3, 1, "70", status="pending")])
    assert totals["total_expenses"] == D("150")
    assert totals["pending_expenses"] == D("70")
    assert totals["expense_count"] == 2


def test_budget_variance_uses_union_of_categories():
    variance = agg.budget_variance({1: D("450"), 3: D("50")}, {1: D("500"), 2: D("200")})
    assert variance == {1: D("50"), 3: D("-50"), 2: D("200")}


def test_expenses_by_category_percentages():
    categories = {1: CategoryRecord(1, "Rent", "fixed"), 2: CategoryRecord(2, "Tithe", "tithe")}
    rows = agg.expenses_by_category([exp(1, 1, "300"), exp(2, 2, "100")], categories)
    assert [r["name"] for r in rows] == ["Rent", "Tithe"]
    assert rows[0]["percentage"] == D("75")
    assert agg.category_type_total([exp(1, 1, "300"), exp(2, 2, "100")], categories, "tithe") == D("100")


def test_expense_breakdown_keeps_pending_and_names_unassigned():
    expenses = [
        ExpenseRecord(1, 1, D("300"), date(2025, 6, 1), "paid", payment_method="bank_transfer"),
        ExpenseRecord(2, 1, D("80"), date(2025, 6, 2), "pending", payment_method="cash"),
        ExpenseRecord(3, 2, D("120"), date(2025, 6, 2), "approved"),
    ]
    by_method = agg.expense_breakdown(expenses, agg.by_method)
    assert [(r["key"], r["count"], r["total"]) for r in by_method] == [
        ("bank_transfer", 1, D("300")),
        ("unassigned", 1, D("120")),
        ("cash", 1, D("80")),
    ]
    by_status = agg.expense_breakdown(expenses, agg.by_status)
    assert sum(r["total"] for r in by_status) == D("500")
    assert agg.expense_daily_trend(expenses) == [(date(2025, 6, 1), D("300")), (date(2025, 6, 2), D("120"))]


def test_top_expenses_only_realized_largest_first():
    expenses = [exp(1, 1, "50"), exp(2, 1, "900", status="pending"), exp(3, 2, "400"), exp(4, 2, "400")]
    assert [e.id for e in agg.top_expenses(expenses)] == [3, 4, 1]
    assert [e.id for e in agg.top_expenses(expenses, limit=1)] == [3]


def test_top_revenue_sources_skip_service_payments():
    payments = [
        pay(1, "300", student_id=5, day=date(2025, 6, 3)),
        pay(2, "200", student_id=5, ttype="registration", day=date(2025, 6, 9)),
        pay(3, "400", student_id=6),
        pay(4, "999", student_id=7, ttype="service"),
        pay(5, "999", student_id=6, status="failed"),
    ]
    rows = agg.top_revenue_sources(payments)
    assert [(r["student_id"], r["total_paid"]) for r in rows] == [(5, D("500")), (6, D("400"))]
    assert rows[0]["transaction_count"] == 2
    assert rows[0]["last_payment"] == date(2025, 6, 9)


def test_profit_loss_with_zero_revenue_has_zero_margin():
    assert agg.profit_loss(D("0"), D("100")) == (D("-100"), D("0"))


def test_profit_loss_margin():
    net, margin = agg.profit_loss(D("1000"), D("750"))
    assert net == D("250") and margin == D("25")


def test_automated_deductions_skip_inactive():
    rows = agg.automated_deductions(D("2000"), [
        DeductionRecord("tithe", D("10")),
        DeductionRecord("reserve", D("5"), is_active=False),
    ])
    assert rows == [{"deduction_type": "tithe", "percentage": D("10"), "amount": D("200")}]


# -- per-student -----------------------------------------------------------------

def test_student_balance_and_financial_status():
    invoices = [
        inv(1, "1000", paid="1000", due=date(2025, 5, 1)),
        inv(2, "1000", paid="400", due=date(2025, 7, 10)),
        inv(3, "500", due=date(2025, 6, 1), class_id=2),
        inv(4, "300", status="cancelled", class_id=2),
    ]
    summary = agg.student_balance(invoices, [pay(1, "1400"), pay(2, "75", status="failed")], AS_OF)
    assert summary["balance"] == D("1100")
    assert summary["overdue_balance"] == D("500")
    assert summary["next_payment_due"] == date(2025, 6, 1)
    assert summary["payment_count"] == 1

    status = agg.recompute_financial_status(invoices)
    assert status[(1, 1)] == {
        "total_fee": D("2000"),
        "paid_amount": D("1400"),
        "balance": D("600"),
        "next_payment_due": date(2025, 7, 10),
    }
    assert status[(1, 2)]["total_fee"] == D("500")


def test_payment_state_of_cached_rows():
    def row(balance, paid="0", due=None):
        return StatusRecord(1, 1, D("500"), D(paid), D(balance), next_payment_due=due)

    assert agg.payment_state(row("0", paid="500"), AS_OF) == "cleared"
    assert agg.payment_state(row("500", due=AS_OF - timedelta(days=1)), AS_OF) == "overdue"
    assert agg.payment_state(row("300", paid="200", due=AS_OF), AS_OF) == "partial"
    assert agg.payment_state(row("500", due=AS_OF + timedelta(days=9)), AS_OF) == "pending"
