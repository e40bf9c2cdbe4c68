import os
import sys
from datetime import date, datetime
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Must be set before config.py is imported
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ["ENFORCE_HTTPS"] = "0"
os.environ["SESSION_COOKIE_SECURE"] = "0"
os.environ["DISABLE_RATE_LIMITING"] = "1"
os.environ["LEDGER_RETRY_BACKOFF"] = "0"

from app import app as flask_app  # noqa: E402
from extensions import db  # noqa: E402
from models import (  # noqa: E402
    AutomatedDeduction,
    ExpenseBudget,
    ExpenseCategory,
    ExpenseRecord,
    Invoice,
    PaymentRecord,
    Program,
    Student,
)

TODAY = date(2025, 3, 15)


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True, REPORT_INVERTED_RANGE="empty")
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(client):
    with client.session_transaction() as sess:
        sess["admin_logged_in"] = True
    return client


def login_student(client, student_id):
    with client.session_transaction() as sess:
        sess["student_logged_in"] = True
        sess["student_id"] = student_id
    return client


def _at(day, hour=10):
    return datetime.combine(day, datetime.min.time()).replace(hour=hour)


@pytest.fixture
def ledger(app):
    """A small ledger as of 2025-03-15.

    March completed revenue is 650 (400 + 200 + 50); realized March
    expenses are 620 (450 + 120 + 50).
    """
    db.session.add_all([
        Program(program_code="WEB101", name="Web Development", program_type="onsite"),
        Program(program_code="DATA201", name="Data Analysis", program_type="online"),
        Student(id=1, first_name="Ada", last_name="Okafor", email="ada@example.com"),
        Student(id=2, first_name="Chidi", last_name="Eze"),
        Student(id=3, first_name="Bisi", last_name="Bello"),
    ])
    db.session.flush()

    db.session.add_all([
        Invoice(id=1, invoice_number="INV-1", student_id=1, class_id=1, program_code="WEB101",
                amount=Decimal("1000"), paid_amount=Decimal("1000"), due_date=date(2025, 3, 1),
                status="paid", created_at=_at(date(2025, 2, 1))),
        Invoice(id=2, invoice_number="INV-2", student_id=1, class_id=1, program_code="WEB101",
                amount=Decimal("1000"), paid_amount=Decimal("400"), due_date=date(2025, 3, 20),
                status="partial", created_at=_at(date(2025, 2, 1))),
        Invoice(id=3, invoice_number="INV-3", student_id=2, class_id=2, program_code="DATA201",
                amount=Decimal("500"), paid_amount=Decimal("0"), due_date=date(2025, 2, 10),
                status="pending", created_at=_at(date(2025, 1, 15))),
        Invoice(id=4, invoice_number="INV-4", student_id=3, class_id=2, program_code="DATA201",
                amount=Decimal("800"), paid_amount=Decimal("200"), due_date=date(2025, 3, 5),
                status="partial", created_at=_at(date(2025, 3, 1))),
        Invoice(id=5, invoice_number="INV-5", student_id=3, class_id=2, program_code="DATA201",
                amount=Decimal("300"), paid_amount=Decimal("0"), due_date=date(2025, 3, 10),
                status="cancelled", created_at=_at(date(2025, 3, 1))),
    ])
    db.session.flush()

    db.session.add_all([
        PaymentRecord(id=1, student_id=1, amount=Decimal("1000"), payment_method="bank_transfer",
                      status="completed", transaction_type="tuition", created_at=_at(date(2025, 2, 20)),
                      program_code="WEB101", class_id=1, invoice_id=1),
        PaymentRecord(id=2, student_id=1, amount=Decimal("400"), payment_method="card",
                      status="completed", transaction_type="tuition", created_at=_at(date(2025, 3, 10), 9),
                      program_code="WEB101", class_id=1, invoice_id=2),
        PaymentRecord(id=3, student_id=3, amount=Decimal("200"), payment_method="cash",
                      status="completed", transaction_type="tuition", created_at=_at(date(2025, 3, 3), 12),
                      program_code="DATA201", class_id=2, invoice_id=4),
        PaymentRecord(id=4, student_id=2, amount=Decimal("150"), payment_method="card",
                      status="pending", transaction_type="tuition", created_at=_at(date(2025, 3, 4)),
                      program_code="DATA201", class_id=2),
        PaymentRecord(id=5, student_id=2, amount=Decimal("50"), payment_method="cash",
                      status="completed", transaction_type="registration", created_at=_at(date(2025, 3, 2), 8)),
        PaymentRecord(id=6, student_id=1, amount=Decimal("75"), payment_method="paystack",
                      status="failed", transaction_type="service", created_at=_at(date(2025, 3, 12))),
    ])

    db.session.add_all([
        ExpenseCategory(id=1, name="Rent", category_type="fixed", budget_amount=Decimal("500")),
        ExpenseCategory(id=2, name="Utilities", category_type="operational"),
        ExpenseCategory(id=3, name="Tithe", category_type="tithe"),
    ])
    db.session.flush()
    db.session.add_all([
        ExpenseBudget(category_id=2, period_start=date(2025, 3, 1), period_end=date(2025, 3, 31),
                      budget_amount=Decimal("200")),
        ExpenseRecord(id=1, category_id=1, amount=Decimal("450"), payment_date=date(2025, 3, 5), status="paid"),
        ExpenseRecord(id=2, category_id=2, amount=Decimal("120"), payment_date=date(2025, 3, 7), status="approved"),
        ExpenseRecord(id=3, category_id=2, amount=Decimal("80"), payment_date=date(2025, 3, 9), status="pending"),
        ExpenseRecord(id=4, category_id=1, amount=Decimal("999"), payment_date=date(2025, 3, 10), status="cancelled"),
        ExpenseRecord(id=5, category_id=3, amount=Decimal("50"), payment_date=date(2025, 3, 11), status="paid"),
        ExpenseRecord(id=6, category_id=1, amount=Decimal("300"), payment_date=date(2025, 2, 15), status="paid"),
        AutomatedDeduction(deduction_type="tithe", percentage=Decimal("10"), is_active=True),
        AutomatedDeduction(deduction_type="reserve", percentage=Decimal("5"), is_active=False),
    ])
    db.session.commit()
    return TODAY
