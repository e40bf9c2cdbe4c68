"""
Seed demo programs, students, invoices, payments and expenses.

  python scripts/seed_finance_data.py --students 40 --months 6
  python scripts/seed_finance_data.py --create-tables --seed 7

Amounts are random but reproducible for a given --seed.
"""

from __future__ import annotations

import argparse
import os
import random
import sys
from datetime import date, datetime, time, timedelta
from decimal import Decimal

# Ensure project root is importable when running from scripts/
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app import app  # type: ignore  # noqa: E402
from extensions import db  # type: ignore  # noqa: E402
from models import (  # type: ignore  # noqa: E402
    PAYMENT_METHODS,
    AutomatedDeduction,
    ExpenseCategory,
    ExpenseRecord,
    Invoice,
    PaymentRecord,
    Program,
    Student,
)

PROGRAMS = [
    ("WEB101", "Web Development Bootcamp", "onsite", Decimal("250000")),
    ("DATA201", "Data Analysis Online", "online", Decimal("180000")),
    ("UIUX110", "Product Design", "online", Decimal("150000")),
    ("CONS01", "Career Consulting", "service", Decimal("40000")),
]
CATEGORIES = [
    ("Rent", "fixed", Decimal("400000")),
    ("Instructor stipends", "variable", Decimal("600000")),
    ("Internet & utilities", "operational", Decimal("120000")),
    ("Tithe", "tithe", None),
    ("Reserve fund", "reserve", None),
]
FIRST_NAMES = ["Ada", "Chidi", "Ngozi", "Tunde", "Bisi", "Emeka", "Zainab", "Kemi", "Ifeanyi", "Musa"]
LAST_NAMES = ["Okafor", "Adeyemi", "Bello", "Eze", "Ogunleye", "Nwosu", "Danjuma", "Afolabi"]


def _money(value: float) -> Decimal:
    return Decimal(str(round(value, 2)))


def seed(students: int = 40, months: int = 6, rng: random.Random | None = None, today: date | None = None) -> dict:
    """Insert a demo ledger ending at ``today``; returns row counts."""
    rng = rng or random.Random()
    today = today or date.today()
    counts = {"students": 0, "invoices": 0, "payments": 0, "expenses": 0}

    for code, name, ptype, _fee in PROGRAMS:
        if db.session.get(Program, code) is None:
            db.session.add(Program(program_code=code, name=name, program_type=ptype))
    categories = []
    for name, ctype, budget in CATEGORIES:
        cat = ExpenseCategory.query.filter_by(name=name).first()
        if cat is None:
            cat = ExpenseCategory(name=name, category_type=ctype, budget_amount=budget)
            db.session.add(cat)
        categories.append(cat)
    if not AutomatedDeduction.query.first():
        db.session.add(AutomatedDeduction(deduction_type="tithe", percentage=Decimal("10"), is_active=True))
        db.session.add(AutomatedDeduction(deduction_type="reserve", percentage=Decimal("5"), is_active=True))
    db.session.flush()

    start = today - timedelta(days=30 * months)
    for n in range(students):
        student = Student(first_name=rng.choice(FIRST_NAMES), last_name=rng.choice(LAST_NAMES))
        student.email = f"{student.first_name.lower()}.{n}@example.com"
        db.session.add(student)
        db.session.flush()
        counts["students"] += 1

        idx = rng.randrange(len(PROGRAMS))
        code, _name, ptype, fee = PROGRAMS[idx]
        class_id = idx + 1
        enrolled = start + timedelta(days=rng.randint(0, max(30 * months - 30, 1)))
        instalments = 1 if ptype == "service" else rng.choice((1, 2, 3))
        share = (fee / instalments).quantize(Decimal("0.01"))
        for i in range(instalments):
            due = enrolled + timedelta(days=30 * i + 14)
            inv = Invoice(
                invoice_number=f"INV-{student.id:05d}-{i + 1}",
                student_id=student.id,
                class_id=class_id,
                program_code=code,
                invoice_type="service" if ptype == "service" else "tuition",
                amount=share,
                due_date=due,
                created_at=datetime.combine(enrolled, time(9, 0)),
            )
            roll = rng.random()
            if roll < 0.55:
                paid = share
            elif roll < 0.8:
                paid = _money(float(share) * rng.uniform(0.2, 0.8))
            else:
                paid = Decimal("0")
            inv.paid_amount = paid
            inv.status = "paid" if paid >= share else ("partial" if paid > 0 else "pending")
            db.session.add(inv)
            db.session.flush()
            counts["invoices"] += 1

            if paid > 0:
                pay_day = min(due + timedelta(days=rng.randint(-10, 12)), today)
                db.session.add(PaymentRecord(
                    student_id=student.id,
                    amount=paid,
                    payment_method=rng.choice(PAYMENT_METHODS),
                    status="completed",
                    transaction_type="service" if ptype == "service" else "tuition",
                    created_at=datetime.combine(pay_day, time(rng.randint(8, 17), rng.randint(0, 59))),
                    program_code=code,
                    class_id=class_id,
                    invoice_id=inv.id,
                ))
                counts["payments"] += 1

        if ptype != "service":
            db.session.add(PaymentRecord(
                student_id=student.id,
                amount=Decimal("5000"),
                payment_method=rng.choice(PAYMENT_METHODS),
                status=rng.choice(("completed", "completed", "completed", "pending", "failed")),
                transaction_type="registration",
                created_at=datetime.combine(enrolled, time(8, 30)),
                program_code=code,
                class_id=class_id,
            ))
            counts["payments"] += 1

    for m in range(months):
        day = start + timedelta(days=30 * m + 1)
        for cat in categories:
            if cat.category_type in ("tithe", "reserve"):
                continue
            base = float(cat.budget_amount or 50000)
            db.session.add(ExpenseRecord(
                category_id=cat.id,
                amount=_money(base * rng.uniform(0.7, 1.15)),
                payment_date=day + timedelta(days=rng.randint(0, 20)),
                status=rng.choice(("paid", "paid", "approved", "pending")),
                vendor_name=f"{cat.name} vendor",
                payment_method="bank_transfer",
            ))
            counts["expenses"] += 1

    db.session.commit()
    return counts


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="Seed a demo tuition finance ledger")
    p.add_argument("--students", type=int, default=40, help="Number of students to create (default 40)")
    p.add_argument("--months", type=int, default=6, help="How many months of history (default 6)")
    p.add_argument("--seed", type=int, default=None, help="Random seed for reproducible data")
    p.add_argument("--create-tables", action="store_true", help="Run db.create_all() first")
    args = p.parse_args(argv)

    with app.app_context():
        if args.create_tables:
            db.create_all()
        stats = seed(students=args.students, months=args.months, rng=random.Random(args.seed))
    print("Seeded:", ", ".join(f"{k}={v}" for k, v in stats.items()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
