"""Plain, immutable views of ledger rows handed to the aggregation engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

ZERO = Decimal("0")


@dataclass(frozen=True)
class PaymentRecord:
    id: int
    student_id: int
    amount: Decimal
    payment_method: str
    status: str
    transaction_type: str
    created_at: datetime
    program_code: Optional[str] = None
    program_type: Optional[str] = None
    class_id: Optional[int] = None
    invoice_id: Optional[int] = None

    @property
    def payment_date(self) -> date:
        return self.created_at.date() if isinstance(self.created_at, datetime) else self.created_at


@dataclass(frozen=True)
class InvoiceRecord:
    id: int
    student_id: int
    amount: Decimal
    paid_amount: Decimal
    due_date: date
    status: str
    created_at: Optional[datetime] = None
    class_id: Optional[int] = None
    program_code: Optional[str] = None
    program_type: Optional[str] = None
    invoice_type: str = "tuition"
    invoice_number: Optional[str] = None

    @property
    def balance(self) -> Decimal:
        # Over-payments are credits elsewhere, never a negative balance here
        return max(self.amount - self.paid_amount, ZERO)


@dataclass(frozen=True)
class ExpenseRecord:
    id: int
    category_id: int
    amount: Decimal
    payment_date: date
    status: str
    vendor_name: Optional[str] = None
    payment_method: Optional[str] = None


@dataclass(frozen=True)
class CategoryRecord:
    id: int
    name: str
    category_type: str
    budget_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class DeductionRecord:
    deduction_type: str
    percentage: Decimal
    is_active: bool = True


@dataclass(frozen=True)
class StatusRecord:
    student_id: int
    class_id: int
    total_fee: Decimal
    paid_amount: Decimal
    balance: Decimal
    is_suspended: bool = False
    next_payment_due: Optional[date] = None
