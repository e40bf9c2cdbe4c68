from datetime import datetime

from extensions import db


PROGRAM_TYPES = ("online", "onsite", "service")
PAYMENT_METHODS = ("cash", "bank_transfer", "card", "paystack", "flutterwave", "pos", "mobile_money", "other")
PAYMENT_STATUSES = ("completed", "pending", "failed", "refunded", "cancelled")
TRANSACTION_TYPES = ("registration", "tuition", "service")
INVOICE_STATUSES = ("pending", "partial", "paid", "overdue", "cancelled")
EXPENSE_STATUSES = ("pending", "approved", "paid", "cancelled")
CATEGORY_TYPES = ("operational", "fixed", "variable", "tithe", "reserve", "other")


class Program(db.Model):
    __tablename__ = 'programs'

    program_code = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    program_type = db.Column(db.String(16), nullable=False, default='online')

    def __repr__(self):
        return f'<Program {self.program_code} ({self.program_type})>'


class Student(db.Model):
    __tablename__ = 'students'

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=True)
    email = db.Column(db.String(190), nullable=True)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def __repr__(self):
        return f'<Student {self.full_name}>'


class PaymentRecord(db.Model):
    __tablename__ = 'financial_transactions'
    __table_args__ = (
        db.Index('idx_ft_status_created', 'status', 'created_at'),
        db.Index('idx_ft_student', 'student_id'),
    )

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    payment_method = db.Column(db.String(32), nullable=False, default='cash')
    status = db.Column(db.String(16), nullable=False, default='pending')
    transaction_type = db.Column(db.String(16), nullable=False, default='tuition')
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    program_code = db.Column(db.String(32), db.ForeignKey('programs.program_code'), nullable=True)
    class_id = db.Column(db.Integer, nullable=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoices.id'), nullable=True)

    program = db.relationship('Program')

    def __repr__(self):
        return f'<PaymentRecord {self.id} {self.status} {self.amount}>'


class Invoice(db.Model):
    __tablename__ = 'invoices'
    __table_args__ = (
        db.Index('idx_invoice_due', 'due_date'),
        db.Index('idx_invoice_student', 'student_id'),
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(40), nullable=True, unique=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False)
    class_id = db.Column(db.Integer, nullable=True)
    program_code = db.Column(db.String(32), db.ForeignKey('programs.program_code'), nullable=True)
    invoice_type = db.Column(db.String(40), nullable=False, default='tuition')
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    due_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default='pending')
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    program = db.relationship('Program')

    def __repr__(self):
        return f'<Invoice {self.invoice_number or self.id} {self.status}>'


class ExpenseCategory(db.Model):
    __tablename__ = 'expense_categories'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    category_type = db.Column(db.String(16), nullable=False, default='operational')
    budget_amount = db.Column(db.Numeric(12, 2), nullable=True)


class ExpenseBudget(db.Model):
    __tablename__ = 'expense_budgets'

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey('expense_categories.id'), nullable=False)
    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)
    budget_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)


class ExpenseRecord(db.Model):
    __tablename__ = 'expenses'
    __table_args__ = (
        db.Index('idx_expense_status_date', 'status', 'payment_date'),
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey('expense_categories.id'), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    payment_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default='pending')
    vendor_name = db.Column(db.String(150), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)

    category = db.relationship('ExpenseCategory')


class AutomatedDeduction(db.Model):
    __tablename__ = 'automated_deductions'

    id = db.Column(db.Integer, primary_key=True)
    deduction_type = db.Column(db.String(16), nullable=False)
    percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)


class StudentFinancialStatus(db.Model):
    """Cached per-class balance; invoices remain the source of truth."""

    __tablename__ = 'student_financial_status'

    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), primary_key=True)
    class_id = db.Column(db.Integer, primary_key=True)
    total_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    is_suspended = db.Column(db.Boolean, nullable=False, default=False)
    next_payment_due = db.Column(db.Date, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True)
    user_role = db.Column(db.String(64), nullable=True)
    action = db.Column(db.String(100), nullable=False, index=True)
    target = db.Column(db.String(100), nullable=True)
    detail = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
