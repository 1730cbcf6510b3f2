"""Domain models - pure Python dataclasses representing business entities"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from lendit_gateway.domain.exceptions import InvalidTermsError


class AgreementStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    FUNDED = "funded"
    COMPLETED = "completed"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"

    @property
    def is_terminal(self) -> bool:
        return self in (AgreementStatus.COMPLETED, AgreementStatus.REJECTED, AgreementStatus.WITHDRAWN)


class AgreementKind(str, Enum):
    OFFER = "offer"  # lender-initiated, borrower unset
    REQUEST = "request"  # borrower-initiated, lender unset


class Role(str, Enum):
    LENDER = "lender"
    BORROWER = "borrower"


class PaymentMethod(str, Enum):
    UPI = "upi"
    BANK = "bank"
    WALLET = "wallet"
    CRYPTO = "crypto"
    CASH = "cash"


class TransactionKind(str, Enum):
    DISBURSEMENT = "disbursement"
    REPAYMENT = "repayment"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Actor:
    """Authenticated party performing an action, with the role it acts in"""

    party_id: str
    role: Role
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class Contact:
    """Counterparty contact details for a not-yet-registered party"""

    name: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class LoanTerms:
    """Principal, annual rate (percent) and duration of a loan"""

    amount: Decimal
    interest_rate: Decimal
    duration_months: int

    def __post_init__(self):
        if self.amount <= 0:
            raise InvalidTermsError(f"Loan amount must be positive, got {self.amount}")
        if self.interest_rate < 0:
            raise InvalidTermsError(f"Interest rate cannot be negative, got {self.interest_rate}")
        if self.duration_months < 1:
            raise InvalidTermsError(f"Duration must be at least one month, got {self.duration_months}")


@dataclass(frozen=True)
class LoanConditions:
    """Structured borrower-supplied details attached to an agreement"""

    description: Optional[str] = None
    collateral: Optional[str] = None
    monthly_income: Optional[Decimal] = None
    employment_status: Optional[str] = None
    credit_score: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "collateral": self.collateral,
            "monthly_income": str(self.monthly_income) if self.monthly_income is not None else None,
            "employment_status": self.employment_status,
            "credit_score": self.credit_score,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["LoanConditions"]:
        if not data:
            return None
        income = data.get("monthly_income")
        return cls(
            description=data.get("description"),
            collateral=data.get("collateral"),
            monthly_income=Decimal(income) if income is not None else None,
            employment_status=data.get("employment_status"),
            credit_score=data.get("credit_score"),
        )


@dataclass
class LoanAgreement:
    """Loan offer or request and its lifecycle state"""

    id: uuid.UUID
    kind: AgreementKind
    amount: Decimal
    interest_rate: Decimal
    duration_months: int
    status: AgreementStatus
    payment_method: PaymentMethod
    created_at: datetime
    updated_at: datetime
    lender_id: Optional[str] = None
    borrower_id: Optional[str] = None
    lender_name: Optional[str] = None
    lender_email: Optional[str] = None
    borrower_name: Optional[str] = None
    borrower_email: Optional[str] = None
    purpose: Optional[str] = None
    conditions: Optional[LoanConditions] = None
    smart_contract: bool = False
    accepted_at: Optional[datetime] = None
    funded_at: Optional[datetime] = None
    version: int = 0  # bumped by every conditional update

    @property
    def terms(self) -> LoanTerms:
        return LoanTerms(
            amount=self.amount,
            interest_rate=self.interest_rate,
            duration_months=self.duration_months,
        )


@dataclass
class Transaction:
    """Disbursement or repayment recorded against an agreement"""

    id: uuid.UUID
    agreement_id: uuid.UUID
    kind: TransactionKind
    amount: Decimal
    payment_method: PaymentMethod
    status: TransactionStatus
    created_at: datetime
    reference: Optional[str] = None


@dataclass(frozen=True)
class RepaymentPolicy:
    """Tunable repayment rules, built from settings and passed to services"""

    grace_period_days: int = 7
    overpayment_tolerance: Decimal = Decimal("0.01")


@dataclass(frozen=True)
class LoanQuote:
    """Canonical repayment figures for a set of terms"""

    monthly_payment: Decimal
    total_repayment: Decimal
    total_interest: Decimal


@dataclass(frozen=True)
class ScheduledPayment:
    """Single period in an amortization schedule"""

    number: int
    payment: Decimal
    principal: Decimal
    interest: Decimal
    remaining_balance: Decimal
    due_date: Optional[date] = None


@dataclass(frozen=True)
class LedgerPosition:
    """Paid-to-date figures derived from an agreement's transactions"""

    total_repayment: Decimal
    amount_paid: Decimal
    amount_pending: Decimal
    remaining_balance: Decimal
    progress_percent: Decimal
    settled: bool


@dataclass(frozen=True)
class DueStatus:
    """Next unmet due date and overdue flags at a point in time"""

    next_due_date: Optional[date]
    days_until_due: Optional[int]
    overdue: bool
    grace_period_exceeded: bool
    periods_covered: int


@dataclass(frozen=True)
class RepaymentSummary:
    """Everything a repayment screen, dashboard or contract needs"""

    agreement_id: uuid.UUID
    status: AgreementStatus
    monthly_payment: Decimal
    total_repayment: Decimal
    amount_paid: Decimal
    remaining_balance: Decimal
    progress_percent: Decimal
    next_due_date: Optional[date]
    days_until_due: Optional[int]
    overdue: bool
    grace_period_exceeded: bool


@dataclass
class PaymentReceipt:
    """Outcome of recording a repayment"""

    agreement: LoanAgreement
    transaction: Transaction
    position: LedgerPosition
    completed: bool = False
