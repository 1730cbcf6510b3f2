"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from lendit_gateway.domain.amortization import to_money
from lendit_gateway.domain.models import (
    Actor,
    AgreementKind,
    AgreementStatus,
    Contact,
    DueStatus,
    LoanAgreement,
    LoanConditions,
    LoanQuote,
    LoanTerms,
    PaymentMethod,
    RepaymentSummary,
    Role,
    ScheduledPayment,
    Transaction,
    TransactionKind,
    TransactionStatus,
)


class ActorSchema(BaseModel):
    """Acting party; the role is implied by the endpoint"""

    party_id: str = Field(..., min_length=1, description="Authenticated user identifier")
    name: Optional[str] = None
    email: Optional[str] = None

    def to_actor(self, role: Role) -> Actor:
        return Actor(party_id=self.party_id, role=role, name=self.name, email=self.email)


class ContactSchema(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class TermsSchema(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=18, decimal_places=2, description="Principal")
    interest_rate: Decimal = Field(
        Decimal("0"), ge=0, max_digits=7, decimal_places=4, description="Annual interest rate in percent"
    )
    duration_months: int = Field(..., ge=1, le=360)

    def to_domain(self) -> LoanTerms:
        return LoanTerms(
            amount=self.amount,
            interest_rate=self.interest_rate,
            duration_months=self.duration_months,
        )


class ConditionsSchema(BaseModel):
    """Optional structured details a borrower attaches to a request"""

    description: Optional[str] = None
    collateral: Optional[str] = None
    monthly_income: Optional[Decimal] = Field(None, ge=0)
    employment_status: Optional[str] = None
    credit_score: Optional[int] = Field(None, ge=0)

    def to_domain(self) -> LoanConditions:
        return LoanConditions(**self.model_dump())


class CreateOfferRequest(BaseModel):
    """Request body for POST /v1/agreements/offers"""

    lender: ActorSchema
    borrower: ContactSchema
    terms: TermsSchema
    payment_method: PaymentMethod = PaymentMethod.UPI
    purpose: Optional[str] = None
    conditions: Optional[ConditionsSchema] = None
    smart_contract: bool = False


class CreateLoanRequest(BaseModel):
    """Request body for POST /v1/agreements/requests"""

    borrower: ActorSchema
    terms: TermsSchema
    payment_method: PaymentMethod = PaymentMethod.UPI
    purpose: Optional[str] = None
    conditions: Optional[ConditionsSchema] = None
    smart_contract: bool = False


class ActionRequest(BaseModel):
    """Body for claim/accept/reject/withdraw"""

    actor: ActorSchema


class FundRequest(BaseModel):
    lender: ActorSchema
    payment_method: Optional[PaymentMethod] = None
    reference: Optional[str] = None


class PaymentRequest(BaseModel):
    """Request body for POST /v1/agreements/{id}/payments"""

    borrower: ActorSchema
    amount: Decimal = Field(..., max_digits=18, decimal_places=2)
    payment_method: PaymentMethod
    reference: Optional[str] = None
    confirmed: bool = Field(True, description="False when the gateway will report the outcome later")


class SettlementRequest(BaseModel):
    """Payment gateway callback body"""

    outcome: TransactionStatus


class OverdueCheckRequest(BaseModel):
    today: Optional[date] = None


class QuoteRequest(BaseModel):
    terms: TermsSchema
    include_schedule: bool = False


class AgreementResponse(BaseModel):
    id: str
    kind: AgreementKind
    status: AgreementStatus
    lender_id: Optional[str]
    borrower_id: Optional[str]
    lender_name: Optional[str]
    lender_email: Optional[str]
    borrower_name: Optional[str]
    borrower_email: Optional[str]
    amount: Decimal
    interest_rate: Decimal
    duration_months: int
    purpose: Optional[str]
    conditions: Optional[ConditionsSchema]
    payment_method: PaymentMethod
    smart_contract: bool
    created_at: datetime
    updated_at: datetime
    accepted_at: Optional[datetime]
    funded_at: Optional[datetime]

    @classmethod
    def from_domain(cls, agreement: LoanAgreement) -> "AgreementResponse":
        conditions = agreement.conditions
        return cls(
            id=str(agreement.id),
            kind=agreement.kind,
            status=agreement.status,
            lender_id=agreement.lender_id,
            borrower_id=agreement.borrower_id,
            lender_name=agreement.lender_name,
            lender_email=agreement.lender_email,
            borrower_name=agreement.borrower_name,
            borrower_email=agreement.borrower_email,
            amount=to_money(agreement.amount),
            interest_rate=agreement.interest_rate,
            duration_months=agreement.duration_months,
            purpose=agreement.purpose,
            conditions=ConditionsSchema(**conditions.to_dict()) if conditions else None,
            payment_method=agreement.payment_method,
            smart_contract=agreement.smart_contract,
            created_at=agreement.created_at,
            updated_at=agreement.updated_at,
            accepted_at=agreement.accepted_at,
            funded_at=agreement.funded_at,
        )


class MarketplaceResponse(BaseModel):
    """Response for GET /v1/marketplace/requests"""

    requests: List[AgreementResponse]


class ClaimResponse(BaseModel):
    """Claim/accept outcome; already_claimed is returned with 409"""

    outcome: str
    message: str
    agreement: Optional[AgreementResponse] = None


class TransactionResponse(BaseModel):
    id: str
    agreement_id: str
    kind: TransactionKind
    amount: Decimal
    payment_method: PaymentMethod
    reference: Optional[str]
    status: TransactionStatus
    created_at: datetime

    @classmethod
    def from_domain(cls, transaction: Transaction) -> "TransactionResponse":
        return cls(
            id=str(transaction.id),
            agreement_id=str(transaction.agreement_id),
            kind=transaction.kind,
            amount=transaction.amount,
            payment_method=transaction.payment_method,
            reference=transaction.reference,
            status=transaction.status,
            created_at=transaction.created_at,
        )


class TransactionListResponse(BaseModel):
    agreement_id: str
    transactions: List[TransactionResponse]


class PaymentResponse(BaseModel):
    """Response for POST /v1/agreements/{id}/payments"""

    agreement: AgreementResponse
    transaction: TransactionResponse
    completed: bool
    amount_paid: Decimal
    remaining_balance: Decimal
    progress_percent: Decimal


class RepaymentSummaryResponse(BaseModel):
    """Response for GET /v1/agreements/{id}/repayment-summary"""

    agreement_id: str
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

    @classmethod
    def from_domain(cls, summary: RepaymentSummary) -> "RepaymentSummaryResponse":
        return cls(
            agreement_id=str(summary.agreement_id),
            status=summary.status,
            monthly_payment=to_money(summary.monthly_payment),
            total_repayment=to_money(summary.total_repayment),
            amount_paid=to_money(summary.amount_paid),
            remaining_balance=to_money(summary.remaining_balance),
            progress_percent=to_money(summary.progress_percent),
            next_due_date=summary.next_due_date,
            days_until_due=summary.days_until_due,
            overdue=summary.overdue,
            grace_period_exceeded=summary.grace_period_exceeded,
        )


class DueStatusResponse(BaseModel):
    """Response for POST /v1/agreements/{id}/overdue-check"""

    agreement_id: str
    next_due_date: Optional[date]
    days_until_due: Optional[int]
    overdue: bool
    grace_period_exceeded: bool
    periods_covered: int

    @classmethod
    def from_domain(cls, agreement_id: str, due: DueStatus) -> "DueStatusResponse":
        return cls(
            agreement_id=agreement_id,
            next_due_date=due.next_due_date,
            days_until_due=due.days_until_due,
            overdue=due.overdue,
            grace_period_exceeded=due.grace_period_exceeded,
            periods_covered=due.periods_covered,
        )


class ScheduledPaymentSchema(BaseModel):
    """Single period in an amortization schedule"""

    number: int
    due_date: Optional[date] = None
    payment: Decimal
    principal: Decimal
    interest: Decimal
    remaining_balance: Decimal

    @classmethod
    def from_domain(cls, item: ScheduledPayment) -> "ScheduledPaymentSchema":
        return cls(
            number=item.number,
            due_date=item.due_date,
            payment=item.payment,
            principal=item.principal,
            interest=item.interest,
            remaining_balance=item.remaining_balance,
        )


class ScheduleResponse(BaseModel):
    agreement_id: str
    payments: List[ScheduledPaymentSchema]


class QuoteResponse(BaseModel):
    """Response for POST /v1/quotes"""

    monthly_payment: Decimal
    total_repayment: Decimal
    total_interest: Decimal
    schedule: Optional[List[ScheduledPaymentSchema]] = None

    @classmethod
    def from_domain(cls, loan_quote: LoanQuote, schedule: Optional[List[ScheduledPayment]] = None) -> "QuoteResponse":
        return cls(
            monthly_payment=to_money(loan_quote.monthly_payment),
            total_repayment=to_money(loan_quote.total_repayment),
            total_interest=to_money(loan_quote.total_interest),
            schedule=[ScheduledPaymentSchema.from_domain(s) for s in schedule] if schedule is not None else None,
        )


def contact_from_schema(schema: ContactSchema) -> Contact:
    return Contact(name=schema.name, email=schema.email)
