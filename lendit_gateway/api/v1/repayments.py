"""Repayment endpoints - payments, gateway settlement, summaries, schedules"""

import uuid

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from lendit_gateway.api.dependencies import get_agreement_service
from lendit_gateway.api.errors import illegal_transition_response
from lendit_gateway.api.v1.schemas import (
    AgreementResponse,
    DueStatusResponse,
    OverdueCheckRequest,
    PaymentRequest,
    PaymentResponse,
    RepaymentSummaryResponse,
    ScheduleResponse,
    ScheduledPaymentSchema,
    SettlementRequest,
    TransactionListResponse,
    TransactionResponse,
)
from lendit_gateway.domain.agreements import AgreementService
from lendit_gateway.domain.amortization import to_money
from lendit_gateway.domain.exceptions import IllegalTransition
from lendit_gateway.domain.models import Role
from lendit_gateway.infrastructure.database.session import get_db

router = APIRouter()


@router.post("/agreements/{agreement_id}/payments", response_model=PaymentResponse, status_code=201)
def record_payment(
    agreement_id: uuid.UUID,
    body: PaymentRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    service: AgreementService = Depends(get_agreement_service),
):
    """
    Record a borrower repayment.

    The agreement moves to completed in the same request once the total
    repayment is covered. A payment against an agreement that turns out to be
    fully repaid completes it and is then refused with 409; the Completed
    event still goes out with that response.
    """
    try:
        receipt = service.record_payment(
            agreement_id,
            body.borrower.to_actor(Role.BORROWER),
            body.amount,
            body.payment_method,
            reference=body.reference,
            confirmed=body.confirmed,
        )
    except IllegalTransition as exc:
        # A fully repaid agreement is completed before the payment is refused
        db.commit()
        return illegal_transition_response(request, exc, background=background_tasks)
    db.commit()

    return PaymentResponse(
        agreement=AgreementResponse.from_domain(receipt.agreement),
        transaction=TransactionResponse.from_domain(receipt.transaction),
        completed=receipt.completed,
        amount_paid=to_money(receipt.position.amount_paid),
        remaining_balance=to_money(receipt.position.remaining_balance),
        progress_percent=to_money(receipt.position.progress_percent),
    )


@router.get("/agreements/{agreement_id}/transactions", response_model=TransactionListResponse)
def list_transactions(agreement_id: uuid.UUID, service: AgreementService = Depends(get_agreement_service)):
    transactions = service.list_transactions(agreement_id)
    return TransactionListResponse(
        agreement_id=str(agreement_id),
        transactions=[TransactionResponse.from_domain(t) for t in transactions],
    )


@router.post("/transactions/{transaction_id}/settlement", response_model=AgreementResponse)
def settle_transaction(
    transaction_id: uuid.UUID,
    body: SettlementRequest,
    db: Session = Depends(get_db),
    service: AgreementService = Depends(get_agreement_service),
):
    """Payment gateway reports the final outcome of a pending transaction"""
    agreement = service.settle_transaction(transaction_id, body.outcome)
    db.commit()
    return AgreementResponse.from_domain(agreement)


@router.get("/agreements/{agreement_id}/repayment-summary", response_model=RepaymentSummaryResponse)
def get_repayment_summary(agreement_id: uuid.UUID, service: AgreementService = Depends(get_agreement_service)):
    """Monthly payment, total, paid-to-date and due status in one place"""
    return RepaymentSummaryResponse.from_domain(service.get_repayment_summary(agreement_id))


@router.get("/agreements/{agreement_id}/schedule", response_model=ScheduleResponse)
def get_schedule(agreement_id: uuid.UUID, service: AgreementService = Depends(get_agreement_service)):
    payments = service.get_schedule(agreement_id)
    return ScheduleResponse(
        agreement_id=str(agreement_id),
        payments=[ScheduledPaymentSchema.from_domain(p) for p in payments],
    )


@router.post("/agreements/{agreement_id}/overdue-check", response_model=DueStatusResponse)
def check_overdue(
    agreement_id: uuid.UUID,
    body: OverdueCheckRequest,
    service: AgreementService = Depends(get_agreement_service),
):
    """Evaluate due status; an overdue agreement triggers a reminder event"""
    due = service.check_overdue(agreement_id, today=body.today)
    return DueStatusResponse.from_domain(str(agreement_id), due)
