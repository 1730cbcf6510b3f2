"""Agreement lifecycle endpoints - create, claim/accept, reject, withdraw, fund"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from lendit_gateway.api.dependencies import get_agreement_service
from lendit_gateway.api.errors import ALREADY_CLAIMED_MESSAGE
from lendit_gateway.api.v1.schemas import (
    ActionRequest,
    AgreementResponse,
    ClaimResponse,
    CreateLoanRequest,
    CreateOfferRequest,
    FundRequest,
    MarketplaceResponse,
    contact_from_schema,
)
from lendit_gateway.domain.agreements import AgreementService
from lendit_gateway.domain.claims import ClaimResult
from lendit_gateway.domain.models import Role
from lendit_gateway.infrastructure.database.session import get_db

router = APIRouter()


def _claim_response(result: ClaimResult, success_message: str):
    if not result.succeeded:
        body = ClaimResponse(outcome=result.status.value, message=ALREADY_CLAIMED_MESSAGE)
        return JSONResponse(status_code=409, content=body.model_dump(mode="json"))

    return ClaimResponse(
        outcome=result.status.value,
        message=success_message,
        agreement=AgreementResponse.from_domain(result.agreement),
    )


@router.post("/agreements/offers", response_model=AgreementResponse, status_code=201)
def create_offer(
    body: CreateOfferRequest,
    db: Session = Depends(get_db),
    service: AgreementService = Depends(get_agreement_service),
):
    """Lender offers a loan to a named borrower"""
    agreement = service.create_offer(
        lender=body.lender.to_actor(Role.LENDER),
        borrower=contact_from_schema(body.borrower),
        terms=body.terms.to_domain(),
        payment_method=body.payment_method,
        purpose=body.purpose,
        conditions=body.conditions.to_domain() if body.conditions else None,
        smart_contract=body.smart_contract,
    )
    db.commit()
    return AgreementResponse.from_domain(agreement)


@router.post("/agreements/requests", response_model=AgreementResponse, status_code=201)
def create_request(
    body: CreateLoanRequest,
    db: Session = Depends(get_db),
    service: AgreementService = Depends(get_agreement_service),
):
    """Borrower posts a loan request to the marketplace"""
    agreement = service.create_request(
        borrower=body.borrower.to_actor(Role.BORROWER),
        terms=body.terms.to_domain(),
        payment_method=body.payment_method,
        purpose=body.purpose,
        conditions=body.conditions.to_domain() if body.conditions else None,
        smart_contract=body.smart_contract,
    )
    db.commit()
    return AgreementResponse.from_domain(agreement)


@router.get("/agreements/{agreement_id}", response_model=AgreementResponse)
def get_agreement(agreement_id: uuid.UUID, service: AgreementService = Depends(get_agreement_service)):
    return AgreementResponse.from_domain(service.get_agreement(agreement_id))


@router.get("/marketplace/requests", response_model=MarketplaceResponse)
def list_open_requests(
    viewer_id: Optional[str] = Query(None, description="Hide this user's own requests"),
    service: AgreementService = Depends(get_agreement_service),
):
    """Open loan requests any lender can claim"""
    requests = service.list_open_requests(viewer_id)
    return MarketplaceResponse(requests=[AgreementResponse.from_domain(a) for a in requests])


@router.post("/agreements/{agreement_id}/claim", response_model=ClaimResponse)
def claim(
    agreement_id: uuid.UUID,
    body: ActionRequest,
    db: Session = Depends(get_db),
    service: AgreementService = Depends(get_agreement_service),
):
    """
    Lender claims an open request.

    Exactly one concurrent claimant wins; the others get 409 with
    outcome=already_claimed and should refresh the marketplace.
    """
    result = service.claim(agreement_id, body.actor.to_actor(Role.LENDER))
    db.commit()
    return _claim_response(result, "Loan request claimed. Fund it to start the loan.")


@router.post("/agreements/{agreement_id}/accept", response_model=ClaimResponse)
def accept(
    agreement_id: uuid.UUID,
    body: ActionRequest,
    db: Session = Depends(get_db),
    service: AgreementService = Depends(get_agreement_service),
):
    """Borrower accepts a pending offer"""
    result = service.accept(agreement_id, body.actor.to_actor(Role.BORROWER))
    db.commit()
    return _claim_response(result, "Loan offer accepted. Waiting for the lender to fund it.")


@router.post("/agreements/{agreement_id}/reject", response_model=AgreementResponse)
def reject(
    agreement_id: uuid.UUID,
    body: ActionRequest,
    db: Session = Depends(get_db),
    service: AgreementService = Depends(get_agreement_service),
):
    agreement = service.reject(agreement_id, body.actor.to_actor(Role.BORROWER))
    db.commit()
    return AgreementResponse.from_domain(agreement)


@router.post("/agreements/{agreement_id}/withdraw", response_model=AgreementResponse)
def withdraw(
    agreement_id: uuid.UUID,
    body: ActionRequest,
    db: Session = Depends(get_db),
    service: AgreementService = Depends(get_agreement_service),
):
    """Borrower withdraws their own pending request from the marketplace"""
    agreement = service.withdraw(agreement_id, body.actor.to_actor(Role.BORROWER))
    db.commit()
    return AgreementResponse.from_domain(agreement)


@router.post("/agreements/{agreement_id}/fund", response_model=AgreementResponse)
def fund(
    agreement_id: uuid.UUID,
    body: FundRequest,
    db: Session = Depends(get_db),
    service: AgreementService = Depends(get_agreement_service),
):
    """Bound lender disburses the principal"""
    agreement = service.fund(
        agreement_id,
        body.lender.to_actor(Role.LENDER),
        payment_method=body.payment_method,
        reference=body.reference,
    )
    db.commit()
    return AgreementResponse.from_domain(agreement)
