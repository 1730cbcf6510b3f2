"""POST /v1/quotes - repayment preview for prospective terms"""

from fastapi import APIRouter

from lendit_gateway.api.v1.schemas import QuoteRequest, QuoteResponse
from lendit_gateway.domain.amortization import generate_amortization_schedule, quote

router = APIRouter()


@router.post("/quotes", response_model=QuoteResponse)
def create_quote(body: QuoteRequest):
    """
    Preview monthly payment and total repayment before creating an agreement.

    Uses the same amortization as agreements, so previews always match the
    figures shown after acceptance.
    """
    terms = body.terms.to_domain()
    schedule = generate_amortization_schedule(terms) if body.include_schedule else None
    return QuoteResponse.from_domain(quote(terms), schedule)
