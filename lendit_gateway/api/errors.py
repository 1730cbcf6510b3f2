"""Map domain exceptions to HTTP responses"""

import logging
from typing import Optional
from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse

from lendit_gateway.domain.exceptions import (
    AgreementNotFound,
    IllegalTransition,
    InvalidAmount,
    InvalidTermsError,
    TransactionNotFound,
)

ILLEGAL_TRANSITION_MESSAGE = "This action is no longer available for this agreement."
ALREADY_CLAIMED_MESSAGE = "Someone else already took this loan."


def illegal_transition_response(
    request: Request,
    exc: IllegalTransition,
    background: Optional[BackgroundTasks] = None,
) -> JSONResponse:
    """409 for a refused action; background carries events the refusing request still owes"""
    logging.warning(f"Illegal transition: {exc}", extra={"request_id": getattr(request.state, "request_id", None)})
    return JSONResponse(
        status_code=409,
        content={
            "detail": ILLEGAL_TRANSITION_MESSAGE,
            "outcome": "illegal_transition",
            "action": exc.action,
            "status": exc.status,
            "reason": exc.reason,
        },
        background=background,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Business rule violations become 4xx; anything else stays a 500"""

    @app.exception_handler(AgreementNotFound)
    async def agreement_not_found(request: Request, exc: AgreementNotFound):
        return JSONResponse(status_code=404, content={"detail": "Agreement not found"})

    @app.exception_handler(TransactionNotFound)
    async def transaction_not_found(request: Request, exc: TransactionNotFound):
        return JSONResponse(status_code=404, content={"detail": "Transaction not found"})

    @app.exception_handler(IllegalTransition)
    async def illegal_transition(request: Request, exc: IllegalTransition):
        return illegal_transition_response(request, exc)

    @app.exception_handler(InvalidAmount)
    async def invalid_amount(request: Request, exc: InvalidAmount):
        return JSONResponse(status_code=422, content={"detail": str(exc), "outcome": "invalid_amount"})

    @app.exception_handler(InvalidTermsError)
    async def invalid_terms(request: Request, exc: InvalidTermsError):
        return JSONResponse(status_code=422, content={"detail": str(exc), "outcome": "invalid_terms"})
