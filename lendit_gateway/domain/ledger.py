"""Repayment ledger - paid-to-date figures derived from transaction history"""

from decimal import Decimal, InvalidOperation
from typing import Iterable

from lendit_gateway.domain.amortization import Number, as_decimal, quote, to_money
from lendit_gateway.domain.exceptions import InvalidAmount
from lendit_gateway.domain.models import (
    AgreementStatus,
    LedgerPosition,
    LoanAgreement,
    Transaction,
    TransactionKind,
    TransactionStatus,
)

HUNDRED = Decimal(100)
ZERO = Decimal(0)


def _repayments(transactions: Iterable[Transaction], status: TransactionStatus) -> Decimal:
    return sum(
        (
            t.amount
            for t in transactions
            if t.kind == TransactionKind.REPAYMENT and t.status == status
        ),
        ZERO,
    )


def amount_paid(transactions: Iterable[Transaction]) -> Decimal:
    """Sum of completed repayments; pending, failed and cancelled ones don't count"""
    return _repayments(transactions, TransactionStatus.COMPLETED)


def summarize(agreement: LoanAgreement, transactions: Iterable[Transaction]) -> LedgerPosition:
    """
    Derive paid-to-date figures for an agreement.

    - remaining_balance: total repayment minus paid, floored at 0
    - progress_percent: paid / total * 100, clamped to [0, 100]
    - settled: remaining balance rounds to 0.00
    """
    transactions = list(transactions)
    total = quote(agreement.terms).total_repayment
    paid = amount_paid(transactions)
    pending = _repayments(transactions, TransactionStatus.PENDING)

    remaining = max(total - paid, ZERO)
    progress = min(max(paid / total * HUNDRED, ZERO), HUNDRED)

    return LedgerPosition(
        total_repayment=total,
        amount_paid=paid,
        amount_pending=pending,
        remaining_balance=remaining,
        progress_percent=progress,
        settled=to_money(remaining) == ZERO,
    )


def eligible_for_completion(agreement: LoanAgreement, position: LedgerPosition) -> bool:
    return agreement.status == AgreementStatus.FUNDED and position.settled


def repayment_amount(value: Number) -> Decimal:
    """
    Coerce a submitted repayment to cents.

    Raises:
        InvalidAmount: not a finite number, or too large to round to cents
    """
    try:
        amount = as_decimal(value)
        if not amount.is_finite():
            raise InvalidAmount(f"Repayment amount must be a finite number, got {value}")
        return to_money(amount)
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmount(f"Repayment amount is not a valid amount: {value}") from exc


def ensure_repayment_allowed(position: LedgerPosition, amount: Decimal, tolerance: Decimal) -> None:
    """
    Reject repayments that are non-positive or would overpay.

    Pending repayments count towards exposure since the gateway may still
    confirm them.

    Raises:
        InvalidAmount
    """
    if amount <= 0:
        raise InvalidAmount(f"Repayment amount must be positive, got {amount}")

    exposure = position.amount_paid + position.amount_pending + amount
    if exposure > position.total_repayment + tolerance:
        raise InvalidAmount(
            f"Repayment of {to_money(amount)} exceeds outstanding balance "
            f"{to_money(max(position.total_repayment - position.amount_paid - position.amount_pending, ZERO))}"
        )
