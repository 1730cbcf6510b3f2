"""Amortization math - the one place repayment figures are computed"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence, Union

from lendit_gateway.domain.models import LoanQuote, LoanTerms, ScheduledPayment

Number = Union[Decimal, int, str, float]

CENT = Decimal("0.01")
MONTHS_PER_YEAR = 12


def as_decimal(value: Number) -> Decimal:
    """Coerce input to Decimal; floats go through str() to avoid binary noise"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def to_money(value: Decimal) -> Decimal:
    """Round to cents. Only applied where a value is persisted or displayed."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def monthly_rate(annual_rate: Number) -> Decimal:
    """Annual percentage rate -> periodic monthly rate (12% -> 0.01)"""
    return as_decimal(annual_rate) / 100 / MONTHS_PER_YEAR


def _terms(principal: Number, annual_rate: Number, duration_months: int) -> LoanTerms:
    return LoanTerms(
        amount=as_decimal(principal),
        interest_rate=as_decimal(annual_rate),
        duration_months=duration_months,
    )


def _monthly_payment(terms: LoanTerms) -> Decimal:
    i = monthly_rate(terms.interest_rate)
    n = terms.duration_months

    if i == 0:
        return terms.amount / n

    growth = (1 + i) ** n
    return terms.amount * (i * growth) / (growth - 1)


def _total_repayment(terms: LoanTerms) -> Decimal:
    if monthly_rate(terms.interest_rate) == 0:
        # P / n * n loses the last digit at finite precision
        return terms.amount
    return _monthly_payment(terms) * terms.duration_months


def calculate_monthly_payment(principal: Number, annual_rate: Number, duration_months: int) -> Decimal:
    """
    Level monthly payment under reducing-balance amortization.

    payment = P * i * (1+i)^n / ((1+i)^n - 1), or P / n when i == 0.

    Example:
        P=100000, r=12%, n=12 -> 8884.8788... (8884.88 displayed)

    Raises:
        InvalidTermsError: principal <= 0, rate < 0 or duration < 1
    """
    return _monthly_payment(_terms(principal, annual_rate, duration_months))


def calculate_total_repayment(principal: Number, annual_rate: Number, duration_months: int) -> Decimal:
    """Monthly payment times duration; exactly the principal at zero rate"""
    return _total_repayment(_terms(principal, annual_rate, duration_months))


def quote(terms: LoanTerms) -> LoanQuote:
    """Full-precision repayment figures for a set of terms"""
    total = _total_repayment(terms)
    return LoanQuote(
        monthly_payment=_monthly_payment(terms),
        total_repayment=total,
        total_interest=total - terms.amount,
    )


def generate_amortization_schedule(
    terms: LoanTerms,
    due_dates: Optional[Sequence[date]] = None,
) -> List[ScheduledPayment]:
    """
    Period-by-period split of each payment into interest and principal.

    Figures are in cents. Interest accrues on the outstanding balance each
    period; the final period pays off whatever balance is left so the
    principal column always sums to the loan amount.

    Args:
        terms: Loan terms
        due_dates: Optional due date per period (see schedule.due_dates)

    Returns:
        One ScheduledPayment per month of the term
    """
    n = terms.duration_months
    if due_dates is not None and len(due_dates) != n:
        raise ValueError(f"Expected {n} due dates, got {len(due_dates)}")

    i = monthly_rate(terms.interest_rate)
    payment = to_money(_monthly_payment(terms))
    balance = to_money(terms.amount)

    schedule = []
    for number in range(1, n + 1):
        interest = to_money(balance * i)

        if number == n:
            principal = balance
        else:
            principal = min(payment - interest, balance)

        balance -= principal

        schedule.append(
            ScheduledPayment(
                number=number,
                payment=principal + interest,
                principal=principal,
                interest=interest,
                remaining_balance=balance,
                due_date=due_dates[number - 1] if due_dates is not None else None,
            )
        )

    return schedule
