"""Due date derivation and overdue detection for funded agreements"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Union

from lendit_gateway.domain.amortization import to_money
from lendit_gateway.domain.models import DueStatus
from lendit_gateway.utils.date_utils import add_months, as_date


def due_dates(funded_at: Union[date, datetime], duration_months: int) -> List[date]:
    """
    Monthly due dates for a funded loan.

    Each date is funded_at + k months (k = 1..n), always offset from the
    funding date itself so short months never shift later instalments.
    """
    anchor = as_date(funded_at)
    return [add_months(anchor, k) for k in range(1, duration_months + 1)]


def periods_covered(amount_paid: Decimal, monthly_payment: Decimal, duration_months: int) -> int:
    """Number of instalments fully paid, each counted at its cent-rounded value"""
    instalment = to_money(monthly_payment)
    if instalment <= 0:
        return duration_months
    return min(int(amount_paid // instalment), duration_months)


def due_status(
    funded_at: Union[date, datetime],
    duration_months: int,
    amount_paid: Decimal,
    monthly_payment: Decimal,
    today: Union[date, datetime],
    grace_period_days: int,
) -> DueStatus:
    """
    Report the next unmet due date relative to today.

    A period is unmet until cumulative completed repayments cover it.
    overdue: the next unmet due date has passed.
    grace_period_exceeded: overdue by more than grace_period_days. This is an
    escalation signal for reminders, never a state change.
    """
    covered = periods_covered(amount_paid, monthly_payment, duration_months)

    if covered >= duration_months:
        return DueStatus(
            next_due_date=None,
            days_until_due=None,
            overdue=False,
            grace_period_exceeded=False,
            periods_covered=covered,
        )

    next_due = due_dates(funded_at, duration_months)[covered]
    days_until_due = (next_due - as_date(today)).days
    overdue = days_until_due < 0

    return DueStatus(
        next_due_date=next_due,
        days_until_due=days_until_due,
        overdue=overdue,
        grace_period_exceeded=overdue and -days_until_due > grace_period_days,
        periods_covered=covered,
    )
