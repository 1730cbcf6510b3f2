"""Agreement lifecycle state machine - decides transitions, never writes them"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from lendit_gateway.domain.exceptions import IllegalTransition
from lendit_gateway.domain.models import Actor, AgreementKind, AgreementStatus, LedgerPosition, LoanAgreement, Role


class Action(str, Enum):
    CLAIM = "claim"
    ACCEPT = "accept"
    REJECT = "reject"
    WITHDRAW = "withdraw"
    FUND = "fund"
    RECORD_PAYMENT = "record_payment"
    COMPLETE = "complete"


@dataclass(frozen=True)
class Rule:
    """Source state, agreement kind and role an action requires"""

    source: AgreementStatus
    target: AgreementStatus
    kind: Optional[AgreementKind] = None  # None: either kind
    role: Optional[Role] = None  # None: system-initiated


TRANSITIONS: Dict[Action, Rule] = {
    Action.CLAIM: Rule(AgreementStatus.PENDING, AgreementStatus.ACCEPTED, AgreementKind.REQUEST, Role.LENDER),
    Action.ACCEPT: Rule(AgreementStatus.PENDING, AgreementStatus.ACCEPTED, AgreementKind.OFFER, Role.BORROWER),
    Action.REJECT: Rule(AgreementStatus.PENDING, AgreementStatus.REJECTED, AgreementKind.OFFER, Role.BORROWER),
    Action.WITHDRAW: Rule(AgreementStatus.PENDING, AgreementStatus.WITHDRAWN, AgreementKind.REQUEST, Role.BORROWER),
    Action.FUND: Rule(AgreementStatus.ACCEPTED, AgreementStatus.FUNDED, None, Role.LENDER),
    Action.RECORD_PAYMENT: Rule(AgreementStatus.FUNDED, AgreementStatus.FUNDED, None, Role.BORROWER),
    Action.COMPLETE: Rule(AgreementStatus.FUNDED, AgreementStatus.COMPLETED, None, None),
}


@dataclass(frozen=True)
class Transition:
    """A decided transition, to be applied with a compare-and-swap on expected_status and expected_version"""

    action: Action
    expected_status: AgreementStatus
    target_status: AgreementStatus
    changes: Dict[str, Any] = field(default_factory=dict)
    expected_version: Optional[int] = None


def _reject(action: Action, agreement: LoanAgreement, reason: str) -> IllegalTransition:
    return IllegalTransition(action.value, agreement.status.value, reason)


def _check_rule(action: Action, rule: Rule, agreement: LoanAgreement, actor: Optional[Actor]) -> None:
    if agreement.status != rule.source:
        raise _reject(action, agreement, f"requires status '{rule.source.value}'")

    if rule.kind is not None and agreement.kind != rule.kind:
        raise _reject(action, agreement, f"only applies to a loan {rule.kind.value}")

    if rule.role is None:
        if actor is not None:
            raise _reject(action, agreement, "performed by the system only")
        return

    if actor is None or actor.role != rule.role:
        raise _reject(action, agreement, f"requires the {rule.role.value} role")


def _check_parties(
    action: Action,
    agreement: LoanAgreement,
    actor: Optional[Actor],
    position: Optional[LedgerPosition],
) -> None:
    if action == Action.COMPLETE:
        if position is None or not position.settled:
            raise _reject(action, agreement, "agreement is not fully repaid")

    elif action == Action.CLAIM:
        if agreement.lender_id is not None:
            raise _reject(action, agreement, "request already has a lender")
        if actor.party_id == agreement.borrower_id:
            raise _reject(action, agreement, "cannot fund your own request")

    elif action == Action.ACCEPT:
        if agreement.borrower_id is not None:
            raise _reject(action, agreement, "offer already has a borrower")
        if actor.party_id == agreement.lender_id:
            raise _reject(action, agreement, "cannot accept your own offer")

    elif action == Action.REJECT:
        if actor.party_id == agreement.lender_id:
            raise _reject(action, agreement, "cannot reject your own offer")

    elif action == Action.WITHDRAW:
        if actor.party_id != agreement.borrower_id:
            raise _reject(action, agreement, "only the requesting borrower can withdraw")

    elif action == Action.FUND:
        if actor.party_id != agreement.lender_id:
            raise _reject(action, agreement, "only the bound lender can fund")

    elif action == Action.RECORD_PAYMENT:
        if actor.party_id != agreement.borrower_id:
            raise _reject(action, agreement, "only the bound borrower can repay")


def _changes(action: Action, rule: Rule, agreement: LoanAgreement, actor: Optional[Actor], now: datetime) -> Dict[str, Any]:
    changes: Dict[str, Any] = {"status": rule.target, "updated_at": now}

    if action == Action.CLAIM:
        changes.update(
            lender_id=actor.party_id,
            lender_name=actor.name or agreement.lender_name,
            lender_email=actor.email or agreement.lender_email,
            accepted_at=now,
        )
    elif action == Action.ACCEPT:
        changes.update(
            borrower_id=actor.party_id,
            borrower_name=actor.name or agreement.borrower_name,
            borrower_email=actor.email or agreement.borrower_email,
            accepted_at=now,
        )
    elif action == Action.FUND:
        changes["funded_at"] = now

    return changes


def decide(
    agreement: LoanAgreement,
    action: Action,
    actor: Optional[Actor],
    now: datetime,
    position: Optional[LedgerPosition] = None,
) -> Transition:
    """
    Decide the transition for an action against the agreement as last observed.

    Pure: nothing is written. The caller applies the returned Transition with
    store.conditional_update(agreement.id, transition.expected_status,
    transition.changes, expected_version=transition.expected_version) so any
    concurrent writer invalidates it.

    COMPLETE needs the ledger position derived from the same observation and
    is only legal once it is settled.

    Raises:
        IllegalTransition: wrong source state, wrong kind, wrong role, an
            actor who is not the party bound to the agreement, or completion
            of an agreement that is not fully repaid
    """
    rule = TRANSITIONS[action]
    _check_rule(action, rule, agreement, actor)
    _check_parties(action, agreement, actor, position)

    return Transition(
        action=action,
        expected_status=rule.source,
        target_status=rule.target,
        changes=_changes(action, rule, agreement, actor, now),
        expected_version=agreement.version,
    )
