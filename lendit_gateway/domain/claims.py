"""First-writer-wins coordination for claiming requests and accepting offers"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from lendit_gateway.domain.models import Actor, AgreementKind, AgreementStatus, LoanAgreement
from lendit_gateway.domain.ports import AgreementStore
from lendit_gateway.domain.state_machine import Action, decide
from lendit_gateway.infrastructure.observability.logging import log_transition
from lendit_gateway.infrastructure.observability.metrics import claim_conflict_counter, record_transition
from lendit_gateway.utils.date_utils import utcnow


class ClaimStatus(str, Enum):
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"


@dataclass(frozen=True)
class ClaimResult:
    """Outcome of a claim/accept race; losing it is a normal result"""

    status: ClaimStatus
    agreement: Optional[LoanAgreement] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ClaimStatus.CLAIMED


def _slot_taken(agreement: LoanAgreement, action: Action) -> bool:
    """
    Another contender won the slot this action would bind.

    Only an accepted agreement counts: once funded or completed the claim is
    simply illegal and goes through the state machine like any other action.
    """
    if agreement.status != AgreementStatus.ACCEPTED:
        return False
    if action == Action.CLAIM:
        return agreement.kind == AgreementKind.REQUEST and agreement.lender_id is not None
    return agreement.kind == AgreementKind.OFFER and agreement.borrower_id is not None


class ClaimCoordinator:
    """
    Binds a counterparty to a pending agreement so exactly one contender wins.

    The write is always conditional on the status still being pending; a
    failed compare-and-swap means another contender got there first.
    """

    def __init__(
        self,
        store: AgreementStore,
        clock: Callable[[], datetime] = utcnow,
        request_id: Optional[str] = None,
    ):
        self.store = store
        self.clock = clock
        self.request_id = request_id

    def claim(self, agreement_id: uuid.UUID, lender: Actor) -> ClaimResult:
        """Lender takes an open loan request"""
        return self._take(agreement_id, Action.CLAIM, lender)

    def accept(self, agreement_id: uuid.UUID, borrower: Actor) -> ClaimResult:
        """Borrower takes a pending loan offer"""
        return self._take(agreement_id, Action.ACCEPT, borrower)

    def _take(self, agreement_id: uuid.UUID, action: Action, actor: Actor) -> ClaimResult:
        agreement = self.store.get_agreement(agreement_id)

        if _slot_taken(agreement, action):
            return self._lost(agreement_id, action, actor)

        transition = decide(agreement, action, actor, self.clock())

        applied = self.store.conditional_update(
            agreement_id,
            transition.expected_status,
            transition.changes,
            expected_version=transition.expected_version,
        )
        if not applied:
            return self._lost(agreement_id, action, actor)

        record_transition(action.value, "applied")
        log_transition(str(agreement_id), action.value, "applied", actor.party_id, self.request_id)
        return ClaimResult(status=ClaimStatus.CLAIMED, agreement=self.store.get_agreement(agreement_id))

    def _lost(self, agreement_id: uuid.UUID, action: Action, actor: Actor) -> ClaimResult:
        claim_conflict_counter.labels(action=action.value).inc()
        record_transition(action.value, ClaimStatus.ALREADY_CLAIMED.value)
        log_transition(
            str(agreement_id), action.value, ClaimStatus.ALREADY_CLAIMED.value, actor.party_id, self.request_id
        )
        return ClaimResult(status=ClaimStatus.ALREADY_CLAIMED)
