"""Collaborator contracts the lifecycle core depends on"""

import uuid
from typing import Any, Dict, List, Optional, Protocol, Sequence

from lendit_gateway.domain.events import DomainEvent
from lendit_gateway.domain.models import AgreementStatus, LoanAgreement, Transaction, TransactionStatus


class AgreementStore(Protocol):
    """Persistence for agreements and their transactions.

    conditional_update is the compare-and-swap primitive every agreement
    change goes through: it writes only if the stored status still equals
    expected_status (and the stored version equals expected_version when one
    is given), bumps the version, and applies the given transactions in the
    same unit of work.
    """

    def create_agreement(self, agreement: LoanAgreement) -> LoanAgreement:
        ...

    def get_agreement(self, agreement_id: uuid.UUID) -> LoanAgreement:
        """Raises AgreementNotFound"""
        ...

    def conditional_update(
        self,
        agreement_id: uuid.UUID,
        expected_status: AgreementStatus,
        changes: Dict[str, Any],
        transactions: Sequence[Transaction] = (),
        expected_version: Optional[int] = None,
    ) -> bool:
        ...

    def append_transaction(self, transaction: Transaction) -> uuid.UUID:
        ...

    def get_transaction(self, transaction_id: uuid.UUID) -> Transaction:
        """Raises TransactionNotFound"""
        ...

    def list_transactions(self, agreement_id: uuid.UUID) -> List[Transaction]:
        ...

    def update_transaction_status(
        self,
        transaction_id: uuid.UUID,
        expected_status: TransactionStatus,
        new_status: TransactionStatus,
    ) -> bool:
        ...

    def list_open_requests(self, exclude_borrower_id: Optional[str] = None) -> List[LoanAgreement]:
        ...


class EventSink(Protocol):
    """Receives domain events; channel fan-out is the sink's business"""

    def emit(self, event: DomainEvent) -> None:
        ...
