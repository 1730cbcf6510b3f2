"""Data access layer for loan agreements and transactions"""

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy.orm import Session
from lendit_gateway.infrastructure.database.models import LoanAgreementRecord, TransactionRecord
from lendit_gateway.domain.exceptions import AgreementNotFound, TransactionNotFound
from lendit_gateway.domain.models import (
    AgreementKind,
    AgreementStatus,
    LoanAgreement,
    LoanConditions,
    PaymentMethod,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from lendit_gateway.utils.date_utils import ensure_aware


def _optional_aware(value):
    return ensure_aware(value) if value is not None else None


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, LoanConditions):
        return value.to_dict()
    return value


def _to_agreement(record: LoanAgreementRecord) -> LoanAgreement:
    return LoanAgreement(
        id=record.id,
        kind=AgreementKind(record.kind),
        amount=record.amount,
        interest_rate=record.interest_rate,
        duration_months=record.duration_months,
        status=AgreementStatus(record.status),
        payment_method=PaymentMethod(record.payment_method),
        created_at=ensure_aware(record.created_at),
        updated_at=ensure_aware(record.updated_at),
        lender_id=record.lender_id,
        borrower_id=record.borrower_id,
        lender_name=record.lender_name,
        lender_email=record.lender_email,
        borrower_name=record.borrower_name,
        borrower_email=record.borrower_email,
        purpose=record.purpose,
        conditions=LoanConditions.from_dict(record.conditions),
        smart_contract=record.smart_contract,
        accepted_at=_optional_aware(record.accepted_at),
        funded_at=_optional_aware(record.funded_at),
        version=record.version or 0,
    )


def _to_transaction(record: TransactionRecord) -> Transaction:
    return Transaction(
        id=record.id,
        agreement_id=record.agreement_id,
        kind=TransactionKind(record.kind),
        amount=record.amount,
        payment_method=PaymentMethod(record.payment_method),
        status=TransactionStatus(record.status),
        created_at=ensure_aware(record.created_at),
        reference=record.reference,
    )


def _transaction_record(transaction: Transaction) -> TransactionRecord:
    return TransactionRecord(
        id=transaction.id,
        agreement_id=transaction.agreement_id,
        kind=transaction.kind.value,
        amount=transaction.amount,
        payment_method=transaction.payment_method.value,
        reference=transaction.reference,
        status=transaction.status.value,
        created_at=transaction.created_at,
    )


class AgreementRepository:
    """
    AgreementStore backed by SQLAlchemy.

    Writes are flushed, never committed: the caller owns the session's
    transaction, so a status change and its transactions commit together.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_agreement(self, agreement: LoanAgreement) -> LoanAgreement:
        """Persist a new pending agreement"""
        record = LoanAgreementRecord(
            id=agreement.id,
            kind=agreement.kind.value,
            status=agreement.status.value,
            lender_id=agreement.lender_id,
            borrower_id=agreement.borrower_id,
            lender_name=agreement.lender_name,
            lender_email=agreement.lender_email,
            borrower_name=agreement.borrower_name,
            borrower_email=agreement.borrower_email,
            amount=agreement.amount,
            interest_rate=agreement.interest_rate,
            duration_months=agreement.duration_months,
            purpose=agreement.purpose,
            conditions=agreement.conditions.to_dict() if agreement.conditions else None,
            payment_method=agreement.payment_method.value,
            smart_contract=agreement.smart_contract,
            created_at=agreement.created_at,
            updated_at=agreement.updated_at,
            accepted_at=agreement.accepted_at,
            funded_at=agreement.funded_at,
            version=agreement.version,
        )
        self.db.add(record)
        self.db.flush()
        # Read back so callers see the figures as stored (column scale applied)
        return self.get_agreement(record.id)

    def get_agreement(self, agreement_id: uuid.UUID) -> LoanAgreement:
        """Fetch current row state, bypassing stale identity-map copies"""
        record = (
            self.db.query(LoanAgreementRecord)
            .populate_existing()
            .filter(LoanAgreementRecord.id == agreement_id)
            .first()
        )
        if record is None:
            raise AgreementNotFound(agreement_id)
        return _to_agreement(record)

    def conditional_update(
        self,
        agreement_id: uuid.UUID,
        expected_status: AgreementStatus,
        changes: Dict[str, Any],
        transactions: Sequence[Transaction] = (),
        expected_version: Optional[int] = None,
    ) -> bool:
        """
        UPDATE ... SET version = version + 1
        WHERE id = :id AND status = :expected [AND version = :expected_version].

        The row count tells whether this writer won; on a loss nothing is
        written, transactions included.
        """
        values = {key: _column_value(value) for key, value in changes.items()}
        values["version"] = LoanAgreementRecord.version + 1

        query = self.db.query(LoanAgreementRecord).filter(
            LoanAgreementRecord.id == agreement_id,
            LoanAgreementRecord.status == expected_status.value,
        )
        if expected_version is not None:
            query = query.filter(LoanAgreementRecord.version == expected_version)

        updated = query.update(values, synchronize_session=False)
        if updated != 1:
            return False

        for transaction in transactions:
            self.db.add(_transaction_record(transaction))
        self.db.flush()
        return True

    def append_transaction(self, transaction: Transaction) -> uuid.UUID:
        self.db.add(_transaction_record(transaction))
        self.db.flush()
        return transaction.id

    def get_transaction(self, transaction_id: uuid.UUID) -> Transaction:
        record = (
            self.db.query(TransactionRecord)
            .populate_existing()
            .filter(TransactionRecord.id == transaction_id)
            .first()
        )
        if record is None:
            raise TransactionNotFound(transaction_id)
        return _to_transaction(record)

    def list_transactions(self, agreement_id: uuid.UUID) -> List[Transaction]:
        """Transactions for an agreement, oldest first"""
        records = (
            self.db.query(TransactionRecord)
            .populate_existing()
            .filter(TransactionRecord.agreement_id == agreement_id)
            .order_by(TransactionRecord.created_at.asc())
            .all()
        )
        return [_to_transaction(r) for r in records]

    def update_transaction_status(
        self,
        transaction_id: uuid.UUID,
        expected_status: TransactionStatus,
        new_status: TransactionStatus,
    ) -> bool:
        updated = (
            self.db.query(TransactionRecord)
            .filter(
                TransactionRecord.id == transaction_id,
                TransactionRecord.status == expected_status.value,
            )
            .update({"status": new_status.value}, synchronize_session=False)
        )
        self.db.flush()
        return updated == 1

    def list_open_requests(self, exclude_borrower_id: Optional[str] = None, limit: int = 50) -> List[LoanAgreement]:
        """Pending borrower requests without a lender, newest first"""
        query = self.db.query(LoanAgreementRecord).filter(
            LoanAgreementRecord.status == AgreementStatus.PENDING.value,
            LoanAgreementRecord.kind == AgreementKind.REQUEST.value,
            LoanAgreementRecord.lender_id.is_(None),
        )
        if exclude_borrower_id:
            query = query.filter(LoanAgreementRecord.borrower_id != exclude_borrower_id)

        records = query.order_by(LoanAgreementRecord.created_at.desc()).limit(limit).all()
        return [_to_agreement(r) for r in records]
