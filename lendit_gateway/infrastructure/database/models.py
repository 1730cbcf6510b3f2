"""SQLAlchemy ORM models for loan agreements and their transactions"""

import uuid
from sqlalchemy import Column, Boolean, DateTime, ForeignKey, Integer, Numeric, Text, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class LoanAgreementRecord(Base):
    """Loan offer/request row; status is only changed through conditional updates"""

    __tablename__ = "loan_agreement"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kind = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="pending", index=True)
    lender_id = Column(Text, nullable=True, index=True)
    borrower_id = Column(Text, nullable=True, index=True)
    lender_name = Column(Text, nullable=True)
    lender_email = Column(Text, nullable=True)
    borrower_name = Column(Text, nullable=True)
    borrower_email = Column(Text, nullable=True)
    amount = Column(Numeric(18, 2), nullable=False)
    interest_rate = Column(Numeric(7, 4), nullable=False, default=0)
    duration_months = Column(Integer, nullable=False)
    purpose = Column(Text, nullable=True)
    conditions = Column(JSON, nullable=True)
    payment_method = Column(Text, nullable=False)
    smart_contract = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    funded_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=0)

    transactions = relationship("TransactionRecord", back_populates="agreement", cascade="all, delete-orphan")


class TransactionRecord(Base):
    """Append-only disbursement/repayment row"""

    __tablename__ = "loan_transaction"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agreement_id = Column(
        UUID(as_uuid=True), ForeignKey("loan_agreement.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind = Column(Text, nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)
    payment_method = Column(Text, nullable=False)
    reference = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False)

    agreement = relationship("LoanAgreementRecord", back_populates="transactions")
