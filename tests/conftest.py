"""Pytest fixtures for testing"""

import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Generator, List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from lendit_gateway.api.dependencies import get_notification_client
from lendit_gateway.api.main import create_app
from lendit_gateway.domain.agreements import AgreementService
from lendit_gateway.domain.events import DomainEvent
from lendit_gateway.domain.exceptions import AgreementNotFound, TransactionNotFound
from lendit_gateway.domain.models import (
    Actor,
    AgreementKind,
    AgreementStatus,
    LoanAgreement,
    LoanTerms,
    RepaymentPolicy,
    Role,
    Transaction,
    TransactionStatus,
)
from lendit_gateway.infrastructure.database.models import Base
from lendit_gateway.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

FIXED_NOW = datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)


class InMemoryAgreementStore:
    """AgreementStore whose compare-and-swap is guarded by a lock, like a row lock"""

    def __init__(self):
        self._lock = threading.Lock()
        self.agreements: Dict[uuid.UUID, LoanAgreement] = {}
        self.transactions: Dict[uuid.UUID, Transaction] = {}

    def create_agreement(self, agreement: LoanAgreement) -> LoanAgreement:
        with self._lock:
            self.agreements[agreement.id] = replace(agreement)
            return replace(agreement)

    def get_agreement(self, agreement_id: uuid.UUID) -> LoanAgreement:
        with self._lock:
            if agreement_id not in self.agreements:
                raise AgreementNotFound(agreement_id)
            return replace(self.agreements[agreement_id])

    def conditional_update(
        self,
        agreement_id: uuid.UUID,
        expected_status: AgreementStatus,
        changes: Dict[str, Any],
        transactions: Sequence[Transaction] = (),
        expected_version: Optional[int] = None,
    ) -> bool:
        with self._lock:
            current = self.agreements.get(agreement_id)
            if current is None or current.status != expected_status:
                return False
            if expected_version is not None and current.version != expected_version:
                return False
            self.agreements[agreement_id] = replace(current, version=current.version + 1, **changes)
            for transaction in transactions:
                self.transactions[transaction.id] = replace(transaction)
            return True

    def append_transaction(self, transaction: Transaction) -> uuid.UUID:
        with self._lock:
            self.transactions[transaction.id] = replace(transaction)
            return transaction.id

    def get_transaction(self, transaction_id: uuid.UUID) -> Transaction:
        with self._lock:
            if transaction_id not in self.transactions:
                raise TransactionNotFound(transaction_id)
            return replace(self.transactions[transaction_id])

    def list_transactions(self, agreement_id: uuid.UUID) -> List[Transaction]:
        with self._lock:
            return [replace(t) for t in self.transactions.values() if t.agreement_id == agreement_id]

    def update_transaction_status(
        self,
        transaction_id: uuid.UUID,
        expected_status: TransactionStatus,
        new_status: TransactionStatus,
    ) -> bool:
        with self._lock:
            current = self.transactions.get(transaction_id)
            if current is None or current.status != expected_status:
                return False
            self.transactions[transaction_id] = replace(current, status=new_status)
            return True

    def list_open_requests(self, exclude_borrower_id: Optional[str] = None) -> List[LoanAgreement]:
        with self._lock:
            return [
                replace(a)
                for a in self.agreements.values()
                if a.status == AgreementStatus.PENDING
                and a.kind == AgreementKind.REQUEST
                and a.lender_id is None
                and a.borrower_id != exclude_borrower_id
            ]


class RecordingEventSink:
    """EventSink that keeps every event for assertions"""

    def __init__(self):
        self.events: List[DomainEvent] = []

    def emit(self, event: DomainEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> List[str]:
        return [e.type.value for e in self.events]


class FakeNotificationClient:
    """Stands in for the webhook client; records payloads instead of POSTing"""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def send_event(self, payload: Dict[str, Any]) -> None:
        self.sent.append(payload)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifications() -> FakeNotificationClient:
    return FakeNotificationClient()


@pytest.fixture
def client(db: Session, notifications: FakeNotificationClient) -> TestClient:
    """Create FastAPI test client with test database and recorded notifications"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_client] = lambda: notifications
    return TestClient(app)


@pytest.fixture
def store() -> InMemoryAgreementStore:
    return InMemoryAgreementStore()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def service(store: InMemoryAgreementStore, events: RecordingEventSink) -> AgreementService:
    """Service over the in-memory store with a frozen clock"""
    return AgreementService(store, events, RepaymentPolicy(grace_period_days=7), clock=lambda: FIXED_NOW)


@pytest.fixture
def borrower() -> Actor:
    return Actor(party_id="borrower-1", role=Role.BORROWER, name="Asha Rao", email="asha@example.com")


@pytest.fixture
def lender() -> Actor:
    return Actor(party_id="lender-1", role=Role.LENDER, name="Vikram Shah", email="vikram@example.com")


@pytest.fixture
def request_terms() -> LoanTerms:
    """P=50000 at 10% over 6 months"""
    return LoanTerms(amount=Decimal("50000"), interest_rate=Decimal("10"), duration_months=6)
