"""Integration tests for the SQLAlchemy agreement store"""

import uuid
import pytest
from datetime import datetime, timezone
from decimal import Decimal
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
from lendit_gateway.infrastructure.database.repositories import AgreementRepository

pytestmark = pytest.mark.integration

NOW = datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def repo(db):
    return AgreementRepository(db)


def new_request(borrower_id="borrower-1", **overrides) -> LoanAgreement:
    fields = dict(
        id=uuid.uuid4(),
        kind=AgreementKind.REQUEST,
        amount=Decimal("50000.00"),
        interest_rate=Decimal("10"),
        duration_months=6,
        status=AgreementStatus.PENDING,
        payment_method=PaymentMethod.UPI,
        created_at=NOW,
        updated_at=NOW,
        borrower_id=borrower_id,
        borrower_name="Asha Rao",
    )
    fields.update(overrides)
    return LoanAgreement(**fields)


def new_transaction(agreement_id, amount="1000.00", status=TransactionStatus.COMPLETED) -> Transaction:
    return Transaction(
        id=uuid.uuid4(),
        agreement_id=agreement_id,
        kind=TransactionKind.REPAYMENT,
        amount=Decimal(amount),
        payment_method=PaymentMethod.UPI,
        status=status,
        created_at=NOW,
        reference="UPI-4471",
    )


def test_create_and_get_agreement(repo):
    conditions = LoanConditions(description="Shop stock", monthly_income=Decimal("40000"), credit_score=720)
    created = repo.create_agreement(new_request(purpose="inventory", conditions=conditions))

    fetched = repo.get_agreement(created.id)

    assert fetched.id == created.id
    assert fetched.kind == AgreementKind.REQUEST
    assert fetched.status == AgreementStatus.PENDING
    assert fetched.amount == Decimal("50000.00")
    assert fetched.interest_rate == Decimal("10")
    assert fetched.borrower_name == "Asha Rao"
    assert fetched.lender_id is None
    assert fetched.conditions == conditions
    assert fetched.created_at == NOW


def test_get_unknown_agreement(repo):
    with pytest.raises(AgreementNotFound):
        repo.get_agreement(uuid.uuid4())


def test_conditional_update_applies_when_status_matches(repo):
    agreement = repo.create_agreement(new_request())
    changes = {"status": AgreementStatus.ACCEPTED, "lender_id": "lender-1", "accepted_at": NOW, "updated_at": NOW}

    assert repo.conditional_update(agreement.id, AgreementStatus.PENDING, changes) is True

    stored = repo.get_agreement(agreement.id)
    assert stored.status == AgreementStatus.ACCEPTED
    assert stored.lender_id == "lender-1"
    assert stored.accepted_at == NOW


def test_conditional_update_refuses_stale_status(repo):
    """Test second writer with the same expectation loses and writes nothing"""
    agreement = repo.create_agreement(new_request())
    first = {"status": AgreementStatus.ACCEPTED, "lender_id": "lender-a"}
    second = {"status": AgreementStatus.ACCEPTED, "lender_id": "lender-b"}

    assert repo.conditional_update(agreement.id, AgreementStatus.PENDING, first) is True
    assert repo.conditional_update(agreement.id, AgreementStatus.PENDING, second) is False

    assert repo.get_agreement(agreement.id).lender_id == "lender-a"


def test_transactions_written_only_with_winning_update(repo):
    agreement = repo.create_agreement(new_request(status=AgreementStatus.ACCEPTED, lender_id="lender-1"))
    disbursement = new_transaction(agreement.id, "50000.00")
    changes = {"status": AgreementStatus.FUNDED, "funded_at": NOW}

    assert repo.conditional_update(agreement.id, AgreementStatus.PENDING, changes, [disbursement]) is False
    assert repo.list_transactions(agreement.id) == []

    assert repo.conditional_update(agreement.id, AgreementStatus.ACCEPTED, changes, [disbursement]) is True
    assert [t.id for t in repo.list_transactions(agreement.id)] == [disbursement.id]


def test_append_and_get_transaction(repo):
    agreement = repo.create_agreement(new_request())
    transaction = new_transaction(agreement.id)

    repo.append_transaction(transaction)
    fetched = repo.get_transaction(transaction.id)

    assert fetched.amount == Decimal("1000.00")
    assert fetched.kind == TransactionKind.REPAYMENT
    assert fetched.reference == "UPI-4471"


def test_get_unknown_transaction(repo):
    with pytest.raises(TransactionNotFound):
        repo.get_transaction(uuid.uuid4())


def test_transaction_status_compare_and_swap(repo):
    agreement = repo.create_agreement(new_request())
    transaction = new_transaction(agreement.id, status=TransactionStatus.PENDING)
    repo.append_transaction(transaction)

    assert repo.update_transaction_status(transaction.id, TransactionStatus.PENDING, TransactionStatus.COMPLETED)
    assert not repo.update_transaction_status(transaction.id, TransactionStatus.PENDING, TransactionStatus.FAILED)
    assert repo.get_transaction(transaction.id).status == TransactionStatus.COMPLETED


def test_list_open_requests(repo):
    open_request = repo.create_agreement(new_request())
    repo.create_agreement(new_request(borrower_id="borrower-2"))
    repo.create_agreement(new_request(status=AgreementStatus.ACCEPTED, lender_id="lender-1"))
    repo.create_agreement(new_request(status=AgreementStatus.WITHDRAWN))
    repo.create_agreement(new_request(kind=AgreementKind.OFFER, borrower_id=None, lender_id="lender-1"))

    assert len(repo.list_open_requests()) == 2
    visible = repo.list_open_requests(exclude_borrower_id="borrower-2")
    assert [a.id for a in visible] == [open_request.id]


def test_conditional_update_checks_and_bumps_version(repo):
    agreement = repo.create_agreement(new_request(status=AgreementStatus.FUNDED, lender_id="lender-1"))
    assert agreement.version == 0
    touch = {"updated_at": NOW}

    assert repo.conditional_update(agreement.id, AgreementStatus.FUNDED, touch, expected_version=0) is True
    assert repo.get_agreement(agreement.id).version == 1

    # A writer that observed version 0 loses, transactions included
    late = new_transaction(agreement.id)
    assert repo.conditional_update(agreement.id, AgreementStatus.FUNDED, touch, [late], expected_version=0) is False
    assert repo.list_transactions(agreement.id) == []
    assert repo.get_agreement(agreement.id).version == 1


def test_created_agreement_reflects_stored_scale(repo):
    created = repo.create_agreement(new_request(interest_rate=Decimal("10.1235")))

    assert created == repo.get_agreement(created.id)
    assert created.interest_rate == Decimal("10.1235")
