"""Integration tests for API endpoints"""

import logging
import uuid
import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from dateutil.relativedelta import relativedelta
from fastapi.testclient import TestClient
from lendit_gateway.domain.models import PaymentMethod, Transaction, TransactionKind, TransactionStatus
from lendit_gateway.infrastructure.database.repositories import AgreementRepository

pytestmark = pytest.mark.integration

BORROWER = {"party_id": "borrower-1", "name": "Asha Rao", "email": "asha@example.com"}
LENDER = {"party_id": "lender-1", "name": "Vikram Shah", "email": "vikram@example.com"}
TERMS = {"amount": "50000", "interest_rate": "10", "duration_months": 6}


def create_request(client: TestClient, borrower=BORROWER) -> dict:
    response = client.post("/v1/agreements/requests", json={"borrower": borrower, "terms": TERMS, "purpose": "stock"})
    assert response.status_code == 201
    return response.json()


def funded_request(client: TestClient) -> dict:
    agreement = create_request(client)
    assert client.post(f"/v1/agreements/{agreement['id']}/claim", json={"actor": LENDER}).status_code == 200
    response = client.post(f"/v1/agreements/{agreement['id']}/fund", json={"lender": LENDER})
    assert response.status_code == 200
    return response.json()


def pay(client: TestClient, agreement_id: str, amount, confirmed=True):
    return client.post(
        f"/v1/agreements/{agreement_id}/payments",
        json={"borrower": BORROWER, "amount": str(amount), "payment_method": "upi", "confirmed": confirmed},
    )


def total_repayment(client: TestClient) -> Decimal:
    response = client.post("/v1/quotes", json={"terms": TERMS})
    return Decimal(response.json()["total_repayment"])


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "lendit_transition_total" in response.text


def test_quote(client: TestClient):
    """Test POST /v1/quotes matches standard amortization"""
    response = client.post(
        "/v1/quotes",
        json={"terms": {"amount": "100000", "interest_rate": "12", "duration_months": 12}, "include_schedule": True},
    )

    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["monthly_payment"]) == Decimal("8884.88")
    assert Decimal(data["total_repayment"]) == Decimal("106618.55")
    assert len(data["schedule"]) == 12
    assert Decimal(data["schedule"][-1]["remaining_balance"]) == Decimal("0")


def test_quote_rejects_invalid_terms(client: TestClient):
    response = client.post("/v1/quotes", json={"terms": {"amount": "0", "duration_months": 12}})
    assert response.status_code == 422


def test_request_lifecycle(client: TestClient, notifications):
    """Test request -> claim -> fund -> full repayment -> completed"""
    agreement = create_request(client)
    assert agreement["status"] == "pending"
    assert agreement["kind"] == "request"

    claimed = client.post(f"/v1/agreements/{agreement['id']}/claim", json={"actor": LENDER})
    assert claimed.status_code == 200
    assert claimed.json()["outcome"] == "claimed"
    assert claimed.json()["agreement"]["lender_id"] == "lender-1"

    funded = client.post(f"/v1/agreements/{agreement['id']}/fund", json={"lender": LENDER, "reference": "NEFT-1"})
    assert funded.status_code == 200
    assert funded.json()["status"] == "funded"
    assert funded.json()["funded_at"] is not None

    response = pay(client, agreement["id"], total_repayment(client))
    assert response.status_code == 201
    data = response.json()
    assert data["completed"] is True
    assert data["agreement"]["status"] == "completed"
    assert Decimal(data["remaining_balance"]) == Decimal("0")
    assert Decimal(data["progress_percent"]) == Decimal("100")

    transactions = client.get(f"/v1/agreements/{agreement['id']}/transactions").json()["transactions"]
    assert [t["kind"] for t in transactions] == ["disbursement", "repayment"]

    assert [event["event"] for event in notifications.sent] == ["claimed", "funded", "payment_recorded", "completed"]
    assert notifications.sent[0]["lender_id"] == "lender-1"


def test_second_claim_is_already_claimed(client: TestClient):
    agreement = create_request(client)
    client.post(f"/v1/agreements/{agreement['id']}/claim", json={"actor": LENDER})

    response = client.post(f"/v1/agreements/{agreement['id']}/claim", json={"actor": {"party_id": "lender-2"}})

    assert response.status_code == 409
    assert response.json()["outcome"] == "already_claimed"
    assert response.json()["message"] == "Someone else already took this loan."
    assert client.get(f"/v1/agreements/{agreement['id']}").json()["lender_id"] == "lender-1"


def test_offer_accept_reject(client: TestClient):
    offer = client.post(
        "/v1/agreements/offers",
        json={"lender": LENDER, "borrower": {"name": "Asha Rao"}, "terms": TERMS},
    )
    assert offer.status_code == 201
    offer_id = offer.json()["id"]

    accepted = client.post(f"/v1/agreements/{offer_id}/accept", json={"actor": BORROWER})
    assert accepted.status_code == 200
    assert accepted.json()["agreement"]["borrower_id"] == "borrower-1"

    rejected = client.post(f"/v1/agreements/{offer_id}/reject", json={"actor": BORROWER})
    assert rejected.status_code == 409
    assert rejected.json()["outcome"] == "illegal_transition"


def test_illegal_transition_returns_user_message(client: TestClient):
    """Test paying a loan that is not funded yet"""
    agreement = create_request(client)

    response = pay(client, agreement["id"], "100")

    assert response.status_code == 409
    data = response.json()
    assert data["detail"] == "This action is no longer available for this agreement."
    assert data["action"] == "record_payment"
    assert data["status"] == "pending"


def test_fund_by_other_lender_is_illegal(client: TestClient):
    agreement = create_request(client)
    client.post(f"/v1/agreements/{agreement['id']}/claim", json={"actor": LENDER})

    response = client.post(f"/v1/agreements/{agreement['id']}/fund", json={"lender": {"party_id": "lender-2"}})

    assert response.status_code == 409
    assert client.get(f"/v1/agreements/{agreement['id']}").json()["status"] == "accepted"


@pytest.mark.parametrize("amount", ["0", "-5", "999999"])
def test_invalid_payment_amount(client: TestClient, amount):
    agreement = funded_request(client)

    response = pay(client, agreement["id"], amount)

    assert response.status_code == 422
    assert response.json()["outcome"] == "invalid_amount"


def test_payment_after_completion_is_refused(client: TestClient):
    agreement = funded_request(client)
    pay(client, agreement["id"], total_repayment(client))

    response = pay(client, agreement["id"], "1")

    assert response.status_code == 409
    assert client.get(f"/v1/agreements/{agreement['id']}").json()["status"] == "completed"


def test_unknown_agreement(client: TestClient):
    response = client.get(f"/v1/agreements/{uuid.uuid4()}")
    assert response.status_code == 404

    response = client.post(f"/v1/agreements/{uuid.uuid4()}/claim", json={"actor": LENDER})
    assert response.status_code == 404


def test_marketplace_lists_open_requests(client: TestClient):
    mine = create_request(client)
    theirs = create_request(client, borrower={"party_id": "borrower-2"})
    client.post(f"/v1/agreements/{theirs['id']}/withdraw", json={"actor": {"party_id": "borrower-2"}})

    visible = client.get("/v1/marketplace/requests", params={"viewer_id": "lender-1"}).json()["requests"]
    own = client.get("/v1/marketplace/requests", params={"viewer_id": "borrower-1"}).json()["requests"]

    assert [a["id"] for a in visible] == [mine["id"]]
    assert own == []
    assert client.get(f"/v1/agreements/{theirs['id']}").json()["status"] == "withdrawn"


def test_pending_payment_settled_by_gateway(client: TestClient):
    agreement = funded_request(client)

    response = pay(client, agreement["id"], total_repayment(client), confirmed=False)
    assert response.status_code == 201
    assert response.json()["completed"] is False
    transaction_id = response.json()["transaction"]["id"]
    assert response.json()["transaction"]["status"] == "pending"

    settled = client.post(f"/v1/transactions/{transaction_id}/settlement", json={"outcome": "completed"})
    assert settled.status_code == 200
    assert settled.json()["status"] == "completed"

    again = client.post(f"/v1/transactions/{transaction_id}/settlement", json={"outcome": "failed"})
    assert again.status_code == 409


def test_repayment_summary(client: TestClient):
    agreement = funded_request(client)
    quote = client.post("/v1/quotes", json={"terms": TERMS}).json()
    pay(client, agreement["id"], quote["monthly_payment"])

    response = client.get(f"/v1/agreements/{agreement['id']}/repayment-summary")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "funded"
    assert data["monthly_payment"] == quote["monthly_payment"]
    assert Decimal(data["amount_paid"]) == Decimal(quote["monthly_payment"])
    assert Decimal(data["remaining_balance"]) == Decimal(quote["total_repayment"]) - Decimal(quote["monthly_payment"])
    assert data["next_due_date"] is not None
    assert data["overdue"] is False


def test_schedule_carries_due_dates(client: TestClient):
    agreement = funded_request(client)
    funded_on = date.fromisoformat(agreement["funded_at"][:10])

    response = client.get(f"/v1/agreements/{agreement['id']}/schedule")

    payments = response.json()["payments"]
    assert len(payments) == 6
    assert payments[0]["due_date"] == (funded_on + relativedelta(months=1)).isoformat()


def test_overdue_check_emits_reminder(client: TestClient, notifications):
    agreement = funded_request(client)
    funded_on = date.fromisoformat(agreement["funded_at"][:10])
    late = funded_on + relativedelta(months=1, days=10)

    response = client.post(f"/v1/agreements/{agreement['id']}/overdue-check", json={"today": late.isoformat()})

    assert response.status_code == 200
    data = response.json()
    assert data["overdue"] is True
    assert data["days_until_due"] == -10
    assert data["grace_period_exceeded"] is True
    assert notifications.sent[-1]["event"] == "overdue"
    assert notifications.sent[-1]["data"]["escalate"] is True


def test_rate_beyond_stored_precision_is_rejected(client: TestClient):
    terms = dict(TERMS, interest_rate="10.123456")

    assert client.post("/v1/quotes", json={"terms": terms}).status_code == 422
    response = client.post("/v1/agreements/requests", json={"borrower": BORROWER, "terms": terms})
    assert response.status_code == 422


def test_created_agreement_matches_stored_figures(client: TestClient):
    """Test the create response, later reads and the quote all use the same rate"""
    terms = dict(TERMS, interest_rate="10.1235")
    created = client.post("/v1/agreements/requests", json={"borrower": BORROWER, "terms": terms}).json()
    fetched = client.get(f"/v1/agreements/{created['id']}").json()

    assert Decimal(created["interest_rate"]) == Decimal(fetched["interest_rate"]) == Decimal("10.1235")
    assert created["amount"] == fetched["amount"]

    quoted = client.post("/v1/quotes", json={"terms": terms}).json()
    summary = client.get(f"/v1/agreements/{created['id']}/repayment-summary").json()
    assert summary["total_repayment"] == quoted["total_repayment"]
    assert summary["monthly_payment"] == quoted["monthly_payment"]


@pytest.mark.parametrize("amount", ["1e30", "12345678901234567890", "10.001"])
def test_payment_amount_outside_money_range_is_rejected(client: TestClient, amount):
    agreement = funded_request(client)

    response = pay(client, agreement["id"], amount)

    assert response.status_code == 422
    transactions = client.get(f"/v1/agreements/{agreement['id']}/transactions").json()["transactions"]
    assert [t["kind"] for t in transactions] == ["disbursement"]


def test_refused_payment_still_announces_completion(client: TestClient, db, notifications):
    """Test a fully repaid agreement completed on the 409 path still sends the Completed event"""
    agreement = funded_request(client)
    AgreementRepository(db).append_transaction(
        Transaction(
            id=uuid.uuid4(),
            agreement_id=uuid.UUID(agreement["id"]),
            kind=TransactionKind.REPAYMENT,
            amount=total_repayment(client),
            payment_method=PaymentMethod.BANK,
            status=TransactionStatus.COMPLETED,
            created_at=datetime.now(timezone.utc),
        )
    )
    db.commit()

    response = pay(client, agreement["id"], "1")

    assert response.status_code == 409
    assert response.json()["outcome"] == "illegal_transition"
    assert client.get(f"/v1/agreements/{agreement['id']}").json()["status"] == "completed"
    assert notifications.sent[-1]["event"] == "completed"
    assert notifications.sent[-1]["agreement_id"] == agreement["id"]


def test_transition_logs_carry_request_id(client: TestClient, caplog):
    agreement = create_request(client)
    caplog.set_level(logging.INFO, logger="lendit_gateway.lifecycle")

    response = client.post(
        f"/v1/agreements/{agreement['id']}/claim",
        json={"actor": LENDER},
        headers={"X-Request-ID": "req-claim-1"},
    )

    assert response.headers["X-Request-ID"] == "req-claim-1"
    records = [r for r in caplog.records if r.name == "lendit_gateway.lifecycle"]
    assert [r.outcome for r in records] == ["applied"]
    assert records[0].request_id == "req-claim-1"
