"""Agreement lifecycle service - the operations the API layer calls"""

import logging
import uuid
from datetime import date, datetime
from typing import Callable, List, Optional, Sequence, Union

from lendit_gateway.domain import ledger, schedule
from lendit_gateway.domain.amortization import Number, generate_amortization_schedule, quote, to_money
from lendit_gateway.domain.claims import ClaimCoordinator, ClaimResult
from lendit_gateway.domain.events import DomainEvent, EventType
from lendit_gateway.domain.exceptions import IllegalTransition, InvalidAmount
from lendit_gateway.domain.models import (
    Actor,
    AgreementKind,
    AgreementStatus,
    Contact,
    DueStatus,
    LedgerPosition,
    LoanAgreement,
    LoanConditions,
    LoanTerms,
    PaymentMethod,
    PaymentReceipt,
    RepaymentPolicy,
    RepaymentSummary,
    Role,
    ScheduledPayment,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from lendit_gateway.domain.ports import AgreementStore, EventSink
from lendit_gateway.domain.state_machine import Action, Transition, decide
from lendit_gateway.infrastructure.observability.logging import log_transition
from lendit_gateway.infrastructure.observability.metrics import record_repayment, record_transition
from lendit_gateway.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

FINAL_TRANSACTION_STATUSES = (TransactionStatus.COMPLETED, TransactionStatus.FAILED, TransactionStatus.CANCELLED)


class AgreementService:
    """
    Drives agreements through their lifecycle.

    Every change is decided by the state machine and then written with the
    store's compare-and-swap on the status and version that were observed, so
    a concurrent writer turns the second change into IllegalTransition (or
    ALREADY_CLAIMED for claim/accept) instead of a lost update. Two repayments
    racing against the same balance therefore cannot both pass the overpay
    check.

    Business rule violations surface as IllegalTransition, InvalidAmount,
    AgreementNotFound. Store and transport errors propagate untouched.
    """

    def __init__(
        self,
        store: AgreementStore,
        events: EventSink,
        policy: Optional[RepaymentPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
        request_id: Optional[str] = None,
    ):
        self.store = store
        self.events = events
        self.policy = policy or RepaymentPolicy()
        self.clock = clock
        self.request_id = request_id
        self.claims = ClaimCoordinator(store, clock, request_id=request_id)

    # Creation

    def create_offer(
        self,
        lender: Actor,
        borrower: Contact,
        terms: LoanTerms,
        payment_method: PaymentMethod = PaymentMethod.UPI,
        purpose: Optional[str] = None,
        conditions: Optional[LoanConditions] = None,
        smart_contract: bool = False,
    ) -> LoanAgreement:
        """Lender offers a loan to a specific (possibly unregistered) borrower"""
        if lender.role != Role.LENDER:
            raise IllegalTransition("create_offer", AgreementStatus.PENDING.value, "requires the lender role")

        now = self.clock()
        agreement = LoanAgreement(
            id=uuid.uuid4(),
            kind=AgreementKind.OFFER,
            amount=terms.amount,
            interest_rate=terms.interest_rate,
            duration_months=terms.duration_months,
            status=AgreementStatus.PENDING,
            payment_method=payment_method,
            created_at=now,
            updated_at=now,
            lender_id=lender.party_id,
            lender_name=lender.name,
            lender_email=lender.email,
            borrower_name=borrower.name,
            borrower_email=borrower.email,
            purpose=purpose,
            conditions=conditions,
            smart_contract=smart_contract,
        )
        created = self.store.create_agreement(agreement)
        logger.info(
            "Loan offer created",
            extra={"agreement_id": str(created.id), "lender_id": lender.party_id, "request_id": self.request_id},
        )
        return created

    def create_request(
        self,
        borrower: Actor,
        terms: LoanTerms,
        payment_method: PaymentMethod = PaymentMethod.UPI,
        purpose: Optional[str] = None,
        conditions: Optional[LoanConditions] = None,
        smart_contract: bool = False,
    ) -> LoanAgreement:
        """Borrower posts a request any lender may claim"""
        if borrower.role != Role.BORROWER:
            raise IllegalTransition("create_request", AgreementStatus.PENDING.value, "requires the borrower role")

        now = self.clock()
        agreement = LoanAgreement(
            id=uuid.uuid4(),
            kind=AgreementKind.REQUEST,
            amount=terms.amount,
            interest_rate=terms.interest_rate,
            duration_months=terms.duration_months,
            status=AgreementStatus.PENDING,
            payment_method=payment_method,
            created_at=now,
            updated_at=now,
            borrower_id=borrower.party_id,
            borrower_name=borrower.name,
            borrower_email=borrower.email,
            purpose=purpose,
            conditions=conditions,
            smart_contract=smart_contract,
        )
        created = self.store.create_agreement(agreement)
        logger.info(
            "Loan request created",
            extra={"agreement_id": str(created.id), "borrower_id": borrower.party_id, "request_id": self.request_id},
        )
        return created

    # Reads

    def get_agreement(self, agreement_id: uuid.UUID) -> LoanAgreement:
        return self.store.get_agreement(agreement_id)

    def list_open_requests(self, viewer_id: Optional[str] = None) -> List[LoanAgreement]:
        """Marketplace view: pending requests, minus the viewer's own"""
        return self.store.list_open_requests(exclude_borrower_id=viewer_id)

    def list_transactions(self, agreement_id: uuid.UUID) -> List[Transaction]:
        self.store.get_agreement(agreement_id)
        return self.store.list_transactions(agreement_id)

    # Claim / accept

    def claim(self, agreement_id: uuid.UUID, lender: Actor) -> ClaimResult:
        result = self._race(Action.CLAIM, agreement_id, lender, self.claims.claim)
        if result.succeeded:
            self._emit(EventType.CLAIMED, result.agreement)
        return result

    def accept(self, agreement_id: uuid.UUID, borrower: Actor) -> ClaimResult:
        result = self._race(Action.ACCEPT, agreement_id, borrower, self.claims.accept)
        if result.succeeded:
            self._emit(EventType.ACCEPTED, result.agreement)
        return result

    # Other transitions

    def reject(self, agreement_id: uuid.UUID, borrower: Actor) -> LoanAgreement:
        agreement = self._apply(self.store.get_agreement(agreement_id), Action.REJECT, borrower)
        self._emit(EventType.REJECTED, agreement, rejected_by=borrower.party_id)
        return agreement

    def withdraw(self, agreement_id: uuid.UUID, borrower: Actor) -> LoanAgreement:
        agreement = self._apply(self.store.get_agreement(agreement_id), Action.WITHDRAW, borrower)
        self._emit(EventType.WITHDRAWN, agreement)
        return agreement

    def fund(
        self,
        agreement_id: uuid.UUID,
        lender: Actor,
        payment_method: Optional[PaymentMethod] = None,
        reference: Optional[str] = None,
    ) -> LoanAgreement:
        """Bound lender disburses the principal; status and disbursement land together"""
        agreement = self.store.get_agreement(agreement_id)
        disbursement = Transaction(
            id=uuid.uuid4(),
            agreement_id=agreement.id,
            kind=TransactionKind.DISBURSEMENT,
            amount=to_money(agreement.amount),
            payment_method=payment_method or agreement.payment_method,
            status=TransactionStatus.COMPLETED,
            created_at=self.clock(),
            reference=reference,
        )
        funded = self._apply(agreement, Action.FUND, lender, [disbursement])
        self._emit(EventType.FUNDED, funded, amount=disbursement.amount, transaction_id=disbursement.id)
        return funded

    # Repayment

    def record_payment(
        self,
        agreement_id: uuid.UUID,
        borrower: Actor,
        amount: Number,
        payment_method: PaymentMethod,
        reference: Optional[str] = None,
        confirmed: bool = True,
    ) -> PaymentReceipt:
        """
        Append a repayment and complete the agreement once it is fully repaid.

        confirmed=True stores the repayment as completed (the gateway already
        reported success); otherwise it stays pending until settle_transaction.

        Raises:
            IllegalTransition: not funded, not the bound borrower, or already
                fully repaid (the agreement is completed first)
            InvalidAmount: non-positive or overpaying amount
        """
        agreement = self.store.get_agreement(agreement_id)
        self._decide(agreement, Action.RECORD_PAYMENT, borrower)

        position = ledger.summarize(agreement, self.store.list_transactions(agreement_id))
        if position.settled:
            self._complete(agreement, position)
            self._refuse(agreement, Action.RECORD_PAYMENT, "illegal", borrower)
            raise IllegalTransition(
                Action.RECORD_PAYMENT.value, AgreementStatus.COMPLETED.value, "agreement is fully repaid"
            )

        try:
            money = ledger.repayment_amount(amount)
            ledger.ensure_repayment_allowed(position, money, self.policy.overpayment_tolerance)
        except InvalidAmount:
            self._refuse(agreement, Action.RECORD_PAYMENT, "invalid_amount", borrower)
            raise

        repayment = Transaction(
            id=uuid.uuid4(),
            agreement_id=agreement.id,
            kind=TransactionKind.REPAYMENT,
            amount=money,
            payment_method=payment_method,
            status=TransactionStatus.COMPLETED if confirmed else TransactionStatus.PENDING,
            created_at=self.clock(),
            reference=reference,
        )
        agreement = self._apply(agreement, Action.RECORD_PAYMENT, borrower, [repayment])
        record_repayment(money)
        self._emit(
            EventType.PAYMENT_RECORDED,
            agreement,
            amount=money,
            transaction_id=repayment.id,
            status=repayment.status,
        )

        position = ledger.summarize(agreement, self.store.list_transactions(agreement_id))
        completed = False
        if ledger.eligible_for_completion(agreement, position):
            agreement = self._complete(agreement, position)
            completed = agreement.status == AgreementStatus.COMPLETED

        return PaymentReceipt(agreement=agreement, transaction=repayment, position=position, completed=completed)

    def settle_transaction(self, transaction_id: uuid.UUID, outcome: TransactionStatus) -> LoanAgreement:
        """
        Payment gateway callback: flip a pending transaction to its final status.

        Raises:
            TransactionNotFound
            IllegalTransition: outcome is not final or the transaction is already settled
            InvalidAmount: completing it would overpay the agreement
        """
        if outcome not in FINAL_TRANSACTION_STATUSES:
            raise IllegalTransition("settle", TransactionStatus.PENDING.value, f"'{outcome.value}' is not a final outcome")

        transaction = self.store.get_transaction(transaction_id)
        if transaction.status != TransactionStatus.PENDING:
            raise IllegalTransition("settle", transaction.status.value, "transaction already settled")

        agreement = self.store.get_agreement(transaction.agreement_id)

        if outcome == TransactionStatus.COMPLETED and transaction.kind == TransactionKind.REPAYMENT:
            position = ledger.summarize(agreement, self.store.list_transactions(agreement.id))
            if position.amount_paid + transaction.amount > position.total_repayment + self.policy.overpayment_tolerance:
                raise InvalidAmount(f"Settling {transaction.amount} would exceed total repayment")

            # The overpay check above read this version; a repayment landing in between must fail it
            touched = self.store.conditional_update(
                agreement.id,
                agreement.status,
                {"updated_at": self.clock()},
                expected_version=agreement.version,
            )
            if not touched:
                raise IllegalTransition("settle", agreement.status.value, "agreement changed concurrently")

        if not self.store.update_transaction_status(transaction_id, TransactionStatus.PENDING, outcome):
            raise IllegalTransition("settle", TransactionStatus.PENDING.value, "transaction already settled")

        logger.info(
            "Transaction settled",
            extra={
                "transaction_id": str(transaction_id),
                "agreement_id": str(agreement.id),
                "outcome": outcome.value,
                "request_id": self.request_id,
            },
        )
        if outcome == TransactionStatus.COMPLETED and transaction.kind == TransactionKind.REPAYMENT:
            self._emit(
                EventType.PAYMENT_RECORDED,
                agreement,
                amount=transaction.amount,
                transaction_id=transaction.id,
                status=outcome,
            )

        return self.reconcile(agreement.id)

    def reconcile(self, agreement_id: uuid.UUID) -> LoanAgreement:
        """Recompute the ledger and complete a funded agreement that is fully repaid"""
        agreement = self.store.get_agreement(agreement_id)
        if agreement.status != AgreementStatus.FUNDED:
            return agreement

        position = ledger.summarize(agreement, self.store.list_transactions(agreement_id))
        if ledger.eligible_for_completion(agreement, position):
            return self._complete(agreement, position)
        return agreement

    # Derived figures

    def get_repayment_summary(
        self,
        agreement_id: uuid.UUID,
        today: Optional[Union[date, datetime]] = None,
    ) -> RepaymentSummary:
        agreement = self.store.get_agreement(agreement_id)
        loan_quote = quote(agreement.terms)
        position = ledger.summarize(agreement, self.store.list_transactions(agreement_id))
        due = self._due_status(agreement, position.amount_paid, loan_quote.monthly_payment, today)

        return RepaymentSummary(
            agreement_id=agreement.id,
            status=agreement.status,
            monthly_payment=loan_quote.monthly_payment,
            total_repayment=loan_quote.total_repayment,
            amount_paid=position.amount_paid,
            remaining_balance=position.remaining_balance,
            progress_percent=position.progress_percent,
            next_due_date=due.next_due_date,
            days_until_due=due.days_until_due,
            overdue=due.overdue,
            grace_period_exceeded=due.grace_period_exceeded,
        )

    def get_schedule(self, agreement_id: uuid.UUID) -> List[ScheduledPayment]:
        """Amortization schedule, with due dates once the loan is funded"""
        agreement = self.store.get_agreement(agreement_id)
        dates = None
        if agreement.funded_at is not None:
            dates = schedule.due_dates(agreement.funded_at, agreement.duration_months)
        return generate_amortization_schedule(agreement.terms, dates)

    def check_overdue(
        self,
        agreement_id: uuid.UUID,
        today: Optional[Union[date, datetime]] = None,
    ) -> DueStatus:
        """Evaluate due status and emit an Overdue event for the reminder channels"""
        agreement = self.store.get_agreement(agreement_id)
        position = ledger.summarize(agreement, self.store.list_transactions(agreement_id))
        due = self._due_status(agreement, position.amount_paid, quote(agreement.terms).monthly_payment, today)

        if due.overdue:
            self._emit(
                EventType.OVERDUE,
                agreement,
                next_due_date=due.next_due_date,
                days_overdue=-due.days_until_due,
                escalate=due.grace_period_exceeded,
            )
        return due

    # Internals

    def _due_status(self, agreement: LoanAgreement, amount_paid, monthly_payment, today) -> DueStatus:
        if agreement.status != AgreementStatus.FUNDED or agreement.funded_at is None:
            return DueStatus(
                next_due_date=None,
                days_until_due=None,
                overdue=False,
                grace_period_exceeded=False,
                periods_covered=0,
            )
        return schedule.due_status(
            funded_at=agreement.funded_at,
            duration_months=agreement.duration_months,
            amount_paid=amount_paid,
            monthly_payment=monthly_payment,
            today=today or self.clock(),
            grace_period_days=self.policy.grace_period_days,
        )

    def _race(self, action: Action, agreement_id: uuid.UUID, actor: Actor, take) -> ClaimResult:
        try:
            return take(agreement_id, actor)
        except IllegalTransition:
            record_transition(action.value, "illegal")
            log_transition(str(agreement_id), action.value, "illegal", actor.party_id, self.request_id)
            raise

    def _decide(
        self,
        agreement: LoanAgreement,
        action: Action,
        actor: Optional[Actor],
        position: Optional[LedgerPosition] = None,
    ) -> Transition:
        try:
            return decide(agreement, action, actor, self.clock(), position)
        except IllegalTransition:
            self._refuse(agreement, action, "illegal", actor)
            raise

    def _refuse(self, agreement: LoanAgreement, action: Action, outcome: str, actor: Optional[Actor]) -> None:
        record_transition(action.value, outcome)
        log_transition(str(agreement.id), action.value, outcome, actor.party_id if actor else None, self.request_id)

    def _apply(
        self,
        agreement: LoanAgreement,
        action: Action,
        actor: Optional[Actor],
        transactions: Sequence[Transaction] = (),
    ) -> LoanAgreement:
        transition = self._decide(agreement, action, actor)

        applied = self.store.conditional_update(
            agreement.id,
            transition.expected_status,
            transition.changes,
            transactions,
            expected_version=transition.expected_version,
        )
        if not applied:
            self._refuse(agreement, action, "conflict", actor)
            raise IllegalTransition(action.value, agreement.status.value, "agreement changed concurrently")

        record_transition(action.value, "applied")
        log_transition(str(agreement.id), action.value, "applied", actor.party_id if actor else None, self.request_id)
        return self.store.get_agreement(agreement.id)

    def _complete(self, agreement: LoanAgreement, position: LedgerPosition) -> LoanAgreement:
        transition = self._decide(agreement, Action.COMPLETE, None, position)

        applied = self.store.conditional_update(
            agreement.id,
            transition.expected_status,
            transition.changes,
            expected_version=transition.expected_version,
        )
        if not applied:
            # Another writer completed or changed it first
            return self.store.get_agreement(agreement.id)

        record_transition(Action.COMPLETE.value, "applied")
        log_transition(str(agreement.id), Action.COMPLETE.value, "applied", request_id=self.request_id)
        completed = self.store.get_agreement(agreement.id)
        self._emit(EventType.COMPLETED, completed)
        return completed

    def _emit(self, event_type: EventType, agreement: LoanAgreement, **data) -> None:
        self.events.emit(
            DomainEvent(
                type=event_type,
                agreement_id=agreement.id,
                occurred_at=self.clock(),
                lender_id=agreement.lender_id,
                borrower_id=agreement.borrower_id,
                data=data,
            )
        )
