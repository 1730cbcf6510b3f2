"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class IllegalTransition(DomainException):
    """Action is not permitted from the agreement's current state or for this actor"""

    def __init__(self, action: str, status: str, reason: str = ""):
        self.action = action
        self.status = status
        self.reason = reason
        message = f"Cannot {action} agreement in status '{status}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InvalidAmount(DomainException):
    """Repayment amount is non-positive or would overpay the agreement"""

    pass


class InvalidTermsError(DomainException):
    """Loan terms violate principal, rate or duration bounds"""

    pass


class AgreementNotFound(DomainException):
    """Referenced agreement does not exist"""

    def __init__(self, agreement_id):
        self.agreement_id = agreement_id
        super().__init__(f"Agreement {agreement_id} not found")


class TransactionNotFound(DomainException):
    """Referenced transaction does not exist"""

    def __init__(self, transaction_id):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class NotificationError(DomainException):
    """Notification dispatcher rejected or never acknowledged an event"""

    pass
