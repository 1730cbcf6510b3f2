"""Domain events emitted by lifecycle transitions for the notification dispatcher"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class EventType(str, Enum):
    CLAIMED = "claimed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    FUNDED = "funded"
    PAYMENT_RECORDED = "payment_recorded"
    COMPLETED = "completed"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class DomainEvent:
    """Something that happened to an agreement that its parties should hear about"""

    type: EventType
    agreement_id: uuid.UUID
    occurred_at: datetime
    lender_id: Optional[str] = None
    borrower_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-safe webhook body"""
        return {
            "event": self.type.value,
            "agreement_id": str(self.agreement_id),
            "occurred_at": self.occurred_at.isoformat(),
            "lender_id": self.lender_id,
            "borrower_id": self.borrower_id,
            "data": {key: _json_safe(value) for key, value in self.data.items()},
        }


def _json_safe(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (str, int, bool)) or value is None:
        return value
    return str(value)
