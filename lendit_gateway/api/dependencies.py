"""Dependency injection for FastAPI endpoints"""

import logging
from fastapi import BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session
from lendit_gateway.config import Settings, get_settings
from lendit_gateway.domain.agreements import AgreementService
from lendit_gateway.domain.events import DomainEvent
from lendit_gateway.domain.ports import EventSink
from lendit_gateway.infrastructure.clients.notifications import NotificationClient
from lendit_gateway.infrastructure.database.repositories import AgreementRepository
from lendit_gateway.infrastructure.database.session import get_db


class BackgroundEventSink:
    """Queues events for delivery after the response is sent (and the transaction committed)"""

    def __init__(self, background_tasks: BackgroundTasks, client: NotificationClient):
        self.background_tasks = background_tasks
        self.client = client

    def emit(self, event: DomainEvent) -> None:
        logging.info(
            "Domain event queued",
            extra={"event": event.type.value, "agreement_id": str(event.agreement_id)},
        )
        self.background_tasks.add_task(self.client.send_event, event.to_payload())


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_notification_client(settings: Settings = Depends(get_settings)) -> NotificationClient:
    """Provide notification webhook client instance"""
    return NotificationClient(settings)


def get_event_sink(
    background_tasks: BackgroundTasks,
    client: NotificationClient = Depends(get_notification_client),
) -> EventSink:
    return BackgroundEventSink(background_tasks, client)


def get_agreement_service(
    db: Session = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
    settings: Settings = Depends(get_settings),
    request_id: str = Depends(get_request_id),
) -> AgreementService:
    """Service bound to this request's session, event sink and request ID"""
    return AgreementService(
        AgreementRepository(db),
        events,
        settings.repayment_policy(),
        request_id=request_id,
    )
