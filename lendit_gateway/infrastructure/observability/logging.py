"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

SERVICE_NAME = "lendit-gateway"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def __init__(self, *args, service_name: str = SERVICE_NAME, **kwargs):
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = self.service_name


def setup_logging(level: str = "INFO", service_name: str = SERVICE_NAME) -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        service_name=service_name,
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_transition(
    agreement_id: str,
    action: str,
    outcome: str,
    actor_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> None:
    """Log a lifecycle action and how it ended (applied, already_claimed, illegal, ...)"""
    logging.getLogger("lendit_gateway.lifecycle").info(
        "Agreement transition",
        extra={
            "agreement_id": agreement_id,
            "action": action,
            "outcome": outcome,
            "actor_id": actor_id,
            "request_id": request_id,
        },
    )
