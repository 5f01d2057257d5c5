"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

SERVICE_NAME = "float-ledger"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = SERVICE_NAME


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


logger = logging.getLogger("float_ledger.ledger")


def log_settlement_event(
    step: str,
    settlement_id: str,
    account_id: str,
    status: str,
    amount_cents: int,
    balance_after_cents: Optional[int] = None,
    **extra: Any,
) -> None:
    """Log a settlement lifecycle step (created, dispatched, completed, failed, cancelled)"""
    logger.info(
        "Settlement %s",
        step,
        extra={
            "step": f"settlement_{step}",
            "settlement_id": settlement_id,
            "account_id": account_id,
            "settlement_status": status,
            "amount_cents": amount_cents,
            "balance_after_cents": balance_after_cents,
            **extra,
        },
    )


def log_net_settlement(account_id: str, settlement_id: str, direction: str, amount_cents: int, scheduled_for: str) -> None:
    logger.info(
        "Net settlement raised",
        extra={
            "step": "net_settlement_raised",
            "account_id": account_id,
            "settlement_id": settlement_id,
            "net_direction": direction,
            "amount_cents": amount_cents,
            "scheduled_for": scheduled_for,
        },
    )


def log_invariant_violation(account_id: str, detail: str) -> None:
    """Data-integrity alert; never auto-corrected"""
    logger.critical(
        "Ledger invariant violated",
        extra={"step": "invariant_violation", "account_id": account_id, "detail": detail},
    )
