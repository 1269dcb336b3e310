"""Structured JSON logging for ledger and checkout audit trails"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from wadiah_ledger.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


logger = logging.getLogger("wadiah_ledger")


def log_transaction(
    student_id: str,
    kind: str,
    amount: int,
    outcome: str,
    balance_before: Optional[int] = None,
    balance_after: Optional[int] = None,
    transaction_id: Optional[str] = None,
    processed_by: Optional[str] = None,
) -> None:
    """Log one ledger mutation attempt"""
    logger.info(
        "Wadiah transaction processed" if outcome == "success" else "Wadiah transaction rejected",
        extra={
            "step": "ledger_transaction",
            "student_id": student_id,
            "transaction_type": kind,
            "amount": amount,
            "outcome": outcome,
            "balance_before": balance_before,
            "balance_after": balance_after,
            "transaction_id": transaction_id,
            "processed_by": processed_by,
        },
    )


def log_checkout_state(checkout_id: str, student_id: Optional[str], state: str, **fields: Any) -> None:
    """Log a checkout state transition"""
    logger.info(
        "Checkout state changed",
        extra={"step": "checkout", "checkout_id": checkout_id, "student_id": student_id, "state": state, **fields},
    )


def log_reconciliation_case(case: Dict[str, Any]) -> None:
    """Log a checkout that committed ledger rows but could not mark its bills paid"""
    logger.error(
        "Checkout requires manual reconciliation",
        extra={"step": "reconciliation_required", **case},
    )
