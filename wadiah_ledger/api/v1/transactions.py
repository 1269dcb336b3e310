"""Ledger mutation and history endpoints"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from wadiah_ledger.api.dependencies import get_actor, get_request_id
from wadiah_ledger.api.v1.schemas import TransactionHistoryResponse, TransactionRequest, TransactionResponse
from wadiah_ledger.config import settings
from wadiah_ledger.domain.exceptions import (
    ConsentRequired,
    InsufficientBalance,
    InvalidAmount,
    InvalidTransactionKind,
    TransactionFailed,
    TransactionRejected,
)
from wadiah_ledger.domain.models import ActorContext, TransactionKind
from wadiah_ledger.infrastructure.database.models import WadiahTransaction
from wadiah_ledger.infrastructure.database.repositories import TransactionRepository
from wadiah_ledger.infrastructure.database.session import get_db
from wadiah_ledger.services.processor import TransactionProcessor
from wadiah_ledger.utils.currency import insufficient_balance_message

router = APIRouter()


def to_transaction_response(t: WadiahTransaction) -> TransactionResponse:
    kind = TransactionKind(t.transaction_type)
    return TransactionResponse(
        transaction_id=str(t.id),
        student_id=t.student_id,
        transaction_type=kind,
        transaction_label=kind.label,
        amount=t.amount,
        balance_before=t.balance_before,
        balance_after=t.balance_after,
        order_id=str(t.order_id) if t.order_id else None,
        original_amount=t.original_amount,
        rounded_amount=t.rounded_amount,
        rounding_difference=t.rounding_difference,
        notes=t.notes,
        customer_consent=t.customer_consent,
        processed_by=t.processed_by,
        created_at=t.created_at.isoformat(),
    )


def insufficient_balance_detail(e: InsufficientBalance) -> dict:
    return {
        "message": insufficient_balance_message(e.balance_before, e.amount),
        "balance_before": e.balance_before,
        "amount": e.amount,
        "shortfall": e.shortfall,
    }


@router.get("/students/{student_id}/transactions", response_model=TransactionHistoryResponse)
def get_transaction_history(
    student_id: str,
    limit: int = Query(settings.transaction_history_limit, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Recent ledger transactions for a student, newest first"""
    transactions = TransactionRepository(db).list_for_student(student_id, limit=limit)
    return TransactionHistoryResponse(
        student_id=student_id,
        transactions=[to_transaction_response(t) for t in transactions],
    )


@router.post("/students/{student_id}/transactions", response_model=TransactionResponse, status_code=201)
def create_transaction(
    student_id: str,
    request_body: TransactionRequest,
    request: Request,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    """
    Apply one ledger mutation (deposit, refund, adjustment, ...).

    The balance row is created on first use. Debits that exceed the
    balance are refused with 409 and leave nothing behind.
    """
    request_id = get_request_id(request)
    processor = TransactionProcessor(db)

    try:
        db_transaction = processor.process(
            student_id,
            request_body.transaction_type,
            request_body.amount,
            order_id=request_body.order_id,
            notes=request_body.notes,
            customer_consent=request_body.customer_consent or actor.can_waive_consent,
            original_amount=request_body.original_amount,
            rounded_amount=request_body.rounded_amount,
            processed_by=actor.actor_id,
        )
        return to_transaction_response(db_transaction)

    except (InvalidAmount, InvalidTransactionKind) as e:
        logging.warning(f"Invalid transaction: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except ConsentRequired as e:
        logging.warning(f"Consent required: {e}", extra={"request_id": request_id, "student_id": student_id})
        raise HTTPException(status_code=400, detail=str(e))

    except TransactionRejected as e:
        logging.warning(f"Transaction rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except InsufficientBalance as e:
        logging.warning(f"Insufficient balance: {e}", extra={"request_id": request_id, "student_id": student_id})
        raise HTTPException(status_code=409, detail=insufficient_balance_detail(e))

    except TransactionFailed as e:
        logging.error(f"Transaction failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Ledger temporarily unavailable, try again")

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")
