"""POST /v1/checkout - settle one or more bills of a student"""

import time
import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from wadiah_ledger.api.dependencies import get_actor, get_request_id, get_rounding_settings
from wadiah_ledger.api.v1.schemas import BillPaymentSchema, CheckoutRequestBody, CheckoutResponse
from wadiah_ledger.api.v1.settlement import to_settlement_response
from wadiah_ledger.api.v1.transactions import insufficient_balance_detail, to_transaction_response
from wadiah_ledger.domain.exceptions import (
    BillNotFound,
    ConsentRequired,
    InsufficientBalance,
    InvalidCheckout,
    ReconciliationRequired,
    TransactionFailed,
    TransactionRejected,
)
from wadiah_ledger.domain.models import ActorContext, RoundingSettings
from wadiah_ledger.infrastructure.database.session import get_db
from wadiah_ledger.services.checkout import CheckoutOrchestrator, CheckoutRequest

router = APIRouter()


@router.post("/checkout", response_model=CheckoutResponse)
def checkout(
    request_body: CheckoutRequestBody,
    request: Request,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
    rounding_settings: RoundingSettings = Depends(get_rounding_settings),
):
    """
    Pay bills with wadiah balance and/or cash.

    Flow:
    1. Validate bills, tender, rounding and consent (nothing written on failure)
    2. Debit wadiah balance if requested
    3. Compute settlement
    4. Record sedekah and/or save change as balance
    5. Mark bills paid
    """
    start_time = time.time()
    request_id = get_request_id(request)
    orchestrator = CheckoutOrchestrator(db, rounding_settings)

    try:
        result = orchestrator.checkout(
            CheckoutRequest(
                bill_ids=list(request_body.bill_ids),
                payment_method=request_body.payment_method,
                paid_amount=request_body.paid_amount,
                balance_to_use=request_body.balance_to_use,
                rounding_mode=request_body.rounding_mode,
                change_action=request_body.change_action,
                customer_consent=request_body.customer_consent,
                paid_at=request_body.paid_at,
            ),
            actor,
        )

    except BillNotFound as e:
        logging.warning(f"Bills not found: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=404, detail=str(e))

    except ConsentRequired as e:
        logging.warning(f"Consent required: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail=str(e))

    except InvalidCheckout as e:
        logging.warning(f"Invalid checkout: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail=str(e))

    except InsufficientBalance as e:
        logging.warning(f"Insufficient balance: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=insufficient_balance_detail(e))

    except TransactionRejected as e:
        logging.warning(f"Checkout rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except TransactionFailed as e:
        logging.error(f"Checkout failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Ledger temporarily unavailable, try again")

    except ReconciliationRequired as e:
        logging.error(f"Checkout needs reconciliation: {e}", extra={"request_id": request_id})
        raise HTTPException(
            status_code=500,
            detail={"message": "Checkout partially applied, reconciliation required", "case": e.to_dict()},
        )

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    duration_ms = (time.time() - start_time) * 1000
    logging.info(
        "Checkout completed",
        extra={"request_id": request_id, "checkout_id": result.checkout_id, "duration_ms": duration_ms},
    )

    return CheckoutResponse(
        checkout_id=result.checkout_id,
        student_id=result.student_id,
        state=result.state.value,
        payment_method=result.payment_method,
        settlement=to_settlement_response(
            result.settlement,
            request_body.rounding_mode,
            rounding_settings.rounding_multiple,
        ),
        bills=[
            BillPaymentSchema(
                bill_id=str(p.bill_id),
                wadiah_used=p.wadiah_used,
                rounding_applied=p.rounding_applied,
                paid_amount=p.paid_amount,
                change_amount=p.change_amount,
            )
            for p in result.payments
        ],
        transactions=[to_transaction_response(t) for t in result.transactions],
        balance_after=result.balance_after,
    )
