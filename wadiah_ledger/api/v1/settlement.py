"""POST /v1/settlement/quote - preview a checkout's settlement"""

from fastapi import APIRouter, Depends, HTTPException

from wadiah_ledger.api.dependencies import get_rounding_settings
from wadiah_ledger.api.v1.schemas import SettlementQuoteRequest, SettlementResponse
from wadiah_ledger.domain.models import RoundingPolicy, RoundingSettings, Settlement
from wadiah_ledger.domain.settlement import compute_settlement, needs_rounding

router = APIRouter()


def to_settlement_response(
    settlement: Settlement,
    rounding_mode: RoundingPolicy = None,
    multiple: int = None,
) -> SettlementResponse:
    return SettlementResponse(
        bill_total=settlement.bill_total,
        balance_to_use=settlement.balance_to_use,
        amount_after_balance=settlement.amount_after_balance,
        due_amount=settlement.due_amount,
        rounding_discount=settlement.rounding_discount,
        paid_amount=settlement.paid_amount,
        change_amount=settlement.change_amount,
        is_sufficient=settlement.is_sufficient,
        rounding_mode=rounding_mode,
        rounding_label=rounding_mode.label if rounding_mode else None,
        needs_rounding=needs_rounding(settlement.amount_after_balance, multiple) if multiple else None,
        rounding_multiple=multiple,
    )


@router.post("/settlement/quote", response_model=SettlementResponse)
def quote_settlement(
    request_body: SettlementQuoteRequest,
    rounding_settings: RoundingSettings = Depends(get_rounding_settings),
):
    """
    Compute what a checkout would charge, without touching the ledger.

    Only `none` and `round_down` are computed; other rounding modes are 422.
    """
    multiple = rounding_settings.rounding_multiple
    try:
        settlement = compute_settlement(
            request_body.bill_total,
            balance_to_use=request_body.balance_to_use,
            rounding_mode=request_body.rounding_mode,
            paid_amount=request_body.paid_amount,
            multiple=multiple,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return to_settlement_response(settlement, request_body.rounding_mode, multiple)
