"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field, UUID4
from datetime import datetime
from typing import List, Optional

from wadiah_ledger.domain.models import ChangeAction, RoundingPolicy, TransactionKind


class BalanceResponse(BaseModel):
    """Response for GET /v1/students/{student_id}/balance"""

    student_id: str
    balance: int
    total_deposited: int
    total_used: int
    total_sedekah: int
    last_transaction_at: Optional[datetime] = None


class BalanceListResponse(BaseModel):
    """Response for GET /v1/balances"""

    balances: List[BalanceResponse]


class TransactionRequest(BaseModel):
    """Request body for POST /v1/students/{student_id}/transactions"""

    transaction_type: TransactionKind
    amount: int = Field(..., description="Whole Rupiah, must be positive")
    order_id: Optional[UUID4] = None
    notes: Optional[str] = Field(None, max_length=500)
    customer_consent: bool = True
    original_amount: Optional[int] = Field(None, ge=0)
    rounded_amount: Optional[int] = Field(None, ge=0)


class TransactionResponse(BaseModel):
    """Single wadiah ledger transaction"""

    transaction_id: str
    student_id: str
    transaction_type: TransactionKind
    transaction_label: str
    amount: int
    balance_before: int
    balance_after: int
    order_id: Optional[str] = None
    original_amount: Optional[int] = None
    rounded_amount: Optional[int] = None
    rounding_difference: Optional[int] = None
    notes: Optional[str] = None
    customer_consent: bool
    processed_by: Optional[str] = None
    created_at: str


class TransactionHistoryResponse(BaseModel):
    """Response for GET /v1/students/{student_id}/transactions"""

    student_id: str
    transactions: List[TransactionResponse]


class SettlementQuoteRequest(BaseModel):
    """Request body for POST /v1/settlement/quote"""

    bill_total: int = Field(..., ge=0)
    balance_to_use: int = Field(0, ge=0)
    rounding_mode: RoundingPolicy = RoundingPolicy.NONE
    paid_amount: int = Field(0, ge=0)


class SettlementResponse(BaseModel):
    """Settlement breakdown for a checkout"""

    bill_total: int
    balance_to_use: int
    amount_after_balance: int
    due_amount: int
    rounding_discount: int
    paid_amount: int
    change_amount: int
    is_sufficient: bool
    rounding_mode: Optional[RoundingPolicy] = None
    rounding_label: Optional[str] = None
    needs_rounding: Optional[bool] = None
    rounding_multiple: Optional[int] = None


class CheckoutRequestBody(BaseModel):
    """Request body for POST /v1/checkout"""

    bill_ids: List[UUID4] = Field(..., min_length=1)
    payment_method: str = Field("cash", min_length=1)
    paid_amount: int = Field(0, ge=0)
    balance_to_use: int = Field(0, ge=0)
    rounding_mode: RoundingPolicy = RoundingPolicy.NONE
    change_action: Optional[ChangeAction] = None
    customer_consent: bool = False
    paid_at: Optional[datetime] = None


class BillPaymentSchema(BaseModel):
    """Share of the checkout recorded on one bill"""

    bill_id: str
    wadiah_used: int
    rounding_applied: int
    paid_amount: int
    change_amount: int


class CheckoutResponse(BaseModel):
    """Response for POST /v1/checkout"""

    checkout_id: str
    student_id: str
    state: str
    payment_method: str
    settlement: SettlementResponse
    bills: List[BillPaymentSchema]
    transactions: List[TransactionResponse]
    balance_after: Optional[int] = None
