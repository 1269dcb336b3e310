"""Wadiah balance read endpoints"""

from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from wadiah_ledger.api.v1.schemas import BalanceListResponse, BalanceResponse
from wadiah_ledger.infrastructure.database.models import StudentBalance
from wadiah_ledger.infrastructure.database.repositories import BalanceLedger
from wadiah_ledger.infrastructure.database.session import get_db

router = APIRouter()


def to_balance_response(student_id: str, row: StudentBalance = None) -> BalanceResponse:
    """Students who never transacted read as an all-zero balance"""
    if row is None:
        return BalanceResponse(
            student_id=student_id,
            balance=0,
            total_deposited=0,
            total_used=0,
            total_sedekah=0,
        )
    return BalanceResponse(
        student_id=row.student_id,
        balance=row.balance,
        total_deposited=row.total_deposited,
        total_used=row.total_used,
        total_sedekah=row.total_sedekah,
        last_transaction_at=row.last_transaction_at,
    )


@router.get("/students/{student_id}/balance", response_model=BalanceResponse)
def get_balance(student_id: str, db: Session = Depends(get_db)):
    """Current wadiah balance and running totals for one student"""
    row = BalanceLedger(db).read(student_id)
    return to_balance_response(student_id, row)


@router.get("/balances", response_model=BalanceListResponse)
def get_balances(
    student_id: List[str] = Query(..., description="Student identifiers, repeat the parameter for several"),
    db: Session = Depends(get_db),
):
    """
    Batch balance lookup, e.g. for a class list.

    Returns one entry per requested student, in request order.
    """
    rows = BalanceLedger(db).read_many(student_id)
    student_ids = list(dict.fromkeys(student_id))
    return BalanceListResponse(balances=[to_balance_response(s, rows.get(s)) for s in student_ids])
