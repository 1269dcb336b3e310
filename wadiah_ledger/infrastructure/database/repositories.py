"""Data access layer for wadiah balances, ledger transactions and bills"""

import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session
from wadiah_ledger.infrastructure.database.models import LaundryOrder, StudentBalance, WadiahTransaction, utcnow
from wadiah_ledger.domain.models import (
    BillPayment,
    OrderStatus,
    PAYABLE_STATUSES,
    SignRule,
    TransactionKind,
    sign_rule,
    signed_delta,
)

# Running total bumped by each kind; kinds not listed only move the balance
RUNNING_TOTAL_COLUMNS = {
    TransactionKind.DEPOSIT: "total_deposited",
    TransactionKind.CHANGE_DEPOSIT: "total_deposited",
    TransactionKind.PAYMENT: "total_used",
    TransactionKind.SEDEKAH: "total_sedekah",
}

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class BalanceLedger:
    """
    Source of truth for how much wadiah credit each student holds.

    Balance rows are only written through `ensure_exists` and `apply_delta`,
    both single statements, so no caller ever writes a balance it read
    earlier.
    """

    def __init__(self, db: Session):
        self.db = db

    def ensure_exists(self, student_id: str) -> None:
        """Insert a zero balance row unless one exists; does not commit"""
        dialect = self.db.get_bind().dialect.name
        try:
            insert = _UPSERT_DIALECTS[dialect]
        except KeyError:
            raise RuntimeError(f"Balance upsert not supported on {dialect}")

        now = utcnow()
        stmt = (
            insert(StudentBalance)
            .values(
                id=uuid.uuid4(),
                student_id=student_id,
                balance=0,
                total_deposited=0,
                total_used=0,
                total_sedekah=0,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["student_id"])
        )
        self.db.execute(stmt)

    def get_or_create(self, student_id: str) -> StudentBalance:
        """Return the student's balance row, creating a zero row on first use"""
        self.ensure_exists(student_id)
        self.db.commit()
        return self.read(student_id)

    def read(self, student_id: str, for_update: bool = False) -> Optional[StudentBalance]:
        query = (
            self.db.query(StudentBalance)
            .filter(StudentBalance.student_id == student_id)
            .populate_existing()
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def read_many(self, student_ids: Iterable[str]) -> Dict[str, StudentBalance]:
        """Fetch balances for several students; students without a row are absent"""
        ids = list(dict.fromkeys(student_ids))
        if not ids:
            return {}
        rows = (
            self.db.query(StudentBalance)
            .filter(StudentBalance.student_id.in_(ids))
            .populate_existing()
            .all()
        )
        return {row.student_id: row for row in rows}

    def apply_delta(self, student_id: str, kind: TransactionKind, amount: int) -> Optional[int]:
        """
        Move the balance by one transaction in a single conditional UPDATE.

        Debits only match while `balance >= amount`, so two racing debits
        cannot both pass against the same pre-race balance.

        Returns:
            balance after the update, or None when a debit was refused
            (or the row does not exist)
        """
        kind = TransactionKind(kind)
        now = utcnow()
        values = {
            "balance": StudentBalance.balance + signed_delta(kind, amount),
            "last_transaction_at": now,
            "updated_at": now,
        }
        total_column = RUNNING_TOTAL_COLUMNS.get(kind)
        if total_column:
            values[total_column] = getattr(StudentBalance, total_column) + amount

        stmt = update(StudentBalance).where(StudentBalance.student_id == student_id)
        if sign_rule(kind) is SignRule.DEBIT:
            stmt = stmt.where(StudentBalance.balance >= amount)
        stmt = (
            stmt.values(values)
            .returning(StudentBalance.balance)
            .execution_options(synchronize_session=False)
        )

        row = self.db.execute(stmt).first()
        return row[0] if row else None


class TransactionRepository:
    """Append-only access to wadiah transactions"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        student_id: str,
        kind: TransactionKind,
        amount: int,
        balance_before: int,
        balance_after: int,
        order_id: Optional[uuid.UUID] = None,
        original_amount: Optional[int] = None,
        rounded_amount: Optional[int] = None,
        notes: Optional[str] = None,
        customer_consent: bool = True,
        processed_by: Optional[str] = None,
    ) -> WadiahTransaction:
        """Persist a ledger row without committing"""
        rounding_diff = None
        if original_amount is not None and rounded_amount is not None:
            rounding_diff = original_amount - rounded_amount

        db_transaction = WadiahTransaction(
            student_id=student_id,
            transaction_type=TransactionKind(kind).value,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            order_id=order_id,
            original_amount=original_amount,
            rounded_amount=rounded_amount,
            rounding_difference=rounding_diff,
            notes=notes,
            customer_consent=customer_consent,
            processed_by=processed_by,
        )
        self.db.add(db_transaction)
        self.db.flush()
        return db_transaction

    def list_for_student(self, student_id: str, limit: int = 50) -> List[WadiahTransaction]:
        """Fetch recent transactions for a student, newest first"""
        return (
            self.db.query(WadiahTransaction)
            .filter(WadiahTransaction.student_id == student_id)
            .order_by(WadiahTransaction.created_at.desc())
            .limit(limit)
            .all()
        )


class OrderRepository:
    """Repository for the bills a checkout settles"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        student_id: str,
        total_price: int,
        status: OrderStatus = OrderStatus.MENUNGGU_PEMBAYARAN,
    ) -> LaundryOrder:
        db_order = LaundryOrder(
            student_id=student_id,
            total_price=total_price,
            status=OrderStatus(status).value,
        )
        self.db.add(db_order)
        self.db.flush()
        return db_order

    def get_by_ids(self, order_ids: List[uuid.UUID]) -> List[LaundryOrder]:
        """Fetch orders in the requested order; unknown ids are skipped"""
        if not order_ids:
            return []
        rows = (
            self.db.query(LaundryOrder)
            .filter(LaundryOrder.id.in_(order_ids))
            .populate_existing()
            .all()
        )
        by_id = {row.id: row for row in rows}
        return [by_id[order_id] for order_id in order_ids if order_id in by_id]

    def claim(self, order_ids: List[uuid.UUID], checkout_id: str) -> bool:
        """
        Reserve payable, unclaimed orders for one checkout in a single UPDATE.

        All or nothing: returns False (after rolling back) when any order was
        claimed, paid or moved meanwhile. Commits on success.
        """
        result = self.db.execute(
            update(LaundryOrder)
            .where(LaundryOrder.id.in_(order_ids))
            .where(LaundryOrder.status.in_([s.value for s in PAYABLE_STATUSES]))
            .where(LaundryOrder.checkout_id.is_(None))
            .values(checkout_id=checkout_id, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(order_ids):
            self.db.rollback()
            return False
        self.db.commit()
        return True

    def release(self, order_ids: List[uuid.UUID], checkout_id: str) -> None:
        """Drop this checkout's claim on orders it did not pay; does not commit"""
        self.db.execute(
            update(LaundryOrder)
            .where(LaundryOrder.id.in_(order_ids))
            .where(LaundryOrder.checkout_id == checkout_id)
            .where(LaundryOrder.status.in_([s.value for s in PAYABLE_STATUSES]))
            .values(checkout_id=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    def mark_paid(
        self,
        payment: BillPayment,
        payment_method: str,
        rounding_type: Optional[str],
        paid_at: datetime,
        paid_by: Optional[str],
        checkout_id: str,
    ) -> bool:
        """
        Mark one order paid, guarded on it still being payable and claimed
        by this checkout.

        Returns:
            False when the order was paid (or moved) by someone else meanwhile
        """
        result = self.db.execute(
            update(LaundryOrder)
            .where(LaundryOrder.id == payment.bill_id)
            .where(LaundryOrder.checkout_id == checkout_id)
            .where(LaundryOrder.status.in_([s.value for s in PAYABLE_STATUSES]))
            .values(
                status=OrderStatus.DIBAYAR.value,
                paid_amount=payment.paid_amount,
                change_amount=payment.change_amount,
                rounding_applied=payment.rounding_applied,
                rounding_type=rounding_type,
                wadiah_used=payment.wadiah_used,
                payment_method=payment_method,
                paid_at=paid_at,
                paid_by=paid_by,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
