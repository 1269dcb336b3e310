"""Transaction processor - applies one wadiah ledger mutation as a single unit"""

import logging
import uuid
from typing import Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from wadiah_ledger.config import settings
from wadiah_ledger.domain.exceptions import (
    ConsentRequired,
    InsufficientBalance,
    InvalidAmount,
    InvalidTransactionKind,
    TransactionFailed,
    TransactionRejected,
)
from wadiah_ledger.domain.models import CONSENT_REQUIRED_KINDS, TransactionKind, signed_delta
from wadiah_ledger.infrastructure.database.models import WadiahTransaction
from wadiah_ledger.infrastructure.database.repositories import BalanceLedger, TransactionRepository
from wadiah_ledger.infrastructure.observability.logging import log_transaction
from wadiah_ledger.infrastructure.observability.metrics import record_transaction

NOTE_DEPOSIT = "Setoran wadiah manual"
NOTE_CHANGE_DEPOSIT = "Sisa kembalian disimpan sebagai saldo wadiah"
NOTE_PAYMENT = "Penggunaan saldo wadiah untuk pembayaran"
NOTE_SEDEKAH = "Pembulatan ke bawah (sedekah/diskon)"


def _coerce_kind(kind) -> TransactionKind:
    try:
        return TransactionKind(kind)
    except ValueError:
        raise InvalidTransactionKind(kind) from None


def _validate_amount(amount) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise InvalidAmount(amount)


class TransactionProcessor:
    """
    Apply ledger mutations for students.

    Each `process` call runs ensure-row, conditional balance update and
    transaction insert inside one database transaction and commits it, so
    a call either fully happens or leaves no trace.
    """

    def __init__(self, db: Session, max_retries: Optional[int] = None):
        self.db = db
        self.ledger = BalanceLedger(db)
        self.transactions = TransactionRepository(db)
        self.max_retries = settings.transaction_max_retries if max_retries is None else max_retries

    def process(
        self,
        student_id: str,
        kind: TransactionKind,
        amount: int,
        *,
        order_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
        customer_consent: bool = True,
        original_amount: Optional[int] = None,
        rounded_amount: Optional[int] = None,
        processed_by: Optional[str] = None,
    ) -> WadiahTransaction:
        """
        Apply one mutation and return its transaction row.

        Raises:
            InvalidTransactionKind: kind is not a ledger kind
            InvalidAmount: amount is not a positive integer
            ConsentRequired: sedekah or change deposit without customer consent
            InsufficientBalance: debit exceeds the current balance (nothing written)
            TransactionRejected: the database refused the row (not retried)
            TransactionFailed: persistence kept failing after the allowed retries
        """
        try:
            kind = _coerce_kind(kind)
            _validate_amount(amount)
        except (InvalidTransactionKind, InvalidAmount):
            record_transaction(kind.value if isinstance(kind, TransactionKind) else "unknown", "invalid", 0)
            raise

        if kind in CONSENT_REQUIRED_KINDS and not customer_consent:
            record_transaction(kind.value, "consent_required", 0)
            raise ConsentRequired(f"{kind.label} needs the customer's consent")

        attempt = 0
        while True:
            try:
                db_transaction = self._apply(
                    student_id,
                    kind,
                    amount,
                    order_id=order_id,
                    notes=notes,
                    customer_consent=customer_consent,
                    original_amount=original_amount,
                    rounded_amount=rounded_amount,
                    processed_by=processed_by,
                )
            except InsufficientBalance as e:
                record_transaction(kind.value, "insufficient_balance", amount)
                log_transaction(
                    student_id,
                    kind.value,
                    amount,
                    "insufficient_balance",
                    balance_before=e.balance_before,
                    processed_by=processed_by,
                )
                raise
            except IntegrityError as e:
                self.db.rollback()
                record_transaction(kind.value, "rejected", amount)
                logging.warning(
                    f"Wadiah transaction rejected by database: {e.orig}",
                    extra={"student_id": student_id, "transaction_type": kind.value},
                )
                raise TransactionRejected(f"Could not record {kind.value} for student {student_id}: {e.orig}") from e
            except SQLAlchemyError as e:
                self.db.rollback()
                attempt += 1
                if attempt > self.max_retries:
                    record_transaction(kind.value, "failed", amount)
                    logging.error(
                        f"Wadiah transaction failed: {e}",
                        extra={"student_id": student_id, "transaction_type": kind.value, "attempts": attempt},
                    )
                    raise TransactionFailed(f"Could not record {kind.value} for student {student_id}") from e
                logging.warning(
                    f"Retrying wadiah transaction after persistence error: {e}",
                    extra={"student_id": student_id, "transaction_type": kind.value, "attempt": attempt},
                )
                continue

            record_transaction(kind.value, "success", amount)
            log_transaction(
                student_id,
                kind.value,
                amount,
                "success",
                balance_before=db_transaction.balance_before,
                balance_after=db_transaction.balance_after,
                transaction_id=str(db_transaction.id),
                processed_by=processed_by,
            )
            return db_transaction

    def _apply(
        self,
        student_id: str,
        kind: TransactionKind,
        amount: int,
        **fields,
    ) -> WadiahTransaction:
        self.ledger.ensure_exists(student_id)
        balance_after = self.ledger.apply_delta(student_id, kind, amount)

        if balance_after is None:
            # Lock the row so the reported balance is the one the debit lost against
            current = self.ledger.read(student_id, for_update=True)
            balance_before = current.balance if current else 0
            if balance_before >= amount:
                # A credit committed after the refused UPDATE; the row is locked now
                balance_after = self.ledger.apply_delta(student_id, kind, amount)
            if balance_after is None:
                self.db.rollback()
                raise InsufficientBalance(balance_before=balance_before, amount=amount)

        db_transaction = self.transactions.create(
            student_id=student_id,
            kind=kind,
            amount=amount,
            balance_before=balance_after - signed_delta(kind, amount),
            balance_after=balance_after,
            **fields,
        )
        self.db.commit()
        return db_transaction

    def deposit(self, student_id: str, amount: int, notes: Optional[str] = None, processed_by: Optional[str] = None) -> WadiahTransaction:
        return self.process(
            student_id,
            TransactionKind.DEPOSIT,
            amount,
            notes=notes or NOTE_DEPOSIT,
            processed_by=processed_by,
        )

    def deposit_change(
        self,
        student_id: str,
        amount: int,
        order_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
        customer_consent: bool = True,
        processed_by: Optional[str] = None,
    ) -> WadiahTransaction:
        """Save cash change as balance"""
        return self.process(
            student_id,
            TransactionKind.CHANGE_DEPOSIT,
            amount,
            order_id=order_id,
            notes=notes or NOTE_CHANGE_DEPOSIT,
            customer_consent=customer_consent,
            processed_by=processed_by,
        )

    def apply_balance_for_payment(
        self,
        student_id: str,
        amount: int,
        order_id: Optional[uuid.UUID] = None,
        processed_by: Optional[str] = None,
    ) -> WadiahTransaction:
        return self.process(
            student_id,
            TransactionKind.PAYMENT,
            amount,
            order_id=order_id,
            notes=NOTE_PAYMENT,
            processed_by=processed_by,
        )

    def record_sedekah(
        self,
        student_id: str,
        amount: int,
        order_id: Optional[uuid.UUID] = None,
        original_amount: Optional[int] = None,
        rounded_amount: Optional[int] = None,
        customer_consent: bool = True,
        processed_by: Optional[str] = None,
    ) -> WadiahTransaction:
        """Record a round-down discount; the balance does not move"""
        return self.process(
            student_id,
            TransactionKind.SEDEKAH,
            amount,
            order_id=order_id,
            notes=NOTE_SEDEKAH,
            original_amount=original_amount,
            rounded_amount=rounded_amount,
            customer_consent=customer_consent,
            processed_by=processed_by,
        )
