"""Integration tests for the transaction processor against the test database"""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from wadiah_ledger.domain.exceptions import (
    ConsentRequired,
    InsufficientBalance,
    InvalidAmount,
    InvalidTransactionKind,
    TransactionFailed,
    TransactionRejected,
)
from wadiah_ledger.domain.models import SignRule, TransactionKind, sign_rule
from wadiah_ledger.infrastructure.database.models import StudentBalance, WadiahTransaction
from wadiah_ledger.infrastructure.database import repositories
from wadiah_ledger.infrastructure.database.repositories import BalanceLedger, TransactionRepository
from wadiah_ledger.services.processor import NOTE_SEDEKAH, TransactionProcessor


def _balance(db: Session, student_id: str) -> StudentBalance:
    return BalanceLedger(db).read(student_id)


def test_deposit_then_payment(db: Session):
    processor = TransactionProcessor(db)

    deposit = processor.process("student-a", TransactionKind.DEPOSIT, 50000)
    assert deposit.balance_before == 0
    assert deposit.balance_after == 50000
    balance = _balance(db, "student-a")
    assert balance.balance == 50000
    assert balance.total_deposited == 50000

    payment = processor.process("student-a", TransactionKind.PAYMENT, 20000)
    assert payment.balance_before == 50000
    assert payment.balance_after == 30000
    balance = _balance(db, "student-a")
    assert balance.balance == 30000
    assert balance.total_used == 20000
    assert balance.last_transaction_at is not None


def test_payment_exceeding_balance_is_refused(db: Session):
    processor = TransactionProcessor(db)
    processor.deposit("student-d", 10000)

    with pytest.raises(InsufficientBalance) as exc_info:
        processor.process("student-d", TransactionKind.PAYMENT, 15000)

    assert exc_info.value.balance_before == 10000
    assert exc_info.value.amount == 15000
    assert exc_info.value.shortfall == 5000
    assert _balance(db, "student-d").balance == 10000
    assert len(TransactionRepository(db).list_for_student("student-d")) == 1


def test_debit_on_new_student_is_refused(db: Session):
    with pytest.raises(InsufficientBalance) as exc_info:
        TransactionProcessor(db).process("student-new", "refund", 1000)

    assert exc_info.value.balance_before == 0
    assert db.query(WadiahTransaction).count() == 0


def test_balance_matches_signed_sum_of_transactions(db: Session):
    processor = TransactionProcessor(db)
    steps = [
        (TransactionKind.DEPOSIT, 20000),
        (TransactionKind.PAYMENT, 7500),
        (TransactionKind.CHANGE_DEPOSIT, 2700),
        (TransactionKind.SEDEKAH, 300),
        (TransactionKind.REFUND, 40000),  # refused
        (TransactionKind.ADJUSTMENT, 1000),
        (TransactionKind.REFUND, 5000),
        (TransactionKind.PAYMENT, 11201),  # refused, one over
        (TransactionKind.PAYMENT, 11200),
    ]
    for kind, amount in steps:
        try:
            processor.process("student-c", kind, amount)
        except InsufficientBalance:
            pass

    transactions = TransactionRepository(db).list_for_student("student-c")
    expected = sum(sign_rule(t.transaction_type).value * t.amount for t in transactions)
    balance = _balance(db, "student-c")

    assert len(transactions) == 7
    assert balance.balance == expected == 0
    assert balance.total_deposited == 22700
    assert balance.total_used == 7500 + 11200
    assert balance.total_sedekah == 300


def test_sedekah_does_not_move_balance(db: Session):
    processor = TransactionProcessor(db)
    processor.deposit("student-s", 5000)

    sedekah = processor.record_sedekah("student-s", 300, original_amount=17300, rounded_amount=17000)

    assert sign_rule(TransactionKind.SEDEKAH) is SignRule.NEUTRAL
    assert sedekah.balance_before == sedekah.balance_after == 5000
    assert sedekah.rounding_difference == 300
    assert sedekah.notes == NOTE_SEDEKAH
    assert _balance(db, "student-s").total_sedekah == 300


def test_change_deposit_records_consent(db: Session):
    change = TransactionProcessor(db).deposit_change("student-k", 2700, processed_by="cashier-1")

    assert change.transaction_type == TransactionKind.CHANGE_DEPOSIT.value
    assert change.customer_consent is True
    assert change.processed_by == "cashier-1"
    assert _balance(db, "student-k").balance == 2700


@pytest.mark.parametrize("kind", [TransactionKind.CHANGE_DEPOSIT, TransactionKind.SEDEKAH])
def test_discretionary_kinds_refused_without_consent(db: Session, kind):
    with pytest.raises(ConsentRequired):
        TransactionProcessor(db).process("student-k", kind, 2700, customer_consent=False)

    assert _balance(db, "student-k") is None
    assert db.query(WadiahTransaction).count() == 0


def test_sedekah_without_consent_leaves_totals_alone(db: Session):
    processor = TransactionProcessor(db)
    processor.deposit("student-k", 5000)

    with pytest.raises(ConsentRequired):
        processor.record_sedekah("student-k", 300, original_amount=17300, rounded_amount=17000, customer_consent=False)

    balance = _balance(db, "student-k")
    assert balance.balance == 5000
    assert balance.total_sedekah == 0


def test_deposit_ignores_consent_flag(db: Session):
    deposit = TransactionProcessor(db).process("student-k", TransactionKind.DEPOSIT, 1000, customer_consent=False)

    assert deposit.balance_after == 1000


@pytest.mark.parametrize("amount", [0, -500, 12.5, "1000", True, None])
def test_invalid_amount_rejected(db: Session, amount):
    with pytest.raises(InvalidAmount):
        TransactionProcessor(db).process("student-x", TransactionKind.DEPOSIT, amount)

    assert _balance(db, "student-x") is None


def test_invalid_kind_rejected(db: Session):
    with pytest.raises(InvalidTransactionKind):
        TransactionProcessor(db).process("student-x", "withdrawal", 1000)

    assert db.query(WadiahTransaction).count() == 0


def test_persistence_failure_retried_once_then_surfaced(db: Session, monkeypatch):
    calls = []

    def always_fails(self, student_id, kind, amount):
        calls.append(kind)
        raise OperationalError("UPDATE student_wadiah_balance", {}, Exception("database is locked"))

    monkeypatch.setattr(BalanceLedger, "apply_delta", always_fails)

    with pytest.raises(TransactionFailed):
        TransactionProcessor(db, max_retries=1).process("student-r", TransactionKind.DEPOSIT, 1000)

    assert len(calls) == 2
    assert db.query(WadiahTransaction).count() == 0


def test_transient_failure_recovers_on_retry(db: Session, monkeypatch):
    original = BalanceLedger.apply_delta
    calls = []

    def fails_once(self, student_id, kind, amount):
        calls.append(kind)
        if len(calls) == 1:
            raise OperationalError("UPDATE student_wadiah_balance", {}, Exception("database is locked"))
        return original(self, student_id, kind, amount)

    monkeypatch.setattr(BalanceLedger, "apply_delta", fails_once)

    transaction = TransactionProcessor(db).process("student-r", TransactionKind.DEPOSIT, 1000)

    assert len(calls) == 2
    assert transaction.balance_after == 1000
    assert db.query(WadiahTransaction).count() == 1


def test_get_or_create_starts_at_zero(db: Session):
    ledger = BalanceLedger(db)

    first = ledger.get_or_create("student-z")
    second = ledger.get_or_create("student-z")

    assert first.id == second.id
    assert first.balance == 0
    assert db.query(StudentBalance).filter(StudentBalance.student_id == "student-z").count() == 1


def test_read_many_skips_unknown_students(db: Session):
    processor = TransactionProcessor(db)
    processor.deposit("student-1", 1000)
    processor.deposit("student-2", 2000)

    balances = BalanceLedger(db).read_many(["student-1", "student-2", "student-3"])

    assert set(balances) == {"student-1", "student-2"}
    assert balances["student-2"].balance == 2000


def test_refused_debit_rechecked_under_row_lock(db: Session, monkeypatch):
    """A debit refused while a credit was landing is applied once the row is locked"""
    processor = TransactionProcessor(db)
    processor.deposit("student-l", 10000)
    original = BalanceLedger.apply_delta
    calls = []

    def refused_first(self, student_id, kind, amount):
        calls.append(kind)
        if len(calls) == 1:
            return None
        return original(self, student_id, kind, amount)

    monkeypatch.setattr(BalanceLedger, "apply_delta", refused_first)

    payment = processor.process("student-l", TransactionKind.PAYMENT, 6000)

    assert len(calls) == 2
    assert payment.balance_before == 10000
    assert payment.balance_after == 4000
    assert _balance(db, "student-l").balance == 4000


def test_refusal_reports_balance_read_under_lock(db: Session, monkeypatch):
    processor = TransactionProcessor(db)
    processor.deposit("student-l", 10000)
    reads = []
    original_read = BalanceLedger.read

    def tracking_read(self, student_id, for_update=False):
        reads.append(for_update)
        return original_read(self, student_id, for_update=for_update)

    monkeypatch.setattr(BalanceLedger, "read", tracking_read)

    with pytest.raises(InsufficientBalance) as exc_info:
        processor.process("student-l", TransactionKind.PAYMENT, 15000)

    assert reads == [True]
    assert exc_info.value.balance_before == 10000
    assert exc_info.value.shortfall == 5000


def test_constraint_violation_not_retried(db: Session, monkeypatch):
    calls = []

    def violates(self, **kwargs):
        calls.append(kwargs["kind"])
        raise IntegrityError("INSERT INTO wadiah_transactions", {}, Exception("foreign key constraint failed"))

    monkeypatch.setattr(TransactionRepository, "create", violates)

    with pytest.raises(TransactionRejected):
        TransactionProcessor(db, max_retries=3).process("student-i", TransactionKind.DEPOSIT, 1000)

    assert len(calls) == 1
    assert db.query(WadiahTransaction).count() == 0
    assert _balance(db, "student-i") is None


def test_unsupported_dialect_is_a_configuration_error(db: Session, monkeypatch):
    monkeypatch.setattr(repositories, "_UPSERT_DIALECTS", {})

    with pytest.raises(RuntimeError):
        BalanceLedger(db).get_or_create("student-u")
