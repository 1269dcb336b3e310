"""Concurrent ledger access: every worker thread uses its own session on the shared test database"""

import threading
from concurrent.futures import ThreadPoolExecutor
from sqlalchemy.orm import Session, sessionmaker

from wadiah_ledger.domain.exceptions import InsufficientBalance
from wadiah_ledger.domain.models import TransactionKind
from wadiah_ledger.infrastructure.database.models import StudentBalance, WadiahTransaction
from wadiah_ledger.infrastructure.database.repositories import BalanceLedger
from wadiah_ledger.services.processor import TransactionProcessor

WORKERS = 8


def _run_concurrently(fn, count: int):
    barrier = threading.Barrier(count)

    def worker(i):
        barrier.wait()
        return fn(i)

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(worker, range(count)))


def test_concurrent_payments_never_overspend(db: Session, session_factory: sessionmaker):
    TransactionProcessor(db).deposit("student-race", 10000)

    def pay(_):
        session = session_factory()
        try:
            transaction = TransactionProcessor(session).process("student-race", TransactionKind.PAYMENT, 6000)
            return ("ok", transaction.balance_after)
        except InsufficientBalance as e:
            return ("refused", e.balance_before)
        finally:
            session.close()

    results = _run_concurrently(pay, WORKERS)

    succeeded = [r for r in results if r[0] == "ok"]
    assert len(succeeded) == 1
    assert succeeded[0][1] == 4000
    assert BalanceLedger(db).read("student-race").balance == 4000
    assert db.query(WadiahTransaction).filter(WadiahTransaction.transaction_type == "payment").count() == 1


def test_concurrent_payments_spend_exactly_the_balance(db: Session, session_factory: sessionmaker):
    TransactionProcessor(db).deposit("student-split", 10000)

    def pay(_):
        session = session_factory()
        try:
            TransactionProcessor(session).process("student-split", TransactionKind.PAYMENT, 2500)
            return True
        except InsufficientBalance:
            return False
        finally:
            session.close()

    results = _run_concurrently(pay, WORKERS)

    assert results.count(True) == 4
    balance = BalanceLedger(db).read("student-split")
    assert balance.balance == 0
    assert balance.total_used == 10000


def test_concurrent_deposits_are_not_lost(db: Session, session_factory: sessionmaker):
    def deposit(_):
        session = session_factory()
        try:
            TransactionProcessor(session).deposit("student-deposits", 1000)
        finally:
            session.close()

    _run_concurrently(deposit, WORKERS)

    balance = BalanceLedger(db).read("student-deposits")
    assert balance.balance == WORKERS * 1000
    assert balance.total_deposited == WORKERS * 1000


def test_concurrent_get_or_create_yields_one_row(db: Session, session_factory: sessionmaker):
    def get_or_create(_):
        session = session_factory()
        try:
            row = BalanceLedger(session).get_or_create("student-fresh")
            return (str(row.id), row.balance)
        finally:
            session.close()

    results = _run_concurrently(get_or_create, WORKERS)

    assert len({row_id for row_id, _ in results}) == 1
    assert all(balance == 0 for _, balance in results)
    assert db.query(StudentBalance).filter(StudentBalance.student_id == "student-fresh").count() == 1
