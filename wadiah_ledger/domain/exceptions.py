"""Domain-specific exceptions"""

from typing import Any, Dict, List


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidAmount(DomainException):
    """Amount is not a positive whole number of Rupiah"""

    def __init__(self, amount: Any):
        self.amount = amount
        super().__init__(f"Amount must be a positive integer, got {amount!r}")


class InvalidTransactionKind(DomainException):
    """Transaction kind is not one of the ledger's kinds"""

    def __init__(self, kind: Any):
        self.kind = kind
        super().__init__(f"Unknown transaction kind: {kind!r}")


class InsufficientBalance(DomainException):
    """Debit exceeds the student's current balance"""

    def __init__(self, balance_before: int, amount: int):
        self.balance_before = balance_before
        self.amount = amount
        super().__init__(f"Insufficient balance: {balance_before} available, {amount} required")

    @property
    def shortfall(self) -> int:
        return max(0, self.amount - self.balance_before)


class TransactionFailed(DomainException):
    """Persistence failed after the allowed retries"""

    pass


class TransactionRejected(DomainException):
    """The database refused the row, e.g. an unknown order id; retrying will not help"""

    pass


class ConsentRequired(DomainException):
    """Sedekah or change-to-balance requested without customer consent"""

    pass


class InvalidCheckout(DomainException):
    """Checkout request violates a precondition; nothing was written"""

    pass


class BillNotFound(InvalidCheckout):
    def __init__(self, bill_ids: List[Any]):
        self.bill_ids = bill_ids
        super().__init__(f"Bills not found: {', '.join(str(b) for b in bill_ids)}")


class BillNotPayable(InvalidCheckout):
    def __init__(self, bill_id: Any, status: str):
        self.bill_id = bill_id
        self.status = status
        super().__init__(f"Bill {bill_id} cannot be paid in status {status}")


class InsufficientPayment(InvalidCheckout):
    def __init__(self, paid_amount: int, due_amount: int):
        self.paid_amount = paid_amount
        self.due_amount = due_amount
        super().__init__(f"Tendered {paid_amount} does not cover due amount {due_amount}")


class ReconciliationRequired(DomainException):
    """
    Checkout aborted after committing ledger transactions.

    The committed transactions are not reversed; the case carries everything
    needed to reconcile it by hand.
    """

    def __init__(
        self,
        checkout_id: str,
        student_id: str,
        transaction_ids: List[str],
        bill_ids: List[str],
        amounts: Dict[str, int],
        cause: Exception,
    ):
        self.checkout_id = checkout_id
        self.student_id = student_id
        self.transaction_ids = transaction_ids
        self.bill_ids = bill_ids
        self.amounts = amounts
        self.cause = cause
        super().__init__(f"Checkout {checkout_id} needs reconciliation: {cause}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checkout_id": self.checkout_id,
            "student_id": self.student_id,
            "transaction_ids": self.transaction_ids,
            "bill_ids": self.bill_ids,
            "amounts": self.amounts,
            "cause": str(self.cause),
        }
