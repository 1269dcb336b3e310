"""Payment orchestrator - settles one or more bills of a student in a single checkout"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wadiah_ledger.domain.allocation import allocate_settlement
from wadiah_ledger.domain.exceptions import (
    BillNotFound,
    BillNotPayable,
    ConsentRequired,
    InsufficientPayment,
    InvalidCheckout,
    ReconciliationRequired,
    TransactionFailed,
)
from wadiah_ledger.domain.models import (
    ActorContext,
    BillCharge,
    BillPayment,
    CASH_PAYMENT_METHOD,
    ChangeAction,
    CheckoutState,
    PAYABLE_STATUSES,
    RoundingPolicy,
    RoundingSettings,
    Settlement,
    WADIAH_PAYMENT_METHOD,
)
from wadiah_ledger.domain.settlement import compute_settlement
from wadiah_ledger.infrastructure.database.models import LaundryOrder, WadiahTransaction, utcnow
from wadiah_ledger.infrastructure.database.repositories import BalanceLedger, OrderRepository
from wadiah_ledger.infrastructure.observability.logging import log_checkout_state, log_reconciliation_case
from wadiah_ledger.infrastructure.observability.metrics import record_checkout
from wadiah_ledger.services.processor import TransactionProcessor


@dataclass
class CheckoutRequest:
    """What the cashier (or parent) asked for at checkout"""

    bill_ids: List[uuid.UUID]
    payment_method: str = CASH_PAYMENT_METHOD
    paid_amount: int = 0
    balance_to_use: int = 0
    rounding_mode: RoundingPolicy = RoundingPolicy.NONE
    change_action: Optional[ChangeAction] = None
    customer_consent: bool = False
    paid_at: Optional[datetime] = None


@dataclass
class CheckoutResult:
    checkout_id: str
    student_id: str
    state: CheckoutState
    payment_method: str
    settlement: Settlement
    payments: List[BillPayment] = field(default_factory=list)
    transactions: List[WadiahTransaction] = field(default_factory=list)
    balance_after: Optional[int] = None


@dataclass
class _CheckoutPlan:
    payment_method: str
    rounding_mode: RoundingPolicy
    change_action: ChangeAction
    consent: bool
    tendered: int


class CheckoutOrchestrator:
    """
    Sequence a checkout: balance usage → settlement → sedekah / change
    deposit → bills marked paid.

    Every precondition is checked, and the bills are claimed for this
    checkout, before the first ledger write. A clean abort releases the
    claim. Ledger writes that already committed are never reversed
    automatically; if a later step fails the checkout raises
    ReconciliationRequired and the bills stay held until reconciled.
    """

    def __init__(
        self,
        db: Session,
        rounding_settings: RoundingSettings,
        processor: Optional[TransactionProcessor] = None,
    ):
        self.db = db
        self.rounding_settings = rounding_settings
        self.processor = processor or TransactionProcessor(db)
        self.orders = OrderRepository(db)
        self.ledger = BalanceLedger(db)

    def checkout(self, request: CheckoutRequest, actor: ActorContext) -> CheckoutResult:
        checkout_id = str(uuid.uuid4())
        student_id: Optional[str] = None
        bill_ids: List[str] = [str(b) for b in request.bill_ids]
        committed: List[WadiahTransaction] = []
        committed_ids: List[str] = []
        committed_amounts: Dict[str, int] = {}
        claimed_ids: List[uuid.UUID] = []
        state = CheckoutState.STARTED

        def keep(db_transaction: WadiahTransaction) -> WadiahTransaction:
            # Capture ids now; the session may be unusable by the time the except block runs
            committed.append(db_transaction)
            committed_ids.append(str(db_transaction.id))
            committed_amounts[db_transaction.transaction_type] = db_transaction.amount
            return db_transaction

        try:
            bills = self._load_bills(request.bill_ids)
            student_id = bills[0].student_id
            charges = [BillCharge(bill_id=b.id, total_price=b.total_price) for b in bills]
            bill_total = sum(c.total_price for c in charges)
            log_checkout_state(
                checkout_id, student_id, state.value,
                bill_ids=bill_ids, bill_total=bill_total, actor_id=actor.actor_id,
            )

            plan = self._plan(request, actor, bill_total)
            claimed_ids = self._claim_bills(bills, checkout_id)

            # Balance usage is the first irreversible step
            balance_applied = 0
            if request.balance_to_use > 0:
                db_transaction = self.processor.apply_balance_for_payment(
                    student_id,
                    request.balance_to_use,
                    order_id=bills[0].id,
                    processed_by=actor.actor_id,
                )
                keep(db_transaction)
                balance_applied = db_transaction.amount
                state = self._transition(checkout_id, student_id, CheckoutState.BALANCE_APPLIED, wadiah_used=balance_applied)

            settlement = compute_settlement(
                bill_total,
                balance_to_use=balance_applied,
                rounding_mode=plan.rounding_mode,
                paid_amount=plan.tendered,
                multiple=self.rounding_settings.rounding_multiple,
            )
            state = self._transition(
                checkout_id, student_id, CheckoutState.SETTLEMENT_COMPUTED,
                due_amount=settlement.due_amount,
                rounding_discount=settlement.rounding_discount,
                change_amount=settlement.change_amount,
            )

            applied = False
            if settlement.rounding_discount > 0 and plan.consent:
                keep(
                    self.processor.record_sedekah(
                        student_id,
                        settlement.rounding_discount,
                        order_id=bills[-1].id,
                        original_amount=settlement.amount_after_balance,
                        rounded_amount=settlement.due_amount,
                        customer_consent=plan.consent,
                        processed_by=actor.actor_id,
                    )
                )
                applied = True
            if settlement.change_amount > 0 and plan.change_action == ChangeAction.WADIAH:
                keep(
                    self.processor.deposit_change(
                        student_id,
                        settlement.change_amount,
                        order_id=bills[-1].id,
                        customer_consent=plan.consent,
                        processed_by=actor.actor_id,
                    )
                )
                applied = True
            if applied:
                state = self._transition(checkout_id, student_id, CheckoutState.CHANGE_OR_SEDEKAH_APPLIED)

            payments = allocate_settlement(charges, settlement)
            payment_method = plan.payment_method
            if settlement.due_amount == 0 and balance_applied > 0:
                payment_method = WADIAH_PAYMENT_METHOD
            self._mark_bills_paid(payments, payment_method, request.paid_at or utcnow(), actor.actor_id, checkout_id)
            state = self._transition(checkout_id, student_id, CheckoutState.BILLS_MARKED_PAID)

        except Exception as e:
            self.db.rollback()
            log_checkout_state(checkout_id, student_id, CheckoutState.ABORTED.value, failed_after=state.value, error=str(e))
            if committed:
                case = ReconciliationRequired(
                    checkout_id=checkout_id,
                    student_id=student_id,
                    transaction_ids=committed_ids,
                    bill_ids=bill_ids,
                    amounts=committed_amounts,
                    cause=e,
                )
                log_reconciliation_case(case.to_dict())
                record_checkout("reconciliation_required")
                raise case from e
            if claimed_ids:
                self._release_bills(claimed_ids, checkout_id)
            record_checkout("aborted")
            if isinstance(e, SQLAlchemyError):
                raise TransactionFailed(f"Checkout {checkout_id} failed: {e}") from e
            raise

        state = self._transition(checkout_id, student_id, CheckoutState.DONE)
        record_checkout("done")
        balance = self.ledger.read(student_id)
        return CheckoutResult(
            checkout_id=checkout_id,
            student_id=student_id,
            state=state,
            payment_method=payment_method,
            settlement=settlement,
            payments=payments,
            transactions=committed,
            balance_after=balance.balance if balance else None,
        )

    def _transition(self, checkout_id: str, student_id: str, state: CheckoutState, **fields) -> CheckoutState:
        log_checkout_state(checkout_id, student_id, state.value, **fields)
        return state

    def _load_bills(self, bill_ids: List[uuid.UUID]) -> List[LaundryOrder]:
        if not bill_ids:
            raise InvalidCheckout("Checkout needs at least one bill")
        unique_ids = list(dict.fromkeys(bill_ids))
        bills = self.orders.get_by_ids(unique_ids)
        found = {b.id for b in bills}
        missing = [b for b in unique_ids if b not in found]
        if missing:
            raise BillNotFound(missing)

        if len({b.student_id for b in bills}) > 1:
            raise InvalidCheckout("All bills in a checkout must belong to the same student")
        payable = {s.value for s in PAYABLE_STATUSES}
        for bill in bills:
            if bill.status not in payable:
                raise BillNotPayable(bill.id, bill.status)
            if bill.checkout_id is not None:
                raise BillNotPayable(bill.id, f"{bill.status} (held by checkout {bill.checkout_id})")
        return bills

    def _claim_bills(self, bills: List[LaundryOrder], checkout_id: str) -> List[uuid.UUID]:
        """Hold the bills for this checkout before anything irreversible happens"""
        bill_ids = [b.id for b in bills]
        if not self.orders.claim(bill_ids, checkout_id):
            raise BillNotPayable(", ".join(str(b) for b in bill_ids), "claimed by another checkout")
        return bill_ids

    def _release_bills(self, bill_ids: List[uuid.UUID], checkout_id: str) -> None:
        try:
            self.orders.release(bill_ids, checkout_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logging.error(
                f"Could not release bills after aborted checkout: {e}",
                extra={"checkout_id": checkout_id, "bill_ids": [str(b) for b in bill_ids]},
            )

    def _plan(self, request: CheckoutRequest, actor: ActorContext, bill_total: int) -> _CheckoutPlan:
        """Validate the request against the bills; raises InvalidCheckout before anything is written"""
        payment_method = (request.payment_method or "").strip().lower()
        if not payment_method:
            raise InvalidCheckout("Payment method is required")
        is_cash = payment_method == CASH_PAYMENT_METHOD

        for name in ("paid_amount", "balance_to_use"):
            value = getattr(request, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise InvalidCheckout(f"{name} must be a non-negative integer")

        if request.balance_to_use > bill_total:
            raise InvalidCheckout(f"Balance usage {request.balance_to_use} exceeds bill total {bill_total}")
        if request.balance_to_use > 0 and not self.rounding_settings.wadiah_enabled:
            raise InvalidCheckout("Wadiah balance is disabled")

        mode = RoundingPolicy(request.rounding_mode)
        if mode == RoundingPolicy.ROUND_UP_ASK:
            raise InvalidCheckout("Rounding up is not available at checkout")
        wants_wadiah_change = mode == RoundingPolicy.TO_WADIAH
        rounding_mode = RoundingPolicy.ROUND_DOWN if mode == RoundingPolicy.ROUND_DOWN else RoundingPolicy.NONE
        if rounding_mode == RoundingPolicy.ROUND_DOWN and not is_cash:
            raise InvalidCheckout("Rounding applies to cash payments only")

        consent = request.customer_consent or actor.can_waive_consent

        if request.change_action is not None:
            change_action = ChangeAction(request.change_action)
        elif (wants_wadiah_change or self.rounding_settings.default_policy == RoundingPolicy.TO_WADIAH) and consent:
            change_action = ChangeAction.WADIAH
        else:
            change_action = ChangeAction.CASH
        if change_action == ChangeAction.WADIAH and not self.rounding_settings.wadiah_enabled:
            raise InvalidCheckout("Wadiah balance is disabled")

        multiple = self.rounding_settings.rounding_multiple
        if is_cash:
            tendered = request.paid_amount
        else:
            due = compute_settlement(bill_total, request.balance_to_use, rounding_mode, 0, multiple).due_amount
            if request.paid_amount not in (0, due):
                raise InvalidCheckout(f"Non-cash payments must tender exactly the due amount {due}")
            tendered = due

        preview = compute_settlement(bill_total, request.balance_to_use, rounding_mode, tendered, multiple)
        if preview.rounding_discount > 0 and not consent:
            raise ConsentRequired("Rounding down needs the customer's consent")
        if not preview.is_sufficient:
            raise InsufficientPayment(preview.paid_amount, preview.due_amount)
        if preview.change_amount > 0 and change_action == ChangeAction.WADIAH and not consent:
            raise ConsentRequired("Saving change as balance needs the customer's consent")

        return _CheckoutPlan(
            payment_method=payment_method,
            rounding_mode=rounding_mode,
            change_action=change_action,
            consent=consent,
            tendered=tendered,
        )

    def _mark_bills_paid(
        self,
        payments: List[BillPayment],
        payment_method: str,
        paid_at: datetime,
        paid_by: Optional[str],
        checkout_id: str,
    ) -> None:
        for payment in payments:
            updated = self.orders.mark_paid(
                payment,
                payment_method=payment_method,
                rounding_type=RoundingPolicy.ROUND_DOWN.value if payment.rounding_applied > 0 else None,
                paid_at=paid_at,
                paid_by=paid_by,
                checkout_id=checkout_id,
            )
            if not updated:
                raise BillNotPayable(payment.bill_id, "changed during checkout")
        self.db.commit()
