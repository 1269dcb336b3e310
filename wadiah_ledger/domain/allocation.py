"""Split a checkout's totals across the bills it settles"""

from typing import List
from wadiah_ledger.domain.models import BillCharge, BillPayment, Settlement


def allocate_settlement(bills: List[BillCharge], settlement: Settlement) -> List[BillPayment]:
    """
    Distribute wadiah usage, rounding discount, tender and change over bills.

    Rules:
    - Wadiah usage fills bills in order, each up to its price
    - Rounding discount is taken from the last bill backwards
    - Each bill's paid amount is what remains of its price
    - The last bill absorbs the change (its paid amount includes it)

    Per-bill values always sum to the checkout totals.

    Example:
        bills [10000, 7300], wadiah 12000, round_down 500, tendered 5000
        → amount after wadiah 5300, due 5000, discount 300, change 0
        → bill 1: wadiah 10000, paid 0
        → bill 2: wadiah 2000, rounding 300, paid 5000
    """
    if not bills:
        return []

    bill_total = sum(bill.total_price for bill in bills)
    if bill_total != settlement.bill_total:
        raise ValueError(f"Bills total {bill_total} does not match settlement total {settlement.bill_total}")

    remaining = [bill.total_price for bill in bills]

    wadiah_shares = []
    wadiah_left = settlement.balance_to_use
    for i, bill in enumerate(bills):
        share = min(wadiah_left, remaining[i])
        wadiah_shares.append(share)
        remaining[i] -= share
        wadiah_left -= share

    rounding_shares = [0] * len(bills)
    rounding_left = settlement.rounding_discount
    for i in reversed(range(len(bills))):
        share = min(rounding_left, remaining[i])
        rounding_shares[i] = share
        remaining[i] -= share
        rounding_left -= share

    extra_tender = settlement.paid_amount - settlement.due_amount
    payments = []
    for i, bill in enumerate(bills):
        is_last = i == len(bills) - 1
        paid = remaining[i]
        if is_last and extra_tender > 0:
            paid += extra_tender
        payments.append(
            BillPayment(
                bill_id=bill.bill_id,
                wadiah_used=wadiah_shares[i],
                rounding_applied=rounding_shares[i],
                paid_amount=paid,
                change_amount=settlement.change_amount if is_last else 0,
            )
        )

    return payments
