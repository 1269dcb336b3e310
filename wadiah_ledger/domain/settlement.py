"""Syariah rounding and settlement calculator - pure functions, no I/O"""

from wadiah_ledger.domain.models import RoundingPolicy, Settlement

SETTLEMENT_ROUNDING_MODES = (RoundingPolicy.NONE, RoundingPolicy.ROUND_DOWN)


def _check_multiple(multiple: int) -> None:
    if not isinstance(multiple, int) or isinstance(multiple, bool) or multiple <= 0:
        raise ValueError(f"Rounding multiple must be a positive integer, got {multiple!r}")


def _check_non_negative(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value!r}")


def round_down(amount: int, multiple: int) -> int:
    """Largest multiple of `multiple` not exceeding `amount`"""
    _check_multiple(multiple)
    _check_non_negative("amount", amount)
    return (amount // multiple) * multiple


def rounding_difference(amount: int, multiple: int) -> int:
    """Amount given up when rounding down"""
    return amount - round_down(amount, multiple)


def needs_rounding(amount: int, multiple: int) -> bool:
    _check_multiple(multiple)
    return amount % multiple != 0


def compute_settlement(
    bill_total: int,
    balance_to_use: int = 0,
    rounding_mode: RoundingPolicy = RoundingPolicy.NONE,
    paid_amount: int = 0,
    multiple: int = 500,
) -> Settlement:
    """
    Compute the due amount, rounding discount and change for one checkout.

    Rounding is always a discount (sedekah) and never a surcharge. Rounding
    up needs the customer's explicit consent and lives behind its own
    policy value, so `round_up_ask` is rejected here.

    Args:
        bill_total: Sum of the bills' prices
        balance_to_use: Wadiah balance applied first (0..bill_total)
        rounding_mode: `none` or `round_down`
        paid_amount: Cash tendered
        multiple: Rounding multiple from RoundingSettings

    Returns:
        Settlement breakdown

    Example:
        bill 17300, round_down to 500, tendered 17300
        → due 17000, discount 300, change 300
    """
    _check_multiple(multiple)
    _check_non_negative("bill_total", bill_total)
    _check_non_negative("balance_to_use", balance_to_use)
    _check_non_negative("paid_amount", paid_amount)
    if balance_to_use > bill_total:
        raise ValueError(f"balance_to_use {balance_to_use} exceeds bill_total {bill_total}")

    mode = RoundingPolicy(rounding_mode)
    if mode not in SETTLEMENT_ROUNDING_MODES:
        raise ValueError(f"Settlement does not compute rounding mode {mode.value!r}")

    amount_after_balance = bill_total - balance_to_use
    if mode == RoundingPolicy.ROUND_DOWN:
        due_amount = round_down(amount_after_balance, multiple)
    else:
        due_amount = amount_after_balance

    return Settlement(
        bill_total=bill_total,
        balance_to_use=balance_to_use,
        amount_after_balance=amount_after_balance,
        due_amount=due_amount,
        rounding_discount=amount_after_balance - due_amount,
        paid_amount=paid_amount,
        change_amount=max(0, paid_amount - due_amount),
    )
