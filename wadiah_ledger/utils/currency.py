"""Rupiah formatting for user-facing messages"""


def format_rupiah(amount: int) -> str:
    """Format whole Rupiah with Indonesian thousands separators, e.g. 17300 → 'Rp 17.300'"""
    sign = "-" if amount < 0 else ""
    return f"{sign}Rp {abs(amount):,}".replace(",", ".")


def insufficient_balance_message(balance: int, required: int) -> str:
    """Localized message shown when a debit exceeds the wadiah balance"""
    return (
        f"Saldo wadiah tidak mencukupi. Saldo: {format_rupiah(balance)}, "
        f"Dibutuhkan: {format_rupiah(required)}"
    )
