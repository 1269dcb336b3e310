"""Domain models - enums, sign rules and pure dataclasses for the wadiah ledger"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class TransactionKind(str, Enum):
    """Kinds of wadiah ledger mutation"""

    DEPOSIT = "deposit"
    CHANGE_DEPOSIT = "change_deposit"
    PAYMENT = "payment"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"
    SEDEKAH = "sedekah"

    @property
    def label(self) -> str:
        return TRANSACTION_KIND_LABELS[self]


class SignRule(Enum):
    """Effect of a transaction kind on the balance"""

    CREDIT = 1
    DEBIT = -1
    NEUTRAL = 0


SIGN_RULES: Dict[TransactionKind, SignRule] = {
    TransactionKind.DEPOSIT: SignRule.CREDIT,
    TransactionKind.CHANGE_DEPOSIT: SignRule.CREDIT,
    TransactionKind.ADJUSTMENT: SignRule.CREDIT,
    TransactionKind.PAYMENT: SignRule.DEBIT,
    TransactionKind.REFUND: SignRule.DEBIT,
    TransactionKind.SEDEKAH: SignRule.NEUTRAL,
}

# Discretionary kinds: only recorded when the customer agreed (or staff waived it)
CONSENT_REQUIRED_KINDS = (TransactionKind.CHANGE_DEPOSIT, TransactionKind.SEDEKAH)

TRANSACTION_KIND_LABELS: Dict[TransactionKind, str] = {
    TransactionKind.DEPOSIT: "Setoran",
    TransactionKind.CHANGE_DEPOSIT: "Simpan Kembalian",
    TransactionKind.PAYMENT: "Pembayaran",
    TransactionKind.REFUND: "Pengembalian",
    TransactionKind.ADJUSTMENT: "Penyesuaian",
    TransactionKind.SEDEKAH: "Sedekah/Diskon",
}


def sign_rule(kind: TransactionKind) -> SignRule:
    """Look up the sign rule; a kind without an entry is a KeyError, never a default"""
    return SIGN_RULES[TransactionKind(kind)]


def signed_delta(kind: TransactionKind, amount: int) -> int:
    """Balance change produced by a transaction of this kind and amount"""
    return sign_rule(kind).value * amount


class RoundingPolicy(str, Enum):
    NONE = "none"
    ROUND_DOWN = "round_down"
    ROUND_UP_ASK = "round_up_ask"
    TO_WADIAH = "to_wadiah"

    @property
    def label(self) -> str:
        return ROUNDING_POLICY_LABELS[self]


ROUNDING_POLICY_LABELS: Dict[RoundingPolicy, str] = {
    RoundingPolicy.NONE: "Tidak Ada Pembulatan",
    RoundingPolicy.ROUND_DOWN: "Bulatkan Ke Bawah (Sedekah)",
    RoundingPolicy.ROUND_UP_ASK: "Bulatkan Ke Atas (Minta Izin)",
    RoundingPolicy.TO_WADIAH: "Simpan ke Saldo Wadiah",
}


class ChangeAction(str, Enum):
    """What happens to cash change: handed back or saved as balance"""

    CASH = "cash"
    WADIAH = "wadiah"


class OrderStatus(str, Enum):
    DRAFT = "DRAFT"
    MENUNGGU_APPROVAL_MITRA = "MENUNGGU_APPROVAL_MITRA"
    DITOLAK_MITRA = "DITOLAK_MITRA"
    DISETUJUI_MITRA = "DISETUJUI_MITRA"
    MENUNGGU_PEMBAYARAN = "MENUNGGU_PEMBAYARAN"
    DIBAYAR = "DIBAYAR"
    SELESAI = "SELESAI"


PAYABLE_STATUSES = (OrderStatus.DISETUJUI_MITRA, OrderStatus.MENUNGGU_PEMBAYARAN)

CASH_PAYMENT_METHOD = "cash"
WADIAH_PAYMENT_METHOD = "wadiah"


class CheckoutState(str, Enum):
    STARTED = "started"
    BALANCE_APPLIED = "balance_applied"
    SETTLEMENT_COMPUTED = "settlement_computed"
    CHANGE_OR_SEDEKAH_APPLIED = "change_or_sedekah_applied"
    BILLS_MARKED_PAID = "bills_marked_paid"
    DONE = "done"
    ABORTED = "aborted"


class ActorRole(str, Enum):
    ADMIN = "admin"
    CASHIER = "cashier"
    STAFF = "staff"
    PARTNER = "partner"
    PARENT = "parent"


CONSENT_WAIVING_ROLES = (ActorRole.ADMIN, ActorRole.CASHIER, ActorRole.STAFF)


@dataclass(frozen=True)
class ActorContext:
    """Who performs a ledger operation, supplied by the auth layer"""

    actor_id: Optional[str] = None
    can_waive_consent: bool = False

    @classmethod
    def for_role(cls, actor_id: Optional[str], role: Optional[str]) -> "ActorContext":
        try:
            actor_role = ActorRole(role) if role else None
        except ValueError:
            actor_role = None
        return cls(actor_id=actor_id, can_waive_consent=actor_role in CONSENT_WAIVING_ROLES)


@dataclass(frozen=True)
class RoundingSettings:
    """Process-wide rounding configuration, passed explicitly to the calculator and orchestrator"""

    rounding_multiple: int = 500
    default_policy: RoundingPolicy = RoundingPolicy.ROUND_DOWN
    wadiah_enabled: bool = True

    @classmethod
    def from_settings(cls, settings) -> "RoundingSettings":
        return cls(
            rounding_multiple=settings.rounding_multiple,
            default_policy=RoundingPolicy(settings.default_rounding_policy),
            wadiah_enabled=settings.wadiah_enabled,
        )


@dataclass(frozen=True)
class Settlement:
    """Breakdown of what is due for one checkout"""

    bill_total: int
    balance_to_use: int
    amount_after_balance: int
    due_amount: int
    rounding_discount: int
    paid_amount: int
    change_amount: int

    @property
    def is_sufficient(self) -> bool:
        return self.paid_amount >= self.due_amount


@dataclass
class BillCharge:
    """A bill's identity and price as seen by the checkout"""

    bill_id: uuid.UUID
    total_price: int


@dataclass
class BillPayment:
    """Share of a checkout's totals recorded on one bill"""

    bill_id: uuid.UUID
    wadiah_used: int
    rounding_applied: int
    paid_amount: int
    change_amount: int
