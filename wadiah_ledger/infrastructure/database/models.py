"""SQLAlchemy ORM models for wadiah balances, ledger transactions and bills"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, BigInteger, Boolean, DateTime, ForeignKey, Text, Uuid, CheckConstraint
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StudentBalance(Base):
    """Running wadiah balance, one row per student"""

    __tablename__ = "student_wadiah_balance"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wadiah_balance_non_negative"),
        CheckConstraint("total_deposited >= 0", name="ck_wadiah_total_deposited_non_negative"),
        CheckConstraint("total_used >= 0", name="ck_wadiah_total_used_non_negative"),
        CheckConstraint("total_sedekah >= 0", name="ck_wadiah_total_sedekah_non_negative"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(Text, nullable=False, unique=True)
    balance = Column(BigInteger, nullable=False, default=0)
    total_deposited = Column(BigInteger, nullable=False, default=0)
    total_used = Column(BigInteger, nullable=False, default=0)
    total_sedekah = Column(BigInteger, nullable=False, default=0)
    last_transaction_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())


class WadiahTransaction(Base):
    """Immutable ledger row, one per balance mutation"""

    __tablename__ = "wadiah_transactions"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_wadiah_transaction_amount_positive"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(Text, nullable=False, index=True)
    transaction_type = Column(Text, nullable=False)
    amount = Column(BigInteger, nullable=False)
    balance_before = Column(BigInteger, nullable=False)
    balance_after = Column(BigInteger, nullable=False)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("laundry_orders.id"), nullable=True)
    original_amount = Column(BigInteger, nullable=True)
    rounded_amount = Column(BigInteger, nullable=True)
    rounding_difference = Column(BigInteger, nullable=True)
    notes = Column(Text, nullable=True)
    customer_consent = Column(Boolean, nullable=False, default=True)
    processed_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    order = relationship("LaundryOrder")


class LaundryOrder(Base):
    """Bill owned by the order-management layer; the ledger only settles it"""

    __tablename__ = "laundry_orders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(Text, nullable=False, index=True)
    total_price = Column(BigInteger, nullable=False)
    status = Column(Text, nullable=False, default="MENUNGGU_PEMBAYARAN")
    paid_amount = Column(BigInteger, nullable=True)
    change_amount = Column(BigInteger, nullable=True)
    rounding_applied = Column(BigInteger, nullable=True)
    rounding_type = Column(Text, nullable=True)
    wadiah_used = Column(BigInteger, nullable=True)
    payment_method = Column(Text, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    paid_by = Column(Text, nullable=True)
    checkout_id = Column(Text, nullable=True)  # set while a checkout holds the bill, kept once paid
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
