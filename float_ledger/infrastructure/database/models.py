"""SQLAlchemy ORM models for float accounts and settlements"""

from sqlalchemy import Column, String, BigInteger, Boolean, DateTime, Integer, ForeignKey, Text, JSON, Index
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class FloatAccountRecord(Base):
    """Supplier or dual-role float account. Rows are closed, never deleted."""

    __tablename__ = "float_accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(64), nullable=False, unique=True, index=True)
    display_name = Column(Text, nullable=False)
    role = Column(String(16), nullable=False, default="supplier_only")  # supplier_only | dual_role
    status = Column(String(16), nullable=False, default="active", index=True)  # active | suspended | closed

    supplier_balance_cents = Column(BigInteger, nullable=False, default=0)
    merchant_balance_cents = Column(BigInteger, nullable=False, default=0)

    # supplier_only
    minimum_balance_cents = Column(BigInteger, nullable=False, default=0)
    maximum_balance_cents = Column(BigInteger, nullable=True)
    settlement_period = Column(String(16), nullable=False, default="real_time")
    funding_method = Column(String(16), nullable=False, default="prefunded")

    # dual_role
    max_supplier_balance_cents = Column(BigInteger, nullable=True)
    max_merchant_balance_cents = Column(BigInteger, nullable=True)
    net_settlement_threshold_cents = Column(BigInteger, nullable=False, default=100_000)
    auto_settlement_enabled = Column(Boolean, nullable=False, default=False)
    settlement_frequency = Column(String(16), nullable=False, default="daily")
    daily_transaction_limit_cents = Column(BigInteger, nullable=True)

    last_settlement_at = Column(DateTime(timezone=True), nullable=True)
    next_settlement_at = Column(DateTime(timezone=True), nullable=True, index=True)

    bank_account_number = Column(Text, nullable=True)
    bank_code = Column(Text, nullable=True)
    bank_name = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    settlements = relationship("SettlementRecord", back_populates="account", passive_deletes="all")


class SettlementRecord(Base):
    """Balance movement against one float account"""

    __tablename__ = "settlements"
    __table_args__ = (
        Index("ix_settlements_account_class_created", "account_id", "transaction_class", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    settlement_id = Column(String(64), nullable=False, unique=True, index=True)
    account_id = Column(
        String(64),
        ForeignKey("float_accounts.account_id", ondelete="RESTRICT", onupdate="CASCADE"),
        nullable=False,
        index=True,
    )
    role = Column(String(16), nullable=False, default="supplier")  # supplier | merchant
    settlement_type = Column(String(16), nullable=False)  # topup | withdrawal | adjustment | fee | commission
    direction = Column(String(16), nullable=False)  # inbound | outbound
    amount_cents = Column(BigInteger, nullable=False)
    fee_cents = Column(BigInteger, nullable=False, default=0)
    net_amount_cents = Column(BigInteger, nullable=False)
    balance_before_cents = Column(BigInteger, nullable=True)
    balance_after_cents = Column(BigInteger, nullable=True)
    status = Column(String(16), nullable=False, default="pending", index=True)
    currency = Column(String(3), nullable=False, default="ZAR")
    settlement_method = Column(String(16), nullable=False, default="eft")
    transaction_class = Column(String(32), nullable=True)

    supplier_reference = Column(Text, nullable=True)
    bank_reference = Column(Text, nullable=True)
    transaction_reference = Column(Text, nullable=True)

    error_code = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    retry_of = Column(String(64), nullable=True, index=True)
    is_net_settlement = Column(Boolean, nullable=False, default=False)
    fee_breakdown = Column(JSON, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    processed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    account = relationship("FloatAccountRecord", back_populates="settlements")
