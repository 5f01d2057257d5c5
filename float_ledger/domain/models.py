"""Domain models - enums and value objects shared by the ledger components"""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Type, TypeVar

from float_ledger.domain.exceptions import ValidationError


class AccountRole(str, Enum):
    SUPPLIER_ONLY = "supplier_only"
    DUAL_ROLE = "dual_role"


class BalanceRole(str, Enum):
    """Which side of a float account a movement hits"""

    SUPPLIER = "supplier"
    MERCHANT = "merchant"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CLOSED = "closed"


class SettlementFrequency(str, Enum):
    REAL_TIME = "real_time"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class FundingMethod(str, Enum):
    """How a supplier float is funded"""

    PREFUNDED = "prefunded"
    POSTPAID = "postpaid"
    HYBRID = "hybrid"


class SettlementType(str, Enum):
    TOPUP = "topup"
    WITHDRAWAL = "withdrawal"
    ADJUSTMENT = "adjustment"
    FEE = "fee"
    COMMISSION = "commission"


class SettlementDirection(str, Enum):
    INBOUND = "inbound"  # increases the float balance
    OUTBOUND = "outbound"  # decreases the float balance


class SettlementStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SettlementMethod(str, Enum):
    EFT = "eft"
    RTGS = "rtgs"
    PAYSHAP = "payShap"
    CARD = "card"
    CASH = "cash"


class TransactionClass(str, Enum):
    PUSH_PAYMENT = "push_payment"  # RPP, pay-out initiated by the user
    REQUEST_TO_PAY = "request_to_pay"  # RTP, pay-in requested from a payer


class NetDirection(str, Enum):
    PAYOUT = "payout"  # platform owes entity
    COLLECTION = "collection"  # entity owes platform
    BALANCED = "balanced"


E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: Type[E], value: Any, field: str) -> E:
    """Coerce a raw value into an enum member, raising ValidationError on unknown values"""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {field} '{value}' (expected one of: {allowed})") from None


@dataclass(frozen=True)
class FeeBreakdown:
    """
    Accounting decomposition of a PayShap fee.

    The tier fee is a cost of sale (input VAT, reclaimable). The markup, push
    payments only, is net revenue (output VAT owed).
    """

    transaction_class: TransactionClass
    monthly_count: int
    tier_fee_incl_vat_cents: int
    tier_fee_ex_vat_cents: int
    tier_fee_vat_cents: int
    markup_incl_vat_cents: int
    markup_ex_vat_cents: int
    markup_vat_cents: int
    total_user_charge_incl_vat_cents: int
    total_user_charge_ex_vat_cents: int
    total_output_vat_cents: int
    net_vat_payable_cents: int
    net_revenue_ex_vat_cents: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["transaction_class"] = self.transaction_class.value
        return data


@dataclass(frozen=True)
class ProxyValidationFee:
    """Flat fee for validating a PayShap proxy without making a payment"""

    fee_incl_vat_cents: int
    fee_ex_vat_cents: int
    vat_cents: int


@dataclass(frozen=True)
class NetPosition:
    """Read-only net view of a dual-role float account"""

    account_id: str
    supplier_balance_cents: int
    merchant_balance_cents: int
    net_balance_cents: int
    direction: NetDirection
    requires_settlement: bool
    net_settlement_threshold_cents: int


@dataclass(frozen=True)
class NetSettlementInstruction:
    """Net settlement to raise for a dual-role account"""

    account_id: str
    amount_cents: int
    direction: NetDirection
    role: BalanceRole
    settlement_type: SettlementType
    settlement_direction: SettlementDirection
    scheduled_for: datetime
