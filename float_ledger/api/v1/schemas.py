"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from float_ledger.domain.floats import FloatAccount
from float_ledger.domain.models import FeeBreakdown, NetPosition
from float_ledger.domain.settlements import Settlement


class FloatAccountCreateRequest(BaseModel):
    """Request body for POST /v1/float-accounts"""

    account_id: str = Field(..., min_length=1, max_length=64, description="External supplier/entity identifier")
    display_name: str = Field(..., min_length=1)
    role: Literal["supplier_only", "dual_role"] = "supplier_only"
    opening_balance_cents: int = Field(0, ge=0)
    minimum_balance_cents: Optional[int] = Field(None, ge=0)
    maximum_balance_cents: Optional[int] = Field(None, ge=0)
    settlement_period: Optional[Literal["real_time", "daily", "weekly", "monthly"]] = None
    funding_method: Optional[Literal["prefunded", "postpaid", "hybrid"]] = None
    max_supplier_balance_cents: Optional[int] = Field(None, ge=0)
    max_merchant_balance_cents: Optional[int] = Field(None, ge=0)
    net_settlement_threshold_cents: Optional[int] = Field(None, ge=0)
    auto_settlement_enabled: Optional[bool] = None
    settlement_frequency: Optional[Literal["real_time", "daily", "weekly", "monthly"]] = None
    daily_transaction_limit_cents: Optional[int] = Field(None, ge=0)
    bank_account_number: Optional[str] = None
    bank_code: Optional[str] = None
    bank_name: Optional[str] = None


class FloatAccountResponse(BaseModel):
    account_id: str
    display_name: str
    role: str
    status: str
    is_active: bool
    balance_cents: int
    supplier_balance_cents: int
    merchant_balance_cents: int
    net_balance_cents: int
    minimum_balance_cents: int
    maximum_balance_cents: Optional[int] = None
    utilization_percentage: float
    net_settlement_threshold_cents: int
    auto_settlement_enabled: bool
    settlement_frequency: str
    last_settlement_at: Optional[datetime] = None
    next_settlement_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, account: FloatAccount) -> "FloatAccountResponse":
        return cls(
            account_id=account.account_id,
            display_name=account.display_name,
            role=account.role.value,
            status=account.status.value,
            is_active=account.is_active,
            balance_cents=account.balance_cents,
            supplier_balance_cents=account.supplier_balance_cents,
            merchant_balance_cents=account.merchant_balance_cents,
            net_balance_cents=account.net_balance_cents,
            minimum_balance_cents=account.minimum_balance_cents,
            maximum_balance_cents=account.maximum_balance_cents,
            utilization_percentage=account.utilization_percentage("supplier"),
            net_settlement_threshold_cents=account.net_settlement_threshold_cents,
            auto_settlement_enabled=account.auto_settlement_enabled,
            settlement_frequency=account.settlement_frequency.value,
            last_settlement_at=account.last_settlement_at,
            next_settlement_at=account.next_settlement_at,
        )


class AccountStatusRequest(BaseModel):
    """Request body for POST /v1/float-accounts/{account_id}/status"""

    action: Literal["suspend", "reactivate", "close"]


class NetPositionResponse(BaseModel):
    account_id: str
    supplier_balance_cents: int
    merchant_balance_cents: int
    net_balance_cents: int
    direction: str
    requires_settlement: bool
    net_settlement_threshold_cents: int

    @classmethod
    def from_domain(cls, position: NetPosition) -> "NetPositionResponse":
        return cls(
            account_id=position.account_id,
            supplier_balance_cents=position.supplier_balance_cents,
            merchant_balance_cents=position.merchant_balance_cents,
            net_balance_cents=position.net_balance_cents,
            direction=position.direction.value,
            requires_settlement=position.requires_settlement,
            net_settlement_threshold_cents=position.net_settlement_threshold_cents,
        )


class SettlementSummaryResponse(BaseModel):
    positions: List[NetPositionResponse]


class SettlementRequest(BaseModel):
    """Request body for applying or creating a settlement"""

    settlement_type: Literal["topup", "withdrawal", "adjustment", "fee", "commission"]
    direction: Literal["inbound", "outbound"]
    amount_cents: int = Field(..., gt=0, description="Gross movement in cents")
    role: Optional[Literal["supplier", "merchant"]] = None
    fee_cents: Optional[int] = Field(None, ge=0)
    transaction_class: Optional[Literal["push_payment", "request_to_pay"]] = Field(
        None, description="When set without fee_cents, the PayShap fee is quoted and deducted"
    )
    settlement_method: Literal["eft", "rtgs", "payShap", "card", "cash"] = "eft"
    currency: str = Field("ZAR", min_length=3, max_length=3)
    supplier_reference: Optional[str] = None
    bank_reference: Optional[str] = None
    transaction_reference: Optional[str] = None


class PendingSettlementRequest(SettlementRequest):
    """Request body for POST /v1/settlements"""

    account_id: str = Field(..., min_length=1)


class SettlementResponse(BaseModel):
    settlement_id: str
    account_id: str
    role: str
    settlement_type: str
    direction: str
    amount_cents: int
    fee_cents: int
    net_amount_cents: int
    balance_before_cents: Optional[int] = None
    balance_after_cents: Optional[int] = None
    status: str
    currency: str
    settlement_method: str
    transaction_class: Optional[str] = None
    supplier_reference: Optional[str] = None
    bank_reference: Optional[str] = None
    transaction_reference: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    retry_of: Optional[str] = None
    is_net_settlement: bool = False
    fee_breakdown: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, settlement: Settlement) -> "SettlementResponse":
        return cls(
            settlement_id=settlement.settlement_id,
            account_id=settlement.account_id,
            role=settlement.role.value,
            settlement_type=settlement.settlement_type.value,
            direction=settlement.direction.value,
            amount_cents=settlement.amount_cents,
            fee_cents=settlement.fee_cents,
            net_amount_cents=settlement.net_amount_cents,
            balance_before_cents=settlement.balance_before_cents,
            balance_after_cents=settlement.balance_after_cents,
            status=settlement.status.value,
            currency=settlement.currency,
            settlement_method=settlement.settlement_method.value,
            transaction_class=settlement.transaction_class.value if settlement.transaction_class else None,
            supplier_reference=settlement.supplier_reference,
            bank_reference=settlement.bank_reference,
            transaction_reference=settlement.transaction_reference,
            error_code=settlement.error_code,
            error_message=settlement.error_message,
            retry_of=settlement.retry_of,
            is_net_settlement=settlement.is_net_settlement,
            fee_breakdown=settlement.fee_breakdown,
            created_at=settlement.created_at,
            processed_at=settlement.processed_at,
            completed_at=settlement.completed_at,
            cancelled_at=settlement.cancelled_at,
        )


class SettlementListResponse(BaseModel):
    account_id: str
    settlements: List[SettlementResponse]


class RailCallbackRequest(BaseModel):
    """Asynchronous outcome reported by the payment rail"""

    status: Literal["completed", "failed"]
    bank_reference: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class FeeQuoteRequest(BaseModel):
    """Request body for POST /v1/fees/quote"""

    account_id: str = Field(..., min_length=1)
    transaction_class: Literal["push_payment", "request_to_pay"]


class FeeBreakdownResponse(BaseModel):
    transaction_class: str
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

    @classmethod
    def from_domain(cls, breakdown: FeeBreakdown) -> "FeeBreakdownResponse":
        return cls(**breakdown.to_dict())


class ProxyValidationFeeResponse(BaseModel):
    fee_incl_vat_cents: int
    fee_ex_vat_cents: int
    vat_cents: int


class AuditResponse(BaseModel):
    account_id: str
    balanced: bool
    roles: Dict[str, Dict[str, int]]


class BalanceAlertResponse(BaseModel):
    account_id: str
    level: Literal["warning", "critical"]
    balance_cents: int
    minimum_balance_cents: int
