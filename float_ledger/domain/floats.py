"""Float account entity - balance arithmetic and read-only checks"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from float_ledger.domain.exceptions import (
    AccountInactiveError,
    BalanceLimitError,
    InvalidStatusTransitionError,
    ValidationError,
)
from float_ledger.domain.models import (
    AccountRole,
    AccountStatus,
    BalanceRole,
    FundingMethod,
    NetDirection,
    SettlementFrequency,
    parse_enum,
)


@dataclass
class FloatAccount:
    """
    Balance-bearing account for a supplier or a dual-role entity.

    A supplier_only account has a single balance, stored on the supplier side.
    A dual_role account has supplier and merchant balances, and its net
    balance is always derived as supplier minus merchant.

    Balances change only through credit()/debit(), and only the ledger service
    calls those, pairing each call with a Settlement.
    """

    account_id: str
    display_name: str
    role: AccountRole = AccountRole.SUPPLIER_ONLY
    status: AccountStatus = AccountStatus.ACTIVE

    supplier_balance_cents: int = 0
    merchant_balance_cents: int = 0

    # supplier_only
    minimum_balance_cents: int = 0
    maximum_balance_cents: Optional[int] = None
    settlement_period: SettlementFrequency = SettlementFrequency.REAL_TIME
    funding_method: FundingMethod = FundingMethod.PREFUNDED

    # dual_role
    max_supplier_balance_cents: Optional[int] = None
    max_merchant_balance_cents: Optional[int] = None
    net_settlement_threshold_cents: int = 100_000
    auto_settlement_enabled: bool = False
    settlement_frequency: SettlementFrequency = SettlementFrequency.DAILY
    daily_transaction_limit_cents: Optional[int] = None

    last_settlement_at: Optional[datetime] = None
    next_settlement_at: Optional[datetime] = None

    bank_account_number: Optional[str] = None
    bank_code: Optional[str] = None
    bank_name: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    @property
    def is_dual_role(self) -> bool:
        return self.role == AccountRole.DUAL_ROLE

    @property
    def balance_cents(self) -> int:
        """Single balance of a supplier_only account"""
        return self.supplier_balance_cents

    @property
    def net_balance_cents(self) -> int:
        return self.supplier_balance_cents - self.merchant_balance_cents

    # Balance movements

    def resolve_role(self, role) -> BalanceRole:
        """Validate the balance role for this account type"""
        if role is None:
            if self.is_dual_role:
                raise ValidationError(f"Dual-role account {self.account_id} requires a role (supplier or merchant)")
            return BalanceRole.SUPPLIER
        resolved = parse_enum(BalanceRole, role, "role")
        if not self.is_dual_role and resolved != BalanceRole.SUPPLIER:
            raise ValidationError(f"Supplier-only account {self.account_id} has no {resolved.value} balance")
        return resolved

    def balance_for(self, role=None) -> int:
        if self.resolve_role(role) == BalanceRole.MERCHANT:
            return self.merchant_balance_cents
        return self.supplier_balance_cents

    def max_balance_for(self, role=None) -> Optional[int]:
        resolved = self.resolve_role(role)
        if not self.is_dual_role:
            return self.maximum_balance_cents
        if resolved == BalanceRole.MERCHANT:
            return self.max_merchant_balance_cents
        return self.max_supplier_balance_cents

    def credit(self, amount_cents: int, role=None, enforce_limits: bool = True) -> int:
        """
        Increase a role balance.

        With enforce_limits=False the movement is recorded as already executed:
        account status and the maximum balance are not checked.

        Raises:
            ValidationError: non-positive amount or bad role
            AccountInactiveError: account is suspended or closed
            BalanceLimitError: configured maximum would be breached
        """
        resolved = self._check_movement(amount_cents, role, enforce_limits)
        max_balance = self.max_balance_for(resolved)
        if enforce_limits and max_balance is not None and self.balance_for(resolved) + amount_cents > max_balance:
            raise BalanceLimitError(
                f"Credit of {amount_cents} would take {resolved.value} balance of "
                f"{self.account_id} above its maximum of {max_balance}"
            )
        self._set_balance(resolved, self.balance_for(resolved) + amount_cents)
        return self.balance_for(resolved)

    def debit(self, amount_cents: int, role=None, enforce_limits: bool = True) -> int:
        """
        Decrease a role balance. Floats may go negative pending settlement;
        callers that need a floor check has_sufficient_balance() first.

        Raises:
            ValidationError: non-positive amount or bad role
            AccountInactiveError: account is suspended or closed
            BalanceLimitError: amount exceeds the configured transaction limit
        """
        resolved = self._check_movement(amount_cents, role, enforce_limits)
        self._set_balance(resolved, self.balance_for(resolved) - amount_cents)
        return self.balance_for(resolved)

    def _check_movement(self, amount_cents: int, role, enforce_limits: bool = True) -> BalanceRole:
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
            raise ValidationError(f"Amount must be a positive number of cents, got {amount_cents!r}")
        resolved = self.resolve_role(role)
        if not enforce_limits:
            return resolved
        if not self.is_active:
            raise AccountInactiveError(self.account_id, self.status.value)
        checks = self.check_transaction_limits(amount_cents, resolved)
        if not checks["max_balance"]:
            raise BalanceLimitError(
                f"Amount {amount_cents} exceeds the maximum {resolved.value} balance of {self.account_id}"
            )
        return resolved

    def _set_balance(self, role: BalanceRole, value: int) -> None:
        if role == BalanceRole.MERCHANT:
            self.merchant_balance_cents = value
        else:
            self.supplier_balance_cents = value

    # Read-only checks

    def has_sufficient_balance(self, amount_cents: int, role=None) -> bool:
        return self.balance_for(role) >= amount_cents

    def utilization_percentage(self, role=None) -> float:
        """Balance as a percentage of the configured maximum (0 when unset)"""
        max_balance = self.max_balance_for(role)
        if not max_balance:
            return 0.0
        return round(self.balance_for(role) / max_balance * 100, 2)

    def check_transaction_limits(self, amount_cents: int, role=None, spent_today_cents: int = 0) -> Dict[str, bool]:
        """Per-transaction limit checks; daily limit needs today's spend from history"""
        checks = {"max_balance": True, "daily_limit": True}
        max_balance = self.max_balance_for(role)
        if max_balance is not None and amount_cents > max_balance:
            checks["max_balance"] = False
        if self.daily_transaction_limit_cents is not None:
            if spent_today_cents + amount_cents > self.daily_transaction_limit_cents:
                checks["daily_limit"] = False
        return checks

    def requires_settlement(self) -> bool:
        self._require_dual_role("requires_settlement")
        return abs(self.net_balance_cents) >= self.net_settlement_threshold_cents

    def settlement_direction(self) -> NetDirection:
        self._require_dual_role("settlement_direction")
        net = self.net_balance_cents
        if net > 0:
            return NetDirection.PAYOUT
        if net < 0:
            return NetDirection.COLLECTION
        return NetDirection.BALANCED

    def balance_alert_level(self, warning_ratio: float = 0.15, critical_ratio: float = 0.05) -> Optional[str]:
        """
        Low-balance alert for the supplier balance.

        critical: below minimum, or within critical_ratio above it
        warning:  within warning_ratio above minimum
        """
        minimum = self.minimum_balance_cents
        if minimum <= 0:
            return None
        balance = self.supplier_balance_cents
        if balance < minimum * (1 + critical_ratio):
            return "critical"
        if balance < minimum * (1 + warning_ratio):
            return "warning"
        return None

    def _require_dual_role(self, operation: str) -> None:
        if not self.is_dual_role:
            raise ValidationError(f"{operation} applies to dual-role accounts only ({self.account_id})")

    # Status lifecycle

    def suspend(self) -> None:
        if self.status != AccountStatus.ACTIVE:
            raise InvalidStatusTransitionError(self.status.value, AccountStatus.SUSPENDED.value)
        self.status = AccountStatus.SUSPENDED

    def reactivate(self) -> None:
        if self.status != AccountStatus.SUSPENDED:
            raise InvalidStatusTransitionError(self.status.value, AccountStatus.ACTIVE.value)
        self.status = AccountStatus.ACTIVE

    def close(self) -> None:
        if self.status == AccountStatus.CLOSED:
            raise InvalidStatusTransitionError(self.status.value, AccountStatus.CLOSED.value)
        self.status = AccountStatus.CLOSED
