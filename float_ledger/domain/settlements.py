"""Settlement record and lifecycle state machine"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from float_ledger.domain.exceptions import (
    InvalidSettlementTransitionError,
    InvariantViolationError,
    ValidationError,
)
from float_ledger.domain.models import (
    BalanceRole,
    SettlementDirection,
    SettlementMethod,
    SettlementStatus,
    SettlementType,
    TransactionClass,
)

# pending -> processing -> {completed | failed | cancelled}, pending -> cancelled
ALLOWED_TRANSITIONS = {
    SettlementStatus.PENDING: {SettlementStatus.PROCESSING, SettlementStatus.CANCELLED},
    SettlementStatus.PROCESSING: {
        SettlementStatus.COMPLETED,
        SettlementStatus.FAILED,
        SettlementStatus.CANCELLED,
    },
    SettlementStatus.COMPLETED: set(),
    SettlementStatus.FAILED: set(),
    SettlementStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


def new_settlement_id() -> str:
    return f"STL-{uuid.uuid4().hex.upper()}"


@dataclass
class Settlement:
    """
    A balance movement against one float account.

    The balance is only touched when the settlement completes; balance_before
    and balance_after are stamped at that moment. Failed and cancelled
    settlements never move money.
    """

    settlement_id: str
    account_id: str
    role: BalanceRole
    settlement_type: SettlementType
    direction: SettlementDirection
    amount_cents: int
    fee_cents: int = 0
    status: SettlementStatus = SettlementStatus.PENDING
    currency: str = "ZAR"
    settlement_method: SettlementMethod = SettlementMethod.EFT
    transaction_class: Optional[TransactionClass] = None

    balance_before_cents: Optional[int] = None
    balance_after_cents: Optional[int] = None

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
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.amount_cents, bool) or not isinstance(self.amount_cents, int) or self.amount_cents <= 0:
            raise ValidationError(f"Settlement amount must be a positive number of cents, got {self.amount_cents!r}")
        if not isinstance(self.fee_cents, int) or self.fee_cents < 0:
            raise ValidationError(f"Settlement fee must be zero or more cents, got {self.fee_cents!r}")
        if self.fee_cents > self.amount_cents:
            raise ValidationError(f"Settlement fee {self.fee_cents} exceeds amount {self.amount_cents}")
        if len(self.currency) != 3:
            raise ValidationError(f"Currency must be an ISO 4217 code, got {self.currency!r}")

    @property
    def net_amount_cents(self) -> int:
        return self.amount_cents - self.fee_cents

    @property
    def signed_net_amount_cents(self) -> int:
        """Effect on the float balance: inbound adds, outbound subtracts"""
        if self.direction == SettlementDirection.INBOUND:
            return self.net_amount_cents
        return -self.net_amount_cents

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_transition(self, target: SettlementStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def _transition(self, target: SettlementStatus) -> None:
        if not self.can_transition(target):
            raise InvalidSettlementTransitionError(self.settlement_id, self.status.value, target.value)
        self.status = target

    def mark_processing(self, now: datetime) -> None:
        """Dispatched to the payment rail"""
        self._transition(SettlementStatus.PROCESSING)
        self.processed_at = now

    def mark_completed(self, now: datetime, balance_before_cents: int, balance_after_cents: int) -> None:
        """
        Confirmed execution. The caller has already moved the balance and
        passes the snapshot; a mismatch is a data-integrity fault.
        """
        if balance_after_cents != balance_before_cents + self.signed_net_amount_cents:
            raise InvariantViolationError(
                f"Settlement {self.settlement_id}: balance_after {balance_after_cents} != "
                f"balance_before {balance_before_cents} + {self.signed_net_amount_cents}"
            )
        self._transition(SettlementStatus.COMPLETED)
        self.balance_before_cents = balance_before_cents
        self.balance_after_cents = balance_after_cents
        self.completed_at = now

    def mark_failed(self, error_code: str, error_message: str, now: datetime) -> None:
        self._transition(SettlementStatus.FAILED)
        self.error_code = error_code
        self.error_message = error_message
        self.metadata["failed_at"] = now.isoformat()

    def mark_cancelled(self, now: datetime, reason: Optional[str] = None) -> None:
        self._transition(SettlementStatus.CANCELLED)
        self.cancelled_at = now
        if reason:
            self.metadata["cancel_reason"] = reason

    def build_retry(self, now: datetime) -> "Settlement":
        """
        Fresh pending settlement repeating a failed one. The failed record is
        left exactly as it is.
        """
        if self.status != SettlementStatus.FAILED:
            raise InvalidSettlementTransitionError(self.settlement_id, self.status.value, "retry")
        return Settlement(
            settlement_id=new_settlement_id(),
            account_id=self.account_id,
            role=self.role,
            settlement_type=self.settlement_type,
            direction=self.direction,
            amount_cents=self.amount_cents,
            fee_cents=self.fee_cents,
            currency=self.currency,
            settlement_method=self.settlement_method,
            transaction_class=self.transaction_class,
            supplier_reference=self.supplier_reference,
            transaction_reference=self.transaction_reference,
            retry_of=self.settlement_id,
            is_net_settlement=self.is_net_settlement,
            fee_breakdown=self.fee_breakdown,
            created_at=now,
        )
