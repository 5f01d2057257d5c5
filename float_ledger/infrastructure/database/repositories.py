"""Data access layer for float accounts and settlements"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from float_ledger.domain.exceptions import AccountNotFoundError, SettlementNotFoundError
from float_ledger.domain.floats import FloatAccount
from float_ledger.domain.models import (
    AccountRole,
    AccountStatus,
    BalanceRole,
    FundingMethod,
    SettlementDirection,
    SettlementFrequency,
    SettlementMethod,
    SettlementStatus,
    SettlementType,
    TransactionClass,
)
from float_ledger.domain.settlements import Settlement
from float_ledger.infrastructure.database.models import FloatAccountRecord, SettlementRecord
from float_ledger.utils.date_utils import ensure_utc

# Settlements that count toward monthly PayShap volume
COUNTED_STATUSES = ("pending", "processing", "completed")
OPEN_STATUSES = ("pending", "processing")

_ACCOUNT_FIELDS = (
    "display_name",
    "supplier_balance_cents",
    "merchant_balance_cents",
    "minimum_balance_cents",
    "maximum_balance_cents",
    "max_supplier_balance_cents",
    "max_merchant_balance_cents",
    "net_settlement_threshold_cents",
    "auto_settlement_enabled",
    "daily_transaction_limit_cents",
    "bank_account_number",
    "bank_code",
    "bank_name",
)


def account_to_domain(record: FloatAccountRecord) -> FloatAccount:
    return FloatAccount(
        account_id=record.account_id,
        role=AccountRole(record.role),
        status=AccountStatus(record.status),
        settlement_period=SettlementFrequency(record.settlement_period),
        funding_method=FundingMethod(record.funding_method),
        settlement_frequency=SettlementFrequency(record.settlement_frequency),
        last_settlement_at=ensure_utc(record.last_settlement_at),
        next_settlement_at=ensure_utc(record.next_settlement_at),
        **{name: getattr(record, name) for name in _ACCOUNT_FIELDS},
    )


def settlement_to_domain(record: SettlementRecord) -> Settlement:
    return Settlement(
        settlement_id=record.settlement_id,
        account_id=record.account_id,
        role=BalanceRole(record.role),
        settlement_type=SettlementType(record.settlement_type),
        direction=SettlementDirection(record.direction),
        amount_cents=record.amount_cents,
        fee_cents=record.fee_cents,
        status=SettlementStatus(record.status),
        currency=record.currency,
        settlement_method=SettlementMethod(record.settlement_method),
        transaction_class=TransactionClass(record.transaction_class) if record.transaction_class else None,
        balance_before_cents=record.balance_before_cents,
        balance_after_cents=record.balance_after_cents,
        supplier_reference=record.supplier_reference,
        bank_reference=record.bank_reference,
        transaction_reference=record.transaction_reference,
        error_code=record.error_code,
        error_message=record.error_message,
        retry_of=record.retry_of,
        is_net_settlement=record.is_net_settlement,
        fee_breakdown=record.fee_breakdown,
        created_at=ensure_utc(record.created_at),
        processed_at=ensure_utc(record.processed_at),
        completed_at=ensure_utc(record.completed_at),
        cancelled_at=ensure_utc(record.cancelled_at),
        metadata=dict(record.metadata_json or {}),
    )


class FloatAccountRepository:
    """Repository for float accounts"""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, account_id: str) -> bool:
        return self.db.query(FloatAccountRecord.id).filter(FloatAccountRecord.account_id == account_id).first() is not None

    def create(self, account: FloatAccount) -> FloatAccountRecord:
        record = FloatAccountRecord(
            account_id=account.account_id,
            role=account.role.value,
            status=account.status.value,
            settlement_period=account.settlement_period.value,
            funding_method=account.funding_method.value,
            settlement_frequency=account.settlement_frequency.value,
            **{name: getattr(account, name) for name in _ACCOUNT_FIELDS},
        )
        self.db.add(record)
        self.db.flush()
        return record

    def get(self, account_id: str) -> FloatAccount:
        return account_to_domain(self._get_record(account_id))

    def get_for_update(self, account_id: str) -> FloatAccount:
        """Load an account holding a row lock until the transaction ends"""
        return account_to_domain(self._get_record(account_id, lock=True))

    def _get_record(self, account_id: str, lock: bool = False) -> FloatAccountRecord:
        stmt = select(FloatAccountRecord).where(FloatAccountRecord.account_id == account_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        record = self.db.execute(stmt).scalar_one_or_none()
        if record is None:
            raise AccountNotFoundError(account_id)
        return record

    def save(self, account: FloatAccount) -> FloatAccountRecord:
        """Write balances, status and settlement timestamps back to the row"""
        record = self._get_record(account.account_id)
        record.status = account.status.value
        record.supplier_balance_cents = account.supplier_balance_cents
        record.merchant_balance_cents = account.merchant_balance_cents
        record.last_settlement_at = account.last_settlement_at
        record.next_settlement_at = account.next_settlement_at
        self.db.flush()
        return record

    def list_dual_role_summary(self) -> List[FloatAccount]:
        """Active dual-role accounts, largest net position first"""
        records = (
            self.db.query(FloatAccountRecord)
            .filter(FloatAccountRecord.role == AccountRole.DUAL_ROLE.value)
            .filter(FloatAccountRecord.status == AccountStatus.ACTIVE.value)
            .order_by(
                (FloatAccountRecord.supplier_balance_cents - FloatAccountRecord.merchant_balance_cents).desc(),
                FloatAccountRecord.account_id,
            )
            .all()
        )
        return [account_to_domain(r) for r in records]

    def list_due_for_settlement(self, now: datetime) -> List[FloatAccount]:
        """Active auto-settling dual-role accounts whose next settlement time has passed"""
        records = (
            self.db.query(FloatAccountRecord)
            .filter(FloatAccountRecord.role == AccountRole.DUAL_ROLE.value)
            .filter(FloatAccountRecord.status == AccountStatus.ACTIVE.value)
            .filter(FloatAccountRecord.auto_settlement_enabled.is_(True))
            .filter(FloatAccountRecord.next_settlement_at.isnot(None))
            .filter(FloatAccountRecord.next_settlement_at <= now)
            .order_by(FloatAccountRecord.next_settlement_at.asc())
            .all()
        )
        return [account_to_domain(r) for r in records]

    def list_active(self) -> List[FloatAccount]:
        records = (
            self.db.query(FloatAccountRecord)
            .filter(FloatAccountRecord.status == AccountStatus.ACTIVE.value)
            .order_by(FloatAccountRecord.account_id)
            .all()
        )
        return [account_to_domain(r) for r in records]


class SettlementRepository:
    """Repository for settlements"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, settlement: Settlement) -> SettlementRecord:
        record = SettlementRecord(settlement_id=settlement.settlement_id)
        self._copy(settlement, record)
        if settlement.created_at is not None:
            record.created_at = settlement.created_at
        self.db.add(record)
        self.db.flush()
        return record

    def save(self, settlement: Settlement) -> SettlementRecord:
        record = self._get_record(settlement.settlement_id)
        self._copy(settlement, record)
        self.db.flush()
        return record

    @staticmethod
    def _copy(settlement: Settlement, record: SettlementRecord) -> None:
        record.account_id = settlement.account_id
        record.role = settlement.role.value
        record.settlement_type = settlement.settlement_type.value
        record.direction = settlement.direction.value
        record.amount_cents = settlement.amount_cents
        record.fee_cents = settlement.fee_cents
        record.net_amount_cents = settlement.net_amount_cents
        record.balance_before_cents = settlement.balance_before_cents
        record.balance_after_cents = settlement.balance_after_cents
        record.status = settlement.status.value
        record.currency = settlement.currency
        record.settlement_method = settlement.settlement_method.value
        record.transaction_class = settlement.transaction_class.value if settlement.transaction_class else None
        record.supplier_reference = settlement.supplier_reference
        record.bank_reference = settlement.bank_reference
        record.transaction_reference = settlement.transaction_reference
        record.error_code = settlement.error_code
        record.error_message = settlement.error_message
        record.retry_of = settlement.retry_of
        record.is_net_settlement = settlement.is_net_settlement
        record.fee_breakdown = settlement.fee_breakdown
        record.metadata_json = dict(settlement.metadata) or None
        record.processed_at = settlement.processed_at
        record.completed_at = settlement.completed_at
        record.cancelled_at = settlement.cancelled_at

    def get(self, settlement_id: str) -> Settlement:
        return settlement_to_domain(self._get_record(settlement_id))

    def _get_record(self, settlement_id: str) -> SettlementRecord:
        record = (
            self.db.query(SettlementRecord)
            .filter(SettlementRecord.settlement_id == settlement_id)
            .first()
        )
        if record is None:
            raise SettlementNotFoundError(settlement_id)
        return record

    def list_by_account(self, account_id: str, status: Optional[str] = None, limit: int = 50) -> List[Settlement]:
        """Most recent settlements for an account"""
        query = self.db.query(SettlementRecord).filter(SettlementRecord.account_id == account_id)
        if status:
            query = query.filter(SettlementRecord.status == status)
        records = query.order_by(SettlementRecord.created_at.desc(), SettlementRecord.id.desc()).limit(limit).all()
        return [settlement_to_domain(r) for r in records]

    def completed_totals_by_role(self, account_id: str) -> Dict[BalanceRole, int]:
        """Sum of signed net amounts of completed settlements, per balance role"""
        rows = (
            self.db.query(
                SettlementRecord.role,
                SettlementRecord.direction,
                func.coalesce(func.sum(SettlementRecord.net_amount_cents), 0),
            )
            .filter(SettlementRecord.account_id == account_id)
            .filter(SettlementRecord.status == SettlementStatus.COMPLETED.value)
            .group_by(SettlementRecord.role, SettlementRecord.direction)
            .all()
        )
        totals = {BalanceRole.SUPPLIER: 0, BalanceRole.MERCHANT: 0}
        for role, direction, total in rows:
            sign = 1 if direction == SettlementDirection.INBOUND.value else -1
            totals[BalanceRole(role)] += sign * int(total)
        return totals

    def outbound_total_since(self, account_id: str, since: datetime, include_open: bool = False) -> int:
        """
        Outbound movement since `since`, for daily limits.

        Completed settlements count by completion time. With include_open,
        pending and processing settlements created since `since` count too.
        """
        counted = and_(
            SettlementRecord.status == SettlementStatus.COMPLETED.value,
            SettlementRecord.completed_at >= since,
        )
        if include_open:
            counted = or_(
                counted,
                and_(SettlementRecord.status.in_(OPEN_STATUSES), SettlementRecord.created_at >= since),
            )
        total = (
            self.db.query(func.coalesce(func.sum(SettlementRecord.amount_cents), 0))
            .filter(SettlementRecord.account_id == account_id)
            .filter(SettlementRecord.direction == SettlementDirection.OUTBOUND.value)
            .filter(counted)
            .scalar()
        )
        return int(total)

    def has_open_net_settlement(self, account_id: str) -> bool:
        return (
            self.db.query(SettlementRecord.id)
            .filter(SettlementRecord.account_id == account_id)
            .filter(SettlementRecord.is_net_settlement.is_(True))
            .filter(SettlementRecord.status.in_(OPEN_STATUSES))
            .first()
            is not None
        )


class SettlementCountOracle:
    """Monthly PayShap volume per account and transaction class, read from settlements"""

    def __init__(self, db: Session):
        self.db = db

    def count(self, account_id: str, transaction_class: TransactionClass, period_start: datetime) -> int:
        return (
            self.db.query(func.count(SettlementRecord.id))
            .filter(SettlementRecord.account_id == account_id)
            .filter(SettlementRecord.transaction_class == transaction_class.value)
            .filter(SettlementRecord.status.in_(COUNTED_STATUSES))
            .filter(SettlementRecord.created_at >= period_start)
            .scalar()
        )
