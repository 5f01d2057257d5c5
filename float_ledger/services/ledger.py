"""Ledger service - the only code path that moves float balances"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

from sqlalchemy.orm import Session

from float_ledger.config import settings
from float_ledger.domain.exceptions import (
    AccountInactiveError,
    BalanceLimitError,
    DuplicateAccountError,
    InvalidSettlementTransitionError,
    InvariantViolationError,
    RailRejectedError,
    RailTimeoutError,
    ValidationError,
)
from float_ledger.domain.fees import FeeCalculator, FeeConfig
from float_ledger.domain.floats import FloatAccount
from float_ledger.domain.models import (
    AccountRole,
    BalanceRole,
    FeeBreakdown,
    FundingMethod,
    NetPosition,
    SettlementDirection,
    SettlementFrequency,
    SettlementMethod,
    SettlementStatus,
    SettlementType,
    TransactionClass,
    parse_enum,
)
from float_ledger.domain.net_settlement import NetSettlementCoordinator, net_position
from float_ledger.domain.settlements import Settlement, new_settlement_id
from float_ledger.infrastructure.database.repositories import (
    FloatAccountRepository,
    SettlementCountOracle,
    SettlementRepository,
)
from float_ledger.infrastructure.observability.logging import (
    log_invariant_violation,
    log_net_settlement,
    log_settlement_event,
)
from float_ledger.infrastructure.observability.metrics import (
    fee_charged_counter,
    invariant_violation_counter,
    net_settlement_counter,
    record_balance,
    record_settlement,
)
from float_ledger.services.locks import AccountLockRegistry, account_locks
from float_ledger.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

# Settable at onboarding; balances and status are not
ACCOUNT_OPTIONS = frozenset(
    {
        "minimum_balance_cents",
        "maximum_balance_cents",
        "max_supplier_balance_cents",
        "max_merchant_balance_cents",
        "auto_settlement_enabled",
        "daily_transaction_limit_cents",
        "bank_account_number",
        "bank_code",
        "bank_name",
    }
)


class LedgerService:
    """
    Entry points for float accounts and settlements.

    Every balance mutation runs under the account's lock and inside one
    database transaction together with the Settlement write that explains it:
    both commit or neither does. Balances move only when a settlement
    completes.
    """

    def __init__(
        self,
        db: Session,
        fee_calculator: Optional[FeeCalculator] = None,
        coordinator: Optional[NetSettlementCoordinator] = None,
        locks: Optional[AccountLockRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.accounts = FloatAccountRepository(db)
        self.settlements = SettlementRepository(db)
        self.fee_calculator = fee_calculator or FeeCalculator(
            FeeConfig.from_settings(settings), SettlementCountOracle(db)
        )
        self.coordinator = coordinator or NetSettlementCoordinator(settings.settlement_timezone)
        self.locks = locks or account_locks
        self.clock = clock

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    @contextmanager
    def _account_transaction(self, account_id: str) -> Iterator[None]:
        with self.locks.hold(account_id):
            with self._transaction():
                yield

    # Float accounts

    def create_float_account(
        self,
        account_id: str,
        display_name: str,
        role: Any = AccountRole.SUPPLIER_ONLY,
        opening_balance_cents: int = 0,
        **options: Any,
    ) -> FloatAccount:
        """
        Onboard a supplier or dual-role float account.

        An opening balance is booked as a completed inbound adjustment, never
        written directly, so the balance always equals its settlements.
        """
        if not account_id or not account_id.strip():
            raise ValidationError("account_id is required")
        if not display_name or not display_name.strip():
            raise ValidationError("display_name is required")
        if opening_balance_cents < 0:
            raise ValidationError(f"Opening balance must not be negative, got {opening_balance_cents}")

        threshold = options.pop("net_settlement_threshold_cents", None)
        if threshold is None:
            threshold = settings.default_net_settlement_threshold_cents
        account = FloatAccount(
            account_id=account_id,
            display_name=display_name,
            role=parse_enum(AccountRole, role, "role"),
            net_settlement_threshold_cents=threshold,
        )
        enum_options = {
            "settlement_period": SettlementFrequency,
            "settlement_frequency": SettlementFrequency,
            "funding_method": FundingMethod,
        }
        for name, value in options.items():
            if value is None:
                continue
            if name in enum_options:
                value = parse_enum(enum_options[name], value, name)
            elif name not in ACCOUNT_OPTIONS:
                raise ValidationError(f"Unknown float account option '{name}'")
            setattr(account, name, value)
        _validate_limits(account)

        with self._account_transaction(account_id):
            if self.accounts.exists(account_id):
                raise DuplicateAccountError(account_id)
            self.accounts.create(account)
            if opening_balance_cents > 0:
                now = self.clock()
                opening = Settlement(
                    settlement_id=new_settlement_id(),
                    account_id=account_id,
                    role=BalanceRole.SUPPLIER,
                    settlement_type=SettlementType.ADJUSTMENT,
                    direction=SettlementDirection.INBOUND,
                    amount_cents=opening_balance_cents,
                    metadata={"reason": "opening_balance"},
                    created_at=now,
                )
                self.settlements.create(opening)
                opening.mark_processing(now)
                self._complete(account, opening, now)

        logger.info(
            "Float account created",
            extra={"step": "account_created", "account_id": account_id, "role": account.role.value},
        )
        return account

    def get_account(self, account_id: str) -> FloatAccount:
        return self.accounts.get(account_id)

    def suspend_account(self, account_id: str) -> FloatAccount:
        return self._change_status(account_id, FloatAccount.suspend)

    def reactivate_account(self, account_id: str) -> FloatAccount:
        return self._change_status(account_id, FloatAccount.reactivate)

    def close_account(self, account_id: str) -> FloatAccount:
        return self._change_status(account_id, FloatAccount.close)

    def _change_status(self, account_id: str, transition: Callable[[FloatAccount], None]) -> FloatAccount:
        with self._account_transaction(account_id):
            account = self.accounts.get_for_update(account_id)
            previous = account.status
            transition(account)
            self.accounts.save(account)
        logger.info(
            "Float account status changed",
            extra={
                "step": "account_status",
                "account_id": account_id,
                "from_status": previous.value,
                "to_status": account.status.value,
            },
        )
        return account

    # Fees

    def quote_fee(self, account_id: str, transaction_class: Any) -> FeeBreakdown:
        """Fee for the account's next transaction of this class, from this month's volume"""
        transaction_class = parse_enum(TransactionClass, transaction_class, "transaction_class")
        self.accounts.get(account_id)
        return self.fee_calculator.quote(account_id, transaction_class, self.clock())

    # Settlements

    def apply_settlement(
        self,
        account_id: str,
        settlement_type: Any,
        direction: Any,
        amount_cents: int,
        fee_breakdown: Optional[FeeBreakdown] = None,
        role: Any = None,
        fee_cents: Optional[int] = None,
        **details: Any,
    ) -> Settlement:
        """
        Record an already-executed movement and apply it to the balance in one
        atomic step. The settlement is stored as completed.

        The fee is fee_cents when given, else the user charge of fee_breakdown,
        else zero; the balance moves by amount minus fee.
        """
        with self._account_transaction(account_id):
            account = self.accounts.get_for_update(account_id)
            now = self.clock()
            settlement = self._build_settlement(
                account, settlement_type, direction, amount_cents, fee_breakdown, role, fee_cents, now, details
            )
            self.settlements.create(settlement)
            settlement.mark_processing(now)
            self._complete(account, settlement, now)
            net_settlement = self._evaluate_net(account, now)

        self._after_completion(account, settlement)
        if net_settlement is not None:
            self._after_net_settlement(net_settlement)
        return settlement

    def create_settlement(
        self,
        account_id: str,
        settlement_type: Any,
        direction: Any,
        amount_cents: int,
        fee_breakdown: Optional[FeeBreakdown] = None,
        role: Any = None,
        fee_cents: Optional[int] = None,
        **details: Any,
    ) -> Settlement:
        """
        Record a settlement awaiting execution on a payment rail; the balance is untouched.

        Status and limits are checked here, before the rail sees the movement.
        Outbound amounts still pending or processing count toward the daily limit.
        """
        with self._account_transaction(account_id):
            account = self.accounts.get_for_update(account_id)
            now = self.clock()
            settlement = self._build_settlement(
                account, settlement_type, direction, amount_cents, fee_breakdown, role, fee_cents, now, details
            )
            self._check_limits(account, settlement, now, include_open=True)
            self.settlements.create(settlement)

        record_settlement(settlement.settlement_type.value, settlement.direction.value, settlement.status.value)
        log_settlement_event("created", settlement.settlement_id, account_id, settlement.status.value, amount_cents)
        return settlement

    def _build_settlement(
        self,
        account: FloatAccount,
        settlement_type: Any,
        direction: Any,
        amount_cents: int,
        fee_breakdown: Optional[FeeBreakdown],
        role: Any,
        fee_cents: Optional[int],
        now: datetime,
        details: Dict[str, Any],
    ) -> Settlement:
        if fee_cents is None:
            fee_cents = fee_breakdown.total_user_charge_incl_vat_cents if fee_breakdown else 0
        transaction_class = details.pop("transaction_class", None)
        if transaction_class is None and fee_breakdown is not None:
            transaction_class = fee_breakdown.transaction_class
        settlement_method = details.pop("settlement_method", SettlementMethod.EFT)
        allowed = {"currency", "supplier_reference", "bank_reference", "transaction_reference", "metadata"}
        unknown = set(details) - allowed
        if unknown:
            raise ValidationError(f"Unknown settlement fields: {', '.join(sorted(unknown))}")

        return Settlement(
            settlement_id=new_settlement_id(),
            account_id=account.account_id,
            role=account.resolve_role(role),
            settlement_type=parse_enum(SettlementType, settlement_type, "settlement_type"),
            direction=parse_enum(SettlementDirection, direction, "direction"),
            amount_cents=amount_cents,
            fee_cents=fee_cents,
            settlement_method=parse_enum(SettlementMethod, settlement_method, "settlement_method"),
            transaction_class=(
                parse_enum(TransactionClass, transaction_class, "transaction_class") if transaction_class else None
            ),
            fee_breakdown=fee_breakdown.to_dict() if fee_breakdown else None,
            created_at=now,
            **{k: v for k, v in details.items() if v is not None},
        )

    def _check_limits(
        self, account: FloatAccount, settlement: Settlement, now: datetime, include_open: bool = False
    ) -> None:
        """Status, maximum balance and daily limit checks for a movement the ledger can still refuse"""
        if not account.is_active:
            raise AccountInactiveError(account.account_id, account.status.value)
        role = settlement.role

        if settlement.direction == SettlementDirection.INBOUND:
            max_balance = account.max_balance_for(role)
            if max_balance is not None and account.balance_for(role) + settlement.net_amount_cents > max_balance:
                raise BalanceLimitError(
                    f"Settlement {settlement.settlement_id} would take {role.value} balance of "
                    f"{account.account_id} above its maximum of {max_balance}"
                )
        elif account.daily_transaction_limit_cents is not None:
            day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
            spent = self.settlements.outbound_total_since(account.account_id, day_start, include_open=include_open)
            if not account.check_transaction_limits(settlement.amount_cents, role, spent)["daily_limit"]:
                raise BalanceLimitError(
                    f"Settlement {settlement.settlement_id} would exceed the daily limit of {account.account_id}"
                )

    def _complete(
        self, account: FloatAccount, settlement: Settlement, now: datetime, enforce_limits: bool = True
    ) -> None:
        """
        Move the balance and mark the settlement completed; caller holds the lock and transaction.

        A rail-confirmed settlement is recorded with enforce_limits=False,
        whatever the account status and limits are by then.
        """
        role = settlement.role
        net = settlement.net_amount_cents
        before = account.balance_for(role)
        if enforce_limits:
            self._check_limits(account, settlement, now)

        if net == 0:
            after = before
        elif settlement.direction == SettlementDirection.INBOUND:
            after = account.credit(net, role, enforce_limits=enforce_limits)
        else:
            after = account.debit(net, role, enforce_limits=enforce_limits)

        try:
            settlement.mark_completed(now, before, after)
        except InvariantViolationError as e:
            invariant_violation_counter.inc()
            log_invariant_violation(account.account_id, str(e))
            raise

        account.last_settlement_at = now
        if settlement.is_net_settlement:
            account.next_settlement_at = None
        self.accounts.save(account)
        self.settlements.save(settlement)

    def _after_completion(self, account: FloatAccount, settlement: Settlement) -> None:
        record_settlement(settlement.settlement_type.value, settlement.direction.value, settlement.status.value)
        record_balance(account.account_id, settlement.role.value, settlement.balance_after_cents)
        if settlement.transaction_class is not None and settlement.fee_cents:
            fee_charged_counter.labels(transaction_class=settlement.transaction_class.value).inc(settlement.fee_cents)
        log_settlement_event(
            "completed",
            settlement.settlement_id,
            account.account_id,
            settlement.status.value,
            settlement.amount_cents,
            balance_after_cents=settlement.balance_after_cents,
            role=settlement.role.value,
            direction=settlement.direction.value,
            fee_cents=settlement.fee_cents,
        )

    def get_settlement(self, settlement_id: str) -> Settlement:
        return self.settlements.get(settlement_id)

    def list_settlements(self, account_id: str, status: Optional[str] = None, limit: int = 50) -> List[Settlement]:
        self.accounts.get(account_id)
        if status is not None:
            status = parse_enum(SettlementStatus, status, "status").value
        return self.settlements.list_by_account(account_id, status=status, limit=limit)

    def mark_dispatched(self, settlement_id: str, bank_reference: Optional[str] = None) -> Settlement:
        """pending -> processing: the settlement has been handed to a payment rail"""
        settlement = self.settlements.get(settlement_id)
        with self._account_transaction(settlement.account_id):
            account = self.accounts.get_for_update(settlement.account_id)
            if not account.is_active:
                raise AccountInactiveError(account.account_id, account.status.value)
            settlement = self.settlements.get(settlement_id)
            settlement.mark_processing(self.clock())
            if bank_reference:
                settlement.bank_reference = bank_reference
            self.settlements.save(settlement)

        record_settlement(settlement.settlement_type.value, settlement.direction.value, settlement.status.value)
        log_settlement_event(
            "dispatched", settlement_id, settlement.account_id, settlement.status.value, settlement.amount_cents
        )
        return settlement

    async def dispatch_settlement(self, settlement_id: str, rail_client) -> Settlement:
        """
        Mark the settlement processing, then submit it to the rail.

        A rejection fails the settlement. A timeout leaves it in processing:
        the rail outcome is unknown and must be reconciled, never guessed.
        """
        settlement = self.mark_dispatched(settlement_id)
        account = self.accounts.get(settlement.account_id)
        try:
            receipt = await rail_client.dispatch(settlement, account)
        except RailRejectedError as e:
            return self.fail_settlement(settlement_id, e.error_code, str(e))
        except RailTimeoutError as e:
            logger.warning(
                "Rail outcome unknown, settlement left processing",
                extra={"step": "rail_timeout", "settlement_id": settlement_id, "detail": str(e)},
            )
            return self.settlements.get(settlement_id)

        if receipt.bank_reference:
            with self._account_transaction(settlement.account_id):
                settlement = self.settlements.get(settlement_id)
                settlement.bank_reference = receipt.bank_reference
                self.settlements.save(settlement)
        return settlement

    def complete_settlement(self, settlement_id: str, bank_reference: Optional[str] = None) -> Settlement:
        """
        processing -> completed: confirmed by the rail; the balance moves now.

        The rail has already executed the movement, so it is recorded even if
        the account was suspended or a limit changed after dispatch.
        """
        account_id = self.settlements.get(settlement_id).account_id
        with self._account_transaction(account_id):
            account = self.accounts.get_for_update(account_id)
            settlement = self.settlements.get(settlement_id)
            if settlement.status != SettlementStatus.PROCESSING:
                raise InvalidSettlementTransitionError(
                    settlement_id, settlement.status.value, SettlementStatus.COMPLETED.value
                )
            if bank_reference:
                settlement.bank_reference = bank_reference
            now = self.clock()
            self._complete(account, settlement, now, enforce_limits=False)
            net_settlement = self._evaluate_net(account, now)

        self._after_completion(account, settlement)
        if net_settlement is not None:
            self._after_net_settlement(net_settlement)
        return settlement

    def fail_settlement(self, settlement_id: str, error_code: str, error_message: str) -> Settlement:
        """processing -> failed; no balance effect and no automatic retry"""
        account_id = self.settlements.get(settlement_id).account_id
        with self._account_transaction(account_id):
            settlement = self.settlements.get(settlement_id)
            settlement.mark_failed(error_code, error_message, self.clock())
            self.settlements.save(settlement)

        record_settlement(settlement.settlement_type.value, settlement.direction.value, settlement.status.value)
        log_settlement_event(
            "failed",
            settlement_id,
            account_id,
            settlement.status.value,
            settlement.amount_cents,
            error_code=error_code,
            error_message=error_message,
        )
        return settlement

    def cancel_settlement(self, settlement_id: str, reason: Optional[str] = None) -> Settlement:
        """pending|processing -> cancelled; no balance effect"""
        account_id = self.settlements.get(settlement_id).account_id
        with self._account_transaction(account_id):
            settlement = self.settlements.get(settlement_id)
            settlement.mark_cancelled(self.clock(), reason)
            if settlement.is_net_settlement:
                account = self.accounts.get_for_update(account_id)
                account.next_settlement_at = None
                self.accounts.save(account)
            self.settlements.save(settlement)

        record_settlement(settlement.settlement_type.value, settlement.direction.value, settlement.status.value)
        log_settlement_event("cancelled", settlement_id, account_id, settlement.status.value, settlement.amount_cents)
        return settlement

    def handle_rail_callback(
        self,
        settlement_id: str,
        status: Any,
        bank_reference: Optional[str] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> Settlement:
        """Apply the asynchronous rail outcome for a processing settlement"""
        status = parse_enum(SettlementStatus, status, "status")
        if status == SettlementStatus.COMPLETED:
            return self.complete_settlement(settlement_id, bank_reference=bank_reference)
        if status == SettlementStatus.FAILED:
            return self.fail_settlement(settlement_id, error_code or "RAIL_FAILED", error_message or "Rail reported failure")
        raise ValidationError(f"Rail callback status must be completed or failed, got {status.value}")

    def retry_settlement(self, settlement_id: str) -> Settlement:
        """New pending settlement repeating a failed one; the failed record is not modified"""
        original = self.settlements.get(settlement_id)
        with self._account_transaction(original.account_id):
            account = self.accounts.get_for_update(original.account_id)
            now = self.clock()
            retry = original.build_retry(now)
            self._check_limits(account, retry, now, include_open=True)
            self.settlements.create(retry)

        record_settlement(retry.settlement_type.value, retry.direction.value, retry.status.value)
        log_settlement_event(
            "created", retry.settlement_id, retry.account_id, retry.status.value, retry.amount_cents, retry_of=settlement_id
        )
        return retry

    # Net settlement

    def _evaluate_net(self, account: FloatAccount, now: datetime) -> Optional[Settlement]:
        """Raise a pending net settlement when the coordinator asks for one and none is open"""
        instruction = self.coordinator.evaluate(account, now)
        if instruction is None or self.settlements.has_open_net_settlement(account.account_id):
            return None

        settlement = Settlement(
            settlement_id=new_settlement_id(),
            account_id=account.account_id,
            role=instruction.role,
            settlement_type=instruction.settlement_type,
            direction=instruction.settlement_direction,
            amount_cents=instruction.amount_cents,
            is_net_settlement=True,
            metadata={
                "net_direction": instruction.direction.value,
                "scheduled_for": instruction.scheduled_for.isoformat(),
            },
            created_at=now,
        )
        self.settlements.create(settlement)
        account.next_settlement_at = instruction.scheduled_for
        self.accounts.save(account)
        return settlement

    def _after_net_settlement(self, settlement: Settlement) -> None:
        direction = settlement.metadata["net_direction"]
        net_settlement_counter.labels(direction=direction).inc()
        record_settlement(settlement.settlement_type.value, settlement.direction.value, settlement.status.value)
        log_net_settlement(
            settlement.account_id,
            settlement.settlement_id,
            direction,
            settlement.amount_cents,
            settlement.metadata["scheduled_for"],
        )

    def evaluate_net_settlement(self, account_id: str) -> Optional[Settlement]:
        """Re-run the coordinator outside a balance mutation, e.g. after a threshold change"""
        with self._account_transaction(account_id):
            account = self.accounts.get_for_update(account_id)
            settlement = self._evaluate_net(account, self.clock())
        if settlement is not None:
            self._after_net_settlement(settlement)
        return settlement

    def get_net_position(self, account_id: str) -> NetPosition:
        return net_position(self.accounts.get(account_id))

    def settlement_summary(self) -> List[NetPosition]:
        return [net_position(account) for account in self.accounts.list_dual_role_summary()]

    def due_net_settlements(self, now: Optional[datetime] = None) -> List[Settlement]:
        """Pending net settlements whose scheduled time has arrived, ready for dispatch"""
        now = now or self.clock()
        due = []
        for account in self.accounts.list_due_for_settlement(now):
            due.extend(
                s
                for s in self.settlements.list_by_account(account.account_id, status=SettlementStatus.PENDING.value)
                if s.is_net_settlement
            )
        return due

    # Audit

    def audit_account(self, account_id: str) -> Dict[str, Dict[str, int]]:
        """
        Recompute balances from completed settlements.

        Raises:
            InvariantViolationError: a stored balance differs from its settlements
        """
        account = self.accounts.get(account_id)
        totals = self.settlements.completed_totals_by_role(account_id)
        report = {
            BalanceRole.SUPPLIER.value: {
                "stored_cents": account.supplier_balance_cents,
                "settled_cents": totals[BalanceRole.SUPPLIER],
            },
            BalanceRole.MERCHANT.value: {
                "stored_cents": account.merchant_balance_cents,
                "settled_cents": totals[BalanceRole.MERCHANT],
            },
        }
        mismatched = [role for role, r in report.items() if r["stored_cents"] != r["settled_cents"]]
        if mismatched:
            detail = f"Balance mismatch on {', '.join(mismatched)} for account {account_id}: {report}"
            invariant_violation_counter.inc()
            log_invariant_violation(account_id, detail)
            raise InvariantViolationError(detail)
        return report


def _validate_limits(account: FloatAccount) -> None:
    for name in (
        "minimum_balance_cents",
        "maximum_balance_cents",
        "max_supplier_balance_cents",
        "max_merchant_balance_cents",
        "net_settlement_threshold_cents",
        "daily_transaction_limit_cents",
    ):
        value = getattr(account, name)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
            raise ValidationError(f"{name} must be a non-negative number of cents, got {value!r}")
