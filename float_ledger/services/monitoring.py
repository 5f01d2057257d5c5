"""Low float balance monitoring"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from float_ledger.config import settings
from float_ledger.infrastructure.database.repositories import FloatAccountRepository
from float_ledger.infrastructure.observability.metrics import balance_alert_counter, record_balance
from float_ledger.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class BalanceAlert:
    account_id: str
    level: str  # warning | critical
    balance_cents: int
    minimum_balance_cents: int


class FloatBalanceMonitor:
    """
    Checks active float accounts against their minimum balance and raises
    warning/critical alerts, at most once per account and level per cooldown.
    """

    def __init__(
        self,
        warning_ratio: float = settings.balance_warning_ratio,
        critical_ratio: float = settings.balance_critical_ratio,
        cooldown: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.warning_ratio = warning_ratio
        self.critical_ratio = critical_ratio
        self.cooldown = cooldown
        self.clock = clock
        self._last_alerted: Dict[Tuple[str, str], datetime] = {}

    def check_all(self, db: Session) -> List[BalanceAlert]:
        now = self.clock()
        alerts = []
        for account in FloatAccountRepository(db).list_active():
            record_balance(account.account_id, "supplier", account.supplier_balance_cents)
            alert = self.check(account, now)
            if alert is not None:
                alerts.append(alert)
        return alerts

    def check(self, account, now: datetime) -> Optional[BalanceAlert]:
        level = account.balance_alert_level(self.warning_ratio, self.critical_ratio)
        if level is None:
            return None

        key = (account.account_id, level)
        last = self._last_alerted.get(key)
        if last is not None and now - last < self.cooldown:
            return None
        self._last_alerted[key] = now

        balance_alert_counter.labels(level=level).inc()
        log = logger.error if level == "critical" else logger.warning
        log(
            "Float balance low",
            extra={
                "step": "balance_alert",
                "account_id": account.account_id,
                "alert_level": level,
                "balance_cents": account.supplier_balance_cents,
                "minimum_balance_cents": account.minimum_balance_cents,
            },
        )
        return BalanceAlert(
            account_id=account.account_id,
            level=level,
            balance_cents=account.supplier_balance_cents,
            minimum_balance_cents=account.minimum_balance_cents,
        )
