"""Net settlement for dual-role float accounts"""

from datetime import datetime
from typing import Optional

from float_ledger.domain.floats import FloatAccount
from float_ledger.domain.models import (
    BalanceRole,
    NetDirection,
    NetPosition,
    NetSettlementInstruction,
    SettlementDirection,
    SettlementType,
)
from float_ledger.utils.date_utils import next_settlement_boundary


def net_position(account: FloatAccount) -> NetPosition:
    return NetPosition(
        account_id=account.account_id,
        supplier_balance_cents=account.supplier_balance_cents,
        merchant_balance_cents=account.merchant_balance_cents,
        net_balance_cents=account.net_balance_cents,
        direction=account.settlement_direction(),
        requires_settlement=account.requires_settlement(),
        net_settlement_threshold_cents=account.net_settlement_threshold_cents,
    )


class NetSettlementCoordinator:
    """
    Decides whether a dual-role account should be net settled.

    Only paying or collecting the difference between the supplier and merchant
    sides moves money. A payout debits the supplier side and a collection
    debits the merchant side, so completing either drives the net toward zero.
    The coordinator never moves balances itself.
    """

    def __init__(self, timezone_name: str = "Africa/Johannesburg"):
        self.timezone_name = timezone_name

    def evaluate(self, account: FloatAccount, now: datetime) -> Optional[NetSettlementInstruction]:
        """Return a settlement instruction when the account crossed its threshold, else None"""
        if not account.is_dual_role:
            return None
        if not (account.auto_settlement_enabled and account.is_active):
            return None
        if not account.requires_settlement():
            return None

        direction = account.settlement_direction()
        if direction == NetDirection.BALANCED:
            # Only reachable with a zero threshold
            return None

        role = BalanceRole.SUPPLIER if direction == NetDirection.PAYOUT else BalanceRole.MERCHANT
        return NetSettlementInstruction(
            account_id=account.account_id,
            amount_cents=abs(account.net_balance_cents),
            direction=direction,
            role=role,
            settlement_type=SettlementType.WITHDRAWAL,
            settlement_direction=SettlementDirection.OUTBOUND,
            scheduled_for=next_settlement_boundary(now, account.settlement_frequency.value, self.timezone_name),
        )
