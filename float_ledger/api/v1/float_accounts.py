"""Float account endpoints: onboarding, status, balances and applied settlements"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from float_ledger.api.dependencies import get_ledger_service
from float_ledger.api.v1.schemas import (
    AccountStatusRequest,
    AuditResponse,
    BalanceAlertResponse,
    FloatAccountCreateRequest,
    FloatAccountResponse,
    NetPositionResponse,
    SettlementListResponse,
    SettlementRequest,
    SettlementResponse,
    SettlementSummaryResponse,
)
from float_ledger.api.v1.settlements import settlement_fields
from float_ledger.infrastructure.database.session import get_db
from float_ledger.services.ledger import LedgerService
from float_ledger.services.monitoring import FloatBalanceMonitor

router = APIRouter()

# Keeps alert cooldowns for the lifetime of the process
balance_monitor = FloatBalanceMonitor()


@router.post("/float-accounts", response_model=FloatAccountResponse, status_code=201)
def create_float_account(
    request_body: FloatAccountCreateRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    """Onboard a supplier-only or dual-role float account"""
    options = request_body.model_dump(exclude={"account_id", "display_name", "role", "opening_balance_cents"})
    account = service.create_float_account(
        request_body.account_id,
        request_body.display_name,
        role=request_body.role,
        opening_balance_cents=request_body.opening_balance_cents,
        **options,
    )
    return FloatAccountResponse.from_domain(account)


@router.get("/float-accounts/settlement-summary", response_model=SettlementSummaryResponse)
def settlement_summary(service: LedgerService = Depends(get_ledger_service)):
    """Net positions of active dual-role accounts, largest first"""
    positions = [NetPositionResponse.from_domain(p) for p in service.settlement_summary()]
    return SettlementSummaryResponse(positions=positions)


@router.get("/float-accounts/balance-alerts", response_model=List[BalanceAlertResponse])
def balance_alerts(db: Session = Depends(get_db)):
    """Run the low balance check over active accounts; alerts respect a per-account cooldown"""
    return [
        BalanceAlertResponse(
            account_id=a.account_id,
            level=a.level,
            balance_cents=a.balance_cents,
            minimum_balance_cents=a.minimum_balance_cents,
        )
        for a in balance_monitor.check_all(db)
    ]


@router.get("/float-accounts/{account_id}", response_model=FloatAccountResponse)
def get_float_account(account_id: str, service: LedgerService = Depends(get_ledger_service)):
    return FloatAccountResponse.from_domain(service.get_account(account_id))


@router.post("/float-accounts/{account_id}/status", response_model=FloatAccountResponse)
def change_account_status(
    account_id: str,
    request_body: AccountStatusRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    transitions = {
        "suspend": service.suspend_account,
        "reactivate": service.reactivate_account,
        "close": service.close_account,
    }
    account = transitions[request_body.action](account_id)
    return FloatAccountResponse.from_domain(account)


@router.get("/float-accounts/{account_id}/net-position", response_model=NetPositionResponse)
def get_net_position(account_id: str, service: LedgerService = Depends(get_ledger_service)):
    return NetPositionResponse.from_domain(service.get_net_position(account_id))


@router.post("/float-accounts/{account_id}/net-settlement", response_model=Optional[SettlementResponse])
def evaluate_net_settlement(account_id: str, service: LedgerService = Depends(get_ledger_service)):
    """Emit a pending net settlement if the account's net position calls for one"""
    settlement = service.evaluate_net_settlement(account_id)
    return SettlementResponse.from_domain(settlement) if settlement else None


@router.get("/float-accounts/{account_id}/audit", response_model=AuditResponse)
def audit_account(account_id: str, service: LedgerService = Depends(get_ledger_service)):
    """
    Recompute balances from completed settlements.

    A mismatch is answered with 500 and error code invariant_violation.
    """
    report = service.audit_account(account_id)
    return AuditResponse(account_id=account_id, balanced=True, roles=report)


@router.post(
    "/float-accounts/{account_id}/settlements",
    response_model=SettlementResponse,
    status_code=201,
)
def apply_settlement(
    account_id: str,
    request_body: SettlementRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    """Record an executed movement and apply it to the balance atomically"""
    fields = settlement_fields(service, account_id, request_body)
    settlement = service.apply_settlement(account_id, **fields)
    return SettlementResponse.from_domain(settlement)


@router.get("/float-accounts/{account_id}/settlements", response_model=SettlementListResponse)
def list_settlements(
    account_id: str,
    status: Optional[str] = Query(None, description="Filter by settlement status"),
    limit: int = Query(50, ge=1, le=500),
    service: LedgerService = Depends(get_ledger_service),
):
    """Most recent settlements for an account"""
    settlements = service.list_settlements(account_id, status=status, limit=limit)
    return SettlementListResponse(
        account_id=account_id,
        settlements=[SettlementResponse.from_domain(s) for s in settlements],
    )
