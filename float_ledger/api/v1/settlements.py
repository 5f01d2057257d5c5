"""Settlement lifecycle endpoints: pending settlements, rail dispatch and callbacks"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends

from float_ledger.api.dependencies import get_ledger_service, get_rail_client
from float_ledger.api.v1.schemas import (
    CancelRequest,
    PendingSettlementRequest,
    RailCallbackRequest,
    SettlementRequest,
    SettlementResponse,
)
from float_ledger.infrastructure.clients.rail import RailClient
from float_ledger.services.ledger import LedgerService

router = APIRouter()


def settlement_fields(service: LedgerService, account_id: str, body: SettlementRequest) -> Dict[str, Any]:
    """
    Keyword arguments for the ledger service from a settlement request.

    A PayShap transaction class without an explicit fee is priced from the
    account's volume this month.
    """
    fields = body.model_dump(exclude={"account_id"})
    if body.transaction_class and body.fee_cents is None:
        fields["fee_breakdown"] = service.quote_fee(account_id, body.transaction_class)
    return fields


@router.post("/settlements", response_model=SettlementResponse, status_code=201)
def create_pending_settlement(
    request_body: PendingSettlementRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    """Record a settlement to be executed on a payment rail; the balance moves on completion"""
    fields = settlement_fields(service, request_body.account_id, request_body)
    settlement = service.create_settlement(request_body.account_id, **fields)
    return SettlementResponse.from_domain(settlement)


@router.get("/settlements/due", response_model=List[SettlementResponse])
def list_due_net_settlements(service: LedgerService = Depends(get_ledger_service)):
    """Pending net settlements whose scheduled time has arrived"""
    return [SettlementResponse.from_domain(s) for s in service.due_net_settlements()]


@router.get("/settlements/{settlement_id}", response_model=SettlementResponse)
def get_settlement(settlement_id: str, service: LedgerService = Depends(get_ledger_service)):
    return SettlementResponse.from_domain(service.get_settlement(settlement_id))


@router.post("/settlements/{settlement_id}/dispatch", response_model=SettlementResponse)
async def dispatch_settlement(
    settlement_id: str,
    service: LedgerService = Depends(get_ledger_service),
    rail_client: RailClient = Depends(get_rail_client),
):
    """
    Hand a pending settlement to the payment rail.

    Returns the settlement as processing when the rail accepted it or did not
    answer in time, or as failed when the rail rejected it.
    """
    settlement = await service.dispatch_settlement(settlement_id, rail_client)
    return SettlementResponse.from_domain(settlement)


@router.post("/settlements/{settlement_id}/callback", response_model=SettlementResponse)
def rail_callback(
    settlement_id: str,
    request_body: RailCallbackRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    """Final outcome from the payment rail for a processing settlement"""
    settlement = service.handle_rail_callback(
        settlement_id,
        request_body.status,
        bank_reference=request_body.bank_reference,
        error_code=request_body.error_code,
        error_message=request_body.error_message,
    )
    return SettlementResponse.from_domain(settlement)


@router.post("/settlements/{settlement_id}/cancel", response_model=SettlementResponse)
def cancel_settlement(
    settlement_id: str,
    request_body: Optional[CancelRequest] = None,
    service: LedgerService = Depends(get_ledger_service),
):
    reason = request_body.reason if request_body else None
    return SettlementResponse.from_domain(service.cancel_settlement(settlement_id, reason))


@router.post("/settlements/{settlement_id}/retry", response_model=SettlementResponse, status_code=201)
def retry_settlement(settlement_id: str, service: LedgerService = Depends(get_ledger_service)):
    """New pending settlement repeating a failed one"""
    return SettlementResponse.from_domain(service.retry_settlement(settlement_id))
