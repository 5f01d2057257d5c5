"""PayShap fee quotes"""

from fastapi import APIRouter, Depends

from float_ledger.api.dependencies import get_ledger_service
from float_ledger.api.v1.schemas import FeeBreakdownResponse, FeeQuoteRequest, ProxyValidationFeeResponse
from float_ledger.services.ledger import LedgerService

router = APIRouter()


@router.post("/fees/quote", response_model=FeeBreakdownResponse)
def quote_fee(request_body: FeeQuoteRequest, service: LedgerService = Depends(get_ledger_service)):
    """
    Fee for the account's next transaction of the given class.

    The tier follows the account's volume of that class this calendar month.
    """
    breakdown = service.quote_fee(request_body.account_id, request_body.transaction_class)
    return FeeBreakdownResponse.from_domain(breakdown)


@router.get("/fees/proxy-validation", response_model=ProxyValidationFeeResponse)
def proxy_validation_fee(service: LedgerService = Depends(get_ledger_service)):
    fee = service.fee_calculator.proxy_validation_fee()
    return ProxyValidationFeeResponse(
        fee_incl_vat_cents=fee.fee_incl_vat_cents,
        fee_ex_vat_cents=fee.fee_ex_vat_cents,
        vat_cents=fee.vat_cents,
    )
