"""Maps ledger domain exceptions to HTTP responses"""

import logging

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from float_ledger.api.dependencies import get_request_id
from float_ledger.domain.exceptions import (
    AccountInactiveError,
    ConfigurationError,
    DuplicateAccountError,
    InvalidSettlementTransitionError,
    InvalidStatusTransitionError,
    InvariantViolationError,
    LedgerError,
    NotFoundError,
    RailError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# First match wins, so subclasses come before their parents
STATUS_CODES = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (AccountInactiveError, 409),
    (InvalidStatusTransitionError, 409),
    (InvalidSettlementTransitionError, 409),
    (DuplicateAccountError, 409),
    (RailError, 502),
    (ConfigurationError, 500),
    (InvariantViolationError, 500),
)


def status_code_for(exc: LedgerError) -> int:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    status_code = status_code_for(exc)
    extra = {"request_id": get_request_id(request), "error_code": exc.code, "path": request.url.path}
    if status_code >= 500:
        logger.error(f"Ledger error: {exc}", extra=extra)
    else:
        logger.warning(f"Request rejected: {exc}", extra=extra)
    return JSONResponse(status_code=status_code, content={"error": exc.code, "detail": str(exc)})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies get the same error shape as domain validation failures"""
    return JSONResponse(
        status_code=422,
        content={"error": "validation_error", "detail": jsonable_encoder(exc.errors())},
    )
