from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Optional
import os
import uuid

app = FastAPI(title="Mock Payment Rail", version="1.0.0")
# Amounts above this are rejected, to exercise the failure path
REJECT_ABOVE_CENTS = int(os.environ.get("RAIL_REJECT_ABOVE_CENTS", "100000000"))


class RailSettlement(BaseModel):
    settlement_id: str
    method: str
    direction: str
    amount_cents: int
    currency: str = "ZAR"
    bank_account_number: Optional[str] = None
    bank_code: Optional[str] = None
    bank_name: Optional[str] = None
    reference: Optional[str] = None


@app.get("/health")
def health(): return {"status": "ok"}

@app.post("/rail/settlements", status_code=202)
def submit_settlement(body: RailSettlement):
    if body.amount_cents > REJECT_ABOVE_CENTS:
        return JSONResponse(
            status_code=422,
            content={"error_code": "AMOUNT_LIMIT", "error_message": "Amount exceeds rail limit"},
        )
    if body.method != "cash" and not body.bank_account_number:
        return JSONResponse(
            status_code=422,
            content={"error_code": "NO_BENEFICIARY", "error_message": "Bank account number is required"},
        )
    return {"status": "accepted", "bank_reference": f"RAIL-{uuid.uuid4().hex[:12].upper()}"}
