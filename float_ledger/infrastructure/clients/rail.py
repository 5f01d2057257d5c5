"""Payment rail HTTP client for dispatching settlements"""

from dataclasses import dataclass
from typing import Optional

import httpx

from float_ledger.config import settings
from float_ledger.domain.exceptions import RailRejectedError, RailTimeoutError
from float_ledger.domain.floats import FloatAccount
from float_ledger.domain.settlements import Settlement
from float_ledger.infrastructure.observability.metrics import rail_failure_counter, rail_latency_histogram


@dataclass
class RailReceipt:
    """Acknowledgement that the rail accepted a settlement for execution"""

    bank_reference: Optional[str]
    rail_status: str


class RailClient:
    """Client for the external payment rail (EFT, RTGS, PayShap)"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.rail_api_base
        self.timeout = timeout or settings.http_timeout_seconds

    async def dispatch(self, settlement: Settlement, account: FloatAccount) -> RailReceipt:
        """
        Submit a settlement to the rail. The final outcome arrives later on the
        settlement callback endpoint.

        Never retries. An explicit rejection is final. A timeout, network error
        or 5xx is ambiguous: the rail may have executed, so the caller must
        leave the settlement in processing for reconciliation.

        Raises:
            RailRejectedError: rail answered 4xx
            RailTimeoutError: timeout, connection failure or 5xx
        """
        payload = {
            "settlement_id": settlement.settlement_id,
            "method": settlement.settlement_method.value,
            "direction": settlement.direction.value,
            "amount_cents": settlement.net_amount_cents,
            "currency": settlement.currency,
            "bank_account_number": account.bank_account_number,
            "bank_code": account.bank_code,
            "bank_name": account.bank_name,
            "reference": settlement.transaction_reference or settlement.settlement_id,
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                with rail_latency_histogram.time():
                    response = await client.post(f"{self.base_url}/rail/settlements", json=payload)
                    response.raise_for_status()
                data = response.json()
                return RailReceipt(
                    bank_reference=data.get("bank_reference"),
                    rail_status=data.get("status", "accepted"),
                )

            except httpx.TimeoutException as e:
                rail_failure_counter.labels(reason="timeout").inc()
                raise RailTimeoutError(f"Payment rail timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status >= 500:
                    rail_failure_counter.labels(reason="timeout").inc()
                    raise RailTimeoutError(f"Payment rail unavailable: {status}") from e
                rail_failure_counter.labels(reason="rejected").inc()
                error_code, message = _rejection_details(e.response)
                raise RailRejectedError(error_code, message) from e
            except httpx.RequestError as e:
                rail_failure_counter.labels(reason="timeout").inc()
                raise RailTimeoutError(f"Payment rail unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise RailTimeoutError(f"Unreadable payment rail response: {e}") from e


def _rejection_details(response: httpx.Response) -> tuple[str, str]:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    error_code = body.get("error_code") or f"HTTP_{response.status_code}"
    message = body.get("error_message") or body.get("detail") or response.text or "Rejected by payment rail"
    return str(error_code), str(message)
