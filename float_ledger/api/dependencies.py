"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from float_ledger.config import settings
from float_ledger.domain.fees import FeeCalculator, FeeConfig
from float_ledger.infrastructure.clients.rail import RailClient
from float_ledger.infrastructure.database.repositories import SettlementCountOracle
from float_ledger.infrastructure.database.session import get_db
from float_ledger.services.ledger import LedgerService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_rail_client() -> RailClient:
    """Provide payment rail client instance"""
    return RailClient()


def get_fee_config() -> FeeConfig:
    """Pricing from settings; raises ConfigurationError when unusable"""
    return FeeConfig.from_settings(settings).validate(settings.payshap_require_negotiated_fee)


def get_ledger_service(
    db: Session = Depends(get_db),
    fee_config: FeeConfig = Depends(get_fee_config),
) -> LedgerService:
    """Provide a ledger service bound to the request's database session"""
    return LedgerService(db, fee_calculator=FeeCalculator(fee_config, SettlementCountOracle(db)))
