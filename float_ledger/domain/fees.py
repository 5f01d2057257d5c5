"""PayShap fee engine - volume-tiered, VAT-inclusive pricing"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Protocol, Tuple

from float_ledger.domain.exceptions import ConfigurationError, NegotiatedFeeNotConfiguredError, ValidationError
from float_ledger.domain.models import FeeBreakdown, ProxyValidationFee, TransactionClass
from float_ledger.utils.date_utils import start_of_month

VAT_RATE = Decimal("0.15")

# Bank pricing per transaction (VAT inclusive), applied separately to each
# transaction class's monthly volume: (min_count, max_count, fee_cents)
PAYSHAP_TIERS: List[Tuple[int, int, int]] = [
    (0, 999, 575),
    (1_000, 9_999, 475),
    (10_000, 49_999, 400),
]
NEGOTIATED_TIER_MIN_COUNT = 50_000


class TransactionCountOracle(Protocol):
    """Source of an account's transaction count for a class since period_start"""

    def count(self, account_id: str, transaction_class: TransactionClass, period_start: datetime) -> int:
        ...


def round_cents(value: Decimal) -> int:
    """Round to a whole cent, half-up. The only rounding rule used for money."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def extract_vat(incl_vat_cents: int, vat_rate: Decimal = VAT_RATE) -> Tuple[int, int]:
    """
    Split a VAT-inclusive amount into (ex_vat, vat).

    VAT is extracted, not added: vat = round(A * rate / (1 + rate)).
    The ex-VAT part is the remainder so ex_vat + vat == A exactly.

    Example:
        575 cents -> vat 75, ex 500
        100 cents -> vat 13 (13.04), ex 87
    """
    vat = round_cents(Decimal(incl_vat_cents) * vat_rate / (1 + vat_rate))
    return incl_vat_cents - vat, vat


@dataclass(frozen=True)
class FeeConfig:
    """Fee constants, resolved once from settings and handed to the calculator"""

    vat_rate: Decimal = VAT_RATE
    rpp_markup_cents: int = 100
    proxy_validation_fee_cents: int = 125
    negotiated_fee_cents: Optional[int] = None
    class_overrides: Dict[TransactionClass, int] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings) -> "FeeConfig":
        overrides = {}
        if settings.payshap_fee_override_push_payment_cents is not None:
            overrides[TransactionClass.PUSH_PAYMENT] = settings.payshap_fee_override_push_payment_cents
        if settings.payshap_fee_override_request_to_pay_cents is not None:
            overrides[TransactionClass.REQUEST_TO_PAY] = settings.payshap_fee_override_request_to_pay_cents
        return cls(
            vat_rate=settings.vat_rate,
            rpp_markup_cents=settings.payshap_rpp_markup_cents,
            proxy_validation_fee_cents=settings.payshap_proxy_validation_fee_cents,
            negotiated_fee_cents=settings.payshap_negotiated_fee_cents,
            class_overrides=overrides,
        )

    def validate(self, require_negotiated: bool = False) -> "FeeConfig":
        """
        Fail fast on unusable pricing.

        Raises:
            ConfigurationError: negative fees, bad VAT rate, or a required
                negotiated fee that is absent
        """
        if not (Decimal("0") <= self.vat_rate < Decimal("1")):
            raise ConfigurationError(f"VAT rate must be in [0, 1), got {self.vat_rate}")
        amounts = {
            "rpp_markup_cents": self.rpp_markup_cents,
            "proxy_validation_fee_cents": self.proxy_validation_fee_cents,
            "negotiated_fee_cents": self.negotiated_fee_cents,
        }
        amounts.update({f"override[{k.value}]": v for k, v in self.class_overrides.items()})
        for name, value in amounts.items():
            if value is not None and value < 0:
                raise ConfigurationError(f"{name} must not be negative, got {value}")
        if require_negotiated and self.negotiated_fee_cents is None:
            raise ConfigurationError("Negotiated PayShap fee is required but PAYSHAP_NEGOTIATED_FEE_CENTS is not set")
        return self


class FeeCalculator:
    """
    Computes what a user is charged for a PayShap transaction and how that
    charge splits into cost, revenue and VAT.

    Pure: the only input besides configuration is the monthly count, which
    quote() reads from the injected oracle.
    """

    def __init__(self, config: FeeConfig, oracle: Optional[TransactionCountOracle] = None):
        self.config = config
        self.oracle = oracle

    def tier_fee(self, monthly_count: int, transaction_class: TransactionClass) -> int:
        """
        VAT-inclusive bank fee for the given monthly volume of one transaction class.

        Raises:
            ValidationError: negative count
            NegotiatedFeeNotConfiguredError: count is 50,000+ and no negotiated fee is set
        """
        if monthly_count < 0:
            raise ValidationError(f"Monthly transaction count must not be negative, got {monthly_count}")

        if monthly_count >= NEGOTIATED_TIER_MIN_COUNT:
            if self.config.negotiated_fee_cents is None:
                raise NegotiatedFeeNotConfiguredError(monthly_count)
            return self.config.negotiated_fee_cents

        override = self.config.class_overrides.get(transaction_class)
        if override is not None:
            return override

        for min_count, max_count, fee_cents in PAYSHAP_TIERS:
            if min_count <= monthly_count <= max_count:
                return fee_cents

        raise ConfigurationError(f"No PayShap tier covers monthly count {monthly_count}")

    def push_payment_fee(self, monthly_count: int) -> FeeBreakdown:
        """
        Push payment (RPP): user pays tier fee + markup, both VAT inclusive.

        Net VAT payable = output VAT on the full user charge minus input VAT on
        the bank fee. Net revenue is the markup ex VAT.
        """
        tier_fee = self.tier_fee(monthly_count, TransactionClass.PUSH_PAYMENT)
        tier_ex, tier_vat = extract_vat(tier_fee, self.config.vat_rate)

        markup = self.config.rpp_markup_cents
        markup_ex, markup_vat = extract_vat(markup, self.config.vat_rate)

        total = tier_fee + markup
        total_ex, total_output_vat = extract_vat(total, self.config.vat_rate)

        return FeeBreakdown(
            transaction_class=TransactionClass.PUSH_PAYMENT,
            monthly_count=monthly_count,
            tier_fee_incl_vat_cents=tier_fee,
            tier_fee_ex_vat_cents=tier_ex,
            tier_fee_vat_cents=tier_vat,
            markup_incl_vat_cents=markup,
            markup_ex_vat_cents=markup_ex,
            markup_vat_cents=markup_vat,
            total_user_charge_incl_vat_cents=total,
            total_user_charge_ex_vat_cents=total_ex,
            total_output_vat_cents=total_output_vat,
            net_vat_payable_cents=total_output_vat - tier_vat,
            net_revenue_ex_vat_cents=markup_ex,
        )

    def request_to_pay_fee(self, monthly_count: int) -> FeeBreakdown:
        """
        Request to pay (RTP): user pays the tier fee only, a pure pass-through.

        Output VAT equals the input VAT on the bank fee, so net VAT payable and
        net revenue are always zero.
        """
        tier_fee = self.tier_fee(monthly_count, TransactionClass.REQUEST_TO_PAY)
        tier_ex, tier_vat = extract_vat(tier_fee, self.config.vat_rate)

        return FeeBreakdown(
            transaction_class=TransactionClass.REQUEST_TO_PAY,
            monthly_count=monthly_count,
            tier_fee_incl_vat_cents=tier_fee,
            tier_fee_ex_vat_cents=tier_ex,
            tier_fee_vat_cents=tier_vat,
            markup_incl_vat_cents=0,
            markup_ex_vat_cents=0,
            markup_vat_cents=0,
            total_user_charge_incl_vat_cents=tier_fee,
            total_user_charge_ex_vat_cents=tier_ex,
            total_output_vat_cents=tier_vat,
            net_vat_payable_cents=0,
            net_revenue_ex_vat_cents=0,
        )

    def proxy_validation_fee(self) -> ProxyValidationFee:
        fee = self.config.proxy_validation_fee_cents
        fee_ex, vat = extract_vat(fee, self.config.vat_rate)
        return ProxyValidationFee(fee_incl_vat_cents=fee, fee_ex_vat_cents=fee_ex, vat_cents=vat)

    def fee_for(self, transaction_class: TransactionClass, monthly_count: int) -> FeeBreakdown:
        if transaction_class == TransactionClass.PUSH_PAYMENT:
            return self.push_payment_fee(monthly_count)
        return self.request_to_pay_fee(monthly_count)

    def quote(self, account_id: str, transaction_class: TransactionClass, now: datetime) -> FeeBreakdown:
        """Fee for the next transaction, using the account's count so far this calendar month"""
        if self.oracle is None:
            raise ConfigurationError("FeeCalculator has no transaction count oracle")
        monthly_count = self.oracle.count(account_id, transaction_class, start_of_month(now))
        return self.fee_for(transaction_class, monthly_count)
