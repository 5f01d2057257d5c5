"""Unit tests for PayShap fee calculation"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from float_ledger.domain.exceptions import ConfigurationError, NegotiatedFeeNotConfiguredError, ValidationError
from float_ledger.domain.fees import FeeCalculator, FeeConfig, extract_vat, round_cents
from float_ledger.domain.models import TransactionClass


@pytest.fixture
def calculator() -> FeeCalculator:
    return FeeCalculator(FeeConfig())


@pytest.mark.parametrize(
    "monthly_count,expected_fee",
    [
        (0, 575),
        (999, 575),
        (1000, 475),
        (9999, 475),
        (10000, 400),
        (49999, 400),
    ],
)
def test_tier_boundaries(calculator: FeeCalculator, monthly_count: int, expected_fee: int):
    """Tier fee steps down at 1,000 and 10,000 transactions a month"""
    assert calculator.tier_fee(monthly_count, TransactionClass.PUSH_PAYMENT) == expected_fee
    assert calculator.tier_fee(monthly_count, TransactionClass.REQUEST_TO_PAY) == expected_fee


def test_negotiated_tier_requires_configuration(calculator: FeeCalculator):
    """50,000+ without a negotiated fee fails closed"""
    with pytest.raises(NegotiatedFeeNotConfiguredError) as exc_info:
        calculator.tier_fee(50000, TransactionClass.PUSH_PAYMENT)
    assert exc_info.value.monthly_count == 50000
    assert isinstance(exc_info.value, ConfigurationError)


def test_negotiated_tier_uses_configured_fee():
    calculator = FeeCalculator(FeeConfig(negotiated_fee_cents=350))
    assert calculator.tier_fee(50000, TransactionClass.PUSH_PAYMENT) == 350
    assert calculator.tier_fee(2_000_000, TransactionClass.REQUEST_TO_PAY) == 350


def test_negative_count_rejected(calculator: FeeCalculator):
    with pytest.raises(ValidationError):
        calculator.tier_fee(-1, TransactionClass.PUSH_PAYMENT)


def test_class_override_replaces_tier_table():
    """Per-class flat override applies below the negotiated tier"""
    config = FeeConfig(class_overrides={TransactionClass.REQUEST_TO_PAY: 300})
    calculator = FeeCalculator(config)

    assert calculator.tier_fee(10, TransactionClass.REQUEST_TO_PAY) == 300
    assert calculator.tier_fee(10, TransactionClass.PUSH_PAYMENT) == 575


def test_push_payment_total_at_500_transactions(calculator: FeeCalculator):
    """R5.75 tier fee + R1.00 markup = R6.75 charged to the user"""
    fee = calculator.push_payment_fee(500)

    assert fee.tier_fee_incl_vat_cents == 575
    assert fee.tier_fee_ex_vat_cents == 500
    assert fee.tier_fee_vat_cents == 75
    assert fee.markup_incl_vat_cents == 100
    assert fee.markup_ex_vat_cents == 87
    assert fee.markup_vat_cents == 13
    assert fee.total_user_charge_incl_vat_cents == 675
    assert fee.total_output_vat_cents == 88
    assert fee.net_vat_payable_cents == 13
    assert fee.net_revenue_ex_vat_cents == 87


def test_request_to_pay_is_pass_through(calculator: FeeCalculator):
    """RTP carries no markup, so no revenue and no net VAT"""
    for count in (0, 999, 1000, 10000, 49999):
        fee = calculator.request_to_pay_fee(count)
        assert fee.markup_incl_vat_cents == 0
        assert fee.total_user_charge_incl_vat_cents == fee.tier_fee_incl_vat_cents
        assert fee.net_revenue_ex_vat_cents == 0
        assert fee.net_vat_payable_cents == 0
        assert fee.total_output_vat_cents == fee.tier_fee_vat_cents


def test_vat_reconstruction_is_exact():
    """ex VAT + VAT always adds back to the VAT-inclusive amount"""
    for amount in (1, 13, 100, 125, 400, 475, 575, 675, 99_999):
        ex_vat, vat = extract_vat(amount)
        assert ex_vat + vat == amount


def test_every_breakdown_reconstructs(calculator: FeeCalculator):
    for count in (0, 1000, 10000):
        for fee in (calculator.push_payment_fee(count), calculator.request_to_pay_fee(count)):
            assert fee.tier_fee_ex_vat_cents + fee.tier_fee_vat_cents == fee.tier_fee_incl_vat_cents
            assert fee.markup_ex_vat_cents + fee.markup_vat_cents == fee.markup_incl_vat_cents
            assert (
                fee.total_user_charge_ex_vat_cents + fee.total_output_vat_cents
                == fee.total_user_charge_incl_vat_cents
            )


def test_round_cents_half_up():
    assert round_cents(Decimal("12.5")) == 13
    assert round_cents(Decimal("13.04")) == 13
    assert round_cents(Decimal("52.17")) == 52


def test_proxy_validation_fee(calculator: FeeCalculator):
    fee = calculator.proxy_validation_fee()
    assert fee.fee_incl_vat_cents == 125
    assert fee.vat_cents == 16
    assert fee.fee_ex_vat_cents == 109


def test_fee_breakdown_to_dict(calculator: FeeCalculator):
    data = calculator.push_payment_fee(1000).to_dict()
    assert data["transaction_class"] == "push_payment"
    assert data["tier_fee_incl_vat_cents"] == 475
    assert data["total_user_charge_incl_vat_cents"] == 575


class CountingOracle:
    def __init__(self, count: int):
        self.value = count
        self.calls = []

    def count(self, account_id, transaction_class, period_start):
        self.calls.append((account_id, transaction_class, period_start))
        return self.value


def test_quote_reads_month_to_date_count():
    oracle = CountingOracle(1500)
    calculator = FeeCalculator(FeeConfig(), oracle)
    now = datetime(2026, 3, 17, 14, 30, tzinfo=timezone.utc)

    fee = calculator.quote("SUP-001", TransactionClass.PUSH_PAYMENT, now)

    assert fee.monthly_count == 1500
    assert fee.tier_fee_incl_vat_cents == 475
    assert oracle.calls == [("SUP-001", TransactionClass.PUSH_PAYMENT, datetime(2026, 3, 1, tzinfo=timezone.utc))]


def test_quote_without_oracle_is_configuration_error(calculator: FeeCalculator):
    with pytest.raises(ConfigurationError):
        calculator.quote("SUP-001", TransactionClass.PUSH_PAYMENT, datetime(2026, 3, 1, tzinfo=timezone.utc))


def test_fee_config_validation():
    assert FeeConfig().validate() == FeeConfig()

    with pytest.raises(ConfigurationError):
        FeeConfig(rpp_markup_cents=-1).validate()
    with pytest.raises(ConfigurationError):
        FeeConfig(vat_rate=Decimal("1.5")).validate()
    with pytest.raises(ConfigurationError):
        FeeConfig().validate(require_negotiated=True)

    FeeConfig(negotiated_fee_cents=350).validate(require_negotiated=True)
