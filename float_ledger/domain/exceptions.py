"""Domain-specific exceptions"""


class LedgerError(Exception):
    """Base exception for the ledger domain"""

    code = "ledger_error"


class ValidationError(LedgerError):
    """Input is malformed: non-positive amount, unknown role or enum value"""

    code = "validation_error"


class BalanceLimitError(ValidationError):
    """Movement would breach a configured maximum balance or transaction limit"""

    code = "balance_limit_exceeded"


class NotFoundError(LedgerError):
    code = "not_found"


class AccountNotFoundError(NotFoundError):
    code = "account_not_found"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Float account {account_id} not found")


class SettlementNotFoundError(NotFoundError):
    code = "settlement_not_found"

    def __init__(self, settlement_id: str):
        self.settlement_id = settlement_id
        super().__init__(f"Settlement {settlement_id} not found")


class DuplicateAccountError(LedgerError):
    code = "duplicate_account"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Float account {account_id} already exists")


class AccountInactiveError(LedgerError):
    """Balance movement attempted on a suspended or closed account"""

    code = "account_inactive"

    def __init__(self, account_id: str, status: str):
        self.account_id = account_id
        self.status = status
        super().__init__(f"Float account {account_id} is {status}")


class InvalidStatusTransitionError(LedgerError):
    code = "invalid_status_transition"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move float account from {current} to {target}")


class InvalidSettlementTransitionError(LedgerError):
    code = "invalid_settlement_transition"

    def __init__(self, settlement_id: str, current: str, target: str):
        self.settlement_id = settlement_id
        self.current = current
        self.target = target
        super().__init__(f"Settlement {settlement_id} cannot move from {current} to {target}")


class ConfigurationError(LedgerError):
    """Required configuration is missing or invalid; always fails closed"""

    code = "configuration_error"


class NegotiatedFeeNotConfiguredError(ConfigurationError):
    """Monthly volume reached the negotiated tier but no negotiated fee is set"""

    code = "negotiated_fee_not_configured"

    def __init__(self, monthly_count: int):
        self.monthly_count = monthly_count
        super().__init__(
            f"Monthly count {monthly_count} is in the negotiated tier (50,000+) "
            "but PAYSHAP_NEGOTIATED_FEE_CENTS is not configured"
        )


class InvariantViolationError(LedgerError):
    """Balance/settlement pairing is broken; a data-integrity alert, never auto-corrected"""

    code = "invariant_violation"


class RailError(LedgerError):
    """Payment rail returned an error or is unavailable"""

    code = "rail_error"


class RailRejectedError(RailError):
    code = "rail_rejected"

    def __init__(self, error_code: str, message: str):
        self.error_code = error_code
        super().__init__(message)


class RailTimeoutError(RailError):
    code = "rail_timeout"
