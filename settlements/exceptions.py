from typing import Optional


class SettlementError(Exception):
    pass


class NotFoundError(SettlementError):
    pass


class CustomerNotFoundError(NotFoundError):
    pass


class SaleNotFoundError(NotFoundError):
    pass


class PayoutNotFoundError(NotFoundError):
    pass


class AdjustmentNotFoundError(NotFoundError):
    pass


class ValidationError(SettlementError):
    pass


class InvalidStateTransitionError(ValidationError):
    pass


class TransactionStateError(SettlementError):
    """Raised on begin/commit/rollback against a handle in the wrong state."""


class ConcurrencyConflictError(SettlementError):
    """Raised at commit when a record changed since this transaction read it."""


class TransactionFailedError(SettlementError):
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class BalanceCalculationError(SettlementError):
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


def root_cause(error: BaseException) -> BaseException:
    """Unwrap TransactionFailedError to the domain error that aborted it."""
    while isinstance(error, (TransactionFailedError, BalanceCalculationError)) and error.cause is not None:
        error = error.cause
    return error
