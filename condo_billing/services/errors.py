"""Custom exception classes for payment distribution and commit.

Provides domain-specific exceptions for clear error handling and reporting.
Reconciliation findings are not exceptions; see reconciliation_service.
"""


class BillingError(Exception):
    """Base exception for billing engine errors."""

    pass


class ConfigurationError(BillingError):
    """Required billing configuration missing or invalid (e.g., penalty rate)."""

    pass


class ValidationError(BillingError):
    """Caller-supplied input is malformed, stale, or would break an invariant."""

    pass


class NotFoundError(BillingError):
    """Referenced unit or obligation record does not exist."""

    pass


class SourceLoadError(BillingError):
    """A bill source could not turn its stored records into obligations."""

    def __init__(self, module: str, message: str):
        self.module = module
        super().__init__(f"{module}: {message}")


class DegradedSourceError(BillingError):
    """Commit attempted while one or more bill sources failed to load."""

    def __init__(self, degraded_modules: dict[str, str]):
        self.degraded_modules = dict(degraded_modules)
        modules = ", ".join(sorted(self.degraded_modules))
        super().__init__(f"Cannot commit payment: bills could not be loaded for {modules}")


class AllocationMismatchError(BillingError):
    """Formatted allocations do not sum to the transaction amount."""

    pass


__all__ = [
    "BillingError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "SourceLoadError",
    "DegradedSourceError",
    "AllocationMismatchError",
]
