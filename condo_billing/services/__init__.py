"""Payment distribution and reconciliation services."""

from condo_billing.services.db import create_all, create_engine_for, create_sessionmaker, get_async_session
from condo_billing.services.obligations import ObligationFilter
from condo_billing.services.payment_service import CommitResult, UnifiedPaymentService

__all__ = [
    "create_all",
    "create_engine_for",
    "create_sessionmaker",
    "get_async_session",
    "CommitResult",
    "ObligationFilter",
    "UnifiedPaymentService",
]
