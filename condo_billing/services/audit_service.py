"""Audit service for logging payment lifecycle events."""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from condo_billing.models.audit_log import AuditLog
from condo_billing.services.distribution_service import DistributionResult


class AuditService:
    """Service for audit log operations.

    Provides static method to create minimal audit log entries.
    """

    @staticmethod
    def log(
        session: AsyncSession,
        entity_type: str,
        entity_id: int,
        action: str,
        actor: str | None = None,
        changes: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Create audit log entry inside the caller's transaction.

        Args:
            session: Database session
            entity_type: Type of entity ("payment", "credit")
            entity_id: Primary key of the entity
            action: Action performed ("commit", "adjust")
            actor: Who performed the action (optional)
            changes: Optional JSON snapshot of the change

        Returns:
            Created AuditLog object
        """
        audit = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor=actor,
            changes=changes,
        )
        session.add(audit)
        return audit

    @staticmethod
    def log_payment_commit(
        session: AsyncSession,
        transaction_id: int,
        unit_code: str,
        result: DistributionResult,
        obligation_ids: list[str],
        actor: str | None = None,
    ) -> AuditLog:
        """Record a committed payment with the money movements it made."""
        return AuditService.log(
            session,
            entity_type="payment",
            entity_id=transaction_id,
            action="commit",
            actor=actor,
            changes={
                "unit": unit_code,
                "as_of": result.as_of.isoformat(),
                "payment_amount": result.payment_amount,
                "total_applied": result.total_applied,
                "credit_used": result.credit_used,
                "credit_added": result.credit_added,
                "obligations": obligation_ids,
            },
        )


__all__ = ["AuditService"]
