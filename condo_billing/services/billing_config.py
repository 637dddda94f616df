"""Billing configuration provider for the dues and water modules.

Financial rate fields have no defaults. A configured module with a missing or
malformed penalty rate or grace period raises ConfigurationError the first
time it is read, so a forgotten setting can never silently skew money.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from condo_billing.models.billing_config import BillingFrequency, ModuleBillingConfig
from condo_billing.services.errors import ConfigurationError
from condo_billing.services.obligations import ModuleType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PenaltyConfig:
    """Late-penalty rules: rate per elapsed 30-day unit past grace."""

    rate: Decimal
    grace_days: int

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any], context: str = "penalty calculation") -> "PenaltyConfig":
        """Build from a plain mapping with keys ``rate`` and ``grace_days``.

        Raises:
            ConfigurationError: If either key is missing or invalid
        """
        missing = [key for key in ("rate", "grace_days") if values.get(key) is None]
        if missing:
            raise ConfigurationError(
                f"Missing required penalty config for {context}: {', '.join(missing)}"
            )
        return cls.build(values["rate"], values["grace_days"], context)

    @classmethod
    def build(cls, rate: Any, grace_days: Any, context: str = "penalty calculation") -> "PenaltyConfig":
        if rate is None or grace_days is None:
            raise ConfigurationError(f"Penalty rate and grace days are required for {context}")
        if isinstance(rate, float):
            # Floats carry binary noise into money math; go through str
            rate = str(rate)
        try:
            rate_value = Decimal(rate)
        except (InvalidOperation, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid penalty rate for {context}: {rate!r}") from e
        if not rate_value.is_finite() or rate_value < 0:
            raise ConfigurationError(f"Penalty rate must be a non-negative number for {context}")
        if isinstance(grace_days, bool) or not isinstance(grace_days, int) or grace_days < 0:
            raise ConfigurationError(f"Grace days must be a non-negative integer for {context}")
        return cls(rate=rate_value, grace_days=grace_days)


@dataclass(frozen=True)
class BillingConfig:
    """Validated configuration for one billing module."""

    module: ModuleType
    enabled: bool
    penalty: PenaltyConfig | None
    fiscal_year_start_month: int = 1
    billing_frequency: BillingFrequency = BillingFrequency.MONTHLY

    def require_penalty(self) -> PenaltyConfig:
        if self.penalty is None:
            raise ConfigurationError(f"Penalty configuration missing for module {self.module.value}")
        return self.penalty


def build_billing_config(row: ModuleBillingConfig, module: ModuleType) -> BillingConfig:
    """Validate a stored config row.

    Raises:
        ConfigurationError: If an enabled module lacks penalty fields or has
            an invalid fiscal start month or frequency
    """
    context = f"module {module.value}"
    if not row.enabled:
        return BillingConfig(module=module, enabled=False, penalty=None)

    penalty = PenaltyConfig.build(row.penalty_rate, row.grace_days, context)

    if not 1 <= row.fiscal_year_start_month <= 12:
        raise ConfigurationError(
            f"fiscal_year_start_month must be 1-12 for {context}, got {row.fiscal_year_start_month}"
        )
    try:
        frequency = BillingFrequency(row.billing_frequency)
    except ValueError as e:
        raise ConfigurationError(
            f"Unsupported billing frequency for {context}: {row.billing_frequency!r}"
        ) from e

    return BillingConfig(
        module=module,
        enabled=True,
        penalty=penalty,
        fiscal_year_start_month=row.fiscal_year_start_month,
        billing_frequency=frequency,
    )


class BillingConfigProvider:
    """Reads and validates per-module billing configuration.

    Request-scoped: configs are cached for the lifetime of the provider so a
    preview and the commit that follows it in the same request see the same
    rules.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._cache: dict[ModuleType, BillingConfig] = {}

    async def get(self, module: ModuleType) -> BillingConfig:
        """Get validated config for a module.

        Raises:
            ConfigurationError: If no config exists for the module or it is invalid
        """
        if module in self._cache:
            return self._cache[module]

        stmt = select(ModuleBillingConfig).where(ModuleBillingConfig.module == module.value)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            logger.error("Billing configuration not found for module %s", module.value)
            raise ConfigurationError(f"Billing configuration not found for module {module.value}")

        config = build_billing_config(row, module)
        self._cache[module] = config
        return config


__all__ = ["PenaltyConfig", "BillingConfig", "BillingConfigProvider", "build_billing_config"]
