"""Bill aggregator: every open obligation for a unit across all modules."""

import logging
from dataclasses import dataclass, field, replace
from datetime import date

from sqlalchemy.exc import SQLAlchemyError

from condo_billing.models import Unit
from condo_billing.services.bill_source import BillSource, SourceLoad
from condo_billing.services.billing_config import BillingConfigProvider
from condo_billing.services.errors import SourceLoadError
from condo_billing.services.obligations import ModuleType, Obligation, ObligationFilter

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    """Open obligations for one payment run.

    Attributes:
        obligations: Filtered open obligations from every loaded module
        degraded_modules: Module name -> reason, for modules that failed to load
        reads: Store reads performed across all sources
        loads: Raw per-module loads, kept for the commit coordinator
    """

    obligations: list[Obligation] = field(default_factory=list)
    degraded_modules: dict[str, str] = field(default_factory=dict)
    reads: int = 0
    loads: dict[ModuleType, SourceLoad] = field(default_factory=dict)


class BillAggregator:
    """Loads obligations from every configured bill source."""

    def __init__(self, sources: list[BillSource], config_provider: BillingConfigProvider):
        self.sources = sources
        self.config_provider = config_provider

    async def aggregate(
        self,
        unit: Unit,
        as_of: date,
        obligation_filter: ObligationFilter | None = None,
    ) -> AggregationResult:
        """Load and filter open obligations for a unit.

        A disabled module contributes nothing. A configured module whose
        records cannot be loaded is reported as degraded and the remaining
        modules still load.

        Args:
            unit: Unit being paid for
            as_of: Payment date penalties are computed for
            obligation_filter: Optional caller narrowing (through date, exclusions, waivers)

        Returns:
            AggregationResult

        Raises:
            ConfigurationError: If any module's billing config is missing or invalid
        """
        obligation_filter = obligation_filter or ObligationFilter()
        aggregation = AggregationResult()

        for source in self.sources:
            module = source.module_type
            config = await self.config_provider.get(module)
            if not config.enabled:
                logger.debug("Module %s disabled, skipping", module.value)
                continue
            try:
                load = await source.load_open_obligations(unit, as_of, config)
            except (SourceLoadError, SQLAlchemyError) as e:
                logger.warning("Could not load %s bills for unit %s: %s", module.value, unit.code, e)
                aggregation.degraded_modules[module.value] = str(e)
                continue

            aggregation.loads[module] = load
            aggregation.reads += load.reads
            for ob in load.obligations:
                if not obligation_filter.includes(ob):
                    continue
                if obligation_filter.waives_penalty(ob.id):
                    ob = replace(ob, penalty=ob.penalty_paid)
                aggregation.obligations.append(ob)

        logger.info(
            "Aggregated %d open obligations for unit %s as of %s (reads=%d, degraded=%s)",
            len(aggregation.obligations),
            unit.code,
            as_of.isoformat(),
            aggregation.reads,
            sorted(aggregation.degraded_modules) or "none",
        )
        return aggregation


__all__ = ["AggregationResult", "BillAggregator"]
