"""CLI entry point for the payment reconciliation check.

Compares each bill's stored paid amounts with the unit's transaction history
and prints every discrepancy found, plus any dues year whose lookback hint is
wrongly set.

Usage:
    python -m condo_billing.cli.reconcile 101

Exit Codes:
    0 - Clean: records and transactions agree
    1 - Drift found, or the check could not run

Logging:
    LOG_LEVEL level logs to both stdout and the configured log file
"""

import asyncio
import sys

from dotenv import load_dotenv

from condo_billing.services.config import get_settings
from condo_billing.services.db import get_async_session
from condo_billing.services.logging import setup_logging
from condo_billing.services.payment_service import UnifiedPaymentService


async def main(argv: list[str] | None = None) -> int:
    """
    Run the reconciliation check for one unit.

    Args:
        argv: Command-line arguments (default: sys.argv[1:])

    Returns:
        Exit code: 0 when clean, 1 on drift or failure
    """
    args = sys.argv[1:] if argv is None else argv
    settings = get_settings()
    logger = setup_logging(settings.log_file, settings.log_level)

    if len(args) != 1:
        logger.error("Usage: python -m condo_billing.cli.reconcile <unit>")
        return 1
    unit_code = args[0]

    try:
        logger.info("Reconciling unit %s...", unit_code)
        async for session in get_async_session(settings):
            service = UnifiedPaymentService(session, settings)
            reports = await service.reconcile(unit_code)
            wrong_flags = await service.audit_lookback_flags(unit_code)

        for report in reports:
            print(
                f"{report.obligation_id}: {report.suspected_cause.value} "
                f"delta={report.delta:+d} expected_remaining={report.expected_remaining} "
                f"transaction_remaining={report.transaction_derived_remaining} "
                f"transactions={list(report.related_transaction_ids)}"
            )
        for fiscal_year in wrong_flags:
            print(f"dues:{fiscal_year}: prior_year_closed set but earlier years still open")

        if reports or wrong_flags:
            logger.warning(
                "Unit %s: %d discrepancies, %d wrong lookback flags",
                unit_code,
                len(reports),
                len(wrong_flags),
            )
            return 1

        logger.info("Unit %s is clean", unit_code)
        return 0

    except KeyboardInterrupt:
        logger.warning("Reconciliation interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"Reconciliation failed: {e}", exc_info=True)
        return 1


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
