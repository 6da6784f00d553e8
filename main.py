"""Main application entry point for the seed lot ledger's scheduled expiry check."""

import logging
import time

import pytz
import schedule

from src.common.config.settings import settings
from src.common.dtos.seed_lot_dtos import LedgerContextDTO
from src.common.exceptions.custom_exceptions import ApplicationError, DatabaseError
from src.common.logger_config import setup_logging
from src.seed_lot_domain.application.seed_lot_service import SeedLotApplicationService
from src.seed_lot_domain.infrastructure.events.event_sinks import (
    AuditTrailEventSink,
    CompositeEventSink,
    LoggingEventSink,
)
from src.seed_lot_domain.infrastructure.persistence.mysql_seed_lot_repository import MySQLSeedLotRepository

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system:expiry-check"


def setup_seed_lot_dependencies() -> tuple[MySQLSeedLotRepository, SeedLotApplicationService]:
    """Initializes and wires up seed lot ledger dependencies."""
    lot_repository = MySQLSeedLotRepository()
    event_sink = CompositeEventSink([LoggingEventSink(), AuditTrailEventSink(lot_repository)])
    seed_lot_service = SeedLotApplicationService(lot_repo=lot_repository, event_sink=event_sink)
    return lot_repository, seed_lot_service


def run_expiry_check() -> None:
    """Logs every lot whose expiry date falls within the warning window."""
    logger.info("--- Starting expiring seed lot check ---")
    lot_repository, seed_lot_service = setup_seed_lot_dependencies()

    try:
        lot_repository.create_tables()  # Ensure tables exist each run (idempotent)
        context = LedgerContextDTO(actor_id=SYSTEM_ACTOR)
        expiring_lots = seed_lot_service.get_expiring_lots(context, days_ahead=settings.EXPIRY_WARNING_DAYS)

        local_tz = pytz.timezone(settings.TIMEZONE)
        for lot in expiring_lots:
            logger.warning(
                f"Lot {lot.id} ({lot.level}, {lot.quantity_available} kg available, custodian {lot.custodian_id}) "
                f"expires on {lot.expiry_date.astimezone(local_tz).strftime('%Y-%m-%d')}"
            )
    except (DatabaseError, ApplicationError) as e:
        logger.error(f"An error occurred during the expiry check: {e}")
    except Exception as e:
        logger.exception(f"An unexpected error occurred: {e}")

    logger.info("--- Expiring seed lot check finished ---")


if __name__ == "__main__":
    setup_logging()
    logger.info("Seed Lot Ledger expiry monitor started.")
    logger.info(f"Scheduling the expiry check every day at {settings.EXPIRY_CHECK_TIME} ({settings.TIMEZONE}).")

    schedule.every().day.at(settings.EXPIRY_CHECK_TIME, pytz.timezone(settings.TIMEZONE)).do(run_expiry_check)

    run_expiry_check()

    while True:
        schedule.run_pending()
        time.sleep(1)  # Wait one second before checking again
