"""
Main entry point for the SkyBooker booking lifecycle engine.
"""

import logging
from typing import Optional

from skybooker.database.config import DatabaseConfig, initialize_database
from skybooker.models.payment import PaymentRates
from skybooker.services.booking_service import BookingLifecycleService
from skybooker.services.booking_store import SqlAlchemyBookingStore
from skybooker.services.directory import SqlAlchemyFlightDirectory
from skybooker.services.dispatcher import SideEffectDispatcher
from skybooker.services.lock_manager import create_lock_manager
from skybooker.services.notifications import BookingNotifier, SmtpEmailTransport
from skybooker.services.payment_accounts import SqlAlchemyPaymentAccountReader
from skybooker.services.receipts import ReceiptService, WeasyPrintReceiptRenderer
from skybooker.utils.config import BookingEngineConfig, get_config

logger = logging.getLogger(__name__)


def configure_logging(config: BookingEngineConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_engine(
    config: BookingEngineConfig,
    db_config: Optional[DatabaseConfig] = None
) -> BookingLifecycleService:
    """
    Wire the lifecycle service over the SQL tables, SMTP and WeasyPrint.

    Args:
        config: Engine configuration
        db_config: Initialized database; initialized from config when omitted
    """
    if db_config is None:
        db_config = initialize_database(database_url=config.database_url, echo=config.debug)

    directory = SqlAlchemyFlightDirectory(db_config)
    store = SqlAlchemyBookingStore(db_config, directory, lock_manager=create_lock_manager(config))
    rates_reader = SqlAlchemyPaymentAccountReader(
        db_config,
        defaults=PaymentRates(
            tax_rate=config.default_tax_rate,
            service_fee_rate=config.default_service_fee_rate,
        ),
    )
    receipts = ReceiptService(store, rates_reader, WeasyPrintReceiptRenderer(), config)
    notifier = BookingNotifier(SmtpEmailTransport.from_config(config), config)
    dispatcher = SideEffectDispatcher(store, notifier, receipts)
    return BookingLifecycleService(store, dispatcher, receipts)


def main() -> int:
    """Main entry point for the booking engine."""
    print("✈️  SkyBooker booking lifecycle engine")
    print("=" * 50)

    try:
        # Load and validate configuration
        config = get_config()
        configure_logging(config)
        print("✓ Configuration loaded successfully")

        build_engine(config)
        print(f"✓ Database ready: {config.database_url}")
        print(f"✓ Receipts directory: {config.receipts_dir}")
        print(f"✓ Booking locks: {config.lock_backend}")
        if not config.smtp_configured:
            logger.warning("SMTP_HOST is not set; booking emails will fail and be logged")

    except Exception as e:
        print(f"❌ Failed to start booking engine: {e}")
        return 1

    return 0


if __name__ == "__main__":
    exit(main())
