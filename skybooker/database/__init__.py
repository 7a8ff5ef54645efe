"""
Database package for the booking engine.

SQLAlchemy models and engine/session configuration backing the SQL
implementations of the booking store, flight directory and payment
account reader.
"""

from .models import (
    Base,
    Location,
    Flight,
    User,
    Booking,
    PaymentAccount,
    create_all_tables,
    drop_all_tables
)

from .config import (
    DEFAULT_DATABASE_URL,
    DatabaseConfig,
    get_database_config,
    initialize_database,
)

__all__ = [
    # Models
    'Base',
    'Location',
    'Flight',
    'User',
    'Booking',
    'PaymentAccount',
    'create_all_tables',
    'drop_all_tables',

    # Configuration
    'DEFAULT_DATABASE_URL',
    'DatabaseConfig',
    'get_database_config',
    'initialize_database',
]
