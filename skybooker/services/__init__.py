"""
Booking lifecycle services.

This package contains the booking store, the transition policy, the
side-effect dispatcher, receipts, notifications and the lifecycle service
route handlers call into.
"""

from .errors import (
    BookingEngineError,
    BookingValidationError,
    BookingNotFoundError,
    LockAcquisitionError,
    BookingIntegrityError,
    SideEffectError,
    EmailDeliveryError,
    ReceiptGenerationError,
)
from .lock_manager import KeyedLockManager, ValkeyLockManager, LockInfo, LockStats, create_lock_manager
from .booking_store import BookingStore, BookingUpdate, InMemoryBookingStore, SqlAlchemyBookingStore
from .directory import FlightDirectory, InMemoryFlightDirectory, SqlAlchemyFlightDirectory
from .payment_accounts import PaymentAccountReader, StaticPaymentAccountReader, SqlAlchemyPaymentAccountReader
from .notifications import EmailTransport, SmtpEmailTransport, BookingNotifier
from .receipts import ReceiptRenderer, WeasyPrintReceiptRenderer, ReceiptService
from .dispatcher import SideEffectDispatcher, DispatchStats
from .booking_service import BookingLifecycleService, generate_payment_reference

__all__ = [
    'BookingEngineError',
    'BookingValidationError',
    'BookingNotFoundError',
    'LockAcquisitionError',
    'BookingIntegrityError',
    'SideEffectError',
    'EmailDeliveryError',
    'ReceiptGenerationError',
    'KeyedLockManager',
    'ValkeyLockManager',
    'LockInfo',
    'LockStats',
    'create_lock_manager',
    'BookingStore',
    'BookingUpdate',
    'InMemoryBookingStore',
    'SqlAlchemyBookingStore',
    'FlightDirectory',
    'InMemoryFlightDirectory',
    'SqlAlchemyFlightDirectory',
    'PaymentAccountReader',
    'StaticPaymentAccountReader',
    'SqlAlchemyPaymentAccountReader',
    'EmailTransport',
    'SmtpEmailTransport',
    'BookingNotifier',
    'ReceiptRenderer',
    'WeasyPrintReceiptRenderer',
    'ReceiptService',
    'SideEffectDispatcher',
    'DispatchStats',
    'BookingLifecycleService',
    'generate_payment_reference',
]
