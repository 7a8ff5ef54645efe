"""
Shared fixtures for booking engine tests.

Everything runs in memory: bookings live in InMemoryBookingStore, emails are
captured by FakeEmailTransport and receipts are rendered by FakeRenderer into
a temporary directory.
"""

import pytest
from datetime import datetime
from decimal import Decimal

from skybooker.models import (
    BookingDraft,
    BookingStatus,
    FlightModel,
    LocationModel,
    PaymentRates,
    TravelClass,
    UserModel,
)
from skybooker.services.booking_service import BookingLifecycleService
from skybooker.services.booking_store import InMemoryBookingStore
from skybooker.services.directory import InMemoryFlightDirectory
from skybooker.services.dispatcher import SideEffectDispatcher
from skybooker.services.errors import EmailDeliveryError
from skybooker.services.notifications import BookingNotifier, EmailTransport
from skybooker.services.payment_accounts import StaticPaymentAccountReader
from skybooker.services.receipts import ReceiptRenderer, ReceiptService
from skybooker.utils.config import BookingEngineConfig

FAKE_PDF = b"%PDF-1.4 fake receipt"


class FakeEmailTransport(EmailTransport):
    """Captures sent messages; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.attempts = 0
        self.fail = fail

    async def send(self, message):
        self.attempts += 1
        if self.fail:
            raise EmailDeliveryError("SMTP relay unavailable")
        self.sent.append(message)

    def subjects(self):
        return [message["Subject"] for message in self.sent]


class FakeRenderer(ReceiptRenderer):
    """Returns fixed PDF bytes; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.calls = 0
        self.documents = []
        self.fail = fail

    async def render(self, document):
        self.calls += 1
        self.documents.append(document)
        if self.fail:
            raise RuntimeError("renderer crashed")
        return FAKE_PDF


def make_flight(flight_id: int = 1) -> FlightModel:
    return FlightModel(
        flight_id=flight_id,
        origin_id=1,
        destination_id=2,
        departure_time=datetime(2025, 3, 14, 9, 30),
        arrival_time=datetime(2025, 3, 14, 21, 45),
        economy_price=Decimal("450.00"),
        business_price=Decimal("1200.00"),
        first_class_price=Decimal("2500.00"),
        capacity=180,
        origin=LocationModel(location_id=1, code="JFK", name="John F. Kennedy International",
                             city="New York", country="USA"),
        destination=LocationModel(location_id=2, code="LHR", name="Heathrow",
                                  city="London", country="UK"),
    )


def make_user(user_id: int = 1) -> UserModel:
    return UserModel(
        user_id=user_id,
        username="ada",
        first_name="Ada",
        last_name="Lovelace",
        email="ada@example.com",
    )


def make_draft(**overrides) -> BookingDraft:
    values = dict(
        user_id=1,
        flight_id=1,
        passenger_first_name="Ada",
        passenger_last_name="Lovelace",
        passenger_email="ada@example.com",
        passenger_phone="+1 555 0100",
        travel_class=TravelClass.ECONOMY,
    )
    values.update(overrides)
    return BookingDraft(**values)


async def seed_booking(store, booking_id: int, status: BookingStatus = BookingStatus.PENDING, **changes):
    """Create booking ``booking_id`` directly in the store, bypassing the dispatcher."""
    store._next_id = booking_id
    booking = await store.create(make_draft())
    if status != BookingStatus.PENDING:
        changes["status"] = status
    if changes:
        update = await store.apply(booking.booking_id, lambda current: dict(changes))
        booking = update.booking
    return booking


@pytest.fixture
def engine_config(tmp_path):
    return BookingEngineConfig(
        database_url="sqlite:///:memory:",
        receipts_dir=str(tmp_path / "receipts"),
    )


@pytest.fixture
def directory():
    return InMemoryFlightDirectory(flights=[make_flight()], users=[make_user()])


@pytest.fixture
def store(directory):
    return InMemoryBookingStore(directory)


@pytest.fixture
def transport():
    return FakeEmailTransport()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def receipts(store, renderer, engine_config):
    return ReceiptService(store, StaticPaymentAccountReader(PaymentRates()), renderer, engine_config)


@pytest.fixture
def notifier(transport, engine_config):
    return BookingNotifier(transport, engine_config)


@pytest.fixture
def dispatcher(store, notifier, receipts):
    return SideEffectDispatcher(store, notifier, receipts)


@pytest.fixture
def service(store, dispatcher, receipts):
    return BookingLifecycleService(store, dispatcher, receipts)
