"""
Tests for the booking stores.

The same lifecycle rules are checked against the in-memory store and the
SQLAlchemy store on an in-memory SQLite database.
"""

import asyncio
import pytest
from datetime import datetime
from decimal import Decimal

from skybooker.database.config import DatabaseConfig
from skybooker.database.models import Location, Flight, User
from skybooker.models import BookingStatus, TravelClass
from skybooker.services.booking_store import InMemoryBookingStore, SqlAlchemyBookingStore
from skybooker.services.directory import InMemoryFlightDirectory, SqlAlchemyFlightDirectory
from skybooker.services.errors import BookingIntegrityError, BookingValidationError

from conftest import make_draft, make_flight, make_user


def _sqlite_store():
    db_config = DatabaseConfig("sqlite:///:memory:")
    db_config.create_tables()

    with db_config.get_session_context() as session:
        jfk = Location(code="JFK", name="John F. Kennedy International", city="New York", country="USA")
        lhr = Location(code="LHR", name="Heathrow", city="London", country="UK")
        session.add_all([jfk, lhr])
        session.flush()
        session.add(Flight(
            flight_id=1,
            origin_id=jfk.location_id,
            destination_id=lhr.location_id,
            departure_time=datetime(2025, 3, 14, 9, 30),
            arrival_time=datetime(2025, 3, 14, 21, 45),
            economy_price=Decimal("450.00"),
            business_price=Decimal("1200.00"),
            first_class_price=Decimal("2500.00"),
            capacity=180,
        ))
        session.add(User(user_id=1, username="ada", first_name="Ada", last_name="Lovelace",
                         email="ada@example.com"))

    return SqlAlchemyBookingStore(db_config, SqlAlchemyFlightDirectory(db_config))


def _memory_store():
    return InMemoryBookingStore(InMemoryFlightDirectory(flights=[make_flight()], users=[make_user()]))


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request):
    store = _memory_store() if request.param == "memory" else _sqlite_store()
    yield store
    if request.param == "sqlite":
        store.db.close()


class TestBookingStoreContract:
    """Rules every store implementation follows."""

    @pytest.mark.asyncio
    async def test_create_freezes_class_price(self, any_store):
        booking = await any_store.create(make_draft(travel_class=TravelClass.BUSINESS))

        assert booking.booking_id > 0
        assert booking.status == BookingStatus.PENDING
        assert booking.ticket_price == Decimal("1200.00")
        assert booking.travel_class == TravelClass.BUSINESS

        fetched = await any_store.get(booking.booking_id)
        assert fetched.ticket_price == Decimal("1200.00")
        assert fetched.status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_create_unknown_flight(self, any_store):
        with pytest.raises(BookingValidationError):
            await any_store.create(make_draft(flight_id=999))

    @pytest.mark.asyncio
    async def test_get_missing(self, any_store):
        assert await any_store.get(12345) is None
        assert await any_store.set_status(12345, BookingStatus.PAID) is None
        assert await any_store.get_details(12345) is None

    @pytest.mark.asyncio
    async def test_set_status_reports_previous(self, any_store):
        booking = await any_store.create(make_draft())

        update = await any_store.set_status(booking.booking_id, BookingStatus.CONFIRMED)

        assert update.previous_status == BookingStatus.PENDING
        assert update.booking.status == BookingStatus.CONFIRMED
        assert update.status_changed

    @pytest.mark.asyncio
    async def test_same_status_is_no_op(self, any_store):
        booking = await any_store.create(make_draft())

        update = await any_store.set_status(booking.booking_id, BookingStatus.PENDING, "ignored")

        assert not update.status_changed
        assert update.booking == booking

    @pytest.mark.asyncio
    async def test_decline_reason_only_on_decline(self, any_store):
        booking = await any_store.create(make_draft())
        booking_id = booking.booking_id

        update = await any_store.set_status(booking_id, BookingStatus.CONFIRMED, "not a decline")
        assert update.booking.decline_reason is None

        update = await any_store.set_status(booking_id, BookingStatus.DECLINED, "insufficient proof")
        assert update.booking.decline_reason == "insufficient proof"

        # Leaving Declined keeps the last reason
        update = await any_store.set_status(booking_id, BookingStatus.CONFIRMED)
        assert update.booking.decline_reason == "insufficient proof"

    @pytest.mark.asyncio
    async def test_set_payment_does_not_cascade(self, any_store):
        booking = await any_store.create(make_draft())

        update = await any_store.set_payment(booking.booking_id, reference="REF-1", proof="img1.png")

        assert update.booking.status == BookingStatus.PENDING
        assert update.booking.payment_reference == "REF-1"
        assert update.booking.payment_proof == "img1.png"
        assert not update.status_changed

    @pytest.mark.asyncio
    async def test_set_receipt_only_if_absent(self, any_store):
        booking = await any_store.create(make_draft())
        booking_id = booking.booking_id

        first = await any_store.set_receipt(booking_id, "/uploads/receipts/a.pdf")
        second = await any_store.set_receipt(booking_id, "/uploads/receipts/b.pdf")
        assert first.booking.receipt_path == "/uploads/receipts/a.pdf"
        assert second.booking.receipt_path == "/uploads/receipts/a.pdf"

        forced = await any_store.set_receipt(booking_id, "/uploads/receipts/c.pdf", only_if_absent=False)
        assert forced.booking.receipt_path == "/uploads/receipts/c.pdf"

    @pytest.mark.asyncio
    async def test_immutable_fields_rejected(self, any_store):
        booking = await any_store.create(make_draft())

        with pytest.raises(ValueError):
            await any_store.apply(booking.booking_id, lambda current: {"ticket_price": Decimal("1")})

        fetched = await any_store.get(booking.booking_id)
        assert fetched.ticket_price == Decimal("450.00")

    @pytest.mark.asyncio
    async def test_get_details_hydrates(self, any_store):
        booking = await any_store.create(make_draft())

        details = await any_store.get_details(booking.booking_id)

        assert details.flight.flight_id == 1
        assert details.flight.origin.code == "JFK"
        assert details.flight.destination.city == "London"
        assert details.user.username == "ada"

    @pytest.mark.asyncio
    async def test_list_bookings(self, any_store):
        first = await any_store.create(make_draft())
        second = await any_store.create(make_draft(travel_class=TravelClass.FIRST))

        assert [b.booking_id for b in await any_store.list_for_user(1)] == [
            first.booking_id, second.booking_id
        ]
        assert await any_store.list_for_user(2) == []
        assert len(await any_store.list_all()) == 2


class TestInMemoryStore:
    """Behavior specific to the in-memory store."""

    @pytest.mark.asyncio
    async def test_flight_price_change_does_not_touch_booking(self):
        store = _memory_store()
        booking = await store.create(make_draft())

        flight = store.directory.flights[1]
        store.directory.add_flight(flight.model_copy(update={"economy_price": Decimal("999.00")}))

        assert (await store.get(booking.booking_id)).ticket_price == Decimal("450.00")
        details = await store.get_details(booking.booking_id)
        assert details.ticket_price == Decimal("450.00")

    @pytest.mark.asyncio
    async def test_get_details_missing_flight(self):
        store = _memory_store()
        booking = await store.create(make_draft())
        del store.directory.flights[1]

        with pytest.raises(BookingIntegrityError, match="Flight 1"):
            await store.get_details(booking.booking_id)

    @pytest.mark.asyncio
    async def test_concurrent_writes_are_not_lost(self):
        store = _memory_store()
        store.io_delay = 0.001
        booking = await store.create(make_draft())
        booking_id = booking.booking_id

        # An admin decline racing a customer upload: both writes must survive
        await asyncio.gather(
            store.set_status(booking_id, BookingStatus.DECLINED, "duplicate booking"),
            store.set_payment(booking_id, reference="REF-9", proof="img9.png"),
        )

        final = await store.get(booking_id)
        assert final.status == BookingStatus.DECLINED
        assert final.decline_reason == "duplicate booking"
        assert final.payment_reference == "REF-9"
        assert final.payment_proof == "img9.png"

    @pytest.mark.asyncio
    async def test_writes_apply_in_call_order(self):
        store = _memory_store()
        store.io_delay = 0.001
        booking = await store.create(make_draft())
        booking_id = booking.booking_id

        updates = await asyncio.gather(
            store.set_status(booking_id, BookingStatus.CONFIRMED),
            store.set_status(booking_id, BookingStatus.COMPLETED),
            store.set_status(booking_id, BookingStatus.PAID),
        )

        assert [u.previous_status for u in updates] == [
            BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.COMPLETED
        ]
        assert (await store.get(booking_id)).status == BookingStatus.PAID
        assert store.locks._locks == {}


class TestSqlAlchemyStore:
    """Behavior specific to the SQLAlchemy store."""

    @pytest.mark.asyncio
    async def test_concurrent_writes_share_one_connection(self):
        store = _sqlite_store()
        try:
            booking = await store.create(make_draft())
            booking_id = booking.booking_id

            # Sessions stay on the loop thread, so the StaticPool connection is never shared
            await asyncio.gather(
                store.set_status(booking_id, BookingStatus.DECLINED, "duplicate booking"),
                store.set_payment(booking_id, reference="REF-9", proof="img9.png"),
                store.get_details(booking_id),
            )

            final = await store.get(booking_id)
            assert final.status == BookingStatus.DECLINED
            assert final.decline_reason == "duplicate booking"
            assert final.payment_reference == "REF-9"
            assert final.payment_proof == "img9.png"
        finally:
            store.db.close()
