"""
Booking store: the single source of truth for booking lifecycle state.

Every mutator runs as a read-modify-write inside the per-booking lock, so an
admin decision and a customer upload on the same booking can never interleave
and lose an update. Mutators return a BookingUpdate carrying the status the
booking had before the write, which is what the dispatcher needs to decide
on side effects. The store never dispatches side effects itself.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List, Callable

from sqlalchemy import select

from ..database.config import DatabaseConfig
from ..database.models import Booking
from ..models.booking import BookingDraft, BookingModel, BookingWithDetails
from ..models.enums import BookingStatus
from .directory import FlightDirectory
from .errors import BookingIntegrityError, BookingValidationError
from .lock_manager import KeyedLockManager

logger = logging.getLogger(__name__)

Mutation = Callable[[BookingModel], Dict[str, Any]]

MUTABLE_FIELDS = frozenset({
    "status",
    "payment_reference",
    "payment_proof",
    "decline_reason",
    "receipt_path",
})


@dataclass
class BookingUpdate:
    """Result of a store mutation."""
    booking: BookingModel
    previous_status: BookingStatus

    @property
    def status_changed(self) -> bool:
        return self.booking.status != self.previous_status


def status_changes(
    current: BookingModel,
    status: BookingStatus,
    decline_reason: Optional[str] = None
) -> Dict[str, Any]:
    """
    Field changes for moving ``current`` to ``status``.

    Empty when the status is unchanged. The decline reason is only written on
    a move into Declined; every other move leaves the stored reason alone.
    """
    if current.status == status:
        return {}

    changes: Dict[str, Any] = {"status": status}
    if status == BookingStatus.DECLINED and decline_reason:
        changes["decline_reason"] = decline_reason
    return changes


class BookingStore(ABC):
    """
    Persistence for bookings with atomic per-booking mutators.

    Subclasses implement raw load/insert/save; this base class wraps them in
    the lock and applies the no-op and decline-reason rules.
    """

    def __init__(self, directory: FlightDirectory, lock_manager=None):
        self.directory = directory
        self.locks = lock_manager or KeyedLockManager()

    # Raw persistence, called with the booking lock held where it matters

    @abstractmethod
    async def _insert(self, values: Dict[str, Any]) -> BookingModel:
        """Persist a new booking row and return it with its ID."""

    @abstractmethod
    async def _load(self, booking_id: int) -> Optional[BookingModel]:
        """Read one booking."""

    @abstractmethod
    async def _save(self, booking_id: int, changes: Dict[str, Any]) -> BookingModel:
        """Write changed fields of an existing booking and return the new record."""

    @abstractmethod
    async def list_for_user(self, user_id: int) -> List[BookingModel]:
        """All bookings owned by a user, oldest first."""

    @abstractmethod
    async def list_all(self) -> List[BookingModel]:
        """All bookings, oldest first."""

    # Public contract

    async def create(self, draft: BookingDraft) -> BookingModel:
        """
        Create a Pending booking with its fare frozen from the flight.

        Raises:
            BookingValidationError: If the flight does not exist
        """
        flight = await self.directory.get_flight(draft.flight_id)
        if flight is None:
            raise BookingValidationError(f"Flight {draft.flight_id} not found")

        values = draft.model_dump()
        values.update({
            "ticket_price": flight.price_for(draft.travel_class),
            "status": BookingStatus.PENDING,
            "booking_date": datetime.now(),
        })
        booking = await self._insert(values)
        logger.info(
            f"Created booking {booking.booking_id} on flight {booking.flight_id} "
            f"({booking.travel_class.value}, {booking.ticket_price})"
        )
        return booking

    async def get(self, booking_id: int) -> Optional[BookingModel]:
        return await self._load(booking_id)

    async def get_details(self, booking_id: int) -> Optional[BookingWithDetails]:
        """Return the booking hydrated with its flight and user, or None."""
        booking = await self._load(booking_id)
        if booking is None:
            return None

        flight = await self.directory.get_flight(booking.flight_id)
        if flight is None:
            raise BookingIntegrityError(f"Flight {booking.flight_id} for booking {booking_id} is missing")
        user = await self.directory.get_user(booking.user_id)

        return BookingWithDetails(**booking.model_dump(), flight=flight, user=user)

    async def apply(self, booking_id: int, mutation: Mutation) -> Optional[BookingUpdate]:
        """
        Run ``mutation`` against the current record under the booking lock.

        ``mutation`` receives the current booking and returns the fields to
        change; an empty dict leaves the record untouched. Exceptions raised by
        ``mutation`` abort the write and propagate.

        Returns:
            BookingUpdate, or None if the booking does not exist
        """
        async with self.locks.lock_context(f"booking:{booking_id}"):
            current = await self._load(booking_id)
            if current is None:
                return None

            changes = mutation(current)
            unknown = set(changes) - MUTABLE_FIELDS
            if unknown:
                raise ValueError(f"Fields cannot be changed after creation: {sorted(unknown)}")
            if not changes:
                return BookingUpdate(booking=current, previous_status=current.status)

            updated = await self._save(booking_id, changes)
            if updated.status != current.status:
                logger.info(
                    f"Booking {booking_id} status: {current.status.value} -> {updated.status.value}"
                )
            return BookingUpdate(booking=updated, previous_status=current.status)

    async def set_status(
        self,
        booking_id: int,
        status: BookingStatus,
        decline_reason: Optional[str] = None
    ) -> Optional[BookingUpdate]:
        """Set the status; setting the current status is a no-op."""
        return await self.apply(
            booking_id, lambda current: status_changes(current, status, decline_reason)
        )

    async def set_payment(
        self,
        booking_id: int,
        reference: Optional[str] = None,
        proof: Optional[str] = None
    ) -> Optional[BookingUpdate]:
        """Attach payment evidence without touching the status."""
        changes: Dict[str, Any] = {}
        if reference:
            changes["payment_reference"] = reference
        if proof:
            changes["payment_proof"] = proof
        return await self.apply(booking_id, lambda current: dict(changes))

    async def set_receipt(
        self,
        booking_id: int,
        receipt_ref: str,
        only_if_absent: bool = True
    ) -> Optional[BookingUpdate]:
        """Store a receipt reference; by default an existing one is kept."""
        def mutation(current: BookingModel) -> Dict[str, Any]:
            if only_if_absent and current.receipt_path:
                return {}
            return {"receipt_path": receipt_ref}

        return await self.apply(booking_id, mutation)


class InMemoryBookingStore(BookingStore):
    """Booking store over a dictionary keyed by booking ID."""

    def __init__(self, directory: FlightDirectory, lock_manager=None):
        super().__init__(directory, lock_manager)
        self._bookings: Dict[int, BookingModel] = {}
        self._next_id = 1
        # Stand-in for the persistence round trip so writes yield to the loop
        self.io_delay = 0.0

    async def _insert(self, values: Dict[str, Any]) -> BookingModel:
        await asyncio.sleep(self.io_delay)
        booking = BookingModel(booking_id=self._next_id, **values)
        self._bookings[booking.booking_id] = booking
        self._next_id += 1
        return booking

    async def _load(self, booking_id: int) -> Optional[BookingModel]:
        await asyncio.sleep(self.io_delay)
        return self._bookings.get(booking_id)

    async def _save(self, booking_id: int, changes: Dict[str, Any]) -> BookingModel:
        await asyncio.sleep(self.io_delay)
        updated = self._bookings[booking_id].model_copy(update=changes)
        self._bookings[booking_id] = updated
        return updated

    async def list_for_user(self, user_id: int) -> List[BookingModel]:
        return [b for b in self._bookings.values() if b.user_id == user_id]

    async def list_all(self) -> List[BookingModel]:
        return list(self._bookings.values())


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class SqlAlchemyBookingStore(BookingStore):
    """
    Booking store over the SQLAlchemy booking table.

    Session calls are synchronous and run on the event loop thread: a slow
    query blocks every booking, not just the one whose lock is held. SQLite
    engines share one connection through StaticPool, so sessions must not
    move to worker threads.
    """

    def __init__(self, db_config: DatabaseConfig, directory: FlightDirectory, lock_manager=None):
        super().__init__(directory, lock_manager)
        self.db = db_config

    async def _insert(self, values: Dict[str, Any]) -> BookingModel:
        with self.db.get_session_context() as session:
            row = Booking(**{key: _column_value(value) for key, value in values.items()})
            session.add(row)
            session.flush()
            return BookingModel.model_validate(row)

    async def _load(self, booking_id: int) -> Optional[BookingModel]:
        with self.db.get_session_context() as session:
            row = session.get(Booking, booking_id)
            return BookingModel.model_validate(row) if row is not None else None

    async def _save(self, booking_id: int, changes: Dict[str, Any]) -> BookingModel:
        with self.db.get_session_context() as session:
            row = session.get(Booking, booking_id)
            if row is None:
                raise BookingIntegrityError(f"Booking {booking_id} disappeared during update")
            for key, value in changes.items():
                setattr(row, key, _column_value(value))
            session.flush()
            return BookingModel.model_validate(row)

    async def list_for_user(self, user_id: int) -> List[BookingModel]:
        with self.db.get_session_context() as session:
            rows = session.execute(
                select(Booking).where(Booking.user_id == user_id).order_by(Booking.booking_id)
            ).scalars().all()
            return [BookingModel.model_validate(row) for row in rows]

    async def list_all(self) -> List[BookingModel]:
        with self.db.get_session_context() as session:
            rows = session.execute(select(Booking).order_by(Booking.booking_id)).scalars().all()
            return [BookingModel.model_validate(row) for row in rows]
