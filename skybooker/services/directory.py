"""
Flight and user lookups used to price and hydrate bookings.

The flight, location and user tables belong to the CRUD layer. The engine
only reads them: to freeze a fare when a booking is created and to describe
the trip in notifications and receipts.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Dict, Iterable

from ..database.config import DatabaseConfig
from ..database.models import Flight, User
from ..models.flight import FlightModel
from ..models.booking import UserModel

logger = logging.getLogger(__name__)


class FlightDirectory(ABC):
    """Read-only access to flights (with locations) and users."""

    @abstractmethod
    async def get_flight(self, flight_id: int) -> Optional[FlightModel]:
        """Return the flight with origin and destination populated, or None."""

    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[UserModel]:
        """Return the user, or None."""


class InMemoryFlightDirectory(FlightDirectory):
    """Directory over plain dictionaries, for tests and local tooling."""

    def __init__(
        self,
        flights: Optional[Iterable[FlightModel]] = None,
        users: Optional[Iterable[UserModel]] = None
    ):
        self.flights: Dict[int, FlightModel] = {f.flight_id: f for f in flights or []}
        self.users: Dict[int, UserModel] = {u.user_id: u for u in users or []}

    def add_flight(self, flight: FlightModel) -> None:
        self.flights[flight.flight_id] = flight

    def add_user(self, user: UserModel) -> None:
        self.users[user.user_id] = user

    async def get_flight(self, flight_id: int) -> Optional[FlightModel]:
        return self.flights.get(flight_id)

    async def get_user(self, user_id: int) -> Optional[UserModel]:
        return self.users.get(user_id)


class SqlAlchemyFlightDirectory(FlightDirectory):
    """Directory reading the flight, location and user tables (blocking, on the loop thread)."""

    def __init__(self, db_config: DatabaseConfig):
        self.db = db_config

    async def get_flight(self, flight_id: int) -> Optional[FlightModel]:
        with self.db.get_session_context() as session:
            row = session.get(Flight, flight_id)
            if row is None:
                return None
            # Relationships load lazily, so validate while the session is open
            return FlightModel.model_validate(row)

    async def get_user(self, user_id: int) -> Optional[UserModel]:
        with self.db.get_session_context() as session:
            row = session.get(User, user_id)
            return UserModel.model_validate(row) if row is not None else None
