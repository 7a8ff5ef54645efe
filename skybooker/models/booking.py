"""
Booking models for the booking engine.

BookingModel is the record the store hands out; BookingWithDetails adds the
flight, locations and owning user for notifications and receipts.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict

from .enums import BookingStatus, TravelClass
from .flight import FlightModel


class UserModel(BaseModel):
    """Account that owns bookings."""
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    username: str = Field(..., max_length=50)
    first_name: str = Field(..., max_length=100)
    last_name: str = Field(..., max_length=100)
    email: str = Field(..., max_length=255)
    is_admin: bool = False


class BookingDraft(BaseModel):
    """Customer input for a new booking, before pricing and persistence."""

    user_id: int = Field(..., description="Owning user ID")
    flight_id: int = Field(..., description="Booked flight ID")
    passenger_first_name: str = Field(..., min_length=1, max_length=100)
    passenger_last_name: str = Field(..., min_length=1, max_length=100)
    passenger_email: str = Field(..., min_length=3, max_length=255)
    passenger_phone: str = Field(..., min_length=1, max_length=40)
    travel_class: TravelClass = Field(default=TravelClass.ECONOMY)


class BookingModel(BaseModel):
    """
    One passenger's reservation on one flight.

    ``ticket_price`` is frozen when the booking is created and is never
    recomputed from the live flight record. ``decline_reason`` keeps the last
    decline reason even after the booking leaves the Declined state.
    """
    model_config = ConfigDict(from_attributes=True)

    booking_id: int
    user_id: int = Field(..., description="Owning user ID")
    flight_id: int = Field(..., description="Booked flight ID")
    passenger_first_name: str = Field(..., max_length=100)
    passenger_last_name: str = Field(..., max_length=100)
    passenger_email: str = Field(..., max_length=255)
    passenger_phone: str = Field(..., max_length=40)
    travel_class: TravelClass = Field(default=TravelClass.ECONOMY)
    ticket_price: Decimal = Field(..., ge=0, description="Fare captured at booking time")
    status: BookingStatus = Field(default=BookingStatus.PENDING)
    payment_reference: Optional[str] = Field(None, description="Customer or generated payment reference")
    payment_proof: Optional[str] = Field(None, description="Uploaded proof of payment file reference")
    decline_reason: Optional[str] = Field(None, description="Last reason given for a decline")
    receipt_path: Optional[str] = Field(None, description="Stored receipt file reference")
    booking_date: datetime = Field(default_factory=datetime.now, description="Booking creation time")

    @property
    def passenger_name(self) -> str:
        return f"{self.passenger_first_name} {self.passenger_last_name}"

    @property
    def has_payment_evidence(self) -> bool:
        return bool(self.payment_reference or self.payment_proof)


class BookingWithDetails(BookingModel):
    """Booking hydrated with its flight (and locations) and owning user."""

    flight: FlightModel
    user: Optional[UserModel] = None
