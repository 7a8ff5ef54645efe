"""
Flight and location models consumed read-only by the booking engine.

Flights are owned by the CRUD layer; the engine only needs them to freeze a
ticket price at booking time and to describe the trip in emails and receipts.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict

from .enums import TravelClass


class LocationModel(BaseModel):
    """Airport or city a flight departs from or arrives at."""
    model_config = ConfigDict(from_attributes=True)

    location_id: int
    code: str = Field(..., max_length=10, description="Location code (e.g., 'JFK')")
    name: str = Field(..., max_length=100, description="Location name")
    city: str = Field(..., max_length=100, description="City")
    country: str = Field(..., max_length=100, description="Country")


class FlightModel(BaseModel):
    """
    Scheduled flight with per-class pricing.

    ``origin`` and ``destination`` are populated when the flight is hydrated
    for display; price lookups only need the price columns.
    """
    model_config = ConfigDict(from_attributes=True)

    flight_id: int
    origin_id: int = Field(..., description="Departure location ID")
    destination_id: int = Field(..., description="Arrival location ID")
    departure_time: datetime = Field(..., description="Scheduled departure time")
    arrival_time: datetime = Field(..., description="Scheduled arrival time")
    economy_price: Decimal = Field(..., ge=0, description="Economy fare")
    business_price: Decimal = Field(..., ge=0, description="Business fare")
    first_class_price: Decimal = Field(..., ge=0, description="First class fare")
    capacity: int = Field(..., ge=0, description="Recorded seat capacity")

    origin: Optional[LocationModel] = None
    destination: Optional[LocationModel] = None

    def price_for(self, travel_class: TravelClass) -> Decimal:
        """Return the current fare for a travel class."""
        if travel_class == TravelClass.BUSINESS:
            return self.business_price
        if travel_class == TravelClass.FIRST:
            return self.first_class_price
        return self.economy_price

    @property
    def route_label(self) -> str:
        """Short 'JFK to LHR' label, falling back to location IDs."""
        origin = self.origin.code if self.origin else str(self.origin_id)
        destination = self.destination.code if self.destination else str(self.destination_id)
        return f"{origin} to {destination}"
