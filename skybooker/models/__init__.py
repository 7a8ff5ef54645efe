"""
Booking engine Pydantic models package.

Pydantic v2 models for bookings, flights, users and payment pricing used for
validation and for moving records between the store and the services.
"""

# Enums
from .enums import (
    BookingStatus,
    TravelClass,
    Actor,
)

from .flight import (
    LocationModel,
    FlightModel,
)

from .booking import (
    UserModel,
    BookingDraft,
    BookingModel,
    BookingWithDetails,
)

from .payment import (
    DEFAULT_TAX_RATE,
    DEFAULT_SERVICE_FEE_RATE,
    PaymentRates,
    PaymentAccountModel,
    PriceBreakdown,
)

__all__ = [
    # Enums
    "BookingStatus",
    "TravelClass",
    "Actor",

    # Flight models
    "LocationModel",
    "FlightModel",

    # Booking models
    "UserModel",
    "BookingDraft",
    "BookingModel",
    "BookingWithDetails",

    # Payment models
    "DEFAULT_TAX_RATE",
    "DEFAULT_SERVICE_FEE_RATE",
    "PaymentRates",
    "PaymentAccountModel",
    "PriceBreakdown",
]
