"""
Enums for the booking engine.

Status and class values are the exact strings stored in the database and shown
to customers, so they double as the wire format.
"""

from enum import Enum


class BookingStatus(str, Enum):
    """Lifecycle status of a booking."""
    PENDING = "Pending"
    PENDING_PAYMENT = "Pending Payment"  # Evidence uploaded, awaiting review
    CONFIRMED = "Confirmed"
    PAID = "Paid"
    DECLINED = "Declined"
    COMPLETED = "Completed"


class TravelClass(str, Enum):
    """Cabin class a booking was priced at."""
    ECONOMY = "Economy"
    BUSINESS = "Business"
    FIRST = "First Class"


class Actor(str, Enum):
    """Who is asking for a lifecycle change."""
    CUSTOMER = "customer"
    ADMIN = "admin"
