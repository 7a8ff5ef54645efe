"""
SQLAlchemy database models for the booking engine.

This module defines the tables the engine reads and writes:
- Location: Airports/cities with codes, used for flight origin and destination
- Flight: Scheduled flights with per-class fares and recorded capacity
- User: Customer and administrator accounts
- Booking: A passenger reservation with lifecycle status and payment evidence
- PaymentAccount: Payee details plus tax and service fee rates

Only Booking is mutated by the engine; the other tables belong to the CRUD layer.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Index, Numeric, Boolean, Float
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship
from datetime import datetime

# Create the declarative base for all models
Base = declarative_base()


class Location(Base):
    """Airport or city that flights depart from and arrive at."""
    __tablename__ = 'location'

    location_id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(10), unique=True, nullable=False, index=True)  # e.g. 'JFK'
    name = Column(String(100), nullable=False)
    city = Column(String(100), nullable=False)
    country = Column(String(100), nullable=False)

    def __repr__(self):
        return f"<Location(id={self.location_id}, code='{self.code}', city='{self.city}')>"


class Flight(Base):
    """
    Flight model with per-class fares.

    Fares may change after bookings exist; bookings keep the fare they were
    created with in Booking.ticket_price.
    """
    __tablename__ = 'flight'

    flight_id = Column(Integer, primary_key=True, autoincrement=True)
    origin_id = Column(Integer, ForeignKey('location.location_id'), nullable=False, index=True)
    destination_id = Column(Integer, ForeignKey('location.location_id'), nullable=False, index=True)
    departure_time = Column(DateTime, nullable=False, index=True)
    arrival_time = Column(DateTime, nullable=False)

    economy_price = Column(Numeric(10, 2), nullable=False)
    business_price = Column(Numeric(10, 2), nullable=False)
    first_class_price = Column(Numeric(10, 2), nullable=False)
    capacity = Column(Integer, nullable=False)  # Recorded only, never decremented

    origin = relationship("Location", foreign_keys=[origin_id], lazy="select")
    destination = relationship("Location", foreign_keys=[destination_id], lazy="select")
    bookings = relationship("Booking", back_populates="flight", lazy="select")

    def __repr__(self):
        return f"<Flight(id={self.flight_id}, from={self.origin_id}, to={self.destination_id})>"


class User(Base):
    """Customer or administrator account."""
    __tablename__ = 'user'

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)

    bookings = relationship("Booking", back_populates="user", lazy="select")

    def __repr__(self):
        return f"<User(id={self.user_id}, username='{self.username}')>"


class Booking(Base):
    """
    Booking model holding lifecycle state.

    Status is stored as its display string ('Pending Payment', ...). The
    payment proof and receipt columns hold opaque file references.
    """
    __tablename__ = 'booking'

    booking_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('user.user_id'), nullable=False, index=True)
    flight_id = Column(Integer, ForeignKey('flight.flight_id'), nullable=False, index=True)
    booking_date = Column(DateTime, nullable=False, default=datetime.now)

    passenger_first_name = Column(String(100), nullable=False)
    passenger_last_name = Column(String(100), nullable=False)
    passenger_email = Column(String(255), nullable=False)
    passenger_phone = Column(String(40), nullable=False)
    travel_class = Column(String(20), nullable=False, default="Economy")
    ticket_price = Column(Numeric(10, 2), nullable=False)

    status = Column(String(20), nullable=False, default="Pending", index=True)
    payment_reference = Column(String(100), nullable=True)
    payment_proof = Column(String(255), nullable=True)
    receipt_path = Column(String(255), nullable=True)
    decline_reason = Column(Text, nullable=True)

    flight = relationship("Flight", back_populates="bookings", lazy="select")
    user = relationship("User", back_populates="bookings", lazy="select")

    def __repr__(self):
        return f"<Booking(id={self.booking_id}, flight_id={self.flight_id}, status='{self.status}')>"


class PaymentAccount(Base):
    """Payee account details; unset rates fall back to engine defaults."""
    __tablename__ = 'payment_account'

    account_id = Column(Integer, primary_key=True, autoincrement=True)
    bank_name = Column(String(100), nullable=True)
    account_name = Column(String(100), nullable=True)
    account_number = Column(String(50), nullable=True)
    swift_code = Column(String(20), nullable=True)
    mobile_provider = Column(String(50), nullable=True)
    mobile_number = Column(String(30), nullable=True)
    tax_rate = Column(Float, nullable=True)
    service_fee_rate = Column(Float, nullable=True)

    def __repr__(self):
        return f"<PaymentAccount(id={self.account_id}, bank='{self.bank_name}')>"


# Admin review screens filter bookings by status and by owner
Index('idx_booking_user_status', Booking.user_id, Booking.status)
Index('idx_flight_route_date', Flight.origin_id, Flight.destination_id, Flight.departure_time)


def create_all_tables(engine):
    """
    Create all database tables using the provided SQLAlchemy engine.

    Args:
        engine: SQLAlchemy engine instance
    """
    Base.metadata.create_all(bind=engine)


def drop_all_tables(engine):
    """
    Drop all database tables using the provided SQLAlchemy engine.

    Args:
        engine: SQLAlchemy engine instance
    """
    Base.metadata.drop_all(bind=engine)


__all__ = [
    'Base',
    'Location',
    'Flight',
    'User',
    'Booking',
    'PaymentAccount',
    'create_all_tables',
    'drop_all_tables'
]
