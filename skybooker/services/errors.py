"""
Exception hierarchy for the booking engine.

BookingValidationError and BookingNotFoundError reach the caller and leave
state untouched. SideEffectError subclasses are raised by collaborators
inside the dispatcher, where they are logged and never propagated.
"""


class BookingEngineError(Exception):
    """Base class for errors surfaced to engine callers."""
    pass


class BookingValidationError(BookingEngineError):
    """Request rejected before any state was mutated."""
    pass


class BookingNotFoundError(BookingEngineError):
    """No booking exists with the requested ID."""

    def __init__(self, booking_id: int):
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id


class LockAcquisitionError(BookingEngineError):
    """A booking lock could not be acquired before the timeout."""
    pass


class BookingIntegrityError(BookingEngineError):
    """Stored booking data references rows that no longer exist."""
    pass


class SideEffectError(Exception):
    """Base class for failures of transition side effects."""
    pass


class EmailDeliveryError(SideEffectError):
    """Email could not be built or handed to the transport."""
    pass


class ReceiptGenerationError(SideEffectError):
    """Receipt PDF could not be rendered or stored."""
    pass
