"""
Booking status state machine.

Pure decision logic: given the current status, an optional requested status,
whether payment evidence is being attached and who is asking, work out the
status the booking should end up in. Nothing here touches storage.

Customer path:
    Pending + evidence -> Pending Payment (the only status a customer can cause)

Admin path:
    approve   Pending -> Confirmed, Pending Payment -> Paid
    decline   Pending | Pending Payment -> Declined
    complete  Confirmed -> Completed
    set       any -> any (direct override, subject to the same-status no-op)
"""

from dataclasses import dataclass
from typing import Optional, Union, Dict, FrozenSet

from ..models.enums import BookingStatus, Actor
from .errors import BookingValidationError

_STATUS_LOOKUP: Dict[str, BookingStatus] = {
    status.value.lower(): status for status in BookingStatus
}

CUSTOMER_FORBIDDEN: FrozenSet[BookingStatus] = frozenset({
    BookingStatus.CONFIRMED,
    BookingStatus.PAID,
    BookingStatus.DECLINED,
    BookingStatus.COMPLETED,
})

TERMINAL_STATUSES: FrozenSet[BookingStatus] = frozenset({
    BookingStatus.COMPLETED,
    BookingStatus.DECLINED,
})

RECEIPT_ELIGIBLE: FrozenSet[BookingStatus] = frozenset({
    BookingStatus.PAID,
    BookingStatus.COMPLETED,
})

APPROVE_TARGETS: Dict[BookingStatus, BookingStatus] = {
    BookingStatus.PENDING: BookingStatus.CONFIRMED,
    BookingStatus.PENDING_PAYMENT: BookingStatus.PAID,
}

DECLINE_SOURCES: FrozenSet[BookingStatus] = frozenset({
    BookingStatus.PENDING,
    BookingStatus.PENDING_PAYMENT,
})

COMPLETE_SOURCES: FrozenSet[BookingStatus] = frozenset({
    BookingStatus.CONFIRMED,
})


@dataclass(frozen=True)
class TransitionDecision:
    """Outcome of a policy decision."""
    current: BookingStatus
    realized: BookingStatus

    @property
    def changed(self) -> bool:
        return self.current != self.realized


def parse_status(value: Union[str, BookingStatus]) -> BookingStatus:
    """
    Convert user input into a BookingStatus.

    Matching ignores case and surrounding whitespace; anything outside the six
    known statuses is rejected.

    Raises:
        BookingValidationError: If the value is not a known status
    """
    if isinstance(value, BookingStatus):
        return value
    if not isinstance(value, str):
        raise BookingValidationError(f"Invalid status: {value!r}")

    status = _STATUS_LOOKUP.get(" ".join(value.split()).lower())
    if status is None:
        raise BookingValidationError(
            f"Invalid status: {value!r}. Expected one of: {[s.value for s in BookingStatus]}"
        )
    return status


def decide(
    current: BookingStatus,
    requested: Optional[BookingStatus] = None,
    has_evidence: bool = False,
    actor: Actor = Actor.ADMIN
) -> TransitionDecision:
    """
    Compute the status a booking should move to.

    Args:
        current: Status the booking has now
        requested: Explicit status asked for (admin path only)
        has_evidence: Whether payment evidence is being attached
        actor: Who is asking

    Returns:
        TransitionDecision; ``changed`` is False for no-ops

    Raises:
        BookingValidationError: If a customer asks for an explicit status
    """
    if actor == Actor.CUSTOMER:
        if requested is not None:
            if requested in CUSTOMER_FORBIDDEN:
                raise BookingValidationError(
                    f"Customers cannot set booking status to '{requested.value}'"
                )
            raise BookingValidationError("Customers cannot set booking status directly")
        if has_evidence and current == BookingStatus.PENDING:
            return TransitionDecision(current, BookingStatus.PENDING_PAYMENT)
        return TransitionDecision(current, current)

    if requested is None:
        # Admin attaching evidence on a customer's behalf follows the same derivation
        if has_evidence and current == BookingStatus.PENDING:
            return TransitionDecision(current, BookingStatus.PENDING_PAYMENT)
        return TransitionDecision(current, current)

    return TransitionDecision(current, requested)


def approve_target(current: BookingStatus) -> BookingStatus:
    """Status an admin approval leads to from ``current``."""
    target = APPROVE_TARGETS.get(current)
    if target is None:
        raise BookingValidationError(f"A booking in '{current.value}' cannot be approved")
    return target


def decline_target(current: BookingStatus) -> BookingStatus:
    if current not in DECLINE_SOURCES:
        raise BookingValidationError(f"A booking in '{current.value}' cannot be declined")
    return BookingStatus.DECLINED


def complete_target(current: BookingStatus) -> BookingStatus:
    if current not in COMPLETE_SOURCES:
        raise BookingValidationError(f"A booking in '{current.value}' cannot be completed")
    return BookingStatus.COMPLETED


def requires_receipt(previous: BookingStatus, new: BookingStatus) -> bool:
    """Whether a transition mandates receipt generation and payment confirmation."""
    return new == BookingStatus.PAID and previous != BookingStatus.PAID


def is_receipt_eligible(status: BookingStatus) -> bool:
    return status in RECEIPT_ELIGIBLE
