"""
Booking lifecycle service: the entry points route handlers call.

Customer and admin actions both funnel through the transition policy and the
same dispatcher, so there is one lifecycle authority whatever the actor:

- record_payment: customer attaches proof (and optionally a reference); a
  Pending booking moves to Pending Payment in the same atomic write
- change_status: admin sets any of the six statuses directly
- approve / decline / complete: admin verbs mapped onto change_status

Every mutating entry point commits first and then hands genuine transitions
to the dispatcher; the caller never waits on side effects.
"""

import logging
import random
import string
import time
from typing import Optional, Union, Dict, Any, List

from ..models.booking import BookingDraft, BookingModel
from ..models.enums import BookingStatus, Actor
from .booking_store import BookingStore, BookingUpdate, status_changes
from .dispatcher import SideEffectDispatcher
from .errors import BookingNotFoundError, BookingValidationError
from .receipts import ReceiptService
from .transition_policy import (
    decide,
    parse_status,
    approve_target,
    decline_target,
    complete_target,
)

logger = logging.getLogger(__name__)

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def generate_payment_reference() -> str:
    """Generate a reference like 'TX-7QK2ZD-1718000000000'."""
    suffix = "".join(random.choices(REFERENCE_ALPHABET, k=6))
    return f"TX-{suffix}-{int(time.time() * 1000)}"


class BookingLifecycleService:
    """
    Reconciliation entry points over a booking store.

    Args:
        store: Booking store, the single source of lifecycle state
        dispatcher: Runs side effects for committed transitions
        receipts: Receipt service for on-demand receipt downloads
    """

    def __init__(self, store: BookingStore, dispatcher: SideEffectDispatcher, receipts: ReceiptService):
        self.store = store
        self.dispatcher = dispatcher
        self.receipts = receipts

    def _committed(self, booking_id: int, update: Optional[BookingUpdate]) -> BookingModel:
        if update is None:
            raise BookingNotFoundError(booking_id)
        if update.status_changed:
            self.dispatcher.on_transition(booking_id, update.previous_status, update.booking.status)
        return update.booking

    async def create_booking(self, draft: BookingDraft) -> BookingModel:
        """
        Create a Pending booking and send the booking confirmation email.

        Raises:
            BookingValidationError: If the flight does not exist
        """
        booking = await self.store.create(draft)
        self.dispatcher.on_created(booking.booking_id)
        return booking

    async def get_booking(self, booking_id: int) -> BookingModel:
        booking = await self.store.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    async def list_user_bookings(self, user_id: int) -> List[BookingModel]:
        return await self.store.list_for_user(user_id)

    async def record_payment(
        self,
        booking_id: int,
        proof_ref: Optional[str],
        reference: Optional[str] = None
    ) -> BookingModel:
        """
        Attach payment evidence and derive the resulting status.

        The evidence and the derived status are written together under the
        booking lock, so an admin decision can never land in between. An
        upload on a Paid booking without a receipt schedules the missing
        receipt in the background.

        Args:
            booking_id: Booking to pay for
            proof_ref: Stored proof-of-payment file reference (required)
            reference: Customer payment reference; generated when omitted

        Raises:
            BookingValidationError: If no proof is supplied
            BookingNotFoundError: If the booking does not exist
        """
        if not proof_ref or not proof_ref.strip():
            raise BookingValidationError("Payment proof is required")

        reference = (reference or "").strip() or generate_payment_reference()

        def mutation(current: BookingModel) -> Dict[str, Any]:
            decision = decide(current.status, has_evidence=True, actor=Actor.CUSTOMER)
            changes: Dict[str, Any] = {"payment_reference": reference, "payment_proof": proof_ref}
            changes.update(status_changes(current, decision.realized))
            return changes

        update = await self.store.apply(booking_id, mutation)
        booking = self._committed(booking_id, update)
        logger.info(f"Payment recorded for booking {booking_id} (reference: {reference})")

        if booking.status == BookingStatus.PAID and not booking.receipt_path:
            self.dispatcher.on_receipt_missing(booking_id)
        return booking

    async def change_status(
        self,
        booking_id: int,
        new_status: Union[str, BookingStatus],
        decline_reason: Optional[str] = None
    ) -> BookingModel:
        """
        Set a booking's status directly (admin path).

        Setting the current status is a no-op and fires no side effects. The
        decline reason is stored only when moving into Declined.

        Raises:
            BookingValidationError: If ``new_status`` is not a known status
            BookingNotFoundError: If the booking does not exist
        """
        requested = parse_status(new_status)
        reason = decline_reason.strip() if decline_reason and decline_reason.strip() else None

        def mutation(current: BookingModel) -> Dict[str, Any]:
            decision = decide(current.status, requested=requested, actor=Actor.ADMIN)
            return status_changes(current, decision.realized, reason)

        return self._committed(booking_id, await self.store.apply(booking_id, mutation))

    async def _apply_verb(self, booking_id: int, target_for, decline_reason: Optional[str] = None) -> BookingModel:
        def mutation(current: BookingModel) -> Dict[str, Any]:
            return status_changes(current, target_for(current.status), decline_reason)

        return self._committed(booking_id, await self.store.apply(booking_id, mutation))

    async def approve(self, booking_id: int) -> BookingModel:
        """Pending -> Confirmed, Pending Payment -> Paid."""
        return await self._apply_verb(booking_id, approve_target)

    async def decline(self, booking_id: int, reason: Optional[str] = None) -> BookingModel:
        """Pending or Pending Payment -> Declined, keeping ``reason`` if given."""
        reason = reason.strip() if reason and reason.strip() else None
        return await self._apply_verb(booking_id, decline_target, reason)

    async def complete(self, booking_id: int) -> BookingModel:
        """Confirmed -> Completed."""
        return await self._apply_verb(booking_id, complete_target)

    async def fetch_receipt(self, booking_id: int) -> str:
        """
        Return the booking's receipt reference, generating it if missing.

        Raises:
            BookingNotFoundError: If the booking does not exist
            BookingValidationError: If the booking is not Paid or Completed
            ReceiptGenerationError: If a missing receipt could not be generated
        """
        return await self.receipts.fetch_receipt(booking_id)
