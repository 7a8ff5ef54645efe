"""
Side-effect dispatcher for committed booking transitions.

Side effects run as background tasks owned by the dispatcher: callers get
their committed booking back immediately and never see a side-effect failure.
Every failure is logged and counted, then dropped. ``drain()`` waits for all
outstanding work, for tests and orderly shutdown.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional, Set, Awaitable, Any, Dict

from ..models.enums import BookingStatus
from .booking_store import BookingStore
from .notifications import BookingNotifier
from .receipts import ReceiptService
from .transition_policy import requires_receipt

logger = logging.getLogger(__name__)


@dataclass
class DispatchStats:
    """Side-effect counters keyed by effect name."""
    attempted: Counter = field(default_factory=Counter)
    failed: Counter = field(default_factory=Counter)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": dict(self.attempted),
            "failed": dict(self.failed),
        }


class SideEffectDispatcher:
    """
    Runs notification and receipt side effects for bookings.

    Per transition:
    1. status update email, previous -> new
    2. on a genuine move into Paid: ensure the receipt, then send the payment
       confirmation with the receipt attached

    Step 1 failing does not stop step 2. A receipt failure skips the payment
    confirmation (there is nothing to attach) but never touches the booking.
    """

    def __init__(self, store: BookingStore, notifier: BookingNotifier, receipts: ReceiptService):
        self.store = store
        self.notifier = notifier
        self.receipts = receipts
        self.stats = DispatchStats()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of side-effect tasks not yet finished."""
        return len(self._tasks)

    def on_transition(self, booking_id: int, previous: BookingStatus, new: BookingStatus) -> asyncio.Task:
        """Schedule side effects for a committed status change and return immediately."""
        return self._spawn(self._run_transition(booking_id, previous, new), f"transition-{booking_id}")

    def on_created(self, booking_id: int) -> asyncio.Task:
        """Schedule the booking confirmation email for a new booking."""
        return self._spawn(
            self._attempt("booking_confirmation", booking_id, self._send_booking_confirmation(booking_id)),
            f"created-{booking_id}",
        )

    def on_receipt_missing(self, booking_id: int) -> asyncio.Task:
        """Schedule receipt generation for a paid booking that has none yet."""
        return self._spawn(
            self._attempt("receipt", booking_id, self._ensure_receipt(booking_id)),
            f"receipt-{booking_id}",
        )

    async def drain(self) -> None:
        """Wait until every scheduled side effect has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro: Awaitable[Any], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _attempt(self, effect: str, booking_id: int, coro: Awaitable[Any]) -> Optional[Any]:
        """Await one side effect; log and count failures instead of raising."""
        self.stats.attempted[effect] += 1
        try:
            return await coro
        except Exception as e:
            self.stats.failed[effect] += 1
            logger.error(f"Side effect '{effect}' failed for booking {booking_id}: {e}")
            return None

    async def _run_transition(self, booking_id: int, previous: BookingStatus, new: BookingStatus) -> None:
        await self._attempt("status_update", booking_id, self._send_status_update(booking_id, previous, new))

        if not requires_receipt(previous, new):
            return

        receipt_ref = await self._attempt("receipt", booking_id, self._ensure_receipt(booking_id))
        if receipt_ref is None:
            logger.warning(f"No receipt for booking {booking_id}; payment confirmation email skipped")
            return

        await self._attempt(
            "payment_confirmation", booking_id, self._send_payment_confirmation(booking_id, receipt_ref)
        )

    async def _load_details(self, booking_id: int):
        booking = await self.store.get_details(booking_id)
        if booking is None:
            raise LookupError(f"Booking {booking_id} not found")
        return booking

    async def _send_booking_confirmation(self, booking_id: int) -> None:
        booking = await self._load_details(booking_id)
        await self.notifier.send_booking_confirmation(booking)

    async def _send_status_update(self, booking_id: int, previous: BookingStatus, new: BookingStatus) -> None:
        booking = await self._load_details(booking_id)
        # Describe the transition that was committed, even if a later one has landed since
        booking = booking.model_copy(update={"status": new})
        await self.notifier.send_status_update(booking, previous)

    async def _ensure_receipt(self, booking_id: int) -> str:
        receipt_ref = await self.receipts.ensure_receipt(booking_id)
        if receipt_ref is None:
            raise LookupError(f"Booking {booking_id} not found")
        return receipt_ref

    async def _send_payment_confirmation(self, booking_id: int, receipt_ref: str) -> None:
        booking = await self._load_details(booking_id)
        breakdown = await self.receipts.price_breakdown(booking)
        pdf = await self.receipts.read_receipt(receipt_ref)
        await self.notifier.send_payment_confirmation(booking, breakdown, pdf)
