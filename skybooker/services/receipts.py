"""
Receipt generation: fetch-or-generate PDF receipts for paid bookings.

A receipt is generated at most once per booking. Generation renders the
receipt HTML to PDF, writes it under the receipts directory as
``receipt-<booking id>-<epoch ms>.pdf`` and stores the web path
(``/uploads/receipts/<file>``) on the booking with only-if-absent semantics.
When two generations race, the loser's file is removed and the stored
reference wins.
"""

import asyncio
import html
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..models.booking import BookingWithDetails
from ..models.payment import PriceBreakdown
from .booking_store import BookingStore
from .errors import BookingNotFoundError, BookingValidationError, ReceiptGenerationError
from .payment_accounts import PaymentAccountReader
from .transition_policy import is_receipt_eligible

logger = logging.getLogger(__name__)

RECEIPT_CSS = """
body { font-family: Helvetica, Arial, sans-serif; color: #0f172a; margin: 40px; }
h1 { text-align: center; color: #3b82f6; margin-bottom: 0; }
h2 { text-align: center; font-weight: normal; margin-top: 4px; }
h3 { border-bottom: 1px solid #cbd5e1; padding-bottom: 4px; margin-top: 28px; }
table { width: 100%; border-collapse: collapse; }
td { padding: 4px 10px; }
td.value { text-align: right; }
tr.total td { font-weight: bold; border-top: 1px solid #0f172a; }
p.footer { text-align: center; font-size: 10px; color: #64748b; margin-top: 40px; }
"""


def receipt_number(booking_id: int, epoch_ms: int) -> str:
    """Human-facing receipt number: booking ID plus the last six digits of the timestamp."""
    return f"{booking_id}-{str(epoch_ms)[-6:]}"


def _row(label: str, value: object, css_class: str = "") -> str:
    cls = f' class="{css_class}"' if css_class else ""
    return f'<tr{cls}><td>{html.escape(label)}</td><td class="value">{html.escape(str(value))}</td></tr>'


def build_receipt_html(
    booking: BookingWithDetails,
    breakdown: PriceBreakdown,
    number: str,
    issued_at: datetime,
    brand: str = "SkyBooker"
) -> str:
    """Render the receipt document as standalone HTML."""
    flight = booking.flight
    origin, destination = flight.origin, flight.destination
    customer = "".join([
        _row("Name:", booking.passenger_name),
        _row("Email:", booking.passenger_email),
        _row("Phone:", booking.passenger_phone),
    ])

    trip = [_row("Flight:", flight.route_label)]
    if origin is not None:
        trip.append(_row("From:", f"{origin.city}, {origin.country}"))
    if destination is not None:
        trip.append(_row("To:", f"{destination.city}, {destination.country}"))
    trip.extend([
        _row("Departure:", flight.departure_time.strftime("%Y-%m-%d %H:%M")),
        _row("Arrival:", flight.arrival_time.strftime("%Y-%m-%d %H:%M")),
        _row("Class:", booking.travel_class.value),
    ])

    payment = "".join([
        _row("Payment Status:", booking.status.value),
        _row("Payment Reference:", booking.payment_reference or "N/A"),
        _row("Base Fare:", f"${breakdown.base_fare:.2f}"),
        _row(f"Tax ({breakdown.tax_rate * 100:g}%):", f"${breakdown.tax:.2f}"),
        _row(f"Service Fee ({breakdown.service_fee_rate * 100:g}%):", f"${breakdown.service_fee:.2f}"),
        _row("Total Amount:", f"${breakdown.total:.2f}", "total"),
    ])

    brand_text = html.escape(brand)
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{brand_text} Receipt {html.escape(number)}</title>"
        f"<style>{RECEIPT_CSS}</style></head><body>"
        f"<h1>{brand_text}</h1><h2>Flight Booking Receipt</h2>"
        "<table>"
        f"{_row('Receipt ID:', number)}"
        f"{_row('Date:', issued_at.strftime('%Y-%m-%d'))}"
        f"{_row('Booking Reference:', booking.booking_id)}"
        "</table>"
        f"<h3>Customer Details</h3><table>{customer}</table>"
        f"<h3>Flight Details</h3><table>{''.join(trip)}</table>"
        f"<h3>Payment Details</h3><table>{payment}</table>"
        f'<p class="footer">Thank you for choosing {brand_text} for your travel needs.<br>'
        "This is an electronically generated receipt and does not require a signature.</p>"
        "</body></html>"
    )


class ReceiptRenderer(ABC):
    """Turns receipt HTML into PDF bytes."""

    @abstractmethod
    async def render(self, document: str) -> bytes:
        """Render ``document`` and return the PDF."""


class WeasyPrintReceiptRenderer(ReceiptRenderer):
    """PDF rendering with WeasyPrint, run on a worker thread."""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = base_url

    def _render_sync(self, document: str) -> bytes:
        # WeasyPrint pulls in native Pango/Cairo libraries at import time
        from weasyprint import HTML

        return HTML(string=document, base_url=self.base_url).write_pdf()

    async def render(self, document: str) -> bytes:
        return await asyncio.to_thread(self._render_sync, document)


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


class ReceiptService:
    """
    Fetch-or-generate access to booking receipts.

    Args:
        store: Booking store holding the receipt reference
        rates_reader: Source of tax and service fee rates
        renderer: HTML to PDF renderer
        config: Engine configuration (receipts directory, URL prefix, brand)
    """

    def __init__(
        self,
        store: BookingStore,
        rates_reader: PaymentAccountReader,
        renderer: ReceiptRenderer,
        config=None
    ):
        self.store = store
        self.rates_reader = rates_reader
        self.renderer = renderer
        self.receipts_dir = Path(getattr(config, "receipts_dir", "uploads/receipts"))
        self.url_prefix = getattr(config, "receipts_url_prefix", "/uploads/receipts").rstrip("/")
        self.brand = getattr(config, "brand_name", "SkyBooker")

    async def price_breakdown(self, booking: BookingWithDetails) -> PriceBreakdown:
        """Ticket price plus tax and service fee at the current account rates."""
        rates = await self.rates_reader.get_rates()
        return PriceBreakdown.from_price(booking.ticket_price, rates)

    def resolve_path(self, receipt_ref: str) -> Path:
        """Map a stored web path back to the file under the receipts directory."""
        return self.receipts_dir / Path(receipt_ref).name

    async def read_receipt(self, receipt_ref: str) -> bytes:
        return await asyncio.to_thread(self.resolve_path(receipt_ref).read_bytes)

    async def generate(self, booking: BookingWithDetails) -> str:
        """
        Render and write a new receipt file for ``booking``.

        Returns:
            Web path of the written file

        Raises:
            ReceiptGenerationError: If rendering or writing fails
        """
        epoch_ms = int(time.time() * 1000)
        filename = f"receipt-{booking.booking_id}-{epoch_ms}.pdf"

        try:
            breakdown = await self.price_breakdown(booking)
            document = build_receipt_html(
                booking, breakdown, receipt_number(booking.booking_id, epoch_ms), datetime.now(), self.brand
            )
            pdf = await self.renderer.render(document)
            await asyncio.to_thread(_write_file, self.receipts_dir / filename, pdf)
        except Exception as e:
            raise ReceiptGenerationError(
                f"Failed to generate receipt for booking {booking.booking_id}: {e}"
            ) from e

        logger.info(f"Receipt generated for booking {booking.booking_id}: {filename}")
        return f"{self.url_prefix}/{filename}"

    async def ensure_receipt(self, booking_id: int) -> Optional[str]:
        """
        Return the booking's receipt reference, generating it if absent.

        Returns:
            Stored receipt web path, or None if the booking does not exist

        Raises:
            ReceiptGenerationError: If a missing receipt could not be generated
        """
        booking = await self.store.get_details(booking_id)
        if booking is None:
            return None
        if booking.receipt_path:
            return booking.receipt_path

        receipt_ref = await self.generate(booking)
        update = await self.store.set_receipt(booking_id, receipt_ref, only_if_absent=True)
        if update is None:
            return None

        stored = update.booking.receipt_path
        if stored != receipt_ref:
            logger.info(f"Receipt for booking {booking_id} already stored; discarding {receipt_ref}")
            await asyncio.to_thread(self.resolve_path(receipt_ref).unlink, missing_ok=True)
        return stored

    async def fetch_receipt(self, booking_id: int) -> str:
        """
        On-demand receipt download path.

        Raises:
            BookingNotFoundError: If the booking does not exist
            BookingValidationError: If the booking is not Paid or Completed
            ReceiptGenerationError: If a missing receipt could not be generated
        """
        booking = await self.store.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        if not is_receipt_eligible(booking.status):
            raise BookingValidationError(
                f"Receipts are only available for paid bookings (booking {booking_id} is "
                f"'{booking.status.value}')"
            )
        if booking.receipt_path:
            return booking.receipt_path

        receipt_ref = await self.ensure_receipt(booking_id)
        if receipt_ref is None:
            raise BookingNotFoundError(booking_id)
        return receipt_ref
