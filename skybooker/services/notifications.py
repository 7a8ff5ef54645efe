"""
Booking emails and the transport that delivers them.

Three messages are sent by the engine:
- booking confirmation, when a booking is created
- status update, on every genuine status transition
- payment confirmation with the PDF receipt attached, when a booking is paid

Message construction is pure (build_* functions); delivery goes through an
EmailTransport so the dispatcher can be exercised without a mail server.
"""

import asyncio
import html
import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Optional, Dict

from ..models.booking import BookingWithDetails
from ..models.enums import BookingStatus
from ..models.payment import PriceBreakdown
from .errors import EmailDeliveryError

logger = logging.getLogger(__name__)

STATUS_NOTES: Dict[BookingStatus, str] = {
    BookingStatus.CONFIRMED: (
        "<p>Your booking is now confirmed. Please make sure to arrive at the airport "
        "at least 2 hours before your scheduled departure time.</p>"
    ),
    BookingStatus.PENDING_PAYMENT: (
        "<p>Your booking is pending payment. Please complete your payment to confirm your booking.</p>"
        "<p>You can make a payment by logging into your account and going to the My Bookings section.</p>"
    ),
    BookingStatus.PAID: (
        "<p>We have received your payment. Your booking is now fully paid and confirmed.</p>"
        "<p>Please make sure to arrive at the airport at least 2 hours before your scheduled "
        "departure time.</p>"
    ),
    BookingStatus.DECLINED: (
        "<p>We regret to inform you that your booking payment has been declined.</p>"
        "<p>Please contact our customer support team for more information or try to make "
        "a payment again.</p>"
    ),
    BookingStatus.COMPLETED: (
        "<p>Your flight has been completed. We hope you had a pleasant journey!</p>"
        "<p>Please consider leaving a review of your experience.</p>"
    ),
}

GENERIC_NOTE = "<p>If you have any questions about this change, please contact our support team.</p>"

DATETIME_FORMAT = "%a %d %b %Y, %H:%M"


def status_note(status: BookingStatus) -> str:
    """Status-specific paragraph for the status update email."""
    return STATUS_NOTES.get(status, GENERIC_NOTE)


def _e(value: object) -> str:
    return html.escape(str(value))


def _place(location, fallback_id: int) -> str:
    if location is None:
        return f"location #{fallback_id}"
    return f"{_e(location.city)} ({_e(location.code)})"


def _trip_lines(booking: BookingWithDetails) -> str:
    flight = booking.flight
    return (
        f"<p><strong>Flight:</strong> From {_place(flight.origin, flight.origin_id)} "
        f"to {_place(flight.destination, flight.destination_id)}</p>"
        f"<p><strong>Departure:</strong> {flight.departure_time.strftime(DATETIME_FORMAT)}</p>"
    )


def _wrap(title: str, greeting_name: str, intro: str, box_title: str, box: str, outro: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: #3b82f6;">{title}</h2>'
        f"<p>Dear {_e(greeting_name)},</p>"
        f"<p>{intro}</p>"
        '<div style="background-color: #f8fafc; padding: 15px; border-radius: 5px; margin: 20px 0;">'
        f'<h3 style="margin-top: 0; color: #0f172a;">{box_title}</h3>'
        f"{box}"
        "</div>"
        f"{outro}"
        "</div>"
    )


def _new_message(sender: str, booking: BookingWithDetails, subject: str, body_html: str, text: str) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = sender
    message["To"] = booking.passenger_email
    message.set_content(text)
    message.add_alternative(body_html, subtype="html")
    return message


def build_booking_confirmation(booking: BookingWithDetails, sender: str, brand: str = "SkyBooker") -> EmailMessage:
    box = (
        f"<p><strong>Booking Reference:</strong> {booking.booking_id}</p>"
        f"<p><strong>Status:</strong> {_e(booking.status.value)}</p>"
        f"{_trip_lines(booking)}"
        f"<p><strong>Arrival:</strong> {booking.flight.arrival_time.strftime(DATETIME_FORMAT)}</p>"
        f"<p><strong>Passenger:</strong> {_e(booking.passenger_name)}</p>"
        f"<p><strong>Class:</strong> {_e(booking.travel_class.value)}</p>"
    )
    body = _wrap(
        "Your Flight is Booked!",
        booking.passenger_name,
        f"Thank you for booking with {_e(brand)}. We have received your booking.",
        "Booking Details",
        box,
        f"<p>You can view your booking details and status anytime by logging into your "
        f"{_e(brand)} account.</p><p>Safe travels!</p><p>The {_e(brand)} Team</p>",
    )
    text = (
        f"Dear {booking.passenger_name},\n\n"
        f"Your booking {booking.booking_id} for flight {booking.flight.route_label} "
        f"has been received (status: {booking.status.value}).\n\nThe {brand} Team"
    )
    return _new_message(
        sender, booking, f"Booking Confirmation - Flight {booking.flight.route_label}", body, text
    )


def build_status_update(
    booking: BookingWithDetails,
    previous_status: BookingStatus,
    sender: str,
    brand: str = "SkyBooker"
) -> EmailMessage:
    box = (
        f"<p><strong>Booking Reference:</strong> {booking.booking_id}</p>"
        f"<p><strong>Previous Status:</strong> {_e(previous_status.value)}</p>"
        f"<p><strong>New Status:</strong> {_e(booking.status.value)}</p>"
        f"{_trip_lines(booking)}"
    )
    if booking.status == BookingStatus.DECLINED and booking.decline_reason:
        box += f"<p><strong>Reason:</strong> {_e(booking.decline_reason)}</p>"

    body = _wrap(
        "Booking Status Update",
        booking.passenger_name,
        "We're writing to inform you that the status of your booking has been updated.",
        "Booking Details",
        box,
        f"{status_note(booking.status)}"
        f"<p>You can view your booking details and status anytime by logging into your "
        f"{_e(brand)} account.</p>"
        f"<p>Thank you for choosing {_e(brand)} for your travel needs.</p>"
        f"<p>Best regards,</p><p>The {_e(brand)} Team</p>",
    )
    text = (
        f"Dear {booking.passenger_name},\n\n"
        f"The status of booking {booking.booking_id} changed from {previous_status.value} "
        f"to {booking.status.value}.\n\nThe {brand} Team"
    )
    return _new_message(
        sender, booking, f"Booking Status Update - Flight {booking.flight.route_label}", body, text
    )


def receipt_filename(booking_id: int, brand: str = "SkyBooker") -> str:
    return f"{brand}_Receipt_{booking_id}.pdf"


def build_payment_confirmation(
    booking: BookingWithDetails,
    breakdown: PriceBreakdown,
    receipt_pdf: Optional[bytes],
    sender: str,
    brand: str = "SkyBooker"
) -> EmailMessage:
    box = (
        f"<p><strong>Booking Reference:</strong> {booking.booking_id}</p>"
        f"<p><strong>Payment Reference:</strong> {_e(booking.payment_reference or 'N/A')}</p>"
        f"<p><strong>Amount:</strong> ${breakdown.total:.2f}</p>"
        f"{_trip_lines(booking)}"
    )
    attachment_note = (
        "<p>We've attached a PDF receipt to this email for your records. "
        "You can also download it anytime from your account dashboard.</p>"
        if receipt_pdf else
        "<p>Your receipt will be available to download from your account dashboard.</p>"
    )
    body = _wrap(
        "Payment Confirmed",
        booking.passenger_name,
        "We're pleased to confirm that we've received your payment for the following booking:",
        "Payment Details",
        box,
        "<p>Your booking is now confirmed and ready for travel.</p>"
        f"{attachment_note}"
        f"<p>Thank you for choosing {_e(brand)} for your travel needs.</p>"
        f"<p>Best regards,</p><p>The {_e(brand)} Payments Team</p>",
    )
    text = (
        f"Dear {booking.passenger_name},\n\n"
        f"We received your payment of ${breakdown.total:.2f} for booking {booking.booking_id}.\n\n"
        f"The {brand} Payments Team"
    )
    message = _new_message(
        sender, booking, f"Payment Confirmed - Flight {booking.flight.route_label}", body, text
    )
    if receipt_pdf:
        message.add_attachment(
            receipt_pdf,
            maintype="application",
            subtype="pdf",
            filename=receipt_filename(booking.booking_id, brand),
        )
    return message


class EmailTransport(ABC):
    """Delivers a fully built email, attachments included."""

    @abstractmethod
    async def send(self, message: EmailMessage) -> None:
        """
        Send ``message``.

        Raises:
            EmailDeliveryError: If the message could not be handed off
        """


class SmtpEmailTransport(EmailTransport):
    """
    SMTP delivery through smtplib.

    smtplib blocks, so each send runs on a worker thread and never stalls the
    event loop.
    """

    def __init__(
        self,
        host: Optional[str],
        port: int = 587,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_ssl: bool = False,
        starttls: bool = True,
        timeout: int = 10
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_ssl = use_ssl
        self.starttls = starttls
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "SmtpEmailTransport":
        return cls(
            host=config.smtp_host,
            port=config.smtp_port,
            user=config.smtp_user,
            password=config.smtp_password,
            use_ssl=config.smtp_use_ssl,
            starttls=config.smtp_starttls,
            timeout=config.smtp_timeout,
        )

    def _send_sync(self, message: EmailMessage) -> None:
        if self.use_ssl:
            smtp = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            smtp.ehlo()
            if self.starttls:
                smtp.starttls()
                smtp.ehlo()

        with smtp:
            if self.user and self.password:
                smtp.login(self.user, self.password)
            smtp.send_message(message)

    async def send(self, message: EmailMessage) -> None:
        if not self.host:
            raise EmailDeliveryError("SMTP is not configured (SMTP_HOST is empty)")

        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"SMTP delivery to {message['To']} failed: {e}") from e

        logger.info(f"Email sent to {message['To']}: {message['Subject']}")


class BookingNotifier:
    """Builds booking emails and hands them to a transport."""

    def __init__(self, transport: EmailTransport, config=None):
        self.transport = transport
        self.brand = getattr(config, "brand_name", "SkyBooker")
        self.sender_bookings = getattr(config, "mail_from_bookings", '"SkyBooker" <bookings@skybooker.com>')
        self.sender_updates = getattr(config, "mail_from_updates", '"SkyBooker" <updates@skybooker.com>')
        self.sender_payments = getattr(
            config, "mail_from_payments", '"SkyBooker Payments" <payments@skybooker.com>'
        )

    async def send_booking_confirmation(self, booking: BookingWithDetails) -> None:
        await self.transport.send(build_booking_confirmation(booking, self.sender_bookings, self.brand))
        logger.info(f"Booking confirmation email sent for booking ID: {booking.booking_id}")

    async def send_status_update(self, booking: BookingWithDetails, previous_status: BookingStatus) -> None:
        await self.transport.send(
            build_status_update(booking, previous_status, self.sender_updates, self.brand)
        )
        logger.info(
            f"Booking status update email sent for booking ID: {booking.booking_id} "
            f"({previous_status.value} -> {booking.status.value})"
        )

    async def send_payment_confirmation(
        self,
        booking: BookingWithDetails,
        breakdown: PriceBreakdown,
        receipt_pdf: Optional[bytes]
    ) -> None:
        await self.transport.send(
            build_payment_confirmation(booking, breakdown, receipt_pdf, self.sender_payments, self.brand)
        )
        logger.info(f"Payment confirmation email sent for booking ID: {booking.booking_id}")
