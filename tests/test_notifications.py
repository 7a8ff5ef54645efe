"""
Tests for booking email construction and SMTP delivery.

smtplib is patched, so no mail server is contacted.
"""

import smtplib
import pytest
from unittest.mock import patch, MagicMock

from skybooker.models import BookingStatus, PaymentRates, PriceBreakdown
from skybooker.services.errors import EmailDeliveryError
from skybooker.services.notifications import (
    BookingNotifier,
    SmtpEmailTransport,
    build_booking_confirmation,
    build_payment_confirmation,
    build_status_update,
    status_note,
    GENERIC_NOTE,
)
from skybooker.utils.config import BookingEngineConfig

from conftest import seed_booking

SENDER = '"SkyBooker" <updates@skybooker.com>'


def _html(message):
    return message.get_body(("html",)).get_content()


class TestStatusNotes:

    @pytest.mark.parametrize("status, fragment", [
        (BookingStatus.CONFIRMED, "now confirmed"),
        (BookingStatus.PENDING_PAYMENT, "pending payment"),
        (BookingStatus.PAID, "received your payment"),
        (BookingStatus.DECLINED, "has been declined"),
        (BookingStatus.COMPLETED, "flight has been completed"),
    ])
    def test_distinct_notes(self, status, fragment):
        assert fragment in status_note(status)

    def test_generic_fallback(self):
        assert status_note(BookingStatus.PENDING) == GENERIC_NOTE


class TestMessageBuilders:

    @pytest.mark.asyncio
    async def test_status_update(self, store):
        await seed_booking(store, 99, BookingStatus.DECLINED, decline_reason="blurry <proof>")
        booking = await store.get_details(99)

        message = build_status_update(booking, BookingStatus.PENDING_PAYMENT, SENDER)

        assert message["To"] == "ada@example.com"
        assert message["From"] == SENDER
        assert message["Subject"] == "Booking Status Update - Flight JFK to LHR"
        body = _html(message)
        assert "Pending Payment" in body
        assert "Declined" in body
        assert "blurry &lt;proof&gt;" in body
        assert "New York (JFK)" in body
        assert "Pending Payment to Declined" in message.get_body(("plain",)).get_content()

    @pytest.mark.asyncio
    async def test_booking_confirmation(self, store):
        await seed_booking(store, 1)
        booking = await store.get_details(1)

        message = build_booking_confirmation(booking, SENDER, brand="AeroTest")

        body = _html(message)
        assert "Thank you for booking with AeroTest" in body
        assert "Economy" in body
        assert message["Subject"] == "Booking Confirmation - Flight JFK to LHR"

    @pytest.mark.asyncio
    async def test_payment_confirmation_with_attachment(self, store):
        await seed_booking(store, 42, BookingStatus.PAID, payment_reference="TX-ABC123-1")
        booking = await store.get_details(42)
        breakdown = PriceBreakdown.from_price(booking.ticket_price, PaymentRates())

        message = build_payment_confirmation(booking, breakdown, b"%PDF-1.4", SENDER)

        assert "$526.50" in _html(message)
        assert "TX-ABC123-1" in _html(message)
        attachments = list(message.iter_attachments())
        assert len(attachments) == 1
        assert attachments[0].get_content_type() == "application/pdf"
        assert attachments[0].get_filename() == "SkyBooker_Receipt_42.pdf"

    @pytest.mark.asyncio
    async def test_payment_confirmation_without_attachment(self, store):
        await seed_booking(store, 43, BookingStatus.PAID)
        booking = await store.get_details(43)
        breakdown = PriceBreakdown.from_price(booking.ticket_price, PaymentRates())

        message = build_payment_confirmation(booking, breakdown, None, SENDER)

        assert list(message.iter_attachments()) == []
        assert "N/A" in _html(message)


class TestBookingNotifier:

    @pytest.mark.asyncio
    async def test_senders_from_config(self, store, transport):
        config = BookingEngineConfig(mail_from_updates="updates@example.org")
        notifier = BookingNotifier(transport, config)
        await seed_booking(store, 5, BookingStatus.CONFIRMED)

        await notifier.send_status_update(await store.get_details(5), BookingStatus.PENDING)

        assert transport.sent[0]["From"] == "updates@example.org"


class TestSmtpEmailTransport:

    @pytest.fixture
    def message(self):
        from email.message import EmailMessage
        message = EmailMessage()
        message["To"] = "ada@example.com"
        message["Subject"] = "Hello"
        message.set_content("body")
        return message

    @pytest.mark.asyncio
    async def test_not_configured(self, message):
        transport = SmtpEmailTransport(host=None)
        with pytest.raises(EmailDeliveryError):
            await transport.send(message)

    @pytest.mark.asyncio
    async def test_starttls_and_login(self, message):
        smtp = MagicMock()
        smtp.__enter__.return_value = smtp

        with patch("skybooker.services.notifications.smtplib.SMTP", return_value=smtp) as smtp_cls:
            transport = SmtpEmailTransport(host="smtp.example.com", user="bot", password="secret")
            await transport.send(message)

        smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=10)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("bot", "secret")
        smtp.send_message.assert_called_once_with(message)

    @pytest.mark.asyncio
    async def test_ssl(self, message):
        smtp = MagicMock()
        smtp.__enter__.return_value = smtp

        with patch("skybooker.services.notifications.smtplib.SMTP_SSL", return_value=smtp) as smtp_cls:
            transport = SmtpEmailTransport(host="smtp.example.com", port=465, use_ssl=True)
            await transport.send(message)

        smtp_cls.assert_called_once_with("smtp.example.com", 465, timeout=10)
        smtp.starttls.assert_not_called()
        smtp.login.assert_not_called()

    @pytest.mark.asyncio
    async def test_smtp_failure_wrapped(self, message):
        smtp = MagicMock()
        smtp.__enter__.return_value = smtp
        smtp.send_message.side_effect = smtplib.SMTPRecipientsRefused({})

        with patch("skybooker.services.notifications.smtplib.SMTP", return_value=smtp):
            transport = SmtpEmailTransport(host="smtp.example.com")
            with pytest.raises(EmailDeliveryError):
                await transport.send(message)

    def test_from_config(self):
        config = BookingEngineConfig(smtp_host="mail.local", smtp_port=2525, smtp_starttls=False)
        transport = SmtpEmailTransport.from_config(config)
        assert transport.host == "mail.local"
        assert transport.port == 2525
        assert transport.starttls is False
