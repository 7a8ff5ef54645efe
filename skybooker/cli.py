"""
Admin command line for the booking engine.

Uses Typer for CLI and Rich for terminal output. Every mutating command
waits for its side effects (emails, receipts) before exiting.

Usage:
    skybooker-admin init-db
    skybooker-admin list --user 3
    skybooker-admin show 42
    skybooker-admin record-payment 7 --proof uploads/proofs/img1.png
    skybooker-admin set-status 99 Declined --reason "insufficient proof"
    skybooker-admin approve 42
    skybooker-admin receipt 42
"""

import asyncio
from typing import Optional, List, Callable, Awaitable, Any

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .database.config import DatabaseConfig
from .main import build_engine, configure_logging
from .models.booking import BookingModel
from .models.enums import BookingStatus
from .services.booking_service import BookingLifecycleService
from .services.errors import BookingEngineError, ReceiptGenerationError
from .utils.config import BookingEngineConfig, get_config

app = typer.Typer(
    help="Administer SkyBooker bookings",
    add_completion=False
)
console = Console()

STATUS_STYLES = {
    BookingStatus.PENDING: "yellow",
    BookingStatus.PENDING_PAYMENT: "cyan",
    BookingStatus.CONFIRMED: "blue",
    BookingStatus.PAID: "green",
    BookingStatus.DECLINED: "red",
    BookingStatus.COMPLETED: "magenta",
}


def _open_database(config: BookingEngineConfig) -> DatabaseConfig:
    db_config = DatabaseConfig(database_url=config.database_url, echo=config.debug)
    db_config.create_tables()
    return db_config


def _status_text(status: BookingStatus) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def _booking_table(bookings: List[BookingModel], title: str) -> Table:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Passenger")
    table.add_column("Flight", justify="right")
    table.add_column("Class")
    table.add_column("Price", justify="right")
    table.add_column("Status")
    table.add_column("Reference", style="dim")

    for booking in bookings:
        table.add_row(
            str(booking.booking_id),
            escape(booking.passenger_name),
            str(booking.flight_id),
            booking.travel_class.value,
            f"${booking.ticket_price:.2f}",
            _status_text(booking.status),
            escape(booking.payment_reference or "-"),
        )
    return table


def _booking_panel(booking: BookingModel) -> Panel:
    lines = [
        f"[bold]Booking {booking.booking_id}[/bold]  {_status_text(booking.status)}",
        f"Passenger: {escape(booking.passenger_name)} <{escape(booking.passenger_email)}> {escape(booking.passenger_phone)}",
        f"Flight: {booking.flight_id} ({booking.travel_class.value}, ${booking.ticket_price:.2f})",
        f"Booked: {booking.booking_date:%Y-%m-%d %H:%M}",
        f"Payment reference: {escape(booking.payment_reference or '-')}",
        f"Payment proof: {escape(booking.payment_proof or '-')}",
        f"Receipt: {escape(booking.receipt_path or '-')}",
    ]
    if booking.decline_reason:
        lines.append(f"Decline reason: [red]{escape(booking.decline_reason)}[/red]")
    return Panel("\n".join(lines), border_style="cyan", box=box.ROUNDED)


def _run(action: Callable[[BookingLifecycleService], Awaitable[Any]]) -> Any:
    """Build the engine, run ``action`` and wait for its side effects."""
    config = get_config()
    configure_logging(config)
    db_config = _open_database(config)
    service = build_engine(config, db_config)

    async def runner():
        try:
            return await action(service)
        finally:
            await service.dispatcher.drain()

    try:
        result = asyncio.run(runner())
    except (BookingEngineError, ReceiptGenerationError) as e:
        console.print(f"[red]❌ {escape(str(e))}[/red]")
        raise typer.Exit(code=1)
    finally:
        db_config.close()

    failed = sum(service.dispatcher.stats.failed.values())
    if failed:
        console.print(f"[yellow]⚠ {failed} side effect(s) failed; see the log for details[/yellow]")
    return result


@app.command("init-db")
def init_db():
    """Create the booking engine tables."""
    config = get_config()
    configure_logging(config)
    db_config = _open_database(config)
    db_config.close()
    console.print(f"[green]✓[/green] Tables ready in {config.database_url}")


@app.command("list")
def list_bookings(
    user_id: Optional[int] = typer.Option(None, "--user", "-u", help="Only bookings owned by this user")
):
    """List bookings, oldest first."""
    async def action(service: BookingLifecycleService):
        if user_id is None:
            return await service.store.list_all()
        return await service.list_user_bookings(user_id)

    bookings = _run(action)
    title = f"Bookings for user {user_id}" if user_id is not None else "All bookings"
    console.print(_booking_table(bookings, title))


@app.command()
def show(booking_id: int = typer.Argument(..., help="Booking ID")):
    """Show one booking."""
    booking = _run(lambda service: service.get_booking(booking_id))
    console.print(_booking_panel(booking))


@app.command("record-payment")
def record_payment(
    booking_id: int = typer.Argument(..., help="Booking ID"),
    proof: str = typer.Option(..., "--proof", "-p", help="Stored proof-of-payment file reference"),
    reference: Optional[str] = typer.Option(None, "--reference", "-r", help="Payment reference; generated if omitted")
):
    """Attach payment evidence on the customer's behalf."""
    booking = _run(lambda service: service.record_payment(booking_id, proof, reference))
    console.print(_booking_panel(booking))


@app.command("set-status")
def set_status(
    booking_id: int = typer.Argument(..., help="Booking ID"),
    status: str = typer.Argument(..., help="One of: " + ", ".join(s.value for s in BookingStatus)),
    reason: Optional[str] = typer.Option(None, "--reason", help="Decline reason (stored only for Declined)")
):
    """Set a booking's status directly."""
    booking = _run(lambda service: service.change_status(booking_id, status, reason))
    console.print(_booking_panel(booking))


@app.command()
def approve(booking_id: int = typer.Argument(..., help="Booking ID")):
    """Approve: Pending -> Confirmed, Pending Payment -> Paid."""
    booking = _run(lambda service: service.approve(booking_id))
    console.print(_booking_panel(booking))


@app.command()
def decline(
    booking_id: int = typer.Argument(..., help="Booking ID"),
    reason: Optional[str] = typer.Option(None, "--reason", help="Reason shown to the customer")
):
    """Decline a Pending or Pending Payment booking."""
    booking = _run(lambda service: service.decline(booking_id, reason))
    console.print(_booking_panel(booking))


@app.command()
def complete(booking_id: int = typer.Argument(..., help="Booking ID")):
    """Mark a Confirmed booking as Completed."""
    booking = _run(lambda service: service.complete(booking_id))
    console.print(_booking_panel(booking))


@app.command()
def receipt(booking_id: int = typer.Argument(..., help="Booking ID")):
    """Print the receipt reference, generating the receipt if missing."""
    receipt_ref = _run(lambda service: service.fetch_receipt(booking_id))
    console.print(f"[green]✓[/green] {escape(receipt_ref)}")


@app.command("config")
def show_config():
    """Show the effective configuration (secrets hidden)."""
    config = get_config()
    table = Table(title="⚙️  SkyBooker configuration", box=box.ROUNDED, show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    for name, value in config.model_dump().items():
        if "password" in name and value:
            value = "********"
        table.add_row(name, escape(str(value)))
    console.print(table)


if __name__ == "__main__":
    app()
