"""Command-line interface for circulation.

Built with Typer for commands and Rich for output. Every lending rule
lives in the core; this module only parses arguments and renders results.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .clock import ensure_utc
from .config import get_config
from .db import get_db
from .db.schemas import ItemCreate, SearchField
from .errors import LendingError

# Create the main app
app = typer.Typer(
    name="circulation",
    help="Lend items with limited copies, track due dates and penalties.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
item_app = typer.Typer(help="Manage catalog items and their copies.")
app.add_typer(item_app, name="item")

# Rich console for pretty output
console = Console()


# ============================================================================
# Helper Functions
# ============================================================================


def setup_logging(level: str) -> None:
    """Send library logs through Rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def get_service():
    """Get the lending service on the global database."""
    from .lending import get_lending_service

    return get_lending_service()


def fail(error: LendingError) -> None:
    """Report a lending error and exit non-zero."""
    print_error(str(error))
    raise typer.Exit(1)


def format_instant(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M")


def format_state(state: str) -> str:
    styles = {
        "active": "[green]active[/green]",
        "pending_payment": "[bold red]pending payment[/bold red]",
        "returned": "[dim]returned[/dim]",
    }
    return styles.get(state, state)


def format_item_table(items: list, title: str = "Items") -> Table:
    """Create a rich table for displaying items."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="cyan", no_wrap=False, max_width=40)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Genre")
    table.add_column("Available", justify="center")

    for item in items:
        available = f"{item.available_copies}/{item.total_copies}"
        if not item.is_available:
            available = f"[red]{available}[/red]"
        table.add_row(
            item.id,
            item.title,
            item.author or "-",
            item.genre or "-",
            available,
        )

    return table


def format_loan_table(loans: list, title: str = "Loans") -> Table:
    """Create a rich table for displaying loans."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Item", style="cyan", max_width=30)
    table.add_column("Borrower")
    table.add_column("Checked out")
    table.add_column("Due")
    table.add_column("State")
    table.add_column("Penalty", justify="right")

    for loan in loans:
        penalty = f"{loan.penalty_snapshot:.2f}" if loan.penalty_snapshot is not None else "-"
        table.add_row(
            loan.id,
            loan.item_title or loan.item_id,
            loan.borrower_id,
            format_instant(loan.checkout_at),
            format_instant(loan.due_at),
            format_state(loan.state.value),
            penalty,
        )

    return table


def parse_due(due: Optional[str], days: Optional[int]) -> datetime:
    """Resolve --due / --days into a due instant."""
    if due and days is not None:
        raise typer.BadParameter("Use either --due or --days, not both")
    if due:
        try:
            return ensure_utc(datetime.fromisoformat(due))
        except ValueError:
            raise typer.BadParameter(f"Invalid due date: {due} (expected YYYY-MM-DD[THH:MM])")
    loan_days = days if days is not None else get_config().default_loan_days
    return datetime.now().astimezone() + timedelta(days=loan_days)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Lend items with limited copies, track due dates and penalties."""
    try:
        config = get_config()
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    errors = config.validate()
    if errors:
        for error in errors:
            print_error(error)
        raise typer.Exit(1)

    setup_logging("DEBUG" if verbose else config.log_level)


# ============================================================================
# Item Commands
# ============================================================================


@item_app.command("add")
def item_add(
    title: str = typer.Argument(..., help="Item title (must be unique)"),
    copies: int = typer.Option(1, "--copies", "-c", help="Number of copies owned"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Author"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g", help="Genre"),
    published: Optional[str] = typer.Option(
        None, "--published", "-p", help="Publication date (YYYY-MM-DD)"
    ),
) -> None:
    """Add an item to the catalog."""
    from pydantic import ValidationError

    db = get_db()

    try:
        data = ItemCreate(
            title=title,
            author=author,
            genre=genre,
            published_date=date.fromisoformat(published) if published else None,
            total_copies=copies,
        )
    except (ValidationError, ValueError) as e:
        print_error(f"Invalid item: {e}")
        raise typer.Exit(1)

    try:
        item = db.create_item(data)
    except LendingError as e:
        fail(e)

    print_success(f"Added '{item.title}' with {item.total_copies} copies")
    console.print(f"[dim]ID: {item.id}[/dim]")


@item_app.command("list")
def item_list(
    available: bool = typer.Option(False, "--available", help="Only items with a copy on the shelf"),
) -> None:
    """List catalog items."""
    db = get_db()
    items = db.list_items(available_only=available)

    if not items:
        console.print("[dim]No items found.[/dim]")
        return

    console.print(format_item_table(items, title="Available Items" if available else "All Items"))


@item_app.command("show")
def item_show(item_id: str = typer.Argument(..., help="Item ID")) -> None:
    """Show an item and its loans."""
    service = get_service()
    item = service.get_item(item_id)
    if not item:
        print_error(f"Item not found: {item_id}")
        raise typer.Exit(1)

    console.print(f"[bold cyan]{item.title}[/bold cyan]")
    if item.author:
        console.print(f"Author: {item.author}")
    if item.genre:
        console.print(f"Genre: {item.genre}")
    console.print(f"Copies: {item.available_copies} of {item.total_copies} available")

    loans = service.lifecycle.list_loans(item_id=item.id)
    if loans:
        console.print(format_loan_table(loans, title="Loans"))


@item_app.command("search")
def item_search(
    query: str = typer.Argument(..., help="Search text"),
    by: SearchField = typer.Option(SearchField.TITLE, "--by", "-b", help="Field to search"),
    limit: int = typer.Option(20, "--limit", "-l", help="Max results"),
) -> None:
    """Search items by title, author or genre."""
    db = get_db()
    items = db.search_items(query, search_by=by, limit=limit)

    if not items:
        console.print(f"[dim]No items found matching: {query}[/dim]")
        return

    console.print(format_item_table(items, title=f"Search: {query}"))


@item_app.command("copies")
def item_copies(
    item_id: str = typer.Argument(..., help="Item ID"),
    total: int = typer.Argument(..., help="New number of copies owned"),
) -> None:
    """Change the number of copies owned."""
    service = get_service()
    try:
        item = service.ledger.adjust_total_copies(item_id, total)
    except LendingError as e:
        fail(e)

    print_success(
        f"'{item.title}' now has {item.total_copies} copies "
        f"({item.available_copies} available)"
    )


@item_app.command("delete")
def item_delete(
    item_id: str = typer.Argument(..., help="Item ID"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
) -> None:
    """Delete an item that has never been lent."""
    db = get_db()
    item = db.get_item(item_id)
    if not item:
        print_error(f"Item not found: {item_id}")
        raise typer.Exit(1)

    if not force and not typer.confirm(f"Delete '{item.title}'?"):
        console.print("[dim]Cancelled[/dim]")
        return

    try:
        db.delete_item(item_id)
    except LendingError as e:
        fail(e)

    print_success(f"Deleted '{item.title}'")


# ============================================================================
# Lending Commands
# ============================================================================


@app.command()
def checkout(
    item_id: str = typer.Argument(..., help="Item ID to borrow"),
    borrower: str = typer.Argument(..., help="Borrower ID"),
    due: Optional[str] = typer.Option(None, "--due", "-d", help="Due date (YYYY-MM-DD[THH:MM])"),
    days: Optional[int] = typer.Option(None, "--days", help="Loan length in days"),
) -> None:
    """Check out a copy of an item."""
    due_at = parse_due(due, days)
    service = get_service()

    try:
        result = service.checkout(item_id, borrower, due_at)
    except LendingError as e:
        fail(e)

    if not result.checked_out:
        print_warning("No copies available")
        raise typer.Exit(2)

    print_success(f"Checked out to {borrower}")
    console.print(f"[dim]Loan ID: {result.loan_id}[/dim]")
    console.print(f"[dim]Due: {format_instant(due_at)}[/dim]")


@app.command("return")
def return_loan(loan_id: str = typer.Argument(..., help="Loan ID to return")) -> None:
    """Return a loan. Overdue loans stay open until the penalty is paid."""
    service = get_service()

    try:
        result = service.return_item(loan_id)
    except LendingError as e:
        fail(e)

    if result.returned:
        print_success("Loan returned")
    else:
        print_warning(f"Returned late: penalty of {result.penalty_due:.2f} due")
        console.print(f"[dim]Run 'circulation pay {result.loan_id}' once paid[/dim]")


@app.command()
def pay(loan_id: str = typer.Argument(..., help="Loan ID with a penalty due")) -> None:
    """Record payment of a penalty and close the loan."""
    service = get_service()

    try:
        loan = service.process_payment(loan_id)
    except LendingError as e:
        fail(e)

    print_success(f"Payment of {loan.penalty_snapshot:.2f} recorded; loan closed")


@app.command()
def loans(borrower: str = typer.Argument(..., help="Borrower ID")) -> None:
    """List a borrower's loans."""
    service = get_service()
    records = service.list_loans_for_borrower(borrower)

    if not records:
        console.print(f"[dim]No loans for {borrower}[/dim]")
        return

    console.print(format_loan_table(records, title=f"Loans - {borrower}"))


@app.command()
def overdue() -> None:
    """List active loans past their due date."""
    service = get_service()
    report = service.list_overdue_loans()

    if not report.loans:
        console.print("[dim]No overdue loans[/dim]")
        return

    table = Table(title="Overdue Loans", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Item", style="cyan", max_width=30)
    table.add_column("Borrower")
    table.add_column("Due")
    table.add_column("Days", justify="right")
    table.add_column("Penalty now", justify="right", style="red")

    for entry in report.loans:
        table.add_row(
            entry.loan.id,
            entry.loan.item_title or entry.loan.item_id,
            entry.loan.borrower_id,
            format_instant(entry.loan.due_at),
            str(entry.overdue_days),
            f"{entry.penalty_if_returned_now:.2f}",
        )

    console.print(table)
    console.print(f"[dim]{report.total_overdue} overdue[/dim]")


@app.command()
def audit(item_id: str = typer.Argument(..., help="Item ID")) -> None:
    """Check an item's copy counts against its open loans."""
    service = get_service()

    try:
        report = service.audit_item(item_id)
    except LendingError as e:
        fail(e)

    console.print(
        f"Total: {report.total_copies}  Available: {report.available_copies}  "
        f"On loan: {report.outstanding_loans}"
    )
    if report.consistent:
        print_success("Counts are consistent")
    else:
        print_error("Counts do not match open loans")
        raise typer.Exit(1)


# ============================================================================
# Version Command
# ============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"circulation version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
