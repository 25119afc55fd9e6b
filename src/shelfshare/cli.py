"""Command-line interface for shelfshare.

Built with Typer for commands and Rich for output.
"""

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import get_config
from .db import get_db
from .errors import MarketplaceError
from .lending.schemas import LoanRole, LoanStatus, LoanStatusUpdate, TargetStatus
from .logging_config import configure_logging

# Create the main app
app = typer.Typer(
    name="shelfshare",
    help="Peer-to-peer book lending marketplace.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
books_app = typer.Typer(help="Browse book listings.")
app.add_typer(books_app, name="books")

loans_app = typer.Typer(help="Inspect and move loans.")
app.add_typer(loans_app, name="loans")

users_app = typer.Typer(help="Inspect members.")
app.add_typer(users_app, name="users")

# Rich console for pretty output
console = Console()


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def format_rating(rating: float, count: int) -> str:
    if not count:
        return "-"
    return f"{rating:.1f} ({count})"


def format_book_table(books: list, title: str = "Books") -> Table:
    """Create a rich table for displaying listings."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Title", style="cyan", no_wrap=False, max_width=40)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Condition")
    table.add_column("Daily", justify="right")
    table.add_column("Location", max_width=20)
    table.add_column("Owner")

    for book in books:
        table.add_row(
            book.id[:8],
            book.title,
            book.author,
            book.condition,
            f"{book.daily_rate:.2f}",
            book.location,
            book.owner.username if book.owner else "-",
        )

    return table


def format_loan_table(loans: list, title: str = "Loans") -> Table:
    """Create a rich table for displaying loans."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Book", style="cyan", max_width=35)
    table.add_column("Borrower", style="green")
    table.add_column("Lender", style="green")
    table.add_column("Status", style="yellow")
    table.add_column("Dates")
    table.add_column("Total", justify="right")

    for loan in loans:
        status = loan.status
        if loan.is_overdue:
            status = f"[bold red]{status} (overdue)[/bold red]"
        table.add_row(
            loan.id[:8],
            loan.book.title if loan.book else "-",
            loan.borrower.username if loan.borrower else loan.borrower_id,
            loan.lender.username if loan.lender else loan.lender_id,
            status,
            f"{loan.start_at.date()} to {loan.end_at.date()}",
            f"{loan.total_amount:.2f}",
        )

    return table


def _resolve_user(identifier: str):
    from .users import UserManager

    user = UserManager(get_db()).find_user(identifier)
    if not user:
        print_error(f"No user found matching: {identifier}")
        raise typer.Exit(1)
    return user


# ============================================================================
# Top-level Commands
# ============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"shelfshare version {__version__}")


@app.command("init-db")
def init_db() -> None:
    """Create the database tables."""
    config = get_config()
    for problem in config.validate():
        print_warning(problem)

    db = get_db(str(config.db_path))
    db.create_tables()
    print_success(f"Database ready at {db.db_path}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port"),
    debug: bool = typer.Option(False, "--debug", help="Enable Flask debug mode"),
) -> None:
    """Run the HTTP API server."""
    from .api import run_server

    configure_logging()
    run_server(host=host, port=port, debug=debug)


# ============================================================================
# Books
# ============================================================================


@books_app.command("list")
def books_list(
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Free-text search"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g", help="Filter by genre"),
    location: Optional[str] = typer.Option(None, "--location", help="Filter by location"),
    page: int = typer.Option(1, "--page", help="Page number"),
    limit: int = typer.Option(12, "--limit", "-l", help="Books per page"),
) -> None:
    """List available books."""
    from pydantic import ValidationError as PydanticValidationError

    from .books import BookQuery, ListingManager

    try:
        query = BookQuery(search=search, genre=genre, location=location, page=page, limit=limit)
    except PydanticValidationError as e:
        print_error(str(e))
        raise typer.Exit(1)

    books, pagination = ListingManager(get_db()).search_books(query)
    if not books:
        console.print("[dim]No books found.[/dim]")
        return

    console.print(format_book_table(books, title="Available Books"))
    console.print(
        f"[dim]Page {pagination.current_page} of {pagination.total_pages} "
        f"({pagination.total_items} books)[/dim]"
    )


@books_app.command("show")
def books_show(
    book_id: str = typer.Argument(..., help="Book ID"),
) -> None:
    """Show a listing's details."""
    from .books import ListingManager

    try:
        book = ListingManager(get_db()).get_book(book_id)
    except MarketplaceError as e:
        print_error(e.message)
        raise typer.Exit(1)

    lines = [
        f"[bold]{book.title}[/bold]",
        f"by {book.author}",
        "",
        f"Genre: {book.genre}",
        f"Condition: {book.condition}",
        f"Location: {book.location}",
        f"Daily rate: {book.daily_rate:.2f}",
    ]
    if book.weekly_rate:
        lines.append(f"Weekly rate: {book.weekly_rate:.2f}")
    if book.monthly_rate:
        lines.append(f"Monthly rate: {book.monthly_rate:.2f}")
    if book.deposit:
        lines.append(f"Deposit: {book.deposit:.2f}")
    lines.append(f"Available: {'yes' if book.is_available else 'no'}")
    lines.append(f"Completed loans: {book.total_loans or 0}")
    if book.owner:
        lines.append(f"Owner: {book.owner.username}")
    if book.get_rules():
        lines.append("")
        lines.extend(f"- {rule}" for rule in book.get_rules())

    console.print(Panel("\n".join(lines), title="Book Details"))


# ============================================================================
# Loans
# ============================================================================


@loans_app.command("list")
def loans_list(
    user: str = typer.Option(..., "--user", "-u", help="Username or user ID"),
    role: LoanRole = typer.Option(LoanRole.ALL, "--role", "-r", help="Borrowing, lending or all"),
    status: Optional[LoanStatus] = typer.Option(None, "--status", "-s", help="Filter by status"),
) -> None:
    """List a member's loans."""
    from .lending import LendingManager

    member = _resolve_user(user)
    loans = LendingManager(get_db()).list_loans(member.id, role=role, status=status)
    if not loans:
        console.print("[dim]No loans found.[/dim]")
        return

    console.print(format_loan_table(loans, title=f"Loans for {member.username}"))


@loans_app.command("status")
def loans_status(
    loan_id: str = typer.Argument(..., help="Loan ID"),
    status: TargetStatus = typer.Argument(..., help="New status"),
    acting_user: str = typer.Option(..., "--as", help="Username or user ID making the change"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Notes to record"),
) -> None:
    """Move a loan to a new status."""
    from .lending import LendingManager

    member = _resolve_user(acting_user)
    try:
        loan = LendingManager(get_db()).update_status(
            loan_id, LoanStatusUpdate(status=status, notes=notes), member.id
        )
    except MarketplaceError as e:
        print_error(e.message)
        raise typer.Exit(1)

    print_success(f"Loan {loan.id[:8]} is now {loan.status}")


@loans_app.command("overdue")
def loans_overdue() -> None:
    """Show active loans past their end date."""
    from .lending import LendingManager

    report = LendingManager(get_db()).get_overdue_loans()
    if not report.loans:
        console.print("[green]No overdue loans![/green]")
        return

    table = Table(title="Overdue Loans", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", max_width=8)
    table.add_column("Book", style="cyan", max_width=35)
    table.add_column("Borrower", style="green")
    table.add_column("Lender", style="green")
    table.add_column("Due")
    table.add_column("Overdue", justify="right")

    for item in report.loans:
        table.add_row(
            item.id[:8],
            item.book_title,
            item.borrower,
            item.lender,
            str(item.end_date.date()),
            f"[bold red]{item.days_overdue}d[/bold red]",
        )

    console.print(table)
    console.print(f"\n[bold red]Warning: {report.total_overdue} loan(s) overdue![/bold red]")


# ============================================================================
# Users
# ============================================================================


@users_app.command("show")
def users_show(
    user: str = typer.Argument(..., help="Username or user ID"),
) -> None:
    """Show a member's profile."""
    from .users import UserManager

    member = _resolve_user(user)
    profile = UserManager(get_db()).get_profile(member.id)

    lines = [
        f"[bold]{member.full_name}[/bold] (@{member.username})",
        f"Location: {member.location or '-'}",
        f"Verified: {'yes' if member.is_verified else 'no'}",
        f"Rating: {format_rating(member.average_rating, member.total_ratings)}",
        "",
        f"Books listed: {profile.stats.total_books} ({profile.stats.available_books} available)",
        f"Loans: {profile.stats.total_loans}",
    ]
    if member.bio:
        lines.extend(["", member.bio])

    console.print(Panel("\n".join(lines), title="Member"))


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
