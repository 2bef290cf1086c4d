import json
import os
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from book import Book
from borrowing import is_overdue
from user import BorrowRecord, User

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode

def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()

def format_due_date(due_date: int) -> str:
    return datetime.fromtimestamp(due_date).strftime("%Y-%m-%d")

def book_table(books: List[Book], title: str = "📚 Books") -> Table:
    table = Table(title=title, show_lines=True, header_style="bold cyan")
    table.add_column("ISBN", style="magenta", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Author", style="white")
    table.add_column("Genre", style="white")
    table.add_column("Year", justify="right")
    table.add_column("Available", justify="center")
    for b in books:
        table.add_row(
            escape(b.isbn),
            escape(b.title),
            escape(b.author),
            escape(b.genre),
            str(b.publication_year),
            "[green]Yes[/]" if b.available else "[red]No[/]",
        )
    return table

def book_panel(book: Book, title: str = "🔍 Book Found") -> Panel:
    return Panel.fit(escape(book.describe()), title=title, border_style="green")

def account_panel(user: User, loans: List[Tuple[Book, BorrowRecord]], now: Optional[float] = None) -> Panel:
    lines = [
        f"[bold]User ID:[/] {escape(user.user_id)}",
        f"[bold]Name:[/] {escape(user.name)}",
        f"[bold]Email:[/] {escape(user.email)}",
        f"[bold]Books Borrowed:[/] {len(loans)}",
    ]
    if loans:
        lines.append("")
        lines.append("[bold]Borrowed Books:[/]")
        for book, record in loans:
            line = f"- {escape(book.title)} (Due: {format_due_date(record.due_date)})"
            if is_overdue(record, now):
                line += " [red]OVERDUE[/]"
            lines.append(line)
    else:
        lines.append("No books currently borrowed.")
    return Panel.fit("\n".join(lines), title="👤 My Account", border_style="blue")

def print_list_result(books: List[Book]) -> None:
    """Print a list of books according to the current output mode.
    - plain: 'ISBN - Title by Author' lines, or 'No books in library.'
    - json: JSON array in the HTTP API's book shape
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print("No books in library.")
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        _console.print(book_table(books))
    else:
        for b in books:
            status = "available" if b.available else "borrowed"
            print(f"{b.isbn} - {b.title} by {b.author} [{status}]")

def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics according to the current output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(
            f"[bold]{key.replace('_', ' ').title()}:[/] {value}" for key, value in stats.items()
        )
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for key, value in stats.items():
            print(f"{key.replace('_', ' ').title()}: {value}")
