import logging
from typing import Callable, Dict, List, Optional, TextIO, Tuple

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from book import Book
from config import settings
from exceptions import (
    LibraryError,
    NotAvailableError,
    PersistenceError,
)
from library import Library
from server import LibraryServer
from ui_helpers import (
    account_panel,
    book_panel,
    book_table,
    format_due_date,
    print_list_result,
    print_stats_result,
    set_output_mode,
)
from user import User
from validators import YearValidator

APP_NAME = settings.app_name

console = Console()


class _StrictStream:
    """Wraps an input stream so that end of input raises EOFError like ``input()`` does."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def readline(self) -> str:
        line = self._stream.readline()
        if not line:
            raise EOFError
        return line


class ConsoleApp:
    """Menu-driven console frontend.

    Two states: logged out (``current_user is None``) and logged in. Input is
    read outside of any catalog call, so the catalog lock is never held while
    waiting on the user.
    """

    def __init__(self, library: Library, console: Optional[Console] = None,
                 stream: Optional[TextIO] = None) -> None:
        self.library = library
        self.console = console if console is not None else Console()
        self.stream = _StrictStream(stream) if stream is not None else None
        self.current_user: Optional[User] = None

    # ------------------------- Menu loop ------------------------- #
    def _menu(self) -> List[Tuple[str, str, Callable[[], bool]]]:
        if self.current_user is None:
            return [
                ("1", "Browse Books", self.browse_books),
                ("2", "Search Books", self.search_books),
                ("3", "Register", self.register),
                ("4", "Login", self.login),
                ("5", "Exit", self.exit),
            ]
        return [
            ("1", "Browse Books", self.browse_books),
            ("2", "Search Books", self.search_books),
            ("3", "Borrow a Book", self.borrow_book),
            ("4", "Return a Book", self.return_book),
            ("5", "View My Account", self.view_account),
            ("6", "Logout", self.logout),
            ("7", "Exit", self.exit),
        ]

    def render_menu(self, items: List[Tuple[str, str, Callable[[], bool]]]) -> None:
        table = Table.grid(padding=(0, 2))
        table.add_column(justify="right", style="bold cyan", width=4)
        table.add_column(justify="left", style="white")
        for key, label, _ in items:
            table.add_row(f"[reverse]{key}[/]", label)

        subtitle = None
        if self.current_user is not None:
            subtitle = f"Logged in as: {escape(self.current_user.name)}"
        self.console.print(Panel(
            table,
            title=APP_NAME,
            subtitle=subtitle,
            border_style="cyan",
            box=box.HEAVY,
            padding=(1, 2),
        ))

    def run(self) -> None:
        while True:
            items = self._menu()
            self.render_menu(items)
            try:
                choice = self._ask("Enter your choice")
            except EOFError:
                self.console.print()
                break
            handlers: Dict[str, Callable[[], bool]] = {key: handler for key, _, handler in items}
            handler = handlers.get(choice)
            if handler is None:
                self.console.print("[yellow]Invalid choice. Please try again.[/]")
                continue
            try:
                keep_going = handler()
            except EOFError:
                break
            if not keep_going:
                break
            self.console.print()

    def _ask(self, label: str) -> str:
        return Prompt.ask(label, console=self.console, stream=self.stream).strip()

    # ------------------------- Commands ------------------------- #
    def browse_books(self) -> bool:
        books = self.library.list_books()
        if not books:
            self.console.print("[yellow]No books in the library.[/]")
        else:
            self.console.print(book_table(books, title="📚 All Books"))
        return True

    def search_books(self) -> bool:
        self.console.print(Panel.fit(
            "1. Search by Title\n2. Search by Author\n3. Search by Genre\n4. Keyword Search\n5. Back to Main Menu",
            title="🔎 Search Books",
            border_style="cyan",
        ))
        choice = self._ask("Enter your choice")
        if choice == "1":
            title = self._ask("Enter book title")
            book = self.library.find_book_by_title(title)
            if book:
                self.console.print(book_panel(book))
            else:
                self.console.print("[yellow]Book not found.[/]")
        elif choice == "2":
            author = self._ask("Enter author name")
            self._show_results(self.library.find_books_by_author(author),
                               f"Books by {author}", "No books found by this author.")
        elif choice == "3":
            genre = self._ask("Enter genre")
            self._show_results(self.library.find_books_by_genre(genre),
                               f"Books in {genre} genre", "No books found in this genre.")
        elif choice == "4":
            query = self._ask("Enter search term")
            self._show_results(self.library.search_books(query),
                               f"Search results for '{query}'", f"No books matching '{query}'.")
        elif choice != "5":
            self.console.print("[yellow]Invalid choice.[/]")
        return True

    def _show_results(self, books, title: str, empty_message: str) -> None:
        if not books:
            self.console.print(f"[yellow]{escape(empty_message)}[/]")
            return
        self.console.print(book_table(books, title=escape(title)))
        self.console.print(f"[dim]{len(books)} result(s) found[/]")

    def register(self) -> bool:
        user_id = self._ask("Enter user ID")
        if self.library.find_user_by_id(user_id):
            self.console.print("[red]User ID already exists.[/]")
            return True
        name = self._ask("Enter your name")
        email = self._ask("Enter your email")
        if self.library.find_user_by_email(email):
            self.console.print("[red]Email already registered.[/]")
            return True
        try:
            self.library.add_user(User(user_id, name, email))
        except PersistenceError as e:
            self.console.print(f"[yellow]Registered, but the library could not be saved:[/] {escape(str(e))}")
            return True
        except LibraryError as e:
            self.console.print(f"[bold red]Error:[/] {escape(str(e))}")
            return True
        self.console.print("[green]Registration successful! You can now login.[/]")
        return True

    def login(self) -> bool:
        email = self._ask("Enter your email")
        user = self.library.find_user_by_email(email)
        if user:
            self.current_user = user
            self.console.print(f"[green]Welcome back, {escape(user.name)}![/]")
        else:
            self.console.print("[yellow]User not found. Please register first.[/]")
        return True

    def logout(self) -> bool:
        self.current_user = None
        self.console.print("You have been logged out.")
        return True

    def borrow_book(self) -> bool:
        title = self._ask("Enter the title of the book you want to borrow")
        book = self.library.find_book_by_title(title)
        if not book:
            self.console.print("[yellow]Book not found.[/]")
            return True
        try:
            record = self.library.borrow_book(self.current_user.user_id, book.isbn)
        except NotAvailableError:
            self.console.print("[yellow]This book is currently not available.[/]")
            return True
        except PersistenceError as e:
            self.console.print(f"[yellow]Borrowed, but the library could not be saved:[/] {escape(str(e))}")
            return True
        except LibraryError as e:
            self.console.print(f"[bold red]Failed to borrow the book:[/] {escape(str(e))}")
            return True
        self.console.print(
            f"[green]You have successfully borrowed '{escape(book.title)}'. "
            f"Due date: {format_due_date(record.due_date)}[/]"
        )
        return True

    def return_book(self) -> bool:
        loans = self.library.borrowed_books(self.current_user.user_id)
        if not loans:
            self.console.print("[yellow]You have no books to return.[/]")
            return True

        self.console.print("Your borrowed books:")
        for i, (book, record) in enumerate(loans, 1):
            self.console.print(f"{i}. {escape(book.title)} (Due: {format_due_date(record.due_date)})")

        raw = self._ask("Enter the number of the book you want to return")
        if not raw.isdecimal() or not 1 <= int(raw) <= len(loans):
            self.console.print("[yellow]Invalid selection.[/]")
            return True
        book, _ = loans[int(raw) - 1]
        try:
            self.library.return_book(self.current_user.user_id, book.isbn)
        except PersistenceError as e:
            self.console.print(f"[yellow]Returned, but the library could not be saved:[/] {escape(str(e))}")
            return True
        except LibraryError as e:
            self.console.print(f"[bold red]Failed to return the book:[/] {escape(str(e))}")
            return True
        self.console.print(f"[green]You have successfully returned '{escape(book.title)}'.[/]")
        return True

    def view_account(self) -> bool:
        loans = self.library.borrowed_books(self.current_user.user_id)
        self.console.print(account_panel(self.current_user, loans))
        return True

    def exit(self) -> bool:
        self.console.print("[green]Goodbye![/]")
        return False


def run_server(library: Library, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Serve the HTTP API in the background until Enter is pressed."""
    server = LibraryServer(library, host=host, port=port)
    server.start()
    try:
        console.print(f"[green]Server running on [link={server.url}]{server.url}[/link][/]")
        console.print("Press Enter to stop the server...")
        try:
            input()
        except EOFError:
            pass
    finally:
        server.stop()
    console.print("Server stopped.")


# --- Typer CLI Application ---
app = typer.Typer(help="Library catalog manager", add_completion=False)


def _open_library(data_file: Optional[str]) -> Library:
    try:
        return Library(data_file=data_file)
    except PersistenceError as e:
        console.print(f"[bold red]Could not load the library:[/] {escape(str(e))}")
        raise typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def _global_options(
    ctx: typer.Context,
    server: bool = typer.Option(False, "--server", help="Serve the HTTP API until Enter is pressed"),
    data_file: Optional[str] = typer.Option(None, "--data-file", help="Path of the library data file"),
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
):
    """Without a sub-command, run the interactive menu (or the HTTP server with --server)."""
    if output:
        set_output_mode(output)
    ctx.obj = {"data_file": data_file}
    if ctx.invoked_subcommand is not None:
        return

    library = _open_library(data_file)
    if server:
        try:
            run_server(library)
        except RuntimeError as e:
            console.print(f"[bold red]{escape(str(e))}[/]")
            raise typer.Exit(code=1)
    else:
        ConsoleApp(library).run()


@app.command("list")
def cli_list(ctx: typer.Context):
    """List all books sorted by title."""
    lib = _open_library(ctx.obj["data_file"])
    print_list_result(lib.list_books())


@app.command("search")
def cli_search(ctx: typer.Context, query: str = typer.Argument(..., help="Substring of title, author or genre")):
    """Case-sensitive search over title, author and genre."""
    lib = _open_library(ctx.obj["data_file"])
    books = lib.search_books(query)
    if not books:
        print(f"No books matching '{query}'.")
        return
    print_list_result(books)


@app.command("find")
def cli_find(ctx: typer.Context, isbn: str):
    """Find a book by ISBN and show its details."""
    lib = _open_library(ctx.obj["data_file"])
    book = lib.find_book_by_isbn(isbn)
    if book:
        print("Book Found")
        print(book.describe())
    else:
        print(f"Book with ISBN {isbn} not found.")


@app.command("add-book")
def cli_add_book(
    ctx: typer.Context,
    title: str,
    author: str,
    isbn: str,
    genre: str,
    year: str = typer.Argument(..., help="Publication year"),
):
    """Add a book to the catalog."""
    lib = _open_library(ctx.obj["data_file"])
    publication_year = YearValidator.parse_year(year)
    if publication_year is None:
        print(f"Error: invalid publication year: {year}")
        raise typer.Exit(code=1)
    try:
        lib.add_book(Book(title, author, isbn, genre, publication_year))
    except PersistenceError as e:
        print(f"Added, but the library could not be saved: {e}")
        raise typer.Exit(code=1)
    except LibraryError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    print(f"Successfully added: {title} by {author}")


@app.command("stats")
def cli_stats(ctx: typer.Context):
    """Show library statistics."""
    lib = _open_library(ctx.obj["data_file"])
    print_stats_result(lib.get_statistics())


def run() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app()


if __name__ == "__main__":
    run()
