import logging
import os
import subprocess
import sys
from typing import NoReturn, Optional

import typer
from rich.console import Console

from book_lending.config import settings
from book_lending.errors import LendingError
from book_lending.library import Library
from book_lending.ui_helpers import print_books, print_borrowers, print_loan, set_output_mode

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.WARNING)

console = Console()

app = typer.Typer(help="Book lending CLI")


def _library(ctx: typer.Context) -> Library:
    if ctx.obj is None:
        ctx.obj = Library(ctx.meta.get("db_file"))
    return ctx.obj


def _fail(error: LendingError) -> NoReturn:
    print(f"Error: {error.message}")
    raise typer.Exit(code=1)


@app.callback()
def _global_options(
    ctx: typer.Context,
    output: str = typer.Option("plain", "--output", "-o", help="Output format: plain | json | rich"),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file (default: LIBRARY_DB_FILE)"),
):
    """Global options shared by every command."""
    set_output_mode(output)
    ctx.meta["db_file"] = db or settings.database_file


@app.command("add-book")
def cli_add_book(ctx: typer.Context, isbn: str, title: str, author: str):
    """Register a new copy of a book."""
    try:
        book = _library(ctx).add_book(isbn, title, author)
    except LendingError as e:
        _fail(e)
    print(f"Registered book {book.id}: {book.title} by {book.author} (ISBN: {book.isbn})")


@app.command("list-books")
def cli_list_books(
    ctx: typer.Context,
    isbn: Optional[str] = typer.Option(None, "--isbn", help="Only the first copy with this ISBN"),
    history: bool = typer.Option(False, "--history", help="Include borrow history"),
):
    """List books with their lending status."""
    try:
        views = _library(ctx).list_books(isbn=isbn, with_history=history)
    except LendingError as e:
        _fail(e)
    print_books(views)


@app.command("register-borrower")
def cli_register_borrower(ctx: typer.Context, name: str, email: str):
    """Register a new borrower."""
    try:
        borrower = _library(ctx).register_borrower(name, email)
    except LendingError as e:
        _fail(e)
    print(f"Registered borrower {borrower.id}: {borrower.name} <{borrower.email}>")


@app.command("list-borrowers")
def cli_list_borrowers(ctx: typer.Context):
    """List registered borrowers."""
    print_borrowers(_library(ctx).list_borrowers())


@app.command("borrow")
def cli_borrow(ctx: typer.Context, book_id: int, borrower_id: int):
    """Lend a book to a borrower."""
    try:
        loan = _library(ctx).borrow(book_id, borrower_id)
    except LendingError as e:
        _fail(e)
    print_loan(loan)


@app.command("return")
def cli_return(ctx: typer.Context, book_id: int, borrower_id: int):
    """Take a book back from the borrower who has it."""
    try:
        loan = _library(ctx).return_book(book_id, borrower_id)
    except LendingError as e:
        _fail(e)
    print_loan(loan)


@app.command("serve")
def cli_serve(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
):
    """Start the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    env = dict(os.environ, LIBRARY_DB_FILE=ctx.meta["db_file"])
    args = [
        sys.executable,
        "-m", "uvicorn",
        "book_lending.api:app",
        "--host", host,
        "--port", str(port),
    ]
    try:
        subprocess.run(args, env=env)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] `uvicorn` could not be started. Make sure it is installed.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
