import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from book_lending.borrower import Borrower
from book_lending.loan import BookBorrow
from book_lending.views import BookView

# Environment variable that controls CLI output mode.
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LENDING_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _fmt_date(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


def _book_payload(view: BookView) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": view.id,
        "isbn": view.isbn,
        "title": view.title,
        "author": view.author,
        "available": view.available,
        "overdue": view.overdue,
        "expected_return_date": view.expected_return_date,
    }
    if view.borrow_history is not None:
        payload["borrow_history"] = [vars(entry) for entry in view.borrow_history]
    return payload


def _book_status(view: BookView) -> str:
    if view.available:
        return "available"
    status = f"borrowed, due {_fmt_date(view.expected_return_date)}"
    return f"{status}, OVERDUE" if view.overdue else status


def print_books(views: List[BookView]) -> None:
    """Print book views in the current output mode.
    - plain: 'ID - ISBN - Title by Author [status]' lines, history indented below
    - json: JSON array
    - rich: Rich table
    """
    if not views:
        print("No books in library.")
        return

    mode = get_output_mode()
    if mode == "json":
        print(json.dumps([_book_payload(v) for v in views], ensure_ascii=False, default=str))
    elif mode == "rich":
        table = Table(title="Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("ISBN", no_wrap=True)
        table.add_column("Title")
        table.add_column("Author")
        table.add_column("Status")
        for v in views:
            style = "red" if v.overdue else ("green" if v.available else "yellow")
            table.add_row(str(v.id), v.isbn, v.title, v.author, f"[{style}]{_book_status(v)}[/]")
        _console.print(table)
    else:
        for v in views:
            print(f"{v.id} - {v.isbn} - {v.title} by {v.author} [{_book_status(v)}]")
            for entry in v.borrow_history or []:
                returned = _fmt_date(entry.return_date) if entry.return_date else "active"
                print(f"    loan {entry.borrow_id}: {entry.borrower_name} <{entry.borrower_email}> "
                      f"{_fmt_date(entry.borrow_date)} -> {returned}")


def print_borrowers(borrowers: List[Borrower]) -> None:
    if not borrowers:
        print("No borrowers registered.")
        return

    mode = get_output_mode()
    if mode == "json":
        print(json.dumps([b.to_dict() for b in borrowers], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="Borrowers", header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Name")
        table.add_column("Email")
        for b in borrowers:
            table.add_row(str(b.id), b.name, b.email)
        _console.print(table)
    else:
        for b in borrowers:
            print(f"{b.id} - {b.name} <{b.email}>")


def print_loan(loan: BookBorrow) -> None:
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps(loan.to_dict(), ensure_ascii=False, default=str))
        return

    if loan.active:
        line = (f"Loan {loan.id}: book {loan.book_id} borrowed by borrower {loan.borrower_id} "
                f"on {_fmt_date(loan.borrow_date)}")
    else:
        line = (f"Loan {loan.id}: book {loan.book_id} returned by borrower {loan.borrower_id} "
                f"on {_fmt_date(loan.return_date)}")
    if mode == "rich":
        _console.print(Panel.fit(line, border_style="blue"))
    else:
        print(line)
