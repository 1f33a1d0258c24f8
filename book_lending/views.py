from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from book_lending.book import Book
from book_lending.catalog import Catalog
from book_lending.errors import NotFoundError
from book_lending.lending import LendingEngine
from book_lending.loan import LoanHistoryEntry


@dataclass
class BookView:
    id: int
    isbn: str
    title: str
    author: str
    available: bool
    overdue: bool = False
    expected_return_date: Optional[datetime] = None
    borrow_history: Optional[List[LoanHistoryEntry]] = field(default=None)


def book_view(conn: sqlite3.Connection, book: Book, lending: LendingEngine,
              with_history: bool = False) -> BookView:
    """Read view of one copy; overdue data only appears while the copy is out."""
    view = BookView(
        id=book.id,
        isbn=book.isbn,
        title=book.title,
        author=book.author,
        available=book.available,
    )
    if not book.available:
        detail = lending.loan_detail_on(conn, book.id)
        if detail is not None:
            view.overdue = detail.overdue
            view.expected_return_date = detail.expected_return_date
    if with_history:
        view.borrow_history = lending.history_on(conn, book.id)
    return view


def list_book_views(catalog: Catalog, lending: LendingEngine, isbn: Optional[str] = None,
                    with_history: bool = False) -> List[BookView]:
    """Build every view from one snapshot so books and loans agree with each other."""
    with catalog.db.snapshot() as conn:
        if isbn is not None:
            books = catalog.fetch_by_isbn(conn, isbn)[:1]
            if not books:
                raise NotFoundError(f"Book not found with ISBN: {isbn}")
        else:
            books = catalog.fetch_all(conn)
        return [book_view(conn, book, lending, with_history) for book in books]
