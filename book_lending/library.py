from datetime import datetime, timedelta
from typing import Callable, List, Optional

from book_lending.book import Book
from book_lending.borrower import Borrower
from book_lending.borrowers import BorrowerRegistry
from book_lending.catalog import Catalog
from book_lending.database import Database
from book_lending.lending import LendingEngine, utc_now
from book_lending.loan import BookBorrow
from book_lending.views import BookView, list_book_views


class Library:
    """Wires the catalog, borrower registry and lending engine around one store handle."""

    def __init__(self, db_file: Optional[str] = None, clock: Callable[[], datetime] = utc_now,
                 loan_period: Optional[timedelta] = None, timeout: Optional[float] = None) -> None:
        self.db = Database(db_file, timeout=timeout)
        self.db.initialize()

        self.catalog = Catalog(self.db)
        self.borrowers = BorrowerRegistry(self.db)
        self.lending = LendingEngine(self.db, self.catalog, self.borrowers, clock=clock, loan_period=loan_period)

    # ------------------------- Books ------------------------- #
    def add_book(self, isbn: str, title: str, author: str) -> Book:
        return self.catalog.register_book(isbn, title, author)

    def list_books(self, isbn: Optional[str] = None, with_history: bool = False) -> List[BookView]:
        return list_book_views(self.catalog, self.lending, isbn=isbn, with_history=with_history)

    # ------------------------- Borrowers ------------------------- #
    def register_borrower(self, name: str, email: str) -> Borrower:
        return self.borrowers.register(name, email)

    def list_borrowers(self) -> List[Borrower]:
        return self.borrowers.list_all()

    def get_borrower(self, borrower_id: int) -> Borrower:
        return self.borrowers.get_by_id(borrower_id)

    # ------------------------- Lending ------------------------- #
    def borrow(self, book_id: int, borrower_id: int) -> BookBorrow:
        return self.lending.borrow(borrower_id, book_id)

    def return_book(self, book_id: int, borrower_id: int) -> BookBorrow:
        return self.lending.return_book(borrower_id, book_id)

    def active_loans(self, borrower_id: int) -> List[BookBorrow]:
        return self.lending.active_loans_for_borrower(borrower_id)
