"""Lending engine: the borrow/return state machine.

A book is ``AVAILABLE`` when it has no active loan and ``BORROWED`` when it
has exactly one. The state is never stored on its own; the ``available`` flag
on the book row is kept in step with the loan rows inside the same
transaction, and a partial unique index on ``book_borrows`` makes a second
active loan for one book impossible at the store level.
"""
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from book_lending.borrowers import BorrowerRegistry
from book_lending.catalog import Catalog
from book_lending.config import settings
from book_lending.database import Database, to_db_timestamp
from book_lending.errors import IllegalStateError, NotFoundError
from book_lending.loan import BookBorrow, LoanDetail, LoanHistoryEntry, LoanState

logger = logging.getLogger(__name__)

_LOAN_COLUMNS = "id, book_id, borrower_id, borrow_date, return_date"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LendingEngine:
    """Owns loan rows and enforces the one-active-loan-per-book rule."""

    def __init__(self, db: Database, catalog: Catalog, borrowers: BorrowerRegistry,
                 clock: Callable[[], datetime] = utc_now,
                 loan_period: Optional[timedelta] = None) -> None:
        self.db = db
        self.catalog = catalog
        self.borrowers = borrowers
        self.clock = clock
        self.loan_period = loan_period or timedelta(days=settings.loan_period_days)

    def _now(self) -> datetime:
        now = self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now

    @staticmethod
    def _find_active(conn: sqlite3.Connection, book_id: int) -> Optional[BookBorrow]:
        row = conn.execute(
            f"SELECT {_LOAN_COLUMNS} FROM book_borrows WHERE book_id = ? AND return_date IS NULL",
            (book_id,),
        ).fetchone()
        return BookBorrow.from_dict(dict(row)) if row is not None else None

    # ------------------------- Transitions ------------------------- #
    def borrow(self, borrower_id: int, book_id: int) -> BookBorrow:
        """AVAILABLE -> BORROWED. Check and mutation commit together or not at all."""
        try:
            with self.db.transaction() as conn:
                book = self.catalog.fetch(conn, book_id)
                if book is None:
                    raise NotFoundError("Book not found")
                if self.borrowers.fetch(conn, borrower_id) is None:
                    raise NotFoundError("Borrower not found")
                if not book.available:
                    raise IllegalStateError("Book is not available for borrowing")
                if self._find_active(conn, book_id) is not None:
                    raise IllegalStateError("Book is already borrowed")

                self.catalog.set_available(conn, book, False)
                loan = BookBorrow(book_id=book_id, borrower_id=borrower_id, borrow_date=self._now())
                cursor = conn.execute(
                    "INSERT INTO book_borrows (book_id, borrower_id, borrow_date) VALUES (?, ?, ?)",
                    (loan.book_id, loan.borrower_id, to_db_timestamp(loan.borrow_date)),
                )
                loan.id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            # Active-loan index rejected the insert.
            raise IllegalStateError("Book is already borrowed") from e
        except IllegalStateError as e:
            logger.warning(f"Borrow of book {book_id} by borrower {borrower_id} rejected: {e.message}")
            raise

        logger.info(f"Book {book_id} borrowed by borrower {borrower_id} (loan {loan.id})")
        return loan

    def return_book(self, borrower_id: int, book_id: int) -> BookBorrow:
        """BORROWED -> AVAILABLE. Only the borrowing borrower may return the book."""
        try:
            with self.db.transaction() as conn:
                loan = self._find_active(conn, book_id)
                if loan is None:
                    raise NotFoundError("No active borrow record found")
                if loan.borrower_id != borrower_id:
                    raise IllegalStateError("Book was not borrowed by this borrower")

                book = self.catalog.fetch(conn, book_id)
                self.catalog.set_available(conn, book, True)
                loan.return_date = self._now()
                conn.execute(
                    "UPDATE book_borrows SET return_date = ? WHERE id = ?",
                    (to_db_timestamp(loan.return_date), loan.id),
                )
        except IllegalStateError as e:
            logger.warning(f"Return of book {book_id} by borrower {borrower_id} rejected: {e.message}")
            raise

        logger.info(f"Book {book_id} returned by borrower {borrower_id} (loan {loan.id})")
        return loan

    # ------------------------- Queries ------------------------- #
    def state_of(self, book_id: int) -> LoanState:
        with self.db.read() as conn:
            if self.catalog.fetch(conn, book_id) is None:
                raise NotFoundError("Book not found")
            active = self._find_active(conn, book_id)
        return LoanState.BORROWED if active is not None else LoanState.AVAILABLE

    def active_loan_detail(self, book_id: int) -> LoanDetail:
        with self.db.read() as conn:
            detail = self.loan_detail_on(conn, book_id)
        if detail is None:
            raise NotFoundError("No active borrow record found")
        return detail

    def loan_detail_on(self, conn: sqlite3.Connection, book_id: int) -> Optional[LoanDetail]:
        loan = self._find_active(conn, book_id)
        if loan is None:
            return None
        return LoanDetail(
            loan=loan,
            expected_return_date=loan.expected_return_date(self.loan_period),
            overdue=loan.is_overdue(self._now(), self.loan_period),
        )

    def history(self, book_id: int) -> List[LoanHistoryEntry]:
        """Every loan of the book, oldest first, with the borrower's current details."""
        with self.db.read() as conn:
            return self.history_on(conn, book_id)

    def history_on(self, conn: sqlite3.Connection, book_id: int) -> List[LoanHistoryEntry]:
        rows = conn.execute(
            """
            SELECT bb.id, bb.book_id, bb.borrower_id, bb.borrow_date, bb.return_date,
                   b.name AS borrower_name, b.email AS borrower_email
            FROM book_borrows bb
            JOIN borrowers b ON b.id = bb.borrower_id
            WHERE bb.book_id = ?
            ORDER BY bb.borrow_date, bb.id
            """,
            (book_id,),
        ).fetchall()

        history = []
        for row in rows:
            loan = BookBorrow.from_dict(dict(row))
            history.append(LoanHistoryEntry(
                borrow_id=loan.id,
                borrower_id=loan.borrower_id,
                borrower_name=row["borrower_name"],
                borrower_email=row["borrower_email"],
                borrow_date=loan.borrow_date,
                return_date=loan.return_date,
            ))
        return history

    def active_loans_for_borrower(self, borrower_id: int) -> List[BookBorrow]:
        with self.db.read() as conn:
            if self.borrowers.fetch(conn, borrower_id) is None:
                raise NotFoundError(f"Borrower not found with id: {borrower_id}")
            rows = conn.execute(
                f"""
                SELECT {_LOAN_COLUMNS} FROM book_borrows
                WHERE borrower_id = ? AND return_date IS NULL
                ORDER BY borrow_date, id
                """,
                (borrower_id,),
            ).fetchall()
        return [BookBorrow.from_dict(dict(row)) for row in rows]
