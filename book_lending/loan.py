from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from book_lending.database import from_db_timestamp

LOAN_PERIOD = timedelta(days=14)


class LoanState(str, Enum):
    AVAILABLE = "AVAILABLE"
    BORROWED = "BORROWED"


class BookBorrow:
    """A loan of one book to one borrower. ``return_date`` is None while the loan is active."""

    def __init__(self, book_id: int, borrower_id: int, borrow_date: datetime,
                 return_date: datetime | None = None, id: int | None = None) -> None:
        self.id = id
        self.book_id = book_id
        self.borrower_id = borrower_id
        self.borrow_date = borrow_date
        self.return_date = return_date

    @property
    def active(self) -> bool:
        return self.return_date is None

    def expected_return_date(self, loan_period: timedelta = LOAN_PERIOD) -> datetime:
        return self.borrow_date + loan_period

    def is_overdue(self, now: datetime, loan_period: timedelta = LOAN_PERIOD) -> bool:
        return self.active and now > self.expected_return_date(loan_period)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "borrower_id": self.borrower_id,
            "borrow_date": self.borrow_date,
            "return_date": self.return_date,
        }

    @staticmethod
    def from_dict(data: dict) -> "BookBorrow":
        return BookBorrow(
            book_id=data["book_id"],
            borrower_id=data["borrower_id"],
            borrow_date=from_db_timestamp(data["borrow_date"]),
            return_date=from_db_timestamp(data.get("return_date")),
            id=data.get("id"),
        )


@dataclass
class LoanDetail:
    loan: BookBorrow
    expected_return_date: datetime
    overdue: bool


@dataclass
class LoanHistoryEntry:
    """A loan joined with the borrower's current name and email."""

    borrow_id: int
    borrower_id: int
    borrower_name: str
    borrower_email: str
    borrow_date: datetime
    return_date: datetime | None
