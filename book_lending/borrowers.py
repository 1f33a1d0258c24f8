import logging
import sqlite3
from typing import List, Optional

from book_lending.borrower import Borrower
from book_lending.database import Database
from book_lending.errors import ConflictError, InvalidArgumentError, NotFoundError
from book_lending.validators import EmailValidator, TextValidator

logger = logging.getLogger(__name__)


class BorrowerRegistry:
    """Owns borrower rows. Emails are unique, enforced by the store's UNIQUE constraint."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def register(self, name: str, email: str) -> Borrower:
        if TextValidator.is_blank(email):
            raise InvalidArgumentError("Email is mandatory for registering a borrower.")
        if not EmailValidator.is_valid_email(email):
            raise InvalidArgumentError("Valid email is required")
        if TextValidator.is_blank(name):
            raise InvalidArgumentError("Name is required")

        borrower = Borrower(name=name, email=email)
        try:
            with self.db.transaction() as conn:
                existing = conn.execute(
                    "SELECT id FROM borrowers WHERE email = ?", (borrower.email,)
                ).fetchone()
                if existing is not None:
                    raise ConflictError("Email already registered")
                cursor = conn.execute(
                    "INSERT INTO borrowers (name, email) VALUES (?, ?)",
                    (borrower.name, borrower.email),
                )
                borrower.id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise ConflictError("Email already registered") from e

        logger.info(f"Registered borrower {borrower.id}: {borrower}")
        return borrower

    def fetch(self, conn: sqlite3.Connection, borrower_id: int) -> Optional[Borrower]:
        row = conn.execute(
            "SELECT id, name, email FROM borrowers WHERE id = ?", (borrower_id,)
        ).fetchone()
        return Borrower.from_dict(dict(row)) if row is not None else None

    def get_by_id(self, borrower_id: int) -> Borrower:
        with self.db.read() as conn:
            borrower = self.fetch(conn, borrower_id)
        if borrower is None:
            raise NotFoundError(f"Borrower not found with id: {borrower_id}")
        return borrower

    def list_all(self) -> List[Borrower]:
        with self.db.read() as conn:
            rows = conn.execute("SELECT id, name, email FROM borrowers ORDER BY id").fetchall()
        return [Borrower.from_dict(dict(row)) for row in rows]
