import logging
import sqlite3
from typing import List, Optional

from book_lending.book import Book
from book_lending.database import Database
from book_lending.errors import ConflictError, InvalidArgumentError, NotFoundError
from book_lending.validators import TextValidator

logger = logging.getLogger(__name__)

ISBN_CONFLICT_MESSAGE = (
    "A book with the same ISBN exists but with different title or author. "
    "Please enter valid Author and Title."
)

_BOOK_COLUMNS = "id, isbn, title, author, available, created_at"


class Catalog:
    """Owns book rows. Copies may share an ISBN as long as title and author agree."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def register_book(self, isbn: str, title: str, author: str) -> Book:
        for value, label in ((isbn, "ISBN"), (title, "Title"), (author, "Author")):
            if TextValidator.is_blank(value):
                raise InvalidArgumentError(f"{label} is required")

        book = Book(title=title, author=author, isbn=isbn)
        title_key = TextValidator.fold(book.title)
        author_key = TextValidator.fold(book.author)

        try:
            with self.db.transaction() as conn:
                rows = conn.execute(
                    "SELECT title_key, author_key FROM books WHERE isbn = ?", (book.isbn,)
                ).fetchall()
                for row in rows:
                    if row["title_key"] != title_key or row["author_key"] != author_key:
                        raise ConflictError(ISBN_CONFLICT_MESSAGE)

                cursor = conn.execute(
                    """
                    INSERT INTO books (isbn, title, author, title_key, author_key, available)
                    VALUES (?, ?, ?, ?, ?, 1)
                    """,
                    (book.isbn, book.title, book.author, title_key, author_key),
                )
                book.id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            # The consistency trigger fired: another writer got in first.
            raise ConflictError(ISBN_CONFLICT_MESSAGE) from e
        except ConflictError:
            logger.warning(f"Rejected ISBN {book.isbn}: title/author differ from existing copies")
            raise

        logger.info(f"Registered book {book.id}: {book}")
        return book

    def fetch(self, conn: sqlite3.Connection, book_id: int) -> Optional[Book]:
        """Look a book up on an open connection, e.g. inside a lending transaction."""
        row = conn.execute(f"SELECT {_BOOK_COLUMNS} FROM books WHERE id = ?", (book_id,)).fetchone()
        return Book.from_dict(dict(row)) if row is not None else None

    def set_available(self, conn: sqlite3.Connection, book: Book, available: bool) -> None:
        conn.execute("UPDATE books SET available = ? WHERE id = ?", (1 if available else 0, book.id))
        book.available = available

    def get_by_id(self, book_id: int) -> Book:
        with self.db.read() as conn:
            book = self.fetch(conn, book_id)
        if book is None:
            raise NotFoundError("Book not found")
        return book

    def get_by_isbn(self, isbn: str) -> Book:
        """Return the copy with the lowest id for ``isbn``."""
        books = self.list_by_isbn(isbn)
        if not books:
            raise NotFoundError(f"Book not found with ISBN: {isbn}")
        return books[0]

    def list_by_isbn(self, isbn: str) -> List[Book]:
        with self.db.read() as conn:
            return self.fetch_by_isbn(conn, isbn)

    def fetch_by_isbn(self, conn: sqlite3.Connection, isbn: str) -> List[Book]:
        rows = conn.execute(
            f"SELECT {_BOOK_COLUMNS} FROM books WHERE isbn = ? ORDER BY id", (isbn.strip(),)
        ).fetchall()
        return [Book.from_dict(dict(row)) for row in rows]

    def list_all(self) -> List[Book]:
        with self.db.read() as conn:
            return self.fetch_all(conn)

    def fetch_all(self, conn: sqlite3.Connection) -> List[Book]:
        rows = conn.execute(f"SELECT {_BOOK_COLUMNS} FROM books ORDER BY id").fetchall()
        return [Book.from_dict(dict(row)) for row in rows]
