import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from book_lending.config import settings

logger = logging.getLogger(__name__)


def to_db_timestamp(value: datetime) -> str:
    """Serialize a datetime as fixed-width ISO-8601 UTC text so that rows sort chronologically."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Database:
    """Handle to the SQLite store shared by the catalog, the registry and the lending engine.

    Every unit of work opens its own connection. Writes go through
    :meth:`transaction`, which takes SQLite's write lock up front with
    ``BEGIN IMMEDIATE`` so a read-check-write sequence cannot interleave with
    another writer, whether that writer is a thread or a separate process.
    """

    def __init__(self, db_file: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.db_file = db_file or settings.database_file
        self.timeout = settings.database_timeout if timeout is None else timeout

    def connect(self) -> sqlite3.Connection:
        # isolation_level=None: the sqlite3 module must not open implicit transactions.
        conn = sqlite3.connect(self.db_file, timeout=self.timeout, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    @contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed block atomically; any exception rolls every write back."""
        conn = self.connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def snapshot(self) -> Iterator[sqlite3.Connection]:
        """Read-only unit of work: every query in the block sees the same committed state."""
        conn = self.connect()
        try:
            conn.execute("BEGIN")
            try:
                yield conn
            finally:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
        finally:
            conn.close()

    def ping(self) -> bool:
        try:
            with self.read() as conn:
                conn.execute("SELECT 1")
            return True
        except sqlite3.Error as e:
            logger.error(f"Database ping failed: {e}")
            return False

    def initialize(self) -> None:
        """Create tables, indexes and triggers if they do not exist yet."""
        conn = self.connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    isbn TEXT NOT NULL,
                    title TEXT NOT NULL,
                    author TEXT NOT NULL,
                    title_key TEXT NOT NULL,
                    author_key TEXT NOT NULL,
                    available INTEGER NOT NULL DEFAULT 1 CHECK (available IN (0, 1)),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS borrowers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS book_borrows (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    book_id INTEGER NOT NULL,
                    borrower_id INTEGER NOT NULL,
                    borrow_date TEXT NOT NULL,
                    return_date TEXT,
                    FOREIGN KEY (book_id) REFERENCES books(id),
                    FOREIGN KEY (borrower_id) REFERENCES borrowers(id)
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_books_isbn ON books(isbn)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_book_borrows_book_id ON book_borrows(book_id, borrow_date)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_book_borrows_borrower_id ON book_borrows(borrower_id)")

            # At most one active loan per book.
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS ux_book_borrows_active
                ON book_borrows(book_id) WHERE return_date IS NULL
            """)

            # Copies sharing an ISBN must agree on title and author (case-insensitive keys).
            conn.execute("""
                CREATE TRIGGER IF NOT EXISTS trg_books_isbn_consistency
                BEFORE INSERT ON books
                WHEN EXISTS (
                    SELECT 1 FROM books
                    WHERE isbn = NEW.isbn
                      AND (title_key <> NEW.title_key OR author_key <> NEW.author_key)
                )
                BEGIN
                    SELECT RAISE(ABORT, 'isbn title/author mismatch');
                END
            """)
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()
        logger.info(f"Database initialized at {self.db_file}")
