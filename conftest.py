from datetime import datetime, timedelta, timezone

import pytest

from book_lending.library import Library


class FakeClock:
    """Controllable clock for overdue scenarios."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def lib(tmp_path, clock):
    # Each test gets its own database file
    db_file = str(tmp_path / "library_test.db")
    return Library(db_file=db_file, clock=clock)


@pytest.fixture
def book(lib):
    return lib.add_book("9780134685991", "Effective Java", "Joshua Bloch")


@pytest.fixture
def alice(lib):
    return lib.register_borrower("Alice", "alice@example.com")


@pytest.fixture
def bob(lib):
    return lib.register_borrower("Bob", "bob@example.com")


@pytest.fixture
def check_invariants(lib):
    """Assert that every book is available iff it has no active loan, and has at most one active loan."""

    def _check():
        with lib.db.read() as conn:
            rows = conn.execute(
                """
                SELECT b.id, b.available,
                       (SELECT COUNT(*) FROM book_borrows bb
                        WHERE bb.book_id = b.id AND bb.return_date IS NULL) AS active_loans
                FROM books b
                """
            ).fetchall()
        for row in rows:
            assert row["active_loans"] in (0, 1), f"book {row['id']} has {row['active_loans']} active loans"
            assert bool(row["available"]) == (row["active_loans"] == 0), f"book {row['id']} availability out of step"

    return _check
