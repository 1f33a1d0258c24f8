import sqlite3

import pytest

from book_lending.catalog import ISBN_CONFLICT_MESSAGE
from book_lending.errors import ConflictError, InvalidArgumentError, NotFoundError


def test_register_and_list(lib):
    assert lib.catalog.list_all() == []

    book = lib.add_book("9780134685991", "Effective Java", "Joshua Bloch")

    assert book.id is not None
    assert book.available is True
    books = lib.catalog.list_all()
    assert len(books) == 1
    assert books[0].title == "Effective Java"


def test_register_strips_fields(lib):
    book = lib.add_book("  123  ", "  Dune ", " Frank Herbert ")
    assert (book.isbn, book.title, book.author) == ("123", "Dune", "Frank Herbert")


def test_same_isbn_same_details_creates_second_copy(lib):
    first = lib.add_book("978-3-18-148410-0", "Effective Java", "Joshua Bloch")
    second = lib.add_book("978-3-18-148410-0", "effective java", "JOSHUA BLOCH")

    assert first.id != second.id
    assert [b.id for b in lib.catalog.list_by_isbn("978-3-18-148410-0")] == [first.id, second.id]


def test_same_isbn_different_details_conflicts(lib):
    lib.add_book("978-3-18-148410-0", "Effective Java", "Joshua Bloch")

    with pytest.raises(ConflictError, match="same ISBN exists") as exc:
        lib.add_book("978-3-18-148410-0", "Java Concurrency in Practice", "Brian Goetz")

    assert exc.value.message == ISBN_CONFLICT_MESSAGE
    assert len(lib.catalog.list_all()) == 1


def test_conflict_when_only_author_differs(lib):
    lib.add_book("111", "Dune", "Frank Herbert")
    with pytest.raises(ConflictError):
        lib.add_book("111", "Dune", "Brian Herbert")


@pytest.mark.parametrize("isbn,title,author,message", [
    ("", "Dune", "Frank Herbert", "ISBN is required"),
    ("111", "   ", "Frank Herbert", "Title is required"),
    ("111", "Dune", None, "Author is required"),
])
def test_blank_fields_rejected(lib, isbn, title, author, message):
    with pytest.raises(InvalidArgumentError, match=message):
        lib.add_book(isbn, title, author)
    assert lib.catalog.list_all() == []


def test_get_by_isbn_returns_lowest_id(lib):
    first = lib.add_book("222", "Emma", "Jane Austen")
    lib.add_book("222", "Emma", "Jane Austen")

    assert lib.catalog.get_by_isbn("222").id == first.id


def test_get_by_isbn_not_found(lib):
    with pytest.raises(NotFoundError, match="Book not found with ISBN: 404"):
        lib.catalog.get_by_isbn("404")


def test_get_by_id_not_found(lib):
    with pytest.raises(NotFoundError, match="Book not found"):
        lib.catalog.get_by_id(99)


def test_store_rejects_inconsistent_copy_even_without_precheck(lib):
    lib.add_book("333", "Persuasion", "Jane Austen")

    with pytest.raises(sqlite3.IntegrityError):
        with lib.db.transaction() as conn:
            conn.execute(
                "INSERT INTO books (isbn, title, author, title_key, author_key) VALUES (?, ?, ?, ?, ?)",
                ("333", "Other", "Someone", "other", "someone"),
            )
    assert len(lib.catalog.list_all()) == 1
