import pytest
from fastapi.testclient import TestClient

from book_lending.api import create_app
from book_lending.catalog import ISBN_CONFLICT_MESSAGE
from book_lending.errors import LendingError


@pytest.fixture
def client(lib):
    return TestClient(create_app(lib))


def _add_book(client, isbn="978-3-18-148410-0", title="Effective Java", author="Joshua Bloch"):
    return client.post("/api/books", json={"isbn": isbn, "title": title, "author": author})


def _add_borrower(client, name="John Doe", email="john.doe.test@example.com"):
    return client.post("/api/borrowers", json={"name": name, "email": email})


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["db"] is True


def test_register_book(client):
    response = _add_book(client)
    assert response.status_code == 200
    body = response.json()
    assert body["isbn"] == "978-3-18-148410-0"
    assert body["title"] == "Effective Java"
    assert body["author"] == "Joshua Bloch"
    assert body["available"] is True


def test_register_book_multiple_copies(client):
    first = _add_book(client)
    second = _add_book(client)
    assert second.status_code == 200
    assert first.json()["id"] != second.json()["id"]


def test_register_book_conflicting_isbn(client):
    _add_book(client)
    response = _add_book(client, title="Java Concurrency in Practice", author="Brian Goetz")

    assert response.status_code == 409
    body = response.json()
    assert body["message"] == ISBN_CONFLICT_MESSAGE
    assert body["status"] == 409
    assert body["path"] == "/api/books"


def test_register_book_blank_title(client):
    response = _add_book(client, title="  ")

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation Failed"
    assert body["message"] == "Invalid input parameters"
    assert body["details"]["title"] == "Title is required"


def test_register_book_missing_author(client):
    response = client.post("/api/books", json={"isbn": "1", "title": "Emma"})

    assert response.status_code == 400
    assert response.json()["details"]["author"] == "Author is required"


def test_list_books_by_isbn(client):
    book_id = _add_book(client).json()["id"]
    _add_book(client)

    response = client.get("/api/books", params={"isbn": "978-3-18-148410-0"})

    assert response.status_code == 200
    assert [b["id"] for b in response.json()] == [book_id]


def test_list_books_unknown_isbn(client):
    response = client.get("/api/books", params={"isbn": "nope"})

    assert response.status_code == 404
    assert response.json()["message"] == "Book not found with ISBN: nope"


def test_register_borrower(client):
    response = _add_borrower(client)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "SUCCESS"
    assert body["message"] == "Borrower registered successfully"
    assert body["data"]["name"] == "John Doe"
    assert body["data"]["email"] == "john.doe.test@example.com"


def test_register_borrower_missing_email(client):
    response = _add_borrower(client, email="")

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Invalid input parameters"
    assert body["details"]["email"] == "Email is mandatory"


def test_register_borrower_invalid_email(client):
    response = _add_borrower(client, email="john-at-example")

    assert response.status_code == 400
    assert response.json()["details"]["email"] == "Valid email is required"


def test_register_borrower_duplicate_email(client):
    _add_borrower(client, email="duplicate.test@example.com")
    response = _add_borrower(client, email="duplicate.test@example.com")

    assert response.status_code == 409
    assert response.json()["message"] == "Email already registered"


def test_list_and_get_borrowers(client):
    borrower_id = _add_borrower(client).json()["data"]["id"]
    _add_borrower(client, name="Jane", email="jane@example.com")

    listing = client.get("/api/borrowers").json()
    assert listing["message"] == "Borrowers retrieved successfully"
    assert [b["name"] for b in listing["data"]] == ["John Doe", "Jane"]

    single = client.get(f"/api/borrowers/{borrower_id}")
    assert single.status_code == 200
    assert single.json()["message"] == "Borrower retrieved successfully"
    assert single.json()["data"]["id"] == borrower_id


def test_get_missing_borrower(client):
    response = client.get("/api/borrowers/99")

    assert response.status_code == 404
    assert response.json()["message"] == "Borrower not found with id: 99"


def test_borrow_and_return_flow(client, clock):
    book_id = _add_book(client).json()["id"]
    john = _add_borrower(client).json()["data"]["id"]
    jane = _add_borrower(client, name="Jane", email="jane@example.com").json()["data"]["id"]

    borrowed = client.post(f"/api/books/{book_id}/borrow", json={"borrowerId": john})
    assert borrowed.status_code == 200
    loan = borrowed.json()
    assert loan["bookId"] == book_id
    assert loan["borrowerId"] == john
    assert loan["returnDate"] is None

    [listed] = client.get("/api/books").json()
    assert listed["available"] is False
    assert listed["overdue"] is False
    assert listed["expectedReturnDate"] is not None

    again = client.post(f"/api/books/{book_id}/borrow", json={"borrowerId": jane})
    assert again.status_code == 409
    assert again.json()["message"] == "Book is not available for borrowing"

    wrong = client.post(f"/api/books/{book_id}/return", json={"borrowerId": jane})
    assert wrong.status_code == 409
    assert wrong.json()["message"] == "Book was not borrowed by this borrower"

    clock.advance(days=20)
    [overdue] = client.get("/api/books").json()
    assert overdue["overdue"] is True

    returned = client.post(f"/api/books/{book_id}/return", json={"borrowerId": john})
    assert returned.status_code == 200
    assert returned.json()["returnDate"] is not None

    [history_view] = client.get("/api/books", params={"withBorrowHistory": "true"}).json()
    assert history_view["available"] is True
    [entry] = history_view["borrowHistory"]
    assert entry["borrowerId"] == john
    assert entry["borrowerName"] == "John Doe"
    assert entry["borrowerEmail"] == "john.doe.test@example.com"
    assert entry["returnDate"] is not None


def test_borrow_unknown_book(client):
    john = _add_borrower(client).json()["data"]["id"]

    response = client.post("/api/books/99/borrow", json={"borrowerId": john})

    assert response.status_code == 404
    assert response.json()["message"] == "Book not found"


def test_borrow_unknown_borrower(client):
    book_id = _add_book(client).json()["id"]

    response = client.post(f"/api/books/{book_id}/borrow", json={"borrowerId": 99})

    assert response.status_code == 404
    assert response.json()["message"] == "Borrower not found"


def test_borrow_without_borrower_id(client):
    book_id = _add_book(client).json()["id"]

    response = client.post(f"/api/books/{book_id}/borrow", json={})

    assert response.status_code == 400
    assert response.json()["details"]["borrowerId"] == "Borrower id is required"


def test_return_without_active_loan(client):
    book_id = _add_book(client).json()["id"]
    john = _add_borrower(client).json()["data"]["id"]

    response = client.post(f"/api/books/{book_id}/return", json={"borrowerId": john})

    assert response.status_code == 404
    assert response.json()["message"] == "No active borrow record found"


def test_borrower_active_loans(client):
    book_id = _add_book(client).json()["id"]
    john = _add_borrower(client).json()["data"]["id"]
    client.post(f"/api/books/{book_id}/borrow", json={"borrowerId": john})

    response = client.get(f"/api/borrowers/{john}/loans")

    assert response.status_code == 200
    assert [loan["bookId"] for loan in response.json()["data"]] == [book_id]


def test_untagged_lending_error_is_server_error(client, lib, monkeypatch):
    def broken_listing(isbn=None, with_history=False):
        raise LendingError("Catalog unavailable")

    monkeypatch.setattr(lib, "list_books", broken_listing)

    response = client.get("/api/books")

    assert response.status_code == 500
    assert response.json()["message"] == "Catalog unavailable"
