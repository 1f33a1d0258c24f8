import pytest

from book_lending.errors import ConflictError, InvalidArgumentError, NotFoundError


def test_register_and_get(lib):
    borrower = lib.register_borrower("John Doe", "john.doe@example.com")

    assert borrower.id is not None
    fetched = lib.get_borrower(borrower.id)
    assert fetched.name == "John Doe"
    assert fetched.email == "john.doe@example.com"


def test_two_different_emails_both_register(lib):
    lib.register_borrower("John", "john@example.com")
    lib.register_borrower("Jane", "jane@example.com")

    assert [b.email for b in lib.list_borrowers()] == ["john@example.com", "jane@example.com"]


def test_duplicate_email_conflicts_without_second_row(lib):
    lib.register_borrower("John", "dup@example.com")

    with pytest.raises(ConflictError, match="Email already registered"):
        lib.register_borrower("Johnny", "dup@example.com")

    assert len(lib.list_borrowers()) == 1


def test_email_uniqueness_is_case_sensitive(lib):
    lib.register_borrower("John", "john@example.com")
    lib.register_borrower("John Upper", "John@example.com")

    assert len(lib.list_borrowers()) == 2


@pytest.mark.parametrize("email", ["", "   ", None])
def test_blank_email_rejected(lib, email):
    with pytest.raises(InvalidArgumentError, match="Email is mandatory for registering a borrower."):
        lib.register_borrower("John", email)
    assert lib.list_borrowers() == []


def test_malformed_email_rejected(lib):
    with pytest.raises(InvalidArgumentError, match="Valid email is required"):
        lib.register_borrower("John", "not-an-email")


def test_blank_name_rejected(lib):
    with pytest.raises(InvalidArgumentError, match="Name is required"):
        lib.register_borrower("  ", "john@example.com")


def test_get_missing_borrower(lib):
    with pytest.raises(NotFoundError, match="Borrower not found with id: 42"):
        lib.get_borrower(42)
