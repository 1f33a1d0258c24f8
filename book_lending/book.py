from __future__ import annotations


class Book:
    """A single physical copy in the catalog."""

    def __init__(self, title: str, author: str, isbn: str, available: bool = True,
                 id: int | None = None, created_at: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.isbn = isbn.strip()
        self.available = bool(available)
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "isbn": self.isbn,
            "title": self.title,
            "author": self.author,
            "available": self.available,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            title=data["title"],
            author=data["author"],
            isbn=data["isbn"],
            available=bool(data.get("available", True)),
            id=data.get("id"),
            created_at=data.get("created_at"),
        )
