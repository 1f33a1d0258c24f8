from __future__ import annotations


class Borrower:
    """A registered library member. Never updated after registration."""

    def __init__(self, name: str, email: str, id: int | None = None) -> None:
        self.id = id
        self.name = name.strip()
        self.email = email.strip()

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.name} <{self.email}>"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}

    @staticmethod
    def from_dict(data: dict) -> "Borrower":
        return Borrower(name=data["name"], email=data["email"], id=data.get("id"))
