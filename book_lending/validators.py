import re
from typing import Optional

# local@domain.tld, no whitespace
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class TextValidator:
    """Basic text checks shared by the registries and the API models."""

    @staticmethod
    def is_blank(text: Optional[str]) -> bool:
        return text is None or not text.strip()

    @staticmethod
    def normalize(text: Optional[str]) -> str:
        if text is None:
            return ""
        return text.strip()

    @staticmethod
    def fold(text: str) -> str:
        """Case-insensitive comparison key."""
        return TextValidator.normalize(text).casefold()


class EmailValidator:

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        if TextValidator.is_blank(email):
            return False
        return bool(_EMAIL_RE.match(email.strip()))
