import re
from typing import Optional

# Characters that would break the line/comma layout of the data file.
_FORBIDDEN = re.compile(r"[,\r\n]")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+$")


class TextValidator:
    """Checks for text fields that end up in the data file."""

    @staticmethod
    def is_storable(text: Optional[str]) -> bool:
        if text is None:
            return False
        t = text.strip()
        if not t:
            return False
        # a leading '[' would be read back as a section marker
        if t.startswith("["):
            return False
        return _FORBIDDEN.search(t) is None

    @staticmethod
    def problem(field_name: str, text: Optional[str]) -> Optional[str]:
        """Return a readable reason why ``text`` can't be stored, or None if it can."""
        if text is None or not text.strip():
            return f"{field_name} cannot be empty."
        if text.strip().startswith("["):
            return f"{field_name} cannot start with '['."
        if _FORBIDDEN.search(text):
            return f"{field_name} cannot contain commas or line breaks."
        return None


class EmailValidator:

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        if not TextValidator.is_storable(email):
            return False
        return _EMAIL.match(email.strip()) is not None


class YearValidator:

    @staticmethod
    def parse_year(raw: str) -> Optional[int]:
        """Parse a publication year typed by a user; None when it isn't an integer."""
        if raw is None:
            return None
        s = raw.strip()
        if s.startswith("-"):
            digits = s[1:]
        else:
            digits = s
        if not digits.isdecimal():
            return None
        return int(s)
