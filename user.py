"""Library members and the borrow records they hold.

A ``BorrowRecord`` points at a book by ISBN only; the catalog resolves it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class BorrowRecord:
    isbn: str
    due_date: int  # seconds since the epoch


class User:
    """A registered library member."""

    def __init__(self, user_id: str, name: str, email: str,
                 borrowed: Optional[List[BorrowRecord]] = None) -> None:
        self._user_id = user_id.strip()
        self.name = name.strip()
        self.email = email.strip()
        self.borrowed: List[BorrowRecord] = list(borrowed or [])

    @property
    def user_id(self) -> str:
        return self._user_id

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} <{self.email}> (ID: {self.user_id})"

    def __repr__(self) -> str:
        return f"User(user_id={self.user_id!r}, email={self.email!r}, borrowed={len(self.borrowed)})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, User):
            return NotImplemented
        return (
            self.user_id == other.user_id
            and self.name == other.name
            and self.email == other.email
            and self.borrowed == other.borrowed
        )

    __hash__ = None

    def record_for(self, isbn: str) -> Optional[BorrowRecord]:
        for record in self.borrowed:
            if record.isbn == isbn:
                return record
        return None

    def holds(self, isbn: str) -> bool:
        return self.record_for(isbn) is not None

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "name": self.name,
            "email": self.email,
            "borrowed": [{"isbn": r.isbn, "dueDate": r.due_date} for r in self.borrowed],
        }
