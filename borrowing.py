"""Borrow and return state transitions for a single book.

A book is either available or held by exactly one user. These functions
operate on entities that were already resolved by the catalog and do not
touch persistence.
"""

from __future__ import annotations

import math
import time
from typing import Optional

from book import Book
from exceptions import NotAvailableError, NotBorrowedByUserError, NotBorrowedError
from user import BorrowRecord, User

LOAN_PERIOD_DAYS = 14
LOAN_PERIOD_SECONDS = LOAN_PERIOD_DAYS * 24 * 60 * 60


def compute_due_date(now: Optional[float] = None) -> int:
    """Due date for a loan starting at ``now``, as whole epoch seconds."""
    if now is None:
        now = time.time()
    return math.ceil(now) + LOAN_PERIOD_SECONDS


def borrow(user: User, book: Book, now: Optional[float] = None) -> BorrowRecord:
    if not book.available:
        raise NotAvailableError(book.isbn)
    record = BorrowRecord(isbn=book.isbn, due_date=compute_due_date(now))
    user.borrowed.append(record)
    book.available = False
    return record


def give_back(user: User, book: Book) -> BorrowRecord:
    """Return ``book`` on behalf of ``user`` and hand back the removed record."""
    if book.available:
        raise NotBorrowedError(book.isbn)
    record = user.record_for(book.isbn)
    if record is None:
        raise NotBorrowedByUserError(user.user_id, book.isbn)
    user.borrowed.remove(record)
    book.available = True
    return record


def is_overdue(record: BorrowRecord, now: Optional[float] = None) -> bool:
    # informational only; late returns are accepted
    if now is None:
        now = time.time()
    return now > record.due_date
