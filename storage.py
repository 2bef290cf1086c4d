"""Flat-file persistence for the catalog.

The whole catalog is written as one UTF-8 text file made of sections::

    [BOOKS]
    <title>,<author>,<isbn>,<genre>,<year>,<available 0|1>
    [USERS]
    <userId>,<name>,<email>
    [BORROWED]<userId>
    <isbn>,<dueDateEpochSeconds>

Saving replaces the file atomically. Loading is forgiving: a malformed or
dangling record is logged and skipped, and only an unreadable file is an
error.
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from book import Book
from config import settings
from exceptions import PersistenceError
from user import BorrowRecord, User

logger = logging.getLogger(__name__)

BOOKS_SECTION = "[BOOKS]"
USERS_SECTION = "[USERS]"
BORROWED_PREFIX = "[BORROWED]"

# Default data file, LIBRARY_DATA_FILE in the environment or .env
DATA_FILE = settings.data_file


def serialize_catalog(books: Iterable[Book], users: Iterable[User]) -> str:
    lines: List[str] = [BOOKS_SECTION]
    for book in books:
        lines.append(",".join([
            book.title,
            book.author,
            book.isbn,
            book.genre,
            str(book.publication_year),
            "0" if not book.available else "1",
        ]))

    users = list(users)
    lines.append(USERS_SECTION)
    for user in users:
        lines.append(f"{user.user_id},{user.name},{user.email}")

    for user in users:
        if not user.borrowed:
            continue
        lines.append(f"{BORROWED_PREFIX}{user.user_id}")
        for record in user.borrowed:
            lines.append(f"{record.isbn},{record.due_date}")

    return "\n".join(lines) + "\n"


def save_catalog(path: str, books: Iterable[Book], users: Iterable[User]) -> None:
    """Write a full snapshot to ``path`` via a temp file and an atomic rename."""
    content = serialize_catalog(books, users)
    directory = os.path.dirname(os.path.abspath(path))
    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(prefix=".library_", suffix=".tmp", dir=directory)
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
        os.replace(tmp_path, path)
        tmp_path = None
    except OSError as exc:
        raise PersistenceError(f"Could not save library data to {path}: {exc}") from exc
    finally:
        if tmp_path and os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError:
                logger.warning("Could not remove temporary file %s", tmp_path)
    logger.debug("Saved snapshot to %s", path)


def parse_catalog(lines: Iterable[str]) -> Tuple[List[Book], List[User], int]:
    """Rebuild books and users from snapshot lines.

    Returns ``(books, users, skipped)`` where ``skipped`` counts the records
    that were dropped. Book availability is derived from the loaded borrow
    records, not from the stored flag.
    """
    books: Dict[str, Book] = {}
    users: Dict[str, User] = {}
    emails: Dict[str, User] = {}
    holders: Dict[str, str] = {}
    skipped = 0

    section: Optional[str] = None
    borrower: Optional[User] = None

    for lineno, raw in enumerate(lines, 1):
        line = raw.rstrip("\r\n")
        if not line:
            continue

        if line.startswith("["):
            section = line
            borrower = None
            if line.startswith(BORROWED_PREFIX):
                user_id = line[len(BORROWED_PREFIX):]
                borrower = users.get(user_id)
                if borrower is None:
                    logger.warning("Line %d: borrow section for unknown user %r", lineno, user_id)
            elif line not in (BOOKS_SECTION, USERS_SECTION):
                logger.warning("Line %d: unknown section %r", lineno, line)
            continue

        if section == BOOKS_SECTION:
            book = _parse_book(line, lineno)
            if book is None:
                skipped += 1
            elif book.isbn in books:
                logger.warning("Line %d: duplicate ISBN %r skipped", lineno, book.isbn)
                skipped += 1
            else:
                books[book.isbn] = book

        elif section == USERS_SECTION:
            user = _parse_user(line, lineno)
            if user is None:
                skipped += 1
            elif user.user_id in users:
                logger.warning("Line %d: duplicate user ID %r skipped", lineno, user.user_id)
                skipped += 1
            elif user.email in emails:
                logger.warning("Line %d: duplicate email %r skipped", lineno, user.email)
                skipped += 1
            else:
                users[user.user_id] = user
                emails[user.email] = user

        elif section is not None and section.startswith(BORROWED_PREFIX):
            if borrower is None:
                skipped += 1
                continue
            record = _parse_record(line, lineno)
            if record is None:
                skipped += 1
            elif record.isbn not in books:
                logger.warning("Line %d: borrowed ISBN %r not in catalog", lineno, record.isbn)
                skipped += 1
            elif record.isbn in holders:
                logger.warning("Line %d: ISBN %r already borrowed by %r", lineno, record.isbn,
                               holders[record.isbn])
                skipped += 1
            else:
                borrower.borrowed.append(record)
                holders[record.isbn] = borrower.user_id

        else:
            logger.warning("Line %d: record outside a known section skipped", lineno)
            skipped += 1

    for isbn, book in books.items():
        held = isbn in holders
        if book.available == held:
            logger.warning("ISBN %r: stored availability disagrees with borrow records", isbn)
        book.available = not held

    return list(books.values()), list(users.values()), skipped


def load_catalog(path: str) -> Tuple[List[Book], List[User]]:
    """Load a snapshot from ``path``; a missing file yields an empty catalog."""
    if not os.path.exists(path):
        logger.info("No data file at %s, starting with an empty catalog", path)
        return [], []
    try:
        with open(path, "r", encoding="utf-8") as f:
            books, users, skipped = parse_catalog(f)
    except (OSError, UnicodeDecodeError) as exc:
        raise PersistenceError(f"Could not load library data from {path}: {exc}") from exc

    if skipped:
        logger.warning("Loaded %d books and %d users from %s (%d records skipped)",
                       len(books), len(users), path, skipped)
    else:
        logger.info("Loaded %d books and %d users from %s", len(books), len(users), path)
    return books, users


def _parse_book(line: str, lineno: int) -> Optional[Book]:
    parts = line.split(",")
    if len(parts) != 6:
        logger.warning("Line %d: expected 6 book fields, got %d", lineno, len(parts))
        return None
    title, author, isbn, genre, year, available = parts
    if not (title and author and isbn and genre):
        logger.warning("Line %d: empty book field", lineno)
        return None
    try:
        publication_year = int(year)
    except ValueError:
        logger.warning("Line %d: invalid publication year %r", lineno, year)
        return None
    if available not in ("0", "1"):
        logger.warning("Line %d: invalid availability flag %r", lineno, available)
        return None
    return Book(title, author, isbn, genre, publication_year, available=available == "1")


def _parse_user(line: str, lineno: int) -> Optional[User]:
    parts = line.split(",")
    if len(parts) != 3 or not all(parts):
        logger.warning("Line %d: malformed user record", lineno)
        return None
    user_id, name, email = parts
    return User(user_id, name, email)


def _parse_record(line: str, lineno: int) -> Optional[BorrowRecord]:
    parts = line.split(",")
    if len(parts) != 2 or not parts[0]:
        logger.warning("Line %d: malformed borrow record", lineno)
        return None
    try:
        due_date = int(parts[1])
    except ValueError:
        logger.warning("Line %d: invalid due date %r", lineno, parts[1])
        return None
    try:
        datetime.fromtimestamp(due_date)
    except (OverflowError, OSError, ValueError):
        logger.warning("Line %d: due date %d out of range", lineno, due_date)
        return None
    return BorrowRecord(isbn=parts[0], due_date=due_date)
