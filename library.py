import logging
import threading
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

import borrowing
import storage
from book import Book
from exceptions import (
    DuplicateEmailError,
    DuplicateIsbnError,
    DuplicateUserIdError,
    InvalidInputError,
    NotFoundError,
)
from user import BorrowRecord, User
from validators import EmailValidator, TextValidator

logger = logging.getLogger(__name__)


class Library:
    """Manages the catalog of books and users and its persistence.

    Every read and write goes through ``lock``. Mutations keep the lock while
    the snapshot is written, so the data file always matches some state the
    catalog was actually in.
    """

    def __init__(self, data_file: Optional[str] = None, autoload: bool = True) -> None:
        self.data_file = data_file or storage.DATA_FILE
        self.lock = threading.RLock()
        self._books: Dict[str, Book] = {}
        self._users: Dict[str, User] = {}
        self._users_by_email: Dict[str, User] = {}
        self._genre_index: Dict[str, List[str]] = defaultdict(list)

        if autoload:
            books, users = storage.load_catalog(self.data_file)
            for book in books:
                self._index_book(book)
            for user in users:
                self._index_user(user)

    # ------------------------- Core operations ------------------------- #
    def add_book(self, book: Book) -> None:
        """Add a pre-constructed Book. Prevent duplicates by ISBN."""
        self._validate_book(book)
        with self.lock:
            if book.isbn in self._books:
                raise DuplicateIsbnError(book.isbn)
            self._index_book(book)
            logger.info("Added book %s (%s)", book.isbn, book.title)
            self.save()

    def add_user(self, user: User) -> None:
        self._validate_user(user)
        with self.lock:
            if user.user_id in self._users:
                raise DuplicateUserIdError(user.user_id)
            if user.email in self._users_by_email:
                raise DuplicateEmailError(user.email)
            self._index_user(user)
            logger.info("Registered user %s", user.user_id)
            self.save()

    def borrow_book(self, user_id: str, isbn: str, now: Optional[float] = None) -> BorrowRecord:
        with self.lock:
            user, book = self._resolve(user_id, isbn)
            record = borrowing.borrow(user, book, now)
            logger.info("User %s borrowed %s, due %d", user_id, isbn, record.due_date)
            self.save()
            return record

    def return_book(self, user_id: str, isbn: str) -> BorrowRecord:
        with self.lock:
            user, book = self._resolve(user_id, isbn)
            record = borrowing.give_back(user, book)
            logger.info("User %s returned %s", user_id, isbn)
            self.save()
            return record

    # ------------------------- Lookups ------------------------- #
    def find_book_by_isbn(self, isbn: str) -> Optional[Book]:
        with self.lock:
            return self._books.get(isbn)

    def find_book_by_title(self, title: str) -> Optional[Book]:
        with self.lock:
            for book in self._books.values():
                if book.title == title:
                    return book
            return None

    def find_books_by_author(self, author: str) -> List[Book]:
        with self.lock:
            return [b for b in self._books.values() if b.author == author]

    def find_books_by_genre(self, genre: str) -> List[Book]:
        with self.lock:
            return [self._books[isbn] for isbn in self._genre_index.get(genre, [])]

    def search_books(self, query: str) -> List[Book]:
        """Case-sensitive substring search over title, author and genre."""
        with self.lock:
            return [
                b for b in self._books.values()
                if query in b.title or query in b.author or query in b.genre
            ]

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        with self.lock:
            return self._users.get(user_id)

    def find_user_by_email(self, email: str) -> Optional[User]:
        with self.lock:
            return self._users_by_email.get(email)

    def list_books(self) -> List[Book]:
        with self.lock:
            return sorted(self._books.values(), key=lambda b: (b.title, b.isbn))

    def list_users(self) -> List[User]:
        with self.lock:
            return list(self._users.values())

    def borrowed_books(self, user_id: str) -> List[Tuple[Book, BorrowRecord]]:
        """The user's borrowed books paired with their records, in borrow order."""
        with self.lock:
            user = self._users.get(user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found.")
            return [(self._books[r.isbn], r) for r in user.borrowed if r.isbn in self._books]

    def get_statistics(self) -> Dict[str, Any]:
        """Get library statistics."""
        with self.lock:
            total_books = len(self._books)
            available = sum(1 for b in self._books.values() if b.available)
            return {
                "total_books": total_books,
                "available_books": available,
                "borrowed_books": total_books - available,
                "total_users": len(self._users),
                "unique_authors": len({b.author for b in self._books.values()}),
            }

    # ------------------------- Persistence ------------------------- #
    def save(self) -> None:
        """Write a full snapshot of the catalog to the data file."""
        with self.lock:
            storage.save_catalog(self.data_file, self._books.values(), self._users.values())

    def close(self) -> None:
        """Release the catalog. The data file is never held open."""
        return None

    # ------------------------- Utilities ------------------------- #
    def _index_book(self, book: Book) -> None:
        self._books[book.isbn] = book
        self._genre_index[book.genre].append(book.isbn)

    def _index_user(self, user: User) -> None:
        self._users[user.user_id] = user
        self._users_by_email[user.email] = user

    def _resolve(self, user_id: str, isbn: str) -> Tuple[User, Book]:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found.")
        book = self._books.get(isbn)
        if book is None:
            raise NotFoundError(f"Book with ISBN {isbn} not found.")
        return user, book

    @staticmethod
    def _validate_book(book: Book) -> None:
        for name, value in (("Title", book.title), ("Author", book.author),
                            ("ISBN", book.isbn), ("Genre", book.genre)):
            problem = TextValidator.problem(name, value)
            if problem:
                raise InvalidInputError(problem)
        if not book.available:
            raise InvalidInputError("A new book must be available.")

    @staticmethod
    def _validate_user(user: User) -> None:
        for name, value in (("User ID", user.user_id), ("Name", user.name), ("Email", user.email)):
            problem = TextValidator.problem(name, value)
            if problem:
                raise InvalidInputError(problem)
        if not EmailValidator.is_valid_email(user.email):
            raise InvalidInputError(f"Invalid email address: {user.email}")
        if user.borrowed:
            raise InvalidInputError("A new user cannot hold borrowed books.")
