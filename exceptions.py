"""Error kinds raised by the catalog, the borrow engine and the storage layer."""


class LibraryError(Exception):
    """Base class for every domain error the frontends render to the user."""


class InvalidInputError(LibraryError, ValueError):
    pass


class DuplicateIsbnError(LibraryError, ValueError):
    def __init__(self, isbn: str) -> None:
        super().__init__(f"Book with ISBN {isbn} already exists.")
        self.isbn = isbn


class DuplicateUserIdError(LibraryError, ValueError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"User ID {user_id} already exists.")
        self.user_id = user_id


class DuplicateEmailError(LibraryError, ValueError):
    def __init__(self, email: str) -> None:
        super().__init__(f"Email {email} is already registered.")
        self.email = email


class NotFoundError(LibraryError, LookupError):
    pass


class NotAvailableError(LibraryError):
    def __init__(self, isbn: str) -> None:
        super().__init__(f"Book with ISBN {isbn} is currently not available.")
        self.isbn = isbn


class NotBorrowedError(LibraryError):
    def __init__(self, isbn: str) -> None:
        super().__init__(f"Book with ISBN {isbn} is not borrowed.")
        self.isbn = isbn


class NotBorrowedByUserError(LibraryError):
    def __init__(self, user_id: str, isbn: str) -> None:
        super().__init__(f"User {user_id} has not borrowed the book with ISBN {isbn}.")
        self.user_id = user_id
        self.isbn = isbn


class PersistenceError(LibraryError):
    """Raised when the data file cannot be read or written."""
