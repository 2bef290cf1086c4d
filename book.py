from __future__ import annotations


class Book:
    """Represents a single book in the library."""

    def __init__(self, title: str, author: str, isbn: str, genre: str, publication_year: int,
                 available: bool = True) -> None:
        self.title = title.strip()
        self.author = author.strip()
        self._isbn = isbn.strip()
        self.genre = genre.strip()
        self.publication_year = int(publication_year)
        self.available = available

    @property
    def isbn(self) -> str:
        return self._isbn

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    def __repr__(self) -> str:
        return f"Book(title={self.title!r}, isbn={self.isbn!r}, available={self.available!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Book):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    __hash__ = None  # mutable availability

    def describe(self) -> str:
        return (
            f"Title: {self.title}\n"
            f"Author: {self.author}\n"
            f"ISBN: {self.isbn}\n"
            f"Genre: {self.genre}\n"
            f"Publication Year: {self.publication_year}\n"
            f"Available: {'Yes' if self.available else 'No'}"
        )

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "genre": self.genre,
            "year": self.publication_year,
            "available": self.available,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            title=data["title"],
            author=data["author"],
            isbn=data["isbn"],
            genre=data["genre"],
            publication_year=data.get("year", data.get("publication_year")),
            available=bool(data.get("available", True)),
        )
