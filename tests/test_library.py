import threading

import pytest

from book import Book
from exceptions import (
    DuplicateEmailError,
    DuplicateIsbnError,
    DuplicateUserIdError,
    InvalidInputError,
    NotAvailableError,
    NotBorrowedByUserError,
    NotBorrowedError,
    NotFoundError,
    PersistenceError,
)
from library import Library
from user import User


def _assert_availability_invariant(lib: Library) -> None:
    holders = {}
    for user in lib.list_users():
        for record in user.borrowed:
            holders.setdefault(record.isbn, []).append(user.user_id)
    for book in lib.list_books():
        held_by = holders.get(book.isbn, [])
        assert len(held_by) <= 1
        assert book.available == (len(held_by) == 0)


def test_add_list_and_find(lib):
    assert lib.list_books() == []

    book = Book("Ulysses", "James Joyce", "9780199535675", "Modernist", 1922)
    lib.add_book(book)

    assert lib.find_book_by_isbn("9780199535675") is book
    assert len(lib.list_books()) == 1
    assert lib.list_books()[0].title == "Ulysses"


def test_add_duplicate_isbn(lib):
    lib.add_book(Book("Test Book", "Test Author", "1234567890", "Test", 2001))

    with pytest.raises(DuplicateIsbnError, match="Book with ISBN 1234567890 already exists."):
        lib.add_book(Book("Other", "Someone", "1234567890", "Test", 2002))

    assert len(lib.list_books()) == 1


def test_add_duplicate_user_id_and_email(lib):
    lib.add_user(User("u1", "Ada", "ada@example.com"))

    with pytest.raises(DuplicateUserIdError):
        lib.add_user(User("u1", "Other", "other@example.com"))
    with pytest.raises(DuplicateEmailError):
        lib.add_user(User("u2", "Other", "ada@example.com"))

    assert [u.user_id for u in lib.list_users()] == ["u1"]


@pytest.mark.parametrize("title", ["", "   ", "Hello, World", "Two\nLines", "[BOOKS]"])
def test_add_book_rejects_unstorable_title(lib, title):
    with pytest.raises(InvalidInputError):
        lib.add_book(Book(title, "Author", "111", "Genre", 2000))
    assert lib.list_books() == []


def test_add_user_rejects_bad_email(lib):
    with pytest.raises(InvalidInputError):
        lib.add_user(User("u1", "Ada", "not-an-email"))


def test_add_book_rejects_unavailable_book(lib):
    with pytest.raises(InvalidInputError):
        lib.add_book(Book("A", "X", "i1", "g", 2000, available=False))


def test_find_book_by_title_exact_match(lib):
    lib.add_book(Book("Dune", "Frank Herbert", "1", "sci-fi", 1965))
    lib.add_book(Book("Dune Messiah", "Frank Herbert", "2", "sci-fi", 1969))

    assert lib.find_book_by_title("Dune").isbn == "1"
    assert lib.find_book_by_title("dune") is None
    assert lib.find_book_by_title("Dun") is None


def test_find_books_by_author(lib):
    lib.add_book(Book("Dune", "Frank Herbert", "1", "sci-fi", 1965))
    lib.add_book(Book("Emma", "Jane Austen", "2", "classic", 1815))
    lib.add_book(Book("Dune Messiah", "Frank Herbert", "3", "sci-fi", 1969))

    assert {b.isbn for b in lib.find_books_by_author("Frank Herbert")} == {"1", "3"}
    assert lib.find_books_by_author("Frank") == []


def test_find_books_by_genre_does_not_reorder_catalog(lib):
    lib.add_book(Book("Zeta", "A", "1", "sci-fi", 2000))
    lib.add_book(Book("Alpha", "B", "2", "fantasy", 2001))
    lib.add_book(Book("Beta", "C", "3", "sci-fi", 2002))
    before = [b.isbn for b in lib.search_books("")]

    result = lib.find_books_by_genre("sci-fi")

    assert sorted(b.isbn for b in result) == ["1", "3"]
    assert [b.isbn for b in lib.search_books("")] == before
    assert lib.find_books_by_genre("horror") == []


def test_search_substring_matches_title_author_or_genre(lib):
    lib.add_book(Book("Go Programming", "Someone", "1", "tech", 2015))
    lib.add_book(Book("Rustic", "Other", "2", "Go", 2018))
    lib.add_book(Book("Cooking", "Chef", "3", "food", 2010))

    assert {b.isbn for b in lib.search_books("Go")} == {"1", "2"}
    assert {b.isbn for b in lib.search_books("Chef")} == {"3"}


def test_search_is_case_sensitive(lib):
    lib.add_book(Book("Go Programming", "Someone", "1", "tech", 2015))
    assert lib.search_books("go") == []


def test_list_books_sorted_by_title_then_isbn(lib):
    lib.add_book(Book("B", "X", "3", "g", 2000))
    lib.add_book(Book("A", "X", "9", "g", 2000))
    lib.add_book(Book("A", "X", "1", "g", 2000))

    assert [(b.title, b.isbn) for b in lib.list_books()] == [("A", "1"), ("A", "9"), ("B", "3")]


def test_find_users(lib):
    lib.add_user(User("u1", "Ada", "ada@example.com"))

    assert lib.find_user_by_id("u1").name == "Ada"
    assert lib.find_user_by_email("ada@example.com").user_id == "u1"
    assert lib.find_user_by_id("u2") is None
    assert lib.find_user_by_email("nobody@example.com") is None


def test_borrow_then_return(lib):
    lib.add_book(Book("A", "X", "i1", "g", 2000))
    lib.add_user(User("u1", "N", "n@x"))

    lib.borrow_book("u1", "i1")
    book = lib.find_book_by_isbn("i1")
    user = lib.find_user_by_id("u1")
    assert book.available is False
    assert [r.isbn for r in user.borrowed] == ["i1"]
    _assert_availability_invariant(lib)

    lib.return_book("u1", "i1")
    assert book.available is True
    assert user.borrowed == []
    _assert_availability_invariant(lib)


def test_double_borrow_not_available(lib):
    lib.add_book(Book("A", "X", "i1", "g", 2000))
    lib.add_user(User("u1", "N", "n@x"))
    lib.borrow_book("u1", "i1")
    lib.add_user(User("u2", "M", "m@x"))

    with pytest.raises(NotAvailableError):
        lib.borrow_book("u2", "i1")

    assert lib.find_user_by_id("u2").borrowed == []
    _assert_availability_invariant(lib)


def test_return_errors(lib):
    lib.add_book(Book("A", "X", "i1", "g", 2000))
    lib.add_user(User("u1", "N", "n@x"))
    lib.add_user(User("u2", "M", "m@x"))

    with pytest.raises(NotBorrowedError):
        lib.return_book("u1", "i1")

    lib.borrow_book("u1", "i1")
    with pytest.raises(NotBorrowedByUserError):
        lib.return_book("u2", "i1")
    assert lib.find_book_by_isbn("i1").available is False


def test_borrow_unknown_user_or_book(lib):
    lib.add_book(Book("A", "X", "i1", "g", 2000))
    lib.add_user(User("u1", "N", "n@x"))

    with pytest.raises(NotFoundError):
        lib.borrow_book("ghost", "i1")
    with pytest.raises(NotFoundError):
        lib.borrow_book("u1", "missing")
    with pytest.raises(LookupError):
        lib.return_book("u1", "missing")


def test_user_can_hold_many_books(lib):
    for i in range(5):
        lib.add_book(Book(f"Book {i}", "X", f"i{i}", "g", 2000))
    lib.add_user(User("u1", "N", "n@x"))

    for i in range(5):
        lib.borrow_book("u1", f"i{i}")

    assert [b.isbn for b, _ in lib.borrowed_books("u1")] == [f"i{i}" for i in range(5)]
    assert lib.get_statistics()["borrowed_books"] == 5


def test_borrowed_books_unknown_user(lib):
    with pytest.raises(NotFoundError):
        lib.borrowed_books("ghost")


def test_persistence(data_file):
    lib = Library(data_file=data_file)
    lib.add_book(Book("Sapiens", "Yuval Noah Harari", "9780099590088", "History", 2011))

    # New instance should read persisted data from the data file
    lib2 = Library(data_file=data_file)
    assert len(lib2.list_books()) == 1
    assert lib2.find_book_by_isbn("9780099590088").title == "Sapiens"


def test_persistence_round_trip_preserves_due_date(data_file):
    lib = Library(data_file=data_file)
    lib.add_book(Book("A", "X", "i1", "g", 2000))
    lib.add_book(Book("B", "Y", "i2", "h", 2001))
    lib.add_book(Book("C", "Z", "i3", "g", 2002))
    lib.add_user(User("u1", "N", "n@x"))
    lib.add_user(User("u2", "M", "m@x"))
    record = lib.borrow_book("u2", "i3", now=1_700_000_000)

    lib2 = Library(data_file=data_file)

    assert lib2.list_books() == lib.list_books()
    assert lib2.list_users() == lib.list_users()
    assert lib2.find_user_by_id("u2").borrowed[0].due_date == record.due_date
    assert lib2.find_book_by_isbn("i3").available is False
    _assert_availability_invariant(lib2)


def test_save_failure_keeps_mutation(lib, monkeypatch):
    lib.add_book(Book("A", "X", "i1", "g", 2000))
    lib.add_user(User("u1", "N", "n@x"))

    def broken_save(path, books, users):
        raise PersistenceError("disk full")

    monkeypatch.setattr("library.storage.save_catalog", broken_save)

    with pytest.raises(PersistenceError):
        lib.borrow_book("u1", "i1")

    assert lib.find_book_by_isbn("i1").available is False
    assert lib.find_user_by_id("u1").holds("i1")


def test_statistics(lib):
    lib.add_book(Book("A", "X", "i1", "g", 2000))
    lib.add_book(Book("B", "X", "i2", "g", 2000))
    lib.add_book(Book("C", "Y", "i3", "g", 2000))
    lib.add_user(User("u1", "N", "n@x"))
    lib.borrow_book("u1", "i2")

    assert lib.get_statistics() == {
        "total_books": 3,
        "available_books": 2,
        "borrowed_books": 1,
        "total_users": 1,
        "unique_authors": 2,
    }


def test_concurrent_borrowers_get_one_copy(lib):
    lib.add_book(Book("A", "X", "i1", "g", 2000))
    for i in range(8):
        lib.add_user(User(f"u{i}", f"N{i}", f"n{i}@x"))

    outcomes = []
    barrier = threading.Barrier(8)

    def attempt(user_id):
        barrier.wait()
        try:
            lib.borrow_book(user_id, "i1")
            outcomes.append("ok")
        except NotAvailableError:
            outcomes.append("taken")

    threads = [threading.Thread(target=attempt, args=(f"u{i}",)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["ok"] + ["taken"] * 7
    _assert_availability_invariant(lib)
