from typing import List

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from book import Book
from config import settings
from library import Library


# --- API Models ---
class BookModel(BaseModel):
    title: str
    author: str
    isbn: str
    genre: str
    year: int
    available: bool


class BookSearchResultModel(BaseModel):
    title: str
    author: str
    isbn: str
    available: bool


class LoginRequest(BaseModel):
    email: str


class LoginResponse(BaseModel):
    success: bool
    name: str | None = None
    email: str | None = None
    userId: str | None = None


def _to_book_model(book: Book) -> BookModel:
    return BookModel(
        title=book.title,
        author=book.author,
        isbn=book.isbn,
        genre=book.genre,
        year=book.publication_year,
        available=book.available,
    )


def create_app(library: Library) -> FastAPI:
    """Build the HTTP API over an existing catalog."""
    app = FastAPI(title=f"{settings.app_name} API")

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.get("/api/books", response_model=List[BookModel])
    def list_books():
        with library.lock:
            return [_to_book_model(b) for b in library.list_books()]

    @app.get("/api/books/search", response_model=List[BookSearchResultModel])
    def search_books(q: str = Query("", description="Substring matched against title, author and genre")):
        with library.lock:
            return [
                BookSearchResultModel(title=b.title, author=b.author, isbn=b.isbn, available=b.available)
                for b in library.search_books(q)
            ]

    @app.post("/api/login", response_model=LoginResponse, response_model_exclude_none=True)
    def login(payload: LoginRequest):
        # email lookup only, no credentials are checked
        with library.lock:
            user = library.find_user_by_email(payload.email)
            if user is None:
                return LoginResponse(success=False)
            return LoginResponse(success=True, name=user.name, email=user.email, userId=user.user_id)

    return app
