import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, Generic, List, Optional, TypeVar

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from book_lending.book import Book
from book_lending.borrower import Borrower
from book_lending.config import settings
from book_lending.errors import ErrorKind, LendingError
from book_lending.library import Library
from book_lending.loan import BookBorrow
from book_lending.validators import EmailValidator, TextValidator
from book_lending.views import BookView

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

# Domain error kinds become HTTP statuses here and nowhere else.
STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: HTTPStatus.NOT_FOUND,
    ErrorKind.CONFLICT: HTTPStatus.CONFLICT,
    ErrorKind.ILLEGAL_STATE: HTTPStatus.CONFLICT,
    ErrorKind.INVALID_ARGUMENT: HTTPStatus.BAD_REQUEST,
}

# Messages for request fields that are absent altogether.
REQUIRED_FIELD_MESSAGES = {
    "isbn": "ISBN is required",
    "title": "Title is required",
    "author": "Author is required",
    "name": "Name is required",
    "email": "Email is mandatory",
    "borrowerId": "Borrower id is required",
}

# pydantic prefixes messages raised from field validators with this.
VALUE_ERROR_PREFIX = "Value error, "


# --- Models ---
class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class BookCreateModel(CamelModel):
    isbn: str
    title: str
    author: str

    @field_validator("isbn", "title", "author")
    @classmethod
    def _not_blank(cls, value: str, info) -> str:
        if TextValidator.is_blank(value):
            raise ValueError(REQUIRED_FIELD_MESSAGES[info.field_name])
        return value.strip()


class BorrowerCreateModel(CamelModel):
    name: str
    email: str

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if TextValidator.is_blank(value):
            raise ValueError("Name is required")
        return value.strip()

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str) -> str:
        if TextValidator.is_blank(value):
            raise ValueError("Email is mandatory")
        if not EmailValidator.is_valid_email(value):
            raise ValueError("Valid email is required")
        return value.strip()


class BorrowRequestModel(CamelModel):
    borrower_id: int = Field(alias="borrowerId")


class BorrowHistoryModel(CamelModel):
    borrow_id: int = Field(alias="borrowId")
    borrower_id: int = Field(alias="borrowerId")
    borrower_name: str = Field(alias="borrowerName")
    borrower_email: str = Field(alias="borrowerEmail")
    borrow_date: datetime = Field(alias="borrowDate")
    return_date: Optional[datetime] = Field(default=None, alias="returnDate")


class BookModel(CamelModel):
    id: int
    isbn: str
    title: str
    author: str
    available: bool
    overdue: bool = False
    expected_return_date: Optional[datetime] = Field(default=None, alias="expectedReturnDate")
    borrow_history: Optional[List[BorrowHistoryModel]] = Field(default=None, alias="borrowHistory")

    @classmethod
    def from_book(cls, book: Book) -> "BookModel":
        return cls(**book.to_dict())

    @classmethod
    def from_view(cls, view: BookView) -> "BookModel":
        history = None
        if view.borrow_history is not None:
            history = [BorrowHistoryModel(**vars(entry)) for entry in view.borrow_history]
        return cls(
            id=view.id,
            isbn=view.isbn,
            title=view.title,
            author=view.author,
            available=view.available,
            overdue=view.overdue,
            expected_return_date=view.expected_return_date,
            borrow_history=history,
        )


class LoanModel(CamelModel):
    id: int
    book_id: int = Field(alias="bookId")
    borrower_id: int = Field(alias="borrowerId")
    borrow_date: datetime = Field(alias="borrowDate")
    return_date: Optional[datetime] = Field(default=None, alias="returnDate")

    @classmethod
    def from_loan(cls, loan: BookBorrow) -> "LoanModel":
        return cls(**loan.to_dict())


class BorrowerModel(CamelModel):
    id: int
    name: str
    email: str

    @classmethod
    def from_borrower(cls, borrower: Borrower) -> "BorrowerModel":
        return cls(**borrower.to_dict())


T = TypeVar("T")


class ApiResponse(CamelModel, Generic[T]):
    status: str = "SUCCESS"
    message: str
    data: T


# --- Application ---
def _error_body(status: HTTPStatus, error: str, message: str, request: Request,
                details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": status.value,
        "error": error,
        "message": message,
        "details": details,
        "path": request.url.path,
    }


def get_library(request: Request) -> Library:
    return request.app.state.library


def create_app(library: Optional[Library] = None) -> FastAPI:
    """Build the HTTP app. Without an explicit library one is opened on startup from settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.library is None:
            app.state.library = Library(settings.database_file)
        logger.info(f"{settings.app_name} started using {app.state.library.db.db_file}")
        yield

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.library = library

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LendingError)
    async def handle_lending_error(request: Request, exc: LendingError):
        status = STATUS_BY_KIND.get(exc.kind, HTTPStatus.INTERNAL_SERVER_ERROR)
        if exc.kind is None:
            logger.error(f"Untagged lending error on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status.value,
            content=_error_body(status, status.phrase, exc.message, request),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        details: Dict[str, str] = {}
        for err in exc.errors():
            loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
            field = loc[-1] if loc else "body"
            if err.get("type") == "missing" and field in REQUIRED_FIELD_MESSAGES:
                message = REQUIRED_FIELD_MESSAGES[field]
            else:
                message = err.get("msg", "Invalid value")
                if message.startswith(VALUE_ERROR_PREFIX):
                    message = message[len(VALUE_ERROR_PREFIX):]
            details.setdefault(field, message)
        status = HTTPStatus.BAD_REQUEST
        return JSONResponse(
            status_code=status.value,
            content=_error_body(status, "Validation Failed", "Invalid input parameters", request, details),
        )

    # --- Health ---
    @app.get("/health")
    def health(library: Library = Depends(get_library)):
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "db": library.db.ping(),
        }

    # --- Books ---
    @app.post("/api/books", response_model=BookModel)
    def register_book(payload: BookCreateModel, library: Library = Depends(get_library)):
        book = library.add_book(payload.isbn, payload.title, payload.author)
        return BookModel.from_book(book)

    @app.get("/api/books", response_model=List[BookModel])
    def get_books(
        isbn: Optional[str] = Query(default=None),
        with_borrow_history: bool = Query(default=False, alias="withBorrowHistory"),
        library: Library = Depends(get_library),
    ):
        views = library.list_books(isbn=isbn, with_history=with_borrow_history)
        return [BookModel.from_view(view) for view in views]

    @app.post("/api/books/{book_id}/borrow", response_model=LoanModel)
    def borrow_book(book_id: int, payload: BorrowRequestModel, library: Library = Depends(get_library)):
        return LoanModel.from_loan(library.borrow(book_id, payload.borrower_id))

    @app.post("/api/books/{book_id}/return", response_model=LoanModel)
    def return_book(book_id: int, payload: BorrowRequestModel, library: Library = Depends(get_library)):
        return LoanModel.from_loan(library.return_book(book_id, payload.borrower_id))

    # --- Borrowers ---
    @app.post("/api/borrowers", response_model=ApiResponse[BorrowerModel])
    def register_borrower(payload: BorrowerCreateModel, library: Library = Depends(get_library)):
        borrower = library.register_borrower(payload.name, payload.email)
        return ApiResponse[BorrowerModel](
            message="Borrower registered successfully",
            data=BorrowerModel.from_borrower(borrower),
        )

    @app.get("/api/borrowers", response_model=ApiResponse[List[BorrowerModel]])
    def get_borrowers(library: Library = Depends(get_library)):
        return ApiResponse[List[BorrowerModel]](
            message="Borrowers retrieved successfully",
            data=[BorrowerModel.from_borrower(b) for b in library.list_borrowers()],
        )

    @app.get("/api/borrowers/{borrower_id}", response_model=ApiResponse[BorrowerModel])
    def get_borrower(borrower_id: int, library: Library = Depends(get_library)):
        return ApiResponse[BorrowerModel](
            message="Borrower retrieved successfully",
            data=BorrowerModel.from_borrower(library.get_borrower(borrower_id)),
        )

    @app.get("/api/borrowers/{borrower_id}/loans", response_model=ApiResponse[List[LoanModel]])
    def get_borrower_loans(borrower_id: int, library: Library = Depends(get_library)):
        return ApiResponse[List[LoanModel]](
            message="Active loans retrieved successfully",
            data=[LoanModel.from_loan(loan) for loan in library.active_loans(borrower_id)],
        )

    return app


app = create_app()
