"""Books API actions.

Domain operations on the Books resource, each a thin composition of the
Executor (send and capture) and the ResponseValidator (assert on the capture).
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from books_bdd.executor import Executor
from books_bdd.models import Book, CapturedResponse, EndpointDescriptor
from books_bdd.validator import ResponseValidator

logger = logging.getLogger(__name__)

BOOKS_PATH = EndpointDescriptor(template="/api/v1/Books")
BOOK_BY_ID_PATH = BOOKS_PATH.item("id")

# Missing closing brace
MALFORMED_BOOK_JSON = (
    '{ "title": "Test", "description": "Test", "pageCount": 100, '
    '"publishDate": "2025-01-01T00:00:00Z"'
)


class ActionError(Exception):
    """Base class for action layer errors."""


class SchemaError(ActionError):
    """The response body does not have the shape of a Book."""


class BooksApiActions:
    """Add, read, update and delete books, and check the results.

    Every request replaces the response held by the executor's context; the
    validate_* methods check whatever that context currently holds.

    Usage:
        context = RequestContext()
        with Executor(target, context) as executor:
            books = BooksApiActions(executor, ResponseValidator(context))
            books.get_book_by_id(1)
            books.validate_status_code(200)
            books.validate_book_details(1)
    """

    def __init__(self, executor: Executor, validator: ResponseValidator) -> None:
        if executor.context is not validator.context:
            raise ValueError("executor and validator must share one RequestContext")
        self._executor = executor
        self._validator = validator

    @property
    def executor(self) -> Executor:
        return self._executor

    @property
    def validator(self) -> ResponseValidator:
        return self._validator

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def add_new_book(self, book: Book) -> CapturedResponse:
        return self._executor.execute_post(BOOKS_PATH, book)

    def get_all_books(self) -> CapturedResponse:
        return self._executor.execute_get(BOOKS_PATH)

    def get_book_by_id(self, book_id: Any) -> CapturedResponse:
        """GET one book; a 200 body must deserialize into a Book.

        Raises:
            SchemaError: If the status is 200 and the body is not Book-shaped.
        """
        response = self._executor.execute_get(BOOK_BY_ID_PATH, {"id": book_id})
        if response.status_code == 200:
            self._check_book_shape(response)
        return response

    def update_book_by_id(self, book: Book) -> CapturedResponse:
        if book.id is None:
            raise ValueError("book.id is required to update a book")
        return self._executor.execute_put(BOOK_BY_ID_PATH, book, {"id": book.id})

    def delete_book_by_id(self, book_id: Any) -> CapturedResponse:
        return self._executor.execute_delete(BOOKS_PATH, book_id)

    def add_book_with_malformed_json(self) -> CapturedResponse:
        """POST a JSON document with a missing closing brace, unmodified."""
        return self._executor.execute_post(BOOKS_PATH, MALFORMED_BOOK_JSON)

    # -------------------------------------------------------------------------
    # Validations
    # -------------------------------------------------------------------------

    def validate_status_code(self, expected: int) -> None:
        self._validator.validate_status_code(expected)

    def validate_book_details(self, expected_id: int) -> None:
        self._validator.validate_field("id", expected_id)
        self._validator.validate_field_not_null("title")

    def validate_book_is_updated(
        self,
        title: str,
        description: str,
        excerpt: str,
        page_count: int,
        publish_date: str,
    ) -> None:
        self._validator.validate_field("title", title)
        self._validator.validate_field("description", description)
        self._validator.validate_field("excerpt", excerpt)
        self._validator.validate_field("pageCount", page_count)
        self._validator.validate_field("publishDate", publish_date)

    def _check_book_shape(self, response: CapturedResponse) -> None:
        if not response.body_is_json or not isinstance(response.body, dict):
            raise SchemaError(
                f"Expected a Book object from {response.url}, got: {response.text[:200]!r}"
            )
        try:
            Book.model_validate(response.body)
        except ValidationError as e:
            raise SchemaError(f"Response from {response.url} is not a valid Book: {e}") from e
        logger.debug("Response from %s matches the Book shape", response.url)
