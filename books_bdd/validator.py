"""Validator - Asserts on the response captured in a RequestContext.

Assertion failures raise ResponseMismatch, an AssertionError, so pytest
reports them as test failures. Everything else (no response captured, a field
that does not exist, a bad path expression) raises a distinct error type.

Field paths are JSONPath expressions evaluated with jsonpath-ng. Plain dotted
paths are accepted too and normalized: ``title`` -> ``$.title``,
``items[0].title`` -> ``$.items[0].title``, ``[0].id`` -> ``$[0].id``.
"""

from __future__ import annotations

from typing import Any

from jsonpath_ng import parse as jsonpath_parse
from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError

from books_bdd.context import RequestContext


# =============================================================================
# Exceptions
# =============================================================================


class ValidatorError(Exception):
    """Base class for validator errors."""


class JSONPathError(ValidatorError):
    """Invalid field path expression."""


class FieldNotFoundError(ValidatorError, LookupError):
    """The field path matched nothing in the response body.

    Distinct from a field that exists with value null.
    """

    def __init__(self, path: str, reason: str = "field not found in response") -> None:
        super().__init__(f"{reason}: {path}")
        self.path = path


class ResponseMismatch(AssertionError):
    """A status code or field value differs from what was expected."""

    def __init__(self, subject: str, expected: Any, actual: Any, message: str | None = None) -> None:
        self.subject = subject
        self.expected = expected
        self.actual = actual
        super().__init__(
            message
            or f"{subject} - expected {_describe(expected)}, got {_describe(actual)}"
        )


def _describe(value: Any) -> str:
    return f"{value!r} ({type(value).__name__})"


def json_equal(expected: Any, actual: Any) -> bool:
    """Compare two JSON values with exact types.

    1 and 1.0 differ, as do 1 and True, and "1" and 1. Objects and arrays are
    compared recursively.
    """
    if type(expected) is not type(actual):
        return False
    if isinstance(expected, dict):
        return expected.keys() == actual.keys() and all(
            json_equal(expected[key], actual[key]) for key in expected
        )
    if isinstance(expected, list):
        return len(expected) == len(actual) and all(
            json_equal(e, a) for e, a in zip(expected, actual)
        )
    return expected == actual


def _normalize_path(path: str) -> str:
    """Turn a dotted field path into a JSONPath expression."""
    path = path.strip()
    if not path:
        raise JSONPathError("Field path must not be empty")
    if path.startswith("$"):
        return path
    if path.startswith("["):
        return "$" + path
    return "$." + path


def _is_multi_path(path: str) -> bool:
    """True for paths that can match several fields (wildcards, recursion, slices)."""
    return "*" in path or ".." in path or ":" in path


# =============================================================================
# Validator
# =============================================================================


class ResponseValidator:
    """Checks the response currently held by a RequestContext.

    Usage:
        validator = ResponseValidator(context)
        validator.validate_status_code(200)
        validator.validate_field("title", "Dune")
        validator.validate_field_not_null("id")
    """

    def __init__(self, context: RequestContext) -> None:
        self._context = context
        # Cache compiled JSONPath expressions
        self._jsonpath_cache: dict[str, Any] = {}

    @property
    def context(self) -> RequestContext:
        return self._context

    def validate_status_code(self, expected: int) -> None:
        """Assert the captured status code.

        Raises:
            NoResponseError: If no request was made.
            ResponseMismatch: If the status code differs.
        """
        actual = self._context.response.status_code
        if actual != expected:
            raise ResponseMismatch(
                "status code",
                expected,
                actual,
                f"Status code validation failed - expected {expected}, got {actual}",
            )

    def extract_field(self, field_path: str) -> Any:
        """Return the value at field_path in the response body.

        Paths with wildcards or recursive descent return a list of every match;
        other paths return the single matched value, which may be None for a
        JSON null.

        Raises:
            NoResponseError: If no request was made.
            FieldNotFoundError: If the path matches nothing or the body is not JSON.
            JSONPathError: If the path is syntactically invalid.
        """
        response = self._context.response
        if not response.body_is_json:
            raise FieldNotFoundError(field_path, "response body is not JSON, cannot read field")

        matches = self._expand_jsonpath(response.body, field_path)
        if not matches:
            raise FieldNotFoundError(field_path)
        if _is_multi_path(field_path):
            return [value for _, value in matches]
        return matches[0][1]

    def validate_field(self, field_path: str, expected_value: Any) -> None:
        """Assert a field equals expected_value, type included.

        Raises:
            NoResponseError: If no request was made.
            FieldNotFoundError: If the field does not exist.
            ResponseMismatch: If the value or its type differs.
        """
        actual = self.extract_field(field_path)
        if not json_equal(expected_value, actual):
            raise ResponseMismatch(f"Field validation failed for: {field_path}", expected_value, actual)

    def validate_field_not_null(self, field_path: str) -> None:
        """Assert a field exists and is not null.

        Raises:
            NoResponseError: If no request was made.
            FieldNotFoundError: If the field does not exist.
            ResponseMismatch: If the field is null.
        """
        actual = self.extract_field(field_path)
        if actual is None:
            raise ResponseMismatch(
                field_path, "not null", actual, f"Field should not be null: {field_path}"
            )

    def _expand_jsonpath(self, body: Any, path: str) -> list[tuple[str, Any]]:
        """Expand a field path against a body.

        Returns:
            List of (concrete_path, value) tuples for all matches.

        Raises:
            JSONPathError: If path is syntactically invalid.
        """
        if path not in self._jsonpath_cache:
            expression = _normalize_path(path)
            try:
                self._jsonpath_cache[path] = jsonpath_parse(expression)
            except (JsonPathLexerError, JsonPathParserError) as e:
                raise JSONPathError(f"Invalid field path '{path}': {e}") from e

        compiled = self._jsonpath_cache[path]
        matches = compiled.find(body)

        return [(str(match.full_path), match.value) for match in matches]
