"""Internal data models for books-bdd.

All models use Pydantic v2. Book mirrors the wire contract of the Books API;
the rest describe endpoints, captured responses and runtime configuration.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Book Entity
# =============================================================================


# Integer literal as written in a scenario step (optional sign, digits only).
INT_LITERAL = re.compile(r"^[+-]?\d+$")


def parse_page_count(text: str | None) -> int | str | None:
    """Convert scenario text into the page count union.

    Blank text or the literal ``null`` means the field is absent. An integer
    literal becomes an int. Anything else is kept as a malformed string so it
    reaches the server unchanged.
    """
    if text is None:
        return None
    stripped = text.strip()
    if not stripped or stripped.lower() == "null":
        return None
    if INT_LITERAL.match(stripped):
        return int(stripped)
    return text


class Book(BaseModel):
    """A Book resource as sent to and returned by the Books API.

    page_count is loosely typed on purpose: None leaves the field out of the
    request body, an int is a well-formed count, and a str is a malformed
    value for negative tests. Unknown response fields are ignored; fields of
    the wrong type fail validation.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int | None = Field(default=None, description="Server-assigned identifier")
    title: str | None = Field(default=None, description="Book title")
    description: str | None = Field(default=None, description="Book description")
    excerpt: str | None = Field(default=None, description="Short excerpt")
    page_count: int | str | None = Field(
        default=None, alias="pageCount", description="Page count (absent, int, or malformed)"
    )
    publish_date: str | None = Field(
        default=None, alias="publishDate", description="ISO 8601 date, or malformed for negative tests"
    )

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON body for this book, with unset fields dropped."""
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# Endpoints
# =============================================================================


_PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


class EndpointDescriptor(BaseModel):
    """A URL path template with zero or one named placeholder.

    Example:
        books = EndpointDescriptor(template="/api/v1/Books")
        book_by_id = books.item("id")          # /api/v1/Books/{id}
        book_by_id.render({"id": 7})           # /api/v1/Books/7
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    template: str = Field(description="Path template, e.g. /api/v1/Books/{id}")

    @field_validator("template")
    @classmethod
    def validate_template(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("template must be an absolute path starting with '/'")
        if len(_PLACEHOLDER_PATTERN.findall(v)) > 1:
            raise ValueError("template may contain at most one placeholder")
        return v

    @property
    def placeholder(self) -> str | None:
        """Name of the placeholder, or None for a plain path."""
        match = _PLACEHOLDER_PATTERN.search(self.template)
        return match.group(1) if match else None

    def item(self, name: str = "id") -> EndpointDescriptor:
        """Derive the single-item path (``template/{name}``) from a collection path."""
        if self.placeholder is not None:
            raise ValueError(f"'{self.template}' already has a placeholder")
        return EndpointDescriptor(template=f"{self.template.rstrip('/')}/{{{name}}}")

    def render(self, params: dict[str, Any] | None = None) -> str:
        """Substitute the placeholder and return the concrete path.

        Values are percent-encoded so they stay inside one path segment.

        Raises:
            ValueError: If the placeholder has no value or an unknown name is given.
        """
        params = params or {}
        name = self.placeholder
        unexpected = set(params) - ({name} if name else set())
        if unexpected:
            raise ValueError(
                f"Unknown path parameter(s) {sorted(unexpected)} for '{self.template}'"
            )
        if name is None:
            return self.template
        if name not in params:
            raise ValueError(f"Missing path parameter '{name}' for '{self.template}'")
        return self.template.replace(f"{{{name}}}", quote(str(params[name]), safe=""))


# =============================================================================
# Captured Responses
# =============================================================================


class CapturedResponse(BaseModel):
    """One HTTP response captured from the Books API.

    Header keys are lowercase. Header values are arrays for repeated headers.
    body holds the parsed JSON value when body_is_json is True; text always
    holds the raw decoded body.
    """

    model_config = ConfigDict(extra="forbid")

    method: str = Field(description="HTTP method of the request")
    url: str = Field(description="Full URL the request was sent to")
    status_code: int = Field(description="HTTP status code")
    headers: dict[str, list[str]] = Field(
        default_factory=dict, description="Response headers (lowercase keys, array values)"
    )
    body: Any = Field(default=None, description="Parsed JSON body")
    body_is_json: bool = Field(default=False, description="Whether body was parsed from JSON")
    text: str = Field(default="", description="Raw response body")
    elapsed_ms: float = Field(description="Response time in milliseconds")


# =============================================================================
# Runtime Configuration Models
# =============================================================================


class TargetConfig(BaseModel):
    """Where and how requests are sent."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(description="Base URL of the Books API")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Headers sent with every request"
    )
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")


class ApiConfig(BaseModel):
    """The ``api`` section of the runtime configuration file."""

    model_config = ConfigDict(extra="forbid")

    base_url: str | None = Field(default=None, description="Base URL of the Books API")
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers to include (supports ${ENV_VAR} substitution)",
    )
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")


class RuntimeConfig(BaseModel):
    """Top-level runtime configuration file structure."""

    model_config = ConfigDict(extra="forbid")

    api: ApiConfig = Field(default_factory=ApiConfig, description="Books API settings")
