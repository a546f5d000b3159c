"""Executor - Sends requests to the Books API and captures responses.

The Executor issues exactly one HTTP request per call and stores the result
in its RequestContext, overwriting whatever was there. Non-2xx responses are
captured like any other; only a request that cannot be sent at all raises.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx
from pydantic import BaseModel

from books_bdd.context import RequestContext
from books_bdd.models import Book, CapturedResponse, EndpointDescriptor, TargetConfig

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"


class ExecutorError(Exception):
    """Base class for executor errors."""


class RequestError(ExecutorError):
    """Raised when a request cannot be sent (connection error, timeout, bad URL)."""


def _sanitize_header_value(value: str) -> str:
    """Replace non-ASCII characters with '?' (RFC 7230 headers are ASCII)."""
    return value.encode("ascii", errors="replace").decode("ascii")


def encode_body(body: Any) -> bytes:
    """Encode a request body.

    str and bytes are sent verbatim, which is how malformed payloads reach the
    server. Pydantic models are serialized by alias with None fields dropped;
    anything else goes through json.dumps.
    """
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, Book):
        payload: Any = body.to_wire()
    elif isinstance(body, BaseModel):
        payload = body.model_dump(mode="json", by_alias=True, exclude_none=True)
    else:
        payload = body
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


class Executor:
    """Executes requests against one target and captures responses.

    Usage:
        context = RequestContext()
        with Executor(target_config, context) as executor:
            executor.execute_get(BOOK_BY_ID_PATH, {"id": 1})
            context.response.status_code
    """

    def __init__(
        self,
        target: TargetConfig,
        context: RequestContext,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            target: Base URL, default headers and timeout.
            context: Where captured responses are stored.
            transport: Optional httpx transport (tests use httpx.MockTransport).

        Raises:
            RequestError: If the base URL cannot be parsed.
        """
        self._target = target
        self._context = context
        headers = {k: _sanitize_header_value(v) for k, v in target.headers.items()}
        try:
            self._client = httpx.Client(
                base_url=target.base_url,
                headers=headers,
                timeout=target.timeout,
                transport=transport,
            )
        except httpx.InvalidURL as e:
            raise RequestError(f"Invalid base URL '{target.base_url}': {e}") from e

    def __enter__(self) -> "Executor":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    @property
    def context(self) -> RequestContext:
        return self._context

    @property
    def target(self) -> TargetConfig:
        return self._target

    # -------------------------------------------------------------------------
    # Request operations
    # -------------------------------------------------------------------------

    def execute_get(
        self,
        endpoint: EndpointDescriptor,
        path_params: dict[str, Any] | None = None,
    ) -> CapturedResponse:
        """GET the endpoint with path parameters substituted."""
        return self._send("GET", self._render(endpoint, path_params))

    def execute_post(self, endpoint: EndpointDescriptor, body: Any) -> CapturedResponse:
        """POST a JSON body. A str or bytes body is sent as-is."""
        return self._send(
            "POST", self._render(endpoint), content=encode_body(body), json_content=True
        )

    def execute_put(
        self,
        endpoint: EndpointDescriptor,
        body: Any,
        path_params: dict[str, Any] | None = None,
    ) -> CapturedResponse:
        """PUT a JSON body to the endpoint with path parameters substituted."""
        return self._send(
            "PUT", self._render(endpoint, path_params), content=encode_body(body), json_content=True
        )

    def execute_delete(self, base_endpoint: EndpointDescriptor, resource_id: Any) -> CapturedResponse:
        """DELETE ``base_endpoint/resource_id``.

        The id is appended by plain concatenation rather than placeholder
        substitution, so it is not percent-encoded.
        """
        return self._send("DELETE", f"{base_endpoint.template}/{resource_id}", json_content=True)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _render(
        self,
        endpoint: EndpointDescriptor,
        path_params: dict[str, Any] | None = None,
    ) -> str:
        """Clear the context, then render the endpoint path.

        Raises:
            ValueError: If a path parameter is missing or unknown.
        """
        self._context.reset()
        return endpoint.render(path_params)

    def _send(
        self,
        method: str,
        path: str,
        content: bytes | None = None,
        json_content: bool = False,
    ) -> CapturedResponse:
        """Send one request and capture the response.

        The context is cleared first so that a request which fails to send
        never leaves an earlier response behind for validation.

        Raises:
            RequestError: If the request cannot be sent.
        """
        self._context.reset()

        headers = {"Accept": JSON_MEDIA_TYPE}
        if json_content:
            headers["Content-Type"] = JSON_MEDIA_TYPE

        try:
            request = self._client.build_request(method, path, headers=headers, content=content)
        except httpx.InvalidURL as e:
            raise RequestError(f"{method} {path} has an invalid URL: {e}") from e

        logger.info("%s %s", method, request.url)
        if content is not None:
            logger.debug("Request body: %s", content.decode("utf-8", errors="replace"))

        try:
            start_time = time.perf_counter()
            http_response = self._client.send(request)
            elapsed_ms = (time.perf_counter() - start_time) * 1000
        except httpx.TimeoutException as e:
            raise RequestError(f"{method} {request.url} request timeout: {e}") from e
        except httpx.ConnectError as e:
            raise RequestError(f"{method} {request.url} connection error: {e}") from e
        except httpx.RequestError as e:
            raise RequestError(f"{method} {request.url} request error: {e}") from e

        captured = self._convert_response(method, http_response, elapsed_ms)
        self._context.capture(captured)

        logger.info(
            "%s %s -> %d (%.0f ms)", method, captured.url, captured.status_code, elapsed_ms
        )
        if captured.text:
            logger.debug("Response body: %s", captured.text)
        return captured

    def _convert_response(
        self,
        method: str,
        response: httpx.Response,
        elapsed_ms: float,
    ) -> CapturedResponse:
        """Convert an httpx Response to a CapturedResponse."""
        # Headers - lowercase keys, list values
        headers: dict[str, list[str]] = {}
        for key, value in response.headers.multi_items():
            headers.setdefault(key.lower(), []).append(value)

        body: Any = None
        body_is_json = False
        content_type = response.headers.get("content-type", "")
        if response.content and "json" in content_type.lower():
            try:
                body = response.json()
                body_is_json = True
            except ValueError:
                # Not valid JSON despite content-type; text still carries it
                body = None

        return CapturedResponse(
            method=method,
            url=str(response.request.url),
            status_code=response.status_code,
            headers=headers,
            body=body,
            body_is_json=body_is_json,
            text=response.text,
            elapsed_ms=elapsed_ms,
        )
