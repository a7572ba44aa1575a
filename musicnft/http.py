"""
Shared HTTP plumbing for the backend clients.

Every client either reuses an injected ``httpx.AsyncClient`` or opens one per
call. Transport and status errors are converted into :class:`NetworkFailure`
values, undecodable bodies into :class:`MalformedResponse`, and both are
returned inside a :class:`Result` instead of being raised.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from loguru import logger as default_logger

from musicnft.config import MUSICNFT_HTTP_TIMEOUT
from musicnft.errors import MalformedResponse, NetworkFailure
from musicnft.result import Result


class BaseHTTPService:
    """
    Base class for clients of the toolkit's HTTP backends.

    **Attributes:**
        base_url (str): Base URL of the backend (trailing slashes removed).
        timeout (float): Request timeout in seconds.
    """

    component = "http"

    def __init__(
        self,
        base_url: str = "",
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Any = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else MUSICNFT_HTTP_TIMEOUT
        self._http_client = http_client
        self.logger = logger or default_logger.bind(component=self.component)

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    def _extract_error_details(
        self, response: httpx.Response
    ) -> Dict[str, Any]:
        """
        Pull an error message out of a failed response.

        Understands ``{"detail": ...}``, ``{"error": ...}``,
        ``{"message": ...}`` and plain text bodies.
        """
        error_info: Dict[str, Any] = {
            "status_code": response.status_code,
            "error_detail": None,
            "response_body": None,
        }

        try:
            response_body = response.json()
            error_info["response_body"] = response_body
            if isinstance(response_body, dict):
                for key in ("detail", "error", "message"):
                    if key in response_body:
                        error_info["error_detail"] = str(response_body[key])
                        break
        except (json.JSONDecodeError, ValueError):
            if response.text:
                error_info["error_detail"] = response.text

        return error_info

    def _handle_http_error(
        self, error: httpx.HTTPError, operation: str
    ) -> NetworkFailure:
        """
        Convert an httpx error into a :class:`NetworkFailure`.

        Status errors are classified by status code; 5xx are logged at ERROR,
        4xx at WARNING. Transport errors (timeouts, refused connections) are
        logged at ERROR.
        """
        response = getattr(error, "response", None) if isinstance(
            error, httpx.HTTPStatusError
        ) else None

        if response is not None:
            error_info = self._extract_error_details(response)
            status_code = error_info["status_code"]
            if status_code == 400:
                error_type = "Invalid request"
            elif status_code in (401, 403):
                error_type = "Authorization error"
            elif status_code == 404:
                error_type = "Not found"
            elif 400 <= status_code < 500:
                error_type = "Client error"
            elif status_code >= 500:
                error_type = "Server error"
            else:
                error_type = "HTTP error"

            error_detail = error_info["error_detail"] or str(error)
            if status_code >= 500:
                self.logger.error(
                    f"{operation} failed (HTTP {status_code}): {error_detail}"
                )
            else:
                self.logger.warning(
                    f"{operation} failed (HTTP {status_code}): {error_detail}"
                )
            return NetworkFailure(
                f"{operation} failed: {error_detail}",
                error_type=error_type,
                cause=error,
                details={
                    "status_code": status_code,
                    "url": str(response.request.url),
                    "response_body": error_info["response_body"],
                },
            )

        if isinstance(error, httpx.TimeoutException):
            error_type = "Timeout"
            message = f"{operation} timed out after {self.timeout}s"
        elif isinstance(error, httpx.ConnectError):
            error_type = "Connection error"
            message = f"Failed to connect during {operation}: {error}"
        else:
            error_type = type(error).__name__
            message = f"{operation} failed: {error}"

        self.logger.error(message)
        return NetworkFailure(message, error_type=error_type, cause=error)

    async def _request_json(
        self, method: str, url: str, *, operation: str, **kwargs: Any
    ) -> Result[Any, Exception]:
        """Send a request and decode its JSON body."""
        self.logger.debug(f"{operation}: {method} {url}")
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
        except httpx.HTTPError as e:
            return Result.err(self._handle_http_error(e, operation))

        try:
            return Result.ok(response.json())
        except (json.JSONDecodeError, ValueError) as e:
            self.logger.error(f"{operation} returned a non-JSON body: {e}")
            return Result.err(
                MalformedResponse(
                    f"{operation} returned a non-JSON body",
                    error_type="Decode error",
                    cause=e,
                    details={"url": url},
                )
            )
