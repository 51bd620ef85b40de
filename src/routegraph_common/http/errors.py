"""HTTP client exception classes.

Transport failures from :mod:`requests` are mapped onto this hierarchy by
:class:`routegraph_common.http.client.HttpClient`, so retry predicates and
callers never depend on the transport library's exception types.
"""

from __future__ import annotations


class HttpError(Exception):
    """Base exception for all HTTP client errors."""


class HttpStatusError(HttpError):
    """Exception raised for HTTP error status codes.

    Parameters
    ----------
    status : int
        HTTP status code.
    body_excerpt : str | None, optional
        Excerpt from response body. Defaults to None.
    headers : dict[str, str] | None, optional
        Response headers. Defaults to None.
    """

    def __init__(
        self,
        status: int,
        body_excerpt: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(f"HTTP {status}: {body_excerpt or ''}")
        self.status = status
        self.headers = headers or {}


class HttpRateLimitedError(HttpStatusError):
    """Exception raised when rate limited (HTTP 429)."""


class HttpTimeoutError(HttpError):
    """Exception raised when request times out."""


class HttpConnectionError(HttpError):
    """Exception raised when connection fails."""


class HttpTlsError(HttpError):
    """Exception raised when TLS/SSL error occurs."""


class HttpRequestError(HttpError):
    """Exception raised for general request errors."""
