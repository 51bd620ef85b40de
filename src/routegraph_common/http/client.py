"""HTTP client with retry strategy support.

:class:`HttpClient` wraps a :class:`requests.Session` with per-client
timeouts, maps transport failures onto :mod:`routegraph_common.http.errors`
and runs every attempt through a :class:`RetryStrategy`. Large archives are
streamed to disk with :meth:`HttpClient.stream_to_file`; a retried stream
starts over from byte zero.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Protocol

import requests

from routegraph_common.http.errors import (
    HttpConnectionError,
    HttpError,
    HttpRateLimitedError,
    HttpRequestError,
    HttpStatusError,
    HttpTimeoutError,
    HttpTlsError,
)
from routegraph_common.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from routegraph_common.http.types import RetryStrategy

__all__ = [
    "HttpClient",
    "HttpSettings",
    "RequestOptions",
    "StreamResult",
]

logger = get_logger(__name__)

_BODY_EXCERPT_CHARS = 200
_DEFAULT_CHUNK_SIZE = 1 << 20


class _Response(Protocol):
    status_code: int
    headers: Mapping[str, str]

    @property
    def text(self) -> str: ...

    @property
    def content(self) -> bytes: ...

    def iter_content(self, chunk_size: int) -> Iterator[bytes]: ...

    def close(self) -> None: ...


class _Session(Protocol):
    def request(self, method: str, url: str, **kwargs: object) -> _Response: ...


@dataclass(frozen=True)
class HttpSettings:
    """HTTP client configuration settings.

    Attributes
    ----------
    service : str
        Service name for logging.
    base_url : str
        Base URL for relative request paths.
    read_timeout_s : float
        Read timeout in seconds. Defaults to 30.0.
    connect_timeout_s : float
        Connection timeout in seconds. Defaults to 10.0.
    user_agent : str
        ``User-Agent`` header sent with every request.
    """

    service: str
    base_url: str
    read_timeout_s: float = 30.0
    connect_timeout_s: float = 10.0
    user_agent: str = "routegraph"


@dataclass(frozen=True)
class RequestOptions:
    """Optional HTTP request parameters."""

    _ALLOWED_KEYS = frozenset({"params", "headers", "timeout_s", "stream"})

    params: dict[str, str] | None = None
    headers: dict[str, str] | None = None
    timeout_s: float | None = None
    stream: bool = False

    def with_overrides(self, overrides: Mapping[str, object]) -> RequestOptions:
        """Return a new options object with overrides applied.

        Raises
        ------
        TypeError
            If any key in ``overrides`` is not an option field.
        """
        if not overrides:
            return self
        unexpected = set(overrides) - self._ALLOWED_KEYS
        if unexpected:
            msg = f"Unexpected request option(s): {sorted(unexpected)}"
            raise TypeError(msg)
        return replace(self, **{k: overrides[k] for k in overrides})


@dataclass(frozen=True)
class StreamResult:
    """Outcome of :meth:`HttpClient.stream_to_file`.

    Attributes
    ----------
    bytes_written : int
        Number of bytes written to the target file.
    expected_length : int | None
        ``Content-Length`` announced by the server, if any.
    content_encoding : str | None
        ``Content-Encoding`` of the response. When set, ``expected_length``
        counts encoded bytes and cannot be compared with ``bytes_written``.
    """

    bytes_written: int
    expected_length: int | None
    content_encoding: str | None = None


def _map_transport_error(exc: requests.RequestException) -> HttpError:
    if isinstance(exc, requests.exceptions.SSLError):
        return HttpTlsError(str(exc))
    if isinstance(exc, requests.exceptions.Timeout):
        return HttpTimeoutError(str(exc))
    if isinstance(
        exc, (requests.exceptions.ConnectionError, requests.exceptions.ChunkedEncodingError)
    ):
        return HttpConnectionError(str(exc))
    return HttpRequestError(str(exc))


def _parse_content_length(headers: Mapping[str, str]) -> int | None:
    raw = headers.get("Content-Length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class HttpClient:
    """HTTP client with configurable retry strategies.

    Parameters
    ----------
    settings : HttpSettings
        Client configuration settings.
    retry_strategy : RetryStrategy | None, optional
        Strategy for transient failures. ``None`` means a single attempt.
    session : requests.Session | None, optional
        Session to send requests with. A new session is created if omitted.
    """

    def __init__(
        self,
        settings: HttpSettings,
        retry_strategy: RetryStrategy[object] | None = None,
        session: requests.Session | _Session | None = None,
    ) -> None:
        self.s = settings
        self.retry_strategy = retry_strategy
        self._session: _Session = session if session is not None else requests.Session()

    def request(
        self,
        method: str,
        url: str,
        *,
        options: RequestOptions | None = None,
        **overrides: object,
    ) -> _Response:
        """Send a request and return the response, retrying per strategy.

        Parameters
        ----------
        method : str
            HTTP method. Uppercased automatically.
        url : str
            Absolute URL, or a path relative to ``settings.base_url``.
        options : RequestOptions | None, optional
            Request options. Defaults to None.
        **overrides : object
            Overrides applied on top of ``options``.

        Returns
        -------
        _Response
            Response with a status code below 400. Streamed responses must be
            closed by the caller.

        Raises
        ------
        HttpError
            Final transport or status error after retries.
        """
        method = method.upper()
        full_url = self._build_url(url)
        resolved = self._resolve_options(options, overrides)

        def _attempt() -> object:
            return self._send(method, full_url, resolved)

        return self._run(method, _attempt)  # type: ignore[return-value]

    def get_bytes(self, url: str, **overrides: object) -> bytes:
        """GET ``url`` and return the body."""
        response = self.request("GET", url, **overrides)
        try:
            return response.content
        finally:
            response.close()

    def stream_to_file(
        self, url: str, target: Path, *, chunk_size: int = _DEFAULT_CHUNK_SIZE
    ) -> StreamResult:
        """Stream the body of ``url`` into ``target``.

        ``target`` is truncated on every attempt. The caller decides under
        which name the file becomes visible.

        Returns
        -------
        StreamResult
            Bytes written and the announced length.

        Raises
        ------
        HttpError
            Final transport or status error after retries.
        """
        full_url = self._build_url(url)
        options = RequestOptions(stream=True)

        def _attempt() -> object:
            response = self._send("GET", full_url, options)
            written = 0
            try:
                with target.open("wb") as fh:
                    for chunk in response.iter_content(chunk_size):
                        if chunk:
                            fh.write(chunk)
                            written += len(chunk)
            except requests.RequestException as exc:
                raise _map_transport_error(exc) from exc
            finally:
                response.close()
            return StreamResult(
                written,
                _parse_content_length(response.headers),
                response.headers.get("Content-Encoding"),
            )

        result = self._run("GET", _attempt)
        logger.log_io(
            "Streamed response to file",
            operation="http_stream",
            io_type="write",
            size_bytes=result.bytes_written,  # type: ignore[attr-defined]
            service=self.s.service,
            url=full_url,
        )
        return result  # type: ignore[return-value]

    def close(self) -> None:
        """Close the underlying session if it supports closing."""
        close = getattr(self._session, "close", None)
        if callable(close):
            close()

    def _run(self, method: str, attempt: Callable[[], object]) -> object:
        strategy = self._policy_strategy_for(method)
        if strategy is None:
            return attempt()
        return strategy.run(attempt)

    def _policy_strategy_for(self, method: str) -> RetryStrategy[object] | None:
        if self.retry_strategy is None:
            return None
        if hasattr(self.retry_strategy, "for_method"):
            return self.retry_strategy.for_method(method)
        return self.retry_strategy

    def _send(self, method: str, url: str, options: RequestOptions) -> _Response:
        timeout = (
            (self.s.connect_timeout_s, options.timeout_s)
            if options.timeout_s is not None
            else (self.s.connect_timeout_s, self.s.read_timeout_s)
        )
        headers = self._merge_headers(options.headers)
        try:
            response = self._session.request(
                method,
                url,
                params=options.params,
                headers=headers,
                timeout=timeout,
                stream=options.stream,
            )
        except requests.RequestException as exc:
            raise _map_transport_error(exc) from exc
        if response.status_code >= 400:  # noqa: PLR2004
            excerpt = None if options.stream else response.text[:_BODY_EXCERPT_CHARS]
            response_headers = dict(response.headers)
            response.close()
            if response.status_code == 429:  # noqa: PLR2004
                raise HttpRateLimitedError(response.status_code, excerpt, response_headers)
            raise HttpStatusError(response.status_code, excerpt, response_headers)
        return response

    @staticmethod
    def _resolve_options(
        options: RequestOptions | None, overrides: Mapping[str, object]
    ) -> RequestOptions:
        base = options or RequestOptions()
        if overrides:
            base = base.with_overrides(overrides)
        return base

    def _build_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.s.base_url.rstrip('/')}/{url.lstrip('/')}"

    def _merge_headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        merged = {"User-Agent": self.s.user_agent}
        if headers:
            merged.update(headers)
        return merged
