"""Exception hierarchy for graph management.

Every error raised by routegraph derives from :class:`GraphManagementError`,
which carries a stable :class:`ErrorCode`, an HTTP-style status, the log
level the error should be reported at and a context mapping. Errors convert
to RFC 9457 Problem Details via :meth:`GraphManagementError.to_problem_details`.

Examples
--------
>>> from routegraph_common.errors import RepoUnreachableError
>>> err = RepoUnreachableError("HTTP 503", context={"profile": "car"})
>>> str(err)
'RepoUnreachableError[repo-unreachable]: HTTP 503'
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from routegraph_common.errors.codes import ErrorCode, get_type_uri
from routegraph_common.problem_details import build_problem_details

if TYPE_CHECKING:
    from collections.abc import Mapping

    from routegraph_common.problem_details import JsonValue, ProblemDetails

__all__ = [
    "ExtractionError",
    "GraphInfoParseError",
    "GraphManagementError",
    "IncompleteDownloadError",
    "InconsistentLocalStateError",
    "LockedOperationError",
    "RepoUnreachableError",
    "SettingsError",
]


class GraphManagementError(Exception):
    """Base exception for all graph management errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    code : ErrorCode, optional
        Stable error code. Defaults to ``ErrorCode.RUNTIME_ERROR``.
    http_status : int, optional
        Status used in Problem Details payloads. Defaults to 500.
    log_level : int, optional
        Level at which callers should log this error. Defaults to ``logging.ERROR``.
    cause : Exception | None, optional
        Underlying exception, stored as ``__cause__``. Defaults to None.
    context : Mapping[str, object] | None, optional
        Additional context (profile name, paths, URLs). Defaults to None.

    Attributes
    ----------
    message : str
        Human-readable error message.
    code : ErrorCode
        Error code enum value.
    http_status : int
        HTTP status code for Problem Details responses.
    log_level : int
        Logging level for error logging.
    context : dict[str, object]
        Additional context dictionary for error details.
    """

    def __init__(  # noqa: PLR0913
        self,
        message: str,
        *,
        code: ErrorCode = ErrorCode.RUNTIME_ERROR,
        http_status: int = 500,
        log_level: int = logging.ERROR,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.log_level = log_level
        self.context: dict[str, object] = dict(context) if context else {}
        if cause is not None:
            self.__cause__ = cause

    def to_problem_details(
        self,
        instance: str | None = None,
        title: str | None = None,
    ) -> ProblemDetails:
        """Convert to RFC 9457 Problem Details JSON.

        Parameters
        ----------
        instance : str | None, optional
            URI identifying the specific occurrence. Defaults to None.
        title : str | None, optional
            Short summary. Defaults to the exception class name.

        Returns
        -------
        ProblemDetails
            Problem Details object with type, title, status, detail, code,
            instance and the context as extensions.
        """
        extensions = {key: _jsonable(value) for key, value in self.context.items()}
        return build_problem_details(
            problem_type=get_type_uri(self.code),
            title=title or self.__class__.__name__,
            status=self.http_status,
            detail=self.message,
            instance=instance or "urn:routegraph:error",
            code=self.code.value,
            extensions=cast("Mapping[str, JsonValue] | None", extensions or None),
        )

    def __str__(self) -> str:
        """Return ``"<ClassName>[<code>]: <message>"`` plus the cause type if any."""
        base = f"{self.__class__.__name__}[{self.code.value}]: {self.message}"
        if self.__cause__:
            base += f" (caused by: {type(self.__cause__).__name__})"
        return base


def _jsonable(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    return str(value)


class RepoUnreachableError(GraphManagementError):
    """Remote repository unreachable or returned unusable metadata.

    Transient by nature: the update cycle logs it and tries again on the
    next tick. Uses error code REPO_UNREACHABLE and HTTP status 503.
    """

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.REPO_UNREACHABLE,
            http_status=503,
            log_level=logging.WARNING,
            cause=cause,
            context=context,
        )


class GraphInfoParseError(RepoUnreachableError):
    """Graph descriptor side-car file is malformed.

    Subclasses :class:`RepoUnreachableError` so a malformed *remote*
    descriptor is handled like any other remote failure; callers reading a
    local descriptor catch this class directly.
    """

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(message, cause=cause, context=context)
        self.code = ErrorCode.GRAPH_INFO_INVALID
        self.http_status = 422


class IncompleteDownloadError(GraphManagementError):
    """Downloaded archive is truncated or fails checksum verification."""

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.INCOMPLETE_DOWNLOAD,
            http_status=502,
            log_level=logging.WARNING,
            cause=cause,
            context=context,
        )


class ExtractionError(GraphManagementError):
    """Downloaded archive could not be unpacked into a staged graph."""

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.EXTRACTION_FAILED,
            http_status=500,
            cause=cause,
            context=context,
        )


class LockedOperationError(GraphManagementError):
    """Operation deferred because of a lock file or a busy profile.

    This is a deferral, not a failure, and is logged at INFO.
    """

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.OPERATION_LOCKED,
            http_status=409,
            log_level=logging.INFO,
            cause=cause,
            context=context,
        )


class InconsistentLocalStateError(GraphManagementError):
    """Local graph directories are in a layout that cannot be classified."""

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.INCONSISTENT_LOCAL_STATE,
            http_status=500,
            log_level=logging.CRITICAL,
            cause=cause,
            context=context,
        )


class SettingsError(GraphManagementError):
    """Runtime settings validation failed.

    Parameters
    ----------
    message : str
        Human-readable error message describing the validation failure.
    errors : list[dict[str, object]] | None, optional
        Validation error dictionaries with field/issue details. Defaults to None.
    cause : Exception | None, optional
        Underlying exception. Defaults to None.
    context : Mapping[str, object] | None, optional
        Additional context dictionary. Defaults to None.
    """

    def __init__(
        self,
        message: str,
        *,
        errors: list[dict[str, object]] | None = None,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        combined_context: dict[str, object] = dict(context or {})
        if errors:
            combined_context.setdefault("validation_errors", [dict(error) for error in errors])
        super().__init__(
            message,
            code=ErrorCode.CONFIGURATION_ERROR,
            http_status=500,
            cause=cause,
            context=combined_context,
        )
