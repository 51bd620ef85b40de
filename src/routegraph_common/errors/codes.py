"""Error code registry and type URIs for Problem Details.

Codes are kebab-case and stable: operators grep for them in logs and the
``routegraph status`` output reports them.

Examples
--------
>>> from routegraph_common.errors.codes import ErrorCode, get_type_uri
>>> get_type_uri(ErrorCode.REPO_UNREACHABLE)
'https://routegraph.dev/problems/repo-unreachable'
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

__all__ = [
    "BASE_TYPE_URI",
    "ErrorCode",
    "get_type_uri",
]

BASE_TYPE_URI: Final[str] = "https://routegraph.dev/problems"


class ErrorCode(StrEnum):
    """Stable error codes for routegraph exceptions.

    Attributes
    ----------
    REPO_UNREACHABLE
        Remote repository could not be reached or returned unusable metadata.
    GRAPH_INFO_INVALID
        A graph descriptor side-car file could not be parsed.
    INCOMPLETE_DOWNLOAD
        A downloaded archive is truncated or fails checksum verification.
    EXTRACTION_FAILED
        A downloaded archive could not be unpacked.
    OPERATION_LOCKED
        An operation was deferred by a lock file or a busy profile.
    INCONSISTENT_LOCAL_STATE
        The on-disk layout of a profile cannot be classified.
    CONFIGURATION_ERROR
        Configuration is invalid.
    RUNTIME_ERROR
        Unclassified failure.
    """

    REPO_UNREACHABLE = "repo-unreachable"
    GRAPH_INFO_INVALID = "graph-info-invalid"
    INCOMPLETE_DOWNLOAD = "incomplete-download"
    EXTRACTION_FAILED = "extraction-failed"
    OPERATION_LOCKED = "operation-locked"
    INCONSISTENT_LOCAL_STATE = "inconsistent-local-state"
    CONFIGURATION_ERROR = "configuration-error"
    RUNTIME_ERROR = "runtime-error"


def get_type_uri(code: ErrorCode) -> str:
    """Return the Problem Details type URI for ``code``.

    Parameters
    ----------
    code : ErrorCode
        Error code enum value.

    Returns
    -------
    str
        Type URI string.
    """
    return f"{BASE_TYPE_URI}/{code.value}"
