"""Error taxonomy and Problem Details support for routegraph."""

from __future__ import annotations

from routegraph_common.errors.codes import BASE_TYPE_URI, ErrorCode, get_type_uri
from routegraph_common.errors.exceptions import (
    ExtractionError,
    GraphInfoParseError,
    GraphManagementError,
    IncompleteDownloadError,
    InconsistentLocalStateError,
    LockedOperationError,
    RepoUnreachableError,
    SettingsError,
)

__all__ = [
    "BASE_TYPE_URI",
    "ErrorCode",
    "ExtractionError",
    "GraphInfoParseError",
    "GraphManagementError",
    "IncompleteDownloadError",
    "InconsistentLocalStateError",
    "LockedOperationError",
    "RepoUnreachableError",
    "SettingsError",
    "get_type_uri",
]
