"""Graph descriptors and version ordering.

A :class:`GraphInfo` describes one graph build: when it was imported, the
date of the OSM extract it was built from and the profile properties it was
built with. Descriptors are stored as a small YAML side-car file
(``graph_info.yml`` in every graph directory, ``<basename>.yml`` next to a
downloaded archive), so freshness checks never touch the graph itself.

Builds are ordered by ``(import_date, osm_date)``; a remote build is newer
than the local one only if it compares strictly greater.

Examples
--------
>>> from datetime import UTC, datetime
>>> old = GraphInfo(datetime(2024, 6, 25, tzinfo=UTC), datetime(2024, 1, 26, tzinfo=UTC))
>>> new = GraphInfo(datetime(2024, 6, 26, tzinfo=UTC), datetime(2024, 1, 26, tzinfo=UTC))
>>> is_remote_newer(old, new), is_remote_newer(new, new)
(True, False)
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Final

import yaml

from routegraph_common.errors import GraphInfoParseError
from routegraph_common.fs import atomic_write

if TYPE_CHECKING:
    from pathlib import Path

__all__ = [
    "GRAPH_INFO_FILENAME",
    "GraphInfo",
    "VersionDescriptor",
    "is_remote_newer",
    "parse_timestamp",
]

GRAPH_INFO_FILENAME: Final[str] = "graph_info.yml"

_KEY_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "import_date": ("import_date", "importDate"),
    "osm_date": ("osm_date", "osmDate"),
    "profile_properties": ("profile_properties", "profileProperties"),
    "archive_checksum": ("archive_checksum", "archiveChecksum"),
}


def parse_timestamp(value: object) -> datetime:
    """Coerce a side-car timestamp into an aware UTC datetime.

    Accepts datetimes and dates (as produced by ``yaml.safe_load``), ISO-8601
    strings including ``Z`` and ``+0000`` offsets, and integers holding epoch
    milliseconds. Naive values are taken as UTC.

    Raises
    ------
    ValueError
        If ``value`` cannot be interpreted as a timestamp.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, bool):
        msg = f"Not a timestamp: {value!r}"
        raise ValueError(msg)
    elif isinstance(value, int):
        parsed = datetime.fromtimestamp(value / 1000, tz=UTC)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        elif len(text) > 5 and text[-5] in "+-" and text[-4:].isdigit():  # noqa: PLR2004
            text = f"{text[:-2]}:{text[-2:]}"
        parsed = datetime.fromisoformat(text)
    else:
        msg = f"Not a timestamp: {value!r}"
        raise ValueError(msg)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _lookup(data: Mapping[str, object], key: str) -> object:
    for alias in _KEY_ALIASES[key]:
        if alias in data:
            return data[alias]
    return None


@dataclass(frozen=True)
class GraphInfo:
    """Descriptor of one graph build.

    Attributes
    ----------
    import_date : datetime
        When the graph was built (UTC).
    osm_date : datetime
        Timestamp of the source data extract (UTC).
    profile_properties : Mapping[str, object] | None
        Profile configuration the graph was built with. Opaque to the
        lifecycle code and ignored by comparisons.
    archive_checksum : str | None
        SHA-256 hex digest of the graph archive, published by repositories
        that support verification.
    """

    import_date: datetime
    osm_date: datetime
    profile_properties: Mapping[str, object] | None = field(default=None, compare=False)
    archive_checksum: str | None = field(default=None, compare=False)

    @property
    def sort_key(self) -> tuple[datetime, datetime]:
        """Ordering key ``(import_date, osm_date)``."""
        return (self.import_date, self.osm_date)

    def is_newer_than(self, other: GraphInfo | None) -> bool:
        """Return True if this build is strictly newer than ``other``.

        Everything is newer than a missing descriptor.
        """
        if other is None:
            return True
        return self.sort_key > other.sort_key

    @classmethod
    def from_mapping(cls, data: object, *, source: str = "<memory>") -> GraphInfo:
        """Build a descriptor from parsed YAML.

        Raises
        ------
        GraphInfoParseError
            If ``data`` is not a mapping or a required date is missing or invalid.
        """
        if not isinstance(data, Mapping):
            msg = f"Graph info in {source} is not a mapping"
            raise GraphInfoParseError(msg, context={"source": source})
        try:
            import_raw = _lookup(data, "import_date")
            osm_raw = _lookup(data, "osm_date")
            if import_raw is None or osm_raw is None:
                msg = f"Graph info in {source} lacks import_date or osm_date"
                raise GraphInfoParseError(msg, context={"source": source})
            import_date = parse_timestamp(import_raw)
            osm_date = parse_timestamp(osm_raw)
        except ValueError as exc:
            msg = f"Graph info in {source} has an invalid date: {exc}"
            raise GraphInfoParseError(msg, cause=exc, context={"source": source}) from exc
        properties = _lookup(data, "profile_properties")
        if properties is not None and not isinstance(properties, Mapping):
            msg = f"profile_properties in {source} is not a mapping"
            raise GraphInfoParseError(msg, context={"source": source})
        checksum = _lookup(data, "archive_checksum")
        return cls(
            import_date=import_date,
            osm_date=osm_date,
            profile_properties=dict(properties) if properties is not None else None,
            archive_checksum=str(checksum).lower() if checksum else None,
        )

    @classmethod
    def from_yaml(cls, text: str, *, source: str = "<memory>") -> GraphInfo:
        """Parse a descriptor from YAML text.

        Raises
        ------
        GraphInfoParseError
            If the text is not valid YAML or misses required fields.
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            msg = f"Graph info in {source} is not valid YAML"
            raise GraphInfoParseError(msg, cause=exc, context={"source": source}) from exc
        return cls.from_mapping(data, source=source)

    @classmethod
    def read(cls, path: Path) -> GraphInfo | None:
        """Read the descriptor at ``path``; ``None`` if the file does not exist."""
        if not path.is_file():
            return None
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            msg = f"Graph info in {path} is not valid UTF-8"
            raise GraphInfoParseError(msg, cause=exc, context={"source": str(path)}) from exc
        return cls.from_yaml(text, source=str(path))

    def to_mapping(self) -> dict[str, object]:
        """Return the side-car representation."""
        data: dict[str, object] = {
            "import_date": _format_timestamp(self.import_date),
            "osm_date": _format_timestamp(self.osm_date),
        }
        if self.profile_properties is not None:
            data["profile_properties"] = dict(self.profile_properties)
        if self.archive_checksum is not None:
            data["archive_checksum"] = self.archive_checksum
        return data

    def write(self, path: Path) -> None:
        """Write the descriptor atomically to ``path``."""
        atomic_write(path, yaml.safe_dump(self.to_mapping(), sort_keys=False))


VersionDescriptor = GraphInfo


def is_remote_newer(local: GraphInfo | None, remote: GraphInfo | None) -> bool:
    """Return True if ``remote`` should replace ``local``.

    A missing remote descriptor never is; a missing local descriptor always
    loses against an existing remote one. Equal dates are not newer.
    """
    if remote is None:
        return False
    return remote.is_newer_than(local)
