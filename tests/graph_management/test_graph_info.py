"""Tests for graph descriptors and version ordering."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from graph_management.graph_info import GraphInfo, is_remote_newer, parse_timestamp
from routegraph_common.errors import GraphInfoParseError

IMPORTED = datetime(2024, 6, 25, 10, 23, 31, tzinfo=UTC)
OSM = datetime(2024, 1, 26, 23, 0, 0, tzinfo=UTC)


class TestParseTimestamp:
    """Tests for parse_timestamp."""

    @pytest.mark.parametrize(
        "raw",
        [
            "2024-06-25T10:23:31Z",
            "2024-06-25T10:23:31+0000",
            "2024-06-25T12:23:31+02:00",
            1719311011000,
            datetime(2024, 6, 25, 10, 23, 31),
        ],
    )
    def test_accepted_formats(self, raw: object) -> None:
        """ISO strings, epoch milliseconds and naive datetimes resolve to UTC."""
        assert parse_timestamp(raw) == IMPORTED

    @pytest.mark.parametrize("raw", ["yesterday", True, 1.5, None])
    def test_rejected_values(self, raw: object) -> None:
        """Values that are not timestamps raise ValueError."""
        with pytest.raises(ValueError):  # noqa: PT011
            parse_timestamp(raw)


class TestGraphInfo:
    """Tests for GraphInfo parsing and persistence."""

    def test_camel_case_keys(self) -> None:
        """Descriptors published with camelCase keys are understood."""
        info = GraphInfo.from_yaml(
            "importDate: '2024-06-25T10:23:31+0000'\n"
            "osmDate: '2024-01-26T23:00:00+0000'\n"
            "profileProperties:\n"
            "  encoder_name: driving-car\n"
        )
        assert info.import_date == IMPORTED
        assert info.osm_date == OSM
        assert info.profile_properties == {"encoder_name": "driving-car"}
        assert info.archive_checksum is None

    def test_write_and_read(self, tmp_path: Path) -> None:
        """A written descriptor reads back equal, checksum included."""
        info = GraphInfo(IMPORTED, OSM, {"elevation": True}, archive_checksum="ABC")
        path = tmp_path / "graph_info.yml"
        info.write(path)
        loaded = GraphInfo.read(path)
        assert loaded == info
        assert loaded is not None
        assert loaded.archive_checksum == "abc"

    def test_read_missing_file(self, tmp_path: Path) -> None:
        """A missing descriptor file reads as None."""
        assert GraphInfo.read(tmp_path / "graph_info.yml") is None

    def test_read_invalid_encoding(self, tmp_path: Path) -> None:
        """Bytes that are not UTF-8 raise GraphInfoParseError."""
        path = tmp_path / "graph_info.yml"
        path.write_bytes(b"import_date: \xff\xfe\n")
        with pytest.raises(GraphInfoParseError, match="not valid UTF-8"):
            GraphInfo.read(path)

    def test_properties_ignored_by_equality(self) -> None:
        """Only the dates identify a build."""
        assert GraphInfo(IMPORTED, OSM, {"a": 1}) == GraphInfo(IMPORTED, OSM, {"b": 2})

    @pytest.mark.parametrize(
        ("text", "match"),
        [
            ("- a\n- b\n", "not a mapping"),
            ("osm_date: '2024-01-26T23:00:00Z'\n", "lacks import_date"),
            ("import_date: never\nosm_date: never\n", "invalid date"),
            ("import_date: [unclosed\n", "not valid YAML"),
            (
                "import_date: '2024-06-25T10:23:31Z'\n"
                "osm_date: '2024-01-26T23:00:00Z'\n"
                "profile_properties: 3\n",
                "not a mapping",
            ),
        ],
    )
    def test_malformed(self, text: str, match: str) -> None:
        """Malformed descriptors raise GraphInfoParseError."""
        with pytest.raises(GraphInfoParseError, match=match):
            GraphInfo.from_yaml(text, source="remote.yml")


class TestVersionOrdering:
    """Tests for is_remote_newer."""

    def test_newer_import_date(self) -> None:
        """A later import date is newer."""
        local = GraphInfo(IMPORTED, OSM)
        remote = GraphInfo(IMPORTED.replace(day=26), OSM)
        assert is_remote_newer(local, remote) is True
        assert is_remote_newer(remote, local) is False

    def test_osm_date_breaks_ties(self) -> None:
        """With equal import dates the OSM date decides."""
        local = GraphInfo(IMPORTED, OSM)
        remote = GraphInfo(IMPORTED, OSM.replace(day=27))
        assert is_remote_newer(local, remote) is True

    def test_equal_dates_are_not_newer(self) -> None:
        """Republishing the same build does not trigger a download."""
        info = GraphInfo(IMPORTED, OSM)
        assert is_remote_newer(info, GraphInfo(IMPORTED, OSM, {"x": 1})) is False

    def test_missing_descriptors(self) -> None:
        """A missing local descriptor loses, a missing remote one never wins."""
        info = GraphInfo(IMPORTED, OSM)
        assert is_remote_newer(None, info) is True
        assert is_remote_newer(info, None) is False
        assert is_remote_newer(None, None) is False
