"""Per-profile configuration snapshot used by every graph management component."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlparse

if TYPE_CHECKING:
    from routegraph_common.settings import GraphManagementSettings

__all__ = [
    "GraphManagementRuntimeProperties",
    "GraphRepoType",
    "ProfileIdentity",
]


class GraphRepoType(StrEnum):
    """Repository backend derived from the configured repository URI."""

    HTTP = "http"
    FILESYSTEM = "filesystem"
    NULL = "null"


@dataclass(frozen=True)
class ProfileIdentity:
    """Immutable key of one routing profile's graph.

    Attributes
    ----------
    profile_name : str
        Local profile name; names the graph directories.
    encoder_name : str
        Encoder name; names the remote assets.
    graph_version : str
        Graph format version.
    """

    profile_name: str
    encoder_name: str
    graph_version: str

    def __str__(self) -> str:
        """Return ``profile_name`` or ``profile_name(encoder_name)`` if they differ."""
        if self.encoder_name == self.profile_name:
            return self.profile_name
        return f"{self.profile_name}({self.encoder_name})"


@dataclass(frozen=True)
class GraphManagementRuntimeProperties:
    """Resolved configuration of one profile.

    Built with :meth:`from_settings`; tests construct it directly.
    """

    profile_name: str
    graphs_root_path: Path
    encoder_name: str = ""
    graph_version: str = "1"
    enabled: bool = True
    repo_uri: str = ""
    repo_name: str = ""
    repo_profile_group: str = ""
    repo_coverage: str = ""
    connect_timeout_s: float = 10.0
    read_timeout_s: float = 60.0
    retry_attempts: int = 3
    max_backups: int | None = None

    @classmethod
    def from_settings(
        cls, settings: GraphManagementSettings, profile_name: str
    ) -> GraphManagementRuntimeProperties:
        """Derive the snapshot for ``profile_name``.

        Profile-level repository overrides win over the shared repository
        block; the profile is enabled only if both graph management and the
        profile itself are.

        Raises
        ------
        KeyError
            If ``profile_name`` is not configured.
        """
        profile = settings.profiles[profile_name]
        repo = settings.repository
        overrides = profile.repository
        return cls(
            profile_name=profile_name,
            graphs_root_path=settings.graphs_root_path.absolute(),
            encoder_name=profile.encoder_name or profile_name,
            graph_version=settings.graph_version,
            enabled=settings.enabled and profile.enabled,
            repo_uri=overrides.uri if overrides.uri is not None else repo.uri,
            repo_name=overrides.name if overrides.name is not None else repo.name,
            repo_profile_group=(
                overrides.profile_group
                if overrides.profile_group is not None
                else repo.profile_group
            ),
            repo_coverage=overrides.coverage if overrides.coverage is not None else repo.coverage,
            connect_timeout_s=repo.connect_timeout_s,
            read_timeout_s=repo.read_timeout_s,
            retry_attempts=repo.retry_attempts,
            max_backups=settings.max_backups,
        )

    @property
    def identity(self) -> ProfileIdentity:
        """Identity key of this profile."""
        return ProfileIdentity(
            self.profile_name, self.encoder_name or self.profile_name, self.graph_version
        )

    @property
    def derived_repo_type(self) -> GraphRepoType:
        """Backend selected by the repository URI."""
        uri = self.repo_uri.strip()
        if not uri:
            return GraphRepoType.NULL
        if uri.lower().startswith(("http://", "https://")):
            return GraphRepoType.HTTP
        return GraphRepoType.FILESYSTEM

    @property
    def derived_repo_base_url(self) -> str | None:
        """Base URL of an HTTP repository, ``None`` for other backends."""
        if self.derived_repo_type is not GraphRepoType.HTTP:
            return None
        return self.repo_uri.strip().rstrip("/")

    @property
    def derived_repo_path(self) -> Path | None:
        """Base path of a filesystem repository, ``None`` for other backends."""
        if self.derived_repo_type is not GraphRepoType.FILESYSTEM:
            return None
        uri = self.repo_uri.strip()
        if uri.lower().startswith("file:"):
            return Path(unquote(urlparse(uri).path))
        return Path(uri)

    def uses_graph_repository(self) -> bool:
        """Return True if this profile's graph is managed through a repository."""
        if not self.enabled:
            return False
        if not self.repo_name.strip():
            return False
        return self.derived_repo_type is not GraphRepoType.NULL
