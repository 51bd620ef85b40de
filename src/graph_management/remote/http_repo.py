"""Graph repository served over HTTP(S)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from graph_management.remote.repo_manager import AbstractGraphRepoManager, FetchedAsset
from routegraph_common.errors import IncompleteDownloadError, RepoUnreachableError
from routegraph_common.http import HttpClient, HttpSettings, TenacityRetryStrategy
from routegraph_common.http.errors import HttpError, HttpStatusError
from routegraph_common.http.policy import default_repository_policy

if TYPE_CHECKING:
    from pathlib import Path

    from graph_management.local.file_manager import GraphFileManager
    from graph_management.metrics import GraphMetrics
    from graph_management.properties import GraphManagementRuntimeProperties
    from graph_management.remote.repo_strategy import NamedGraphsRepoStrategy

__all__ = ["HttpRepoManager", "build_repository_client"]

_NOT_FOUND = 404


def build_repository_client(props: GraphManagementRuntimeProperties) -> HttpClient:
    """HTTP client for the profile's repository with the bundled retry policy."""
    settings = HttpSettings(
        service="graph-repository",
        base_url=props.derived_repo_base_url or "",
        read_timeout_s=props.read_timeout_s,
        connect_timeout_s=props.connect_timeout_s,
    )
    policy = default_repository_policy(props.retry_attempts)
    return HttpClient(settings, TenacityRetryStrategy(policy))


class HttpRepoManager(AbstractGraphRepoManager):
    """Fetch assets from ``<base url>/<repo>/<group>/<coverage>/<version>/<asset>``.

    A 404 means the repository has no such asset; any other HTTP or transport
    failure surfaces as :class:`RepoUnreachableError` after the retry policy
    gives up.
    """

    def __init__(
        self,
        props: GraphManagementRuntimeProperties,
        repo_strategy: NamedGraphsRepoStrategy,
        file_manager: GraphFileManager,
        *,
        client: HttpClient | None = None,
        metrics: GraphMetrics | None = None,
    ) -> None:
        super().__init__(props, repo_strategy, file_manager, metrics=metrics)
        self._client = client or build_repository_client(props)

    def describe_asset(self, asset_name: str) -> str:
        base = self._props.derived_repo_base_url or ""
        return f"{base}/{self._repo_strategy.asset_relative_path(asset_name)}"

    def _fetch_asset(self, asset_name: str, target: Path) -> FetchedAsset | None:
        url = self.describe_asset(asset_name)
        try:
            result = self._client.stream_to_file(url, target)
        except HttpStatusError as exc:
            if exc.status == _NOT_FOUND:
                return None
            msg = f"[{self._name}] Repository returned HTTP {exc.status} for {url}"
            raise RepoUnreachableError(msg, cause=exc, context={"url": url}) from exc
        except HttpError as exc:
            msg = f"[{self._name}] Repository unreachable at {url}: {exc}"
            raise RepoUnreachableError(msg, cause=exc, context={"url": url}) from exc
        except OSError as exc:
            msg = f"[{self._name}] Could not write {target}: {exc}"
            raise IncompleteDownloadError(msg, cause=exc, context={"path": str(target)}) from exc
        encoded = result.content_encoding not in (None, "", "identity")
        return FetchedAsset(result.bytes_written, None if encoded else result.expected_length)
