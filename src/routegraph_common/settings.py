"""Runtime settings with typed configuration and fail-fast validation.

:class:`GraphManagementSettings` is a pydantic-settings model read from
``ROUTEGRAPH_*`` environment variables (nested fields use ``__``, e.g.
``ROUTEGRAPH_REPOSITORY__URI``) and, through :func:`load_settings`, from a
YAML file. Precedence: explicit overrides, then environment, then YAML, then
defaults. Invalid configuration raises :class:`SettingsError`.

Examples
--------
>>> from routegraph_common.settings import load_settings
>>> settings = load_settings(enabled=True, profiles={"car": {"encoder_name": "driving-car"}})
>>> settings.profiles["car"].encoder_name
'driving-car'
"""

from __future__ import annotations

from contextvars import ContextVar
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from routegraph_common.errors import SettingsError
from routegraph_common.logging import get_logger

__all__ = [
    "GraphManagementSettings",
    "ProfileConfig",
    "RepositoryConfig",
    "RepositoryOverrides",
    "load_settings",
]

logger = get_logger(__name__)

_CONFIG_FILE: ContextVar[Path | None] = ContextVar("routegraph_config_file", default=None)


class RepositoryConfig(BaseModel):
    """Coordinates of the graph repository shared by all profiles.

    A blank ``uri`` disables repository management. ``http://`` and
    ``https://`` URIs select the HTTP backend; anything else (a plain path or
    a ``file://`` URI) selects the filesystem backend.
    """

    model_config = ConfigDict(extra="forbid")

    uri: str = Field(default="", description="Repository base URL or path")
    name: str = Field(default="", description="Repository name (first path segment)")
    profile_group: str = Field(default="", description="Profile group segment")
    coverage: str = Field(default="", description="Coverage (region) segment")
    connect_timeout_s: float = Field(default=10.0, gt=0, description="HTTP connect timeout")
    read_timeout_s: float = Field(default=60.0, gt=0, description="HTTP read timeout")
    retry_attempts: int = Field(default=3, ge=1, description="HTTP attempts per request")


class RepositoryOverrides(BaseModel):
    """Per-profile repository fields; unset values fall back to the shared config."""

    model_config = ConfigDict(extra="forbid")

    uri: str | None = None
    name: str | None = None
    profile_group: str | None = None
    coverage: str | None = None


class ProfileConfig(BaseModel):
    """Configuration of one routing profile."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=True, description="Manage this profile's graph")
    encoder_name: str | None = Field(
        default=None,
        description="Encoder used in remote asset names (defaults to the profile name)",
    )
    repository: RepositoryOverrides = Field(default_factory=RepositoryOverrides)


class GraphManagementSettings(BaseSettings):
    """Aggregate graph management configuration (``ROUTEGRAPH_*`` namespace)."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTEGRAPH_",
        env_nested_delimiter="__",
        extra="forbid",
        case_sensitive=False,
    )

    enabled: bool = Field(default=False, description="Enable repository-based graph management")
    graphs_root_path: Path = Field(
        default=Path("graphs"), description="Directory holding all local graph directories"
    )
    graph_version: str = Field(default="1", description="Graph format version segment")
    download_interval_s: float | None = Field(
        default=None, gt=0, description="Update-check interval; None disables the cycle"
    )
    activation_interval_s: float | None = Field(
        default=None, gt=0, description="Activation-check interval; None disables the cycle"
    )
    retry_interval_s: float = Field(
        default=60.0, gt=0, description="Retry interval while an activation is blocked"
    )
    max_backups: int | None = Field(
        default=None, ge=0, description="Backups kept per profile; None keeps all"
    )
    update_workers: int = Field(default=4, ge=1, description="Concurrent profile update checks")
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    profiles: dict[str, ProfileConfig] = Field(default_factory=dict)
    log_level: str = Field(default="INFO", description="Logging level name")
    metrics_enabled: bool = Field(default=True, description="Register Prometheus metrics")

    def __init__(self, **overrides: object) -> None:
        """Initialise settings with fail-fast validation."""
        try:
            super().__init__(**overrides)  # type: ignore[arg-type]
        except Exception as exc:
            msg = f"Configuration validation failed: {exc}"
            logger.exception(
                "Settings validation failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            errors = getattr(exc, "errors", None)
            raise SettingsError(
                msg,
                errors=[dict(e) for e in errors()] if callable(errors) else None,
                cause=exc,
                context={"validation_error": str(exc)},
            ) from exc

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert the YAML file selected by :func:`load_settings` below the environment."""
        del dotenv_settings, file_secret_settings
        sources: list[PydanticBaseSettingsSource] = [init_settings, env_settings]
        config_file = _CONFIG_FILE.get()
        if config_file is not None:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=config_file))
        return tuple(sources)

    def enabled_profiles(self) -> list[str]:
        """Return the names of enabled profiles in configuration order."""
        return [name for name, profile in self.profiles.items() if profile.enabled]


def load_settings(path: Path | None = None, **overrides: object) -> GraphManagementSettings:
    """Load :class:`GraphManagementSettings` from YAML, environment and overrides.

    Parameters
    ----------
    path : Path | None, optional
        YAML configuration file. Defaults to None (environment only).
    **overrides : object
        Field values taking precedence over every other source.

    Returns
    -------
    GraphManagementSettings
        Validated settings.

    Raises
    ------
    SettingsError
        If the file is missing or the configuration is invalid.
    """
    if path is not None and not path.is_file():
        msg = f"Configuration file not found: {path}"
        raise SettingsError(msg, context={"path": str(path)})
    token = _CONFIG_FILE.set(path)
    try:
        return GraphManagementSettings(**overrides)
    except SettingsError:
        raise
    except Exception as exc:
        msg = f"Failed to load settings: {exc}"
        logger.exception(
            "Settings loading failed",
            extra={"error": str(exc), "error_type": type(exc).__name__},
        )
        raise SettingsError(msg, cause=exc, context={"validation_error": str(exc)}) from exc
    finally:
        _CONFIG_FILE.reset(token)
