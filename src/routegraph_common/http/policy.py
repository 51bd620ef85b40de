"""Retry policy documents loaded from YAML.

A policy file names the HTTP methods it applies to, the statuses and
exception classes to retry on, and the stop/wait parameters handed to
tenacity. Files are validated against ``policy.schema.json`` before use.
The bundled ``graph_repository`` policy covers repository metadata and
archive fetches.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Final

import jsonschema
import yaml

__all__ = [
    "BUNDLED_POLICIES",
    "PolicyRegistry",
    "RetryPolicyDoc",
    "default_repository_policy",
    "load_policy",
]

BUNDLED_POLICIES: Final[Path] = Path(__file__).with_name("policies")
_SCHEMA_PATH: Final[Path] = Path(__file__).with_name("policy.schema.json")


@dataclass(frozen=True)
class RetryPolicyDoc:
    """Retry policy configuration document.

    Attributes
    ----------
    name : str
        Policy name identifier.
    description : str | None
        Human-readable description of the policy.
    methods : tuple[str, ...]
        HTTP methods this policy applies to.
    retry_status : tuple[tuple[int, int] | int, ...]
        HTTP status codes to retry on (single codes or inclusive ranges).
    retry_exceptions : tuple[str, ...]
        Exception class names to retry on.
    give_up_status : tuple[int, ...]
        HTTP status codes that are never retried.
    respect_retry_after : bool
        Whether to honour ``Retry-After`` headers.
    stop_after_attempt : int
        Maximum number of attempts.
    stop_after_delay_s : float | None
        Maximum total time in seconds before giving up.
    wait_kind : str
        Type of wait strategy (only ``"exponential"``).
    wait_initial_s : float
        Initial wait time in seconds.
    wait_max_s : float
        Maximum wait time between retries in seconds.
    wait_jitter : float
        Jitter fraction (0.0 to 1.0).
    wait_base : float
        Base multiplier for exponential backoff.
    """

    name: str
    description: str | None
    methods: tuple[str, ...]
    retry_status: tuple[tuple[int, int] | int, ...]
    retry_exceptions: tuple[str, ...]
    give_up_status: tuple[int, ...]
    respect_retry_after: bool
    stop_after_attempt: int
    stop_after_delay_s: float | None
    wait_kind: str
    wait_initial_s: float
    wait_max_s: float
    wait_jitter: float
    wait_base: float


def _parse_status_entry(x: int | str) -> tuple[int, int] | int:
    if isinstance(x, int):
        return x
    lo, hi = x.split("-", 1)
    return (int(lo), int(hi))


def load_policy(path: Path, schema_path: Path | None = _SCHEMA_PATH) -> RetryPolicyDoc:
    """Load a retry policy from a YAML file.

    Parameters
    ----------
    path : Path
        Path to policy YAML file.
    schema_path : Path | None, optional
        JSON schema used for validation; ``None`` skips validation.
        Defaults to the bundled schema.

    Returns
    -------
    RetryPolicyDoc
        Loaded policy document.

    Notes
    -----
    ``FileNotFoundError`` and ``jsonschema.ValidationError`` propagate to the
    caller unchanged.
    """
    obj = yaml.safe_load(path.read_text(encoding="utf-8"))
    if schema_path is not None and schema_path.exists():
        jsonschema.validate(obj, json.loads(schema_path.read_text(encoding="utf-8")))
    stop = obj["stop"]
    wait = obj["wait"]
    retry_on = obj.get("retry_on", {})
    return RetryPolicyDoc(
        name=obj["name"],
        description=obj.get("description"),
        methods=tuple(m.upper() for m in obj["methods"]),
        retry_status=tuple(_parse_status_entry(s) for s in retry_on.get("status", [])),
        retry_exceptions=tuple(retry_on.get("exceptions", [])),
        give_up_status=tuple(obj.get("give_up_on_status", [])),
        respect_retry_after=bool(obj.get("respect_retry_after", False)),
        stop_after_attempt=int(stop["after_attempt"]),
        stop_after_delay_s=(
            float(stop["after_delay_s"]) if stop.get("after_delay_s") is not None else None
        ),
        wait_kind=wait["kind"],
        wait_initial_s=float(wait["initial_s"]),
        wait_max_s=float(wait["max_s"]),
        wait_jitter=float(wait["jitter"]),
        wait_base=float(wait.get("base", 2.0)),
    )


class PolicyRegistry:
    """Registry for loading retry policies from a directory.

    Parameters
    ----------
    root : Path
        Directory containing ``<name>.yaml`` policy files.
    """

    def __init__(self, root: Path = BUNDLED_POLICIES) -> None:
        self.root = root

    def get(self, name: str) -> RetryPolicyDoc:
        """Load policy by name.

        Raises
        ------
        FileNotFoundError
            If ``<root>/<name>.yaml`` does not exist.
        """
        p = self.root / f"{name}.yaml"
        if not p.exists():
            raise FileNotFoundError(p)
        return load_policy(p)


def default_repository_policy(attempts: int | None = None) -> RetryPolicyDoc:
    """Return the bundled ``graph_repository`` policy.

    Parameters
    ----------
    attempts : int | None, optional
        Overrides ``stop_after_attempt`` when given (``retry_attempts`` setting).
    """
    policy = PolicyRegistry().get("graph_repository")
    if attempts is not None:
        policy = replace(policy, stop_after_attempt=max(1, attempts))
    return policy
