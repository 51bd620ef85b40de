"""RFC 9457 Problem Details helpers with schema validation.

Error payloads produced by :meth:`GraphManagementError.to_problem_details`
are validated against a JSON Schema 2020-12 document so the ``status``
command of the CLI and any host health endpoint emit the same shape.

Examples
--------
>>> from routegraph_common.problem_details import build_problem_details, render_problem
>>> problem = build_problem_details(
...     problem_type="https://routegraph.dev/problems/repo-unreachable",
...     title="RepoUnreachableError",
...     status=503,
...     detail="Connection refused",
...     instance="urn:routegraph:profile:car",
... )
>>> "repo-unreachable" in render_problem(problem)
True
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Final, TypedDict

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

if TYPE_CHECKING:
    from collections.abc import Mapping

__all__ = [
    "PROBLEM_DETAILS_SCHEMA",
    "ProblemDetails",
    "ProblemDetailsValidationError",
    "build_problem_details",
    "render_problem",
    "validate_problem_details",
]

type JsonPrimitive = str | int | float | bool | None
type JsonValue = JsonPrimitive | list[JsonValue] | dict[str, JsonValue]

PROBLEM_DETAILS_SCHEMA: Final[dict[str, object]] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["type", "title", "status", "detail", "instance"],
    "properties": {
        "type": {"type": "string", "minLength": 1},
        "title": {"type": "string", "minLength": 1},
        "status": {"type": "integer", "minimum": 100, "maximum": 599},
        "detail": {"type": "string"},
        "instance": {"type": "string", "minLength": 1},
        "code": {"type": "string"},
        "extensions": {"type": "object"},
    },
    "additionalProperties": True,
}

_VALIDATOR = Draft202012Validator(PROBLEM_DETAILS_SCHEMA)


class ProblemDetails(TypedDict, total=False):
    """TypedDict for RFC 9457 Problem Details payloads."""

    type: str
    title: str
    status: int
    detail: str
    instance: str
    code: str
    extensions: dict[str, JsonValue]


class ProblemDetailsValidationError(ValueError):
    """Raised when a payload does not match the Problem Details schema.

    Parameters
    ----------
    message : str
        Summary of the failure.
    errors : list[str]
        One entry per schema violation.
    """

    def __init__(self, message: str, errors: list[str]) -> None:
        super().__init__(message)
        self.errors = errors


def validate_problem_details(payload: Mapping[str, object]) -> None:
    """Validate ``payload`` against the Problem Details schema.

    Parameters
    ----------
    payload : Mapping[str, object]
        Candidate payload.

    Raises
    ------
    ProblemDetailsValidationError
        If the payload violates the schema.
    """
    errors: list[ValidationError] = sorted(
        _VALIDATOR.iter_errors(dict(payload)), key=lambda err: list(err.path)
    )
    if errors:
        messages = [err.message for err in errors]
        msg = f"Invalid Problem Details payload: {messages[0]}"
        raise ProblemDetailsValidationError(msg, messages)


def build_problem_details(  # noqa: PLR0913
    *,
    problem_type: str,
    title: str,
    status: int,
    detail: str,
    instance: str,
    code: str | None = None,
    extensions: Mapping[str, JsonValue] | None = None,
) -> ProblemDetails:
    """Build and validate a Problem Details payload.

    Parameters
    ----------
    problem_type : str
        Type URI of the problem.
    title : str
        Short summary.
    status : int
        HTTP-style status code.
    detail : str
        Human readable explanation.
    instance : str
        URI identifying the occurrence.
    code : str | None, optional
        Stable error code. Defaults to None.
    extensions : Mapping[str, JsonValue] | None, optional
        Additional members. Defaults to None.

    Returns
    -------
    ProblemDetails
        Validated payload.
    """
    problem: ProblemDetails = {
        "type": problem_type,
        "title": title,
        "status": status,
        "detail": detail,
        "instance": instance,
    }
    if code is not None:
        problem["code"] = code
    if extensions:
        problem["extensions"] = dict(extensions)
    validate_problem_details(problem)
    return problem


def render_problem(problem: ProblemDetails) -> str:
    """Render ``problem`` as a JSON string (non-serialisable values are stringified)."""
    return json.dumps(problem, default=str, sort_keys=True)
