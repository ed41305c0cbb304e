"""Shared error taxonomy and Problem Details helpers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

BAD_REQUEST = 400
NOT_FOUND = 404
CONFLICT = 409
INTERNAL = 500
BAD_GATEWAY = 502


def generate_correlation_id() -> str:
    """
    Return a new correlation identifier for tracing errors.

    Returns
    -------
    str
        UUID4 correlation identifier.
    """
    return str(uuid4())


@dataclass(frozen=True)
class ProblemDetail:
    """
    RFC 9457 Problem Details payload.

    Fields mirror the standard shape with optional extras for diagnostics.
    """

    type: str
    title: str
    detail: str
    status: int | None = None
    instance: str = field(default_factory=generate_correlation_id)
    code: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize to a JSON-friendly dict.

        Returns
        -------
        dict[str, Any]
            Problem detail payload as a plain dictionary.
        """
        payload: dict[str, Any] = {
            "type": self.type,
            "title": self.title,
            "detail": self.detail,
            "instance": self.instance,
        }
        if self.status is not None:
            payload["status"] = self.status
        if self.code is not None:
            payload["code"] = self.code
        if self.extras:
            payload["extras"] = self.extras
        return payload


def problem(  # noqa: PLR0913
    code: str,
    title: str,
    detail: str,
    *,
    status: int | None = None,
    instance: str | None = None,
    type_uri: str | None = None,
    extras: dict[str, Any] | None = None,
) -> ProblemDetail:
    """
    Create a ProblemDetail with defaults for type/instance.

    Parameters
    ----------
    code
        Stable problem code (e.g., 'invalid_argument').
    title
        Human-readable error summary.
    detail
        Detailed description of the error.
    status
        Optional HTTP-style status code.
    instance
        Correlation/trace identifier; defaults to a UUID4.
    type_uri
        URI identifying the problem type; defaults to an nl2kql namespace.
    extras
        Optional structured context for diagnostics.

    Returns
    -------
    ProblemDetail
        Structured problem payload.
    """
    resolved_instance = instance or generate_correlation_id()
    resolved_type = type_uri or f"https://problems.nl2kql.dev/{code}"
    return ProblemDetail(
        type=resolved_type,
        title=title,
        detail=detail,
        status=status,
        instance=resolved_instance,
        code=code,
        extras=extras or {},
    )


def log_problem(logger: logging.Logger | logging.LoggerAdapter, detail: ProblemDetail) -> None:
    """Emit a Problem Detail as a structured error log."""
    logger.error(json.dumps(detail.to_dict(), default=str))


class ProblemError(Exception):
    """Base exception carrying a ProblemDetail payload."""

    def __init__(self, detail: ProblemDetail) -> None:
        super().__init__(detail.detail)
        self.problem_detail = detail


class InvalidArgumentError(ProblemError):
    """Caller supplied an empty, unknown, or unsupported argument."""

    def __init__(self, message: str, *, extras: dict[str, Any] | None = None) -> None:
        super().__init__(
            problem(
                "invalid_argument",
                "Invalid argument",
                message,
                status=BAD_REQUEST,
                extras=extras,
            )
        )


class GenerationError(ProblemError):
    """The chat capability produced no usable query text."""

    def __init__(self, message: str) -> None:
        super().__init__(
            problem("generation_failed", "Query generation failed", message, status=BAD_GATEWAY)
        )


class QueryExecutionError(ProblemError):
    """
    Query engine failure that keeps the exact query text that was run.

    Parameters
    ----------
    query
        Query text after code-fence normalization.
    cause
        Underlying engine exception.
    """

    def __init__(self, query: str, cause: BaseException) -> None:
        message = f"An error occurred when executing query:\n\n{query}\n\n{cause}"
        super().__init__(
            problem(
                "query_execution_failed",
                "Query execution failed",
                message,
                status=INTERNAL,
                extras={"query": query},
            )
        )
        self.query = query


class RegistryConflictError(ProblemError):
    """Resource registry mutation conflicts with its current state."""

    def __init__(self, message: str) -> None:
        super().__init__(
            problem("registry_conflict", "Resource registry conflict", message, status=CONFLICT)
        )


class NotFoundError(ProblemError):
    """Requested entity does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(problem("not_found", "Not found", message, status=NOT_FOUND))


class ConfigurationError(ProblemError):
    """Settings could not be located, interpolated, parsed, or validated."""

    def __init__(self, message: str) -> None:
        super().__init__(problem("configuration_failed", "Configuration failure", message))


class InternalError(ProblemError):
    """Invariant violation inside the server."""

    def __init__(self, message: str) -> None:
        super().__init__(problem("internal_error", "Internal error", message, status=INTERNAL))


__all__ = [
    "ConfigurationError",
    "GenerationError",
    "InternalError",
    "InvalidArgumentError",
    "NotFoundError",
    "ProblemDetail",
    "ProblemError",
    "QueryExecutionError",
    "RegistryConflictError",
    "generate_correlation_id",
    "log_problem",
    "problem",
]
