"""Typed failures raised by cubeforge operations.

Every failure carries the :class:`ErrorKind`, the id of the operation
that raised it and a human-readable message.  Structural failures are
always propagated to the caller; only per-value formatting problems
(:class:`MalformedDateValue`) are recovered locally.
"""

from __future__ import annotations

from enum import Enum

__all__ = [
    "CubeForgeError",
    "EndpointFailure",
    "ErrorKind",
    "InvalidPathArgument",
    "MalformedDateValue",
    "NoConstraintFound",
    "NoInputGraph",
    "NoObservationsFound",
]


class ErrorKind(str, Enum):
    """Kinds of failure an operation can report."""

    NO_INPUT_GRAPH = "NoInputGraph"
    NO_OBSERVATIONS_FOUND = "NoObservationsFound"
    NO_CONSTRAINT_FOUND = "NoConstraintFound"
    MALFORMED_DATE_VALUE = "MalformedDateValue"
    ENDPOINT_FAILURE = "EndpointFailure"
    INVALID_PATH_ARGUMENT = "InvalidPathArgument"


class CubeForgeError(Exception):
    """Base exception for cubeforge errors."""

    kind: ErrorKind = ErrorKind.INVALID_PATH_ARGUMENT

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"[{operation}] {message}")
        self.operation = operation
        self.message = message


class NoInputGraph(CubeForgeError):
    """Raised when an analysis is invoked with an empty or absent graph."""

    kind = ErrorKind.NO_INPUT_GRAPH


class NoObservationsFound(CubeForgeError):
    """Raised when a graph holds no ``cube:Observation`` subjects."""

    kind = ErrorKind.NO_OBSERVATIONS_FOUND


class NoConstraintFound(CubeForgeError):
    """Raised when no constraint was supplied and none can be extracted."""

    kind = ErrorKind.NO_CONSTRAINT_FOUND


class MalformedDateValue(CubeForgeError):
    """Raised when a value does not match the configured date pattern."""

    kind = ErrorKind.MALFORMED_DATE_VALUE

    def __init__(self, operation: str, value: str, pattern: str) -> None:
        super().__init__(
            operation, f"Value {value!r} does not match date pattern {pattern!r}",
        )
        self.value = value
        self.pattern = pattern


class EndpointFailure(CubeForgeError):
    """Raised when a SPARQL endpoint call fails (network, timeout, bad payload)."""

    kind = ErrorKind.ENDPOINT_FAILURE

    def __init__(
        self,
        operation: str,
        message: str,
        endpoint: str,
        cube_uri: str | None = None,
    ) -> None:
        super().__init__(operation, message)
        self.endpoint = endpoint
        self.cube_uri = cube_uri


class InvalidPathArgument(CubeForgeError):
    """Raised for a malformed caller-supplied IRI or URI template."""

    kind = ErrorKind.INVALID_PATH_ARGUMENT
