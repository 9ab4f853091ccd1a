"""
Common utility functions for IRI and string handling.

Shared by the constraint builder, the shape serializer and the
observation generator so that names, IRI segments and Turtle strings
are produced the same way everywhere.
"""

import re

__all__ = [
    "escape_string",
    "format_property_name",
    "get_local_name",
    "sanitize_segment",
]

_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_-]")
_CAMEL_BOUNDARY = re.compile(r"([a-z])([A-Z])")


def get_local_name(uri: str) -> str:
    """Extract the local name from a URI.

    Examples::

        >>> get_local_name("http://example.org/foo#Bar")
        'Bar'
        >>> get_local_name("http://example.org/foo/Bar")
        'Bar'
    """
    if "#" in uri:
        return uri.split("#")[-1]
    return uri.rstrip("/").rsplit("/", 1)[-1] if "/" in uri else uri


def format_property_name(local_name: str) -> str:
    """Turn a camelCase or snake_case local name into lowercase words.

    Examples::

        >>> format_property_name("populationTotal")
        'population total'
        >>> format_property_name("reference_year")
        'reference year'
    """
    spaced = _CAMEL_BOUNDARY.sub(r"\1 \2", local_name)
    return spaced.replace("_", " ").lower()


def sanitize_segment(value: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_-]`` with ``_``."""
    return _UNSAFE_SEGMENT.sub("_", value)


def escape_string(value: str) -> str:
    """Escape a string for use inside a double-quoted Turtle literal."""
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
