"""Term model helpers on top of rdflib.

rdflib's ``URIRef``, ``Literal`` and ``BNode`` are the RDF terms used
throughout cubeforge, and ``rdflib.Graph`` is the triple container.
This module adds the few classification helpers the analysis code
needs: term kind, canonical string form, effective literal datatype,
observation discovery and IRI argument checks.
"""

from __future__ import annotations

import re
from enum import Enum

from rdflib import BNode, Graph, Literal, URIRef
from rdflib.term import Node

from cubeforge.errors import InvalidPathArgument
from cubeforge.namespaces import CUBE, RDF, XSD

__all__ = [
    "TermKind",
    "canonical_value",
    "check_iri",
    "find_observations",
    "literal_datatype",
    "term_kind",
]

_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")
_FORBIDDEN_IRI_CHARS = re.compile(r'[\s<>"{}|^`\\]')


class TermKind(str, Enum):
    """The three kinds of RDF term."""

    IRI = "iri"
    LITERAL = "literal"
    BLANK = "blank"


def term_kind(term: Node) -> TermKind:
    """Return the :class:`TermKind` of *term*."""
    if isinstance(term, Literal):
        return TermKind.LITERAL
    if isinstance(term, BNode):
        return TermKind.BLANK
    if isinstance(term, URIRef):
        return TermKind.IRI
    raise TypeError(f"Unsupported RDF term: {term!r}")


def literal_datatype(literal: Literal) -> URIRef:
    """Effective datatype of *literal*.

    Language-tagged literals report ``rdf:langString``; simple literals
    without a datatype report ``xsd:string``.
    """
    if literal.datatype is not None:
        return URIRef(literal.datatype)
    if literal.language:
        return RDF.langString
    return XSD.string


def canonical_value(term: Node) -> str:
    """Canonical string form: IRI text, literal lexical form or ``_:id``."""
    if isinstance(term, BNode):
        return f"_:{term}"
    return str(term)


def find_observations(graph: Graph) -> list[Node]:
    """Return every subject typed ``cube:Observation``, without duplicates."""
    return list(dict.fromkeys(graph.subjects(RDF.type, CUBE.Observation)))


def check_iri(value: str | None, what: str, operation: str) -> str:
    """Validate a caller-supplied absolute IRI (or CURIE-style IRI).

    Raises
    ------
    InvalidPathArgument
        If *value* is empty, lacks a scheme, or contains characters that
        cannot appear inside ``<...>`` in Turtle or SPARQL.
    """
    if value is None or not str(value).strip():
        raise InvalidPathArgument(operation, f"{what} must not be empty")
    value = str(value)
    if not _SCHEME.match(value):
        raise InvalidPathArgument(
            operation, f"{what} {value!r} is not an absolute IRI",
        )
    if _FORBIDDEN_IRI_CHARS.search(value):
        raise InvalidPathArgument(
            operation, f"{what} {value!r} contains characters not allowed in an IRI",
        )
    return value
