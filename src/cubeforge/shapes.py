"""Shape serializer: render user-authored SHACL shapes as Turtle.

Unlike :mod:`cubeforge.constraint`, nothing is inferred here.  Each
populated field of a :class:`~cubeforge.models.ShapeDefinition` is
written exactly once, in a fixed order, so the same definition always
produces the same text.
"""

from __future__ import annotations

import logging
from typing import Any, Union

from cubeforge.errors import InvalidPathArgument
from cubeforge.models import PropertyShapeDefinition, ShapeDefinition
from cubeforge.namespaces import RDF, RDFS, SH, XSD
from cubeforge.utils import escape_string

logger = logging.getLogger(__name__)

__all__ = [
    "build_shape_turtle",
]

OPERATION_ID = "build-shape"

_BASE_PREFIXES = {
    "sh": str(SH),
    "xsd": str(XSD),
    "rdf": str(RDF),
    "rdfs": str(RDFS),
}

_INDENT = "    "


# ── Term rendering ───────────────────────────────────────────────────


def _quoted(value: str) -> str:
    return f'"{escape_string(value)}"'


def _iri(value: str) -> str:
    return f"<{value}>"


def _datatype(value: str) -> str:
    """``xsd:<name>`` for short names, the IRI or CURIE as given otherwise."""
    if "://" in value:
        return _iri(value)
    if ":" in value:
        return value
    return f"xsd:{value}"


def _sh_term(value: str) -> str:
    """``sh:<name>`` for bare SHACL names such as ``IRI`` or ``Warning``."""
    if value.startswith("sh:"):
        return value
    if value.startswith(str(SH)):
        return f"sh:{value[len(str(SH)):]}"
    return f"sh:{value}"


def _bare(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# ── Property shapes ──────────────────────────────────────────────────


def _property_lines(prop: PropertyShapeDefinition) -> list[str]:
    """Predicate-object pairs of one property shape, in output order."""
    lines = [f"sh:path {_iri(prop.path)}"]

    if prop.name is not None:
        lines.append(f"sh:name {_quoted(prop.name)}")
    if prop.description is not None:
        lines.append(f"sh:description {_quoted(prop.description)}")
    if prop.datatype is not None:
        lines.append(f"sh:datatype {_datatype(prop.datatype)}")
    if prop.node_kind is not None:
        lines.append(f"sh:nodeKind {_sh_term(prop.node_kind)}")
    if prop.class_constraint is not None:
        lines.append(f"sh:class {_iri(prop.class_constraint)}")

    for field, predicate in (
        ("min_count", "sh:minCount"),
        ("max_count", "sh:maxCount"),
        ("min_length", "sh:minLength"),
        ("max_length", "sh:maxLength"),
    ):
        value = getattr(prop, field)
        if value is not None:
            lines.append(f"{predicate} {value}")

    if prop.pattern is not None:
        lines.append(f"sh:pattern {_quoted(prop.pattern)}")
        if prop.flags is not None:
            lines.append(f"sh:flags {_quoted(prop.flags)}")

    for field, predicate in (
        ("min_inclusive", "sh:minInclusive"),
        ("max_inclusive", "sh:maxInclusive"),
        ("min_exclusive", "sh:minExclusive"),
        ("max_exclusive", "sh:maxExclusive"),
    ):
        value = getattr(prop, field)
        if value is not None:
            lines.append(f"{predicate} {_bare(value)}")

    if prop.in_values:
        members = " ".join(_quoted(str(v)) for v in prop.in_values)
        lines.append(f"sh:in ( {members} )")

    if prop.has_value is not None:
        if isinstance(prop.has_value, str):
            lines.append(f"sh:hasValue {_quoted(prop.has_value)}")
        else:
            lines.append(f"sh:hasValue {_bare(prop.has_value)}")

    if prop.node_shape is not None:
        lines.append(f"sh:node {_iri(prop.node_shape)}")
    if prop.message is not None:
        lines.append(f"sh:message {_quoted(prop.message)}")
    if prop.severity is not None:
        lines.append(f"sh:severity {_sh_term(prop.severity)}")
    return lines


# ── Node shape ───────────────────────────────────────────────────────


def _check_definition(definition: ShapeDefinition) -> None:
    if not definition.uri:
        raise InvalidPathArgument(OPERATION_ID, "Shape IRI must not be empty")
    if not definition.target_class and not definition.target_node:
        raise InvalidPathArgument(
            OPERATION_ID,
            f"Shape {definition.uri} needs a target class or a target node",
        )
    for index, prop in enumerate(definition.properties):
        if not prop.path:
            raise InvalidPathArgument(
                OPERATION_ID,
                f"Property shape #{index + 1} of {definition.uri} has no path",
            )


def build_shape_turtle(
    definition: Union[ShapeDefinition, dict[str, Any]],
) -> str:
    """Render *definition* as a Turtle document.

    Parameters
    ----------
    definition:
        A :class:`ShapeDefinition`, or a plain mapping (camelCase or
        snake_case keys) validated into one.

    Returns
    -------
    str
        Prefix declarations followed by one ``sh:NodeShape`` with its
        property shapes as blank-node ``sh:property`` blocks.

    Raises
    ------
    InvalidPathArgument
        If the shape has no target or a property shape has no path.
    """
    if not isinstance(definition, ShapeDefinition):
        definition = ShapeDefinition.model_validate(definition)
    _check_definition(definition)

    out: list[str] = []
    prefixes = dict(_BASE_PREFIXES)
    for prefix, ns in definition.prefixes.items():
        prefixes.setdefault(prefix, ns)
    for prefix, ns in prefixes.items():
        out.append(f"@prefix {prefix}: <{ns}> .\n")
    out.append("\n")

    head = ["a sh:NodeShape"]
    if definition.label is not None:
        head.append(f"rdfs:label {_quoted(definition.label)}")
    if definition.description is not None:
        head.append(f"rdfs:comment {_quoted(definition.description)}")
    if definition.target_class:
        head.append(f"sh:targetClass {_iri(definition.target_class)}")
    else:
        head.append(f"sh:targetNode {_iri(definition.target_node)}")
    if definition.closed:
        head.append("sh:closed true")
        if definition.ignored_properties:
            ignored = " ".join(_iri(p) for p in definition.ignored_properties)
            head.append(f"sh:ignoredProperties ( {ignored} )")
    if definition.severity is not None:
        head.append(f"sh:severity {_sh_term(definition.severity)}")

    for prop in definition.properties:
        body = " ;\n".join(
            f"{_INDENT}{line}" for line in _property_lines(prop)
        )
        head.append(f"sh:property [\n{body}\n  ]")

    out.append(f"{_iri(definition.uri)}\n")
    out.append(" ;\n".join(f"  {entry}" for entry in head))
    out.append(" .\n")

    turtle = "".join(out)
    logger.debug(
        "Rendered shape %s with %d property shapes",
        definition.uri, len(definition.properties),
    )
    return turtle
