"""Namespaces and well-known IRIs of the cube.link vocabulary."""

from __future__ import annotations

from rdflib import Graph, Namespace, URIRef
from rdflib.namespace import RDF, RDFS, XSD

__all__ = [
    "CUBE",
    "META",
    "RDF",
    "RDFS",
    "SCHEMA",
    "SH",
    "UNDEFINED",
    "XSD",
    "bind_cube_prefixes",
]

CUBE = Namespace("https://cube.link/")
META = Namespace("https://cube.link/meta/")
SCHEMA = Namespace("https://schema.org/")
SH = Namespace("http://www.w3.org/ns/shacl#")

# Object of a triple whose value is explicitly absent (as opposed to
# omitting the triple altogether).
UNDEFINED = URIRef(f"{CUBE}Undefined")

_PREFIXES: dict[str, Namespace] = {
    "cube": CUBE,
    "meta": META,
    "sh": SH,
    "schema": SCHEMA,
    "xsd": Namespace(str(XSD)),
    "rdf": Namespace(str(RDF)),
    "rdfs": Namespace(str(RDFS)),
}


def bind_cube_prefixes(graph: Graph) -> Graph:
    """Bind the usual cube prefixes on *graph* and return it."""
    for prefix, ns in _PREFIXES.items():
        graph.bind(prefix, ns, override=True)
    return graph
