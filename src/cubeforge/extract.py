"""Split a cube graph into constraint, metadata and observation parts."""

from __future__ import annotations

import logging
from typing import Iterable

from rdflib import BNode, Graph
from rdflib.term import Node

from cubeforge.namespaces import CUBE, RDF, SH

logger = logging.getLogger(__name__)

__all__ = [
    "extract_constraint",
    "extract_metadata",
    "observation_subgraph",
]


def _new_graph_like(source: Graph) -> Graph:
    target = Graph()
    for prefix, ns in source.namespaces():
        target.bind(prefix, ns, override=False)
    return target


def _copy_resource(
    source: Graph, target: Graph, resource: Node, visited: set[Node],
) -> None:
    """Copy *resource*'s triples, following blank-node objects."""
    if resource in visited:
        return
    visited.add(resource)
    for p, o in source.predicate_objects(resource):
        target.add((resource, p, o))
        if isinstance(o, BNode):
            _copy_resource(source, target, o, visited)


def extract_constraint(graph: Graph) -> Graph:
    """Return every cube constraint (and observation-targeting node shape).

    All ``cube:Constraint`` resources are copied together with their
    blank-node closure, as is any ``sh:NodeShape`` whose
    ``sh:targetClass`` is ``cube:Observation``.  The result is empty when
    the graph carries no constraint.
    """
    target = _new_graph_like(graph)
    visited: set[Node] = set()
    for constraint in graph.subjects(RDF.type, CUBE.Constraint):
        _copy_resource(graph, target, constraint, visited)
    for shape in graph.subjects(RDF.type, SH.NodeShape):
        if (shape, SH.targetClass, CUBE.Observation) in graph:
            _copy_resource(graph, target, shape, visited)
    return target


def extract_metadata(graph: Graph) -> Graph:
    """Return every triple whose subject is not a ``cube:Observation``."""
    observations = set(graph.subjects(RDF.type, CUBE.Observation))
    target = _new_graph_like(graph)
    for s, p, o in graph:
        if s not in observations:
            target.add((s, p, o))
    logger.info(
        "Extracted %d triples of metadata from %d total triples",
        len(target), len(graph),
    )
    return target


def observation_subgraph(graph: Graph, observations: Iterable[Node]) -> Graph:
    """Return exactly the triples whose subject is one of *observations*."""
    target = _new_graph_like(graph)
    for obs in observations:
        for p, o in graph.predicate_objects(obs):
            target.add((obs, p, o))
    return target
