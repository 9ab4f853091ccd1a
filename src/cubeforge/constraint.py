"""
Build a ``cube:Constraint`` from observation statistics.

The constraint is a SHACL node shape targeting ``cube:Observation``
with one property shape per property seen on the observations.  For
each property, in first-seen order:

1. ``sh:path``, ``sh:minCount 1`` and ``sh:maxCount 1``;
2. ``sh:datatype`` when the literal datatype is consistent;
3. ``sh:nodeKind sh:IRI`` when every value is an IRI;
4. ``sh:in`` when enumeration is enabled and the value set is small
   enough (at most :data:`ENUMERABLE_LIMIT` values *and* at most
   ``max_enum_values``);
5. ``sh:order`` with a running counter starting at 1;
6. optionally a ``cube:KeyDimension`` / ``cube:MeasureDimension`` type
   on the property IRI itself;
7. a human-readable name derived from the property's local name.

The shape is left open (``sh:closed false``).
"""

from __future__ import annotations

import logging
from typing import Optional

from rdflib import BNode, Graph, Literal, URIRef
from rdflib.collection import Collection
from rdflib.term import Node

from cubeforge.errors import NoInputGraph, NoObservationsFound
from cubeforge.models import ConstraintOptions, ConstraintResult
from cubeforge.namespaces import CUBE, RDF, SCHEMA, SH, bind_cube_prefixes
from cubeforge.roles import infer_role
from cubeforge.statistics import PropertyStats, collect_property_stats
from cubeforge.terms import check_iri, find_observations
from cubeforge.utils import format_property_name, get_local_name

logger = logging.getLogger(__name__)

__all__ = [
    "ENUMERABLE_LIMIT",
    "OPERATION_ID",
    "build_constraint",
    "default_constraint_uri",
    "infer_constraint",
]

OPERATION_ID = "build-cube-shape"

# Pre-check applied before the caller's ``max_enum_values`` cut-off.
ENUMERABLE_LIMIT = 100


def default_constraint_uri(cube_uri: str) -> str:
    """Constraint IRI used when none is given: ``<cube>/constraint``."""
    return f"{cube_uri}/constraint"


def _value_list_items(stats: PropertyStats) -> list[Node]:
    """``sh:in`` members: the terms exactly as they occur in the data.

    A plain ``"Bern"`` and ``"Bern"^^xsd:string`` are listed separately
    when both occur, since SHACL compares terms, not lexical forms.
    """
    return list(stats.terms)


def _is_enumerable(stats: PropertyStats, max_enum_values: int) -> bool:
    if stats.unique_count == 0:
        return False
    # lexical forms alone cannot rebuild language-tagged values
    if stats.datatype == str(RDF.langString):
        return False
    return (
        stats.unique_count <= ENUMERABLE_LIMIT
        and stats.unique_count <= max_enum_values
    )


def _add_property_shape(
    graph: Graph,
    constraint: URIRef,
    stats: PropertyStats,
    options: ConstraintOptions,
    order: int,
) -> BNode:
    shape = BNode()
    prop = URIRef(stats.property_uri)
    graph.add((constraint, SH.property, shape))

    graph.add((shape, SH.path, prop))
    graph.add((shape, SH.minCount, Literal(1)))
    graph.add((shape, SH.maxCount, Literal(1)))

    if stats.has_consistent_datatype:
        graph.add((shape, SH.datatype, URIRef(stats.datatype)))

    if stats.all_values_are_iris:
        graph.add((shape, SH.nodeKind, SH.IRI))

    if options.include_value_enumeration and _is_enumerable(
        stats, options.max_enum_values,
    ):
        head = BNode()
        Collection(graph, head, _value_list_items(stats))
        graph.add((shape, SH["in"], head))

    graph.add((shape, SH.order, Literal(order)))

    if options.infer_dimension_roles:
        graph.add((prop, RDF.type, infer_role(stats).uri))

    name = Literal(format_property_name(get_local_name(stats.property_uri)))
    graph.add((shape, SH.name, name))
    graph.add((prop, SCHEMA.name, name))
    return shape


def build_constraint(
    cube_uri: str,
    stats: dict[str, PropertyStats],
    options: Optional[ConstraintOptions] = None,
) -> Graph:
    """Build the constraint graph for *cube_uri* from property statistics.

    Parameters
    ----------
    cube_uri:
        IRI of the cube the constraint belongs to.
    stats:
        Property IRI → :class:`PropertyStats`, in first-seen order.
    options:
        Inference flags; defaults to :class:`ConstraintOptions()`.

    Returns
    -------
    rdflib.Graph
        A fresh graph holding the constraint, its property shapes, the
        ``cube:observationConstraint`` link and any role assertions.
    """
    options = options or ConstraintOptions()
    check_iri(cube_uri, "cube IRI", OPERATION_ID)
    constraint_uri = options.constraint_uri or default_constraint_uri(cube_uri)
    check_iri(constraint_uri, "constraint IRI", OPERATION_ID)

    graph = bind_cube_prefixes(Graph())
    constraint = URIRef(constraint_uri)
    graph.add((constraint, RDF.type, CUBE.Constraint))
    graph.add((constraint, RDF.type, SH.NodeShape))
    graph.add((constraint, SH.targetClass, CUBE.Observation))
    graph.add((URIRef(cube_uri), CUBE.observationConstraint, constraint))

    for order, prop_stats in enumerate(stats.values(), start=1):
        _add_property_shape(graph, constraint, prop_stats, options, order)

    graph.add((constraint, SH.closed, Literal(False)))
    return graph


def infer_constraint(
    graph: Optional[Graph],
    cube_uri: str,
    options: Optional[ConstraintOptions] = None,
) -> ConstraintResult:
    """Infer a constraint from the observations found in *graph*.

    Raises
    ------
    NoInputGraph
        If *graph* is ``None`` or empty.
    NoObservationsFound
        If *graph* has no ``cube:Observation`` subjects.
    """
    options = options or ConstraintOptions()
    if graph is None or len(graph) == 0:
        raise NoInputGraph(
            OPERATION_ID, "No input graph provided - need observations to analyze",
        )

    logger.info("Building cube shape from observations for cube: %s", cube_uri)
    observations = find_observations(graph)
    if not observations:
        raise NoObservationsFound(
            OPERATION_ID, "No cube:Observation resources found in input graph",
        )

    logger.info("Analyzing %d observations", len(observations))
    stats = collect_property_stats(graph, observations)
    logger.info("Detected %d distinct properties", len(stats))

    constraint_graph = build_constraint(cube_uri, stats, options)
    constraint_uri = options.constraint_uri or default_constraint_uri(cube_uri)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Generated constraint:\n%s",
            constraint_graph.serialize(format="turtle"),
        )

    return ConstraintResult(
        graph=constraint_graph,
        cube_uri=cube_uri,
        constraint_uri=constraint_uri,
        observations_analyzed=len(observations),
        properties_detected=len(stats),
    )
