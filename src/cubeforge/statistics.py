"""
Property statistics over cube observations.

A single pass over every ``cube:Observation`` in a graph folds each
outgoing (predicate, object) pair into a per-property accumulator:

* occurrence count,
* kinds of value seen (IRI, literal, blank node),
* set of literal datatypes,
* bounded set of distinct values (canonical string form).

The distinct-value set stops growing at :data:`MAX_TRACKED_VALUES`
entries so that memory stays bounded on large cubes.  Properties keep
the order in which they were first encountered, which later drives the
``sh:order`` of the generated property shapes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from rdflib import Graph
from rdflib.term import Node

from cubeforge.namespaces import RDF
from cubeforge.terms import TermKind, canonical_value, literal_datatype, term_kind

logger = logging.getLogger(__name__)

__all__ = [
    "MAX_TRACKED_VALUES",
    "PropertyStats",
    "PropertyStatsAccumulator",
    "collect_property_stats",
]

MAX_TRACKED_VALUES = 1000


@dataclass(frozen=True)
class PropertyStats:
    """Immutable statistics for one property."""

    property_uri: str
    datatypes: frozenset[str]
    values: tuple[str, ...]
    count: int
    has_iri_values: bool
    has_literal_values: bool
    has_blank_values: bool
    # every distinct RDF term behind the tracked values, first-seen order
    terms: tuple[Node, ...] = ()

    @property
    def unique_count(self) -> int:
        """Number of distinct values tracked (bounded)."""
        return len(self.values)

    @property
    def datatype(self) -> Optional[str]:
        """The datatype when exactly one was seen, else ``None``."""
        if len(self.datatypes) == 1:
            return next(iter(self.datatypes))
        return None

    @property
    def has_consistent_datatype(self) -> bool:
        """Exactly one datatype and no IRI or blank-node values."""
        return (
            len(self.datatypes) == 1
            and not self.has_iri_values
            and not self.has_blank_values
        )

    @property
    def all_values_are_iris(self) -> bool:
        """Only IRI values were seen."""
        return (
            self.has_iri_values
            and not self.has_literal_values
            and not self.has_blank_values
        )


@dataclass
class PropertyStatsAccumulator:
    """Mutable accumulator turned into :class:`PropertyStats` by :meth:`build`."""

    property_uri: str
    datatypes: set[str] = field(default_factory=set)
    # dict keeps first-seen order of values
    values: dict[str, None] = field(default_factory=dict)
    terms: dict[Node, None] = field(default_factory=dict)
    count: int = 0
    has_iri_values: bool = False
    has_literal_values: bool = False
    has_blank_values: bool = False

    def add_value(self, value: Node) -> None:
        self.count += 1
        kind = term_kind(value)
        if kind is TermKind.BLANK:
            self.has_blank_values = True
            # blank node labels carry no meaning for enumeration
            return
        if kind is TermKind.LITERAL:
            self.has_literal_values = True
            self.datatypes.add(str(literal_datatype(value)))
        else:
            self.has_iri_values = True
        key = canonical_value(value)
        if key in self.values or len(self.values) < MAX_TRACKED_VALUES:
            self.values.setdefault(key, None)
            # "a" and "a"^^xsd:string share a key but are distinct terms
            self.terms.setdefault(value, None)

    def build(self) -> PropertyStats:
        return PropertyStats(
            property_uri=self.property_uri,
            datatypes=frozenset(self.datatypes),
            values=tuple(self.values),
            count=self.count,
            has_iri_values=self.has_iri_values,
            has_literal_values=self.has_literal_values,
            has_blank_values=self.has_blank_values,
            terms=tuple(self.terms),
        )


def collect_property_stats(
    graph: Graph,
    observations: Iterable[Node],
) -> dict[str, PropertyStats]:
    """Collect :class:`PropertyStats` for every property of *observations*.

    Parameters
    ----------
    graph:
        Graph holding the observation triples.
    observations:
        Observation subjects to analyse.

    Returns
    -------
    dict
        Property IRI → statistics, in first-encountered order.  An
        empty observation set yields an empty mapping.
    """
    accumulators: dict[str, PropertyStatsAccumulator] = {}
    for obs in observations:
        for predicate, obj in graph.predicate_objects(obs):
            if predicate == RDF.type:
                continue
            key = str(predicate)
            acc = accumulators.get(key)
            if acc is None:
                acc = accumulators[key] = PropertyStatsAccumulator(key)
            acc.add_value(obj)

    stats = {uri: acc.build() for uri, acc in accumulators.items()}
    logger.debug("Collected statistics for %d properties", len(stats))
    return stats
