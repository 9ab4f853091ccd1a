"""Key/measure role inference for cube properties.

The rule is a heuristic, not a proof: a property whose single datatype
is numeric and which shows more than :data:`MEASURE_DISTINCT_THRESHOLD`
distinct values is taken to be a measure; every other property is
taken to be a key dimension.  Downstream consumers depend on this exact
rule, so the threshold is not configurable.
"""

from __future__ import annotations

from enum import Enum

from rdflib import URIRef

from cubeforge.namespaces import CUBE, XSD
from cubeforge.statistics import PropertyStats

__all__ = [
    "MEASURE_DISTINCT_THRESHOLD",
    "NUMERIC_DATATYPES",
    "DimensionRole",
    "infer_role",
    "is_numeric_datatype",
]

MEASURE_DISTINCT_THRESHOLD = 10

NUMERIC_DATATYPES: frozenset[str] = frozenset(
    str(dt)
    for dt in (
        XSD.integer,
        XSD.decimal,
        XSD.double,
        XSD.float,
        XSD.int,
        XSD.long,
    )
)


class DimensionRole(str, Enum):
    """Role of a property within a cube."""

    KEY_DIMENSION = "KeyDimension"
    MEASURE_DIMENSION = "MeasureDimension"

    @property
    def uri(self) -> URIRef:
        """The ``cube:`` class asserted for this role."""
        return CUBE[self.value]


def is_numeric_datatype(datatype: str | None) -> bool:
    """Whether *datatype* belongs to the numeric set."""
    return datatype is not None and datatype in NUMERIC_DATATYPES


def infer_role(stats: PropertyStats) -> DimensionRole:
    """Classify a property as key dimension or measure dimension."""
    if (
        is_numeric_datatype(stats.datatype)
        and stats.unique_count > MEASURE_DISTINCT_THRESHOLD
    ):
        return DimensionRole.MEASURE_DIMENSION
    return DimensionRole.KEY_DIMENSION
