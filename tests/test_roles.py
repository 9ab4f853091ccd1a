"""Tests for key/measure role inference."""

from __future__ import annotations

import pytest
from rdflib import Graph, Literal

from conftest import EX, add_observation
from cubeforge.namespaces import CUBE, XSD
from cubeforge.roles import DimensionRole, infer_role, is_numeric_datatype
from cubeforge.statistics import collect_property_stats
from cubeforge.terms import find_observations


def _stats_for(values):
    g = Graph()
    for i, value in enumerate(values):
        add_observation(g, f"o{i}", p=value)
    return collect_property_stats(g, find_observations(g))[str(EX.p)]


@pytest.mark.parametrize(
    "datatype",
    [XSD.integer, XSD.decimal, XSD.double, XSD.float, XSD.int, XSD.long],
)
def test_numeric_with_many_values_is_measure(datatype):
    stats = _stats_for([Literal(str(i), datatype=datatype) for i in range(11)])
    assert infer_role(stats) is DimensionRole.MEASURE_DIMENSION


def test_exactly_ten_distinct_values_is_key():
    stats = _stats_for([Literal(i) for i in range(10)])
    assert infer_role(stats) is DimensionRole.KEY_DIMENSION


def test_many_strings_are_key():
    stats = _stats_for([Literal(f"v{i}") for i in range(50)])
    assert infer_role(stats) is DimensionRole.KEY_DIMENSION


def test_other_numeric_types_are_not_measures():
    stats = _stats_for(
        [Literal(str(i), datatype=XSD.nonNegativeInteger) for i in range(20)],
    )
    assert not is_numeric_datatype(stats.datatype)
    assert infer_role(stats) is DimensionRole.KEY_DIMENSION


def test_mixed_numeric_types_are_key():
    values = [Literal(i) for i in range(8)] + [Literal(float(i)) for i in range(8)]
    stats = _stats_for(values)
    assert stats.datatype is None
    assert infer_role(stats) is DimensionRole.KEY_DIMENSION


def test_role_uri():
    assert DimensionRole.MEASURE_DIMENSION.uri == CUBE.MeasureDimension
    assert DimensionRole.KEY_DIMENSION.uri == CUBE.KeyDimension
