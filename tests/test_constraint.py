"""Tests for constraint inference."""

from __future__ import annotations

import pytest
from rdflib import Graph, Literal, URIRef
from rdflib.collection import Collection
from rdflib.compare import isomorphic

from conftest import CUBE_URI, EX, add_observation
from cubeforge.constraint import build_constraint, infer_constraint
from cubeforge.errors import ErrorKind, InvalidPathArgument, NoInputGraph, NoObservationsFound
from cubeforge.models import ConstraintOptions
from cubeforge.namespaces import CUBE, RDF, SCHEMA, SH, XSD
from cubeforge.statistics import collect_property_stats
from cubeforge.terms import find_observations

CONSTRAINT = URIRef(f"{CUBE_URI}/constraint")


def _shape_for(graph: Graph, prop: URIRef):
    for shape in graph.objects(CONSTRAINT, SH.property):
        if (shape, SH.path, prop) in graph:
            return shape
    raise AssertionError(f"No property shape for {prop}")


def _in_list(graph: Graph, shape):
    head = graph.value(shape, SH["in"])
    return None if head is None else list(Collection(graph, head))


class TestConstraintStructure:
    """Node shape, link to the cube and per-property assertions."""

    def test_node_shape(self, population_graph):
        g = infer_constraint(population_graph, CUBE_URI).graph
        assert (CONSTRAINT, RDF.type, CUBE.Constraint) in g
        assert (CONSTRAINT, RDF.type, SH.NodeShape) in g
        assert (CONSTRAINT, SH.targetClass, CUBE.Observation) in g
        assert (CONSTRAINT, SH.closed, Literal(False)) in g
        assert (URIRef(CUBE_URI), CUBE.observationConstraint, CONSTRAINT) in g
        assert len(list(g.objects(CONSTRAINT, SH.property))) == 3

    def test_cardinality(self, population_graph):
        g = infer_constraint(population_graph, CUBE_URI).graph
        for shape in g.objects(CONSTRAINT, SH.property):
            assert g.value(shape, SH.minCount) == Literal(1)
            assert g.value(shape, SH.maxCount) == Literal(1)

    def test_literal_property_gets_datatype_only(self, population_graph):
        g = infer_constraint(population_graph, CUBE_URI).graph
        shape = _shape_for(g, EX.population)
        assert g.value(shape, SH.datatype) == XSD.integer
        assert g.value(shape, SH.nodeKind) is None

    def test_iri_property_gets_node_kind_only(self, population_graph):
        g = infer_constraint(population_graph, CUBE_URI).graph
        shape = _shape_for(g, EX.period)
        assert g.value(shape, SH.nodeKind) == SH.IRI
        assert g.value(shape, SH.datatype) is None
        assert set(_in_list(g, shape)) == {EX["year/2000"], EX["year/2001"]}

    def test_mixed_property_gets_neither(self, mixed_graph):
        g = infer_constraint(mixed_graph, CUBE_URI).graph
        shape = _shape_for(g, EX.note)
        assert g.value(shape, SH.datatype) is None
        assert g.value(shape, SH.nodeKind) is None

    def test_order_follows_first_seen(self):
        g = Graph()
        add_observation(g, "o1", zeta=Literal("z"))
        add_observation(g, "o2", alpha=Literal("a"))
        stats = collect_property_stats(g, [EX.o1, EX.o2])
        constraint = build_constraint(CUBE_URI, stats)
        zeta = _shape_for(constraint, EX.zeta)
        alpha = _shape_for(constraint, EX.alpha)
        assert constraint.value(zeta, SH.order) == Literal(1)
        assert constraint.value(alpha, SH.order) == Literal(2)

    def test_names(self):
        g = Graph()
        add_observation(g, "o1", referencePeriod=Literal("2020"))
        constraint = infer_constraint(g, CUBE_URI).graph
        shape = _shape_for(constraint, EX.referencePeriod)
        assert constraint.value(shape, SH.name) == Literal("reference period")
        assert constraint.value(EX.referencePeriod, SCHEMA.name) == Literal(
            "reference period",
        )

    def test_custom_constraint_uri(self, population_graph):
        options = ConstraintOptions(constraint_uri="http://example.org/shape")
        result = infer_constraint(population_graph, CUBE_URI, options)
        assert result.constraint_uri == "http://example.org/shape"
        assert (
            URIRef(CUBE_URI), CUBE.observationConstraint, URIRef("http://example.org/shape"),
        ) in result.graph


class TestEnumeration:
    """sh:in lists and their bounds."""

    def test_small_value_set_is_enumerated(self, population_graph):
        g = infer_constraint(population_graph, CUBE_URI).graph
        values = _in_list(g, _shape_for(g, EX.city))
        assert set(values) == {Literal("Bern"), Literal("Zurich"), Literal("Basel")}

    def test_typed_values_keep_their_datatype(self):
        g = Graph()
        for i in range(3):
            add_observation(g, f"o{i}", year=Literal(str(2000 + i), datatype=XSD.gYear))
        constraint = infer_constraint(g, CUBE_URI).graph
        values = _in_list(constraint, _shape_for(constraint, EX.year))
        assert Literal("2001", datatype=XSD.gYear) in values

    def test_explicit_string_datatype_is_kept(self):
        g = Graph()
        add_observation(g, "o1", city=Literal("Bern", datatype=XSD.string))
        add_observation(g, "o2", city=Literal("Zurich", datatype=XSD.string))
        constraint = infer_constraint(g, CUBE_URI).graph
        values = _in_list(constraint, _shape_for(constraint, EX.city))
        assert values == [
            Literal("Bern", datatype=XSD.string),
            Literal("Zurich", datatype=XSD.string),
        ]

    def test_above_max_enum_values_has_no_list(self, population_graph):
        options = ConstraintOptions(max_enum_values=2)
        g = infer_constraint(population_graph, CUBE_URI, options).graph
        assert _in_list(g, _shape_for(g, EX.city)) is None
        assert _in_list(g, _shape_for(g, EX.period)) is not None

    def test_enumeration_disabled(self, population_graph):
        options = ConstraintOptions(include_value_enumeration=False)
        g = infer_constraint(population_graph, CUBE_URI, options).graph
        assert not list(g.objects(None, SH["in"]))

    def test_hundred_value_precheck(self):
        g = Graph()
        for i in range(101):
            add_observation(g, f"o{i}", code=Literal(f"c{i}"))
        options = ConstraintOptions(max_enum_values=500)
        constraint = infer_constraint(g, CUBE_URI, options).graph
        assert _in_list(constraint, _shape_for(constraint, EX.code)) is None

    def test_hundred_values_still_enumerable(self):
        g = Graph()
        for i in range(100):
            add_observation(g, f"o{i}", code=Literal(f"c{i}"))
        options = ConstraintOptions(max_enum_values=500)
        constraint = infer_constraint(g, CUBE_URI, options).graph
        assert len(_in_list(constraint, _shape_for(constraint, EX.code))) == 100


class TestRoles:
    """Role assertions on property IRIs."""

    def test_roles_asserted(self, population_graph):
        g = infer_constraint(population_graph, CUBE_URI).graph
        assert (EX.population, RDF.type, CUBE.MeasureDimension) in g
        assert (EX.city, RDF.type, CUBE.KeyDimension) in g
        assert (EX.period, RDF.type, CUBE.KeyDimension) in g

    def test_roles_disabled(self, population_graph):
        options = ConstraintOptions(infer_dimension_roles=False)
        g = infer_constraint(population_graph, CUBE_URI, options).graph
        assert not list(g.subjects(RDF.type, CUBE.MeasureDimension))
        assert not list(g.subjects(RDF.type, CUBE.KeyDimension))


class TestFailures:
    """Missing input and malformed arguments."""

    def test_no_graph(self):
        with pytest.raises(NoInputGraph) as excinfo:
            infer_constraint(None, CUBE_URI)
        assert excinfo.value.kind is ErrorKind.NO_INPUT_GRAPH
        assert excinfo.value.operation == "build-cube-shape"

    def test_empty_graph(self):
        with pytest.raises(NoInputGraph):
            infer_constraint(Graph(), CUBE_URI)

    def test_no_observations(self):
        g = Graph()
        g.add((EX.thing, RDF.type, EX.Thing))
        with pytest.raises(NoObservationsFound):
            infer_constraint(g, CUBE_URI)

    def test_relative_cube_uri(self, population_graph):
        with pytest.raises(InvalidPathArgument):
            infer_constraint(population_graph, "not a uri")


def test_result_metadata(population_graph):
    result = infer_constraint(population_graph, CUBE_URI)
    assert result.metadata == {
        "observationsAnalyzed": 12,
        "propertiesDetected": 3,
        "constraintUri": str(CONSTRAINT),
        "constraintTriples": len(result.graph),
    }
    assert "cube:Constraint" in result.to_turtle()


def test_idempotent(population_graph):
    first = infer_constraint(population_graph, CUBE_URI).graph
    second = infer_constraint(population_graph, CUBE_URI).graph
    assert isomorphic(first, second)


def test_stats_from_explicit_observations(population_graph):
    stats = collect_property_stats(population_graph, find_observations(population_graph))
    assert isomorphic(
        build_constraint(CUBE_URI, stats),
        infer_constraint(population_graph, CUBE_URI).graph,
    )
