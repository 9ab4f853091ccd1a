"""Tests for splitting cube graphs."""

from __future__ import annotations

from rdflib import BNode, Graph, Literal

from conftest import CUBE_URI, EX, add_observation
from cubeforge.constraint import infer_constraint
from cubeforge.extract import extract_constraint, extract_metadata, observation_subgraph
from cubeforge.namespaces import CUBE, RDF, SH


def _cube_with_constraint(population_graph) -> Graph:
    g = Graph()
    g += population_graph
    g += infer_constraint(population_graph, CUBE_URI).graph
    g.add((EX.cube, RDF.type, CUBE.Cube))
    return g


def test_extract_constraint_follows_blank_nodes(population_graph):
    cube = _cube_with_constraint(population_graph)
    constraint = extract_constraint(cube)
    assert (EX["cube/constraint"], RDF.type, CUBE.Constraint) in constraint
    shapes = list(constraint.objects(EX["cube/constraint"], SH.property))
    assert len(shapes) == 3
    for shape in shapes:
        assert constraint.value(shape, SH.path) is not None
    # the sh:in list cells are copied too
    assert list(constraint.objects(None, RDF.first))
    assert not list(constraint.subjects(RDF.type, CUBE.Observation))


def test_extract_plain_node_shape_targeting_observations():
    g = Graph()
    shape, prop = EX.shape, BNode()
    g.add((shape, RDF.type, SH.NodeShape))
    g.add((shape, SH.targetClass, CUBE.Observation))
    g.add((shape, SH.property, prop))
    g.add((prop, SH.path, EX.city))
    g.add((EX.otherShape, RDF.type, SH.NodeShape))
    g.add((EX.otherShape, SH.targetClass, EX.Person))
    constraint = extract_constraint(g)
    assert (prop, SH.path, EX.city) in constraint
    assert (EX.otherShape, RDF.type, SH.NodeShape) not in constraint


def test_extract_constraint_handles_cycles():
    g = Graph()
    a, b = BNode(), BNode()
    g.add((EX.c, RDF.type, CUBE.Constraint))
    g.add((EX.c, SH.property, a))
    g.add((a, SH.node, b))
    g.add((b, SH.node, a))
    assert len(extract_constraint(g)) == 4


def test_extract_constraint_empty(population_graph):
    assert len(extract_constraint(population_graph)) == 0


def test_extract_metadata_drops_observations(population_graph):
    cube = _cube_with_constraint(population_graph)
    metadata = extract_metadata(cube)
    assert (EX.cube, RDF.type, CUBE.Cube) in metadata
    assert not list(metadata.subjects(RDF.type, CUBE.Observation))
    assert len(metadata) == len(cube) - len(population_graph)


def test_observation_subgraph():
    g = Graph()
    add_observation(g, "o1", city=Literal("Bern"))
    add_observation(g, "o2", city=Literal("Zurich"))
    g.add((EX.cube, RDF.type, CUBE.Cube))
    sub = observation_subgraph(g, [EX.o1])
    assert set(sub) == {
        (EX.o1, RDF.type, CUBE.Observation),
        (EX.o1, EX.city, Literal("Bern")),
    }
