"""Shared fixtures for cubeforge tests."""

from __future__ import annotations

import pytest
from rdflib import BNode, Graph, Literal, Namespace

from cubeforge.config import TestConfig
from cubeforge.models import ValidationReport, ValidationResult
from cubeforge.namespaces import CUBE, RDF, XSD

EX = Namespace("http://example.org/")
CUBE_URI = "http://example.org/cube"


def add_observation(graph: Graph, name: str, **values) -> None:
    """Add ``ex:<name>`` as an observation with one triple per keyword."""
    obs = EX[name]
    graph.add((obs, RDF.type, CUBE.Observation))
    for prop, value in values.items():
        graph.add((obs, EX[prop], value))


@pytest.fixture
def population_graph():
    """Twelve observations: city (string), year (gYear IRI), population."""
    g = Graph()
    cities = ["Bern", "Zurich", "Basel"]
    for i in range(12):
        add_observation(
            g,
            f"obs{i}",
            city=Literal(cities[i % 3]),
            period=EX[f"year/{2000 + i % 2}"],
            population=Literal(100_000 + i * 1000, datatype=XSD.integer),
        )
    return g


@pytest.fixture
def mixed_graph():
    """Observations whose properties mix literals, IRIs and blank nodes."""
    g = Graph()
    add_observation(g, "a", note=Literal("x"), ref=EX.thing, extra=Literal(1))
    add_observation(g, "b", note=EX.other, ref=EX.thing, extra=Literal("1"))
    add_observation(g, "c", note=BNode(), ref=EX.other2, extra=Literal(2))
    return g


@pytest.fixture
def config():
    return TestConfig


class FakeCheck:
    """Conformance primitive that fails chosen batches and records calls."""

    def __init__(self, failing_batches=(), violations_per_failure=1):
        self.failing_batches = set(failing_batches)
        self.violations_per_failure = violations_per_failure
        self.calls = []

    def __call__(self, data_graph, shapes):
        batch = len(self.calls)
        observations = set(data_graph.subjects(RDF.type, CUBE.Observation))
        self.calls.append((data_graph, shapes, observations))
        if batch not in self.failing_batches:
            return ValidationReport(conforms=True)
        results = [
            ValidationResult(message=f"batch {batch} violation {n}")
            for n in range(self.violations_per_failure)
        ]
        return ValidationReport(
            conforms=False,
            violation_count=len(results),
            results=results,
        )


@pytest.fixture
def fake_check():
    return FakeCheck
