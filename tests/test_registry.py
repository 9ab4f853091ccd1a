"""Tests for the operation registry."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from rdflib import Graph, Literal

from conftest import CUBE_URI, EX, add_observation
from cubeforge.constraint import infer_constraint
from cubeforge.errors import ErrorKind
from cubeforge.models import FetchResult
from cubeforge.namespaces import CUBE, RDF, SCHEMA
from cubeforge.registry import (
    BuildCubeShapeOperation,
    OperationContext,
    OperationRegistry,
    OperationType,
    build_default_registry,
)

ALL_IDS = {
    "build-cube-shape",
    "create-observation",
    "validate-observations",
    "validate-cube-metadata",
    "validate-cube",
    "build-shape",
    "fetch-cube",
    "fetch-metadata",
    "fetch-constraint",
    "fetch-observations",
}

PROFILE = """
@prefix sh: <http://www.w3.org/ns/shacl#> .
@prefix cube: <https://cube.link/> .
@prefix schema: <https://schema.org/> .

<http://example.org/CubeProfile> a sh:NodeShape ;
    sh:targetClass cube:Cube ;
    sh:property [ sh:path schema:name ; sh:minCount 1 ] .
"""


@pytest.fixture
def registry(config):
    return build_default_registry(config)


class TestCatalog:
    """Registration and lookup."""

    def test_default_operations(self, registry):
        assert len(registry) == 10
        assert {op["id"] for op in registry.catalog()} == ALL_IDS
        assert "build-cube-shape" in registry
        assert registry.get("nope") is None

    def test_by_type(self, registry):
        sources = {op.id for op in registry.by_type(OperationType.SOURCE)}
        assert sources == {"fetch-cube", "fetch-metadata", "fetch-constraint", "fetch-observations"}
        cube_ops = {op.id for op in registry.by_type(OperationType.CUBE)}
        assert cube_ops == {"build-cube-shape", "create-observation"}
        validation_ops = {op.id for op in registry.by_type(OperationType.VALIDATION)}
        assert validation_ops == {
            "validate-observations", "validate-cube-metadata", "validate-cube", "build-shape",
        }

    def test_duplicate_registration(self, registry, config):
        with pytest.raises(ValueError):
            registry.register(BuildCubeShapeOperation(config))

    def test_unknown_operation(self, registry):
        with pytest.raises(KeyError):
            registry.run("nope", OperationContext())

    def test_describe(self, registry, config):
        described = registry.get_or_raise("build-cube-shape").describe()
        params = {p["name"]: p for p in described["parameters"]}
        assert described["type"] == "CUBE"
        assert params["cubeUri"]["required"] is True
        assert params["maxEnumValues"]["default"] == config.MAX_ENUM_VALUES

    def test_empty_registry(self):
        registry = OperationRegistry()
        assert len(registry) == 0
        assert registry.all() == []

    def test_context_fields(self):
        with pytest.raises(TypeError):
            OperationContext(variables={"x": 1})
        context = OperationContext()
        assert context.parameters == {}
        assert context.input_graph is None and context.input_rows is None


class TestParameters:
    """Parameter checking happens before any work is done."""

    def test_missing_required(self, registry, population_graph):
        with pytest.raises(TypeError, match="cubeUri"):
            registry.run("build-cube-shape", OperationContext(input_graph=population_graph))

    def test_wrong_type(self, registry, population_graph):
        context = OperationContext(
            parameters={"cubeUri": CUBE_URI, "maxEnumValues": "10"},
            input_graph=population_graph,
        )
        with pytest.raises(TypeError, match="maxEnumValues"):
            registry.run("build-cube-shape", context)


class TestRun:
    """Dispatching through the registry."""

    def test_build_cube_shape(self, registry, population_graph):
        result = registry.run(
            "build-cube-shape",
            OperationContext(parameters={"cubeUri": CUBE_URI}, input_graph=population_graph),
        )
        assert result.success
        assert result.error is None
        assert result.metadata["observationsAnalyzed"] == 12
        assert result.metadata["propertiesDetected"] == 3
        assert (None, RDF.type, CUBE.Constraint) in result.output_graph

    def test_failure_becomes_result(self, registry):
        graph = Graph()
        graph.add((EX.something, EX.label, Literal("not an observation")))
        result = registry.run(
            "build-cube-shape",
            OperationContext(parameters={"cubeUri": CUBE_URI}, input_graph=graph),
        )
        assert not result.success
        assert result.output_graph is None
        assert result.error.kind is ErrorKind.NO_OBSERVATIONS_FOUND
        assert result.error.operation == "build-cube-shape"

    def test_create_observation(self, registry):
        rows = [{"city": "Bern", "pop": "133000"}, {"city": "Zurich", "pop": "415000"}]
        context = OperationContext(
            parameters={
                "cubeUri": CUBE_URI,
                "dimensions": {"city": {"propertyUri": str(EX.city), "keyDimension": True}},
                "measures": {"pop": {"propertyUri": str(EX.population), "datatype": "integer"}},
            },
            input_rows=rows,
        )
        result = registry.run("create-observation", context)
        assert result.success
        assert result.metadata["observationCount"] == 2
        assert len(set(result.output_graph.subjects(RDF.type, CUBE.Observation))) == 2

    def test_create_observation_without_rows(self, registry):
        result = registry.run(
            "create-observation", OperationContext(parameters={"cubeUri": CUBE_URI}),
        )
        assert not result.success
        assert result.error.kind is ErrorKind.NO_INPUT_GRAPH

    def test_validate_observations(self, registry, population_graph):
        constraint = infer_constraint(population_graph, CUBE_URI).graph
        cube = population_graph + constraint
        result = registry.run(
            "validate-observations",
            OperationContext(parameters={"batchSize": 5}, input_graph=cube),
        )
        assert result.success
        assert result.metadata["conforms"] is True
        assert result.metadata["batches"] == 3
        assert result.metadata["violationCount"] == 0
        assert result.metadata["report"].conforms

    def test_validate_without_constraint(self, registry, population_graph):
        result = registry.run("validate-observations", OperationContext(input_graph=population_graph))
        assert result.error.kind is ErrorKind.NO_CONSTRAINT_FOUND

    def test_validate_with_malformed_constraint(self, registry, population_graph):
        result = registry.run(
            "validate-observations",
            OperationContext(
                parameters={"constraint": "this is not turtle ."},
                input_graph=population_graph,
            ),
        )
        assert not result.success
        assert result.error.kind is ErrorKind.NO_CONSTRAINT_FOUND
        assert result.error.operation == "validate-observations"
        assert "not valid Turtle" in result.error.message

    def test_validate_cube_metadata(self, registry, population_graph):
        cube = population_graph + infer_constraint(population_graph, CUBE_URI).graph
        # typed as a cube but without a name
        cube.add((EX.cube, RDF.type, CUBE.Cube))
        result = registry.run(
            "validate-cube-metadata",
            OperationContext(parameters={"shapes": PROFILE}, input_graph=cube),
        )
        assert result.success
        assert result.metadata["conforms"] is False
        assert result.metadata["violationCount"] == 1
        assert result.metadata["totalTriples"] == len(cube)

    def test_validate_cube(self, registry, population_graph):
        cube = population_graph + infer_constraint(population_graph, CUBE_URI).graph
        cube.add((EX.cube, RDF.type, CUBE.Cube))
        cube.add((EX.cube, SCHEMA.name, Literal("Population")))
        add_observation(cube, "extra", city=Literal("Geneva"))
        result = registry.run(
            "validate-cube",
            OperationContext(
                parameters={"metadataShapes": PROFILE, "batchSize": 4},
                input_graph=cube,
            ),
        )
        assert result.success
        assert result.metadata["conforms"] is False
        assert result.metadata["totalObservations"] == 13
        assert result.metadata["invalidObservations"] == 1
        assert result.metadata["validObservations"] == 12
        assert result.output_text == result.metadata["result"].summary

    def test_validate_cube_with_malformed_profile(self, registry, population_graph):
        result = registry.run(
            "validate-cube",
            OperationContext(
                parameters={"metadataShapes": "@prefix broken"},
                input_graph=population_graph,
            ),
        )
        assert not result.success
        assert result.error.kind is ErrorKind.NO_CONSTRAINT_FOUND
        assert result.error.operation == "validate-cube"

    def test_build_shape(self, registry):
        definition = {
            "uri": "http://example.org/PersonShape",
            "targetClass": "http://example.org/Person",
            "properties": [{"path": "http://example.org/name", "minCount": 1}],
        }
        result = registry.run(
            "build-shape", OperationContext(parameters={"definition": definition}),
        )
        assert result.success
        assert "sh:NodeShape" in result.output_text
        assert result.metadata["shapeUri"] == "http://example.org/PersonShape"

    def test_build_shape_without_target(self, registry):
        result = registry.run(
            "build-shape",
            OperationContext(parameters={"definition": {"uri": "http://example.org/S"}}),
        )
        assert result.error.kind is ErrorKind.INVALID_PATH_ARGUMENT

    @patch("cubeforge.registry.CubeFetcher")
    def test_fetch_observations(self, mock_fetcher_cls, registry, config):
        fetcher = MagicMock()
        mock_fetcher_cls.return_value.__enter__.return_value = fetcher
        fetcher.fetch_observations.return_value = FetchResult(
            graph=Graph(),
            query="CONSTRUCT {} WHERE {}",
            cube_uri=CUBE_URI,
            endpoint="http://example.org/sparql",
            extra={"limit": 100, "offset": 200, "observationCount": 0},
        )
        context = OperationContext(parameters={
            "endpoint": "http://example.org/sparql",
            "cubeUri": CUBE_URI,
            "limit": 100,
            "offset": 200,
        })

        result = registry.run("fetch-observations", context)

        assert result.success
        assert result.metadata["limit"] == 100
        mock_fetcher_cls.assert_called_once_with(
            "http://example.org/sparql",
            timeout=config.SPARQL_TIMEOUT,
            max_retries=config.SPARQL_MAX_RETRIES,
        )
        fetcher.fetch_observations.assert_called_once_with(
            CUBE_URI, None, limit=100, offset=200,
        )
