"""Tests for the remote cube fetcher."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests
from rdflib import Graph, Literal, URIRef
from rdflib.collection import Collection
from rdflib.plugins.sparql import prepareQuery

from conftest import CUBE_URI, EX, add_observation
from cubeforge.errors import EndpointFailure, ErrorKind, InvalidPathArgument
from cubeforge.fetch import (
    CubeFetcher,
    build_constraint_query,
    build_cube_query,
    build_metadata_query,
    build_observations_query,
    fetch_cube,
)
from cubeforge.namespaces import CUBE, RDF, SH
from cubeforge.sparql_helper import EndpointError

ENDPOINT = "http://example.org/sparql"
GRAPH_URI = "http://example.org/graph"


class LocalHelper:
    """Answer CONSTRUCT queries from an in-memory graph."""

    def __init__(self, graph):
        self.graph = graph
        self.queries = []

    def construct_graph(self, query):
        self.queries.append(query)
        return self.graph.query(query).graph

    def close(self):
        pass


@pytest.fixture
def cube_graph():
    """A published cube: metadata, observation set, constraint, 3 observations."""
    g = Graph()
    cube = URIRef(CUBE_URI)
    obs_set = EX["cube/observation/"]
    constraint = EX["cube/constraint"]
    shape = EX["cube/constraint/city"]
    g.add((cube, RDF.type, CUBE.Cube))
    g.add((cube, EX.title, Literal("Population")))
    g.add((cube, CUBE.observationSet, obs_set))
    g.add((obs_set, RDF.type, CUBE.ObservationSet))
    g.add((cube, CUBE.observationConstraint, constraint))
    g.add((constraint, RDF.type, CUBE.Constraint))
    g.add((constraint, SH.property, shape))
    g.add((shape, SH.path, EX.city))
    values = Collection(g, None, [Literal("Bern"), Literal("Zurich")])
    g.add((shape, SH["in"], values.uri))
    for name, city in (("o1", "Bern"), ("o2", "Zurich"), ("o3", "Bern")):
        add_observation(g, name, city=Literal(city))
        g.add((obs_set, CUBE.observation, EX[name]))
    return g


class TestQueries:
    """Shape of the generated CONSTRUCT queries."""

    @pytest.mark.parametrize(
        "builder",
        [build_cube_query, build_metadata_query, build_constraint_query, build_observations_query],
    )
    def test_queries_parse(self, builder):
        prepareQuery(builder(CUBE_URI))
        prepareQuery(builder(CUBE_URI, GRAPH_URI))

    def test_graph_clause(self):
        assert f"GRAPH <{GRAPH_URI}> {{" in build_cube_query(CUBE_URI, GRAPH_URI)
        assert "GRAPH" not in build_cube_query(CUBE_URI)

    def test_metadata_excludes_observations(self):
        query = build_metadata_query(CUBE_URI)
        assert "FILTER(?cp != cube:observation)" in query
        assert "?obs " not in query

    def test_constraint_follows_blank_nodes(self):
        assert "FILTER(isBlank(?psv))" in build_constraint_query(CUBE_URI)

    def test_paging(self):
        query = build_observations_query(CUBE_URI, limit=5, offset=10)
        assert query.endswith("\nLIMIT 5\nOFFSET 10")
        prepareQuery(query)

    def test_no_paging_by_default(self):
        query = build_observations_query(CUBE_URI)
        assert "LIMIT" not in query
        assert "OFFSET" not in query

    def test_negative_paging_rejected(self):
        with pytest.raises(InvalidPathArgument):
            build_observations_query(CUBE_URI, limit=-1)


class TestFetcher:
    """CubeFetcher against an in-memory endpoint."""

    def test_fetch_cube(self, cube_graph):
        result = CubeFetcher(ENDPOINT, helper=LocalHelper(cube_graph)).fetch_cube(CUBE_URI)
        assert (EX.o1, EX.city, Literal("Bern")) in result.graph
        assert (URIRef(CUBE_URI), EX.title, Literal("Population")) in result.graph
        assert (EX["cube/constraint/city"], SH.path, EX.city) in result.graph
        assert result.metadata["tripleCount"] == len(result.graph)
        assert result.metadata["endpoint"] == ENDPOINT
        assert result.metadata["cubeUri"] == CUBE_URI

    def test_fetch_metadata(self, cube_graph):
        result = CubeFetcher(ENDPOINT, helper=LocalHelper(cube_graph)).fetch_metadata(CUBE_URI)
        assert not set(result.graph.subjects(RDF.type, CUBE.Observation))
        assert (EX["cube/observation/"], RDF.type, CUBE.ObservationSet) in result.graph
        assert (URIRef(CUBE_URI), CUBE.observationConstraint, EX["cube/constraint"]) in result.graph

    def test_fetch_constraint(self, cube_graph):
        result = CubeFetcher(ENDPOINT, helper=LocalHelper(cube_graph)).fetch_constraint(CUBE_URI)
        assert result.metadata["constraintUri"] == str(EX["cube/constraint"])
        values = result.graph.value(EX["cube/constraint/city"], SH["in"])
        assert result.graph.value(values, RDF.first) == Literal("Bern")
        assert not set(result.graph.subjects(RDF.type, CUBE.Observation))

    def test_fetch_observations(self, cube_graph):
        helper = LocalHelper(cube_graph)
        result = CubeFetcher(ENDPOINT, helper=helper).fetch_observations(CUBE_URI)
        assert result.metadata["observationCount"] == 3
        assert result.metadata["limit"] == 0
        assert result.metadata["offset"] == 0
        assert (URIRef(CUBE_URI), RDF.type, CUBE.Cube) not in result.graph

    def test_fetch_observations_page(self, cube_graph):
        helper = LocalHelper(cube_graph)
        result = CubeFetcher(ENDPOINT, helper=helper).fetch_observations(
            CUBE_URI, limit=5, offset=10,
        )
        assert "LIMIT 5" in helper.queries[0]
        assert "OFFSET 10" in helper.queries[0]
        assert result.metadata["limit"] == 5
        assert result.metadata["offset"] == 10

    def test_named_graph_scoping(self, cube_graph):
        helper = MagicMock()
        helper.construct_graph.return_value = Graph()
        CubeFetcher(ENDPOINT, helper=helper).fetch_cube(CUBE_URI, GRAPH_URI)
        assert f"GRAPH <{GRAPH_URI}>" in helper.construct_graph.call_args[0][0]

    def test_invalid_cube_uri(self):
        with pytest.raises(InvalidPathArgument):
            CubeFetcher(ENDPOINT, helper=LocalHelper(Graph())).fetch_cube("not an iri")

    def test_endpoint_error_is_wrapped(self):
        helper = MagicMock()
        helper.construct_graph.side_effect = EndpointError("connection refused")
        with pytest.raises(EndpointFailure) as info:
            CubeFetcher(ENDPOINT, helper=helper).fetch_metadata(CUBE_URI)
        assert info.value.kind is ErrorKind.ENDPOINT_FAILURE
        assert info.value.endpoint == ENDPOINT
        assert info.value.cube_uri == CUBE_URI
        assert "connection refused" in str(info.value)


class TestOverHttp:
    """The one-shot helpers through a mocked HTTP session."""

    @patch("cubeforge.sparql_helper.requests.Session")
    def test_fetch_cube(self, mock_session_cls):
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_resp = MagicMock()
        mock_resp.text = f"<{CUBE_URI}> a <https://cube.link/Cube> ."
        mock_resp.raise_for_status = MagicMock()
        mock_session.get.return_value = mock_resp

        result = fetch_cube(ENDPOINT, CUBE_URI)

        assert result.triple_count == 1
        assert "CONSTRUCT" in mock_session.get.call_args[1]["params"]["query"]
        mock_session.close.assert_called_once()

    @patch("cubeforge.sparql_helper.time.sleep")
    @patch("cubeforge.sparql_helper.requests.Session")
    def test_connection_failure(self, mock_session_cls, _sleep):
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(EndpointFailure) as info:
            with CubeFetcher(ENDPOINT, max_retries=2) as fetcher:
                fetcher.fetch_observations(CUBE_URI, limit=10)
        assert info.value.operation == "fetch-observations"
        assert mock_session.get.call_count == 2
