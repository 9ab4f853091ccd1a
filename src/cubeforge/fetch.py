"""
Remote cube fetcher – retrieve cube subgraphs with SPARQL CONSTRUCT.

Four query shapes are supported, each optionally scoped to one named
graph:

1. **Full cube**: cube triples, its observation set, every observation
   reachable through ``cube:observationSet``/``cube:observation`` and
   the constraint with its property shapes.

2. **Metadata only**: as above minus ``cube:observation`` links and
   observation bodies; the observation set is only asserted to exist.

3. **Constraint only**: the constraint resource and its property
   shapes, including one level of blank-node values (``sh:in`` lists,
   nested shapes …).

4. **Observations only**: observation triples, with optional
   ``LIMIT``/``OFFSET`` paging::

       CONSTRUCT { ?obs ?p ?v } WHERE {
         <cube> cube:observationSet ?obsSet .
         ?obsSet cube:observation ?obs .
         ?obs ?p ?v .
       }
       LIMIT 5
       OFFSET 10

Queries go through :class:`~cubeforge.sparql_helper.SparqlHelper`;
its errors surface as :class:`~cubeforge.errors.EndpointFailure`.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from rdflib import Graph, URIRef

from cubeforge.errors import EndpointFailure, InvalidPathArgument
from cubeforge.models import FetchResult
from cubeforge.namespaces import CUBE, RDF, SH
from cubeforge.sparql_helper import SparqlHelper, SparqlHelperError
from cubeforge.terms import check_iri

logger = logging.getLogger(__name__)

__all__ = [
    "CubeFetcher",
    "build_constraint_query",
    "build_cube_query",
    "build_metadata_query",
    "build_observations_query",
    "fetch_constraint",
    "fetch_cube",
    "fetch_metadata",
    "fetch_observations",
]

_PREFIXES = f"""\
PREFIX cube: <{CUBE}>
PREFIX sh: <{SH}>
PREFIX rdf: <{RDF}>
"""


# -------------------------------------------------------------------
# SPARQL query templates
# -------------------------------------------------------------------

def _graph_clause(graph_uri: str | None) -> tuple[str, str]:
    """Return (open, close) strings for an optional GRAPH clause.

    If *graph_uri* is ``None`` → empty strings (default graph),
    otherwise ``GRAPH <uri> {`` / ``}``.
    """
    if not graph_uri:
        return "", ""
    return f"GRAPH <{graph_uri}> {{", "}"


def build_cube_query(cube_uri: str, graph_uri: str | None = None) -> str:
    """Full cube: metadata, observation set, observations and constraint."""
    g_open, g_close = _graph_clause(graph_uri)
    return f"""\
{_PREFIXES}
CONSTRUCT {{
  ?cube ?cp ?co .
  ?obsSet ?osp ?oso .
  ?obs ?obsp ?obsv .
  ?constraint ?conp ?conv .
  ?propShape ?psp ?psv .
}}
WHERE {{
  {g_open}
    BIND(<{cube_uri}> AS ?cube)
    ?cube ?cp ?co .
    OPTIONAL {{
      ?cube cube:observationSet ?obsSet .
      ?obsSet ?osp ?oso .
      OPTIONAL {{
        ?obsSet cube:observation ?obs .
        ?obs ?obsp ?obsv .
      }}
    }}
    OPTIONAL {{
      ?cube cube:observationConstraint ?constraint .
      ?constraint ?conp ?conv .
      OPTIONAL {{
        ?constraint sh:property ?propShape .
        ?propShape ?psp ?psv .
      }}
    }}
  {g_close}
}}"""


def build_metadata_query(cube_uri: str, graph_uri: str | None = None) -> str:
    """Cube metadata and constraint, without any observation."""
    g_open, g_close = _graph_clause(graph_uri)
    return f"""\
{_PREFIXES}
CONSTRUCT {{
  ?cube ?cp ?co .
  ?obsSet rdf:type cube:ObservationSet .
  ?constraint ?conp ?conv .
  ?propShape ?psp ?psv .
}}
WHERE {{
  {g_open}
    BIND(<{cube_uri}> AS ?cube)
    ?cube ?cp ?co .
    FILTER(?cp != cube:observation)
    OPTIONAL {{
      ?cube cube:observationSet ?obsSet .
    }}
    OPTIONAL {{
      ?cube cube:observationConstraint ?constraint .
      ?constraint ?conp ?conv .
      OPTIONAL {{
        ?constraint sh:property ?propShape .
        ?propShape ?psp ?psv .
      }}
    }}
  {g_close}
}}"""


def build_constraint_query(cube_uri: str, graph_uri: str | None = None) -> str:
    """The cube's constraint and property shapes, one blank-node level deep."""
    g_open, g_close = _graph_clause(graph_uri)
    return f"""\
{_PREFIXES}
CONSTRUCT {{
  <{cube_uri}> cube:observationConstraint ?constraint .
  ?constraint ?cp ?co .
  ?propShape ?psp ?psv .
  ?psv ?np ?nv .
}}
WHERE {{
  {g_open}
    <{cube_uri}> cube:observationConstraint ?constraint .
    ?constraint ?cp ?co .
    OPTIONAL {{
      ?constraint sh:property ?propShape .
      ?propShape ?psp ?psv .
      OPTIONAL {{
        ?psv ?np ?nv .
        FILTER(isBlank(?psv))
      }}
    }}
  {g_close}
}}"""


def build_observations_query(
    cube_uri: str,
    graph_uri: str | None = None,
    limit: int = 0,
    offset: int = 0,
) -> str:
    """Observation triples only; ``LIMIT``/``OFFSET`` appended when > 0."""
    if limit < 0 or offset < 0:
        raise InvalidPathArgument(
            "fetch-observations",
            f"limit and offset must not be negative (got {limit}, {offset})",
        )
    g_open, g_close = _graph_clause(graph_uri)
    q = f"""\
{_PREFIXES}
CONSTRUCT {{
  ?obs ?p ?v .
}}
WHERE {{
  {g_open}
    <{cube_uri}> cube:observationSet ?obsSet .
    ?obsSet cube:observation ?obs .
    ?obs ?p ?v .
  {g_close}
}}"""
    if limit > 0:
        q += f"\nLIMIT {limit}"
    if offset > 0:
        q += f"\nOFFSET {offset}"
    return q


# -------------------------------------------------------------------
# Fetcher
# -------------------------------------------------------------------

class CubeFetcher:
    """Fetch cube subgraphs from a SPARQL endpoint.

    Parameters
    ----------
    endpoint_url:
        SPARQL endpoint URL.
    timeout:
        HTTP timeout per request (seconds).
    max_retries:
        Attempts per query for transient failures.
    helper:
        Pre-built :class:`SparqlHelper`; one is created when omitted.
    """

    def __init__(
        self,
        endpoint_url: str,
        timeout: float = 60.0,
        max_retries: int = 3,
        helper: SparqlHelper | None = None,
    ) -> None:
        self.endpoint_url = check_iri(endpoint_url, "endpoint URL", "fetch-cube")
        self.timeout = timeout
        self._helper = helper or SparqlHelper(
            endpoint_url, timeout=timeout, max_retries=max_retries,
        )

    # ---- public API -----------------------------------------------

    def fetch_cube(
        self, cube_uri: str, graph_uri: str | None = None,
    ) -> FetchResult:
        """Fetch the complete cube."""
        self._check(cube_uri, graph_uri, "fetch-cube")
        query = build_cube_query(cube_uri, graph_uri)
        logger.info("Fetching cube %s from %s", cube_uri, self.endpoint_url)
        graph = self._run(query, cube_uri, "fetch-cube", "cube")
        return self._result(graph, query, cube_uri)

    def fetch_metadata(
        self, cube_uri: str, graph_uri: str | None = None,
    ) -> FetchResult:
        """Fetch cube metadata and constraint, without observations."""
        self._check(cube_uri, graph_uri, "fetch-metadata")
        query = build_metadata_query(cube_uri, graph_uri)
        logger.info("Fetching metadata for cube %s from %s", cube_uri, self.endpoint_url)
        graph = self._run(query, cube_uri, "fetch-metadata", "cube metadata")
        return self._result(graph, query, cube_uri)

    def fetch_constraint(
        self, cube_uri: str, graph_uri: str | None = None,
    ) -> FetchResult:
        """Fetch only the cube's constraint."""
        self._check(cube_uri, graph_uri, "fetch-constraint")
        query = build_constraint_query(cube_uri, graph_uri)
        logger.info("Fetching constraint for cube %s from %s", cube_uri, self.endpoint_url)
        graph = self._run(query, cube_uri, "fetch-constraint", "cube constraint")
        extra: dict[str, Any] = {}
        constraint = graph.value(URIRef(cube_uri), CUBE.observationConstraint)
        if constraint is not None:
            extra["constraintUri"] = str(constraint)
        return self._result(graph, query, cube_uri, extra)

    def fetch_observations(
        self,
        cube_uri: str,
        graph_uri: str | None = None,
        limit: int = 0,
        offset: int = 0,
    ) -> FetchResult:
        """Fetch observation triples, optionally one page at a time."""
        self._check(cube_uri, graph_uri, "fetch-observations")
        query = build_observations_query(cube_uri, graph_uri, limit, offset)
        logger.info(
            "Fetching observations for cube %s from %s (limit=%d, offset=%d)",
            cube_uri, self.endpoint_url, limit, offset,
        )
        graph = self._run(query, cube_uri, "fetch-observations", "observations")
        observation_count = len(set(graph.subjects(RDF.type, CUBE.Observation)))
        return self._result(
            graph, query, cube_uri,
            {"limit": limit, "offset": offset, "observationCount": observation_count},
        )

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._helper.close()

    def __enter__(self) -> CubeFetcher:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ---- internals ------------------------------------------------

    @staticmethod
    def _check(cube_uri: str, graph_uri: str | None, operation: str) -> None:
        check_iri(cube_uri, "cube IRI", operation)
        if graph_uri is not None:
            check_iri(graph_uri, "graph IRI", operation)

    def _run(self, query: str, cube_uri: str, operation: str, what: str) -> Graph:
        logger.debug("Executing SPARQL query:\n%s", query)
        try:
            graph = self._helper.construct_graph(query)
        except SparqlHelperError as exc:
            logger.error("Failed to fetch %s: %s", what, exc)
            raise EndpointFailure(
                operation,
                f"Failed to fetch {what}: {exc}",
                endpoint=self.endpoint_url,
                cube_uri=cube_uri,
            ) from exc
        logger.info("Fetched %d triples", len(graph))
        return graph

    def _result(
        self,
        graph: Graph,
        query: str,
        cube_uri: str,
        extra: Optional[dict[str, Any]] = None,
    ) -> FetchResult:
        return FetchResult(
            graph=graph,
            query=query,
            cube_uri=cube_uri,
            endpoint=self.endpoint_url,
            extra=extra or {},
        )


# -------------------------------------------------------------------
# One-shot helpers
# -------------------------------------------------------------------

def fetch_cube(
    endpoint_url: str,
    cube_uri: str,
    graph_uri: str | None = None,
    timeout: float = 60.0,
) -> FetchResult:
    """Fetch a complete cube from *endpoint_url*."""
    with CubeFetcher(endpoint_url, timeout=timeout) as fetcher:
        return fetcher.fetch_cube(cube_uri, graph_uri)


def fetch_metadata(
    endpoint_url: str,
    cube_uri: str,
    graph_uri: str | None = None,
    timeout: float = 60.0,
) -> FetchResult:
    """Fetch cube metadata (no observations) from *endpoint_url*."""
    with CubeFetcher(endpoint_url, timeout=timeout) as fetcher:
        return fetcher.fetch_metadata(cube_uri, graph_uri)


def fetch_constraint(
    endpoint_url: str,
    cube_uri: str,
    graph_uri: str | None = None,
    timeout: float = 60.0,
) -> FetchResult:
    """Fetch only the cube constraint from *endpoint_url*."""
    with CubeFetcher(endpoint_url, timeout=timeout) as fetcher:
        return fetcher.fetch_constraint(cube_uri, graph_uri)


def fetch_observations(
    endpoint_url: str,
    cube_uri: str,
    graph_uri: str | None = None,
    limit: int = 0,
    offset: int = 0,
    timeout: float = 60.0,
) -> FetchResult:
    """Fetch observation triples from *endpoint_url*."""
    with CubeFetcher(endpoint_url, timeout=timeout) as fetcher:
        return fetcher.fetch_observations(cube_uri, graph_uri, limit, offset)
