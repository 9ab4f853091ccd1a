"""
HTTP client for SPARQL CONSTRUCT queries.

Cube endpoints (LINDAS, Fuseki, Stardog, GraphDB …) differ in what they
accept, so :class:`SparqlHelper` negotiates:

- queries go out as GET first and switch to form-encoded POST when the
  endpoint answers 405/414 or serves an HTML page instead of RDF; the
  switch sticks for the lifetime of the helper
- 429 and 5xx answers, timeouts and connection errors are retried with
  exponential backoff
- 400 means the endpoint rejected the query and is not retried
- the body is parsed as Turtle (or RDF/XML when it looks like XML)

Usage:
    from cubeforge.sparql_helper import SparqlHelper

    with SparqlHelper("https://lindas.admin.ch/query", timeout=30) as helper:
        graph = helper.construct_graph("CONSTRUCT { ?s ?p ?o } WHERE { ?s ?p ?o } LIMIT 10")
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Any

import requests
from rdflib import Graph

from cubeforge.version import VERSION

logger = logging.getLogger(__name__)

__all__ = [
    "EndpointError",
    "MimeTypes",
    "QueryError",
    "SparqlHelper",
    "SparqlHelperError",
]


class SparqlHelperError(Exception):
    """Base class of the SPARQL client errors."""


class EndpointError(SparqlHelperError):
    """The endpoint failed, timed out, or answered with something that is not RDF."""


class QueryError(SparqlHelperError):
    """The endpoint rejected the query (HTTP 400)."""


class MimeTypes:
    """RDF media types offered for CONSTRUCT results, most preferred first."""

    TURTLE = "text/turtle"
    N3 = "text/n3"
    NTRIPLES = "application/n-triples"
    RDFXML = "application/rdf+xml"

    CONSTRUCT_ACCEPT = ", ".join(
        (TURTLE, f"{N3};q=0.9", f"{NTRIPLES};q=0.8", f"{RDFXML};q=0.7")
    )


class SparqlHelper:
    """
    CONSTRUCT executor for one endpoint.

    Attributes:
        endpoint_url: Endpoint the queries are sent to
        max_retries: Attempts per query for transient failures
        initial_backoff: First retry delay in seconds, doubled per attempt
        max_backoff: Upper bound of the retry delay in seconds
        timeout: Per-request timeout in seconds

    Example:
        >>> helper = SparqlHelper("https://lindas.admin.ch/query")
        >>> graph = helper.construct_graph("CONSTRUCT WHERE { ?s ?p ?o } LIMIT 1")
        >>> len(graph)
        1
    """

    # Transport error texts after which GET is abandoned for POST
    POST_HINTS = ("html", "method not allowed", "uri too long", "414")

    # Prefixes of an HTML page served in place of RDF
    HTML_PREFIXES = ("<!doctype", "<html")

    # Answers retried with backoff
    TRANSIENT_STATUS = frozenset({429, 500, 502, 503, 504})

    # Answers meaning GET is not accepted
    POST_ONLY_STATUS = frozenset({405, 414})

    USER_AGENT = f"cubeforge/{VERSION} (SPARQL client)"

    def __init__(
        self,
        endpoint_url: str,
        *,
        use_post: bool = False,
        max_retries: int = 3,
        initial_backoff: float = 1.0,
        max_backoff: float = 30.0,
        timeout: float = 60.0,
    ) -> None:
        """
        Args:
            endpoint_url: SPARQL endpoint URL
            use_post: Skip GET and always send form-encoded POST
            max_retries: Attempts per query (at least 1)
            initial_backoff: First retry delay in seconds
            max_backoff: Largest retry delay in seconds
            timeout: Per-request timeout in seconds
        """
        self.endpoint_url = endpoint_url
        self.max_retries = max(1, max_retries)
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.timeout = timeout
        self._post_only = use_post
        self._session = requests.Session()
        self._session.headers["User-Agent"] = self.USER_AGENT

        logger.debug("SPARQL client for %s (POST only: %s)", endpoint_url, use_post)

    # ---- public API ---------------------------------------------------

    def construct(self, query: str) -> str:
        """
        Run a CONSTRUCT query and return the response body.

        Args:
            query: SPARQL CONSTRUCT query

        Returns:
            Serialized RDF (Turtle, N-Triples or RDF/XML)

        Raises:
            EndpointError: When every attempt failed
            QueryError: When the endpoint rejected the query
        """
        attempt = 0
        while True:
            attempt += 1
            method = "POST" if self._post_only else "GET"
            try:
                body = self._send(method, query, MimeTypes.CONSTRUCT_ACCEPT)
            except requests.exceptions.HTTPError as e:
                status = e.response.status_code if e.response is not None else 0
                if method == "GET" and status in self.POST_ONLY_STATUS:
                    self._switch_to_post(f"HTTP {status}")
                    attempt -= 1
                    continue
                if status == 400:
                    raise QueryError(f"Query rejected by {self.endpoint_url}: {e}") from e
                if status not in self.TRANSIENT_STATUS:
                    raise EndpointError(f"HTTP {status} from {self.endpoint_url}: {e}") from e
                self._wait_before_retry(attempt, e)
                continue
            except requests.exceptions.RequestException as e:
                if method == "GET" and any(h in str(e).lower() for h in self.POST_HINTS):
                    self._switch_to_post(str(e))
                    attempt -= 1
                    continue
                self._wait_before_retry(attempt, e)
                continue

            if self._looks_like_html(body):
                if method == "POST":
                    raise EndpointError(
                        f"{self.endpoint_url} answered with an HTML page instead of RDF"
                    )
                self._switch_to_post("HTML answer")
                attempt -= 1
                continue
            return body

    def construct_graph(self, query: str) -> Graph:
        """
        Run a CONSTRUCT query and parse the result.

        Args:
            query: SPARQL CONSTRUCT query

        Returns:
            Graph of the constructed triples (empty for an empty body)

        Raises:
            EndpointError: When the query failed or the body is not RDF
            QueryError: When the endpoint rejected the query
        """
        body = self.construct(query)
        graph = Graph()
        if not body.strip():
            return graph

        fmt = "xml" if body.lstrip().startswith(("<?xml", "<rdf:RDF")) else "turtle"
        try:
            graph.parse(data=body, format=fmt)
        except Exception as e:  # each rdflib parser raises its own types
            logger.error("Could not parse CONSTRUCT result as %s: %s", fmt, e)
            raise EndpointError(f"Malformed CONSTRUCT response: {e}") from e
        return graph

    def close(self) -> None:
        """Release the HTTP session."""
        self._session.close()

    def __enter__(self) -> SparqlHelper:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SparqlHelper({self.endpoint_url!r}, post_only={self._post_only})"

    # ---- internals ----------------------------------------------------

    def _send(self, method: str, query: str, accept: str) -> str:
        """One HTTP exchange; POST bodies are form-encoded (SPARQL 1.1 protocol)."""
        if method == "POST":
            response = self._session.post(
                self.endpoint_url,
                data={"query": query},
                headers={
                    "Accept": accept,
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                timeout=self.timeout,
            )
        else:
            response = self._session.get(
                self.endpoint_url,
                params={"query": query},
                headers={"Accept": accept},
                timeout=self.timeout,
            )
        response.raise_for_status()
        return response.text

    def _switch_to_post(self, reason: str) -> None:
        logger.debug("GET not usable on %s (%s), switching to POST", self.endpoint_url, reason)
        self._post_only = True

    def _wait_before_retry(self, attempt: int, error: Exception) -> None:
        """Sleep before the next attempt, or raise when none is left."""
        logger.warning(
            "CONSTRUCT attempt %d/%d on %s failed: %s",
            attempt, self.max_retries, self.endpoint_url, error,
        )
        if attempt >= self.max_retries:
            logger.error("Giving up on %s after %d attempts", self.endpoint_url, attempt)
            raise EndpointError(
                f"Query failed after {self.max_retries} attempts: {error}"
            ) from error

        delay = min(self.initial_backoff * 2 ** (attempt - 1), self.max_backoff)
        # up to 10% jitter, in milliseconds
        delay += secrets.randbelow(int(delay * 100) + 1) / 1000
        logger.info("Retrying in %.1fs", delay)
        time.sleep(delay)

    def _looks_like_html(self, body: str) -> bool:
        return body.lstrip()[:20].lower().startswith(self.HTML_PREFIXES)
