"""Main cubeforge functionalities: loading inputs and running the engine."""

from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

import pandas as pd
import yaml
from rdflib import Graph
from rdflib.util import guess_format

from .constraint import infer_constraint
from .fetch import CubeFetcher
from .models import (
    ConstraintOptions,
    ConstraintResult,
    CubeValidationResult,
    FetchResult,
    GenerationResult,
    ShapeDefinition,
    ValidationReport,
)
from .observations import dataframe_rows, generate_observations
from .shapes import build_shape_turtle
from .validation import validate_cube_metadata, validate_cube_observations, validate_full_cube

__all__ = [
    "build_cube_shape",
    "build_shape",
    "create_observations",
    "fetch",
    "load_graph",
    "load_mapping",
    "load_shape_definition",
    "read_csv_rows",
    "validate_cube",
    "validate_full",
    "validate_metadata",
]

FETCH_MODES = ("cube", "metadata", "constraint", "observations")


def load_graph(source: Union[str, Path], fmt: Optional[str] = None) -> Graph:
    """Load an RDF file into a graph.

    Args:
        source: Path to an RDF file
        fmt: rdflib format name (guessed from the extension, default Turtle)

    Returns:
        RDFLib Graph
    """
    path = str(source)
    return Graph().parse(source=path, format=fmt or guess_format(path) or "turtle")


def load_mapping(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a column mapping (YAML or JSON).

    The document holds up to three sections, ``dimensions``,
    ``measures`` and ``attributes``, each mapping a column name to its
    configuration::

        dimensions:
          city: {propertyUri: "https://ex.org/city", keyDimension: true}
        measures:
          pop: {propertyUri: "https://ex.org/population", datatype: integer}

    Args:
        path: Mapping file

    Returns:
        Dictionary with ``dimensions``, ``measures`` and ``attributes``
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return {
        "dimensions": data.get("dimensions") or {},
        "measures": data.get("measures") or {},
        "attributes": data.get("attributes") or {},
    }


def load_shape_definition(path: Union[str, Path]) -> ShapeDefinition:
    """Load a user shape definition (YAML or JSON).

    Args:
        path: Definition file

    Returns:
        Validated ShapeDefinition
    """
    with open(path, encoding="utf-8") as f:
        return ShapeDefinition.model_validate(yaml.safe_load(f))


def read_csv_rows(
    path: Union[str, Path],
    chunksize: int = 10_000,
    **read_csv_kwargs: Any,
) -> Iterator[Dict[str, Any]]:
    """Stream the rows of a CSV file as dicts of strings.

    Cells are read as text and empty cells stay empty strings, so the
    null-like handling of the observation generator applies unchanged.

    Args:
        path: CSV file
        chunksize: Rows read per pandas chunk
        **read_csv_kwargs: Extra arguments for ``pandas.read_csv``

    Yields:
        One dict per row
    """
    options: Dict[str, Any] = {"dtype": str, "keep_default_na": False}
    options.update(read_csv_kwargs)
    with pd.read_csv(path, chunksize=chunksize, **options) as reader:
        for chunk in reader:
            yield from dataframe_rows(chunk)


def build_cube_shape(
    graph: Graph,
    cube_uri: str,
    constraint_uri: Optional[str] = None,
    infer_dimension_roles: bool = True,
    include_value_enumeration: bool = True,
    max_enum_values: int = 50,
) -> ConstraintResult:
    """Infer the constraint of a cube from its observations.

    Args:
        graph: Graph holding cube:Observation resources
        cube_uri: Cube IRI
        constraint_uri: Constraint IRI (default: cube IRI + '/constraint')
        infer_dimension_roles: Type properties as key/measure dimensions
        include_value_enumeration: Emit sh:in for small value sets
        max_enum_values: Largest value set rendered as sh:in

    Returns:
        ConstraintResult with the constraint graph and metadata
    """
    options = ConstraintOptions(
        constraint_uri=constraint_uri,
        infer_dimension_roles=infer_dimension_roles,
        include_value_enumeration=include_value_enumeration,
        max_enum_values=max_enum_values,
    )
    return infer_constraint(graph, cube_uri, options)


def create_observations(
    rows: Any,
    cube_uri: str,
    mapping: Dict[str, Any],
    **options: Any,
) -> GenerationResult:
    """Create observations from rows or a DataFrame.

    Args:
        rows: Iterable of dicts, or a pandas DataFrame
        cube_uri: Cube IRI
        mapping: Dict with ``dimensions``, ``measures`` and ``attributes``
        **options: Further ObservationGenerator arguments
            (observation_base_uri, date_format, emit_undefined, ...)

    Returns:
        GenerationResult with the observation graph and counters
    """
    if isinstance(rows, pd.DataFrame):
        rows = dataframe_rows(rows)
    return generate_observations(
        cube_uri,
        rows,
        dimensions=mapping.get("dimensions"),
        measures=mapping.get("measures"),
        attributes=mapping.get("attributes"),
        **options,
    )


def validate_cube(
    graph: Graph,
    constraint: Optional[Union[str, Graph]] = None,
    batch_size: int = 0,
) -> ValidationReport:
    """Validate the observations of a cube graph.

    Args:
        graph: Cube graph with observations (and a constraint, unless given)
        constraint: Constraint graph or Turtle text
        batch_size: Observations per batch (0 = all at once)

    Returns:
        Aggregated ValidationReport
    """
    return validate_cube_observations(graph, constraint, batch_size=batch_size)


def validate_metadata(
    graph: Graph,
    shapes: Union[str, Graph],
) -> ValidationReport:
    """Validate the non-observation triples of a cube against a profile.

    Args:
        graph: Cube graph
        shapes: Metadata profile as a graph or Turtle text

    Returns:
        ValidationReport of the metadata subgraph
    """
    return validate_cube_metadata(graph, shapes)


def validate_full(
    graph: Graph,
    metadata_shapes: Union[str, Graph],
    batch_size: int = 0,
) -> CubeValidationResult:
    """Validate a cube's metadata and its observations in one call.

    Args:
        graph: Cube graph with metadata, constraint and observations
        metadata_shapes: Metadata profile as a graph or Turtle text
        batch_size: Observations per batch (0 = all at once)

    Returns:
        CubeValidationResult with both reports and observation counts
    """
    return validate_full_cube(graph, metadata_shapes, batch_size=batch_size)


def build_shape(definition: Union[ShapeDefinition, Dict[str, Any]]) -> str:
    """Render a user shape definition as Turtle."""
    return build_shape_turtle(definition)


def fetch(
    endpoint_url: str,
    cube_uri: str,
    mode: str = "cube",
    graph_uri: Optional[str] = None,
    limit: int = 0,
    offset: int = 0,
    timeout: float = 60.0,
    max_retries: int = 3,
) -> FetchResult:
    """Fetch a cube, its metadata, its constraint or its observations.

    Args:
        endpoint_url: SPARQL endpoint URL
        cube_uri: Cube IRI
        mode: One of 'cube', 'metadata', 'constraint', 'observations'
        graph_uri: Named graph holding the cube
        limit: Observation page size (observations mode only, 0 = all)
        offset: Observation page offset (observations mode only)
        timeout: HTTP timeout in seconds
        max_retries: Attempts per query

    Returns:
        FetchResult with the constructed graph
    """
    if mode not in FETCH_MODES:
        raise ValueError(f"Unknown fetch mode {mode!r}; expected one of {FETCH_MODES}")
    with CubeFetcher(endpoint_url, timeout=timeout, max_retries=max_retries) as fetcher:
        if mode == "observations":
            return fetcher.fetch_observations(cube_uri, graph_uri, limit, offset)
        return getattr(fetcher, f"fetch_{mode}")(cube_uri, graph_uri)
