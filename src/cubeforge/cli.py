"""Command line interface for :mod:`cubeforge`."""

import json
from pathlib import Path
from typing import Optional

import click

from .api import (
    FETCH_MODES,
    build_cube_shape,
    build_shape,
    create_observations,
    fetch,
    load_graph,
    load_mapping,
    load_shape_definition,
    read_csv_rows,
    validate_cube,
    validate_full,
)
from .config import Config
from .errors import CubeForgeError
from .models import ValidationReport
from .observations import LoggingProgressSink

__all__ = [
    "main",
]


def _write(text: str, output: Optional[str]) -> None:
    if output:
        Path(output).write_text(text, encoding="utf-8")
        click.echo(f"OK Written: {output}", err=True)
    else:
        click.echo(text)


@click.group()
@click.version_option()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    r"""cubeforge - cube.link schema inference and validation.

    Infer constraints from observations, generate observations from
    tables, validate cubes and fetch them from SPARQL endpoints.


    Typical workflow: generate > infer > validate
    """
    import logging

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            force=True,
        )
        logging.getLogger("cubeforge").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s", force=True)


@main.command()
@click.option("--input", "input_file", required=True, type=click.Path(exists=True),
              help="RDF file with cube:Observation resources")
@click.option("--cube-uri", required=True, help="Cube IRI")
@click.option("--constraint-uri", help="Constraint IRI (default: <cube>/constraint)")
@click.option("--no-roles", is_flag=True, help="Do not type properties as key/measure dimensions")
@click.option("--no-enum", is_flag=True, help="Do not emit sh:in value lists")
@click.option("--max-enum-values", type=int, default=Config.MAX_ENUM_VALUES, show_default=True,
              help="Largest value set rendered as sh:in")
@click.option("--output", help="Output Turtle file (default: stdout)")
def infer(
    input_file: str,
    cube_uri: str,
    constraint_uri: Optional[str],
    no_roles: bool,
    no_enum: bool,
    max_enum_values: int,
    output: Optional[str],
) -> None:
    """Infer a cube constraint from observations.


    Example:
      cubeforge infer --input cube.ttl --cube-uri https://ex.org/cube
    """
    try:
        result = build_cube_shape(
            load_graph(input_file),
            cube_uri,
            constraint_uri=constraint_uri,
            infer_dimension_roles=not no_roles,
            include_value_enumeration=not no_enum,
            max_enum_values=max_enum_values,
        )
    except CubeForgeError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()

    click.echo(
        f"Analyzed {result.observations_analyzed} observations, "
        f"{result.properties_detected} properties",
        err=True,
    )
    _write(result.to_turtle(), output)


@main.command()
@click.option("--input", "input_file", required=True, type=click.Path(exists=True),
              help="CSV file with one observation per row")
@click.option("--cube-uri", required=True, help="Cube IRI")
@click.option("--mapping", required=True, type=click.Path(exists=True),
              help="YAML/JSON column mapping (dimensions, measures, attributes)")
@click.option("--observation-base", help="Observation IRI prefix (default: <cube>/observation/)")
@click.option("--date-format", default=Config.DATE_FORMAT, show_default=True,
              help="Pattern of 'date' dimension values")
@click.option("--emit-undefined/--omit-undefined", default=Config.EMIT_UNDEFINED,
              help="Emit cube:Undefined for missing values instead of omitting them")
@click.option("--output", help="Output Turtle file (default: stdout)")
def generate(
    input_file: str,
    cube_uri: str,
    mapping: str,
    observation_base: Optional[str],
    date_format: str,
    emit_undefined: bool,
    output: Optional[str],
) -> None:
    """Generate observations from a CSV file.


    Example:
      cubeforge generate --input pop.csv --cube-uri https://ex.org/cube \\
                         --mapping mapping.yaml --output observations.ttl
    """
    try:
        result = create_observations(
            read_csv_rows(input_file),
            cube_uri,
            load_mapping(mapping),
            observation_base_uri=observation_base,
            date_format=date_format,
            emit_undefined=emit_undefined,
            progress_interval=Config.PROGRESS_INTERVAL,
            progress=LoggingProgressSink(),
        )
    except CubeForgeError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()

    click.echo(
        f"Created {result.observation_count} observations "
        f"({result.undefined_count} undefined values, {result.triples_generated} triples)",
        err=True,
    )
    _write(result.graph.serialize(format="turtle"), output)


@main.command()
@click.option("--input", "input_file", required=True, type=click.Path(exists=True),
              help="RDF file with the cube observations")
@click.option("--constraint", type=click.Path(exists=True),
              help="Constraint Turtle file (default: taken from the input)")
@click.option("--profile", type=click.Path(exists=True),
              help="Metadata profile Turtle file; also validates the cube metadata")
@click.option("--batch-size", type=int, default=Config.BATCH_SIZE, show_default=True,
              help="Observations per batch (0 = all at once)")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
def validate(
    input_file: str,
    constraint: Optional[str],
    profile: Optional[str],
    batch_size: int,
    as_json: bool,
) -> None:
    """Validate cube observations against a constraint.

    With --profile the metadata is validated as well and the observations
    are checked against the constraint found in the input.
    Exits with status 1 when the cube does not conform.


    Example:
      cubeforge validate --input cube.ttl --batch-size 1000
      cubeforge validate --input cube.ttl --profile profile.ttl
    """
    if profile:
        _validate_full(input_file, profile, batch_size, as_json)
        return

    try:
        constraint_text = (
            Path(constraint).read_text(encoding="utf-8") if constraint else None
        )
        report = validate_cube(load_graph(input_file), constraint_text, batch_size)
    except CubeForgeError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()

    if as_json:
        click.echo(json.dumps(report.model_dump(mode="json", by_alias=True), indent=2))
    else:
        _echo_report(report)
    if not report.conforms:
        raise SystemExit(1)


def _echo_report(report: ValidationReport) -> None:
    click.echo(f"Conforms: {report.conforms}")
    click.echo(
        f"Violations: {report.violation_count}  Warnings: {report.warning_count}  "
        f"Infos: {report.info_count}"
    )
    for r in report.results:
        click.echo(f"  [{r.severity.value}] {r.focus_node} {r.result_path}: {r.message}")


def _validate_full(input_file: str, profile: str, batch_size: int, as_json: bool) -> None:
    try:
        result = validate_full(
            load_graph(input_file),
            Path(profile).read_text(encoding="utf-8"),
            batch_size,
        )
    except CubeForgeError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()

    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
    else:
        click.echo(result.summary)
        _echo_report(result.metadata_report)
        if result.observations_report is not None:
            _echo_report(result.observations_report)
    if not result.conforms:
        raise SystemExit(1)


@main.command(name="fetch")
@click.option("--endpoint", required=True, help="SPARQL endpoint URL")
@click.option("--cube-uri", required=True, help="Cube IRI")
@click.option("--graph-uri", help="Named graph holding the cube (optional)")
@click.option("--mode", type=click.Choice(FETCH_MODES), default="cube", show_default=True,
              help="What to fetch")
@click.option("--limit", type=click.IntRange(min=0), default=0,
              help="Observation page size (observations mode, 0 = all)")
@click.option("--offset", type=click.IntRange(min=0), default=0,
              help="Observation page offset (observations mode)")
@click.option("--timeout", type=float, default=Config.SPARQL_TIMEOUT, show_default=True,
              help="HTTP timeout in seconds")
@click.option("--output", help="Output Turtle file (default: stdout)")
def fetch_command(
    endpoint: str,
    cube_uri: str,
    graph_uri: Optional[str],
    mode: str,
    limit: int,
    offset: int,
    timeout: float,
    output: Optional[str],
) -> None:
    """Fetch a cube or part of it from a SPARQL endpoint.


    Example:
      cubeforge fetch --endpoint https://lindas.admin.ch/query \\
                      --cube-uri https://ex.org/cube --mode metadata
    """
    try:
        result = fetch(
            endpoint,
            cube_uri,
            mode=mode,
            graph_uri=graph_uri,
            limit=limit,
            offset=offset,
            timeout=timeout,
            max_retries=Config.SPARQL_MAX_RETRIES,
        )
    except CubeForgeError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()

    click.echo(f"Fetched {result.triple_count} triples", err=True)
    _write(result.graph.serialize(format="turtle"), output)


@main.command()
@click.option("--definition", required=True, type=click.Path(exists=True),
              help="YAML/JSON shape definition")
@click.option("--output", help="Output Turtle file (default: stdout)")
def shape(definition: str, output: Optional[str]) -> None:
    """Render a shape definition as SHACL Turtle.


    Example:
      cubeforge shape --definition person-shape.yaml --output person.ttl
    """
    try:
        turtle = build_shape(load_shape_definition(definition))
    except CubeForgeError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort()
    _write(turtle, output)


if __name__ == "__main__":
    main()
