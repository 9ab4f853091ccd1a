"""
Batch validation of cube observations against a constraint.

Large observation graphs are split into contiguous batches; each batch
is validated on its own sub-graph holding exactly that batch's triples,
and the per-batch reports are folded into one:

- ``conforms`` is the conjunction over all batches (``True`` when there
  are none);
- violation, warning and info counts are summed;
- results are concatenated in batch order.

The conformance check itself is a pluggable callable
``(data_graph, shapes) -> ValidationReport``; :func:`pyshacl_validate`
is the default.

:func:`validate_cube_metadata` checks the non-observation triples of a
cube against a metadata profile, and :func:`validate_full_cube` runs
both checks and returns a :class:`CubeValidationResult`.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence, Union

import pyshacl
from rdflib import Graph
from rdflib.term import Node

from cubeforge.errors import NoConstraintFound, NoInputGraph, NoObservationsFound
from cubeforge.extract import extract_constraint, extract_metadata, observation_subgraph
from cubeforge.models import (
    CubeValidationResult,
    Severity,
    ValidationReport,
    ValidationResult,
)
from cubeforge.namespaces import RDF, SH
from cubeforge.terms import find_observations

logger = logging.getLogger(__name__)

__all__ = [
    "BatchValidator",
    "ConformanceCheck",
    "is_valid_shapes",
    "pyshacl_validate",
    "validate_cube_metadata",
    "validate_cube_observations",
    "validate_full_cube",
    "validate_observations_in_batches",
]

OPERATION_ID = "validate-observations"
METADATA_OPERATION_ID = "validate-cube-metadata"
CUBE_OPERATION_ID = "validate-cube"

ShapesInput = Union[str, Graph]
ConformanceCheck = Callable[[Graph, ShapesInput], ValidationReport]

_SEVERITIES = {
    SH.Violation: Severity.VIOLATION,
    SH.Warning: Severity.WARNING,
    SH.Info: Severity.INFO,
}


# ── Conformance primitive ────────────────────────────────────────────


def _as_shapes_graph(shapes: ShapesInput, operation: str = OPERATION_ID) -> Graph:
    if isinstance(shapes, Graph):
        return shapes
    try:
        return Graph().parse(data=shapes, format="turtle")
    except Exception as exc:  # rdflib raises parser-specific types
        logger.error("Shapes are not valid Turtle: %s", exc)
        raise NoConstraintFound(operation, f"Shapes are not valid Turtle: {exc}") from exc


def _as_cube_graph(cube: Union[Graph, str, None], operation: str) -> Graph:
    if isinstance(cube, str):
        try:
            cube = Graph().parse(data=cube, format="turtle")
        except Exception as exc:  # rdflib raises parser-specific types
            logger.error("Cube graph is not valid Turtle: %s", exc)
            raise NoInputGraph(operation, f"Cube graph is not valid Turtle: {exc}") from exc
    if cube is None or len(cube) == 0:
        raise NoInputGraph(operation, "No cube graph provided")
    return cube


def _text(graph: Graph, subject: Node, predicate: Node) -> Optional[str]:
    value = graph.value(subject, predicate)
    return None if value is None else str(value)


def _read_results(results_graph: Graph) -> list[ValidationResult]:
    results = []
    for node in results_graph.subjects(RDF.type, SH.ValidationResult):
        severity = _SEVERITIES.get(
            results_graph.value(node, SH.resultSeverity), Severity.VIOLATION,
        )
        results.append(
            ValidationResult(
                severity=severity,
                message=_text(results_graph, node, SH.resultMessage),
                focus_node=_text(results_graph, node, SH.focusNode),
                result_path=_text(results_graph, node, SH.resultPath),
                value=_text(results_graph, node, SH.value),
                source_constraint_component=_text(
                    results_graph, node, SH.sourceConstraintComponent,
                ),
                source_shape=_text(results_graph, node, SH.sourceShape),
            ),
        )
    results.sort(
        key=lambda r: (
            r.focus_node or "", r.result_path or "",
            r.source_constraint_component or "",
        ),
    )
    return results


def pyshacl_validate(data_graph: Graph, shapes: ShapesInput) -> ValidationReport:
    """Validate *data_graph* against *shapes* (Turtle text or a graph).

    Runs pyshacl without inference and maps every ``sh:ValidationResult``
    of its report graph to a :class:`ValidationResult`.
    """
    started = time.monotonic()
    conforms, results_graph, _ = pyshacl.validate(
        data_graph,
        shacl_graph=_as_shapes_graph(shapes),
        inference="none",
        abort_on_first=False,
        meta_shacl=False,
        advanced=False,
        debug=False,
    )
    results = _read_results(results_graph)
    return ValidationReport(
        conforms=bool(conforms),
        violation_count=sum(r.severity is Severity.VIOLATION for r in results),
        warning_count=sum(r.severity is Severity.WARNING for r in results),
        info_count=sum(r.severity is Severity.INFO for r in results),
        results=results,
        duration_ms=int((time.monotonic() - started) * 1000),
    )


def is_valid_shapes(text: str) -> bool:
    """Whether *text* parses as Turtle."""
    try:
        Graph().parse(data=text, format="turtle")
    except Exception as exc:  # rdflib raises parser-specific types
        logger.debug("Shapes do not parse: %s", exc)
        return False
    return True


# ── Batch validator ──────────────────────────────────────────────────


class BatchValidator:
    """Validate observations batch by batch and aggregate the reports.

    Parameters
    ----------
    batch_size:
        Observations per batch; ``0`` or less puts all of them in one
        batch.
    check:
        Conformance primitive.  Defaults to :func:`pyshacl_validate`.
    """

    def __init__(
        self,
        batch_size: int = 0,
        check: Optional[ConformanceCheck] = None,
    ) -> None:
        self.batch_size = batch_size
        self.check = check or pyshacl_validate

    def batches(self, observations: Sequence[Node]) -> list[Sequence[Node]]:
        """Contiguous slices of *observations*; the last may be shorter."""
        if not observations:
            return []
        size = self.batch_size if self.batch_size > 0 else len(observations)
        return [
            observations[start:start + size]
            for start in range(0, len(observations), size)
        ]

    def validate(
        self,
        graph: Graph,
        observations: Sequence[Node],
        constraint: ShapesInput,
    ) -> ValidationReport:
        """Validate *observations* of *graph* against *constraint*."""
        started = time.monotonic()
        batches = self.batches(observations)
        effective_size = (
            self.batch_size if self.batch_size > 0 else len(observations)
        )
        logger.info(
            "Validating %d observations in %d batch(es) of up to %d",
            len(observations), len(batches), effective_size,
        )

        conforms = True
        violations = warnings = infos = 0
        results: list[ValidationResult] = []
        for index, batch in enumerate(batches, start=1):
            report = self.check(observation_subgraph(graph, batch), constraint)
            logger.debug(
                "Batch %d/%d: %d observations, conforms=%s, %d violations",
                index, len(batches), len(batch),
                report.conforms, report.violation_count,
            )
            conforms = conforms and report.conforms
            violations += report.violation_count
            warnings += report.warning_count
            infos += report.info_count
            results.extend(report.results)

        return ValidationReport(
            conforms=conforms,
            violation_count=violations,
            warning_count=warnings,
            info_count=infos,
            results=results,
            metadata={
                "observationsValidated": len(observations),
                "batchSize": effective_size,
                "batches": len(batches),
            },
            duration_ms=int((time.monotonic() - started) * 1000),
        )


def validate_observations_in_batches(
    graph: Graph,
    observations: Sequence[Node],
    constraint: ShapesInput,
    batch_size: int = 0,
    check: Optional[ConformanceCheck] = None,
) -> ValidationReport:
    """One-shot helper around :class:`BatchValidator`."""
    return BatchValidator(batch_size=batch_size, check=check).validate(
        graph, observations, constraint,
    )


def validate_cube_observations(
    cube: Union[Graph, str, None],
    constraint: Optional[ShapesInput] = None,
    batch_size: int = 0,
    check: Optional[ConformanceCheck] = None,
) -> ValidationReport:
    """Validate every observation of a cube graph.

    Parameters
    ----------
    cube:
        Cube graph, or its Turtle serialisation.
    constraint:
        Shapes to validate against.  When omitted, the constraint is
        extracted from *cube* itself.
    batch_size:
        See :class:`BatchValidator`.

    Raises
    ------
    NoInputGraph
        If *cube* is ``None``, empty or not valid Turtle.
    NoConstraintFound
        If no constraint is given and *cube* carries none, or the given
        constraint is empty or not valid Turtle.
    NoObservationsFound
        If *cube* has no ``cube:Observation`` subjects.
    """
    cube = _as_cube_graph(cube, OPERATION_ID)

    if constraint is None:
        shapes = extract_constraint(cube)
        if len(shapes) == 0:
            logger.error("No constraint supplied and none found in the cube graph")
            raise NoConstraintFound(
                OPERATION_ID,
                "No constraint provided and none found in the cube graph",
            )
    else:
        shapes = _as_shapes_graph(constraint)
        if len(shapes) == 0:
            raise NoConstraintFound(OPERATION_ID, "Supplied constraint is empty")

    observations = find_observations(cube)
    if not observations:
        raise NoObservationsFound(
            OPERATION_ID, "No cube:Observation resources found in cube graph",
        )
    return validate_observations_in_batches(
        cube, observations, shapes, batch_size=batch_size, check=check,
    )


def validate_cube_metadata(
    cube: Union[Graph, str, None],
    shapes: Optional[ShapesInput],
    check: Optional[ConformanceCheck] = None,
) -> ValidationReport:
    """Validate the non-observation part of a cube against *shapes*.

    Every triple whose subject is not a ``cube:Observation`` counts as
    metadata, the cube's own constraint included.

    Raises
    ------
    NoInputGraph
        If *cube* is ``None``, empty or not valid Turtle.
    NoConstraintFound
        If *shapes* is missing, empty or not valid Turtle.
    """
    cube = _as_cube_graph(cube, METADATA_OPERATION_ID)
    if shapes is None:
        raise NoConstraintFound(METADATA_OPERATION_ID, "No metadata shapes provided")
    shapes_graph = _as_shapes_graph(shapes, METADATA_OPERATION_ID)
    if len(shapes_graph) == 0:
        raise NoConstraintFound(METADATA_OPERATION_ID, "Supplied metadata shapes are empty")

    started = time.monotonic()
    metadata = extract_metadata(cube)
    report = (check or pyshacl_validate)(metadata, shapes_graph)
    logger.info(
        "Metadata of %d triples: conforms=%s, %d violations",
        len(metadata), report.conforms, report.violation_count,
    )
    return report.model_copy(
        update={
            "metadata": {
                **report.metadata,
                "metadataTriples": len(metadata),
                "totalTriples": len(cube),
            },
            "duration_ms": int((time.monotonic() - started) * 1000),
        },
    )


def _invalid_observations(report: ValidationReport, total: int) -> int:
    """Distinct focus nodes with at least one violation."""
    focus_nodes = {r.focus_node for r in report.violations() if r.focus_node}
    return min(len(focus_nodes), total)


def _summary(
    conforms: bool,
    metadata_report: ValidationReport,
    total: int,
    invalid: int,
) -> str:
    parts = [f"Cube validation {'PASSED' if conforms else 'FAILED'}."]
    metadata = "valid" if metadata_report.conforms else "invalid"
    if metadata_report.violation_count:
        metadata += f" ({metadata_report.violation_count} violations)"
    parts.append(f"Metadata: {metadata}.")
    observations = f"Observations: {total} total"
    if invalid:
        observations += f", {invalid} invalid"
    parts.append(observations + ".")
    return " ".join(parts)


def validate_full_cube(
    cube: Union[Graph, str, None],
    metadata_shapes: Optional[ShapesInput],
    batch_size: int = 0,
    check: Optional[ConformanceCheck] = None,
) -> CubeValidationResult:
    """Validate a cube's metadata and, when possible, its observations.

    The metadata is checked against *metadata_shapes*.  Observations are
    checked against the constraint found in *cube* only when the cube
    carries both a constraint and observations; otherwise
    ``observations_report`` is ``None`` and both observation counts are
    zero.

    An observation is invalid when it is the focus node of at least one
    violation, so ``valid_observations + invalid_observations`` equals
    ``total_observations`` whenever observations were validated.

    Raises
    ------
    NoInputGraph
        If *cube* is ``None``, empty or not valid Turtle.
    NoConstraintFound
        If *metadata_shapes* is missing, empty or not valid Turtle.
    """
    cube = _as_cube_graph(cube, CUBE_OPERATION_ID)
    if metadata_shapes is None:
        raise NoConstraintFound(CUBE_OPERATION_ID, "No metadata shapes provided")
    shapes_graph = _as_shapes_graph(metadata_shapes, CUBE_OPERATION_ID)
    if len(shapes_graph) == 0:
        raise NoConstraintFound(CUBE_OPERATION_ID, "Supplied metadata shapes are empty")

    metadata_report = validate_cube_metadata(cube, shapes_graph, check=check)

    constraint = extract_constraint(cube)
    observations = find_observations(cube)
    observations_report = None
    valid = invalid = 0
    if len(constraint) and observations:
        observations_report = validate_observations_in_batches(
            cube, observations, constraint, batch_size=batch_size, check=check,
        )
        invalid = _invalid_observations(observations_report, len(observations))
        valid = len(observations) - invalid
    else:
        logger.info(
            "Skipping observation validation: %d constraint triples, %d observations",
            len(constraint), len(observations),
        )

    conforms = metadata_report.conforms and (
        observations_report is None or observations_report.conforms
    )
    result = CubeValidationResult(
        conforms=conforms,
        metadata_report=metadata_report,
        observations_report=observations_report,
        total_observations=len(observations),
        valid_observations=valid,
        invalid_observations=invalid,
        summary=_summary(conforms, metadata_report, len(observations), invalid),
    )
    logger.info(result.summary)
    return result
