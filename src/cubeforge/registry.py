"""
Static operation registry.

Every engine capability is wrapped in an :class:`Operation` with a
stable id, a type and a parameter catalogue.  The host application
builds one :class:`OperationRegistry` at startup with
:func:`build_default_registry` and dispatches through
:meth:`OperationRegistry.run`, which turns expected failures into an
unsuccessful :class:`OperationResult` instead of raising::

    registry = build_default_registry()
    result = registry.run(
        "build-cube-shape",
        OperationContext(parameters={"cubeUri": "https://ex.org/cube"}, input_graph=g),
    )
    if not result.success:
        print(result.error.kind, result.error.message)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from rdflib import Graph

from cubeforge.config import Config
from cubeforge.constraint import infer_constraint
from cubeforge.errors import CubeForgeError, ErrorKind, NoInputGraph
from cubeforge.fetch import CubeFetcher
from cubeforge.models import ConstraintOptions, FetchResult, ValidationReport
from cubeforge.observations import ObservationGenerator, ProgressSink
from cubeforge.shapes import build_shape_turtle
from cubeforge.validation import (
    validate_cube_metadata,
    validate_cube_observations,
    validate_full_cube,
)

logger = logging.getLogger(__name__)

__all__ = [
    "Operation",
    "OperationContext",
    "OperationError",
    "OperationRegistry",
    "OperationResult",
    "OperationType",
    "ParameterSpec",
    "build_default_registry",
]


# ── Types ────────────────────────────────────────────────────────────


class OperationType(str, Enum):
    """Broad category of an operation."""

    SOURCE = "SOURCE"
    CUBE = "CUBE"
    VALIDATION = "VALIDATION"


@dataclass(frozen=True)
class ParameterSpec:
    """Description of one operation parameter."""

    name: str
    description: str
    type: Union[type, tuple[type, ...]]
    required: bool = False
    default: Any = None

    def to_dict(self) -> dict[str, Any]:
        types = self.type if isinstance(self.type, tuple) else (self.type,)
        return {
            "name": self.name,
            "description": self.description,
            "type": "|".join(t.__name__ for t in types),
            "required": self.required,
            "default": self.default,
        }


@dataclass
class OperationContext:
    """Inputs of one operation run."""

    parameters: dict[str, Any] = field(default_factory=dict)
    input_graph: Optional[Graph] = None
    input_rows: Optional[Iterable[Any]] = None
    progress: Optional[ProgressSink] = None


@dataclass(frozen=True)
class OperationError:
    """Typed failure carried by an unsuccessful result."""

    kind: ErrorKind
    operation: str
    message: str


@dataclass
class OperationResult:
    """Outcome of one operation run; never both output and error."""

    success: bool
    output_graph: Optional[Graph] = None
    output_text: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    error: Optional[OperationError] = None

    @classmethod
    def ok(
        cls,
        graph: Optional[Graph] = None,
        text: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> OperationResult:
        return cls(True, graph, text, metadata or {})

    @classmethod
    def failure(cls, exc: CubeForgeError) -> OperationResult:
        return cls(
            False,
            error=OperationError(exc.kind, exc.operation, exc.message),
        )


class Operation(ABC):
    """Base class of every registered operation."""

    id: str = ""
    name: str = ""
    description: str = ""
    type: OperationType = OperationType.CUBE

    def __init__(self, config: type[Config] = Config) -> None:
        self.config = config

    @property
    def parameters(self) -> dict[str, ParameterSpec]:
        return {}

    @abstractmethod
    def execute(self, context: OperationContext) -> OperationResult:
        """Run the operation; raise :class:`CubeForgeError` on failure."""

    def param(self, context: OperationContext, name: str) -> Any:
        """Value of parameter *name*, falling back to its declared default."""
        spec = self.parameters[name]
        value = context.parameters.get(name)
        if value is None:
            if spec.required:
                raise TypeError(f"{self.id}: missing required parameter {name!r}")
            return spec.default
        if not isinstance(value, spec.type):
            raise TypeError(
                f"{self.id}: parameter {name!r} must be {spec.to_dict()['type']}, "
                f"got {type(value).__name__}",
            )
        return value

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type.value,
            "parameters": [p.to_dict() for p in self.parameters.values()],
        }


# ── Cube operations ──────────────────────────────────────────────────


class BuildCubeShapeOperation(Operation):
    id = "build-cube-shape"
    name = "Build Cube Shape"
    description = "Infer a cube:Constraint from the observations of a cube"
    type = OperationType.CUBE

    @property
    def parameters(self) -> dict[str, ParameterSpec]:
        return {
            "cubeUri": ParameterSpec("cubeUri", "URI of the cube", str, True),
            "constraintUri": ParameterSpec(
                "constraintUri", "URI of the constraint (default: cube + '/constraint')", str,
            ),
            "inferDimensionRoles": ParameterSpec(
                "inferDimensionRoles", "Type properties as key or measure dimensions",
                bool, False, True,
            ),
            "includeValueEnumeration": ParameterSpec(
                "includeValueEnumeration", "Emit sh:in for small value sets",
                bool, False, True,
            ),
            "maxEnumValues": ParameterSpec(
                "maxEnumValues", "Largest value set rendered as sh:in",
                int, False, self.config.MAX_ENUM_VALUES,
            ),
        }

    def execute(self, context: OperationContext) -> OperationResult:
        options = ConstraintOptions(
            constraint_uri=self.param(context, "constraintUri"),
            infer_dimension_roles=self.param(context, "inferDimensionRoles"),
            include_value_enumeration=self.param(context, "includeValueEnumeration"),
            max_enum_values=self.param(context, "maxEnumValues"),
        )
        result = infer_constraint(
            context.input_graph, self.param(context, "cubeUri"), options,
        )
        return OperationResult.ok(graph=result.graph, metadata=result.metadata)


class CreateObservationOperation(Operation):
    id = "create-observation"
    name = "Create Observations"
    description = "Create cube:Observation resources from tabular rows"
    type = OperationType.CUBE

    @property
    def parameters(self) -> dict[str, ParameterSpec]:
        return {
            "cubeUri": ParameterSpec("cubeUri", "URI of the cube", str, True),
            "observationBaseUri": ParameterSpec(
                "observationBaseUri", "Base URI of observations (default: cube + '/observation/')",
                str,
            ),
            "dimensions": ParameterSpec(
                "dimensions", "Column name to dimension mapping", dict, False, {},
            ),
            "measures": ParameterSpec(
                "measures", "Column name to measure mapping", dict, False, {},
            ),
            "attributes": ParameterSpec(
                "attributes", "Column name to attribute mapping", dict, False, {},
            ),
            "dateFormat": ParameterSpec(
                "dateFormat", "Date pattern of 'date' dimensions",
                str, False, self.config.DATE_FORMAT,
            ),
            "emitUndefined": ParameterSpec(
                "emitUndefined", "Emit cube:Undefined for missing values",
                bool, False, self.config.EMIT_UNDEFINED,
            ),
        }

    def execute(self, context: OperationContext) -> OperationResult:
        generator = ObservationGenerator(
            cube_uri=self.param(context, "cubeUri"),
            dimensions=self.param(context, "dimensions"),
            measures=self.param(context, "measures"),
            attributes=self.param(context, "attributes"),
            observation_base_uri=self.param(context, "observationBaseUri"),
            date_format=self.param(context, "dateFormat"),
            emit_undefined=self.param(context, "emitUndefined"),
            progress_interval=self.config.PROGRESS_INTERVAL,
            progress=context.progress,
        )
        if context.input_rows is None:
            raise NoInputGraph(self.id, "No input rows provided")
        result = generator.generate(context.input_rows)
        return OperationResult.ok(graph=result.graph, metadata=result.metadata)


# ── Validation operations ────────────────────────────────────────────


def _report_metadata(report: ValidationReport) -> dict[str, Any]:
    metadata = dict(report.metadata)
    metadata.update(
        conforms=report.conforms,
        violationCount=report.violation_count,
        warningCount=report.warning_count,
        infoCount=report.info_count,
        report=report,
    )
    return metadata


class ValidateObservationsOperation(Operation):
    id = "validate-observations"
    name = "Validate Observations"
    description = "Validate cube observations against the cube constraint in batches"
    type = OperationType.VALIDATION

    @property
    def parameters(self) -> dict[str, ParameterSpec]:
        return {
            "constraint": ParameterSpec(
                "constraint", "Constraint as Turtle (default: taken from the input graph)", str,
            ),
            "batchSize": ParameterSpec(
                "batchSize", "Observations per batch (0 = all at once)",
                int, False, self.config.BATCH_SIZE,
            ),
        }

    def execute(self, context: OperationContext) -> OperationResult:
        report = validate_cube_observations(
            context.input_graph,
            constraint=self.param(context, "constraint"),
            batch_size=self.param(context, "batchSize"),
        )
        return OperationResult.ok(metadata=_report_metadata(report))


class ValidateCubeMetadataOperation(Operation):
    id = "validate-cube-metadata"
    name = "Validate Cube Metadata"
    description = "Validate the non-observation triples of a cube against a metadata profile"
    type = OperationType.VALIDATION

    @property
    def parameters(self) -> dict[str, ParameterSpec]:
        return {
            "shapes": ParameterSpec("shapes", "Metadata profile as Turtle", str, True),
        }

    def execute(self, context: OperationContext) -> OperationResult:
        report = validate_cube_metadata(
            context.input_graph, self.param(context, "shapes"),
        )
        return OperationResult.ok(metadata=_report_metadata(report))


class ValidateCubeOperation(Operation):
    id = "validate-cube"
    name = "Validate Cube"
    description = "Validate cube metadata against a profile and observations against the cube constraint"
    type = OperationType.VALIDATION

    @property
    def parameters(self) -> dict[str, ParameterSpec]:
        return {
            "metadataShapes": ParameterSpec(
                "metadataShapes", "Metadata profile as Turtle", str, True,
            ),
            "batchSize": ParameterSpec(
                "batchSize", "Observations per batch (0 = all at once)",
                int, False, self.config.BATCH_SIZE,
            ),
        }

    def execute(self, context: OperationContext) -> OperationResult:
        result = validate_full_cube(
            context.input_graph,
            self.param(context, "metadataShapes"),
            batch_size=self.param(context, "batchSize"),
        )
        return OperationResult.ok(
            text=result.summary,
            metadata={
                "conforms": result.conforms,
                "totalObservations": result.total_observations,
                "validObservations": result.valid_observations,
                "invalidObservations": result.invalid_observations,
                "result": result,
            },
        )


class BuildShapeOperation(Operation):
    id = "build-shape"
    name = "Build Shape"
    description = "Render a user-defined SHACL shape as Turtle"
    type = OperationType.VALIDATION

    @property
    def parameters(self) -> dict[str, ParameterSpec]:
        return {
            "definition": ParameterSpec(
                "definition", "Shape definition (uri, targetClass, properties …)", dict, True,
            ),
        }

    def execute(self, context: OperationContext) -> OperationResult:
        definition = self.param(context, "definition")
        turtle = build_shape_turtle(definition)
        return OperationResult.ok(
            text=turtle,
            metadata={"shapeUri": definition.get("uri")},
        )


# ── Source operations ────────────────────────────────────────────────


class _FetchOperation(Operation):
    type = OperationType.SOURCE

    @property
    def parameters(self) -> dict[str, ParameterSpec]:
        return {
            "endpoint": ParameterSpec("endpoint", "SPARQL endpoint URL", str, True),
            "cubeUri": ParameterSpec("cubeUri", "URI of the cube to fetch", str, True),
            "graphUri": ParameterSpec(
                "graphUri", "Named graph containing the cube (optional)", str,
            ),
            "timeout": ParameterSpec(
                "timeout", "Query timeout in seconds",
                (int, float), False, self.config.SPARQL_TIMEOUT,
            ),
        }

    def execute(self, context: OperationContext) -> OperationResult:
        with CubeFetcher(
            self.param(context, "endpoint"),
            timeout=self.param(context, "timeout"),
            max_retries=self.config.SPARQL_MAX_RETRIES,
        ) as fetcher:
            result = self.fetch(fetcher, context)
        return OperationResult.ok(graph=result.graph, metadata=result.metadata)

    @abstractmethod
    def fetch(self, fetcher: CubeFetcher, context: OperationContext) -> FetchResult:
        """Run the fetch this operation stands for."""


class FetchCubeOperation(_FetchOperation):
    id = "fetch-cube"
    name = "Fetch Cube"
    description = "Fetch complete cube (metadata + observations) from SPARQL endpoint"

    def fetch(self, fetcher: CubeFetcher, context: OperationContext) -> FetchResult:
        return fetcher.fetch_cube(
            self.param(context, "cubeUri"), self.param(context, "graphUri"),
        )


class FetchMetadataOperation(_FetchOperation):
    id = "fetch-metadata"
    name = "Fetch Cube Metadata"
    description = "Fetch cube metadata (excluding observations) from SPARQL endpoint"

    def fetch(self, fetcher: CubeFetcher, context: OperationContext) -> FetchResult:
        return fetcher.fetch_metadata(
            self.param(context, "cubeUri"), self.param(context, "graphUri"),
        )


class FetchConstraintOperation(_FetchOperation):
    id = "fetch-constraint"
    name = "Fetch Cube Constraint"
    description = "Fetch only the cube constraint (SHACL shape) from SPARQL endpoint"

    def fetch(self, fetcher: CubeFetcher, context: OperationContext) -> FetchResult:
        return fetcher.fetch_constraint(
            self.param(context, "cubeUri"), self.param(context, "graphUri"),
        )


class FetchObservationsOperation(_FetchOperation):
    id = "fetch-observations"
    name = "Fetch Observations"
    description = "Fetch cube observations from SPARQL endpoint, optionally paged"

    @property
    def parameters(self) -> dict[str, ParameterSpec]:
        params = dict(super().parameters)
        params["limit"] = ParameterSpec(
            "limit", "Maximum observation triples (0 = no limit)", int, False, 0,
        )
        params["offset"] = ParameterSpec(
            "offset", "Offset for pagination", int, False, 0,
        )
        return params

    def fetch(self, fetcher: CubeFetcher, context: OperationContext) -> FetchResult:
        return fetcher.fetch_observations(
            self.param(context, "cubeUri"),
            self.param(context, "graphUri"),
            limit=self.param(context, "limit"),
            offset=self.param(context, "offset"),
        )


# ── Registry ─────────────────────────────────────────────────────────


class OperationRegistry:
    """Operations keyed by id, with lookup by type."""

    def __init__(self) -> None:
        self._operations: dict[str, Operation] = {}

    def register(self, operation: Operation) -> None:
        if operation.id in self._operations:
            raise ValueError(f"Operation {operation.id!r} is already registered")
        self._operations[operation.id] = operation
        logger.debug("Registered operation %s (%s)", operation.id, operation.type.value)

    def get(self, operation_id: str) -> Optional[Operation]:
        return self._operations.get(operation_id)

    def get_or_raise(self, operation_id: str) -> Operation:
        try:
            return self._operations[operation_id]
        except KeyError:
            raise KeyError(f"Unknown operation: {operation_id}") from None

    def all(self) -> list[Operation]:
        return list(self._operations.values())

    def by_type(self, op_type: OperationType) -> list[Operation]:
        return [op for op in self._operations.values() if op.type is op_type]

    def catalog(self) -> list[dict[str, Any]]:
        """Description of every operation, for listings and UIs."""
        return [op.describe() for op in self._operations.values()]

    def run(self, operation_id: str, context: OperationContext) -> OperationResult:
        """Execute *operation_id*; expected failures become a failed result."""
        operation = self.get_or_raise(operation_id)
        logger.info("Running operation %s", operation_id)
        try:
            return operation.execute(context)
        except CubeForgeError as exc:
            logger.error("Operation %s failed: %s", operation_id, exc)
            return OperationResult.failure(exc)

    def __contains__(self, operation_id: object) -> bool:
        return operation_id in self._operations

    def __len__(self) -> int:
        return len(self._operations)


def build_default_registry(config: type[Config] = Config) -> OperationRegistry:
    """Registry holding every built-in operation, configured from *config*."""
    registry = OperationRegistry()
    for operation_cls in (
        BuildCubeShapeOperation,
        CreateObservationOperation,
        ValidateObservationsOperation,
        ValidateCubeMetadataOperation,
        ValidateCubeOperation,
        BuildShapeOperation,
        FetchCubeOperation,
        FetchMetadataOperation,
        FetchConstraintOperation,
        FetchObservationsOperation,
    ):
        registry.register(operation_cls(config))
    return registry
