"""
Pydantic models for cube configuration, analysis results and reports.

Provides type-safe, immutable data structures for the column mappings
consumed by the observation generator, the options of the constraint
builder, user-authored shape definitions and validation reports.
Field names are snake_case in Python; camelCase aliases are accepted
so that mappings can be loaded straight from YAML or JSON documents.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from rdflib import Graph

__all__ = [
    "AttributeConfig",
    "ConstraintOptions",
    "ConstraintResult",
    "CubeValidationResult",
    "DimensionConfig",
    "FetchResult",
    "GenerationResult",
    "MeasureConfig",
    "NODE_KINDS",
    "PropertyShapeDefinition",
    "Severity",
    "ShapeDefinition",
    "ValidationReport",
    "ValidationResult",
]


class _FrozenModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class _GraphResult(BaseModel):
    """Base for results that carry an rdflib graph."""

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,
    )


# ── Column mappings ──────────────────────────────────────────────────


class DimensionConfig(_FrozenModel):
    """Maps a source column to a dimension property."""

    property_uri: str = Field(..., description="Dimension property IRI")
    value_uri: Optional[str] = Field(
        None, description="IRI template for values, containing '{value}'",
    )
    datatype: Optional[str] = Field(None, description="Datatype hint, e.g. 'date'")
    key_dimension: bool = Field(
        False, description="Whether the value takes part in the observation IRI",
    )
    shared_dimension_uri: Optional[str] = Field(
        None, description="Shared dimension the values come from",
    )


class MeasureConfig(_FrozenModel):
    """Maps a source column to a measure property."""

    property_uri: str = Field(..., description="Measure property IRI")
    datatype: Optional[str] = Field(
        None, description="Numeric datatype to emit, e.g. 'integer' or xsd IRI",
    )
    unit: Optional[str] = Field(None, description="Unit IRI")


class AttributeConfig(_FrozenModel):
    """Maps a source column to an attribute property."""

    property_uri: str = Field(..., description="Attribute property IRI")
    datatype: Optional[str] = Field(None, description="Datatype hint")


# ── Constraint inference ─────────────────────────────────────────────


class ConstraintOptions(_FrozenModel):
    """Flags controlling constraint inference."""

    constraint_uri: Optional[str] = Field(
        None, description="Constraint IRI (default: cube IRI + '/constraint')",
    )
    infer_dimension_roles: bool = True
    include_value_enumeration: bool = True
    max_enum_values: int = Field(50, ge=0)


class ConstraintResult(_GraphResult):
    """Constraint graph plus the figures reported about its inference."""

    graph: Graph
    cube_uri: str
    constraint_uri: str
    observations_analyzed: int
    properties_detected: int

    @property
    def metadata(self) -> Dict[str, Any]:
        return {
            "observationsAnalyzed": self.observations_analyzed,
            "propertiesDetected": self.properties_detected,
            "constraintUri": self.constraint_uri,
            "constraintTriples": len(self.graph),
        }

    def to_turtle(self) -> str:
        """Serialise the constraint graph as Turtle."""
        return self.graph.serialize(format="turtle")


# ── Observation generation ───────────────────────────────────────────


class GenerationResult(_GraphResult):
    """Observation graph and counters produced from a row stream."""

    graph: Graph
    cube_uri: str
    observation_count: int
    undefined_count: int

    @property
    def triples_generated(self) -> int:
        return len(self.graph)

    @property
    def metadata(self) -> Dict[str, Any]:
        return {
            "observationCount": self.observation_count,
            "undefinedCount": self.undefined_count,
            "triplesGenerated": self.triples_generated,
            "cubeUri": self.cube_uri,
        }


# ── Remote fetching ──────────────────────────────────────────────────


class FetchResult(_GraphResult):
    """Graph constructed by a remote CONSTRUCT query."""

    graph: Graph
    query: str
    cube_uri: str
    endpoint: str
    extra: Dict[str, Any] = Field(default_factory=dict)

    @property
    def triple_count(self) -> int:
        return len(self.graph)

    @property
    def metadata(self) -> Dict[str, Any]:
        meta: Dict[str, Any] = {
            "tripleCount": self.triple_count,
            "cubeUri": self.cube_uri,
            "endpoint": self.endpoint,
        }
        meta.update(self.extra)
        return meta


# ── Validation reports ───────────────────────────────────────────────


class Severity(str, Enum):
    """Severity of a single validation result."""

    VIOLATION = "Violation"
    WARNING = "Warning"
    INFO = "Info"


class ValidationResult(_FrozenModel):
    """One entry of a validation report."""

    severity: Severity = Severity.VIOLATION
    message: Optional[str] = None
    focus_node: Optional[str] = None
    result_path: Optional[str] = None
    value: Optional[str] = None
    source_constraint_component: Optional[str] = None
    source_shape: Optional[str] = None


class ValidationReport(_FrozenModel):
    """Outcome of checking a data graph against a shapes graph."""

    conforms: bool = True
    violation_count: int = Field(0, ge=0)
    warning_count: int = Field(0, ge=0)
    info_count: int = Field(0, ge=0)
    results: List[ValidationResult] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    validated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    duration_ms: int = Field(0, ge=0)

    def violations(self) -> List[ValidationResult]:
        """Results with severity ``Violation``."""
        return [r for r in self.results if r.severity is Severity.VIOLATION]


class CubeValidationResult(_FrozenModel):
    """Combined outcome of validating a cube's metadata and observations."""

    conforms: bool
    metadata_report: ValidationReport
    observations_report: Optional[ValidationReport] = None
    total_observations: int = Field(0, ge=0)
    valid_observations: int = Field(0, ge=0)
    invalid_observations: int = Field(0, ge=0)
    summary: str = ""


# ── User-authored shapes ─────────────────────────────────────────────

NODE_KINDS = frozenset(
    {"IRI", "BlankNode", "Literal", "BlankNodeOrIRI", "BlankNodeOrLiteral", "IRIOrLiteral"},
)


class PropertyShapeDefinition(_FrozenModel):
    """Property shape as entered by a user; rendered without inference."""

    path: str
    name: Optional[str] = None
    description: Optional[str] = None
    datatype: Optional[str] = None
    node_kind: Optional[str] = None
    class_constraint: Optional[str] = None
    min_count: Optional[int] = Field(None, ge=0)
    max_count: Optional[int] = Field(None, ge=0)
    min_length: Optional[int] = Field(None, ge=0)
    max_length: Optional[int] = Field(None, ge=0)
    pattern: Optional[str] = None
    flags: Optional[str] = None
    min_inclusive: Optional[Union[int, float]] = None
    max_inclusive: Optional[Union[int, float]] = None
    min_exclusive: Optional[Union[int, float]] = None
    max_exclusive: Optional[Union[int, float]] = None
    in_values: Optional[List[Any]] = None
    has_value: Optional[Any] = None
    node_shape: Optional[str] = None
    message: Optional[str] = None
    severity: Optional[str] = None

    @field_validator("node_kind")
    @classmethod
    def validate_node_kind(cls, v: Optional[str]) -> Optional[str]:
        """One of the six ``sh:NodeKind`` values, bare, ``sh:``-prefixed or full IRI."""
        if v is not None and v.rpartition("#")[2].rpartition(":")[2] not in NODE_KINDS:
            raise ValueError(f"Invalid node kind: {v}")
        return v

    @field_validator("severity")
    @classmethod
    def validate_severity(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in {s.value for s in Severity}:
            raise ValueError(f"Invalid severity: {v}")
        return v


class ShapeDefinition(_FrozenModel):
    """Node shape as entered by a user."""

    uri: str
    label: Optional[str] = None
    description: Optional[str] = None
    target_class: Optional[str] = None
    target_node: Optional[str] = None
    closed: bool = False
    ignored_properties: List[str] = Field(default_factory=list)
    severity: Optional[str] = None
    prefixes: Dict[str, str] = Field(default_factory=dict)
    properties: List[PropertyShapeDefinition] = Field(default_factory=list)

    @field_validator("severity")
    @classmethod
    def validate_severity(cls, v: Optional[str]) -> Optional[str]:
        """Only the three SHACL severities are accepted."""
        if v is not None and v not in {s.value for s in Severity}:
            raise ValueError(f"Invalid severity: {v}")
        return v
