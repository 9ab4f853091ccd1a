"""cubeforge: schema inference and validation for cube.link data cubes.

Main modules:
- constraint: infer a cube:Constraint from observations
- observations: generate observations from tabular rows
- validation: batch validation of observations against a constraint
- fetch: CONSTRUCT queries for cubes on remote SPARQL endpoints
- shapes: render user-defined SHACL shapes as Turtle
- registry: static catalogue of the operations above
"""

from . import utils
from .constraint import build_constraint, infer_constraint
from .errors import CubeForgeError, ErrorKind
from .fetch import CubeFetcher
from .models import (
    AttributeConfig,
    ConstraintOptions,
    DimensionConfig,
    MeasureConfig,
    ShapeDefinition,
    ValidationReport,
)
from .observations import ObservationGenerator, generate_observations
from .registry import OperationContext, OperationRegistry, build_default_registry
from .shapes import build_shape_turtle
from .statistics import collect_property_stats
from .validation import BatchValidator, validate_cube_observations

# Import version information
from .version import VERSION

__all__ = [
    "VERSION",
    "AttributeConfig",
    "BatchValidator",
    "ConstraintOptions",
    "CubeFetcher",
    "CubeForgeError",
    "DimensionConfig",
    "ErrorKind",
    "MeasureConfig",
    "ObservationGenerator",
    "OperationContext",
    "OperationRegistry",
    "ShapeDefinition",
    "ValidationReport",
    "build_constraint",
    "build_default_registry",
    "build_shape_turtle",
    "collect_property_stats",
    "generate_observations",
    "infer_constraint",
    "utils",
    "validate_cube_observations",
]
