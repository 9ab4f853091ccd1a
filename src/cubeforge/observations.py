"""
Observation generator – turn tabular rows into ``cube:Observation`` triples.

Rows are plain mappings of column name → value, as produced by any
tabular decoder (``csv.DictReader``, :func:`dataframe_rows`, JSON
records …).  Each row becomes one observation:

- its IRI is the observation base followed by the hyphen-joined,
  sanitised values of the key-dimension columns (or the 1-based row
  ordinal when there are none);
- it is typed ``cube:Observation`` and linked to the cube through
  ``cube:observedBy``;
- every configured dimension, measure and attribute column contributes
  at most one triple.

Null-like values (``None``, blank strings, ``null``, ``na``, ``n/a``,
``-``, ``.``) either drop the triple or, with ``emit_undefined``, point
it at ``cube:Undefined``.

The row sequence is consumed lazily, one row at a time.
"""

from __future__ import annotations

import logging
import math
import numbers
import re
from collections.abc import Iterable, Iterator, Mapping, Sized
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, Protocol, Union

from rdflib import Graph, Literal, URIRef

from cubeforge.errors import InvalidPathArgument, MalformedDateValue
from cubeforge.models import (
    AttributeConfig,
    DimensionConfig,
    GenerationResult,
    MeasureConfig,
)
from cubeforge.namespaces import CUBE, RDF, UNDEFINED, XSD, bind_cube_prefixes
from cubeforge.terms import check_iri
from cubeforge.utils import sanitize_segment

logger = logging.getLogger(__name__)

__all__ = [
    "LoggingProgressSink",
    "ObservationGenerator",
    "ProgressSink",
    "dataframe_rows",
    "generate_observations",
    "is_null_like",
    "java_date_pattern_to_strptime",
    "parse_date",
    "resolve_datatype",
]

OPERATION_ID = "create-observation"

NULL_TOKENS = frozenset({"null", "na", "n/a", "-", "."})

DEFAULT_DATE_FORMAT = "yyyy-MM-dd"

_INTEGER_DATATYPES = frozenset(
    XSD[name]
    for name in (
        "integer", "int", "long", "short", "byte",
        "nonNegativeInteger", "nonPositiveInteger",
        "positiveInteger", "negativeInteger",
        "unsignedLong", "unsignedInt", "unsignedShort", "unsignedByte",
    )
)
_FLOATING_DATATYPES = frozenset({XSD.double, XSD.float, XSD.decimal})

DimensionMap = Mapping[str, Union[DimensionConfig, Mapping[str, Any]]]
MeasureMap = Mapping[str, Union[MeasureConfig, Mapping[str, Any]]]
AttributeMap = Mapping[str, Union[AttributeConfig, Mapping[str, Any]]]


# ── Progress reporting ───────────────────────────────────────────────


class ProgressSink(Protocol):
    """Receiver of progress, log and metric events."""

    def on_progress(self, processed: int, total: Optional[int]) -> None: ...

    def on_log(self, level: str, message: str) -> None: ...

    def on_metric(self, name: str, value: float) -> None: ...


class LoggingProgressSink:
    """Progress sink that forwards every event to a logger."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log or logger

    def on_progress(self, processed: int, total: Optional[int]) -> None:
        if total:
            self.log.info("Processed %d/%d rows", processed, total)
        else:
            self.log.info("Processed %d rows", processed)

    def on_log(self, level: str, message: str) -> None:
        self.log.log(logging.getLevelName(level.upper()), message)

    def on_metric(self, name: str, value: float) -> None:
        self.log.debug("metric %s=%s", name, value)


# ── Value helpers ────────────────────────────────────────────────────


def is_null_like(value: Any) -> bool:
    """Whether *value* stands for a missing cell.

    Examples::

        >>> is_null_like(None), is_null_like("  "), is_null_like("N/A")
        (True, True, True)
        >>> is_null_like("0")
        False
    """
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        text = value.strip()
        return not text or text.lower() in NULL_TOKENS
    return False


def _lexical(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def resolve_datatype(name: Optional[str]) -> Optional[URIRef]:
    """Resolve ``integer``, ``xsd:integer`` or a full IRI to a datatype IRI."""
    if not name:
        return None
    name = name.strip()
    if "://" in name:
        return URIRef(name)
    if name.startswith("xsd:"):
        name = name[len("xsd:"):]
    return XSD[name]


# Java SimpleDateFormat letters and their strptime counterparts, keyed
# by run length (the longest run listed applies to longer runs).
_DATE_LETTERS: dict[str, dict[int, str]] = {
    "y": {1: "%Y", 2: "%y", 3: "%Y"},
    "M": {1: "%m", 2: "%m", 3: "%b", 4: "%B"},
    "d": {1: "%d"},
    "H": {1: "%H"},
    "h": {1: "%I"},
    "m": {1: "%M"},
    "s": {1: "%S"},
    "S": {1: "%f"},
    "a": {1: "%p"},
    "E": {1: "%a", 4: "%A"},
}

_DATE_TOKEN = re.compile(r"'(?:[^']|'')*'|([A-Za-z])\1*|[^A-Za-z']+")


def java_date_pattern_to_strptime(pattern: str) -> str:
    """Translate a ``SimpleDateFormat`` pattern into a ``strptime`` format.

    Examples::

        >>> java_date_pattern_to_strptime("yyyy-MM-dd")
        '%Y-%m-%d'
        >>> java_date_pattern_to_strptime("dd.MM.yy 'at' HH:mm")
        '%d.%m.%y at %H:%M'

    Raises
    ------
    InvalidPathArgument
        If the pattern uses a letter with no ``strptime`` equivalent.
    """
    out: list[str] = []
    for match in _DATE_TOKEN.finditer(pattern):
        token = match.group(0)
        if token.startswith("'"):
            text = token[1:-1].replace("''", "'") if len(token) > 2 else "'"
            out.append(text.replace("%", "%%"))
        elif match.group(1):
            widths = _DATE_LETTERS.get(token[0])
            if widths is None:
                raise InvalidPathArgument(
                    OPERATION_ID,
                    f"Unsupported date pattern letter {token[0]!r} in {pattern!r}",
                )
            run = max(w for w in widths if w <= len(token))
            out.append(widths[run])
        else:
            out.append(token.replace("%", "%%"))
    return "".join(out)


def parse_date(value: Any, pattern: str, fmt: Optional[str] = None) -> date:
    """Parse *value* with a Java-style *pattern*.

    Raises
    ------
    MalformedDateValue
        If the value does not match the pattern.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    fmt = fmt or java_date_pattern_to_strptime(pattern)
    try:
        return datetime.strptime(str(value).strip(), fmt).date()
    except ValueError as exc:
        raise MalformedDateValue(OPERATION_ID, str(value), pattern) from exc


def _parse_number(value: Any) -> Optional[Union[int, float]]:
    """Numeric reading of *value*, or ``None`` when it is not a finite number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, numbers.Real):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _numeric_literal(
    number: Union[int, float],
    from_text: bool,
    datatype: Optional[URIRef],
) -> Literal:
    if datatype in _INTEGER_DATATYPES:
        if isinstance(number, int):
            return Literal(str(number), datatype=datatype)
        if number.is_integer():
            return Literal(str(int(number)), datatype=datatype)
        logger.warning(
            "Value %r is not an integer; emitting xsd:double instead of %s",
            number, datatype,
        )
        return Literal(repr(float(number)), datatype=XSD.double)
    if datatype == XSD.decimal:
        return Literal(format(Decimal(repr(number)), "f"), datatype=XSD.decimal)
    if datatype in _FLOATING_DATATYPES:
        return Literal(repr(float(number)), datatype=datatype)
    # integers from the source stay integral, anything read from text
    # or carrying a fraction becomes a double
    if isinstance(number, int) and not from_text:
        return Literal(str(number), datatype=XSD.long)
    return Literal(repr(float(number)), datatype=XSD.double)


def dataframe_rows(frame: Any) -> Iterator[dict[str, Any]]:
    """Yield the rows of a :class:`pandas.DataFrame` as plain dicts.

    Missing cells (``NaN``, ``NaT``, ``None``) become ``None``.
    """
    import pandas as pd

    columns = [str(c) for c in frame.columns]
    for values in frame.itertuples(index=False, name=None):
        yield {
            column: (None if pd.isna(value) else value)
            for column, value in zip(columns, values)
        }


def _coerce(configs: Optional[Mapping[str, Any]], model: type) -> dict[str, Any]:
    if not configs:
        return {}
    return {
        str(column): (cfg if isinstance(cfg, model) else model.model_validate(cfg))
        for column, cfg in configs.items()
    }


# ── Generator ────────────────────────────────────────────────────────


class ObservationGenerator:
    """Build an observation graph from a stream of rows.

    Parameters
    ----------
    cube_uri:
        IRI of the cube the observations belong to.
    dimensions, measures, attributes:
        Column name → column mapping.  Plain dicts are validated into
        :class:`DimensionConfig` / :class:`MeasureConfig` /
        :class:`AttributeConfig`.  Key dimensions form the observation
        IRI in mapping order.
    observation_base_uri:
        Prefix of every observation IRI.  Defaults to
        ``<cube>/observation/``.
    date_format:
        Java-style pattern for dimensions whose datatype is ``date``.
    emit_undefined:
        Emit ``cube:Undefined`` for null-like values instead of
        omitting the triple.
    progress_interval:
        Report progress every *n* rows (``0`` disables it).
    progress:
        Optional :class:`ProgressSink`.
    """

    def __init__(
        self,
        cube_uri: str,
        dimensions: Optional[DimensionMap] = None,
        measures: Optional[MeasureMap] = None,
        attributes: Optional[AttributeMap] = None,
        observation_base_uri: Optional[str] = None,
        date_format: str = DEFAULT_DATE_FORMAT,
        emit_undefined: bool = False,
        progress_interval: int = 1000,
        progress: Optional[ProgressSink] = None,
    ) -> None:
        self.cube_uri = check_iri(cube_uri, "cube IRI", OPERATION_ID)
        self.observation_base_uri = check_iri(
            observation_base_uri or f"{cube_uri}/observation/",
            "observation base IRI",
            OPERATION_ID,
        )
        self.dimensions: dict[str, DimensionConfig] = _coerce(
            dimensions, DimensionConfig,
        )
        self.measures: dict[str, MeasureConfig] = _coerce(measures, MeasureConfig)
        self.attributes: dict[str, AttributeConfig] = _coerce(
            attributes, AttributeConfig,
        )
        self.date_format = date_format
        self.emit_undefined = emit_undefined
        self.progress_interval = max(0, progress_interval)
        self.progress = progress

        self._check_columns()
        self._strptime = java_date_pattern_to_strptime(date_format)
        self._key_columns = [
            column for column, cfg in self.dimensions.items() if cfg.key_dimension
        ]

    def _check_columns(self) -> None:
        for group in (self.dimensions, self.measures, self.attributes):
            for column, cfg in group.items():
                check_iri(cfg.property_uri, f"property IRI of {column!r}", OPERATION_ID)
        for column, cfg in self.dimensions.items():
            if cfg.value_uri is not None and "{value}" not in cfg.value_uri:
                raise InvalidPathArgument(
                    OPERATION_ID,
                    f"Value URI template of {column!r} lacks the '{{value}}' "
                    f"placeholder: {cfg.value_uri}",
                )

    # ---- public API -----------------------------------------------

    def generate(self, rows: Iterable[Any]) -> GenerationResult:
        """Consume *rows* and return the observation graph and counters."""
        total = len(rows) if isinstance(rows, Sized) else None
        graph = bind_cube_prefixes(Graph())
        cube = URIRef(self.cube_uri)
        observation_count = 0
        undefined_count = 0

        for row in rows:
            if not isinstance(row, Mapping):
                logger.debug("Skipping non-mapping row: %r", row)
                continue
            observation_count += 1
            undefined_count += self._add_observation(
                graph, cube, row, observation_count,
            )
            if (
                self.progress is not None
                and self.progress_interval
                and observation_count % self.progress_interval == 0
            ):
                self.progress.on_progress(observation_count, total)

        result = GenerationResult(
            graph=graph,
            cube_uri=self.cube_uri,
            observation_count=observation_count,
            undefined_count=undefined_count,
        )
        logger.info(
            "Created %d observations (%d undefined values, %d triples)",
            observation_count, undefined_count, result.triples_generated,
        )
        if self.progress is not None:
            self.progress.on_log(
                "INFO", f"Created {observation_count} observations",
            )
            for name in ("observationCount", "undefinedCount", "triplesGenerated"):
                self.progress.on_metric(name, result.metadata[name])
        return result

    def observation_uri(self, row: Mapping[str, Any], ordinal: int) -> URIRef:
        """IRI of the observation for *row*, the *ordinal*-th row seen."""
        parts = []
        for column in self._key_columns:
            value = row.get(column)
            if value is None or _lexical(value) == "":
                continue
            parts.append(sanitize_segment(_lexical(value)))
        suffix = "-".join(parts) if parts else str(ordinal)
        return URIRef(f"{self.observation_base_uri}{suffix}")

    # ---- per-row work ---------------------------------------------

    def _add_observation(
        self,
        graph: Graph,
        cube: URIRef,
        row: Mapping[str, Any],
        ordinal: int,
    ) -> int:
        obs = self.observation_uri(row, ordinal)
        graph.add((obs, RDF.type, CUBE.Observation))
        graph.add((obs, CUBE.observedBy, cube))

        undefined = 0
        columns = (
            [(c, cfg, self._dimension_value) for c, cfg in self.dimensions.items()]
            + [(c, cfg, self._measure_value) for c, cfg in self.measures.items()]
            + [(c, cfg, self._attribute_value) for c, cfg in self.attributes.items()]
        )
        for column, cfg, make_value in columns:
            value = row.get(column)
            prop = URIRef(cfg.property_uri)
            if is_null_like(value):
                if self.emit_undefined:
                    graph.add((obs, prop, UNDEFINED))
                    undefined += 1
                continue
            graph.add((obs, prop, make_value(value, cfg)))
        return undefined

    def _dimension_value(
        self, value: Any, cfg: DimensionConfig,
    ) -> Union[URIRef, Literal]:
        if cfg.value_uri is not None:
            return URIRef(
                cfg.value_uri.replace("{value}", sanitize_segment(_lexical(value))),
            )
        if cfg.datatype and cfg.datatype.lower() == "date":
            try:
                return Literal(parse_date(value, self.date_format, self._strptime))
            except MalformedDateValue as exc:
                logger.warning("%s; emitting a plain literal", exc.message)
                return Literal(_lexical(value))
        return Literal(_lexical(value))

    def _measure_value(self, value: Any, cfg: MeasureConfig) -> Literal:
        number = _parse_number(value)
        if number is None:
            logger.warning(
                "Measure value %r for %s is not numeric; emitting a plain literal",
                value, cfg.property_uri,
            )
            return Literal(_lexical(value))
        return _numeric_literal(
            number, isinstance(value, str), resolve_datatype(cfg.datatype),
        )

    def _attribute_value(self, value: Any, cfg: AttributeConfig) -> Literal:
        return Literal(_lexical(value))


def generate_observations(
    cube_uri: str,
    rows: Iterable[Any],
    dimensions: Optional[DimensionMap] = None,
    measures: Optional[MeasureMap] = None,
    attributes: Optional[AttributeMap] = None,
    observation_base_uri: Optional[str] = None,
    date_format: str = DEFAULT_DATE_FORMAT,
    emit_undefined: bool = False,
    progress_interval: int = 1000,
    progress: Optional[ProgressSink] = None,
) -> GenerationResult:
    """One-shot helper around :class:`ObservationGenerator`.

    Examples::

        >>> result = generate_observations(
        ...     "ex:cube",
        ...     [{"city": "Bern", "pop": "133000"}],
        ...     dimensions={"city": {"propertyUri": "ex:city", "keyDimension": True}},
        ...     measures={"pop": {"propertyUri": "ex:pop"}},
        ...     observation_base_uri="ex:obs/",
        ... )
        >>> result.observation_count
        1
    """
    generator = ObservationGenerator(
        cube_uri=cube_uri,
        dimensions=dimensions,
        measures=measures,
        attributes=attributes,
        observation_base_uri=observation_base_uri,
        date_format=date_format,
        emit_undefined=emit_undefined,
        progress_interval=progress_interval,
        progress=progress,
    )
    return generator.generate(rows)
