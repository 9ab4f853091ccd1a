"""Default settings loaded from environment variables."""

from __future__ import annotations

import os


class Config:
    """Defaults used by the operation registry and the CLI."""

    # SPARQL client
    SPARQL_TIMEOUT = float(os.getenv("CUBEFORGE_SPARQL_TIMEOUT", "60"))
    SPARQL_MAX_RETRIES = int(os.getenv("CUBEFORGE_SPARQL_MAX_RETRIES", "3"))

    # Constraint inference: largest value set rendered as sh:in
    MAX_ENUM_VALUES = int(os.getenv("CUBEFORGE_MAX_ENUM_VALUES", "50"))

    # Observations per validation batch (0 = single batch)
    BATCH_SIZE = int(os.getenv("CUBEFORGE_BATCH_SIZE", "0"))

    # Observation generation
    DATE_FORMAT = os.getenv("CUBEFORGE_DATE_FORMAT", "yyyy-MM-dd")
    PROGRESS_INTERVAL = int(os.getenv("CUBEFORGE_PROGRESS_INTERVAL", "1000"))
    EMIT_UNDEFINED = os.getenv("CUBEFORGE_EMIT_UNDEFINED", "0") == "1"


class TestConfig(Config):
    """Configuration overrides for testing."""

    TESTING = True
    SPARQL_TIMEOUT = 5.0
    SPARQL_MAX_RETRIES = 1
    PROGRESS_INTERVAL = 10
