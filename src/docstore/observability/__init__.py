"""
Observability utilities for docstore.

Provides composition-based tracing and standard attribute names. OpenTelemetry
is an optional dependency; everything here degrades to no-ops without it.

Example:
    >>> from docstore.observability import create_tracer
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>> with tracer.span("docstore.storage.query"):
    ...     pass
"""

from docstore.observability.attributes import (
    ATTR_CHANGE_KIND,
    ATTR_CHANNEL,
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_STATEMENT,
    ATTR_DB_SYSTEM,
    ATTR_HANDLER_COUNT,
    ATTR_PARAM_COUNT,
    ATTR_ROW_COUNT,
    ATTR_ROW_LOCATOR,
    ATTR_TABLE,
)
from docstore.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)
from docstore.observability.tracing import (
    OTEL_AVAILABLE,
    get_tracer,
    should_trace,
)

__all__ = [
    # Availability
    "OTEL_AVAILABLE",
    "get_tracer",
    "should_trace",
    # Tracers
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Attributes
    "ATTR_DB_SYSTEM",
    "ATTR_DB_NAME",
    "ATTR_DB_OPERATION",
    "ATTR_DB_STATEMENT",
    "ATTR_TABLE",
    "ATTR_PARAM_COUNT",
    "ATTR_ROW_COUNT",
    "ATTR_CHANNEL",
    "ATTR_HANDLER_COUNT",
    "ATTR_CHANGE_KIND",
    "ATTR_ROW_LOCATOR",
]
