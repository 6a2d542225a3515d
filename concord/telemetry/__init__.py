"""Logging and tracing for Concord.

Usage:
    from concord.telemetry import init_telemetry, orchestration_span

    init_telemetry()

    with orchestration_span("proj-1", "Add login", ["architect"]) as span:
        ...

Environment Variables:
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR) - default: INFO
    OTEL_SERVICE_NAME: Service name for traces - default: concord
    OTEL_TRACES_EXPORTER: Exporter type (console, none) - default: none
    OTEL_SDK_DISABLED: Disable tracing - default: false
"""

from .config import (
    TelemetryConfig,
    init_telemetry,
    is_telemetry_enabled,
    setup_logging,
    shutdown_telemetry,
)
from .spans import (
    evaluator_span,
    get_tracer,
    orchestration_span,
    record_error,
    workflow_span,
)

__all__ = [
    # Configuration
    "TelemetryConfig",
    "init_telemetry",
    "shutdown_telemetry",
    "is_telemetry_enabled",
    "setup_logging",
    # Spans
    "get_tracer",
    "orchestration_span",
    "evaluator_span",
    "workflow_span",
    "record_error",
]
