"""Custom spans for orchestration and workflow tracing.

Span Hierarchy:
    orchestration_span (one per analysis run)
    └── evaluator_span (per evaluator)
    workflow_span (per Work Item / Step operation)
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Span, StatusCode

logger = logging.getLogger(__name__)

TRACER_NAME = "concord"


def get_tracer() -> trace.Tracer:
    """Get the OpenTelemetry tracer for custom spans.

    Resolved on each call so a provider installed after import is honored.
    """
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def _traced(name: str, attributes: dict[str, Any]) -> Generator[Span, None, None]:
    with get_tracer().start_as_current_span(name=name, attributes=attributes) as span:
        try:
            yield span
            span.set_status(StatusCode.OK)
        except Exception as e:
            span.record_exception(e)
            span.set_status(StatusCode.ERROR, str(e))
            raise


@contextmanager
def orchestration_span(
    project_id: str,
    description: str,
    evaluator_ids: list[str],
    **attributes: Any,
) -> Generator[Span, None, None]:
    """Create the root span for one multi-evaluator analysis run.

    Args:
        project_id: Project being analyzed
        description: Request text (truncated in the span)
        evaluator_ids: Evaluators that will be invoked
        **attributes: Additional span attributes

    Example:
        with orchestration_span("proj", "Add login", ["architect"]) as span:
            span.set_attribute("orchestration.average_confidence", 0.7)
    """
    span_attributes = {
        "orchestration.project_id": project_id,
        "orchestration.description": description[:500],
        "orchestration.evaluator_count": len(evaluator_ids),
        "orchestration.evaluators": ",".join(evaluator_ids),
    }
    span_attributes.update(attributes)

    with _traced("orchestration:run", span_attributes) as span:
        yield span


@contextmanager
def evaluator_span(evaluator_id: str, **attributes: Any) -> Generator[Span, None, None]:
    """Create a span for a single evaluator invocation."""
    span_attributes = {"evaluator.id": evaluator_id}
    span_attributes.update(attributes)

    with _traced(f"evaluator:{evaluator_id}", span_attributes) as span:
        yield span


@contextmanager
def workflow_span(
    operation: str,
    project_id: str | None = None,
    **attributes: Any,
) -> Generator[Span, None, None]:
    """Create a span for a workflow engine operation (create, start, confirm, ...)."""
    span_attributes = {"workflow.operation": operation}
    if project_id:
        span_attributes["workflow.project_id"] = project_id
    span_attributes.update({f"workflow.{k}": v for k, v in attributes.items() if v is not None})

    with _traced(f"workflow:{operation}", span_attributes) as span:
        yield span


def record_error(span: Span, error: Exception, error_type: str | None = None) -> None:
    """Record a handled error on a span without failing it.

    Args:
        span: The span to record the error on
        error: The exception that was handled
        error_type: Optional error classification
    """
    span.add_event(
        "handled_error",
        {
            "error.type": error_type or type(error).__name__,
            "error.message": str(error)[:500],
        },
    )
