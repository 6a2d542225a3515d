"""Wiring of the core components into a ready-to-use command processor."""

import logging

from concord.commands.processor import CommandProcessor
from concord.config import Settings
from concord.context.stack import ContextStackManager
from concord.evaluators.registry import EvaluatorRegistry, default_registry
from concord.orchestration.orchestrator import EvaluatorOrchestrator
from concord.store.base import WorkStore
from concord.store.memory import InMemoryStore
from concord.store.yaml_store import YamlFileStore
from concord.telemetry import TelemetryConfig, init_telemetry
from concord.workflow.engine import WorkflowEngine

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> WorkStore:
    """YAML-backed store when a path is configured, in-memory otherwise."""
    if settings.store_path is not None:
        return YamlFileStore(settings.store_path)
    logger.info("No CONCORD_STORE_PATH set, using in-memory store")
    return InMemoryStore()


def build_processor(
    settings: Settings | None = None,
    store: WorkStore | None = None,
    registry: EvaluatorRegistry | None = None,
) -> CommandProcessor:
    """Assemble store, context stack, engine and orchestrator.

    Args:
        settings: Runtime settings (defaults to ``Settings.from_env()``)
        store: Store to use instead of the one the settings describe
        registry: Evaluators to use instead of the six built-in ones
    """
    settings = settings or Settings.from_env()
    store = store if store is not None else build_store(settings)
    contexts = ContextStackManager(store)

    return CommandProcessor(
        orchestrator=EvaluatorOrchestrator(
            registry if registry is not None else default_registry(),
            evaluator_timeout=settings.evaluator_timeout,
        ),
        engine=WorkflowEngine(store, contexts),
        contexts=contexts,
        store=store,
        settings=settings,
    )


def create_processor(settings: Settings | None = None) -> CommandProcessor:
    """Application entry point: initialize logging and tracing, then build a processor.

    LOG_LEVEL from the settings overrides the telemetry default.
    """
    settings = settings or Settings.from_env()

    config = TelemetryConfig.from_env()
    config.log_level = settings.log_level
    init_telemetry(config)

    processor = build_processor(settings)
    logger.info(f"Concord ready with evaluators: {', '.join(processor.orchestrator.registry.ids())}")
    return processor
