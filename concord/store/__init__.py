"""Persistence collaborator: entity models and store implementations."""

from concord.errors import StoreError

from .base import WorkStore
from .memory import InMemoryStore
from .models import (
    AnalysisRecord,
    BugReport,
    CorrectionEntry,
    EntityKind,
    ResumptionContext,
    Step,
    WorkItem,
)
from .yaml_store import YamlFileStore

__all__ = [
    "WorkStore",
    "InMemoryStore",
    "YamlFileStore",
    "StoreError",
    "EntityKind",
    "WorkItem",
    "Step",
    "CorrectionEntry",
    "AnalysisRecord",
    "BugReport",
    "ResumptionContext",
]
