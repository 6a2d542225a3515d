"""Centralized configuration for Concord.

This module contains all configuration constants used across the codebase.
Import from here instead of hardcoding values in individual modules.
"""

import os
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from dotenv import load_dotenv

# =============================================================================
# Status Enums
# =============================================================================


class WorkItemStatus(StrEnum):
    """Lifecycle states of a Work Item."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"

    @classmethod
    def values(cls) -> list[str]:
        """Return all status values as strings."""
        return [s.value for s in cls]


class StepStatus(StrEnum):
    """Lifecycle states of a Step."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @classmethod
    def values(cls) -> list[str]:
        """Return all status values as strings."""
        return [s.value for s in cls]


class WorkItemKind(StrEnum):
    """What kind of work a Work Item represents."""

    FEATURE = "feature"
    BUG = "bug"
    ANALYSIS = "analysis"
    ARCHITECTURE = "architecture"
    OPTIMIZATION = "optimization"
    REFACTOR = "refactor"

    @classmethod
    def values(cls) -> list[str]:
        return [k.value for k in cls]


class Priority(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def values(cls) -> list[str]:
        return [p.value for p in cls]


class BugSeverity(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class BugStatus(StrEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ErrorKind(StrEnum):
    """Tag carried by failed operation results."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STATE_CONFLICT = "state_conflict"


# =============================================================================
# State Machines
# =============================================================================

# Allowed (from, to) transitions. Anything not listed is a state conflict.
WORK_ITEM_TRANSITIONS: dict[WorkItemStatus, frozenset[WorkItemStatus]] = {
    WorkItemStatus.PENDING: frozenset(
        {WorkItemStatus.IN_PROGRESS, WorkItemStatus.CANCELLED, WorkItemStatus.BLOCKED}
    ),
    WorkItemStatus.IN_PROGRESS: frozenset(
        {WorkItemStatus.COMPLETED, WorkItemStatus.CANCELLED, WorkItemStatus.BLOCKED}
    ),
    WorkItemStatus.BLOCKED: frozenset({WorkItemStatus.IN_PROGRESS}),
    WorkItemStatus.COMPLETED: frozenset(),
    WorkItemStatus.CANCELLED: frozenset(),
}

STEP_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.IN_PROGRESS, StepStatus.SKIPPED}),
    StepStatus.IN_PROGRESS: frozenset({StepStatus.COMPLETED, StepStatus.FAILED}),
    StepStatus.FAILED: frozenset({StepStatus.IN_PROGRESS}),
    StepStatus.COMPLETED: frozenset(),
    StepStatus.SKIPPED: frozenset(),
}


def can_transition_work_item(current: WorkItemStatus, target: WorkItemStatus) -> bool:
    return target in WORK_ITEM_TRANSITIONS.get(WorkItemStatus(current), frozenset())


def can_transition_step(current: StepStatus, target: StepStatus) -> bool:
    return target in STEP_TRANSITIONS.get(StepStatus(current), frozenset())


# =============================================================================
# Evaluator Identifiers
# =============================================================================

ARCHITECT = "architect"
DEVELOPER = "developer"
DBA = "dba"
QA = "qa"
BUSINESS = "business"
PRODUCT_OWNER = "product_owner"

DEFAULT_EVALUATOR_ORDER: tuple[str, ...] = (
    ARCHITECT,
    DEVELOPER,
    DBA,
    QA,
    BUSINESS,
    PRODUCT_OWNER,
)

# Evaluators consulted when a Step reports an error
ERROR_ANALYSIS_EVALUATORS: tuple[str, ...] = (DEVELOPER, QA, ARCHITECT)

# Plan fragments that become Steps after the planning Step, in this order
STEP_FRAGMENT_ORDER: tuple[str, ...] = (DEVELOPER, DBA, QA)

PLANNING_STEP_OWNER = ARCHITECT


# =============================================================================
# Consensus Thresholds and Vocabularies
# =============================================================================

HIGH_CONFIDENCE_THRESHOLD = 0.70
LOW_CONFIDENCE_THRESHOLD = 0.50
QUALITY_CONFIDENCE_THRESHOLD = 0.60
MAX_RECOMMENDATIONS = 10
MIN_ALIGNMENT_MATCHES = 2
MANUAL_REVIEW_SUGGESTION = "Manual review"

# Pair whose texts are compared for technical alignment
ALIGNMENT_PAIR: tuple[str, str] = (ARCHITECT, DEVELOPER)

ALIGNMENT_VOCABULARY: tuple[str, ...] = (
    "service layer",
    "api",
    "async",
    "performance",
    "cache",
    "transaction",
    "validation",
    "test",
    "database",
    "query",
    "index",
)

# Evaluator whose text is scanned for risk markers
RISK_FOCUSED_EVALUATOR = DBA

RISK_MARKERS: tuple[str, ...] = ("attention", "warning", "performance")

URGENCY_KEYWORDS: tuple[str, ...] = ("critical", "urgent", "attention", "impact")

CRITICAL_MARKERS: tuple[str, ...] = ("critical", "attention")


# =============================================================================
# Runtime Settings
# =============================================================================


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read from the environment.

    Attributes:
        store_path: YAML file backing the store, or None for in-memory only
        evaluator_timeout: Per-evaluator deadline in seconds (None = no deadline)
        analysis_reuse_days: Window in which a stored analysis is reused
        analysis_expiration_days: Lifetime stamped on newly stored analyses
        context_retention_days: Age after which inactive contexts are swept
        log_level: Logging level name
    """

    store_path: Path | None = None
    evaluator_timeout: float | None = None
    analysis_reuse_days: int = 7
    analysis_expiration_days: int = 30
    context_retention_days: int = 7
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables (and a .env file if present)."""
        load_dotenv()

        store_path = os.getenv("CONCORD_STORE_PATH")
        timeout = os.getenv("CONCORD_EVALUATOR_TIMEOUT")

        return cls(
            store_path=Path(store_path) if store_path else None,
            evaluator_timeout=float(timeout) if timeout else None,
            analysis_reuse_days=int(os.getenv("CONCORD_ANALYSIS_REUSE_DAYS", "7")),
            analysis_expiration_days=int(os.getenv("CONCORD_ANALYSIS_EXPIRATION_DAYS", "30")),
            context_retention_days=int(os.getenv("CONCORD_CONTEXT_RETENTION_DAYS", "7")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
