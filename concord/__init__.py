"""Concord: multi-evaluator consensus and resumable work tracking.

Free-text requests are analyzed by a panel of evaluators, merged into a
consensus, turned into a Work Item with dependency-gated Steps, and tracked
through a per-project stack of resumption contexts.
"""

__version__ = "0.1.0"
