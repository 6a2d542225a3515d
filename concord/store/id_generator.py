"""ID generation for stored entities.

Five ID types are issued:
- WI-XXX: Work Items
- ST-XXX: Steps
- AN-XXX: Analyses
- BUG-XXX: Bug reports
- CTX-XXX: Resumption contexts

IDs are sequential within each type (001, 002, 003, etc.) and never reused,
even after the entity they named has been deleted.
"""

from collections.abc import Iterable

from .models import ID_PREFIXES, EntityKind


def id_number(id_str: str, prefix: str) -> int | None:
    """Return the numeric part of ``PREFIX-NNN``, or None if it does not match."""
    if not id_str.startswith(f"{prefix}-"):
        return None
    try:
        return int(id_str[len(prefix) + 1 :])
    except ValueError:
        return None


def _next_id(prefix: str, existing_ids: Iterable[str], high_water: int = 0) -> str:
    """Generate next sequential ID with given prefix.

    Args:
        prefix: The ID prefix (WI, ST, AN, BUG or CTX)
        existing_ids: IDs currently held by the store
        high_water: Largest number ever issued, covering deleted entities

    Returns:
        Next ID in format PREFIX-XXX (e.g., WI-001, CTX-014)
    """
    max_num = high_water
    for id_str in existing_ids:
        num = id_number(id_str, prefix)
        if num is not None:
            max_num = max(max_num, num)
    return f"{prefix}-{max_num + 1:03d}"


def next_entity_id(kind: EntityKind, existing_ids: Iterable[str], high_water: int = 0) -> str:
    """Generate the next ID for an entity kind."""
    return _next_id(ID_PREFIXES[kind], existing_ids, high_water)
