"""
Deterministic ID Service

Generates fresh node and connection ids for repairs and payload translation.
Ids are derived from the graph contents only (no uuid, no clock), so the same
input always yields the same ids.
"""

import re
from typing import Iterable, Set


def next_unique_id(base: str, taken: Iterable[str]) -> str:
    """
    Return ``base`` if it is free, otherwise ``base_2``, ``base_3``, ...

    Args:
        base: Preferred id
        taken: Ids already in use

    Returns:
        str: An id not present in ``taken``
    """
    used: Set[str] = set(taken)
    if base not in used:
        return base

    suffix = 2
    while f"{base}_{suffix}" in used:
        suffix += 1
    return f"{base}_{suffix}"


def duplicate_node_id(node_id: str, occurrence: int, taken: Iterable[str]) -> str:
    """Id for the ``occurrence``-th repeat (1-based) of a duplicated node id."""
    return next_unique_id(f"{node_id}_dup{occurrence}", taken)


def connection_id(source_id: str, target_id: str, taken: Iterable[str]) -> str:
    """Id for a connection synthesized between two nodes."""
    return next_unique_id(f"conn_{source_id}_{target_id}", taken)


def get_next_sequential_id(prefix: str, taken: Iterable[str]) -> str:
    """
    Get the next sequential id in the format ``<prefix>_1``, ``<prefix>_2``, etc.

    The number is one past the highest existing ``<prefix>_<n>`` id, so ids
    that were already present keep their meaning.

    Args:
        prefix: Id prefix such as "node" or "conn"
        taken: Ids already in use

    Returns:
        str: Next sequential id
    """
    used = set(taken)
    pattern = re.compile(rf"^{re.escape(prefix)}_(\d+)$")

    highest = 0
    for existing in used:
        match = pattern.match(existing)
        if match:
            highest = max(highest, int(match.group(1)))

    return next_unique_id(f"{prefix}_{highest + 1}", used)


def is_valid_id(value: object) -> bool:
    """An id must be a non-empty string without surrounding whitespace."""
    return isinstance(value, str) and bool(value) and value == value.strip()
