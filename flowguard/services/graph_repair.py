"""
Deterministic Repair Engine

Resolves one structured violation at a time with a local, minimal edit.
Each violation kind maps to exactly one strategy in an explicit table that
callers may replace; there is no global registry.
"""

from typing import Callable, Dict, List, Optional, Tuple
import logging

from pydantic import BaseModel

from flowguard.config import RepairSettings, UnreachablePolicy
from flowguard.schemas.process_graph import (
    ProcessGraph, Connection, NodeKind,
    build_adjacency, reachable_from
)
from flowguard.schemas.violations import (
    Violation, ViolationKind,
    DuplicateId, DanglingConnection, UnreachableNode, Cycle,
    MissingDefaultPath, MissingOutgoing, DanglingFieldReference, UnsafeCondition
)
from flowguard.services.graph_validator import normalize_field_name
from flowguard.services.id_factory import duplicate_node_id, connection_id

logger = logging.getLogger(__name__)

# A strategy edits the working copy in place and reports (applied, note)
RepairStrategy = Callable[[ProcessGraph, Violation], Tuple[bool, str]]


class RepairResult(BaseModel):
    applied: bool
    graph: ProcessGraph
    note: str = ""


class GraphRepair:
    """
    Applies the strategy registered for a violation's kind to a copy of the graph.
    Never raises: inapplicable or failing strategies come back as ``applied=False``.
    """

    def __init__(
        self,
        strategies: Optional[Dict[ViolationKind, RepairStrategy]] = None,
        settings: Optional[RepairSettings] = None,
    ):
        self.settings = settings or RepairSettings()
        self.strategies: Dict[ViolationKind, RepairStrategy] = (
            dict(strategies) if strategies is not None else default_strategies(self.settings)
        )

    def repair(self, graph: ProcessGraph, violation: Violation) -> RepairResult:
        strategy = self.strategies.get(ViolationKind(violation.kind))
        if strategy is None:
            logger.debug(f"No automatic fix available for: {violation.message}")
            return RepairResult(applied=False, graph=graph, note=f"No automatic fix for {violation.kind}")

        working = graph.model_copy(deep=True)
        try:
            applied, note = strategy(working, violation)
        except Exception as e:
            logger.error(f"Repair strategy for {violation.kind} failed: {e}", exc_info=True)
            return RepairResult(applied=False, graph=graph, note=f"Repair failed: {e}")

        if not applied:
            logger.debug(f"Repair not applied ({violation.kind}): {note}")
            return RepairResult(applied=False, graph=graph, note=note)

        return RepairResult(applied=True, graph=working, note=note)


def default_strategies(settings: Optional[RepairSettings] = None) -> Dict[ViolationKind, RepairStrategy]:
    settings = settings or RepairSettings()
    return {
        ViolationKind.DUPLICATE_ID: fix_duplicate_id,
        ViolationKind.DANGLING_CONNECTION: fix_dangling_connection,
        ViolationKind.UNREACHABLE_NODE: unreachable_strategy(settings.unreachable_policy),
        ViolationKind.CYCLE: fix_cycle,
        ViolationKind.MISSING_DEFAULT_PATH: fix_missing_default_path,
        ViolationKind.MISSING_OUTGOING: fix_missing_outgoing,
        ViolationKind.DANGLING_FIELD_REFERENCE: fix_dangling_field_reference,
        ViolationKind.UNSAFE_CONDITION: fix_unsafe_condition,
    }


# ---------- Graph edit primitives ----------

def _delete_node(graph: ProcessGraph, node_id: str) -> int:
    """Delete a node and all connected edges; returns how many edges went with it."""
    graph.nodes = [n for n in graph.nodes if n.id != node_id]
    before = len(graph.connections)
    graph.connections = [
        c for c in graph.connections
        if c.source_node_id != node_id and c.target_node_id != node_id
    ]
    return before - len(graph.connections)


def _delete_connections(graph: ProcessGraph, source_id: str, target_id: str) -> List[str]:
    removed = [
        c.id for c in graph.connections
        if c.source_node_id == source_id and c.target_node_id == target_id
    ]
    graph.connections = [
        c for c in graph.connections
        if not (c.source_node_id == source_id and c.target_node_id == target_id)
    ]
    return removed


def _add_connection(graph: ProcessGraph, source_id: str, target_id: str) -> Connection:
    new_connection = Connection(
        id=connection_id(source_id, target_id, [c.id for c in graph.connections]),
        source_node_id=source_id,
        target_node_id=target_id,
    )
    graph.connections.append(new_connection)
    return new_connection


# ---------- Strategies ----------

def fix_duplicate_id(graph: ProcessGraph, violation: DuplicateId) -> Tuple[bool, str]:
    """
    Keep the first occurrence and rename every later one.

    Connection endpoints naming the old id are rewritten to each renamed
    node in turn, so the first rename takes them all and later renames find
    none left. Node and connection counts are unchanged.
    """
    indices = [i for i, n in enumerate(graph.nodes) if n.id == violation.node_id]
    if len(indices) <= 1:
        return False, f"Node ID '{violation.node_id}' is already unique"

    taken = set(graph.node_ids())
    renamed = []
    for occurrence, index in enumerate(indices[1:], start=1):
        new_id = duplicate_node_id(violation.node_id, occurrence, taken)
        taken.add(new_id)
        graph.nodes[index].id = new_id
        renamed.append(new_id)

        for conn in graph.connections:
            if conn.source_node_id == violation.node_id:
                conn.source_node_id = new_id
            if conn.target_node_id == violation.node_id:
                conn.target_node_id = new_id

    logger.info(f"🔧 Renamed duplicate node '{violation.node_id}' occurrences to {renamed}")
    return True, (
        f"Fixed duplicate node ID '{violation.node_id}': renamed {len(renamed)} "
        f"duplicate occurrence(s) to {', '.join(renamed)}"
    )


def fix_dangling_connection(graph: ProcessGraph, violation: DanglingConnection) -> Tuple[bool, str]:
    node_ids = set(graph.node_ids())

    def _is_target(c: Connection) -> bool:
        return (
            c.id == violation.connection_id
            and c.source_node_id == violation.source_node_id
            and c.target_node_id == violation.target_node_id
            and (c.source_node_id not in node_ids or c.target_node_id not in node_ids)
        )

    before = len(graph.connections)
    graph.connections = [c for c in graph.connections if not _is_target(c)]
    if len(graph.connections) == before:
        return False, f"Connection '{violation.connection_id}' no longer dangles"

    return True, (
        f"Removed dangling connection '{violation.connection_id}' "
        f"({violation.source_node_id} → {violation.target_node_id})"
    )


def unreachable_strategy(policy: UnreachablePolicy) -> RepairStrategy:
    """Strategy for unreachable nodes under the configured policy."""

    def fix_unreachable_node(graph: ProcessGraph, violation: UnreachableNode) -> Tuple[bool, str]:
        if graph.find_node(violation.node_id) is None:
            return False, f"Node '{violation.node_id}' no longer exists"

        start_ids = [n.id for n in graph.start_nodes()]
        if not start_ids:
            return False, "Graph has no start node to measure reachability from"

        if violation.node_id in reachable_from(build_adjacency(graph), start_ids):
            return False, f"Node '{violation.node_id}' is reachable again"

        if policy == UnreachablePolicy.KEEP:
            return False, f"Unreachable node '{violation.node_id}' kept by policy"

        if policy == UnreachablePolicy.CONNECT:
            added = _add_connection(graph, start_ids[0], violation.node_id)
            return True, (
                f"Connected unreachable node '{violation.node_id}' from start node "
                f"'{start_ids[0]}' via connection '{added.id}'"
            )

        removed_edges = _delete_node(graph, violation.node_id)
        return True, (
            f"Removed unreachable node '{violation.node_id}' and "
            f"{removed_edges} connection(s) touching it"
        )

    return fix_unreachable_node


def fix_cycle(graph: ProcessGraph, violation: Cycle) -> Tuple[bool, str]:
    """Remove the edge closing the cycle: path[-2] → path[-1]."""
    path = violation.path
    if len(path) < 2:
        return False, "Cycle path too short to break"

    edges = {(c.source_node_id, c.target_node_id) for c in graph.connections}
    if any((a, b) not in edges for a, b in zip(path, path[1:])):
        return False, f"Cycle {' → '.join(path)} no longer exists"

    source_id, target_id = path[-2], path[-1]
    removed = _delete_connections(graph, source_id, target_id)
    logger.info(f"🔧 Breaking cycle: removed {removed} ({source_id} → {target_id})")
    return True, (
        f"Removed circular path {' → '.join(path)}: dropped connection "
        f"{', '.join(repr(r) for r in removed)} from {source_id} to {target_id}"
    )


def fix_missing_default_path(graph: ProcessGraph, violation: MissingDefaultPath) -> Tuple[bool, str]:
    node = graph.find_node(violation.node_id)
    if node is None or node.kind != NodeKind.GATEWAY:
        return False, f"Gateway '{violation.node_id}' no longer exists"

    outgoing = graph.outgoing(violation.node_id)
    if not outgoing:
        return False, f"Gateway '{violation.node_id}' has no outgoing connections"
    if any(c.is_default for c in outgoing):
        return False, f"Gateway '{violation.node_id}' already has a default path"

    default_connection = outgoing[0]
    default_connection.is_default = True
    if not default_connection.label:
        default_connection.label = "Default"
    return True, (
        f"Added default path to gateway '{violation.node_id}': set connection "
        f"'{default_connection.id}' to '{default_connection.target_node_id}' as default"
    )


def fix_missing_outgoing(graph: ProcessGraph, violation: MissingOutgoing) -> Tuple[bool, str]:
    node = graph.find_node(violation.node_id)
    if node is None or node.is_terminal:
        return False, f"Node '{violation.node_id}' no longer needs an outgoing connection"

    if build_adjacency(graph).get(violation.node_id):
        return False, f"Node '{violation.node_id}' already has an outgoing connection"

    end_id = _nearest_end_node(graph, violation.node_id)
    if end_id is None:
        return False, f"No end node to connect '{violation.node_id}' to"

    added = _add_connection(graph, violation.node_id, end_id)
    return True, f"Added connection '{added.id}' from node '{violation.node_id}' to end node '{end_id}'"


def _nearest_end_node(graph: ProcessGraph, node_id: str) -> Optional[str]:
    """
    End node with the fewest hops from ``node_id`` ignoring direction;
    ties and disconnected ends fall back to node order.
    """
    end_ids = [n.id for n in graph.end_nodes()]
    if not end_ids:
        return None

    undirected: Dict[str, List[str]] = {n.id: [] for n in graph.nodes}
    for c in graph.connections:
        if c.source_node_id in undirected and c.target_node_id in undirected:
            undirected[c.source_node_id].append(c.target_node_id)
            undirected[c.target_node_id].append(c.source_node_id)

    distance = {node_id: 0}
    frontier = [node_id]
    while frontier:
        next_frontier = []
        for current in frontier:
            for neighbor in undirected.get(current, []):
                if neighbor not in distance:
                    distance[neighbor] = distance[current] + 1
                    next_frontier.append(neighbor)
        frontier = next_frontier

    unreachable = len(graph.nodes) + 1
    return min(end_ids, key=lambda e: (distance.get(e, unreachable), end_ids.index(e)))


def fix_dangling_field_reference(graph: ProcessGraph, violation: DanglingFieldReference) -> Tuple[bool, str]:
    for node in graph.nodes:
        if node.id != violation.node_id:
            continue
        reference = node.attributes.get(violation.attribute)
        if isinstance(reference, str) and normalize_field_name(reference) == violation.field_name:
            node.attributes[violation.attribute] = None
            return True, (
                f"Removed invalid field reference '{violation.field_name}' from "
                f"attribute '{violation.attribute}' of node '{violation.node_id}'"
            )

    return False, f"Node '{violation.node_id}' no longer references '{violation.field_name}'"


def fix_unsafe_condition(graph: ProcessGraph, violation: UnsafeCondition) -> Tuple[bool, str]:
    cleared = 0
    for conn in graph.connections:
        if conn.id == violation.connection_id and conn.condition and violation.token in conn.condition:
            conn.condition = None
            cleared += 1

    if not cleared:
        return False, f"Connection '{violation.connection_id}' condition already safe"
    return True, f"Cleared unsafe condition on connection '{violation.connection_id}'"
