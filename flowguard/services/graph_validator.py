"""
Graph Validator

Checks a ProcessGraph against the structural invariants a renderer/executor
relies on. Every check always runs, so one pass yields the complete picture;
an invalid graph is a normal return value, never an exception.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Set

from flowguard.config import RepairSettings
from flowguard.schemas.process_graph import (
    ProcessGraph, ProcessNode, NodeKind,
    build_adjacency, build_reverse_adjacency, reachable_from
)
from flowguard.schemas.violations import (
    Violation, ValidationReport, Severity,
    EmptyGraph, MissingStart, MissingEnd, DuplicateId, DanglingConnection,
    UnreachableNode, Cycle, MissingDefaultPath, MissingOutgoing,
    DanglingFieldReference, UnsafeCondition, SinglePathGateway,
    UnconditionedBranch, NoPathToEnd
)

logger = logging.getLogger(__name__)

UNSAFE_CONDITION_TOKENS = ("__proto__", "constructor", "prototype")
FIELD_REFERENCE_PREFIX = "processData."


def normalize_field_name(reference: str) -> str:
    """``processData.amount`` and ``amount`` name the same field."""
    name = reference.strip()
    if name.startswith(FIELD_REFERENCE_PREFIX):
        name = name[len(FIELD_REFERENCE_PREFIX):]
    return name


def declared_fields(node: ProcessNode) -> Set[str]:
    """Data fields a node declares for nodes downstream of it."""
    fields: Set[str] = set()

    # Attributes are free-form: only lists (or a name -> spec mapping) declare anything
    process_data = node.attributes.get("processData")
    if isinstance(process_data, dict):
        process_data = list(process_data)
    if isinstance(process_data, list):
        for entry in process_data:
            if isinstance(entry, dict) and isinstance(entry.get("key"), str):
                fields.add(entry["key"].strip())
            elif isinstance(entry, str):
                fields.add(entry.strip())

    output_field = node.attributes.get("outputField")
    if isinstance(output_field, str) and output_field.strip():
        fields.add(normalize_field_name(output_field))

    declared = node.attributes.get("declaredFields")
    if isinstance(declared, list):
        for name in declared:
            if isinstance(name, str) and name.strip():
                fields.add(normalize_field_name(name))

    fields.discard("")
    return fields


class GraphValidator:
    """
    Pure validator over a ProcessGraph.

    Traversals follow node order and connection order, so the same graph
    always produces the same violations in the same order.
    """

    def __init__(self, settings: Optional[RepairSettings] = None):
        self.settings = settings or RepairSettings()

    def validate(self, graph: ProcessGraph) -> ValidationReport:
        adjacency = build_adjacency(graph)

        violations: List[Violation] = []
        violations.extend(self._check_structure(graph))
        violations.extend(self._check_duplicate_ids(graph))
        violations.extend(self._check_dangling_connections(graph))
        violations.extend(self._check_reachability(graph, adjacency))
        violations.extend(self._check_cycles(graph, adjacency))
        violations.extend(self._check_gateway_defaults(graph))
        violations.extend(self._check_outgoing(graph, adjacency))
        violations.extend(self._check_field_references(graph))
        violations.extend(self._check_conditions(graph))
        violations.extend(self._check_gateway_paths(graph))
        violations.extend(self._check_paths_to_end(graph, adjacency))

        valid = not any(v.severity == Severity.ERROR for v in violations)
        if valid:
            logger.debug(f"✅ Graph validation passed ({len(violations)} warning(s))")
        else:
            logger.debug(f"Graph validation found {len(violations)} violation(s)")

        return ValidationReport(valid=valid, violations=violations)

    # ---------- Structure ----------

    def _check_structure(self, graph: ProcessGraph) -> List[Violation]:
        if not graph.nodes:
            return [EmptyGraph()]

        found: List[Violation] = []
        if not graph.start_nodes():
            found.append(MissingStart())
        if not graph.end_nodes():
            found.append(MissingEnd())
        return found

    # ---------- Referential integrity ----------

    def _check_duplicate_ids(self, graph: ProcessGraph) -> List[Violation]:
        occurrences: Dict[str, List[int]] = defaultdict(list)
        for index, node in enumerate(graph.nodes):
            occurrences[node.id].append(index)

        return [
            DuplicateId(node_id=node_id, occurrences=indices)
            for node_id, indices in occurrences.items()
            if len(indices) > 1
        ]

    def _check_dangling_connections(self, graph: ProcessGraph) -> List[Violation]:
        node_ids = set(graph.node_ids())
        found: List[Violation] = []

        for conn in graph.connections:
            missing = []
            if conn.source_node_id not in node_ids:
                missing.append("source")
            if conn.target_node_id not in node_ids:
                missing.append("target")
            if missing:
                found.append(DanglingConnection(
                    connection_id=conn.id,
                    source_node_id=conn.source_node_id,
                    target_node_id=conn.target_node_id,
                    missing_endpoints=missing,
                ))

        return found

    # ---------- Topology ----------

    def _check_reachability(self, graph: ProcessGraph, adjacency: Dict[str, List[str]]) -> List[Violation]:
        start_ids = [n.id for n in graph.start_nodes()]
        if not start_ids:
            # Without a start every node would be "unreachable"; MissingStart covers it
            return []

        visited = reachable_from(adjacency, start_ids)
        found: List[Violation] = []
        reported: Set[str] = set()

        for node in graph.nodes:
            if node.id not in visited and node.id not in reported:
                reported.add(node.id)
                found.append(UnreachableNode(node_id=node.id))

        return found

    def _check_cycles(self, graph: ProcessGraph, adjacency: Dict[str, List[str]]) -> List[Violation]:
        """
        Iterative DFS with an explicit active-path stack.

        Every edge into a node still on the active path closes a cycle; the
        reported path runs from that node along the stack and back to it.
        """
        ON_PATH, DONE = 1, 2
        state: Dict[str, int] = {}
        found: List[Violation] = []
        seen_paths: Set[tuple] = set()

        roots = [n.id for n in graph.start_nodes()] + graph.node_ids()
        for root in roots:
            if root in state:
                continue

            path = [root]
            state[root] = ON_PATH
            pending = [iter(adjacency[root])]

            while pending:
                neighbor = next(pending[-1], None)
                if neighbor is None:
                    state[path.pop()] = DONE
                    pending.pop()
                    continue

                status = state.get(neighbor)
                if status is None:
                    state[neighbor] = ON_PATH
                    path.append(neighbor)
                    pending.append(iter(adjacency[neighbor]))
                elif status == ON_PATH:
                    cycle = path[path.index(neighbor):] + [neighbor]
                    if tuple(cycle) not in seen_paths:
                        seen_paths.add(tuple(cycle))
                        found.append(Cycle(path=cycle))

        return found

    def _check_gateway_defaults(self, graph: ProcessGraph) -> List[Violation]:
        found: List[Violation] = []
        reported: Set[str] = set()

        for node in graph.nodes:
            if not node.is_exclusive_gateway or node.id in reported:
                continue
            reported.add(node.id)

            outgoing = graph.outgoing(node.id)
            if len(outgoing) >= 2 and not any(c.is_default for c in outgoing):
                found.append(MissingDefaultPath(
                    node_id=node.id,
                    connection_ids=[c.id for c in outgoing],
                ))

        return found

    def _check_outgoing(self, graph: ProcessGraph, adjacency: Dict[str, List[str]]) -> List[Violation]:
        found: List[Violation] = []
        reported: Set[str] = set()

        for node in graph.nodes:
            if node.is_terminal or node.id in reported:
                continue
            reported.add(node.id)

            if not adjacency.get(node.id):
                found.append(MissingOutgoing(node_id=node.id, node_kind=node.kind.value))

        return found

    # ---------- Data flow ----------

    def _check_field_references(self, graph: ProcessGraph) -> List[Violation]:
        """
        A referenced field must be declared by some ancestor of the
        referencing node, i.e. earlier in the data flow.
        """
        reverse = build_reverse_adjacency(graph)
        declared_by: Dict[str, Set[str]] = defaultdict(set)
        for node in graph.nodes:
            declared_by[node.id] |= declared_fields(node)

        ancestors_of: Dict[str, Set[str]] = {}
        found: List[Violation] = []

        for node in graph.nodes:
            for attribute in self.settings.field_reference_attributes:
                reference = node.attributes.get(attribute)
                if not isinstance(reference, str) or not reference.strip():
                    continue

                field_name = normalize_field_name(reference)
                if node.id not in ancestors_of:
                    ancestors_of[node.id] = self._ancestors(node.id, reverse)

                if not any(field_name in declared_by[a] for a in ancestors_of[node.id]):
                    found.append(DanglingFieldReference(
                        node_id=node.id,
                        attribute=attribute,
                        field_name=field_name,
                    ))

        return found

    def _ancestors(self, node_id: str, reverse: Dict[str, List[str]]) -> Set[str]:
        # The node counts as its own ancestor only when it sits on a cycle
        return reachable_from(reverse, reverse.get(node_id, []))

    def _check_conditions(self, graph: ProcessGraph) -> List[Violation]:
        found: List[Violation] = []
        for conn in graph.connections:
            if not isinstance(conn.condition, str):
                continue
            token = next((t for t in UNSAFE_CONDITION_TOKENS if t in conn.condition), None)
            if token:
                found.append(UnsafeCondition(
                    connection_id=conn.id,
                    condition=conn.condition,
                    token=token,
                ))
        return found

    # ---------- Warnings ----------

    def _check_gateway_paths(self, graph: ProcessGraph) -> List[Violation]:
        found: List[Violation] = []
        reported: Set[str] = set()

        for node in graph.nodes:
            if node.kind != NodeKind.GATEWAY or node.id in reported:
                continue
            reported.add(node.id)

            outgoing = graph.outgoing(node.id)
            if len(outgoing) == 1:
                found.append(SinglePathGateway(node_id=node.id, connection_id=outgoing[0].id))
            elif len(outgoing) >= 2 and node.is_exclusive_gateway:
                for conn in outgoing:
                    if not conn.is_default and not conn.condition:
                        found.append(UnconditionedBranch(node_id=node.id, connection_id=conn.id))

        return found

    def _check_paths_to_end(self, graph: ProcessGraph, adjacency: Dict[str, List[str]]) -> List[Violation]:
        end_ids = {n.id for n in graph.end_nodes()}
        if not end_ids:
            return []

        found: List[Violation] = []
        for start in graph.start_nodes():
            if not reachable_from(adjacency, [start.id]) & end_ids:
                found.append(NoPathToEnd(node_id=start.id))
        return found


def validate_graph(graph: ProcessGraph, settings: Optional[RepairSettings] = None) -> ValidationReport:
    """Validate with a one-off validator."""
    return GraphValidator(settings).validate(graph)
