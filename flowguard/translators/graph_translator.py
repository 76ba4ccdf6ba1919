"""
Graph Translator

Converts extracted generator payloads to the canonical ProcessGraph and back.
Node type names vary between generators (startProcess, exclusiveGateway,
dataProcess, ...); all of them are normalized here, deterministically, so the
validator and repair engine only ever see NodeKind values.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from flowguard.schemas.process_graph import (
    ProcessGraph, ProcessNode, Connection, NodeKind, GatewayType
)
from flowguard.services.id_factory import get_next_sequential_id, is_valid_id

logger = logging.getLogger(__name__)


class GraphTranslationError(Exception):
    """Raised when a payload does not have the shape of a process graph"""
    pass


_RESERVED_NODE_KEYS = {"id", "type", "kind", "data", "attributes", "position", "layoutHint"}


class GraphTranslator:
    """
    Deterministic translator between generator payloads and ProcessGraph.
    """

    def __init__(self):
        # Lower-cased generator type name -> (kind, implied gateway type)
        self.kind_aliases: Dict[str, Tuple[NodeKind, Optional[GatewayType]]] = {
            "start": (NodeKind.START, None),
            "startprocess": (NodeKind.START, None),
            "startevent": (NodeKind.START, None),
            "end": (NodeKind.END, None),
            "endprocess": (NodeKind.END, None),
            "endevent": (NodeKind.END, None),
            "humantask": (NodeKind.HUMAN_TASK, None),
            "usertask": (NodeKind.HUMAN_TASK, None),
            "manualtask": (NodeKind.HUMAN_TASK, None),
            "scripttask": (NodeKind.SCRIPT_TASK, None),
            "servicetask": (NodeKind.SCRIPT_TASK, None),
            "timer": (NodeKind.TIMER, None),
            "timerevent": (NodeKind.TIMER, None),
            "gateway": (NodeKind.GATEWAY, None),
            "decision": (NodeKind.GATEWAY, GatewayType.EXCLUSIVE),
            "exclusivegateway": (NodeKind.GATEWAY, GatewayType.EXCLUSIVE),
            "inclusivegateway": (NodeKind.GATEWAY, GatewayType.INCLUSIVE),
            "parallelgateway": (NodeKind.GATEWAY, GatewayType.PARALLEL),
            "dataoperation": (NodeKind.DATA_OPERATION, None),
            "dataprocess": (NodeKind.DATA_OPERATION, None),
            "notification": (NodeKind.NOTIFICATION, None),
            "validation": (NodeKind.VALIDATION, None),
            "llmtask": (NodeKind.LLM_TASK, None),
        }

    def to_graph(self, payload: Any) -> ProcessGraph:
        """
        Convert an extracted payload into a ProcessGraph.

        Args:
            payload: Object with ``nodes`` and ``connections`` (or ``edges``),
                optionally wrapped in a ``workflow`` object

        Returns:
            ProcessGraph in canonical form

        Raises:
            GraphTranslationError: If the payload is not graph-shaped
        """
        if not isinstance(payload, dict):
            raise GraphTranslationError(f"Graph payload must be an object, got {type(payload).__name__}")

        if "nodes" not in payload and isinstance(payload.get("workflow"), dict):
            payload = payload["workflow"]

        raw_nodes = payload.get("nodes")
        if not isinstance(raw_nodes, list):
            raise GraphTranslationError("Graph payload must have a nodes array")

        raw_connections = payload.get("connections", payload.get("edges", []))
        if raw_connections is None:
            raw_connections = []
        if not isinstance(raw_connections, list):
            raise GraphTranslationError("Graph payload connections must be an array")

        nodes = self._convert_nodes(raw_nodes)
        connections = self._convert_connections(raw_connections)

        logger.info(f"Translated payload: {len(nodes)} nodes, {len(connections)} connections")
        return ProcessGraph(nodes=nodes, connections=connections)

    def to_payload(self, graph: ProcessGraph) -> Dict[str, Any]:
        """Canonical camelCase payload for persistence and rendering layers."""
        return {
            "nodes": [n.model_dump(mode="json", by_alias=True) for n in graph.nodes],
            "connections": [c.model_dump(mode="json", by_alias=True) for c in graph.connections],
        }

    def normalize_kind(self, raw_kind: Any) -> Tuple[NodeKind, Optional[GatewayType]]:
        if isinstance(raw_kind, str):
            alias = self.kind_aliases.get(raw_kind.strip().lower())
            if alias:
                return alias
        logger.debug(f"Unknown node type '{raw_kind}', treating as '{NodeKind.OTHER.value}'")
        return NodeKind.OTHER, None

    def _convert_nodes(self, raw_nodes: List[Any]) -> List[ProcessNode]:
        for index, raw in enumerate(raw_nodes):
            if not isinstance(raw, dict):
                raise GraphTranslationError(f"Node at index {index} must be an object")

        taken = [self._coerce_id(raw.get("id")) for raw in raw_nodes]
        nodes = []

        for index, raw in enumerate(raw_nodes):
            node_id = taken[index]
            if node_id is None:
                node_id = get_next_sequential_id("node", [t for t in taken if t])
                taken[index] = node_id
                logger.warning(f"Node at index {index} missing id, assigned '{node_id}'")

            kind, implied_gateway = self.normalize_kind(raw.get("kind") or raw.get("type"))

            attributes: Dict[str, Any] = {}
            for source in (raw.get("data"), raw.get("attributes")):
                if isinstance(source, dict):
                    attributes.update(source)
            for key, value in raw.items():
                if key not in _RESERVED_NODE_KEYS:
                    attributes.setdefault(key, value)
            if implied_gateway and "gatewayType" not in attributes:
                attributes["gatewayType"] = implied_gateway.value

            nodes.append(ProcessNode(
                id=node_id,
                kind=kind,
                attributes=attributes,
                layout_hint=raw.get("layoutHint", raw.get("position")),
            ))

        return nodes

    def _convert_connections(self, raw_connections: List[Any]) -> List[Connection]:
        for index, raw in enumerate(raw_connections):
            if not isinstance(raw, dict):
                raise GraphTranslationError(f"Connection at index {index} must be an object")

        taken = [self._coerce_id(raw.get("id")) for raw in raw_connections]
        connections = []

        for index, raw in enumerate(raw_connections):
            conn_id = taken[index]
            if conn_id is None:
                conn_id = get_next_sequential_id("conn", [t for t in taken if t])
                taken[index] = conn_id

            data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
            condition = raw.get("condition", data.get("condition"))
            label = raw.get("label", data.get("label"))

            connections.append(Connection(
                id=conn_id,
                # Missing endpoints stay empty and surface as dangling connections
                source_node_id=self._coerce_id(raw.get("sourceNodeId", raw.get("source"))) or "",
                target_node_id=self._coerce_id(raw.get("targetNodeId", raw.get("target"))) or "",
                label=label if isinstance(label, str) else None,
                is_default=bool(raw.get("isDefault", data.get("isDefault", False))),
                condition=condition if isinstance(condition, str) and condition.strip() else None,
            ))

        return connections

    def _coerce_id(self, raw_id: Any) -> Optional[str]:
        # Generators sometimes emit numeric ids
        if isinstance(raw_id, bool):
            return None
        if isinstance(raw_id, int):
            return str(raw_id)
        if is_valid_id(raw_id):
            return raw_id
        if isinstance(raw_id, str) and raw_id.strip():
            return raw_id.strip()
        return None


_default_translator = GraphTranslator()


def graph_from_payload(payload: Any) -> ProcessGraph:
    return _default_translator.to_graph(payload)


def graph_to_payload(graph: ProcessGraph) -> Dict[str, Any]:
    return _default_translator.to_payload(graph)
