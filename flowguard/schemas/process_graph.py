# schemas/process_graph.py
from __future__ import annotations
from typing import List, Optional, Dict, Any, Set
from collections import deque
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field

# ---------- Core Enums ----------

class NodeKind(str, Enum):
    START = "start"
    END = "end"
    HUMAN_TASK = "humanTask"
    SCRIPT_TASK = "scriptTask"
    TIMER = "timer"
    GATEWAY = "gateway"
    DATA_OPERATION = "dataOperation"
    NOTIFICATION = "notification"
    VALIDATION = "validation"
    LLM_TASK = "llmTask"
    OTHER = "other"

class GatewayType(str, Enum):
    EXCLUSIVE = "exclusive"
    INCLUSIVE = "inclusive"
    PARALLEL = "parallel"

TERMINAL_KINDS = frozenset({NodeKind.END})

# ---------- Graph Models ----------

class ProcessNode(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    kind: NodeKind = Field(default=NodeKind.OTHER)
    attributes: Dict[str, Any] = Field(default_factory=dict)

    # Opaque to validation and repair
    layout_hint: Optional[Any] = Field(default=None, alias="layoutHint")

    @property
    def label(self) -> str:
        return str(self.attributes.get("label") or self.id)

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS

    @property
    def gateway_type(self) -> Optional[GatewayType]:
        if self.kind != NodeKind.GATEWAY:
            return None
        raw = self.attributes.get("gatewayType") or GatewayType.EXCLUSIVE.value
        try:
            return GatewayType(str(raw).lower())
        except ValueError:
            return GatewayType.EXCLUSIVE

    @property
    def is_exclusive_gateway(self) -> bool:
        return self.gateway_type == GatewayType.EXCLUSIVE

class Connection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    source_node_id: str = Field(alias="sourceNodeId")
    target_node_id: str = Field(alias="targetNodeId")
    label: Optional[str] = None
    is_default: bool = Field(default=False, alias="isDefault")
    condition: Optional[str] = None

class ProcessGraph(BaseModel):
    nodes: List[ProcessNode] = Field(default_factory=list)
    connections: List[Connection] = Field(default_factory=list)

    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def find_node(self, node_id: str) -> Optional[ProcessNode]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def outgoing(self, node_id: str) -> List[Connection]:
        """Outgoing connections of a node, in connection order."""
        return [c for c in self.connections if c.source_node_id == node_id]

    def start_nodes(self) -> List[ProcessNode]:
        return [n for n in self.nodes if n.kind == NodeKind.START]

    def end_nodes(self) -> List[ProcessNode]:
        return [n for n in self.nodes if n.is_terminal]

# ---------- Graph Helpers ----------

def build_adjacency(graph: ProcessGraph) -> Dict[str, List[str]]:
    """
    Forward adjacency over resolvable connections only.
    Neighbour order follows connection order so traversals are deterministic.
    """
    adjacency: Dict[str, List[str]] = {n.id: [] for n in graph.nodes}
    for c in graph.connections:
        if c.source_node_id in adjacency and c.target_node_id in adjacency:
            adjacency[c.source_node_id].append(c.target_node_id)
    return adjacency

def build_reverse_adjacency(graph: ProcessGraph) -> Dict[str, List[str]]:
    reverse: Dict[str, List[str]] = {n.id: [] for n in graph.nodes}
    for c in graph.connections:
        if c.source_node_id in reverse and c.target_node_id in reverse:
            reverse[c.target_node_id].append(c.source_node_id)
    return reverse

def reachable_from(adjacency: Dict[str, List[str]], roots: List[str]) -> Set[str]:
    """Breadth-first closure of ``roots`` over ``adjacency`` (roots included)."""
    visited: Set[str] = set()
    queue = deque(r for r in roots if r in adjacency)
    while queue:
        node_id = queue.popleft()
        if node_id in visited:
            continue
        visited.add(node_id)
        queue.extend(n for n in adjacency.get(node_id, []) if n not in visited)
    return visited
