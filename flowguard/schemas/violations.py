"""
Violation Schema

One pydantic model per broken graph invariant, discriminated on ``kind``.
Repairs dispatch on the kind and read the structured payload directly;
``message`` is for people (logs, changelog, operators) and is never parsed.
"""

from typing import Annotated, List, Literal, Optional, Union
from enum import Enum
from pydantic import BaseModel, Field, computed_field


class ViolationKind(str, Enum):
    EMPTY_GRAPH = "empty_graph"
    MISSING_START = "missing_start"
    MISSING_END = "missing_end"
    DUPLICATE_ID = "duplicate_id"
    DANGLING_CONNECTION = "dangling_connection"
    UNREACHABLE_NODE = "unreachable_node"
    CYCLE = "cycle"
    MISSING_DEFAULT_PATH = "missing_default_path"
    MISSING_OUTGOING = "missing_outgoing"
    DANGLING_FIELD_REFERENCE = "dangling_field_reference"
    UNSAFE_CONDITION = "unsafe_condition"
    SINGLE_PATH_GATEWAY = "single_path_gateway"
    UNCONDITIONED_BRANCH = "unconditioned_branch"
    NO_PATH_TO_END = "no_path_to_end"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class _ViolationBase(BaseModel):
    severity: Severity = Severity.ERROR

    @computed_field
    @property
    def message(self) -> str:
        return self._describe()

    def _describe(self) -> str:
        raise NotImplementedError


# ---------- Structure ----------

class EmptyGraph(_ViolationBase):
    kind: Literal["empty_graph"] = "empty_graph"

    def _describe(self) -> str:
        return "Graph has no nodes"


class MissingStart(_ViolationBase):
    kind: Literal["missing_start"] = "missing_start"

    def _describe(self) -> str:
        return "Graph must have at least one start node"


class MissingEnd(_ViolationBase):
    kind: Literal["missing_end"] = "missing_end"

    def _describe(self) -> str:
        return "Graph must have at least one end node"


# ---------- Referential integrity ----------

class DuplicateId(_ViolationBase):
    kind: Literal["duplicate_id"] = "duplicate_id"
    node_id: str
    occurrences: List[int] = Field(description="Indices of every node carrying this id")

    def _describe(self) -> str:
        return f"Duplicate node ID '{self.node_id}' used by {len(self.occurrences)} nodes"


class DanglingConnection(_ViolationBase):
    kind: Literal["dangling_connection"] = "dangling_connection"
    connection_id: str
    source_node_id: str
    target_node_id: str
    missing_endpoints: List[Literal["source", "target"]]

    def _describe(self) -> str:
        missing = " and ".join(self.missing_endpoints)
        return (
            f"Connection '{self.connection_id}' ({self.source_node_id} → {self.target_node_id}) "
            f"references a non-existent {missing}"
        )


# ---------- Topology ----------

class UnreachableNode(_ViolationBase):
    kind: Literal["unreachable_node"] = "unreachable_node"
    node_id: str

    def _describe(self) -> str:
        return f"Node '{self.node_id}' is unreachable from any start node"


class Cycle(_ViolationBase):
    kind: Literal["cycle"] = "cycle"
    path: List[str] = Field(description="Node ids forming the cycle; first and last are the same node")

    def _describe(self) -> str:
        return f"Circular path detected: {' → '.join(self.path)}"


class MissingDefaultPath(_ViolationBase):
    kind: Literal["missing_default_path"] = "missing_default_path"
    node_id: str
    connection_ids: List[str]

    def _describe(self) -> str:
        return (
            f"Exclusive gateway '{self.node_id}' has {len(self.connection_ids)} outgoing "
            f"connections but none is marked as the default path"
        )


class MissingOutgoing(_ViolationBase):
    kind: Literal["missing_outgoing"] = "missing_outgoing"
    node_id: str
    node_kind: str

    def _describe(self) -> str:
        return f"Node '{self.node_id}' ({self.node_kind}) has no outgoing connections"


# ---------- Data flow ----------

class DanglingFieldReference(_ViolationBase):
    kind: Literal["dangling_field_reference"] = "dangling_field_reference"
    node_id: str
    attribute: str
    field_name: str

    def _describe(self) -> str:
        return (
            f"Node '{self.node_id}' attribute '{self.attribute}' references field "
            f"'{self.field_name}' that no earlier node declares"
        )


class UnsafeCondition(_ViolationBase):
    kind: Literal["unsafe_condition"] = "unsafe_condition"
    connection_id: str
    condition: str
    token: str

    def _describe(self) -> str:
        return f"Connection '{self.connection_id}' condition contains unsafe token '{self.token}'"


# ---------- Warnings ----------

class SinglePathGateway(_ViolationBase):
    severity: Severity = Severity.WARNING
    kind: Literal["single_path_gateway"] = "single_path_gateway"
    node_id: str
    connection_id: str

    def _describe(self) -> str:
        return f"Gateway '{self.node_id}' has only one outgoing path (not really a decision)"


class UnconditionedBranch(_ViolationBase):
    severity: Severity = Severity.WARNING
    kind: Literal["unconditioned_branch"] = "unconditioned_branch"
    node_id: str
    connection_id: str

    def _describe(self) -> str:
        return (
            f"Connection '{self.connection_id}' from gateway '{self.node_id}' has no condition "
            f"and is not marked as default"
        )


class NoPathToEnd(_ViolationBase):
    severity: Severity = Severity.WARNING
    kind: Literal["no_path_to_end"] = "no_path_to_end"
    node_id: str

    def _describe(self) -> str:
        return f"Start node '{self.node_id}' has no path to any end node"


Violation = Annotated[
    Union[
        EmptyGraph,
        MissingStart,
        MissingEnd,
        DuplicateId,
        DanglingConnection,
        UnreachableNode,
        Cycle,
        MissingDefaultPath,
        MissingOutgoing,
        DanglingFieldReference,
        UnsafeCondition,
        SinglePathGateway,
        UnconditionedBranch,
        NoPathToEnd,
    ],
    Field(discriminator="kind"),
]


class ValidationReport(BaseModel):
    valid: bool
    violations: List[Violation] = Field(default_factory=list)

    @property
    def errors(self) -> List[Violation]:
        return [v for v in self.violations if v.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[Violation]:
        return [v for v in self.violations if v.severity == Severity.WARNING]

    def first(self, kind: ViolationKind) -> Optional[Violation]:
        return next((v for v in self.violations if v.kind == kind), None)
