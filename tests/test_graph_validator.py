"""
Graph validation: every violation kind, severities, and determinism.
"""

from flowguard.config import RepairSettings
from flowguard.schemas.process_graph import NodeKind, ProcessGraph
from flowguard.schemas.violations import Severity, ViolationKind
from flowguard.services.graph_validator import (
    GraphValidator, validate_graph, declared_fields, normalize_field_name
)
from tests.graph_builders import node, conn, graph, start, end, gateway


def kinds(report):
    return [v.kind for v in report.violations]


def test_valid_graph_has_no_violations(linear_graph):
    report = GraphValidator().validate(linear_graph)
    assert report.valid is True
    assert report.violations == []


def test_validation_is_deterministic(cyclic_graph):
    validator = GraphValidator()
    first = validator.validate(cyclic_graph)
    second = validator.validate(cyclic_graph)
    assert first.model_dump() == second.model_dump()


def test_validation_does_not_mutate_graph(gateway_graph):
    before = gateway_graph.model_dump()
    validate_graph(gateway_graph)
    assert gateway_graph.model_dump() == before


def test_empty_graph():
    report = validate_graph(ProcessGraph())
    assert report.valid is False
    assert kinds(report) == ["empty_graph"]


def test_missing_start_skips_reachability():
    g = graph([node("task"), end()], [conn("task", "end")])
    report = validate_graph(g)
    assert kinds(report) == ["missing_start"]


def test_missing_end():
    g = graph([start(), node("task")], [conn("start", "task")])
    report = validate_graph(g)
    assert "missing_end" in kinds(report)
    assert report.first(ViolationKind.MISSING_OUTGOING).node_id == "task"


def test_duplicate_id():
    g = graph(
        [start(), node("task"), node("task", NodeKind.SCRIPT_TASK), end()],
        [conn("start", "task"), conn("task", "end")],
    )
    report = validate_graph(g)
    assert kinds(report) == ["duplicate_id"]
    violation = report.first(ViolationKind.DUPLICATE_ID)
    assert violation.node_id == "task"
    assert violation.occurrences == [1, 2]


def test_dangling_connection(linear_graph):
    linear_graph.connections.append(conn("review", "ghost", "c3"))
    linear_graph.connections.append(conn("nowhere", "nothing", "c4"))
    report = validate_graph(linear_graph)

    assert kinds(report) == ["dangling_connection", "dangling_connection"]
    first, second = report.violations
    assert first.connection_id == "c3"
    assert first.missing_endpoints == ["target"]
    assert second.missing_endpoints == ["source", "target"]


def test_unreachable_node(linear_graph):
    linear_graph.nodes.append(node("orphan"))
    linear_graph.connections.append(conn("orphan", "end", "c3"))
    report = validate_graph(linear_graph)

    assert kinds(report) == ["unreachable_node"]
    assert report.violations[0].node_id == "orphan"


def test_cycle_path(cyclic_graph):
    report = validate_graph(cyclic_graph)
    assert kinds(report) == ["cycle"]
    assert report.violations[0].path == ["A", "B", "A"]


def test_self_loop_is_a_cycle(linear_graph):
    linear_graph.connections.append(conn("review", "review", "loop"))
    report = validate_graph(linear_graph)
    assert report.first(ViolationKind.CYCLE).path == ["review", "review"]


def test_cycle_outside_start_reach_is_found():
    g = graph(
        [start(), end(), node("x"), node("y")],
        [conn("start", "end"), conn("x", "y"), conn("y", "x")],
    )
    report = validate_graph(g)
    assert report.first(ViolationKind.CYCLE).path == ["x", "y", "x"]


def test_missing_default_path(gateway_graph):
    report = validate_graph(gateway_graph)
    assert report.valid is False
    assert [v.kind for v in report.errors] == ["missing_default_path"]

    violation = report.errors[0]
    assert violation.node_id == "gw"
    assert violation.connection_ids == ["c2", "c3"]


def test_default_path_not_required_for_parallel_gateway(gateway_graph):
    gateway_graph.find_node("gw").attributes["gatewayType"] = "parallel"
    report = validate_graph(gateway_graph)
    assert report.valid is True


def test_missing_outgoing():
    g = graph(
        [start(), node("task"), end()],
        [conn("start", "task"), conn("start", "end")],
    )
    report = validate_graph(g)
    assert kinds(report) == ["missing_outgoing"]
    assert report.violations[0].node_id == "task"
    assert report.violations[0].node_kind == "humanTask"


def test_dangling_connection_does_not_count_as_outgoing():
    g = graph(
        [start(), node("task"), end()],
        [conn("start", "task"), conn("start", "end"), conn("task", "ghost")],
    )
    report = validate_graph(g)
    assert kinds(report) == ["dangling_connection", "missing_outgoing"]


def test_dangling_field_reference(dangling_field_graph):
    report = validate_graph(dangling_field_graph)
    assert kinds(report) == ["dangling_field_reference"]

    violation = report.violations[0]
    assert violation.node_id == "review"
    assert violation.attribute == "dataField"
    assert violation.field_name == "ghost"


def test_field_declared_upstream_resolves(dangling_field_graph):
    dangling_field_graph.find_node("review").attributes["dataField"] = "processData.amount"
    assert validate_graph(dangling_field_graph).valid is True


def test_field_declared_downstream_does_not_resolve(linear_graph):
    linear_graph.find_node("review").attributes["inputField"] = "total"
    linear_graph.find_node("end").attributes["outputField"] = "total"
    report = validate_graph(linear_graph)
    assert report.first(ViolationKind.DANGLING_FIELD_REFERENCE).field_name == "total"


def test_field_reference_attributes_are_configurable(dangling_field_graph):
    settings = RepairSettings(field_reference_attributes=("formulaField",))
    assert GraphValidator(settings).validate(dangling_field_graph).valid is True


def test_unsafe_condition(linear_graph):
    linear_graph.connections[1].condition = "data.__proto__.admin == true"
    report = validate_graph(linear_graph)

    assert kinds(report) == ["unsafe_condition"]
    assert report.violations[0].connection_id == "c2"
    assert report.violations[0].token == "__proto__"


def test_single_path_gateway_is_only_a_warning():
    g = graph(
        [start(), gateway("gw"), end()],
        [conn("start", "gw"), conn("gw", "end", "only")],
    )
    report = validate_graph(g)
    assert report.valid is True
    assert kinds(report) == ["single_path_gateway"]
    assert report.warnings[0].severity == Severity.WARNING
    assert report.warnings[0].connection_id == "only"


def test_unconditioned_branch_warning(gateway_graph):
    report = validate_graph(gateway_graph)
    assert [(v.kind, v.connection_id) for v in report.warnings] == [("unconditioned_branch", "c3")]


def test_no_path_to_end_warning(cyclic_graph):
    # Without A → end the loop never leaves A/B
    cyclic_graph.connections = [c for c in cyclic_graph.connections if c.id != "c4"]
    report = validate_graph(cyclic_graph)
    assert report.first(ViolationKind.NO_PATH_TO_END).node_id == "start"


def test_every_violation_has_a_message(cyclic_graph):
    report = validate_graph(cyclic_graph)
    assert report.violations[0].message == "Circular path detected: A → B → A"
    assert report.violations[0].model_dump()["message"] == report.violations[0].message


def test_declared_fields_sources():
    n = node(
        "collect",
        processData=[{"key": "amount"}, "currency"],
        outputField="processData.total",
        declaredFields=["notes"],
    )
    assert declared_fields(n) == {"amount", "currency", "total", "notes"}


def test_normalize_field_name():
    assert normalize_field_name("processData.amount") == "amount"
    assert normalize_field_name(" amount ") == "amount"


def test_malformed_declarations_are_ignored():
    """Scalar or string declaration attributes declare nothing and never raise."""
    n = node("collect", processData=5, declaredFields="amount", outputField=7)
    assert declared_fields(n) == set()

    assert declared_fields(node("collect", processData="amount")) == set()
    assert declared_fields(node("collect", processData={"amount": {"type": "number"}})) == {"amount"}


def test_malformed_declarations_still_validate(linear_graph):
    linear_graph.find_node("start").attributes.update(processData=5, declaredFields="amount")
    linear_graph.find_node("review").attributes["dataField"] = "a"

    report = validate_graph(linear_graph)
    assert kinds(report) == ["dangling_field_reference"]
    assert report.violations[0].field_name == "a"
