"""
Bounded validate/repair loop: outcomes, caps and changelogs.
"""

from flowguard.config import RepairSettings, UnreachablePolicy
from flowguard.schemas.process_graph import NodeKind, ProcessGraph
from flowguard.schemas.violations import ViolationKind
from flowguard.services.graph_repair import GraphRepair
from flowguard.services.graph_validator import validate_graph
from flowguard.services.repair_loop import RepairLoop, RepairOutcome
from tests.graph_builders import node, conn, graph, start, end, connection_pairs


def test_valid_graph_succeeds_without_changes(linear_graph):
    result = RepairLoop().run(linear_graph)

    assert result.outcome == RepairOutcome.SUCCESS
    assert result.changelog == []
    assert result.iterations == 0
    assert result.validation_passes == 1
    assert result.graph == linear_graph
    assert result.graph is not linear_graph


def test_caller_graph_is_never_mutated(cyclic_graph):
    before = cyclic_graph.model_dump()
    RepairLoop().run(cyclic_graph)
    assert cyclic_graph.model_dump() == before


def test_cycle_is_repaired_then_dead_end_connected(cyclic_graph):
    result = RepairLoop().run(cyclic_graph)

    assert result.outcome == RepairOutcome.SUCCESS
    assert result.iterations == 2
    assert result.validation_passes == 3
    assert len(result.changelog) == 2
    assert result.changelog[0].startswith("Removed circular path A → B → A")
    assert connection_pairs(result.graph) == [
        ("start", "A"), ("A", "B"), ("A", "end"), ("B", "end")
    ]
    assert validate_graph(result.graph).valid is True


def test_single_iteration_breaks_cycle(cyclic_graph):
    result = RepairLoop().run(cyclic_graph, max_iterations=1)

    assert result.outcome == RepairOutcome.FAILURE
    assert result.iterations == 1
    assert result.validation_passes == 2
    assert ("B", "A") not in connection_pairs(result.graph)
    assert len(result.graph.nodes) == len(cyclic_graph.nodes)
    assert len(result.graph.connections) == len(cyclic_graph.connections) - 1
    assert [v.kind for v in result.residual_errors] == ["missing_outgoing"]
    assert result.residual_errors[0].node_id == "B"


def test_gateway_default_repair_succeeds_with_warning(gateway_graph):
    result = RepairLoop().run(gateway_graph)

    assert result.outcome == RepairOutcome.SUCCESS
    assert len(result.changelog) == 1
    assert result.graph.connections[1].is_default is True
    assert [v.kind for v in result.residual_warnings] == ["unconditioned_branch"]
    assert result.residual_errors == []


def test_dangling_field_reference_repaired(dangling_field_graph):
    result = RepairLoop().run(dangling_field_graph)
    assert result.outcome == RepairOutcome.SUCCESS
    assert result.graph.find_node("review").attributes["dataField"] is None


def test_unfixable_graph_fails_with_residuals():
    g = graph([node("task"), end()], [conn("task", "end")])
    result = RepairLoop().run(g)

    assert result.outcome == RepairOutcome.FAILURE
    assert result.iterations == 0
    assert result.validation_passes == 1
    assert result.changelog == []
    assert [v.kind for v in result.residual_errors] == ["missing_start"]


def test_empty_graph_fails():
    result = RepairLoop().run(ProcessGraph())
    assert result.outcome == RepairOutcome.FAILURE
    assert [v.kind for v in result.residual_errors] == ["empty_graph"]


def test_loop_is_bounded_by_cap():
    # A strategy that claims success without fixing anything
    repairer = GraphRepair(strategies={ViolationKind.MISSING_START: lambda g, v: (True, "pretend fix")})
    g = graph([node("task"), end()], [conn("task", "end")])

    result = RepairLoop(repairer=repairer).run(g)
    assert result.outcome == RepairOutcome.FAILURE
    assert result.iterations == 3
    assert result.validation_passes == 4
    assert result.changelog == ["pretend fix"] * 3


def test_cap_from_settings():
    repairer = GraphRepair(strategies={ViolationKind.MISSING_START: lambda g, v: (True, "pretend fix")})
    g = graph([node("task"), end()], [conn("task", "end")])

    result = RepairLoop(repairer=repairer, settings=RepairSettings(max_repair_iterations=5)).run(g)
    assert result.iterations == 5
    assert result.validation_passes == 6


def test_zero_iterations_only_validates(cyclic_graph):
    result = RepairLoop().run(cyclic_graph, max_iterations=0)
    assert result.outcome == RepairOutcome.FAILURE
    assert result.validation_passes == 1
    assert result.changelog == []
    assert result.graph == cyclic_graph


def test_unreachable_policy_keep_leaves_node(linear_graph):
    linear_graph.nodes.append(node("orphan"))
    linear_graph.connections.append(conn("orphan", "end", "c3"))
    settings = RepairSettings(unreachable_policy=UnreachablePolicy.KEEP)

    result = RepairLoop(settings=settings).run(linear_graph)
    assert result.outcome == RepairOutcome.FAILURE
    assert "orphan" in result.graph.node_ids()
    assert [v.kind for v in result.residual_errors] == ["unreachable_node"]


def test_unreachable_policy_connect(linear_graph):
    linear_graph.nodes.append(node("orphan"))
    linear_graph.connections.append(conn("orphan", "end", "c3"))
    settings = RepairSettings(unreachable_policy=UnreachablePolicy.CONNECT)

    result = RepairLoop(settings=settings).run(linear_graph)
    assert result.outcome == RepairOutcome.SUCCESS
    assert ("start", "orphan") in connection_pairs(result.graph)


def test_runs_are_deterministic(cyclic_graph):
    loop = RepairLoop()
    assert loop.run(cyclic_graph).model_dump() == loop.run(cyclic_graph).model_dump()


def test_malformed_declarations_do_not_break_the_loop():
    g = graph(
        [start(processData=5), node("task", declaredFields="x", inputField="amount"), end()],
        [conn("start", "task"), conn("task", "end")],
    )
    result = RepairLoop().run(g)

    assert result.outcome == RepairOutcome.SUCCESS
    assert result.graph.find_node("task").attributes["inputField"] is None


def test_duplicate_id_repair_detaches_and_drops_first_copy():
    g = graph(
        [start(), node("task"), node("task", NodeKind.SCRIPT_TASK), end()],
        [conn("start", "task"), conn("task", "end")],
    )
    result = RepairLoop().run(g)

    assert result.outcome == RepairOutcome.SUCCESS
    assert result.iterations == 2
    assert result.graph.node_ids() == ["start", "task_dup1", "end"]
    assert connection_pairs(result.graph) == [("start", "task_dup1"), ("task_dup1", "end")]
