"""
Validation and repair services for process graphs.
"""

from .graph_validator import GraphValidator, validate_graph
from .graph_repair import GraphRepair, RepairResult, default_strategies
from .repair_loop import RepairLoop, RepairOutcome, RepairRunResult

__all__ = [
    'GraphValidator', 'validate_graph',
    'GraphRepair', 'RepairResult', 'default_strategies',
    'RepairLoop', 'RepairOutcome', 'RepairRunResult',
]
