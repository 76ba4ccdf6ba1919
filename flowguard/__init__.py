"""
flowguard

Makes machine-generated process graphs structurally trustworthy:
extract the payload from generated text, validate the graph, and repair it
within a bounded number of passes.
"""

from flowguard.config import RepairSettings, UnreachablePolicy
from flowguard.schemas import ProcessGraph, ProcessNode, Connection, NodeKind, ValidationReport
from flowguard.services import GraphValidator, GraphRepair, RepairLoop, RepairOutcome, RepairRunResult
from flowguard.translators import graph_from_payload, graph_to_payload
from flowguard.utils import ExtractionError, ExtractionResult, extract, try_extract

__version__ = "1.0.0"

__all__ = [
    'RepairSettings', 'UnreachablePolicy',
    'ProcessGraph', 'ProcessNode', 'Connection', 'NodeKind', 'ValidationReport',
    'GraphValidator', 'GraphRepair', 'RepairLoop', 'RepairOutcome', 'RepairRunResult',
    'graph_from_payload', 'graph_to_payload',
    'ExtractionError', 'ExtractionResult', 'extract', 'try_extract',
]
