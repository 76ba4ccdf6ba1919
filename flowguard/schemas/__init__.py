"""
Canonical schemas: the process graph and the violations found in it.
"""

from .process_graph import ProcessGraph, ProcessNode, Connection, NodeKind, GatewayType
from .violations import Violation, ViolationKind, Severity, ValidationReport

__all__ = [
    'ProcessGraph', 'ProcessNode', 'Connection', 'NodeKind', 'GatewayType',
    'Violation', 'ViolationKind', 'Severity', 'ValidationReport',
]
