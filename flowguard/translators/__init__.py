"""
Deterministic Translator Layer

Converts generator payloads to the canonical ProcessGraph schema and back.
"""

from .graph_translator import (
    GraphTranslator, GraphTranslationError, graph_from_payload, graph_to_payload
)

__all__ = ['GraphTranslator', 'GraphTranslationError', 'graph_from_payload', 'graph_to_payload']
