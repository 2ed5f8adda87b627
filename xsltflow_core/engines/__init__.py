"""
Transformation Engines
======================

Engine interface and the two lxml-backed implementations.
"""

from xsltflow_core.engines.base import (
    CompiledProgram,
    EngineOutput,
    TransformationEngine,
)

from xsltflow_core.engines.lxml_engine import (
    LxmlEngine,
    RestrictedLxmlEngine,
    ResourceResolver,
)

__all__ = [
    "CompiledProgram",
    "EngineOutput",
    "TransformationEngine",
    "LxmlEngine",
    "RestrictedLxmlEngine",
    "ResourceResolver",
]
