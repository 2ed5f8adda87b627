"""
Transformation Framework
========================

Primary/fallback execution of XSLT stylesheets.

Components:
- TransformationExecutor: runs the primary engine, falls back on failure
- TransformResult: outcome of one execution
- analyze_stylesheet: structural summary of a stylesheet
"""

from xsltflow_core.transform.executor import (
    DEGRADED_NOTICE,
    OutputSink,
    TransformationExecutor,
    TransformResult,
)

from xsltflow_core.transform.analysis import (
    StylesheetInfo,
    analyze_stylesheet,
)

__all__ = [
    "DEGRADED_NOTICE",
    "OutputSink",
    "TransformationExecutor",
    "TransformResult",
    "StylesheetInfo",
    "analyze_stylesheet",
]
