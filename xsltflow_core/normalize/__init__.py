"""
Stylesheet Normalization
========================

Lossy rewrites applied before the fallback engine compiles a stylesheet.
"""

from xsltflow_core.normalize.normalizer import (
    NormalizationResult,
    StylesheetNormalizer,
    UNSUPPORTED_ELEMENTS,
    RULES,
    fix_html_entities,
    has_top_level_union,
    normalize,
    normalize_with_report,
)

__all__ = [
    "NormalizationResult",
    "StylesheetNormalizer",
    "UNSUPPORTED_ELEMENTS",
    "RULES",
    "fix_html_entities",
    "has_top_level_union",
    "normalize",
    "normalize_with_report",
]
