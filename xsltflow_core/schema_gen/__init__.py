"""
Schema Generation
=================

Starter XSD generation from sample documents and stylesheets.
"""

from xsltflow_core.schema_gen.xsd_generator import (
    ElementInfo,
    analyze_structure,
    generate_xsd_from_xml,
    generate_xsd_from_xsl,
)

__all__ = [
    "ElementInfo",
    "analyze_structure",
    "generate_xsd_from_xml",
    "generate_xsd_from_xsl",
]
