"""
XML Utilities
=============

lxml helpers for parsing, encoding and namespace handling.
"""

from xsltflow_core.xml.utils import (
    XSLT_NAMESPACE,
    XSD_NAMESPACE,
    local_name,
    namespace_of,
    to_xml_bytes,
    declared_encoding,
    decode_xml,
    make_parser,
    parse_xml,
    describe_syntax_error,
)

__all__ = [
    "XSLT_NAMESPACE",
    "XSD_NAMESPACE",
    "local_name",
    "namespace_of",
    "to_xml_bytes",
    "declared_encoding",
    "decode_xml",
    "make_parser",
    "parse_xml",
    "describe_syntax_error",
]
