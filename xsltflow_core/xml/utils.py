"""
XML Utility Functions
=====================

Small lxml helpers shared by the engines, validators and schema generator.
"""

import codecs
import re
from typing import Any, Optional, Union
import logging

from lxml import etree

logger = logging.getLogger(__name__)

XSLT_NAMESPACE = "http://www.w3.org/1999/XSL/Transform"
XSD_NAMESPACE = "http://www.w3.org/2001/XMLSchema"

_ENCODING_DECL = re.compile(
    r'^(\s*<\?xml[^>]*?encoding\s*=\s*)(["\'])[^"\']*\2',
    re.IGNORECASE,
)

_DECLARED_ENCODING = re.compile(
    rb'^\s*<\?xml[^>]*?encoding\s*=\s*["\']([A-Za-z][A-Za-z0-9._-]*)["\']',
    re.IGNORECASE,
)

# UTF-32 marks first: BOM_UTF32_LE starts with BOM_UTF16_LE
_BYTE_ORDER_MARKS = (
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF32_LE, "utf-32"),
    (codecs.BOM_UTF32_BE, "utf-32"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)


def local_name(element: Any) -> str:
    """
    Extract local name from element tag, stripping any namespace prefix.

    Example:
        >>> elem = etree.Element("{http://www.w3.org/1999/XSL/Transform}template")
        >>> local_name(elem)
        'template'
    """
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def namespace_of(element: Any) -> str:
    """Return the namespace URI of an element tag ('' if none)."""
    tag = element.tag
    if isinstance(tag, str) and tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return ""


def to_xml_bytes(content: Union[str, bytes]) -> bytes:
    """
    Encode XML text for lxml.

    lxml refuses unicode strings that carry an encoding declaration, so text
    is encoded as UTF-8 and the declaration rewritten to match.
    """
    if isinstance(content, bytes):
        return content
    content = _ENCODING_DECL.sub(r'\1\2UTF-8\2', content, count=1)
    return content.encode("utf-8")


def declared_encoding(content: bytes) -> Optional[str]:
    """Encoding named in the XML declaration, if any."""
    match = _DECLARED_ENCODING.match(content[:1024])
    return match.group(1).decode("ascii") if match else None


def decode_xml(content: Union[str, bytes]) -> str:
    """
    Decode XML bytes the way an XML parser would: byte order mark first,
    then the encoding declaration, UTF-8 otherwise.

    Raises:
        UnicodeDecodeError: If the bytes do not match the detected encoding
    """
    if isinstance(content, str):
        return content
    for mark, codec in _BYTE_ORDER_MARKS:
        if content.startswith(mark):
            return content.decode(codec)

    encoding = declared_encoding(content) or "utf-8"
    try:
        codecs.lookup(encoding)
    except LookupError:
        logger.warning(f"Unknown declared encoding {encoding!r}, decoding as UTF-8")
        encoding = "utf-8"
    return content.decode(encoding)


def make_parser(recover: bool = False) -> 'etree.XMLParser':
    """Parser with external entity and network access disabled."""
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        recover=recover,
        huge_tree=False,
    )


def parse_xml(content: Union[str, bytes], recover: bool = False) -> 'etree._ElementTree':
    """
    Parse XML content into an ElementTree.

    Raises:
        etree.XMLSyntaxError: If the content is not well-formed
    """
    root = etree.fromstring(to_xml_bytes(content), make_parser(recover=recover))
    if root is None:
        raise etree.XMLSyntaxError("Document is empty", None, 0, 0)
    return etree.ElementTree(root)


def describe_syntax_error(error: Exception) -> str:
    """One-line message for an lxml parse error."""
    message = str(error).strip() or error.__class__.__name__
    line = getattr(error, "lineno", None)
    if line and f"line {line}" not in message:
        return f"{message} (line {line})"
    return message
