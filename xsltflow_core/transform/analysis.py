"""
Stylesheet Analysis
===================

Structural summary of a stylesheet, used for debugging output and the
document analysis endpoint.
"""

from dataclasses import dataclass, field, asdict
from typing import List, Optional, Union
import logging

from lxml import etree

from xsltflow_core.xml.utils import XSLT_NAMESPACE, parse_xml

logger = logging.getLogger(__name__)

NSMAP = {"xsl": XSLT_NAMESPACE}


@dataclass
class StylesheetInfo:
    """Counts and metadata for one stylesheet."""
    templates: int = 0
    named_templates: int = 0
    variables: int = 0
    parameters: int = 0
    includes: int = 0
    keys: int = 0
    size: int = 0
    version: str = "unknown"
    output_method: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def analyze_stylesheet(content: Union[str, bytes]) -> Optional[StylesheetInfo]:
    """
    Count templates, variables and include/import directives.

    Returns None when the stylesheet cannot be parsed.
    """
    try:
        tree = parse_xml(content)
    except etree.XMLSyntaxError as e:
        logger.error(f"Stylesheet analysis failed: {e}")
        return None

    root = tree.getroot()
    templates = root.xpath("//xsl:template", namespaces=NSMAP)
    dependencies = root.xpath("//xsl:include/@href | //xsl:import/@href", namespaces=NSMAP)
    outputs = root.xpath("//xsl:output/@method", namespaces=NSMAP)

    info = StylesheetInfo(
        templates=len(templates),
        named_templates=sum(1 for t in templates if t.get("name")),
        variables=len(root.xpath("//xsl:variable", namespaces=NSMAP)),
        parameters=len(root.xpath("//xsl:param", namespaces=NSMAP)),
        includes=len(root.xpath("//xsl:include | //xsl:import", namespaces=NSMAP)),
        keys=len(root.xpath("//xsl:key", namespaces=NSMAP)),
        size=len(content),
        version=root.get("version") or root.get(f"{{{XSLT_NAMESPACE}}}version") or "unknown",
        output_method=str(outputs[0]) if outputs else None,
        dependencies=[str(href) for href in dependencies],
    )
    logger.debug(f"Stylesheet analysis: {info}")
    return info
