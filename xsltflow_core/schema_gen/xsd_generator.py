"""
XSD Generator
=============

Derives a starter XML Schema from a sample document or from a stylesheet.

From XML: every element name becomes either ``xs:string`` (leaf without
attributes) or a named complex type. Child elements are emitted as an
``xs:sequence`` when every sample instance lists them in one consistent
order, otherwise as an unbounded ``xs:choice``. Occurrence bounds, optional
attributes and mixed content are taken from what the sample shows, so the
generated schema accepts the document it was derived from.

From XSL: element and attribute names are collected from ``match`` and
``select`` expressions and listed under the root element guessed from the
first ``/name`` template. The result is a rough outline to edit by hand.

Example:
    xsd_text = generate_xsd_from_xml(xml_text)
    store.put("invoice.xsd", xsd_text.encode("utf-8"))
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union
import logging

from lxml import etree

from xsltflow_core.errors import SchemaGenerationError
from xsltflow_core.xml.utils import XSD_NAMESPACE, XSLT_NAMESPACE, local_name, namespace_of, parse_xml

logger = logging.getLogger(__name__)

XS = f"{{{XSD_NAMESPACE}}}"
DEFAULT_TARGET_NAMESPACE = "http://example.com/schema"

# Tokens in XPath expressions that are not element names
_XPATH_KEYWORDS = {
    "and", "or", "div", "mod",
    "text", "node", "comment", "processing-instruction",
    "position", "last", "count", "document",
}
_NAME_TOKEN = re.compile(r'(@?)(?:[A-Za-z_][\w.-]*:)?([A-Za-z_][\w.-]*)(?!\s*\()(?!\s*::)(?![\w.-])')
_ROOT_MATCH = re.compile(r'^/(?:[A-Za-z_][\w.-]*:)?([A-Za-z_][\w.-]*)')


@dataclass
class ElementInfo:
    """What the sample document shows about one element name."""
    name: str
    attributes: Dict[str, None] = field(default_factory=dict)
    instances: List[List[tuple]] = field(default_factory=list)
    has_text: bool = False

    @property
    def child_names(self) -> List[str]:
        names: Dict[str, None] = {}
        for runs in self.instances:
            for child, _ in runs:
                names.setdefault(child, None)
        return list(names)

    @property
    def has_children(self) -> bool:
        return any(self.instances)

    @property
    def is_complex(self) -> bool:
        return self.has_children or bool(self.attributes)


def _child_runs(element) -> List[tuple]:
    """Child element names with consecutive repeats collapsed: [(name, count)]."""
    runs: List[list] = []
    for child in element:
        if not isinstance(child.tag, str):
            continue
        name = local_name(child)
        if runs and runs[-1][0] == name:
            runs[-1][1] += 1
        else:
            runs.append([name, 1])
    return [tuple(r) for r in runs]


def _has_direct_text(element) -> bool:
    if element.text and element.text.strip():
        return True
    return any(child.tail and child.tail.strip() for child in element)


def analyze_structure(root) -> Dict[str, ElementInfo]:
    """Collect per-name structure information for every element under ``root``."""
    elements: Dict[str, ElementInfo] = {}
    for element in root.iter():
        if not isinstance(element.tag, str):
            continue
        name = local_name(element)
        info = elements.setdefault(name, ElementInfo(name=name))
        for attr in element.attrib:
            if not attr.startswith("{"):
                info.attributes.setdefault(attr, None)
        info.instances.append(_child_runs(element))
        if _has_direct_text(element):
            info.has_text = True
    return elements


def _sequence_order(info: ElementInfo) -> Optional[List[str]]:
    """A single child order consistent with every instance, or None."""
    order = info.child_names
    position = {name: i for i, name in enumerate(order)}
    for runs in info.instances:
        names = [name for name, _ in runs]
        if len(names) != len(set(names)):
            return None
        indexes = [position[name] for name in names]
        if indexes != sorted(indexes):
            return None
    return order


def _type_ref(name: str, prefix: Optional[str]) -> str:
    return f"{prefix}:{name}Type" if prefix else f"{name}Type"


def _element_type(name: str, elements: Dict[str, ElementInfo], prefix: Optional[str]) -> str:
    info = elements.get(name)
    if info is not None and info.is_complex:
        return _type_ref(name, prefix)
    return "xs:string"


def _add_attributes(parent, info: ElementInfo) -> None:
    for attr in info.attributes:
        etree.SubElement(parent, f"{XS}attribute", name=attr, type="xs:string", use="optional")


def _add_complex_type(schema, info: ElementInfo, elements: Dict[str, ElementInfo], prefix: Optional[str]) -> None:
    schema.append(etree.Comment(f" Complex type for {info.name} "))
    complex_type = etree.SubElement(schema, f"{XS}complexType", name=f"{info.name}Type")

    if not info.has_children:
        if info.has_text:
            extension = etree.SubElement(
                etree.SubElement(complex_type, f"{XS}simpleContent"),
                f"{XS}extension",
                base="xs:string",
            )
            _add_attributes(extension, info)
        else:
            _add_attributes(complex_type, info)
        return

    if info.has_text:
        complex_type.set("mixed", "true")

    order = _sequence_order(info)
    if order is not None:
        sequence = etree.SubElement(complex_type, f"{XS}sequence")
        for child in order:
            counts = [dict(runs).get(child, 0) for runs in info.instances]
            particle = etree.SubElement(
                sequence, f"{XS}element",
                name=child,
                type=_element_type(child, elements, prefix),
            )
            if min(counts) == 0:
                particle.set("minOccurs", "0")
            if max(counts) > 1:
                particle.set("maxOccurs", "unbounded")
    else:
        choice = etree.SubElement(complex_type, f"{XS}choice", minOccurs="0", maxOccurs="unbounded")
        for child in info.child_names:
            etree.SubElement(choice, f"{XS}element", name=child, type=_element_type(child, elements, prefix))

    _add_attributes(complex_type, info)


def _new_schema(target_namespace: Optional[str], prefix: Optional[str]):
    nsmap = {"xs": XSD_NAMESPACE}
    if target_namespace:
        nsmap[prefix] = target_namespace
    schema = etree.Element(f"{XS}schema", nsmap=nsmap)
    if target_namespace:
        schema.set("targetNamespace", target_namespace)
    schema.set("elementFormDefault", "qualified")
    return schema


def _serialize(schema) -> str:
    return etree.tostring(schema, pretty_print=True, xml_declaration=True, encoding="UTF-8").decode("utf-8")


def generate_xsd_from_xml(content: Union[str, bytes]) -> str:
    """
    Infer an XSD from a sample XML document.

    The target namespace is the root element's namespace (none if the
    root is not namespaced).

    Raises:
        SchemaGenerationError: If the document is not well-formed
    """
    try:
        root = parse_xml(content).getroot()
    except etree.XMLSyntaxError as e:
        raise SchemaGenerationError(f"Failed to generate XSD: {e}")

    target_namespace = namespace_of(root) or None
    prefix = None
    if target_namespace:
        prefix = next((p for p, uri in root.nsmap.items() if uri == target_namespace and p), "tns")

    elements = analyze_structure(root)
    root_name = local_name(root)
    logger.info(f"Generating XSD for root element '{root_name}' ({len(elements)} element names)")

    schema = _new_schema(target_namespace, prefix)
    schema.append(etree.Comment(" Root element "))
    etree.SubElement(schema, f"{XS}element", name=root_name, type=_element_type(root_name, elements, prefix))

    for info in elements.values():
        if info.is_complex:
            _add_complex_type(schema, info, elements, prefix)

    return _serialize(schema)


def _names_in_expression(expression: str, elements: Dict[str, None], attributes: Dict[str, None]) -> None:
    # String literals and variable references carry no structure
    expression = re.sub(r'"[^"]*"|\'[^\']*\'|\$[\w.:-]+', ' ', expression)
    for match in _NAME_TOKEN.finditer(expression):
        is_attribute, name = match.group(1), match.group(2)
        if name.lower() in _XPATH_KEYWORDS:
            continue
        if is_attribute:
            attributes.setdefault(name, None)
        else:
            elements.setdefault(name, None)


def generate_xsd_from_xsl(content: Union[str, bytes]) -> str:
    """
    Reverse-engineer an outline XSD from a stylesheet's match/select patterns.

    Raises:
        SchemaGenerationError: If the stylesheet is not well-formed
    """
    try:
        root = parse_xml(content).getroot()
    except etree.XMLSyntaxError as e:
        raise SchemaGenerationError(f"Failed to generate XSD from XSL: {e}")

    elements: Dict[str, None] = {}
    attributes: Dict[str, None] = {}
    root_name = None

    for node in root.iter():
        if not isinstance(node.tag, str) or namespace_of(node) != XSLT_NAMESPACE:
            continue
        match = node.get("match")
        if match:
            if root_name is None and local_name(node) == "template":
                found = _ROOT_MATCH.match(match.strip())
                if found:
                    root_name = found.group(1)
            _names_in_expression(match, elements, attributes)
        for attr in ("select", "test"):
            expression = node.get(attr)
            if expression:
                _names_in_expression(expression, elements, attributes)

    root_name = root_name or next(iter(elements), "root")
    prefix = "tns"
    logger.info(f"Generating XSD from stylesheet: root '{root_name}', {len(elements)} elements, "
                f"{len(attributes)} attributes")

    schema = _new_schema(DEFAULT_TARGET_NAMESPACE, prefix)
    schema.append(etree.Comment(" Schema reverse-engineered from XSL file "))
    etree.SubElement(schema, f"{XS}element", name=root_name, type=_type_ref(root_name, prefix))

    complex_type = etree.SubElement(schema, f"{XS}complexType", name=f"{root_name}Type")
    sequence = etree.SubElement(complex_type, f"{XS}sequence")
    for name in elements:
        if name != root_name:
            etree.SubElement(sequence, f"{XS}element", name=name, type="xs:string",
                             minOccurs="0", maxOccurs="unbounded")
    for name in attributes:
        etree.SubElement(complex_type, f"{XS}attribute", name=name, type="xs:string", use="optional")

    schema.append(etree.Comment(" Basic schema generated from XSL analysis; refine types and cardinalities "))
    return _serialize(schema)
