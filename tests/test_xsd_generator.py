"""
XSD Generator Tests

Run with: pytest tests/test_xsd_generator.py -v
"""

import pytest
from lxml import etree

from xsltflow_core.errors import SchemaGenerationError
from xsltflow_core.schema_gen import generate_xsd_from_xml, generate_xsd_from_xsl
from xsltflow_core.validation import check_schema

from conftest import CATALOG_XML, CATALOG_XSL

XS = "{http://www.w3.org/2001/XMLSchema}"

IRREGULAR_XML = """<order>
  <item sku="a1">Pen</item>
  <note>fragile</note>
  <item sku="b2" gift="yes">Ink</item>
  <para>Ship <b>fast</b> please</para>
</order>"""

NAMESPACED_XML = """<inv:invoice xmlns:inv="urn:example:invoice">
  <inv:line qty="2"/>
  <inv:total>9.50</inv:total>
</inv:invoice>"""


def parse_schema(text: str):
    return etree.fromstring(text.encode("utf-8"))


class TestFromXml:
    """Tests for schema inference from sample documents."""

    @pytest.mark.parametrize("sample", [CATALOG_XML, IRREGULAR_XML, NAMESPACED_XML])
    def test_generated_schema_accepts_its_sample(self, sample):
        """The inferred schema validates the document it came from."""
        xsd = generate_xsd_from_xml(sample)
        assert check_schema(sample.encode("utf-8"), xsd.encode("utf-8")).is_valid

    def test_repeated_children_are_unbounded(self):
        """Repeated children in a consistent order become an unbounded sequence."""
        schema = parse_schema(generate_xsd_from_xml(CATALOG_XML))
        catalog_type = schema.find(f"{XS}complexType[@name='catalogType']")
        book = catalog_type.find(f"{XS}sequence/{XS}element[@name='book']")
        assert book.get("maxOccurs") == "unbounded"
        assert book.get("type") == "bookType"

    def test_attributes_are_optional_strings(self):
        """Attributes seen in the sample are declared optional."""
        schema = parse_schema(generate_xsd_from_xml(CATALOG_XML))
        attribute = schema.find(f"{XS}complexType[@name='bookType']/{XS}attribute")
        assert attribute.get("name") == "id"
        assert attribute.get("use") == "optional"

    def test_interleaved_children_use_choice(self):
        """Children without a single consistent order become a choice."""
        schema = parse_schema(generate_xsd_from_xml(IRREGULAR_XML))
        order_type = schema.find(f"{XS}complexType[@name='orderType']")
        assert order_type.find(f"{XS}choice") is not None
        assert order_type.find(f"{XS}sequence") is None

    def test_text_with_attributes_uses_simple_content(self):
        """Leaf text with attributes becomes a simpleContent extension."""
        schema = parse_schema(generate_xsd_from_xml(IRREGULAR_XML))
        item_type = schema.find(f"{XS}complexType[@name='itemType']")
        extension = item_type.find(f"{XS}simpleContent/{XS}extension")
        assert extension.get("base") == "xs:string"
        assert {a.get("name") for a in extension} == {"sku", "gift"}

    def test_mixed_content(self):
        """Text interleaved with elements marks the type mixed."""
        schema = parse_schema(generate_xsd_from_xml(IRREGULAR_XML))
        assert schema.find(f"{XS}complexType[@name='paraType']").get("mixed") == "true"

    def test_target_namespace_follows_root(self):
        """A namespaced root sets the target namespace and prefix."""
        schema = parse_schema(generate_xsd_from_xml(NAMESPACED_XML))
        assert schema.get("targetNamespace") == "urn:example:invoice"
        assert schema.find(f"{XS}element").get("type") == "inv:invoiceType"

    def test_unnamespaced_root_has_no_target_namespace(self):
        """Un-namespaced samples produce a schema without a target namespace."""
        schema = parse_schema(generate_xsd_from_xml(CATALOG_XML))
        assert schema.get("targetNamespace") is None

    def test_malformed_input(self):
        """Malformed XML raises SchemaGenerationError."""
        with pytest.raises(SchemaGenerationError) as exc:
            generate_xsd_from_xml("<order><item></order>")
        assert str(exc.value).startswith("Failed to generate XSD")


class TestFromXsl:
    """Tests for outline schemas reverse-engineered from stylesheets."""

    def test_outline_schema(self):
        """Names from select expressions appear under the guessed root."""
        xsd = generate_xsd_from_xsl(CATALOG_XSL)
        schema = parse_schema(xsd)

        assert schema.get("targetNamespace") == "http://example.com/schema"
        assert schema.find(f"{XS}element").get("name") == "catalog"
        names = [e.get("name") for e in schema.iter(f"{XS}element")]
        assert "book" in names
        assert "title" in names
        etree.XMLSchema(schema)

    def test_root_from_template_match(self):
        """A /name template match decides the root element."""
        xsl = """<xsl:stylesheet version="1.0" xmlns:xsl="http://www.w3.org/1999/XSL/Transform">
          <xsl:template match="/invoice"><xsl:value-of select="@number"/></xsl:template>
          <xsl:template match="line"><xsl:if test="count(item) > 0">x</xsl:if></xsl:template>
        </xsl:stylesheet>"""
        schema = parse_schema(generate_xsd_from_xsl(xsl))
        assert schema.find(f"{XS}element").get("name") == "invoice"
        names = {e.get("name") for e in schema.iter(f"{XS}element")}
        assert {"line", "item"} <= names
        assert "count" not in names
        assert schema.find(f"{XS}complexType/{XS}attribute").get("name") == "number"

    def test_malformed_stylesheet(self):
        """Malformed stylesheets raise SchemaGenerationError."""
        with pytest.raises(SchemaGenerationError):
            generate_xsd_from_xsl("<xsl:stylesheet")
