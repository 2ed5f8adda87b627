"""
Shared fixtures and sample documents for the pipeline tests.
"""

import time
from typing import Any, Dict, List, Optional

import pytest

from xsltflow_core.config.settings import PipelineConfig
from xsltflow_core.engines.base import CompiledProgram, EngineOutput, TransformationEngine
from xsltflow_core.errors import CompilationFailure, ExecutionFailure, PipelineError, ValidationFailure
from xsltflow_core.storage import InMemoryDocumentStore


CATALOG_XML = """<?xml version="1.0" encoding="UTF-8"?>
<catalog>
  <book id="1"><title>XSLT Basics</title></book>
  <book id="2"><title>XPath in Depth</title></book>
</catalog>
"""

CATALOG_XSL = """<?xml version="1.0" encoding="UTF-8"?>
<xsl:stylesheet version="1.0" xmlns:xsl="http://www.w3.org/1999/XSL/Transform">
  <xsl:output method="html" indent="yes"/>
  <xsl:template match="/">
    <html>
      <body>
        <ul>
          <xsl:for-each select="catalog/book">
            <li><xsl:value-of select="title"/></li>
          </xsl:for-each>
        </ul>
      </body>
    </html>
  </xsl:template>
</xsl:stylesheet>
"""

INCLUDING_XSL = """<?xml version="1.0" encoding="UTF-8"?>
<xsl:stylesheet version="1.0" xmlns:xsl="http://www.w3.org/1999/XSL/Transform">
  <xsl:include href="common.xsl"/>
  <xsl:output method="xml"/>
  <xsl:template match="/">
    <titles><xsl:call-template name="list-titles"/></titles>
  </xsl:template>
</xsl:stylesheet>
"""

COMMON_XSL = """<?xml version="1.0" encoding="UTF-8"?>
<xsl:stylesheet version="1.0" xmlns:xsl="http://www.w3.org/1999/XSL/Transform">
  <xsl:template name="list-titles">
    <xsl:for-each select="//title">
      <t>&nbsp;<xsl:value-of select="."/></t>
    </xsl:for-each>
  </xsl:template>
</xsl:stylesheet>
"""

MISSING_INCLUDE_XSL = """<?xml version="1.0" encoding="UTF-8"?>
<xsl:stylesheet version="1.0" xmlns:xsl="http://www.w3.org/1999/XSL/Transform">
  <xsl:include href="Missing.xsl"/>
  <xsl:template match="/"><out/></xsl:template>
</xsl:stylesheet>
"""

KEY_XSL = """<?xml version="1.0" encoding="UTF-8"?>
<xsl:stylesheet version="1.0" xmlns:xsl="http://www.w3.org/1999/XSL/Transform">
  <xsl:key name="by-id" match="book" use="@id"/>
  <xsl:output method="html"/>
  <xsl:template match="/">
    <result count="{count(//book)}">
      <xsl:value-of select="key('by-id', '1')"/>
      <xsl:value-of select="count(//book)"/>
    </result>
  </xsl:template>
</xsl:stylesheet>
"""

CATALOG_XSD = """<?xml version="1.0" encoding="UTF-8"?>
<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema">
  <xs:element name="catalog">
    <xs:complexType>
      <xs:sequence>
        <xs:element name="book" maxOccurs="unbounded">
          <xs:complexType>
            <xs:sequence>
              <xs:element name="title" type="xs:string"/>
            </xs:sequence>
            <xs:attribute name="id" type="xs:string" use="required"/>
          </xs:complexType>
        </xs:element>
      </xs:sequence>
    </xs:complexType>
  </xs:element>
</xs:schema>
"""

INVOICE_XSD = """<?xml version="1.0" encoding="UTF-8"?>
<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema">
  <xs:element name="invoice" type="xs:string"/>
</xs:schema>
"""

LATIN1_XML = """<?xml version="1.0" encoding="ISO-8859-1"?>
<menu><dish>Crème brûlée</dish><dish>café</dish></menu>
"""

LATIN1_XSL = """<?xml version="1.0" encoding="ISO-8859-1"?>
<xsl:stylesheet version="1.0" xmlns:xsl="http://www.w3.org/1999/XSL/Transform">
  <xsl:output method="xml" encoding="UTF-8"/>
  <xsl:template match="/">
    <carte titre="Déjà vu"><xsl:copy-of select="menu/dish"/></carte>
  </xsl:template>
</xsl:stylesheet>
"""


def document_xsl(path: str) -> str:
    """Stylesheet copying the document at ``path`` into its output."""
    return f"""<xsl:stylesheet version="1.0" xmlns:xsl="http://www.w3.org/1999/XSL/Transform">
  <xsl:template match="/"><out><xsl:copy-of select="document('{path}')"/></out></xsl:template>
</xsl:stylesheet>"""


class FakeEngine(TransformationEngine):
    """
    Scriptable engine for executor and controller tests.

    ``fail_on`` names the step that raises ("load", "compile" or "run").
    """

    def __init__(self,
                 name: str = "fake",
                 fail_on: Optional[str] = None,
                 error: Optional[PipelineError] = None,
                 output: bytes = b"<out/>",
                 media_type: str = "xml",
                 delay: float = 0.0):
        self.name = name
        self.fail_on = fail_on
        self.error = error
        self.output = output
        self.media_type = media_type
        self.delay = delay
        self.calls: List[str] = []
        self.compiled_text: Optional[str] = None
        self.resources: Optional[Dict[str, str]] = None

    def _maybe_fail(self, step: str, default: PipelineError) -> None:
        if self.fail_on == step:
            raise self.error or default

    def load_document(self, text: str) -> Any:
        self.calls.append("load")
        self._maybe_fail("load", ValidationFailure(f"{self.name}: cannot load source"))
        return text

    def compile(self, stylesheet_text: str, resources: Optional[Dict[str, str]] = None) -> CompiledProgram:
        self.calls.append("compile")
        self.compiled_text = stylesheet_text
        self.resources = resources
        self._maybe_fail("compile", CompilationFailure(f"{self.name}: cannot compile"))
        return CompiledProgram(engine=self.name, handle=stylesheet_text)

    def run(self, program: CompiledProgram, source: Any) -> EngineOutput:
        self.calls.append("run")
        if self.delay:
            time.sleep(self.delay)
        self._maybe_fail("run", ExecutionFailure(f"{self.name}: run failed"))
        return EngineOutput(content=self.output, media_type=self.media_type)


@pytest.fixture
def store():
    """Fresh in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def config():
    """Small, fast pipeline configuration."""
    config = PipelineConfig()
    config.jobs.max_workers = 2
    config.validation.max_workers = 2
    return config


def put_text(store, name: str, text: str) -> str:
    """Store a text document and return its handle."""
    return store.put(name, text.encode("utf-8"))
