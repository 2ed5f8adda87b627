"""
lxml XSLT Engines
=================

Two libxslt-backed engines with different capability profiles:

- ``LxmlEngine`` (primary): XSLT 1.0 + EXSLT, ``xsl:include``/``xsl:import``
  served only from an in-memory resource map through an ``etree.Resolver``,
  no local file or network reads from ``document()`` unless enabled,
  output serialized per ``xsl:output``.
- ``RestrictedLxmlEngine`` (fallback): deny-all access control, no
  resolvers, a recovering parser for the source and XML-only
  serialization. Meant to run stylesheets that went through the normalizer.

Example:
    engine = LxmlEngine()
    source = engine.load_document(xml_text)
    program = engine.compile(xsl_text, resources={"common.xsl": common_text})
    output = engine.run(program, source)
"""

from typing import Any, Dict, List, Optional, Union
import logging

from lxml import etree

from xsltflow_core.dependencies.matchers import basename
from xsltflow_core.engines.base import CompiledProgram, EngineOutput, TransformationEngine
from xsltflow_core.errors import CompilationFailure, ExecutionFailure, ValidationFailure
from xsltflow_core.xml.utils import (
    XSLT_NAMESPACE,
    describe_syntax_error,
    local_name,
    make_parser,
    namespace_of,
    parse_xml,
    to_xml_bytes,
)

logger = logging.getLogger(__name__)

STYLESHEET_BASE_URL = "stylesheet.xsl"


def _log_messages(error_log) -> List[str]:
    """Flatten an lxml error log into message strings."""
    messages = []
    for entry in error_log or ():
        message = entry.message.strip() if entry.message else ""
        if not message:
            continue
        if entry.line:
            message = f"{message} (line {entry.line})"
        messages.append(message)
    return messages


def _failure_detail(prefix: str, error: Exception, error_log=None) -> str:
    messages = _log_messages(error_log)
    detail = str(error).strip() or error.__class__.__name__
    if messages and detail not in messages:
        messages.insert(0, detail)
    return f"{prefix}: {'; '.join(messages) if messages else detail}"


def _declared_output_method(xslt_doc) -> Optional[str]:
    root = xslt_doc.getroot() if hasattr(xslt_doc, 'getroot') else xslt_doc
    for output in root.iterfind(f"{{{XSLT_NAMESPACE}}}output"):
        method = output.get("method")
        if method:
            return method.strip().lower()
    return None


class ResourceResolver(etree.Resolver):
    """
    Serves included/imported stylesheets from a ``{reference: text}`` map.

    Anything else resolves to an empty document, so the default loader never
    reaches the local filesystem.
    """

    def __init__(self, resources: Dict[str, str]):
        super().__init__()
        self.resources = dict(resources)

    def resolve(self, url, pubid, context):
        if not url:
            return None
        for key in (url, basename(url)):
            content = self.resources.get(key)
            if content is not None:
                logger.debug(f"Resolved stylesheet resource: {url}")
                return self.resolve_string(to_xml_bytes(content), context)
        logger.warning(f"Refusing to load stylesheet resource outside the resource map: {url}")
        return self.resolve_empty(context)


class LxmlEngine(TransformationEngine):
    """Full-capability engine backed by lxml/libxslt."""

    name = "primary"

    def __init__(self, read_files: bool = False):
        self.access_control = etree.XSLTAccessControl(
            read_file=read_files,
            write_file=False,
            create_dir=False,
            read_network=False,
            write_network=False,
        )

    def load_document(self, content: Union[str, bytes]) -> Any:
        try:
            return parse_xml(content)
        except etree.XMLSyntaxError as e:
            raise ValidationFailure(f"Invalid XML file: {describe_syntax_error(e)}")

    def _stylesheet_parser(self, resources: Dict[str, str]) -> 'etree.XMLParser':
        parser = make_parser(recover=False)
        parser.resolvers.add(ResourceResolver(resources))
        return parser

    def _build_transform(self, xslt_doc) -> 'etree.XSLT':
        return etree.XSLT(xslt_doc, access_control=self.access_control)

    def compile(self, stylesheet_text: str, resources: Optional[Dict[str, str]] = None) -> CompiledProgram:
        parser = self._stylesheet_parser(resources or {})
        try:
            root = etree.fromstring(to_xml_bytes(stylesheet_text), parser, base_url=STYLESHEET_BASE_URL)
        except etree.XMLSyntaxError as e:
            raise CompilationFailure(f"Invalid XSL file: {describe_syntax_error(e)}")
        if root is None:
            raise CompilationFailure("Invalid XSL file: document is empty")

        xslt_doc = etree.ElementTree(root)
        try:
            transform = self._build_transform(xslt_doc)
        except etree.XSLTParseError as e:
            raise CompilationFailure(_failure_detail("Stylesheet compilation failed", e, e.error_log))
        except etree.XSLTError as e:
            raise CompilationFailure(_failure_detail("Stylesheet compilation failed", e))

        warnings = _log_messages(transform.error_log)
        logger.info(f"[{self.name}] XSLT stylesheet compiled successfully")
        return CompiledProgram(
            engine=self.name,
            handle=transform,
            output_method=_declared_output_method(xslt_doc),
            warnings=warnings,
        )

    def _media_type(self, program: CompiledProgram, result) -> str:
        if program.output_method in ("html", "xml", "text"):
            return "xml" if program.output_method == "text" else program.output_method
        root = result.getroot()
        if root is not None and not namespace_of(root) and local_name(root).lower() == "html":
            return "html"
        return "xml"

    def _serialize(self, program: CompiledProgram, result) -> EngineOutput:
        content = bytes(result)
        return EngineOutput(content=content, media_type=self._media_type(program, result))

    def run(self, program: CompiledProgram, source: Any) -> EngineOutput:
        transform = program.handle
        logger.info(f"[{self.name}] Applying XSLT transformation...")
        try:
            result = transform(source)
        except etree.XSLTApplyError as e:
            raise ExecutionFailure(_failure_detail("Transformation failed", e, transform.error_log))
        except etree.XSLTError as e:
            raise ExecutionFailure(_failure_detail("Transformation failed", e))

        output = self._serialize(program, result)
        if not output.content.strip():
            raise ExecutionFailure("Transformation produced no output")

        output.warnings = program.warnings + _log_messages(transform.error_log)
        if output.warnings:
            logger.warning(f"[{self.name}] XSLT transformation completed with warnings:")
            for message in output.warnings:
                logger.warning(f"  {message}")

        logger.info(f"[{self.name}] XSLT transformation completed successfully ({output.size} bytes)")
        return output


class RestrictedLxmlEngine(LxmlEngine):
    """
    Reduced-capability engine.

    No file or network access from the stylesheet, no include resolution,
    lenient source parsing and XML-only output.
    """

    name = "fallback"

    def __init__(self):
        super().__init__(read_files=False)
        self.access_control = etree.XSLTAccessControl.DENY_ALL

    def load_document(self, content: Union[str, bytes]) -> Any:
        try:
            return parse_xml(content, recover=True)
        except etree.XMLSyntaxError as e:
            raise ValidationFailure(f"Invalid XML file: {describe_syntax_error(e)}")

    def _stylesheet_parser(self, resources: Dict[str, str]) -> 'etree.XMLParser':
        if resources:
            logger.debug(f"[{self.name}] Ignoring {len(resources)} stylesheet resource(s)")
        return make_parser(recover=False)

    def _serialize(self, program: CompiledProgram, result) -> EngineOutput:
        root = result.getroot()
        if root is None:
            raise ExecutionFailure("Transformation produced no output")
        content = etree.tostring(root, encoding="UTF-8", xml_declaration=True, method="xml")
        return EngineOutput(content=content, media_type="xml")
