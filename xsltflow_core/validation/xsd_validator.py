"""
XSD Validator
=============

XML Schema compliance checking backed by ``lxml.etree.XMLSchema``.
"""

import re
from typing import Optional
import logging

from lxml import etree

from xsltflow_core.validation.base import BaseValidator, ValidationResult
from xsltflow_core.xml.utils import make_parser, to_xml_bytes, describe_syntax_error

logger = logging.getLogger(__name__)


class XSDValidator(BaseValidator):
    """
    Validator for XML documents against one compiled XSD.

    Example:
        validator = XSDValidator(schema_bytes, schema_name="invoice.xsd")
        result = validator.validate_bytes(xml_bytes, "invoice.xml")
        if not result.is_valid:
            print(result.summary())
    """

    def __init__(self, schema_content: bytes, schema_name: str = "schema.xsd"):
        """
        Compile the schema.

        Raises:
            etree.XMLSyntaxError: If the schema is not well-formed
            etree.XMLSchemaParseError: If the schema is not a valid XSD
        """
        self._schema_name = schema_name
        schema_doc = etree.fromstring(to_xml_bytes(schema_content), make_parser())
        self._schema = etree.XMLSchema(schema_doc)

    @property
    def schema_type(self) -> str:
        return "XSD"

    @property
    def schema_name(self) -> str:
        return self._schema_name

    def validate_bytes(self, content: bytes, file_context: str = "document") -> ValidationResult:
        result = ValidationResult()
        result.metadata['schema'] = self._schema_name

        try:
            tree = etree.fromstring(to_xml_bytes(content), make_parser())
        except etree.XMLSyntaxError as e:
            result.add_error(
                file=file_context,
                message=describe_syntax_error(e),
                error_type="XML Syntax Error",
                line=getattr(e, 'lineno', None),
            )
            return result

        if not self._schema.validate(tree):
            for error in self._schema.error_log:
                result.add_error(
                    file=file_context,
                    message=self._make_readable(str(error.message)),
                    error_type=self._categorize_error(str(error.message)),
                    line=error.line,
                    column=error.column,
                )

        return result

    def _categorize_error(self, message: str) -> str:
        """Categorize schema error based on message content."""
        message_lower = message.lower()

        if 'no matching global declaration' in message_lower:
            return 'Undeclared Root Element'
        elif 'this element is not expected' in message_lower or 'missing child' in message_lower:
            return 'Invalid Content Model'
        elif 'attribute' in message_lower and 'not allowed' in message_lower:
            return 'Invalid Attribute'
        elif 'attribute' in message_lower and 'required' in message_lower:
            return 'Missing Attribute'
        elif 'is not a valid value' in message_lower or 'facet' in message_lower:
            return 'Invalid Value'
        else:
            return 'Schema Validation Error'

    def _make_readable(self, message: str) -> str:
        """Strip the namespace noise libxml2 puts into element names."""
        return re.sub(r"\{[^}]*\}", "", message)


class SchemaValidator:
    """
    Schema compliance collaborator used by the job controller.

    ``check`` never raises for bad input: unparsable documents or schemas
    come back as an invalid result.
    """

    def check(self,
              document: bytes,
              schema: bytes,
              document_name: str = "document.xml",
              schema_name: str = "schema.xsd") -> ValidationResult:
        logger.info(f"Validating {document_name} against XSD {schema_name}")

        try:
            validator = XSDValidator(schema, schema_name=schema_name)
        except etree.XMLSyntaxError as e:
            return self._schema_error(schema_name, f"Schema is not well-formed: {describe_syntax_error(e)}")
        except etree.XMLSchemaParseError as e:
            return self._schema_error(schema_name, f"Invalid XSD schema: {e}")

        result = validator.validate_bytes(document, file_context=document_name)
        if result.is_valid:
            logger.info(f"XSD validation passed: {document_name}")
        else:
            logger.warning(f"XSD validation failed for {document_name}: {result.first_error()}")
        return result

    @staticmethod
    def _schema_error(schema_name: str, message: str) -> ValidationResult:
        result = ValidationResult()
        result.add_error(file=schema_name, message=message, error_type="Schema Error")
        logger.error(message)
        return result


def check_schema(document: bytes, schema: bytes, document_name: Optional[str] = None) -> ValidationResult:
    """Convenience wrapper around ``SchemaValidator().check``."""
    return SchemaValidator().check(document, schema, document_name=document_name or "document.xml")
