"""
Validation Tests

Upload-time document checks and XSD schema compliance.

Run with: pytest tests/test_validation.py -v
"""

import threading
import time

import pytest

from xsltflow_core.storage import DocumentKind, ValidationStatus
from xsltflow_core.validation import (
    BaseValidator,
    DocumentValidationService,
    SchemaDocumentValidator,
    SchemaValidator,
    StylesheetValidator,
    ValidationResult,
    WellFormedValidator,
    XSDValidator,
    check_schema,
    validate_document,
)

from conftest import CATALOG_XML, CATALOG_XSD, CATALOG_XSL, INVOICE_XSD, put_text


class SlowValidator(BaseValidator):
    """Validator that takes ``delay`` seconds and always passes."""

    def __init__(self, delay: float):
        self.delay = delay
        self.finished = threading.Event()

    def validate_bytes(self, content, file_context="document"):
        time.sleep(self.delay)
        self.finished.set()
        return ValidationResult()


class TestDocumentValidators:
    """Tests for the per-kind document checks."""

    def test_well_formed(self):
        """Well-formed XML passes."""
        assert WellFormedValidator().validate_bytes(CATALOG_XML.encode()).is_valid

    def test_not_well_formed(self):
        """Syntax errors are reported with their type."""
        result = WellFormedValidator().validate_bytes(b"<a><b></a>", "broken.xml")
        assert not result.is_valid
        assert result.errors[0]['type'] == "XML Syntax Error"
        assert result.errors[0]['file'] == "broken.xml"

    def test_stylesheet_root(self):
        """A stylesheet needs an XSLT root element."""
        assert StylesheetValidator().validate_bytes(CATALOG_XSL.encode()).is_valid

        result = StylesheetValidator().validate_bytes(CATALOG_XML.encode())
        assert "missing xsl:stylesheet or xsl:transform" in result.first_error()

    def test_stylesheet_without_namespace(self):
        """An xsl-looking root outside the XSLT namespace is rejected."""
        result = StylesheetValidator().validate_bytes(b'<stylesheet version="1.0"/>')
        assert result.first_error() == "Missing XSLT namespace declaration"

    def test_simplified_stylesheet(self):
        """Literal result elements carrying xsl:version are accepted."""
        text = b'<html xsl:version="1.0" xmlns:xsl="http://www.w3.org/1999/XSL/Transform"/>'
        assert StylesheetValidator().validate_bytes(text).is_valid

    def test_schema_root(self):
        """A schema needs an xs:schema root in the XML Schema namespace."""
        assert SchemaDocumentValidator().validate_bytes(CATALOG_XSD.encode()).is_valid
        assert not SchemaDocumentValidator().validate_bytes(CATALOG_XML.encode()).is_valid


class TestDocumentValidationService:
    """Tests for background checks with a timeout."""

    def test_valid_document(self, store):
        """A passing check records valid."""
        handle = put_text(store, "catalog.xml", CATALOG_XML)
        service = DocumentValidationService(store, timeout_seconds=5)
        try:
            doc = service.schedule(handle).result(timeout=5)
        finally:
            service.shutdown(wait=True)

        assert doc.validation_status == ValidationStatus.VALID
        assert doc.validation_error is None
        assert store.get_document(handle).validated_at is not None

    def test_invalid_document(self, store):
        """A failing check records invalid with the error text."""
        handle = put_text(store, "broken.xsl", "<xsl:stylesheet")
        doc = validate_document(store, handle, timeout_seconds=5)
        assert doc.validation_status == ValidationStatus.INVALID
        assert doc.validation_error

    def test_timeout_marks_invalid_exactly_once(self, store):
        """A check outliving the timeout is recorded as a timeout, and only that."""
        slow = SlowValidator(delay=0.5)
        handle = put_text(store, "catalog.xml", CATALOG_XML)
        service = DocumentValidationService(
            store, timeout_seconds=0.05, validators={DocumentKind.SOURCE: slow})

        doc = service.schedule(handle).result(timeout=5)
        assert doc.validation_status == ValidationStatus.INVALID
        assert doc.validation_error == "Validation timeout after 0.05 seconds"

        assert slow.finished.wait(5)
        service.shutdown(wait=True)
        late = store.get_document(handle)
        assert late.validation_status == ValidationStatus.INVALID
        assert late.validation_error == service.timeout_message()

    def test_deleted_document(self, store):
        """A document deleted before its check runs resolves to None."""
        slow = SlowValidator(delay=0.2)
        handle = put_text(store, "catalog.xml", CATALOG_XML)
        service = DocumentValidationService(
            store, timeout_seconds=5, validators={DocumentKind.SOURCE: slow})
        try:
            future = service.schedule(handle)
            store.delete(handle)
            assert future.result(timeout=5) is None
        finally:
            service.shutdown(wait=True)

    def test_validate_now(self, store):
        """validate_now runs the check synchronously without recording it."""
        handle = put_text(store, "catalog.xsd", CATALOG_XSD)
        service = DocumentValidationService(store)
        try:
            assert service.validate_now(handle).is_valid
            assert store.get_document(handle).validation_status == ValidationStatus.PENDING
        finally:
            service.shutdown()


class TestSchemaValidator:
    """Tests for XSD compliance checking."""

    def test_compliant_document(self):
        """A matching document is valid."""
        result = SchemaValidator().check(CATALOG_XML.encode(), CATALOG_XSD.encode())
        assert result.is_valid

    def test_noncompliant_document(self):
        """A mismatched root is reported as undeclared."""
        result = SchemaValidator().check(CATALOG_XML.encode(), INVOICE_XSD.encode(), "catalog.xml")
        assert not result.is_valid
        assert result.errors[0]['type'] == "Undeclared Root Element"
        assert result.errors[0]['file'] == "catalog.xml"

    def test_missing_attribute(self):
        """Missing required attributes are categorized."""
        document = b"<catalog><book><title>x</title></book></catalog>"
        result = XSDValidator(CATALOG_XSD.encode()).validate_bytes(document)
        assert result.get_errors_by_type() == {"Missing Attribute": 1}

    def test_broken_schema_never_raises(self):
        """Unparsable or invalid schemas come back as an invalid result."""
        result = SchemaValidator().check(CATALOG_XML.encode(), b"<xs:schema", schema_name="bad.xsd")
        assert not result.is_valid
        assert result.first_error().startswith("Schema is not well-formed")

        result = SchemaValidator().check(CATALOG_XML.encode(), CATALOG_XML.encode())
        assert result.first_error().startswith("Invalid XSD schema")

    def test_malformed_document(self):
        """A malformed document is a syntax error, not an exception."""
        result = check_schema(b"<catalog>", CATALOG_XSD.encode())
        assert result.errors[0]['type'] == "XML Syntax Error"

    def test_summary(self):
        """Summaries report the outcome and counts."""
        assert ValidationResult().summary() == "Validation PASSED - No errors found"
        result = check_schema(CATALOG_XML.encode(), INVOICE_XSD.encode())
        assert result.summary().startswith("Validation FAILED - 1 error(s)")


@pytest.mark.parametrize("validator,text,valid", [
    (WellFormedValidator(), "<a/>", True),
    (StylesheetValidator(), "<a/>", False),
    (SchemaDocumentValidator(), "<a/>", False),
])
def test_validator_matrix(validator, text, valid):
    """Each validator applies its own root constraint."""
    assert validator.validate_bytes(text.encode()).is_valid is valid
