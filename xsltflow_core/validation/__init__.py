"""
Validation Framework
====================

Validation interfaces and implementations:

- BaseValidator / ValidationResult: shared result container and ABC
- XSDValidator / SchemaValidator: XML Schema compliance (lxml XMLSchema)
- Document checks: upload-time well-formedness and root-element checks,
  run in the background with a timeout by DocumentValidationService
"""

from xsltflow_core.validation.base import (
    BaseValidator,
    ValidationResult,
)

from xsltflow_core.validation.xsd_validator import (
    XSDValidator,
    SchemaValidator,
    check_schema,
)

from xsltflow_core.validation.document_checks import (
    WellFormedValidator,
    StylesheetValidator,
    SchemaDocumentValidator,
    DocumentValidationService,
    validate_document,
)

__all__ = [
    # Base classes
    "BaseValidator",
    "ValidationResult",
    # Schema compliance
    "XSDValidator",
    "SchemaValidator",
    "check_schema",
    # Document checks
    "WellFormedValidator",
    "StylesheetValidator",
    "SchemaDocumentValidator",
    "DocumentValidationService",
    "validate_document",
]
