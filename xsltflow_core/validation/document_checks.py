"""
Document Checks
===============

Upload-time checks for source, stylesheet and schema documents, and the
background service that runs them on a worker pool with a fixed timeout.

A check that does not finish within the timeout marks the document
``invalid`` with a timeout message; the pipeline never waits on it.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Optional
import logging

from lxml import etree

from xsltflow_core.errors import DocumentNotFound
from xsltflow_core.storage import Document, DocumentKind, DocumentStore, ValidationStatus
from xsltflow_core.validation.base import BaseValidator, ValidationResult
from xsltflow_core.xml.utils import (
    XSD_NAMESPACE,
    XSLT_NAMESPACE,
    describe_syntax_error,
    local_name,
    namespace_of,
    parse_xml,
)

logger = logging.getLogger(__name__)


class WellFormedValidator(BaseValidator):
    """Checks that a document parses as XML."""

    @property
    def schema_type(self) -> str:
        return "Well-formedness"

    def validate_bytes(self, content: bytes, file_context: str = "document") -> ValidationResult:
        result = ValidationResult()
        try:
            tree = parse_xml(content)
        except etree.XMLSyntaxError as e:
            result.add_error(
                file=file_context,
                message=describe_syntax_error(e),
                error_type="XML Syntax Error",
                line=getattr(e, 'lineno', None),
            )
            return result

        self.check_root(tree.getroot(), result, file_context)
        return result

    def check_root(self, root, result: ValidationResult, file_context: str) -> None:
        """Hook for subclasses that also constrain the root element."""


class StylesheetValidator(WellFormedValidator):
    """Well-formed XML with an XSLT root (or a simplified literal-result stylesheet)."""

    @property
    def schema_type(self) -> str:
        return "XSLT"

    def check_root(self, root, result: ValidationResult, file_context: str) -> None:
        if namespace_of(root) == XSLT_NAMESPACE:
            if local_name(root) not in ("stylesheet", "transform"):
                result.add_error(
                    file=file_context,
                    message="File does not appear to be a valid XSLT stylesheet "
                            "(missing xsl:stylesheet or xsl:transform)",
                    error_type="Stylesheet Error",
                )
            return

        # Simplified syntax: literal result element carrying xsl:version
        if root.get(f"{{{XSLT_NAMESPACE}}}version") is not None:
            return

        if local_name(root) in ("stylesheet", "transform"):
            message = "Missing XSLT namespace declaration"
        else:
            message = ("File does not appear to be a valid XSLT stylesheet "
                       "(missing xsl:stylesheet or xsl:transform)")
        result.add_error(file=file_context, message=message, error_type="Stylesheet Error")


class SchemaDocumentValidator(WellFormedValidator):
    """Well-formed XML with an xs:schema root in the XML Schema namespace."""

    @property
    def schema_type(self) -> str:
        return "XSD"

    def check_root(self, root, result: ValidationResult, file_context: str) -> None:
        if local_name(root) != "schema" or namespace_of(root) != XSD_NAMESPACE:
            result.add_error(
                file=file_context,
                message="File does not appear to be a valid XML Schema "
                        "(missing schema elements or namespace)",
                error_type="Schema Error",
            )


DEFAULT_VALIDATORS: Dict[DocumentKind, BaseValidator] = {
    DocumentKind.SOURCE: WellFormedValidator(),
    DocumentKind.STYLESHEET: StylesheetValidator(),
    DocumentKind.SCHEMA: SchemaDocumentValidator(),
    DocumentKind.RESULT: WellFormedValidator(),
}


class DocumentValidationService:
    """
    Runs document checks in the background.

    Each scheduled check runs on the service's own worker pool; a timer bounds
    how long the document may stay ``pending``. Whichever finishes first (the
    check or the timer) records the outcome, exactly once.

    Example:
        service = DocumentValidationService(store, timeout_seconds=10)
        future = service.schedule(handle)
        doc = future.result()   # Document with its final validation status
    """

    def __init__(self,
                 store: DocumentStore,
                 timeout_seconds: float = 10.0,
                 max_workers: int = 4,
                 validators: Optional[Dict[DocumentKind, BaseValidator]] = None):
        self.store = store
        self.timeout_seconds = timeout_seconds
        self.validators = dict(DEFAULT_VALIDATORS)
        if validators:
            self.validators.update(validators)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="doc-validate")
        self._lock = threading.Lock()

    def timeout_message(self) -> str:
        return f"Validation timeout after {self.timeout_seconds:g} seconds"

    def validate_now(self, handle: str) -> ValidationResult:
        """Run the check for ``handle`` synchronously without recording it."""
        doc = self.store.get_document(handle)
        validator = self.validators.get(doc.kind)
        if validator is None:
            result = ValidationResult()
            result.add_error(file=doc.name, message="Unsupported file type", error_type="Unsupported")
            return result
        logger.debug(f"Running {validator.schema_type} check on {doc.name}")
        return validator.validate_bytes(self.store.get(handle), file_context=doc.name)

    def schedule(self, handle: str) -> 'Future[Optional[Document]]':
        """
        Schedule a background check for ``handle``.

        Returns a future resolving to the updated Document (or None if the
        document was deleted before the outcome could be recorded).
        """
        outcome: 'Future[Optional[Document]]' = Future()
        logger.info(f"Starting validation for document: {handle}")

        timer = threading.Timer(
            self.timeout_seconds,
            self._finish,
            args=(handle, outcome, ValidationStatus.INVALID, self.timeout_message()),
        )
        timer.daemon = True

        check = self._pool.submit(self.validate_now, handle)
        timer.start()
        check.add_done_callback(lambda f: self._on_check_done(handle, outcome, timer, f))
        return outcome

    def _on_check_done(self, handle: str, outcome: Future, timer: threading.Timer, check: Future) -> None:
        timer.cancel()
        try:
            result = check.result()
        except DocumentNotFound:
            self._finish(handle, outcome, None, None)
            return
        except Exception as e:
            logger.error(f"Validation error for document {handle}: {e}")
            self._finish(handle, outcome, ValidationStatus.INVALID, f"Validation failed: {e}")
            return

        if result.is_valid:
            self._finish(handle, outcome, ValidationStatus.VALID, None)
        else:
            self._finish(handle, outcome, ValidationStatus.INVALID, "; ".join(result.messages()))

    def _finish(self,
                handle: str,
                outcome: Future,
                status: Optional[ValidationStatus],
                error: Optional[str]) -> None:
        with self._lock:
            if outcome.done():
                return
            if status is None:
                logger.warning(f"Document {handle} disappeared before validation completed")
                outcome.set_result(None)
                return
            try:
                doc = self.store.set_validation(handle, status, error)
            except DocumentNotFound:
                logger.warning(f"Document {handle} deleted before validation status was recorded")
                outcome.set_result(None)
                return
            outcome.set_result(doc)

        if status == ValidationStatus.VALID:
            logger.info(f"Validation completed for document: {doc.name}, result: valid")
        else:
            logger.warning(f"Validation completed for document: {doc.name}, result: invalid ({error})")

    def shutdown(self, wait: bool = False) -> None:
        self._pool.shutdown(wait=wait)


def validate_document(store: DocumentStore, handle: str, timeout_seconds: float = 10.0) -> Optional[Document]:
    """Run one bounded check synchronously (one-off use outside the service)."""
    service = DocumentValidationService(store, timeout_seconds=timeout_seconds, max_workers=1)
    try:
        doc = service.schedule(handle).result()
    finally:
        service.shutdown(wait=False)
    return doc
