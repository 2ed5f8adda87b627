"""
Document Store
==============

Pluggable document storage for the transformation pipeline.

The pipeline only needs byte content keyed by an opaque handle plus a little
metadata (display name, kind, validation status). Two backends are provided:

- ``memory``: in-process dictionary (default, used by tests)
- ``local``: metadata in memory, content on the local filesystem

Both are safe for concurrent use from the job and validation worker pools.

Usage:
    from xsltflow_core.storage import create_storage

    store = create_storage("local", "/var/lib/xsltflow")
    handle = store.put("invoice.xml", data)
    content = store.get(handle)
"""

from __future__ import annotations

import logging
import os
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional

from xsltflow_core.errors import DocumentNotFound
from xsltflow_core.xml.utils import decode_xml

logger = logging.getLogger(__name__)


class DocumentKind(str, Enum):
    """What role a stored document plays in a transformation."""
    SOURCE = "source"
    STYLESHEET = "stylesheet"
    SCHEMA = "schema"
    RESULT = "result"


class ValidationStatus(str, Enum):
    """Outcome of the background document check."""
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"


# Extension -> kind
KIND_BY_EXTENSION = {
    '.xml': DocumentKind.SOURCE,
    '.xsl': DocumentKind.STYLESHEET,
    '.xslt': DocumentKind.STYLESHEET,
    '.xsd': DocumentKind.SCHEMA,
    '.html': DocumentKind.RESULT,
    '.htm': DocumentKind.RESULT,
}

CONTENT_TYPES = {
    DocumentKind.SOURCE: "application/xml",
    DocumentKind.STYLESHEET: "application/xslt+xml",
    DocumentKind.SCHEMA: "application/xml",
    DocumentKind.RESULT: "text/html",
}


def infer_kind(name: str) -> DocumentKind:
    """
    Infer the document kind from its file extension.

    Raises:
        ValueError: If the extension is not an XML, XSL or XSD file
    """
    ext = PurePosixPath(name.replace("\\", "/")).suffix.lower()
    kind = KIND_BY_EXTENSION.get(ext)
    if kind is None:
        raise ValueError(f"Only XML, XSL, and XSD files are allowed: {name}")
    return kind


@dataclass
class Document:
    """Metadata for a stored document. Content is fetched with ``store.get``."""
    id: str
    name: str
    kind: DocumentKind
    size: int
    content_type: str
    uploaded_at: datetime = field(default_factory=datetime.now)
    validation_status: ValidationStatus = ValidationStatus.PENDING
    validation_error: Optional[str] = None
    validated_at: Optional[datetime] = None

    @property
    def basename(self) -> str:
        return PurePosixPath(self.name.replace("\\", "/")).name

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "size": self.size,
            "content_type": self.content_type,
            "uploaded_at": self.uploaded_at.isoformat(),
            "validation_status": self.validation_status.value,
            "validation_error": self.validation_error,
            "validated_at": self.validated_at.isoformat() if self.validated_at else None,
        }


# ============================================================================
# ABSTRACT STORAGE INTERFACE
# ============================================================================

class DocumentStore(ABC):
    """
    Abstract base class for document stores.

    ``put``/``get``/``list`` are the operations the pipeline depends on; the
    rest support the HTTP adapter and background validation.
    """

    @abstractmethod
    def put(
        self,
        name: str,
        data: bytes,
        kind: Optional[DocumentKind] = None,
        content_type: Optional[str] = None,
    ) -> str:
        """Store a document and return its handle."""

    @abstractmethod
    def get(self, handle: str) -> bytes:
        """
        Return document content.

        Raises:
            DocumentNotFound: If the handle is unknown
        """

    @abstractmethod
    def list(self) -> List[str]:
        """Return all handles in upload order."""

    @abstractmethod
    def get_document(self, handle: str) -> Document:
        """Return document metadata (raises DocumentNotFound)."""

    @abstractmethod
    def delete(self, handle: str) -> bool:
        """Delete a document. Returns False if it did not exist."""

    @abstractmethod
    def set_validation(
        self,
        handle: str,
        status: ValidationStatus,
        error: Optional[str] = None,
    ) -> Document:
        """Record the outcome of a document check."""

    def get_text(self, handle: str) -> str:
        """
        Return document content decoded per its byte order mark or XML
        declaration (UTF-8 when neither is present).

        Raises:
            UnicodeDecodeError: If the content does not match that encoding
        """
        return decode_xml(self.get(handle))

    def documents(self, kind: Optional[DocumentKind] = None) -> List[Document]:
        """Return metadata for all documents, optionally filtered by kind."""
        docs = [self.get_document(h) for h in self.list()]
        if kind is not None:
            docs = [d for d in docs if d.kind == kind]
        return docs

    def find_by_name(self, name: str) -> Optional[Document]:
        """Return the first document stored under ``name``."""
        for doc in self.documents():
            if doc.name == name:
                return doc
        return None

    def exists(self, handle: str) -> bool:
        try:
            self.get_document(handle)
            return True
        except DocumentNotFound:
            return False


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe in-memory store."""

    def __init__(self):
        self._lock = threading.Lock()
        self._documents: Dict[str, Document] = {}
        self._content: Dict[str, bytes] = {}

    # Content hooks, overridden by the filesystem backend
    def _write_content(self, doc: Document, data: bytes) -> None:
        self._content[doc.id] = data

    def _read_content(self, doc: Document) -> bytes:
        return self._content[doc.id]

    def _remove_content(self, doc: Document) -> None:
        self._content.pop(doc.id, None)

    def put(
        self,
        name: str,
        data: bytes,
        kind: Optional[DocumentKind] = None,
        content_type: Optional[str] = None,
    ) -> str:
        if kind is None:
            kind = infer_kind(name)
        doc = Document(
            id=str(uuid.uuid4()),
            name=name,
            kind=kind,
            size=len(data),
            content_type=content_type or CONTENT_TYPES[kind],
        )
        with self._lock:
            self._write_content(doc, data)
            self._documents[doc.id] = doc
        logger.info(f"Stored {kind.value} document {name} ({len(data)} bytes) as {doc.id}")
        return doc.id

    def get(self, handle: str) -> bytes:
        with self._lock:
            doc = self._documents.get(handle)
            if doc is None:
                raise DocumentNotFound(handle)
            return self._read_content(doc)

    def list(self) -> List[str]:
        with self._lock:
            return list(self._documents.keys())

    def get_document(self, handle: str) -> Document:
        with self._lock:
            doc = self._documents.get(handle)
            if doc is None:
                raise DocumentNotFound(handle)
            # Snapshot so callers never see a half-applied update
            return replace(doc)

    def delete(self, handle: str) -> bool:
        with self._lock:
            doc = self._documents.pop(handle, None)
            if doc is None:
                return False
            self._remove_content(doc)
        logger.info(f"Deleted document {doc.name} ({handle})")
        return True

    def set_validation(
        self,
        handle: str,
        status: ValidationStatus,
        error: Optional[str] = None,
    ) -> Document:
        with self._lock:
            doc = self._documents.get(handle)
            if doc is None:
                raise DocumentNotFound(handle)
            doc.validation_status = status
            doc.validation_error = error
            doc.validated_at = datetime.now()
            return replace(doc)


class LocalDocumentStore(InMemoryDocumentStore):
    """Metadata in memory, content written under ``base_path``."""

    def __init__(self, base_path: str = None):
        super().__init__()
        self.base_path = Path(base_path or os.environ.get("XSLTFLOW_STORAGE_PATH", "./storage"))
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Local document storage initialized at: {self.base_path}")

    def _get_path(self, doc: Document) -> Path:
        return self.base_path / f"{doc.id}_{doc.basename}"

    def _write_content(self, doc: Document, data: bytes) -> None:
        self._get_path(doc).write_bytes(data)

    def _read_content(self, doc: Document) -> bytes:
        return self._get_path(doc).read_bytes()

    def _remove_content(self, doc: Document) -> None:
        path = self._get_path(doc)
        if path.exists():
            path.unlink()


# ============================================================================
# FACTORY
# ============================================================================


def create_storage(backend: str = "memory", path: str = None) -> DocumentStore:
    """Build a store for ``backend`` ("memory" or "local")."""
    backend = (backend or "memory").lower()
    if backend == "local":
        return LocalDocumentStore(path)
    if backend == "memory":
        return InMemoryDocumentStore()
    raise ValueError(f"Unknown storage backend: {backend}")

