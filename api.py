#!/usr/bin/env python3
"""
XSLT Transformation Pipeline REST API

Thin FastAPI adapter over the job controller. It supports:

- Uploading XML, XSL and XSD documents (checked in the background)
- Starting transformation jobs and polling their progress
- Fetching transformation results
- Stylesheet analysis, dependency diagnostics and starter XSD generation
- Dashboard data for monitoring jobs

API Flow:
1. POST /api/v1/documents - Upload source, stylesheet (and schema)
2. POST /api/v1/transform - Start a job, returns its id
3. GET /api/v1/jobs/{job_id} - Poll until status is "completed" or "failed"
4. GET /api/v1/jobs/{job_id}/result - Download the output

Usage:
    # Start the API server
    uvicorn api:app --host 0.0.0.0 --port 8000

    # Or programmatically
    from api import create_app
    app = create_app()
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import PurePosixPath
from typing import List, Optional

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, Field

from xsltflow_core import __version__
from xsltflow_core.config.settings import PipelineConfig, config_from_env, configure_logging
from xsltflow_core.errors import (
    AdmissionRejected,
    DocumentNotFound,
    InvalidJobRequest,
    JobNotFound,
    SchemaGenerationError,
    ValidationFailure,
)
from xsltflow_core.jobs import (
    DashboardStats,
    DependencyView,
    JobController,
    JobRequest,
    JobStatus,
    JobView,
    create_controller,
)
from xsltflow_core.schema_gen import generate_xsd_from_xml, generate_xsd_from_xsl
from xsltflow_core.storage import DocumentKind, infer_kind
from xsltflow_core.transform.analysis import analyze_stylesheet

logger = logging.getLogger(__name__)

# 10MB per uploaded file
MAX_UPLOAD_BYTES = 10 * 1024 * 1024


# ============================================================================
# MODELS
# ============================================================================

class DocumentInfo(BaseModel):
    """Stored document metadata."""
    id: str
    name: str
    kind: DocumentKind
    size: int
    content_type: str
    uploaded_at: str
    validation_status: str
    validation_error: Optional[str] = None
    validated_at: Optional[str] = None


class UploadResult(BaseModel):
    """Outcome of a multi-file upload."""
    uploaded: List[DocumentInfo] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list, description="Names already present in the store")


class GeneratedSchema(BaseModel):
    """Starter XSD derived from a document."""
    xsd_content: str
    suggested_filename: str
    document_id: Optional[str] = None


def _document_info(doc) -> DocumentInfo:
    return DocumentInfo(**doc.to_dict())


# ============================================================================
# APPLICATION
# ============================================================================

def create_app(controller: Optional[JobController] = None,
               config: Optional[PipelineConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    if controller is None:
        config = config or config_from_env()
        configure_logging(config.log_level)
        controller = create_controller(config)
    store = controller.store

    app = FastAPI(
        title="XSLT Transformation API",
        description="""
REST API for applying XSLT stylesheets to XML documents.

## Workflow

1. **Upload**: `POST /api/v1/documents` - Upload XML, XSL and XSD files
2. **Transform**: `POST /api/v1/transform` - Start a job, returns its id
3. **Poll Status**: `GET /api/v1/jobs/{job_id}` - Wait for `completed` or `failed`
4. **Result**: `GET /api/v1/jobs/{job_id}/result` - Download the output

Stylesheets the primary engine rejects are retried on a reduced-capability
engine; such results are flagged as `degraded`.
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.controller = controller

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("shutdown")
    def shutdown_event():
        controller.shutdown(wait=False)

    # ========================================================================
    # DOCUMENT ENDPOINTS
    # ========================================================================

    @app.post("/api/v1/documents", response_model=UploadResult, tags=["Documents"])
    async def upload_documents(files: List[UploadFile] = File(..., description="XML, XSL or XSD files")):
        """
        Upload one or more documents.

        Kind is inferred from the extension. Files whose name is already in
        the store are skipped. Each stored document is checked in the
        background; poll it to see its validation status.
        """
        result = UploadResult()
        for upload in files:
            name = upload.filename or ""
            try:
                kind = infer_kind(name)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            if kind == DocumentKind.RESULT:
                raise HTTPException(status_code=400, detail=f"Only XML, XSL, and XSD files are allowed: {name}")

            if store.find_by_name(name) is not None:
                logger.info(f"Skipping duplicate upload: {name}")
                result.skipped.append(name)
                continue

            content = await upload.read()
            if len(content) > MAX_UPLOAD_BYTES:
                raise HTTPException(status_code=400, detail=f"File too large: {name}")

            handle = store.put(name, content, kind=kind)
            controller.document_checks.schedule(handle)
            result.uploaded.append(_document_info(store.get_document(handle)))

        return result

    @app.get("/api/v1/documents", response_model=List[DocumentInfo], tags=["Documents"])
    async def list_documents(kind: Optional[DocumentKind] = None):
        """List stored documents, optionally filtered by kind."""
        return [_document_info(doc) for doc in store.documents(kind)]

    @app.get("/api/v1/documents/{document_id}", response_model=DocumentInfo, tags=["Documents"])
    async def get_document(document_id: str):
        """Get document metadata, including its validation status."""
        try:
            return _document_info(store.get_document(document_id))
        except DocumentNotFound:
            raise HTTPException(status_code=404, detail="Document not found")

    @app.get("/api/v1/documents/{document_id}/content", tags=["Documents"])
    async def get_document_content(document_id: str):
        """Download a document's content."""
        try:
            doc = store.get_document(document_id)
            content = store.get(document_id)
        except DocumentNotFound:
            raise HTTPException(status_code=404, detail="Document not found")
        return Response(
            content=content,
            media_type=doc.content_type,
            headers={"Content-Disposition": f'attachment; filename="{doc.basename}"'},
        )

    @app.delete("/api/v1/documents/{document_id}", tags=["Documents"])
    async def delete_document(document_id: str):
        """Delete a document."""
        if not store.delete(document_id):
            raise HTTPException(status_code=404, detail="Document not found")
        return {"id": document_id, "deleted": True}

    @app.post("/api/v1/documents/{document_id}/generate-xsd", response_model=GeneratedSchema, tags=["Documents"])
    async def generate_xsd(document_id: str, save: bool = False):
        """
        Generate a starter XSD from a sample XML document or a stylesheet.

        With ``save=true`` the schema is also stored as a schema document.
        """
        try:
            doc = store.get_document(document_id)
            text = store.get_text(document_id)
        except DocumentNotFound:
            raise HTTPException(status_code=404, detail="Document not found")
        except UnicodeDecodeError as e:
            raise HTTPException(status_code=400, detail=f"Document cannot be decoded: {e.reason}")

        try:
            if doc.kind == DocumentKind.STYLESHEET:
                xsd_content = generate_xsd_from_xsl(text)
            elif doc.kind == DocumentKind.SOURCE:
                xsd_content = generate_xsd_from_xml(text)
            else:
                raise HTTPException(status_code=400, detail="XSD can only be generated from XML or XSL documents")
        except SchemaGenerationError as e:
            raise HTTPException(status_code=400, detail=str(e))

        suggested = f"{PurePosixPath(doc.basename).stem}.xsd"
        saved_id = None
        if save:
            saved_id = store.put(suggested, xsd_content.encode("utf-8"), kind=DocumentKind.SCHEMA)
            controller.document_checks.schedule(saved_id)

        logger.info(f"XSD generated from {doc.name}: {suggested} ({len(xsd_content)} chars)")
        return GeneratedSchema(xsd_content=xsd_content, suggested_filename=suggested, document_id=saved_id)

    @app.get("/api/v1/documents/{document_id}/analysis", tags=["Documents"])
    async def get_stylesheet_analysis(document_id: str):
        """Structural summary of a stylesheet."""
        try:
            doc = store.get_document(document_id)
            text = store.get_text(document_id)
        except DocumentNotFound:
            raise HTTPException(status_code=404, detail="Document not found")
        except UnicodeDecodeError as e:
            raise HTTPException(status_code=400, detail=f"Document cannot be decoded: {e.reason}")
        if doc.kind != DocumentKind.STYLESHEET:
            raise HTTPException(status_code=400, detail="Document is not a stylesheet")

        info = analyze_stylesheet(text)
        if info is None:
            raise HTTPException(status_code=400, detail="Stylesheet could not be parsed")
        return info.to_dict()

    @app.get("/api/v1/documents/{document_id}/dependencies",
             response_model=List[DependencyView], tags=["Documents"])
    async def get_dependencies(document_id: str, refresh: bool = False):
        """Dependency records for a stylesheet (most recent resolution)."""
        try:
            doc = store.get_document(document_id)
            if doc.kind != DocumentKind.STYLESHEET:
                raise HTTPException(status_code=400, detail="Document is not a stylesheet")
            return controller.dependencies(document_id, refresh=refresh)
        except DocumentNotFound:
            raise HTTPException(status_code=404, detail="Document not found")
        except ValidationFailure as e:
            raise HTTPException(status_code=400, detail=str(e))

    # ========================================================================
    # TRANSFORMATION ENDPOINTS
    # ========================================================================

    @app.post("/api/v1/transform", response_model=JobView, tags=["Transformation"])
    async def start_transformation(request: JobRequest):
        """Start a transformation job. Returns immediately with the queued job."""
        try:
            job_id = controller.submit(request)
        except DocumentNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        except InvalidJobRequest as e:
            raise HTTPException(status_code=400, detail=str(e))
        except AdmissionRejected as e:
            raise HTTPException(status_code=429, detail=str(e))
        return controller.get(job_id)

    @app.get("/api/v1/jobs", response_model=List[JobView], tags=["Transformation"])
    async def list_jobs(
        status: Optional[str] = None,
        limit: int = Query(default=50, ge=1, le=500),
    ):
        """List jobs, newest first."""
        job_status = None
        if status:
            try:
                job_status = JobStatus(status)
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
        return controller.list_jobs(status=job_status, limit=limit)

    @app.get("/api/v1/jobs/{job_id}", response_model=JobView, tags=["Transformation"])
    async def get_job_status(job_id: str):
        """Get job status and progress."""
        try:
            return controller.get(job_id)
        except JobNotFound:
            raise HTTPException(status_code=404, detail="Job not found")

    @app.get("/api/v1/jobs/{job_id}/result", tags=["Transformation"])
    async def get_job_result(job_id: str):
        """Download the output of a completed job."""
        try:
            view = controller.get(job_id)
        except JobNotFound:
            raise HTTPException(status_code=404, detail="Job not found")
        if view.status != JobStatus.COMPLETED or not view.result_handle:
            raise HTTPException(status_code=400, detail="Job not ready yet")

        try:
            doc = store.get_document(view.result_handle)
            content = store.get(view.result_handle)
        except DocumentNotFound:
            raise HTTPException(status_code=404, detail="Result not found")
        return Response(
            content=content,
            media_type=doc.content_type,
            headers={"Content-Disposition": f'attachment; filename="{doc.basename}"'},
        )

    # ========================================================================
    # DASHBOARD / SYSTEM ENDPOINTS
    # ========================================================================

    @app.get("/api/v1/dashboard", response_model=DashboardStats, tags=["Dashboard"])
    async def get_dashboard():
        """Get dashboard statistics."""
        return controller.stats()

    @app.get("/api/v1/health", tags=["System"])
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "documents": len(store.list()),
            "jobs": len(controller.registry),
        }

    @app.get("/api/v1/info", tags=["System"])
    async def get_info():
        """Get API configuration and capabilities."""
        pipeline = controller.config
        return {
            "version": __version__,
            "config": {
                "storage_backend": pipeline.storage_backend,
                "max_concurrent_jobs": pipeline.jobs.max_workers,
                "max_pending_jobs": pipeline.jobs.max_pending_jobs,
                "validation_timeout_seconds": pipeline.validation.timeout_seconds,
                "execution_timeout_seconds": pipeline.execution.timeout_seconds,
                "fallback_enabled": pipeline.execution.fallback_enabled,
            },
            "engines": {
                "primary": type(controller.executor.primary).__name__,
                "fallback": type(controller.executor.fallback).__name__ if controller.executor.fallback else None,
            },
            "matchers": [m.name for m in controller.resolver.matchers],
        }

    return app


# Create default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
