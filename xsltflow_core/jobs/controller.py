"""
Job Controller
==============

Owns the lifecycle of transformation jobs: accepts requests, runs the
pipeline stages on a worker pool and publishes progress.

Stages per job, strictly sequential::

    10  start
    15  schema validation (optional)      25 passed
    30  dependency resolution (optional; 35 after schema validation)
    40  parsing (50 when an optional stage ran)
    60  executing
    85  finalizing
    100 completed

Any stage failure fails the job with one consolidated error message and
leaves its progress where it was. Nothing raised inside a job escapes the
worker thread.

Example:
    controller = JobController(store)
    job_id = controller.submit(JobRequest(source_id=xml_id, stylesheet_id=xsl_id))
    view = controller.wait(job_id, timeout=30)
    print(view.status, view.result_handle)
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeout
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Union
import logging

from xsltflow_core.config.settings import PipelineConfig
from xsltflow_core.dependencies.resolver import Dependency, DependencyResolver
from xsltflow_core.engines.base import EngineOutput
from xsltflow_core.engines.lxml_engine import LxmlEngine, RestrictedLxmlEngine
from xsltflow_core.errors import (
    AdmissionRejected,
    DependencyMissingFailure,
    DocumentNotFound,
    ExecutionFailure,
    InvalidJobRequest,
    JobNotFound,
    PipelineError,
    SchemaComplianceFailure,
    TimeoutFailure,
    ValidationFailure,
)
from xsltflow_core.jobs.models import (
    DashboardStats,
    DependencyView,
    JobRegistry,
    JobRequest,
    JobStatus,
    JobView,
    TransformationJob,
)
from xsltflow_core.normalize.normalizer import StylesheetNormalizer
from xsltflow_core.storage import Document, DocumentKind, DocumentStore, create_storage
from xsltflow_core.transform.analysis import analyze_stylesheet
from xsltflow_core.transform.executor import TransformationExecutor, TransformResult
from xsltflow_core.validation.document_checks import DocumentValidationService
from xsltflow_core.validation.xsd_validator import SchemaValidator

logger = logging.getLogger(__name__)

RESULT_CONTENT_TYPES = {
    "html": "text/html",
    "xml": "application/xml",
}


class JobController:
    """
    Runs transformation jobs in the background.

    Collaborators (store, executor, resolver, schema validator) are injected;
    defaults are built from ``config`` when not given.
    """

    def __init__(self,
                 store: DocumentStore,
                 executor: Optional[TransformationExecutor] = None,
                 resolver: Optional[DependencyResolver] = None,
                 schema_validator: Optional[SchemaValidator] = None,
                 config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig()
        self.store = store
        self.resolver = resolver or DependencyResolver.from_config(self.config.dependencies)
        self.executor = executor or TransformationExecutor(
            primary=LxmlEngine(),
            fallback=RestrictedLxmlEngine(),
            resolver=self.resolver,
            normalizer=StylesheetNormalizer(),
            store=store,
            fallback_enabled=self.config.execution.fallback_enabled,
        )
        self.schema_validator = schema_validator or SchemaValidator()
        self.document_checks = DocumentValidationService(
            store,
            timeout_seconds=self.config.validation.timeout_seconds,
            max_workers=self.config.validation.max_workers,
        )

        self.registry = JobRegistry()
        self.execution_timeout = self.config.execution.timeout_seconds
        self._pool = ThreadPoolExecutor(
            max_workers=max(1, self.config.jobs.max_workers),
            thread_name_prefix="xslt-job",
        )
        self._timeout_pool: Optional[ThreadPoolExecutor] = None
        if self.execution_timeout:
            self._timeout_pool = ThreadPoolExecutor(
                max_workers=max(1, self.config.jobs.max_workers),
                thread_name_prefix="xslt-exec",
            )
        self._futures: Dict[str, Future] = {}
        self._dependencies: Dict[str, List[Dependency]] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(self, request: Union[JobRequest, dict]) -> str:
        """
        Validate a request and queue the job. Returns the job id immediately.

        Raises:
            DocumentNotFound: If a referenced document does not exist
            InvalidJobRequest: If schema validation is requested without a schema
            AdmissionRejected: If too many jobs are queued or processing
        """
        if isinstance(request, dict):
            request = JobRequest(**request)

        self.store.get_document(request.source_id)
        self.store.get_document(request.stylesheet_id)
        if request.validate_schema:
            if not request.schema_id:
                raise InvalidJobRequest("Schema validation requested but no schema_id was given")
            self.store.get_document(request.schema_id)

        with self._lock:
            limit = self.config.jobs.max_pending_jobs
            if limit > 0 and self.registry.count_active() >= limit:
                raise AdmissionRejected(f"Too many pending jobs (limit {limit})")
            job = self.registry.create(request)
            self._futures[job.job_id] = self._pool.submit(self._run_job, job.job_id, request)

        logger.info(
            f"Job {job.job_id} queued: source={request.source_id} stylesheet={request.stylesheet_id} "
            f"schema={request.schema_id if request.validate_schema else None} "
            f"resolve_dependencies={request.resolve_dependencies}"
        )
        return job.job_id

    def get(self, job_id: str) -> JobView:
        """Current view of a job. Raises JobNotFound."""
        return self.registry.view(job_id)

    def list_jobs(self, status: Optional[JobStatus] = None, limit: int = 50) -> List[JobView]:
        """List jobs, newest first, optionally filtered by status."""
        views = self.registry.views()
        if status:
            views = [v for v in views if v.status == status]
        views.sort(key=lambda v: v.created_at, reverse=True)
        return views[:limit]

    def wait(self, job_id: str, timeout: Optional[float] = None) -> JobView:
        """Block until the job finishes (or ``timeout`` elapses) and return its view."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is None:
            raise JobNotFound(job_id)
        try:
            future.result(timeout=timeout)
        except FuturesTimeout:
            logger.debug(f"Job {job_id} still running after {timeout}s")
        return self.get(job_id)

    def dependencies(self, stylesheet_id: str, refresh: bool = False) -> List[DependencyView]:
        """
        Most recent dependency set recorded for a stylesheet.

        Resolves against the current store contents when nothing has been
        recorded yet or ``refresh`` is set.
        """
        with self._lock:
            recorded = self._dependencies.get(stylesheet_id)
        if recorded is None or refresh:
            text = self._read_stylesheet(self.store.get_document(stylesheet_id))
            report = self.resolver.resolve(text, self.store.documents(), stylesheet_id=stylesheet_id)
            recorded = self._record_dependencies(stylesheet_id, report.dependencies)
        return [DependencyView(**d.to_dict()) for d in recorded]

    def stats(self) -> DashboardStats:
        """Dashboard statistics."""
        views = self.registry.views()
        by_status = {status: [v for v in views if v.status == status] for status in JobStatus}
        completed = by_status[JobStatus.COMPLETED]

        timings = [v.processing_time_ms for v in completed if v.processing_time_ms is not None]
        recent = [
            {
                "id": v.id,
                "status": v.status.value,
                "progress": v.progress,
                "degraded": v.degraded,
                "created_at": v.created_at,
                "processing_time_ms": v.processing_time_ms,
            }
            for v in sorted(views, key=lambda x: x.created_at, reverse=True)[:10]
        ]

        return DashboardStats(
            total_jobs=len(views),
            queued=len(by_status[JobStatus.QUEUED]),
            processing=len(by_status[JobStatus.PROCESSING]),
            completed=len(completed),
            failed=len(by_status[JobStatus.FAILED]),
            degraded=sum(1 for v in completed if v.degraded),
            average_processing_time_ms=sum(timings) / len(timings) if timings else 0.0,
            total_output_bytes=sum(v.output_size_bytes or 0 for v in completed),
            recent_jobs=recent,
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and release the worker pools."""
        self._pool.shutdown(wait=wait)
        if self._timeout_pool is not None:
            self._timeout_pool.shutdown(wait=wait)
        self.document_checks.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    def _advance(self, job_id: str, progress: int, message: str) -> bool:
        """Move an active job to a checkpoint. Returns False if the job already finished."""
        applied = []

        def advance(job: TransformationJob) -> None:
            if job.status.is_terminal:
                return
            job.advance(progress, message)
            applied.append(progress)

        self.registry.update(job_id, advance)
        if not applied:
            logger.debug(f"Job {job_id} already finished, skipping {progress}% checkpoint")
            return False
        logger.info(f"Job {job_id}: {progress}% {message}")
        return True

    def _read_stylesheet(self, stylesheet: Document) -> str:
        try:
            return self.store.get_text(stylesheet.id)
        except UnicodeDecodeError as e:
            raise ValidationFailure(f"Invalid XSL file: cannot decode {stylesheet.name} ({e.encoding}: {e.reason})")

    def _record_dependencies(self, stylesheet_id: str, dependencies: List[Dependency]) -> List[Dependency]:
        with self._lock:
            self._dependencies[stylesheet_id] = list(dependencies)
        return dependencies

    def _run_job(self, job_id: str, request: JobRequest) -> None:
        try:
            self._process(job_id, request)
        except PipelineError as e:
            self._fail(job_id, str(e))
        except DocumentNotFound as e:
            self._fail(job_id, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in job {job_id}")
            self._fail(job_id, f"Unexpected error: {e}")

    def _process(self, job_id: str, request: JobRequest) -> None:
        def start(job: TransformationJob) -> None:
            job.transition(JobStatus.PROCESSING)
            job.advance(10, "Preparing XSD validation..." if request.validate_schema
                        else "Preparing transformation...")

        self.registry.update(job_id, start)
        logger.info(f"Job {job_id} started")

        source = self.store.get_document(request.source_id)
        stylesheet = self.store.get_document(request.stylesheet_id)
        optional_stage_ran = False

        if request.validate_schema:
            self._validate_schema(job_id, request, source.name)
            optional_stage_ran = True

        stylesheet_text = self._read_stylesheet(stylesheet)

        if request.resolve_dependencies:
            self._advance(job_id, 35 if request.validate_schema else 30,
                          "Resolving XSL dependencies and imports...")
            report = self.resolver.resolve(stylesheet_text, self.store.documents(), stylesheet_id=stylesheet.id)
            self._record_dependencies(stylesheet.id, report.dependencies)
            if report.has_missing:
                raise DependencyMissingFailure(report.missing_paths)
            optional_stage_ran = True

        self._advance(job_id, 50 if optional_stage_ran else 40, "Parsing XML and XSL files...")
        source_content = self.store.get(request.source_id)
        info = analyze_stylesheet(stylesheet_text)
        if info is not None:
            logger.info(
                f"Job {job_id} stylesheet info: {info.templates} templates, {info.variables} variables, "
                f"{info.includes} includes, version {info.version}"
            )

        self._advance(job_id, 60, f"Executing XSLT transformation ({source.name} + {stylesheet.name})...")
        pool = self.store.documents() if request.resolve_dependencies else []
        result = self._execute(job_id, source.name, source_content, stylesheet_text, stylesheet.id, pool)

        if not result.success:
            def keep_diagnostics(job: TransformationJob) -> None:
                job.warnings.extend(result.diagnostics)

            self.registry.update(job_id, keep_diagnostics)
            raise result.primary_error or ExecutionFailure(result.error or "Transformation failed")

        self._complete(job_id, result)

    def _validate_schema(self, job_id: str, request: JobRequest, source_name: str) -> None:
        schema = self.store.get_document(request.schema_id)
        self._advance(job_id, 15, f"Validating XML against XSD schema ({schema.name})...")

        outcome = self.schema_validator.check(
            self.store.get(request.source_id),
            self.store.get(request.schema_id),
            document_name=source_name,
            schema_name=schema.name,
        )
        if not outcome.is_valid:
            raise SchemaComplianceFailure(f"XSD Validation Failed: {'; '.join(outcome.messages())}")

        self._advance(job_id, 25, "XSD validation passed - XML schema compliant")

    def _make_sink(self, job_id: str, source_name: str, abandoned: threading.Event):
        stem = PurePosixPath(source_name.replace("\\", "/")).stem

        def sink(output: EngineOutput) -> Optional[str]:
            label = "HTML" if output.extension == "html" else "XML"
            if abandoned.is_set() or not self._advance(job_id, 85, f"Finalizing {label} output..."):
                logger.warning(f"Job {job_id}: discarding output of a timed-out transformation")
                return None
            handle = self.store.put(
                f"{stem}_transformed.{output.extension}",
                output.content,
                kind=DocumentKind.RESULT,
                content_type=RESULT_CONTENT_TYPES[output.extension],
            )
            if abandoned.is_set():
                self.store.delete(handle)
                return None
            return handle

        return sink

    def _execute(self,
                 job_id: str,
                 source_name: str,
                 source_content: bytes,
                 stylesheet_text: str,
                 stylesheet_id: str,
                 pool) -> TransformResult:
        abandoned = threading.Event()
        sink = self._make_sink(job_id, source_name, abandoned)

        if self._timeout_pool is None:
            return self.executor.execute(source_content, stylesheet_text, sink=sink, pool=pool,
                                         stylesheet_id=stylesheet_id)

        future = self._timeout_pool.submit(
            self.executor.execute, source_content, stylesheet_text, sink, pool, stylesheet_id
        )
        try:
            return future.result(timeout=self.execution_timeout)
        except FuturesTimeout:
            abandoned.set()
            raise TimeoutFailure(f"Transformation timed out after {self.execution_timeout:g} seconds")

    def _complete(self, job_id: str, result: TransformResult) -> None:
        seconds = result.processing_time_ms / 1000
        message = (f"Transformation complete! Generated {result.output_size / 1024:.1f} KB "
                   f"output in {seconds:.2f}s")
        if result.degraded:
            message += " (degraded: produced by fallback engine)"

        def finish(job: TransformationJob) -> None:
            job.transition(JobStatus.COMPLETED)
            job.progress = 100
            job.status_message = message
            job.result_handle = result.result_handle
            job.output_size_bytes = result.output_size
            job.processing_time_ms = result.processing_time_ms
            job.degraded = result.degraded
            job.engine = result.engine
            job.warnings.extend(result.warnings)

        self.registry.update(job_id, finish)
        if result.degraded:
            logger.warning(f"Job {job_id} completed with degraded fidelity ({result.engine} engine)")
        else:
            logger.info(f"Job {job_id} completed: {message}")

    def _fail(self, job_id: str, message: str) -> None:
        def fail(job: TransformationJob) -> None:
            if job.status.is_terminal:
                return
            job.transition(JobStatus.FAILED)
            job.error_message = message
            job.status_message = "Transformation failed"

        self.registry.update(job_id, fail)
        logger.error(f"Job {job_id} failed: {message}")


def create_controller(config: Optional[PipelineConfig] = None,
                      store: Optional[DocumentStore] = None) -> JobController:
    """Build a controller (and its store, unless given) from configuration."""
    config = config or PipelineConfig()
    if store is None:
        store = create_storage(config.storage_backend, config.storage_path)
    return JobController(store, config=config)
