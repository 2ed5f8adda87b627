"""
Job Models
==========

Request/view models exposed to callers and the internal job record the
controller mutates.

The job record enforces its own state machine::

    queued -> processing -> completed
                         -> failed

Progress never decreases, stays below 100 until the job completes, and a
terminal job never changes again.
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from xsltflow_core.errors import InvalidTransition, JobNotFound


class JobStatus(str, Enum):
    """Transformation job status."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_ALLOWED_TRANSITIONS = {
    JobStatus.QUEUED: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


class JobRequest(BaseModel):
    """Transformation request."""
    source_id: str = Field(description="Handle of the source XML document")
    stylesheet_id: str = Field(description="Handle of the XSLT stylesheet")
    schema_id: Optional[str] = Field(default=None, description="Handle of the XSD schema")
    validate_schema: bool = Field(default=False, description="Validate the source against schema_id first")
    resolve_dependencies: bool = Field(default=True, description="Resolve xsl:include/xsl:import directives")


class JobView(BaseModel):
    """Snapshot of a job as seen by callers."""
    id: str
    status: JobStatus
    progress: int = Field(ge=0, le=100)
    status_message: str
    source_id: str
    stylesheet_id: str
    schema_id: Optional[str] = None
    error_message: Optional[str] = None
    result_handle: Optional[str] = None
    processing_time_ms: Optional[int] = None
    output_size_bytes: Optional[int] = None
    degraded: bool = False
    engine: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    created_at: str
    completed_at: Optional[str] = None


class DependencyView(BaseModel):
    """Diagnostic view of one resolved or missing directive."""
    stylesheet_id: Optional[str]
    declared_path: str
    operation: str
    status: str
    resolved_doc_id: Optional[str] = None
    matched_by: Optional[str] = None


class DashboardStats(BaseModel):
    """Dashboard statistics."""
    total_jobs: int = 0
    queued: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    degraded: int = 0
    average_processing_time_ms: float = 0.0
    total_output_bytes: int = 0
    recent_jobs: List[Dict] = Field(default_factory=list)


@dataclass
class TransformationJob:
    """Internal representation of a transformation job."""
    job_id: str
    request: JobRequest
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    status_message: str = "Queued"
    error_message: Optional[str] = None
    result_handle: Optional[str] = None
    processing_time_ms: Optional[int] = None
    output_size_bytes: Optional[int] = None
    degraded: bool = False
    engine: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    def transition(self, status: JobStatus) -> None:
        if status == self.status:
            return
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Job {self.job_id}: cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        self.updated_at = datetime.now()
        if status.is_terminal and self.completed_at is None:
            self.completed_at = self.updated_at

    def advance(self, progress: int, message: Optional[str] = None) -> None:
        """Record a progress checkpoint (never backwards, < 100 until completed)."""
        if self.status.is_terminal:
            raise InvalidTransition(f"Job {self.job_id} is already {self.status.value}")
        if progress >= 100:
            raise InvalidTransition(f"Job {self.job_id}: progress 100 is reserved for completion")
        self.progress = max(self.progress, progress)
        if message:
            self.status_message = message
        self.updated_at = datetime.now()

    def to_view(self) -> JobView:
        """Convert to API model."""
        return JobView(
            id=self.job_id,
            status=self.status,
            progress=self.progress,
            status_message=self.status_message,
            source_id=self.request.source_id,
            stylesheet_id=self.request.stylesheet_id,
            schema_id=self.request.schema_id,
            error_message=self.error_message,
            result_handle=self.result_handle,
            processing_time_ms=self.processing_time_ms,
            output_size_bytes=self.output_size_bytes,
            degraded=self.degraded,
            engine=self.engine,
            warnings=list(self.warnings),
            created_at=self.created_at.isoformat(),
            completed_at=self.completed_at.isoformat() if self.completed_at else None,
        )


class JobRegistry:
    """Thread-safe in-memory job table."""

    def __init__(self):
        self._jobs: Dict[str, TransformationJob] = {}
        self._lock = threading.Lock()

    def create(self, request: JobRequest) -> TransformationJob:
        job = TransformationJob(job_id=str(uuid.uuid4()), request=request)
        with self._lock:
            self._jobs[job.job_id] = job
        return job

    def _get(self, job_id: str) -> TransformationJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def view(self, job_id: str) -> JobView:
        with self._lock:
            return self._get(job_id).to_view()

    def update(self, job_id: str, mutate) -> JobView:
        """Apply ``mutate(job)`` under the registry lock and return the new view."""
        with self._lock:
            job = self._get(job_id)
            mutate(job)
            return job.to_view()

    def views(self) -> List[JobView]:
        with self._lock:
            return [job.to_view() for job in self._jobs.values()]

    def count_active(self) -> int:
        with self._lock:
            return sum(1 for job in self._jobs.values() if not job.status.is_terminal)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
