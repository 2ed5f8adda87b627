"""
Pipeline Errors
===============

Error taxonomy for the transformation job pipeline.

Every stage failure is a ``PipelineError`` carrying a short machine-readable
code and a human-readable detail. The job controller catches these at the
stage boundary and turns them into a failed job; they never escape a worker.
"""

from typing import List, Sequence


class PipelineError(Exception):
    """Base class for failures raised by a pipeline stage."""

    code = "PIPELINE_ERROR"

    def __init__(self, detail: str, code: str = None):
        super().__init__(detail)
        self.detail = detail
        if code:
            self.code = code

    def __str__(self) -> str:
        return self.detail


class ValidationFailure(PipelineError):
    """Input document is not well-formed."""

    code = "VALIDATION_FAILED"


class SchemaComplianceFailure(PipelineError):
    """Source document does not comply with the requested XSD schema."""

    code = "SCHEMA_NONCOMPLIANT"


class DependencyMissingFailure(PipelineError):
    """One or more xsl:include/xsl:import targets could not be resolved."""

    code = "DEPENDENCY_MISSING"

    def __init__(self, missing_paths: Sequence[str]):
        self.missing_paths: List[str] = list(missing_paths)
        detail = "; ".join(f"Missing dependency: {path}" for path in self.missing_paths)
        super().__init__(detail)


class CompilationFailure(PipelineError):
    """Stylesheet cannot be compiled by the engine."""

    code = "COMPILATION_FAILED"


class ExecutionFailure(PipelineError):
    """Engine ran but produced no usable output."""

    code = "EXECUTION_FAILED"


class TimeoutFailure(PipelineError):
    """A bounded stage did not finish in time."""

    code = "TIMEOUT"


# ---------------------------------------------------------------------------
# Errors raised to callers of the controller/store (not job outcomes)
# ---------------------------------------------------------------------------

class DocumentNotFound(KeyError):
    """No document is registered under the given handle."""

    def __init__(self, handle: str):
        super().__init__(handle)
        self.handle = handle

    def __str__(self) -> str:
        return f"Document not found: {self.handle}"


class JobNotFound(KeyError):
    """No job is registered under the given id."""

    def __init__(self, job_id: str):
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Job not found: {self.job_id}"


class InvalidJobRequest(ValueError):
    """Job request is inconsistent (e.g. schema validation without a schema)."""


class AdmissionRejected(RuntimeError):
    """Too many jobs are already queued or processing."""


class InvalidTransition(RuntimeError):
    """Attempted a job or dependency state change the state machine forbids."""


class SchemaGenerationError(ValueError):
    """An XSD could not be derived from the given document."""
