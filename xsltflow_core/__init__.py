"""
XSLTFlow Core Library
=====================

Transformation job pipeline for applying XSLT stylesheets to XML documents:

- Document storage with background well-formedness checks
- Optional XSD schema validation of the source
- xsl:include / xsl:import dependency resolution
- Primary engine execution with a normalized, reduced-capability fallback
- Asynchronous jobs with progress reporting

Architecture
------------

    xsltflow_core/
    ├── xml/           - lxml helpers
    ├── config/        - Configuration management
    ├── validation/    - Document checks and XSD validation
    ├── dependencies/  - Include/import resolution
    ├── normalize/     - Stylesheet rewrites for the fallback engine
    ├── engines/       - XSLT engines (primary and fallback)
    ├── transform/     - Executor and stylesheet analysis
    ├── schema_gen/    - Starter XSD generation
    └── jobs/          - Job models and controller

Usage
-----

    from xsltflow_core import InMemoryDocumentStore, JobController, JobRequest

    store = InMemoryDocumentStore()
    xml_id = store.put("invoice.xml", xml_bytes)
    xsl_id = store.put("invoice.xsl", xsl_bytes)

    controller = JobController(store)
    job_id = controller.submit(JobRequest(source_id=xml_id, stylesheet_id=xsl_id))
    view = controller.wait(job_id)
    html = store.get(view.result_handle)

"""

__version__ = "1.0.0"
__author__ = "XSLTFlow Team"

from xsltflow_core.errors import (
    PipelineError,
    ValidationFailure,
    SchemaComplianceFailure,
    DependencyMissingFailure,
    CompilationFailure,
    ExecutionFailure,
    TimeoutFailure,
    DocumentNotFound,
    JobNotFound,
    InvalidJobRequest,
    AdmissionRejected,
    InvalidTransition,
)

from xsltflow_core.storage import (
    Document,
    DocumentKind,
    DocumentStore,
    InMemoryDocumentStore,
    LocalDocumentStore,
    ValidationStatus,
)

from xsltflow_core.config.settings import (
    PipelineConfig,
    load_config,
    config_from_env,
)

from xsltflow_core.dependencies.resolver import (
    Dependency,
    DependencyResolver,
    ResolutionReport,
)

from xsltflow_core.normalize.normalizer import (
    normalize,
    normalize_with_report,
)

from xsltflow_core.engines.lxml_engine import (
    LxmlEngine,
    RestrictedLxmlEngine,
)

from xsltflow_core.transform.executor import (
    TransformationExecutor,
    TransformResult,
)

from xsltflow_core.jobs.controller import (
    JobController,
    create_controller,
)

from xsltflow_core.jobs.models import (
    JobRequest,
    JobStatus,
    JobView,
)

__all__ = [
    # Version
    "__version__",
    # Errors
    "PipelineError",
    "ValidationFailure",
    "SchemaComplianceFailure",
    "DependencyMissingFailure",
    "CompilationFailure",
    "ExecutionFailure",
    "TimeoutFailure",
    "DocumentNotFound",
    "JobNotFound",
    "InvalidJobRequest",
    "AdmissionRejected",
    "InvalidTransition",
    # Storage
    "Document",
    "DocumentKind",
    "DocumentStore",
    "InMemoryDocumentStore",
    "LocalDocumentStore",
    "ValidationStatus",
    # Config
    "PipelineConfig",
    "load_config",
    "config_from_env",
    # Dependencies
    "Dependency",
    "DependencyResolver",
    "ResolutionReport",
    # Normalization
    "normalize",
    "normalize_with_report",
    # Engines
    "LxmlEngine",
    "RestrictedLxmlEngine",
    # Execution
    "TransformationExecutor",
    "TransformResult",
    # Jobs
    "JobController",
    "create_controller",
    "JobRequest",
    "JobStatus",
    "JobView",
]
