"""
Transformation Jobs
===================

Job models and the controller that runs jobs on a worker pool.
"""

from xsltflow_core.jobs.models import (
    DashboardStats,
    DependencyView,
    JobRegistry,
    JobRequest,
    JobStatus,
    JobView,
    TransformationJob,
)

from xsltflow_core.jobs.controller import (
    JobController,
    create_controller,
)

__all__ = [
    "DashboardStats",
    "DependencyView",
    "JobRegistry",
    "JobRequest",
    "JobStatus",
    "JobView",
    "TransformationJob",
    "JobController",
    "create_controller",
]
