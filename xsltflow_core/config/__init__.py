"""
Configuration Management
========================

Configuration utilities for the transformation job pipeline.
"""

from xsltflow_core.config.settings import (
    PipelineConfig,
    ValidationConfig,
    DependencyConfig,
    ExecutionConfig,
    JobConfig,
    load_config,
    save_config,
    config_from_env,
    configure_logging,
    get_default_config,
)

__all__ = [
    "PipelineConfig",
    "ValidationConfig",
    "DependencyConfig",
    "ExecutionConfig",
    "JobConfig",
    "load_config",
    "save_config",
    "config_from_env",
    "configure_logging",
    "get_default_config",
]
