"""
Configuration Settings
======================

Configuration dataclasses for the transformation job pipeline.
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, List, Dict, Any, Mapping
import json
import logging
import os

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "XSLTFLOW_"


@dataclass
class ValidationConfig:
    """Background document validation settings."""

    timeout_seconds: float = 10.0
    max_workers: int = 4


@dataclass
class DependencyConfig:
    """xsl:include / xsl:import resolution settings."""

    # Filename families matched by PatternFamilyMatcher (e.g. W2CMStyle.xsl -> W2Style.xsl)
    family_suffixes: List[str] = field(default_factory=lambda: ["Style.xsl"])
    min_prefix_length: int = 2
    enable_family_matching: bool = True


@dataclass
class ExecutionConfig:
    """Primary/fallback execution settings."""

    fallback_enabled: bool = True
    # None means no bound on the transformation itself
    timeout_seconds: Optional[float] = None


@dataclass
class JobConfig:
    """Job controller settings."""

    max_workers: int = 4
    # 0 disables admission control
    max_pending_jobs: int = 0


@dataclass
class PipelineConfig:
    """
    Complete pipeline configuration.

    Example:
        config = PipelineConfig()
        config.validation.timeout_seconds = 5
        config.execution.timeout_seconds = 60
        save_config(config, Path("xsltflow.yaml"))
    """

    validation: ValidationConfig = field(default_factory=ValidationConfig)
    dependencies: DependencyConfig = field(default_factory=DependencyConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    jobs: JobConfig = field(default_factory=JobConfig)

    storage_backend: str = "memory"
    storage_path: str = "storage"
    log_level: str = "INFO"

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'validation': asdict(self.validation),
            'dependencies': asdict(self.dependencies),
            'execution': asdict(self.execution),
            'jobs': asdict(self.jobs),
            'storage_backend': self.storage_backend,
            'storage_path': self.storage_path,
            'log_level': self.log_level,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PipelineConfig':
        """Create from dictionary."""
        config = cls()

        if 'validation' in data:
            config.validation = ValidationConfig(**data['validation'])
        if 'dependencies' in data:
            config.dependencies = DependencyConfig(**data['dependencies'])
        if 'execution' in data:
            config.execution = ExecutionConfig(**data['execution'])
        if 'jobs' in data:
            config.jobs = JobConfig(**data['jobs'])

        if 'storage_backend' in data:
            config.storage_backend = data['storage_backend']
        if 'storage_path' in data:
            config.storage_path = data['storage_path']
        if 'log_level' in data:
            config.log_level = data['log_level']

        return config


def load_config(config_path: Path) -> PipelineConfig:
    """
    Load configuration from file.

    Supports JSON and YAML formats based on file extension.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If file format is not supported
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    with open(config_path, 'r', encoding='utf-8') as f:
        if suffix in ['.yaml', '.yml']:
            data = yaml.safe_load(f) or {}
        elif suffix == '.json':
            data = json.load(f)
        else:
            raise ValueError(f"Unsupported config format: {suffix}")

    logger.info(f"Loaded configuration from {config_path}")
    return PipelineConfig.from_dict(data)


def save_config(config: PipelineConfig, config_path: Path) -> None:
    """Save configuration to a JSON or YAML file."""
    suffix = config_path.suffix.lower()
    data = config.to_dict()

    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w', encoding='utf-8') as f:
        if suffix in ['.yaml', '.yml']:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
        elif suffix == '.json':
            json.dump(data, f, indent=2)
        else:
            raise ValueError(f"Unsupported config format: {suffix}")

    logger.info(f"Saved configuration to {config_path}")


def _env_float(env: Mapping[str, str], name: str, default: Optional[float]) -> Optional[float]:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    return float(raw)


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    return int(raw) if raw else default


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def config_from_env(env: Optional[Mapping[str, str]] = None,
                    base: Optional[PipelineConfig] = None) -> PipelineConfig:
    """
    Build configuration from ``XSLTFLOW_*`` environment variables.

    If ``XSLTFLOW_CONFIG`` points at a JSON/YAML file it is loaded first and
    individual variables override it.
    """
    env = os.environ if env is None else env

    if base is None:
        config_file = env.get(ENV_PREFIX + "CONFIG")
        base = load_config(Path(config_file)) if config_file else PipelineConfig()
    config = base

    config.validation.timeout_seconds = _env_float(
        env, "VALIDATION_TIMEOUT", config.validation.timeout_seconds)
    config.validation.max_workers = _env_int(
        env, "VALIDATION_WORKERS", config.validation.max_workers)

    suffixes = env.get(ENV_PREFIX + "FAMILY_SUFFIXES")
    if suffixes:
        config.dependencies.family_suffixes = [s.strip() for s in suffixes.split(",") if s.strip()]
    config.dependencies.enable_family_matching = _env_bool(
        env, "FAMILY_MATCHING", config.dependencies.enable_family_matching)

    config.execution.fallback_enabled = _env_bool(
        env, "FALLBACK_ENABLED", config.execution.fallback_enabled)
    config.execution.timeout_seconds = _env_float(
        env, "EXECUTION_TIMEOUT", config.execution.timeout_seconds)

    config.jobs.max_workers = _env_int(env, "MAX_CONCURRENT", config.jobs.max_workers)
    config.jobs.max_pending_jobs = _env_int(env, "MAX_PENDING", config.jobs.max_pending_jobs)

    config.storage_backend = env.get(ENV_PREFIX + "STORAGE_BACKEND", config.storage_backend)
    config.storage_path = env.get(ENV_PREFIX + "STORAGE_PATH", config.storage_path)
    config.log_level = env.get(ENV_PREFIX + "LOG_LEVEL", config.log_level)

    return config


def configure_logging(level: str = "INFO") -> None:
    """Install a root handler at the given level."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))


def get_default_config() -> PipelineConfig:
    """Get default configuration."""
    return PipelineConfig()
