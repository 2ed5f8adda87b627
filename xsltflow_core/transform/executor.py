"""
Transformation Executor
=======================

Runs one transformation with a primary-then-fallback strategy::

    START -> PRIMARY_ATTEMPT -> SUCCESS
                             -> FALLBACK_ATTEMPT -> SUCCESS (degraded)
                                                 -> FATAL

The primary engine gets the stylesheet untouched, with resolved
dependencies supplied as resources. If anything in the primary attempt
fails, the stylesheet is rewritten (directives replaced by markers, then
normalized) and handed to the fallback engine. When both fail the primary
error is the one reported; the fallback error is kept as a diagnostic.

Example:
    executor = TransformationExecutor(LxmlEngine(), RestrictedLxmlEngine(), store=store)
    result = executor.execute(xml_bytes, xsl_text, sink=write_result)
    if result.success:
        print(result.result_handle, result.output_size)
"""

import copy
import time
from dataclasses import dataclass, field, fields
from typing import Callable, Dict, List, Optional, Sequence, Union
import logging

from xsltflow_core.dependencies.resolver import DependencyResolver
from xsltflow_core.engines.base import EngineOutput, TransformationEngine
from xsltflow_core.errors import ExecutionFailure, PipelineError
from xsltflow_core.normalize.normalizer import NormalizationResult, StylesheetNormalizer
from xsltflow_core.storage import Document, DocumentStore

logger = logging.getLogger(__name__)

DEGRADED_NOTICE = (
    "Output produced by the reduced-capability fallback engine; "
    "fidelity may be degraded"
)

# Receives the engine output and returns a handle for the stored result
OutputSink = Callable[[EngineOutput], Optional[str]]


@dataclass
class TransformResult:
    """
    Outcome of one execution.

    Attributes:
        success: Whether either engine produced output
        output_size: Bytes handed to the output sink
        processing_time_ms: Wall-clock time from the primary attempt to the end
        errors: Errors; on failure the first entry is the primary error
        warnings: Non-fatal messages (engine warnings, degraded notice)
        degraded: True when the output came from the fallback engine
        engine: Name of the engine that produced the output
        result_handle: Handle returned by the output sink
        error: Primary error message on failure
        diagnostics: Secondary information (fallback error, rewrite summary)
    """
    success: bool
    output_size: int = 0
    processing_time_ms: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    degraded: bool = False
    engine: Optional[str] = None
    result_handle: Optional[str] = None
    error: Optional[str] = None
    diagnostics: List[str] = field(default_factory=list)
    media_type: Optional[str] = None
    primary_error: Optional[PipelineError] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict:
        return {
            f.name: copy.copy(getattr(self, f.name))
            for f in fields(self)
            if f.name != 'primary_error'
        }


class TransformationExecutor:
    """Drives the primary and fallback engines for one transformation at a time."""

    def __init__(self,
                 primary: TransformationEngine,
                 fallback: Optional[TransformationEngine] = None,
                 resolver: Optional[DependencyResolver] = None,
                 normalizer: Optional[StylesheetNormalizer] = None,
                 store: Optional[DocumentStore] = None,
                 fallback_enabled: bool = True):
        self.primary = primary
        self.fallback = fallback
        self.resolver = resolver or DependencyResolver()
        self.normalizer = normalizer or StylesheetNormalizer()
        self.store = store
        self.fallback_enabled = fallback_enabled and fallback is not None

    def _collect_resources(self,
                           stylesheet_text: str,
                           pool: Sequence[Document],
                           stylesheet_id: Optional[str]) -> Dict[str, str]:
        if self.store is None or not pool:
            return {}
        report = self.resolver.resolve(stylesheet_text, pool, stylesheet_id=stylesheet_id)
        return self.resolver.collect_resources(report, self.store)

    def _attempt_primary(self,
                         source: Union[str, bytes],
                         stylesheet_text: str,
                         pool: Sequence[Document],
                         stylesheet_id: Optional[str]) -> EngineOutput:
        engine = self.primary
        document = engine.load_document(source)
        resources = self._collect_resources(stylesheet_text, pool, stylesheet_id)
        program = engine.compile(stylesheet_text, resources)
        return engine.run(program, document)

    def _attempt_fallback(self,
                          source: Union[str, bytes],
                          stylesheet_text: str,
                          pool: Sequence[Document],
                          stylesheet_id: Optional[str]) -> tuple:
        engine = self.fallback
        report = self.resolver.resolve(stylesheet_text, pool, stylesheet_id=stylesheet_id)
        normalized: NormalizationResult = self.normalizer.normalize_with_report(report.text)

        document = engine.load_document(source)
        program = engine.compile(normalized.text)
        return engine.run(program, document), normalized

    @staticmethod
    def _as_pipeline_error(error: Exception) -> PipelineError:
        if isinstance(error, PipelineError):
            return error
        return ExecutionFailure(f"Unexpected engine error: {error}")

    def execute(self,
                source: Union[str, bytes],
                stylesheet_text: str,
                sink: Optional[OutputSink] = None,
                pool: Sequence[Document] = (),
                stylesheet_id: Optional[str] = None) -> TransformResult:
        """
        Transform ``source`` with ``stylesheet_text``.

        Args:
            source: Source XML document; bytes are parsed with their declared encoding
            stylesheet_text: Stylesheet source, directives intact
            sink: Receives the output; its return value becomes ``result_handle``
            pool: Candidate documents for include/import resolution
            stylesheet_id: Handle of the stylesheet, excluded from the pool

        Returns:
            TransformResult; engine failures never raise
        """
        start = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - start) * 1000)

        degraded = False
        warnings: List[str] = []
        diagnostics: List[str] = []

        try:
            output = self._attempt_primary(source, stylesheet_text, pool, stylesheet_id)
            engine_name = self.primary.name
        except Exception as e:
            primary_error = self._as_pipeline_error(e)
            if not isinstance(e, PipelineError):
                logger.exception("Primary engine raised an unexpected error")
            logger.error(f"Primary transformation failed: {primary_error}")

            if not self.fallback_enabled:
                return TransformResult(
                    success=False,
                    processing_time_ms=elapsed_ms(),
                    errors=[str(primary_error)],
                    error=str(primary_error),
                    primary_error=primary_error,
                )

            logger.info("Attempting fallback to reduced-capability engine...")
            try:
                output, normalized = self._attempt_fallback(source, stylesheet_text, pool, stylesheet_id)
            except Exception as fallback_exc:
                fallback_error = self._as_pipeline_error(fallback_exc)
                if not isinstance(fallback_exc, PipelineError):
                    logger.exception("Fallback engine raised an unexpected error")
                logger.error("Both primary and fallback transformations failed")
                logger.error(f"Fallback error: {fallback_error}")
                diagnostics.append(f"Fallback error: {fallback_error}")
                return TransformResult(
                    success=False,
                    processing_time_ms=elapsed_ms(),
                    errors=[str(primary_error), str(fallback_error)],
                    error=str(primary_error),
                    diagnostics=diagnostics,
                    primary_error=primary_error,
                )

            engine_name = self.fallback.name
            degraded = True
            warnings.append(DEGRADED_NOTICE)
            diagnostics.append(f"Primary error: {primary_error}")
            diagnostics.append(normalized.summary())
            logger.warning(f"Fallback transformation succeeded (degraded): {normalized.summary()}")

        warnings.extend(output.warnings)
        result_handle = sink(output) if sink is not None else None

        result = TransformResult(
            success=True,
            output_size=output.size,
            processing_time_ms=elapsed_ms(),
            warnings=warnings,
            degraded=degraded,
            engine=engine_name,
            result_handle=result_handle,
            diagnostics=diagnostics,
            media_type=output.media_type,
        )
        logger.info(
            f"Transformation completed by {engine_name} engine: "
            f"{output.size} bytes in {result.processing_time_ms}ms"
        )
        return result
