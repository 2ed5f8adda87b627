"""
Transformation Engine Interface
===============================

Abstract interface for the engines the executor drives. Engines are plain
objects injected into the executor; there is no process-wide engine
instance.

Every engine failure is raised as a ``PipelineError`` subclass:

- ``ValidationFailure``: source document could not be loaded
- ``CompilationFailure``: stylesheet could not be compiled
- ``ExecutionFailure``: the compiled program failed or produced no output
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass
class CompiledProgram:
    """
    A stylesheet compiled by one engine.

    Attributes:
        engine: Name of the engine that compiled it
        handle: Engine-specific compiled object
        output_method: Declared output method (xml, html or text)
        warnings: Messages reported while compiling
    """
    engine: str
    handle: Any
    output_method: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class EngineOutput:
    """Serialized result of running a compiled program."""

    content: bytes
    media_type: str = "xml"
    warnings: List[str] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return "html" if self.media_type == "html" else "xml"


class TransformationEngine(ABC):
    """
    Abstract base for XSLT engines.

    Subclasses implement document loading, compilation and execution.
    """

    name = "engine"

    @abstractmethod
    def load_document(self, content: Union[str, bytes]) -> Any:
        """
        Parse a source document. Bytes keep the encoding they declare.

        Raises:
            ValidationFailure: If the document cannot be loaded
        """

    @abstractmethod
    def compile(self, stylesheet_text: str, resources: Optional[Dict[str, str]] = None) -> CompiledProgram:
        """
        Compile a stylesheet.

        Args:
            stylesheet_text: Stylesheet source
            resources: Included/imported stylesheet content keyed by reference

        Raises:
            CompilationFailure: If the stylesheet cannot be compiled
        """

    @abstractmethod
    def run(self, program: CompiledProgram, source: Any) -> EngineOutput:
        """
        Apply a compiled program to a loaded source document.

        Raises:
            ExecutionFailure: If execution fails or produces no output
        """
