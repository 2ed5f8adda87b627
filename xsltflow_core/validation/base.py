"""
Base Validation Classes
=======================

Abstract base classes for the validation framework. Extend these classes
to create validators for different document kinds and schema types.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """
    Container for validation results.

    Attributes:
        is_valid: Whether validation passed
        error_count: Total number of errors
        warning_count: Total number of warnings
        errors: List of error dictionaries with keys:
            - file: Source file name
            - line: Line number (optional)
            - column: Column number (optional)
            - type: Error type/category
            - message: Error description
            - severity: 'Error', 'Warning', or 'Info'
        metadata: Additional validation metadata
    """
    is_valid: bool = True
    error_count: int = 0
    warning_count: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_error(self,
                  file: str,
                  message: str,
                  error_type: str = "Validation Error",
                  line: Optional[int] = None,
                  column: Optional[int] = None,
                  severity: str = "Error") -> None:
        """Add an error (or warning/info entry) to the result."""
        self.errors.append({
            'file': file,
            'line': line,
            'column': column,
            'type': error_type,
            'message': message,
            'severity': severity,
        })

        if severity == "Error":
            self.error_count += 1
            self.is_valid = False
        elif severity == "Warning":
            self.warning_count += 1

    def messages(self, severity: str = "Error") -> List[str]:
        """Messages of the given severity, formatted with their line number."""
        formatted = []
        for error in self.errors:
            if error['severity'] != severity:
                continue
            if error['line']:
                formatted.append(f"line {error['line']}: {error['message']}")
            else:
                formatted.append(error['message'])
        return formatted

    def first_error(self) -> Optional[str]:
        """Message of the first error, or None if valid."""
        messages = self.messages()
        return messages[0] if messages else None

    def get_errors_by_type(self) -> Dict[str, int]:
        """Get error counts by type."""
        by_type: Dict[str, int] = {}
        for error in self.errors:
            error_type = error['type']
            by_type[error_type] = by_type.get(error_type, 0) + 1
        return by_type

    def summary(self) -> str:
        """Generate a text summary of validation results."""
        if self.is_valid:
            return "Validation PASSED - No errors found"

        lines = [
            f"Validation FAILED - {self.error_count} error(s), {self.warning_count} warning(s)",
            "",
            "Errors by type:",
        ]

        for error_type, count in sorted(self.get_errors_by_type().items(), key=lambda x: -x[1]):
            lines.append(f"  {error_type}: {count}")

        return "\n".join(lines)


class BaseValidator(ABC):
    """
    Abstract base class for validators.

    Subclasses check raw document bytes.

    Example:
        class RootElementValidator(BaseValidator):
            def validate_bytes(self, content, file_context="document"):
                result = ValidationResult()
                # ... validation logic ...
                return result
    """

    @abstractmethod
    def validate_bytes(self, content: bytes, file_context: str = "document") -> ValidationResult:
        """
        Validate document content.

        Args:
            content: Raw document bytes
            file_context: Name used in error entries

        Returns:
            ValidationResult with validation outcome
        """
        pass

    @property
    def schema_type(self) -> str:
        """Return the type of check this validator performs (e.g. 'XSD')."""
        return "Unknown"
