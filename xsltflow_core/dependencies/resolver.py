"""
Dependency Resolver
===================

Scans a stylesheet for ``xsl:include`` / ``xsl:import`` directives and
matches each one against the documents in the store.

Every directive yields exactly one ``Dependency`` record, in declaration
order, duplicates included. Resolved directives are replaced in the output
text by a marker comment (content is not inlined; the primary engine gets
dependency content through ``collect_resources``). Missing ones are replaced
by a distinct marker and reported as errors; the resolver itself never
raises for a missing dependency.

Example:
    resolver = DependencyResolver()
    report = resolver.resolve(xsl_text, store.documents(), stylesheet_id=handle)
    if report.has_missing:
        print(report.errors)
"""

import re
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional, Sequence
import logging

from xsltflow_core.errors import InvalidTransition, DocumentNotFound
from xsltflow_core.dependencies.matchers import DependencyMatcher, basename, default_matchers
from xsltflow_core.normalize.normalizer import fix_html_entities
from xsltflow_core.storage import Document, DocumentStore

logger = logging.getLogger(__name__)

DIRECTIVE_PATTERN = re.compile(
    r'<xsl:(?P<operation>include|import)\s+href\s*=\s*(?P<quote>["\'])(?P<path>[^"\']+)(?P=quote)[^>]*>'
)


class DependencyStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    MISSING = "missing"


@dataclass
class Dependency:
    """One include/import directive of one stylesheet."""

    stylesheet_id: Optional[str]
    declared_path: str
    operation: str = "include"
    status: DependencyStatus = DependencyStatus.PENDING
    resolved_doc_id: Optional[str] = None
    matched_by: Optional[str] = None

    def mark_resolved(self, doc_id: str, matched_by: str) -> None:
        if self.status != DependencyStatus.PENDING:
            raise InvalidTransition(f"Dependency {self.declared_path} already {self.status.value}")
        self.status = DependencyStatus.RESOLVED
        self.resolved_doc_id = doc_id
        self.matched_by = matched_by

    def mark_missing(self) -> None:
        if self.status != DependencyStatus.PENDING:
            raise InvalidTransition(f"Dependency {self.declared_path} already {self.status.value}")
        self.status = DependencyStatus.MISSING

    def to_dict(self) -> dict:
        data = asdict(self)
        data['status'] = self.status.value
        return data


@dataclass
class ResolutionReport:
    """Outcome of one resolution pass."""

    text: str
    dependencies: List[Dependency] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def missing(self) -> List[Dependency]:
        return [d for d in self.dependencies if d.status == DependencyStatus.MISSING]

    @property
    def resolved(self) -> List[Dependency]:
        return [d for d in self.dependencies if d.status == DependencyStatus.RESOLVED]

    @property
    def has_missing(self) -> bool:
        return bool(self.missing)

    @property
    def missing_paths(self) -> List[str]:
        return [d.declared_path for d in self.missing]


def _comment_safe(text: str) -> str:
    # "--" is not allowed inside an XML comment
    return text.replace("--", "- -")


def find_directives(stylesheet_text: str) -> List[tuple]:
    """Return ``(operation, path)`` for every directive, in declaration order."""
    return [(m.group('operation'), m.group('path')) for m in DIRECTIVE_PATTERN.finditer(stylesheet_text)]


class DependencyResolver:
    """Resolves include/import directives with an ordered list of matchers."""

    def __init__(self, matchers: Optional[Sequence[DependencyMatcher]] = None):
        self.matchers: List[DependencyMatcher] = list(matchers) if matchers is not None else default_matchers()

    @classmethod
    def from_config(cls, config) -> 'DependencyResolver':
        """Build from a ``DependencyConfig``."""
        return cls(default_matchers(
            family_suffixes=config.family_suffixes,
            min_prefix_length=config.min_prefix_length,
            enable_family_matching=config.enable_family_matching,
        ))

    def match(self, declared_path: str, candidates: Sequence[Document]) -> tuple:
        """Return ``(document, matcher_name)`` or ``(None, None)``."""
        for matcher in self.matchers:
            doc = matcher.match(declared_path, candidates)
            if doc is not None:
                return doc, matcher.name
        return None, None

    def resolve(self,
                stylesheet_text: str,
                candidate_pool: Sequence[Document],
                stylesheet_id: Optional[str] = None) -> ResolutionReport:
        """
        Resolve every directive in ``stylesheet_text`` against ``candidate_pool``.

        Args:
            stylesheet_text: Stylesheet source
            candidate_pool: Documents that may satisfy a directive
            stylesheet_id: Handle of the stylesheet (excluded from the pool)

        Returns:
            ResolutionReport with rewritten text, one Dependency per directive,
            and one error string per missing dependency
        """
        candidates = [d for d in candidate_pool if d.id != stylesheet_id]
        dependencies: List[Dependency] = []
        errors: List[str] = []

        def substitute(match: 're.Match') -> str:
            operation = match.group('operation')
            path = match.group('path')
            logger.info(f"Found {operation}: {path}")

            dependency = Dependency(stylesheet_id=stylesheet_id, declared_path=path, operation=operation)
            dependencies.append(dependency)

            doc, matched_by = self.match(path, candidates)
            if doc is not None:
                dependency.mark_resolved(doc.id, matched_by)
                logger.info(f"Resolved dependency: {path} -> {doc.name} ({matched_by})")
                return (f"<!-- {operation.upper()}: {_comment_safe(path)} - resolved to "
                        f"{_comment_safe(doc.name)}, supplied separately -->")

            dependency.mark_missing()
            errors.append(f"Missing dependency: {path}")
            logger.warning(f"Dependency not found: {path}")
            return f"<!-- Missing {operation}: {_comment_safe(path)} -->"

        text = DIRECTIVE_PATTERN.sub(substitute, stylesheet_text)

        logger.info(
            f"Dependency resolution completed: {len(dependencies)} directive(s), "
            f"{len(errors)} missing"
        )
        return ResolutionReport(text=text, dependencies=dependencies, errors=errors)

    def collect_resources(self, report: ResolutionReport, store: DocumentStore) -> Dict[str, str]:
        """
        Content of every resolved dependency, keyed by declared path and by
        base name, with HTML-only entities rewritten to numeric references.
        """
        resources: Dict[str, str] = {}
        for dependency in report.resolved:
            try:
                content = fix_html_entities(store.get_text(dependency.resolved_doc_id))
            except DocumentNotFound:
                logger.warning(f"Resolved dependency {dependency.declared_path} vanished from the store")
                continue
            except UnicodeDecodeError as e:
                logger.warning(f"Resolved dependency {dependency.declared_path} cannot be decoded: {e.reason}")
                continue
            resources.setdefault(dependency.declared_path, content)
            resources.setdefault(basename(dependency.declared_path), content)
        return resources
