"""
Dependency Matchers
===================

Strategies for matching a declared include/import path against the
documents in the store. The resolver tries them in order and stops at the
first strategy that produces a match, so strategies can be added or removed
without touching resolver logic.

Built-in order: exact name -> base filename -> pattern family.
"""

from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from typing import List, Optional, Sequence, Tuple
import logging

from xsltflow_core.storage import Document

logger = logging.getLogger(__name__)


def basename(path: str) -> str:
    """Base filename of a reference, accepting either slash style."""
    return PurePosixPath(path.replace("\\", "/")).name


class DependencyMatcher(ABC):
    """One matching strategy."""

    name = "matcher"

    @abstractmethod
    def match(self, declared_path: str, candidates: Sequence[Document]) -> Optional[Document]:
        """Return the matching candidate, or None."""


class ExactNameMatcher(DependencyMatcher):
    """Reference string equals a document's name or handle."""

    name = "exact"

    def match(self, declared_path: str, candidates: Sequence[Document]) -> Optional[Document]:
        for doc in candidates:
            if doc.name == declared_path or doc.id == declared_path:
                return doc
        return None


class BasenameMatcher(DependencyMatcher):
    """Base filename of the reference equals the document's (base) name."""

    name = "basename"

    def match(self, declared_path: str, candidates: Sequence[Document]) -> Optional[Document]:
        wanted = basename(declared_path)
        if not wanted:
            return None
        for doc in candidates:
            if doc.name == wanted or doc.basename == wanted:
                return doc
        return None


class PatternFamilyMatcher(DependencyMatcher):
    """
    Best-effort match within a family of near-identical filenames.

    Files sharing a conventional suffix (``Style.xsl`` by default) match when
    one stem is a prefix of the other, i.e. the names differ only by an infix
    inserted between a common prefix and the suffix::

        W2CMStyle.xsl  ->  W2Style.xsl
        W2Style.xsl    ->  W2CMStyle.xsl

    The candidate with the longest shared stem wins; ties go to pool order.
    This is a heuristic for one family of government form stylesheets and is
    never authoritative.
    """

    name = "pattern-family"

    def __init__(self, suffixes: Sequence[str] = ("Style.xsl",), min_prefix_length: int = 2):
        self.suffixes = [s for s in suffixes if s]
        self.min_prefix_length = max(1, min_prefix_length)

    def _stem(self, filename: str) -> Optional[Tuple[str, str]]:
        for suffix in self.suffixes:
            if filename.endswith(suffix) and len(filename) > len(suffix):
                return filename[:-len(suffix)], suffix
        return None

    def match(self, declared_path: str, candidates: Sequence[Document]) -> Optional[Document]:
        declared = self._stem(basename(declared_path))
        if declared is None:
            return None
        declared_stem, suffix = declared

        best: Optional[Document] = None
        best_score = 0
        for doc in candidates:
            stem = self._stem(doc.basename)
            if stem is None or stem[1] != suffix:
                continue
            candidate_stem = stem[0]
            shorter, longer = sorted((declared_stem, candidate_stem), key=len)
            if len(shorter) < self.min_prefix_length or not longer.startswith(shorter):
                continue
            if len(shorter) > best_score:
                best, best_score = doc, len(shorter)

        if best is not None:
            logger.info(f"Pattern-family match: {declared_path} -> {best.name}")
        return best


def default_matchers(family_suffixes: Sequence[str] = ("Style.xsl",),
                     min_prefix_length: int = 2,
                     enable_family_matching: bool = True) -> List[DependencyMatcher]:
    """The built-in strategy chain."""
    matchers: List[DependencyMatcher] = [ExactNameMatcher(), BasenameMatcher()]
    if enable_family_matching and family_suffixes:
        matchers.append(PatternFamilyMatcher(family_suffixes, min_prefix_length))
    return matchers
