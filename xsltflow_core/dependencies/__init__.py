"""
Dependency Resolution
=====================

Resolution of xsl:include / xsl:import directives against stored documents.

Components:
- DependencyResolver: scans directives and produces a ResolutionReport
- DependencyMatcher: pluggable matching strategy (exact, basename, pattern family)
"""

from xsltflow_core.dependencies.matchers import (
    DependencyMatcher,
    ExactNameMatcher,
    BasenameMatcher,
    PatternFamilyMatcher,
    default_matchers,
)

from xsltflow_core.dependencies.resolver import (
    Dependency,
    DependencyStatus,
    DependencyResolver,
    ResolutionReport,
    find_directives,
)

__all__ = [
    "DependencyMatcher",
    "ExactNameMatcher",
    "BasenameMatcher",
    "PatternFamilyMatcher",
    "default_matchers",
    "Dependency",
    "DependencyStatus",
    "DependencyResolver",
    "ResolutionReport",
    "find_directives",
]
