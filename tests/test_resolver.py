"""
Dependency Resolution Tests

Run with: pytest tests/test_resolver.py -v
"""

import pytest

from xsltflow_core.dependencies import (
    BasenameMatcher,
    DependencyResolver,
    DependencyStatus,
    ExactNameMatcher,
    PatternFamilyMatcher,
    default_matchers,
    find_directives,
)
from xsltflow_core.config.settings import DependencyConfig
from xsltflow_core.errors import InvalidTransition

from conftest import COMMON_XSL, put_text


def stylesheet(*directives: str) -> str:
    body = "\n  ".join(directives)
    return (
        '<xsl:stylesheet version="1.0" xmlns:xsl="http://www.w3.org/1999/XSL/Transform">\n'
        f"  {body}\n"
        '  <xsl:template match="/"><out/></xsl:template>\n'
        "</xsl:stylesheet>"
    )


class TestDirectiveScan:
    """Tests for directive discovery."""

    def test_zero_directives_gives_empty_report(self, store):
        """A stylesheet without directives resolves to nothing and never fails."""
        report = DependencyResolver().resolve(stylesheet(), store.documents())
        assert report.dependencies == []
        assert report.errors == []
        assert not report.has_missing

    def test_n_directives_give_n_records_in_order(self, store):
        """Every directive yields one record, in declaration order."""
        text = stylesheet(
            '<xsl:import href="a.xsl"/>',
            '<xsl:include href="b.xsl"/>',
            "<xsl:include href='c.xsl'/>",
        )
        report = DependencyResolver().resolve(text, store.documents())
        assert [d.declared_path for d in report.dependencies] == ["a.xsl", "b.xsl", "c.xsl"]
        assert [d.operation for d in report.dependencies] == ["import", "include", "include"]

    def test_duplicate_directives_are_kept(self, store):
        """Duplicates are recorded once per occurrence."""
        put_text(store, "common.xsl", COMMON_XSL)
        text = stylesheet('<xsl:include href="common.xsl"/>', '<xsl:include href="common.xsl"/>')
        report = DependencyResolver().resolve(text, store.documents())
        assert len(report.dependencies) == 2
        assert all(d.status == DependencyStatus.RESOLVED for d in report.dependencies)

    def test_find_directives(self):
        """find_directives lists operation and path pairs."""
        text = stylesheet('<xsl:include href="x/y.xsl"/>')
        assert find_directives(text) == [("include", "x/y.xsl")]


class TestResolution:
    """Tests for matching and marker substitution."""

    def test_resolved_directive_is_replaced_by_marker(self, store):
        """Resolved directives become a marker comment; content is not inlined."""
        handle = put_text(store, "common.xsl", COMMON_XSL)
        text = stylesheet('<xsl:include href="common.xsl"/>')
        report = DependencyResolver().resolve(text, store.documents())

        dependency = report.dependencies[0]
        assert dependency.status == DependencyStatus.RESOLVED
        assert dependency.resolved_doc_id == handle
        assert dependency.matched_by == "exact"
        assert "<!-- INCLUDE: common.xsl - resolved to common.xsl, supplied separately -->" in report.text
        assert "<xsl:include" not in report.text
        assert "list-titles" not in report.text

    def test_missing_directive_is_reported(self, store):
        """Unresolved directives get a distinct marker and an error string."""
        text = stylesheet('<xsl:include href="Missing.xsl"/>')
        report = DependencyResolver().resolve(text, store.documents())

        assert report.has_missing
        assert report.missing_paths == ["Missing.xsl"]
        assert report.errors == ["Missing dependency: Missing.xsl"]
        assert "<!-- Missing include: Missing.xsl -->" in report.text
        assert report.dependencies[0].resolved_doc_id is None

    def test_basename_match_with_either_slash_style(self, store):
        """Paths are matched by base filename, with / or \\ separators."""
        put_text(store, "common.xsl", COMMON_XSL)
        text = stylesheet('<xsl:include href="../shared/common.xsl"/>', '<xsl:import href="lib\\common.xsl"/>')
        report = DependencyResolver().resolve(text, store.documents())
        assert [d.matched_by for d in report.dependencies] == ["basename", "basename"]

    def test_pattern_family_match(self, store):
        """W2CMStyle.xsl resolves to W2Style.xsl through the family matcher."""
        handle = put_text(store, "W2Style.xsl", COMMON_XSL)
        text = stylesheet('<xsl:include href="W2CMStyle.xsl"/>')
        report = DependencyResolver().resolve(text, store.documents())
        assert report.dependencies[0].resolved_doc_id == handle
        assert report.dependencies[0].matched_by == "pattern-family"

    def test_family_matching_can_be_disabled(self, store):
        """Without the family matcher the same reference is missing."""
        put_text(store, "W2Style.xsl", COMMON_XSL)
        config = DependencyConfig(enable_family_matching=False)
        resolver = DependencyResolver.from_config(config)
        report = resolver.resolve(stylesheet('<xsl:include href="W2CMStyle.xsl"/>'), store.documents())
        assert report.missing_paths == ["W2CMStyle.xsl"]

    def test_stylesheet_is_excluded_from_its_own_pool(self, store):
        """A stylesheet never resolves a directive to itself."""
        text = stylesheet('<xsl:include href="self.xsl"/>')
        handle = put_text(store, "self.xsl", text)
        report = DependencyResolver().resolve(text, store.documents(), stylesheet_id=handle)
        assert report.missing_paths == ["self.xsl"]
        assert report.dependencies[0].stylesheet_id == handle

    def test_collect_resources_fixes_html_entities(self, store):
        """Resolved content is keyed by declared path and base name, entities fixed."""
        put_text(store, "common.xsl", COMMON_XSL)
        resolver = DependencyResolver()
        report = resolver.resolve(stylesheet('<xsl:include href="lib/common.xsl"/>'), store.documents())
        resources = resolver.collect_resources(report, store)

        assert set(resources) == {"lib/common.xsl", "common.xsl"}
        assert "&#160;" in resources["common.xsl"]
        assert "&nbsp;" not in resources["common.xsl"]


class TestMatchers:
    """Tests for individual matcher strategies."""

    def test_default_chain_order(self):
        """Exact, then basename, then pattern family."""
        assert [m.name for m in default_matchers()] == ["exact", "basename", "pattern-family"]

    def test_exact_matches_handle(self, store):
        """ExactNameMatcher accepts a document handle as reference."""
        handle = put_text(store, "common.xsl", COMMON_XSL)
        assert ExactNameMatcher().match(handle, store.documents()).id == handle

    def test_basename_matcher_ignores_empty_reference(self, store):
        """A reference with no filename never matches."""
        put_text(store, "common.xsl", COMMON_XSL)
        assert BasenameMatcher().match("", store.documents()) is None

    def test_family_prefers_longest_shared_stem(self, store):
        """Among several family members the longest shared stem wins."""
        put_text(store, "W2Style.xsl", COMMON_XSL)
        best = put_text(store, "W2CStyle.xsl", COMMON_XSL)
        match = PatternFamilyMatcher().match("W2CMStyle.xsl", store.documents())
        assert match.id == best

    def test_family_respects_min_prefix_length(self, store):
        """Stems shorter than the minimum shared prefix never match."""
        put_text(store, "WStyle.xsl", COMMON_XSL)
        assert PatternFamilyMatcher(min_prefix_length=2).match("WXStyle.xsl", store.documents()) is None

    def test_family_requires_suffix(self, store):
        """References outside the family suffix are ignored."""
        put_text(store, "W2Style.xsl", COMMON_XSL)
        assert PatternFamilyMatcher().match("W2CM.xsl", store.documents()) is None


class TestDependencyRecord:
    """Tests for the Dependency state machine."""

    def test_status_changes_only_once(self, store):
        """A dependency leaves pending exactly once."""
        report = DependencyResolver().resolve(stylesheet('<xsl:include href="gone.xsl"/>'), store.documents())
        dependency = report.dependencies[0]
        with pytest.raises(InvalidTransition):
            dependency.mark_resolved("x", "exact")
        with pytest.raises(InvalidTransition):
            dependency.mark_missing()

    def test_to_dict(self, store):
        """Serialized records carry the status value."""
        report = DependencyResolver().resolve(stylesheet('<xsl:include href="gone.xsl"/>'), store.documents())
        data = report.dependencies[0].to_dict()
        assert data["status"] == "missing"
        assert data["declared_path"] == "gone.xsl"
