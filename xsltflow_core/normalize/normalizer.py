"""
Stylesheet Normalizer
=====================

Textual rewrites that turn a stylesheet the primary engine rejected into
something the restricted fallback engine can still compile.

The rewrite is lossy by nature: it removes unsupported declarations and
replaces functions the fallback engine cannot evaluate with cheap
stand-ins. Output produced from a normalized stylesheet is always reported
as degraded.

Rules, applied in order:

1. Remove ``xsl:strip-space``, ``xsl:preserve-space``, ``xsl:decimal-format``,
   ``xsl:key`` and ``xsl:namespace-alias`` declarations
2. ``xsl:output method="html"`` becomes ``method="xml"``
3. Drop ``disable-output-escaping`` attributes
4. ``key(...)`` becomes an empty string literal
5. Predicates calling ``key(`` or ``generate-id(`` become ``[position()=1]``
6. Top-level unions in ``select``/``match`` become ``*``, in ``test`` ``true()``
7. ``generate-id(...)`` becomes ``position()``, ``current()`` and
   ``document(...)`` become ``.``

Rules 2-7 only ever touch attribute values inside start tags, so quoting
and attribute values containing ``>`` survive the rewrite. Comments, CDATA
sections and processing instructions are left alone. Applying the
normalizer twice gives the same text as applying it once.
"""

import re
from dataclasses import dataclass, field
from html.entities import name2codepoint
from typing import Callable, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


UNSUPPORTED_ELEMENTS = (
    "xsl:strip-space",
    "xsl:preserve-space",
    "xsl:decimal-format",
    "xsl:key",
    "xsl:namespace-alias",
)

# Rule identifiers, in application order
RULE_UNSUPPORTED_ELEMENTS = "unsupported-elements"
RULE_OUTPUT_METHOD = "output-method"
RULE_DISABLE_OUTPUT_ESCAPING = "disable-output-escaping"
RULE_KEY_CALLS = "key-calls"
RULE_FUNCTION_PREDICATES = "function-predicates"
RULE_UNIONS = "union-expressions"
RULE_FUNCTION_CALLS = "function-calls"

RULES = (
    RULE_UNSUPPORTED_ELEMENTS,
    RULE_OUTPUT_METHOD,
    RULE_DISABLE_OUTPUT_ESCAPING,
    RULE_KEY_CALLS,
    RULE_FUNCTION_PREDICATES,
    RULE_UNIONS,
    RULE_FUNCTION_CALLS,
)

_ATTRS = r'(?:\s+[^\s=/>]+\s*=\s*(?:"[^"]*"|\'[^\']*\'))*'

_MARKUP_PATTERN = re.compile(
    r'(?P<skip><!--.*?-->|<!\[CDATA\[.*?\]\]>|<\?.*?\?>)'
    r'|<(?P<name>[A-Za-z_][\w.:-]*)(?P<attrs>' + _ATTRS + r')(?P<tail>\s*/?>)',
    re.DOTALL,
)

_ATTR_PATTERN = re.compile(
    r'(?P<ws>\s+)(?P<name>[^\s=/>]+)(?P<eq>\s*=\s*)(?:"(?P<dq>[^"]*)"|\'(?P<sq>[^\']*)\')'
)

_AVT_PATTERN = re.compile(r'\{[^{}]*\}')

# Union simplification per attribute: (attribute, replacement)
_UNION_REPLACEMENTS = {
    "select": "*",
    "match": "*",
    "test": "true()",
}

# HTML-only named entities; the five XML ones are left alone
_XML_ENTITIES = {"amp", "lt", "gt", "quot", "apos"}
_ENTITY_PATTERN = re.compile(r'&([A-Za-z][A-Za-z0-9]*);')


@dataclass
class NormalizationResult:
    """
    Outcome of a normalization pass.

    Attributes:
        text: Normalized stylesheet text
        fixes_by_type: Number of rewrites applied, per rule
        fix_descriptions: One line per rule that fired
    """
    text: str
    fixes_by_type: Dict[str, int] = field(default_factory=lambda: {rule: 0 for rule in RULES})
    fix_descriptions: List[str] = field(default_factory=list)

    @property
    def total_fixes(self) -> int:
        return sum(self.fixes_by_type.values())

    @property
    def changed(self) -> bool:
        return self.total_fixes > 0

    def add_fixes(self, rule: str, count: int) -> None:
        if count:
            self.fixes_by_type[rule] = self.fixes_by_type.get(rule, 0) + count

    def summary(self) -> str:
        if not self.changed:
            return "Normalization: no rewrites needed"
        applied = ", ".join(f"{rule}={count}" for rule, count in self.fixes_by_type.items() if count)
        return f"Normalization: {self.total_fixes} rewrite(s) ({applied})"


# ============================================================================
# EXPRESSION HELPERS
# ============================================================================

def _scan_to_close(expr: str, start: int, open_char: str, close_char: str) -> int:
    """
    Index just past the ``close_char`` balancing ``expr[start]``, honouring
    string literals. Returns -1 when the expression is unbalanced.
    """
    depth = 0
    quote: Optional[str] = None
    i = start
    while i < len(expr):
        ch = expr[i]
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == open_char:
            depth += 1
        elif ch == close_char:
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return -1


def _in_literal(expr: str, index: int) -> bool:
    """True when ``expr[index]`` lies inside a string literal."""
    quote: Optional[str] = None
    for ch in expr[:index]:
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
    return quote is not None


def _find_call(expr: str, function: str, start: int = 0):
    """First call of ``function`` at or after ``start`` outside string literals."""
    pattern = re.compile(r'(?<![\w.:-])' + re.escape(function) + r'\s*\(')
    match = pattern.search(expr, start)
    while match is not None and _in_literal(expr, match.start()):
        match = pattern.search(expr, match.end())
    return match


def _replace_calls(expr: str, function: str, replacement: str) -> tuple:
    """Replace every call of ``function`` (with its arguments) by ``replacement``."""
    out = []
    count = 0
    pos = 0
    while True:
        match = _find_call(expr, function, pos)
        if match is None:
            break
        end = _scan_to_close(expr, match.end() - 1, '(', ')')
        if end < 0:
            break
        out.append(expr[pos:match.start()])
        out.append(replacement)
        count += 1
        pos = end
    out.append(expr[pos:])
    return "".join(out), count


def _replace_predicates(expr: str, needles: tuple, replacement: str) -> tuple:
    """Replace predicates mentioning any of ``needles``; recurse into the rest."""
    out = []
    count = 0
    pos = 0
    quote: Optional[str] = None
    i = 0
    while i < len(expr):
        ch = expr[i]
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == '[':
            end = _scan_to_close(expr, i, '[', ']')
            if end < 0:
                break
            inner = expr[i + 1:end - 1]
            out.append(expr[pos:i])
            if any(_find_call(inner, n) is not None for n in needles):
                out.append(replacement)
                count += 1
            else:
                rewritten, nested = _replace_predicates(inner, needles, replacement)
                out.append(f"[{rewritten}]")
                count += nested
            pos = i = end
            continue
        i += 1
    out.append(expr[pos:])
    return "".join(out), count


def has_top_level_union(expr: str) -> bool:
    """True when ``expr`` contains ``|`` outside literals, predicates and parentheses."""
    depth = 0
    quote: Optional[str] = None
    for ch in expr:
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
        elif ch == '|' and depth == 0:
            return True
    return False


def _rewrite_expression(expr: str, quote: str, attr_name: str, result: NormalizationResult) -> str:
    """Apply rules 4-7 to one XPath expression."""
    empty_literal = "''" if quote == '"' else '""'

    expr, n = _replace_calls(expr, "key", empty_literal)
    result.add_fixes(RULE_KEY_CALLS, n)

    expr, n = _replace_predicates(expr, ("key", "generate-id"), "[position()=1]")
    result.add_fixes(RULE_FUNCTION_PREDICATES, n)

    union_replacement = _UNION_REPLACEMENTS.get(attr_name)
    if union_replacement is not None and has_top_level_union(expr):
        expr = union_replacement
        result.add_fixes(RULE_UNIONS, 1)

    calls = 0
    expr, n = _replace_calls(expr, "generate-id", "position()")
    calls += n
    expr, n = _replace_calls(expr, "current", ".")
    calls += n
    expr, n = _replace_calls(expr, "document", ".")
    calls += n
    result.add_fixes(RULE_FUNCTION_CALLS, calls)
    return expr


# ============================================================================
# RULES
# ============================================================================

def _remove_unsupported_elements(text: str, result: NormalizationResult) -> str:
    for element in UNSUPPORTED_ELEMENTS:
        name = re.escape(element)
        comment = f"<!-- Removed unsupported {element} -->"
        paired = re.compile(r'<' + name + _ATTRS + r'\s*>.*?</' + name + r'\s*>', re.DOTALL)
        self_closing = re.compile(r'<' + name + _ATTRS + r'\s*/>')

        text, paired_count = paired.subn(comment, text)
        text, closed_count = self_closing.subn(comment, text)
        removed = paired_count + closed_count
        if removed:
            result.add_fixes(RULE_UNSUPPORTED_ELEMENTS, removed)
            logger.info(f"Removed {removed} instances of {element}")
    return text


def _rewrite_tag(match: 're.Match', result: NormalizationResult) -> str:
    if match.group('skip'):
        return match.group(0)

    tag_name = match.group('name')
    is_xslt = tag_name.startswith("xsl:")
    attrs = []

    for attr in _ATTR_PATTERN.finditer(match.group('attrs')):
        name = attr.group('name')
        quote = '"' if attr.group('dq') is not None else "'"
        value = attr.group('dq') if attr.group('dq') is not None else attr.group('sq')

        if name == "disable-output-escaping":
            result.add_fixes(RULE_DISABLE_OUTPUT_ESCAPING, 1)
            continue

        if tag_name == "xsl:output" and name == "method" and value.strip().lower() == "html":
            value = "xml"
            result.add_fixes(RULE_OUTPUT_METHOD, 1)
        elif is_xslt:
            value = _rewrite_expression(value, quote, name, result)
        elif '{' in value:
            # Attribute value templates on literal result elements
            value = _AVT_PATTERN.sub(
                lambda avt: "{" + _rewrite_expression(avt.group(0)[1:-1], quote, "", result) + "}",
                value,
            )

        attrs.append(f"{attr.group('ws')}{name}{attr.group('eq')}{quote}{value}{quote}")

    return f"<{tag_name}{''.join(attrs)}{match.group('tail')}"


def normalize_with_report(stylesheet_text: str) -> NormalizationResult:
    """
    Normalize a stylesheet and report how many rewrites each rule applied.

    Args:
        stylesheet_text: Stylesheet source (after dependency resolution)

    Returns:
        NormalizationResult with the rewritten text and per-rule counts
    """
    logger.info("Preprocessing stylesheet to handle unsupported constructs...")
    result = NormalizationResult(text=stylesheet_text)

    text = _remove_unsupported_elements(stylesheet_text, result)
    text = _MARKUP_PATTERN.sub(lambda m: _rewrite_tag(m, result), text)

    result.text = text
    for rule, count in result.fixes_by_type.items():
        if count:
            result.fix_descriptions.append(f"{rule}: {count} rewrite(s)")
    logger.info(result.summary())
    return result


def normalize(stylesheet_text: str) -> str:
    """Normalize a stylesheet for the fallback engine. Pure and idempotent."""
    return normalize_with_report(stylesheet_text).text


def fix_html_entities(text: str) -> str:
    """
    Replace HTML-only named entities (``&nbsp;``, ``&copy;`` ...) with numeric
    character references so the text parses as plain XML.
    """
    def replace(match: 're.Match') -> str:
        name = match.group(1)
        if name in _XML_ENTITIES or name not in name2codepoint:
            return match.group(0)
        return f"&#{name2codepoint[name]};"

    return _ENTITY_PATTERN.sub(replace, text)


class StylesheetNormalizer:
    """Callable wrapper so the executor can take the normalizer as a collaborator."""

    def __init__(self, rewrite: Callable[[str], NormalizationResult] = normalize_with_report):
        self._rewrite = rewrite

    def normalize(self, stylesheet_text: str) -> str:
        return self._rewrite(stylesheet_text).text

    def normalize_with_report(self, stylesheet_text: str) -> NormalizationResult:
        return self._rewrite(stylesheet_text)
