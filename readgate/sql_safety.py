"""
Read-only classifier for user-supplied SQL.

Strips comments, masks string literals and then classifies the statement
lexically: a single statement, starting with a read-only keyword, with no
destructive statement pattern anywhere in its text.  This is not a SQL
parser; it only looks far enough into the text to decide intent.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from readgate.errors import FAILED_PRECONDITION, INVALID_ARGUMENT, GateError

logger = logging.getLogger(__name__)

BIGQUERY = "bigquery"
SPANNER = "spanner"

_DIALECT_LABELS = {
    BIGQUERY: "BigQuery",
    SPANNER: "Spanner",
}


@dataclass(frozen=True)
class DestructivePattern:
    pattern: re.Pattern
    description: str


READ_ONLY_PREFIXES = frozenset({
    "SELECT",
    "WITH",
    "EXPLAIN",
    "SHOW",
    "DESCRIBE",
})


# ---------------------------------------------------------------------------
# Destructive statement patterns
# ---------------------------------------------------------------------------

def _pattern(regex: str, description: str) -> DestructivePattern:
    return DestructivePattern(re.compile(regex, re.IGNORECASE), description)


_COMMON_PATTERNS = (
    _pattern(r"\bINSERT\s+INTO\b", "INSERT statements modify data."),
    _pattern(r"\bUPDATE\s+[A-Z0-9_\"`\[\]]+", "UPDATE statements modify data."),
    _pattern(r"\bDELETE\s+FROM\b", "DELETE statements remove data."),
    _pattern(r"\bMERGE\s+[A-Z0-9_\"`\[\]]+", "MERGE statements modify data."),
    _pattern(r"\bREPLACE\s+[A-Z0-9_\"`\[\]]+", "REPLACE statements modify data."),
    _pattern(r"\bTRUNCATE\s+(TABLE|TEMP|TEMPORARY)\b", "TRUNCATE statements remove data."),
    _pattern(r"\bDROP\s+(TABLE|INDEX|DATABASE|SCHEMA|VIEW)\b", "DROP statements remove schema objects."),
    _pattern(r"\bALTER\s+(TABLE|DATABASE|SCHEMA|INDEX|VIEW)\b", "ALTER statements change schema objects."),
)

_PERMISSION_PATTERNS = (
    _pattern(r"\bGRANT\s+", "GRANT statements change permissions."),
    _pattern(r"\bREVOKE\s+", "REVOKE statements change permissions."),
    _pattern(
        r"\bBEGIN\b|\bCOMMIT\b|\bROLLBACK\b|\bSTART\s+TRANSACTION\b",
        "Transaction control statements are not allowed.",
    ),
)

BIGQUERY_DESTRUCTIVE_PATTERNS: tuple[DestructivePattern, ...] = (
    *_COMMON_PATTERNS,
    _pattern(
        r"\bCREATE\s+(TABLE|INDEX|DATABASE|SCHEMA|VIEW|FUNCTION|PROCEDURE|MODEL)\b",
        "CREATE statements change schema.",
    ),
    *_PERMISSION_PATTERNS,
    _pattern(r"\bEXPORT\s+DATA\b", "EXPORT DATA writes to Cloud Storage and is not read-only."),
    _pattern(r"\bLOAD\s+DATA\b", "LOAD DATA imports new rows and is not read-only."),
)

SPANNER_DESTRUCTIVE_PATTERNS: tuple[DestructivePattern, ...] = (
    *_COMMON_PATTERNS,
    _pattern(
        r"\bCREATE\s+(TABLE|INDEX|DATABASE|SCHEMA|VIEW|FUNCTION|PROCEDURE)\b",
        "CREATE statements change schema.",
    ),
    *_PERMISSION_PATTERNS,
)

_DIALECT_PATTERNS = {
    BIGQUERY: BIGQUERY_DESTRUCTIVE_PATTERNS,
    SPANNER: SPANNER_DESTRUCTIVE_PATTERNS,
}


# ---------------------------------------------------------------------------
# Lexical sanitizer
# ---------------------------------------------------------------------------

# Comments and string literals are recognised in a single left-to-right
# scan, so whichever starts first wins: a comment marker inside a literal
# is literal text, and a quote inside a comment is comment text.
#
# Literals take an optional raw/byte prefix, then a triple-quoted,
# single-quoted or double-quoted body.  Doubled quotes and backslash
# escapes stay inside the literal.
_LEXICAL_RE = re.compile(
    r"(?P<literal>(?:[rb]{1,2})?"
    r"(?:'''.*?'''"
    r'|""".*?"""'
    r"|'(?:''|\\'|[^'])*?'"
    r'|"(?:""|\\"|[^"])*?"))'
    r"|(?P<comment>/\*.*?\*/|--[^\n]*|#[^\n]*)",
    re.IGNORECASE | re.DOTALL,
)
_LITERAL_PREFIX_RE = re.compile(r"^[rb]{1,2}", re.IGNORECASE)

_WHITESPACE_RE = re.compile(r"\s+")
_FIRST_KEYWORD_RE = re.compile(r"^([A-Z]+)", re.IGNORECASE)


def _empty_literal(literal: str) -> str:
    prefix_match = _LITERAL_PREFIX_RE.match(literal)
    prefix = prefix_match.group(0) if prefix_match else ""
    body = literal[len(prefix):]

    if body.startswith("'''"):
        return f"{prefix}''''''"
    if body.startswith('"""'):
        return f'{prefix}""""""'
    if body.startswith('"'):
        return f'{prefix}""'
    return f"{prefix}''"


def _scrub(sql: str, strip_comments: bool, mask_literals: bool) -> str:
    def replace(match: re.Match) -> str:
        literal = match.group("literal")
        if literal is not None:
            return _empty_literal(literal) if mask_literals else literal
        return " " if strip_comments else match.group(0)

    return _LEXICAL_RE.sub(replace, sql)


def remove_sql_comments(sql: str) -> str:
    return _scrub(sql, strip_comments=True, mask_literals=False)


def mask_string_literals(sql: str) -> str:
    """Replace the contents of every string literal with an empty literal
    of the same quoting style, keeping any raw/byte prefix."""
    return _scrub(sql, strip_comments=False, mask_literals=True)


def normalize_whitespace(sql: str) -> str:
    return _WHITESPACE_RE.sub(" ", sql).strip()


def sanitize_sql(sql: str) -> str:
    """Strip comments, mask string literals and collapse whitespace.

    Keywords, semicolons and comment markers that only appear inside
    comments or string literals are gone from the result, so they can
    neither trigger nor defeat classification.
    """
    return normalize_whitespace(_scrub(sql, strip_comments=True, mask_literals=True))


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def ensure_single_statement(sanitized: str) -> None:
    first_semicolon = sanitized.find(";")
    if first_semicolon == -1:
        return

    trailing = sanitized[first_semicolon + 1:].strip()
    if trailing:
        raise GateError(
            "Multiple SQL statements detected. Only a single read-only statement is permitted.",
            FAILED_PRECONDITION,
            400,
        )


def extract_first_keyword(sanitized: str) -> str | None:
    match = _FIRST_KEYWORD_RE.match(sanitized.lstrip())
    return match.group(1).upper() if match else None


def find_destructive_pattern(
    sanitized: str,
    dialect: str = BIGQUERY,
) -> DestructivePattern | None:
    """Return the first destructive pattern found in *sanitized*, if any."""
    for entry in _DIALECT_PATTERNS[dialect]:
        if entry.pattern.search(sanitized):
            return entry
    return None


def assert_read_only(sql: str, dialect: str = BIGQUERY) -> None:
    """Raise ``GateError`` unless *sql* is a single read-only statement.

    Checks run cheapest first and stop at the first failure: empty input,
    empty after sanitizing, multiple statements, leading keyword, then the
    destructive pattern scan.
    """
    if dialect not in _DIALECT_PATTERNS:
        raise ValueError(f"Unknown SQL dialect: {dialect!r}")

    if not sql or not sql.strip():
        raise GateError(
            "SQL query cannot be empty. Provide a read-only SELECT statement.",
            INVALID_ARGUMENT,
            400,
        )

    sanitized = sanitize_sql(sql)
    if not sanitized:
        raise GateError(
            "SQL query cannot be empty after removing comments. Provide a read-only SELECT statement.",
            INVALID_ARGUMENT,
            400,
        )

    ensure_single_statement(sanitized)

    first_keyword = extract_first_keyword(sanitized)
    if not first_keyword or first_keyword not in READ_ONLY_PREFIXES:
        detected = first_keyword or "unknown"
        raise GateError(
            f'Blocked unsafe SQL. Detected "{detected}" statement. '
            "Only read-only queries (SELECT, WITH, EXPLAIN, SHOW, DESCRIBE) are allowed.",
            FAILED_PRECONDITION,
            400,
            detail=detected,
        )

    violation = find_destructive_pattern(sanitized, dialect)
    if violation is not None:
        logger.warning(
            "Blocked unsafe %s SQL query: %s (pattern %s)",
            _DIALECT_LABELS[dialect],
            violation.description,
            violation.pattern.pattern,
        )
        raise GateError(
            f"Blocked unsafe SQL. {violation.description} Only read-only queries are permitted.",
            FAILED_PRECONDITION,
            400,
            detail=violation.description,
        )


def assert_read_only_bigquery_query(sql: str) -> None:
    assert_read_only(sql, BIGQUERY)


def assert_read_only_spanner_query(sql: str) -> None:
    assert_read_only(sql, SPANNER)
