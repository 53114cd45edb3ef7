"""
Tests for readgate.sql_safety — lexical sanitizer and read-only SQL classifier.

Covers:
  - Comment stripping (block, line, hash) and string literal masking
  - Empty / comment-only input -> INVALID_ARGUMENT
  - Single-statement rule (semicolons inside literals are ignored)
  - Leading keyword allow-list
  - Destructive pattern scan and its single audit warning
  - BigQuery vs Spanner pattern sets
"""

import sys
import os
import logging
import pytest

# Ensure project root is importable.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from readgate.errors import FAILED_PRECONDITION, INVALID_ARGUMENT, GateError
from readgate.sql_safety import (
    BIGQUERY,
    BIGQUERY_DESTRUCTIVE_PATTERNS,
    READ_ONLY_PREFIXES,
    SPANNER,
    SPANNER_DESTRUCTIVE_PATTERNS,
    assert_read_only,
    assert_read_only_bigquery_query,
    assert_read_only_spanner_query,
    extract_first_keyword,
    find_destructive_pattern,
    mask_string_literals,
    remove_sql_comments,
    sanitize_sql,
)


def _reject(sql, dialect=BIGQUERY):
    with pytest.raises(GateError) as exc_info:
        assert_read_only(sql, dialect)
    return exc_info.value


# =========================================================================
# Sanitizer
# =========================================================================

class TestSanitizer:

    def test_removes_block_comments(self):
        assert sanitize_sql("SELECT /* DROP TABLE x */ 1") == "SELECT 1"

    def test_removes_multiline_block_comment(self):
        assert sanitize_sql("SELECT 1 /* a\nDELETE FROM t\n*/ FROM t") == "SELECT 1 FROM t"

    def test_removes_line_comments(self):
        assert sanitize_sql("-- DROP TABLE t\nSELECT 1") == "SELECT 1"

    def test_removes_hash_comments(self):
        assert sanitize_sql("# DROP TABLE t\nSELECT 1") == "SELECT 1"

    def test_comment_removal_leaves_literals_alone(self):
        assert remove_sql_comments("SELECT '-- x' -- y") == "SELECT '-- x'  "

    def test_comment_removal_keeps_newline(self):
        assert remove_sql_comments("SELECT 1 -- trailing\nFROM t") == "SELECT 1  \nFROM t"

    def test_masks_single_quoted_literal(self):
        assert mask_string_literals("SELECT 'DROP TABLE x'") == "SELECT ''"

    def test_masks_double_quoted_literal(self):
        assert mask_string_literals('SELECT "a; b"') == 'SELECT ""'

    def test_masks_triple_quoted_literal_with_raw_prefix(self):
        assert mask_string_literals("SELECT r'''DROP TABLE x'''") == "SELECT r''''''"

    def test_masks_triple_double_quoted_literal(self):
        assert mask_string_literals('SELECT """line1\nDELETE FROM t"""') == 'SELECT """"""'

    def test_masks_byte_prefixed_literal(self):
        assert mask_string_literals("SELECT b'\\x00'") == "SELECT b''"

    def test_masks_literal_with_escaped_quote(self):
        assert sanitize_sql("SELECT 'it\\'s; DROP TABLE x'") == "SELECT ''"

    def test_collapses_whitespace(self):
        assert sanitize_sql("  SELECT\n\t*\n  FROM   t  ") == "SELECT * FROM t"

    def test_only_comments_sanitizes_to_empty(self):
        assert sanitize_sql("-- nothing here\n/* or here */") == ""

    def test_extract_first_keyword_uppercases(self):
        assert extract_first_keyword("select 1") == "SELECT"

    def test_extract_first_keyword_none_for_punctuation(self):
        assert extract_first_keyword("(SELECT 1)") is None


# =========================================================================
# Empty input
# =========================================================================

class TestEmptyInput:

    @pytest.mark.parametrize("sql", ["", "   ", "\n\t"])
    def test_blank_sql_is_invalid_argument(self, sql):
        err = _reject(sql)
        assert err.code == INVALID_ARGUMENT
        assert "cannot be empty" in err.message

    def test_comment_only_sql_is_invalid_argument(self):
        err = _reject("-- SELECT 1")
        assert err.code == INVALID_ARGUMENT
        assert "after removing comments" in err.message


# =========================================================================
# Accepted queries
# =========================================================================

class TestAcceptedQueries:

    @pytest.mark.parametrize("sql", [
        "SELECT * FROM dataset.table",
        "select name from t where id = 1",
        "WITH a AS (SELECT 1 AS x) SELECT x FROM a",
        "EXPLAIN SELECT 1",
        "SHOW TABLES",
        "DESCRIBE my_table",
        "SELECT 1;",
        "SELECT 1 ;   ",
    ])
    def test_read_only_statements_pass(self, sql):
        assert_read_only(sql)

    def test_destructive_keyword_in_literal_is_accepted(self):
        assert_read_only("SELECT 'DROP TABLE x'")

    def test_semicolon_in_literal_is_accepted(self):
        assert_read_only("SELECT * FROM t WHERE note = 'a; DELETE FROM t'")

    def test_commented_out_drop_is_accepted(self):
        assert_read_only("-- DROP TABLE t\nSELECT 1")

    def test_identifiers_containing_keywords_are_accepted(self):
        assert_read_only("SELECT begin_date, committed, updated_at FROM t")

    def test_replace_function_is_accepted(self):
        assert_read_only("SELECT REPLACE(name, 'a', 'b') FROM t")

    def test_no_warning_logged_on_success(self, caplog):
        with caplog.at_level(logging.WARNING, logger="readgate.sql_safety"):
            assert_read_only("SELECT 1")
        assert caplog.records == []


# =========================================================================
# Single-statement rule
# =========================================================================

class TestSingleStatement:

    def test_multiple_statements_rejected(self):
        err = _reject("SELECT * FROM t; DROP TABLE t")
        assert err.code == FAILED_PRECONDITION
        assert "Multiple SQL statements" in err.message

    def test_multiple_statements_rejected_before_pattern_scan(self, caplog):
        with caplog.at_level(logging.WARNING, logger="readgate.sql_safety"):
            _reject("SELECT * FROM t; DROP TABLE t")
        assert caplog.records == []

    def test_two_selects_rejected(self):
        err = _reject("SELECT 1; SELECT 2")
        assert "Multiple SQL statements" in err.message

    @pytest.mark.parametrize("sql", [
        "SELECT '#'; DROP TABLE t",
        "SELECT '-- x' FROM t; DELETE FROM t WHERE 1=1",
        "SELECT '/*'; DROP TABLE t; SELECT '*/'",
    ])
    def test_comment_marker_inside_literal_does_not_hide_statement(self, sql):
        err = _reject(sql)
        assert err.code == FAILED_PRECONDITION
        assert "Multiple SQL statements" in err.message

    def test_comment_marker_inside_literal_is_masked(self):
        assert sanitize_sql("SELECT '#'; DROP TABLE t") == "SELECT ''; DROP TABLE t"

    def test_quote_inside_comment_is_ignored(self):
        assert sanitize_sql("-- it's here\nSELECT 1 /* don't */ FROM t") == "SELECT 1 FROM t"


# =========================================================================
# Leading keyword rule
# =========================================================================

class TestLeadingKeyword:

    @pytest.mark.parametrize("sql,keyword", [
        ("DELETE FROM t WHERE id = 1", "DELETE"),
        ("insert into t values (1)", "INSERT"),
        ("UPDATE t SET x = 1", "UPDATE"),
        ("DROP TABLE t", "DROP"),
        ("CALL proc()", "CALL"),
    ])
    def test_non_read_keyword_rejected(self, sql, keyword):
        err = _reject(sql)
        assert err.code == FAILED_PRECONDITION
        assert err.detail == keyword
        assert f'"{keyword}"' in err.message

    def test_unknown_leading_token(self):
        err = _reject("(SELECT 1)")
        assert err.code == FAILED_PRECONDITION
        assert err.detail == "unknown"

    def test_prefix_set_matches_expected(self):
        assert READ_ONLY_PREFIXES == {"SELECT", "WITH", "EXPLAIN", "SHOW", "DESCRIBE"}


# =========================================================================
# Destructive pattern rule
# =========================================================================

class TestDestructivePatterns:

    def test_cte_with_insert_rejected(self):
        err = _reject("WITH x AS (SELECT 1) INSERT INTO t SELECT * FROM x")
        assert err.code == FAILED_PRECONDITION
        assert err.detail == "INSERT statements modify data."

    def test_rejection_logs_exactly_one_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="readgate.sql_safety"):
            _reject("WITH x AS (SELECT 1) DELETE FROM t WHERE true")
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "DELETE statements remove data." in warnings[0].getMessage()
        assert "DELETE" in warnings[0].getMessage()

    def test_transaction_control_rejected(self):
        err = _reject("SELECT * FROM t BEGIN")
        assert err.detail == "Transaction control statements are not allowed."

    def test_grant_rejected(self):
        err = _reject("SELECT 1 GRANT SELECT ON t TO bob")
        assert err.detail == "GRANT statements change permissions."

    def test_bigquery_blocks_export_data(self):
        assert find_destructive_pattern("SELECT 1 EXPORT DATA OPTIONS(uri='')", BIGQUERY) is not None

    def test_spanner_has_no_export_data_pattern(self):
        assert find_destructive_pattern("SELECT 1 EXPORT DATA OPTIONS(uri='')", SPANNER) is None

    def test_bigquery_blocks_create_model(self):
        assert find_destructive_pattern("SELECT 1 CREATE MODEL m", BIGQUERY) is not None
        assert find_destructive_pattern("SELECT 1 CREATE MODEL m", SPANNER) is None

    def test_pattern_set_sizes(self):
        assert len(BIGQUERY_DESTRUCTIVE_PATTERNS) == 14
        assert len(SPANNER_DESTRUCTIVE_PATTERNS) == 12

    def test_every_pattern_has_description(self):
        for entry in BIGQUERY_DESTRUCTIVE_PATTERNS + SPANNER_DESTRUCTIVE_PATTERNS:
            assert entry.description.endswith(".")


# =========================================================================
# Dialect wrappers and purity
# =========================================================================

class TestDialects:

    def test_bigquery_wrapper(self):
        assert_read_only_bigquery_query("SELECT 1")
        with pytest.raises(GateError):
            assert_read_only_bigquery_query("TRUNCATE TABLE t")

    def test_spanner_wrapper_accepts_double_quoted_literal(self):
        assert_read_only_spanner_query('SELECT "DROP TABLE x" AS s')

    def test_spanner_wrapper_rejects_merge(self):
        with pytest.raises(GateError) as exc_info:
            assert_read_only_spanner_query("WITH a AS (SELECT 1) MERGE target USING a ON true")
        assert exc_info.value.detail == "MERGE statements modify data."

    def test_unknown_dialect(self):
        with pytest.raises(ValueError):
            assert_read_only("SELECT 1", "postgres")

    def test_repeated_calls_give_same_outcome(self):
        sql = "SELECT 1; DROP TABLE t"
        first = _reject(sql)
        second = _reject(sql)
        assert (first.code, first.message) == (second.code, second.message)
