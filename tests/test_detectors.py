"""Tests for the individual anti-pattern detectors."""

import pytest

from querylens.analyzer.detectors.correlated_subquery import (
    CorrelatedSubquery,
    CorrelatedSubqueryConfig,
)
from querylens.analyzer.detectors.heavy_aggregation import (
    HeavyAggregation,
    count_columns,
    group_by_clause,
)
from querylens.analyzer.detectors.late_filter import LateFilter
from querylens.analyzer.detectors.missing_index import (
    MissingIndex,
    create_index_statement,
    expected_reduction,
    find_alias,
    key_columns,
    short_table_name,
)
from querylens.analyzer.detectors.non_sargable import NonSargablePredicate
from querylens.analyzer.detectors.or_condition import OrCondition
from querylens.analyzer.models import IssueType, Severity
from querylens.exceptions import ConfigurationError
from querylens.plan.models import PlanNode


def make_node(
    operator_type: str = "Table Scan",
    cost_percentage: float = 72.0,
    elapsed_time_ms: float = 10_800.0,
    **kwargs,
) -> PlanNode:
    """Plan node whose cost share against a total of 100 is cost_percentage."""
    node = PlanNode(
        operator_type=operator_type,
        actual_cost=cost_percentage,
        elapsed_time_ms=elapsed_time_ms,
        **kwargs,
    )
    node.calculate_cost_percentage(100.0)
    return node


class TestNonSargablePredicate:
    """Tests for function-wrapped column detection."""

    def test_year_with_expensive_scan(self):
        """YEAR() = literal becomes a date range; the scan sets severity and cost."""
        sql = "SELECT *\nFROM gifts gd\nWHERE YEAR(gd.posted_date) = 2023"
        findings = NonSargablePredicate().detect(sql, [make_node()])

        assert len(findings) == 1
        finding = findings[0]
        assert finding.issue_type == IssueType.NON_SARGABLE_PREDICATE
        assert finding.severity == Severity.CRITICAL
        assert finding.line_number == 3
        assert finding.cost_percentage == pytest.approx(72.0)
        assert finding.time_impact_seconds == pytest.approx(10.8)
        assert not finding.cost_is_estimate
        assert "2023-01-01" in finding.optimized_fragment
        assert "2024-01-01" in finding.optimized_fragment
        assert "gd.posted_date" in finding.problem_description
        assert finding.fix_queries

    def test_year_without_plan_is_warning_estimate(self):
        findings = NonSargablePredicate().detect("WHERE YEAR(d) = 2023", [])

        assert findings[0].severity == Severity.WARNING
        assert findings[0].cost_percentage == 50.0
        assert findings[0].cost_is_estimate

    def test_warning_scan_keeps_warning(self):
        findings = NonSargablePredicate().detect(
            "WHERE YEAR(d) = 2023", [make_node(cost_percentage=15.0)]
        )

        assert findings[0].severity == Severity.WARNING
        assert findings[0].cost_percentage == pytest.approx(15.0)

    def test_cheap_scan_falls_back_to_estimate(self):
        """A scan under 10% is not expensive, so the flat estimate applies."""
        findings = NonSargablePredicate().detect(
            "WHERE YEAR(d) = 2023", [make_node(cost_percentage=5.0)]
        )

        assert findings[0].cost_is_estimate
        assert findings[0].cost_percentage == 50.0

    def test_year_with_unparsable_value_uses_parameters(self):
        findings = NonSargablePredicate().detect("WHERE YEAR(o.created) = :1", [])

        assert len(findings) == 1
        assert findings[0].optimized_fragment == (
            "o.created >= @start_date AND o.created < @end_date"
        )

    def test_fallback_cost_is_configurable(self):
        detector = NonSargablePredicate({"fallback_cost_percentage": 30.0})
        findings = detector.detect("WHERE YEAR(d) = 2023", [])

        assert findings[0].cost_percentage == 30.0

    def test_month(self):
        findings = NonSargablePredicate().detect("WHERE MONTH(o.created) = 6", [])

        assert len(findings) == 1
        assert "DATEFROMPARTS(@year, 6, 1)" in findings[0].optimized_fragment
        assert "MONTH()" in findings[0].problem_description

    def test_month_out_of_range(self):
        findings = NonSargablePredicate().detect("WHERE MONTH(o.created) = 13", [])

        assert "@month_start" in findings[0].optimized_fragment

    def test_datepart_suggests_computed_column(self):
        findings = NonSargablePredicate().detect(
            "WHERE DATEPART(quarter, o.created) = 2", []
        )

        assert len(findings) == 1
        assert "created_quarter" in findings[0].fix_queries[0]
        assert "PERSISTED" in findings[0].fix_queries[0]

    def test_coalesce_account_contact(self):
        """COALESCE on account/contact gets the UNION ALL split."""
        findings = NonSargablePredicate().detect(
            "WHERE COALESCE(gd.account, gd.contact) = @donor_id", [make_node()]
        )

        assert len(findings) == 1
        finding = findings[0]
        assert "UNION ALL" in finding.optimized_fragment
        fixes = " ".join(finding.fixes)
        assert "account" in fixes
        assert "contact" in fixes

    def test_coalesce_severity_follows_scan_cost(self):
        """A COALESCE finding costed from the plan is graded by that cost."""
        critical = NonSargablePredicate().detect(
            "WHERE COALESCE(gd.account, gd.contact) = @donor_id", [make_node()]
        )[0]
        warning = NonSargablePredicate().detect(
            "WHERE COALESCE(gd.account, gd.contact) = @donor_id",
            [make_node(cost_percentage=15.0)],
        )[0]

        assert critical.severity == Severity.CRITICAL
        assert critical.cost_percentage == pytest.approx(72.0)
        assert critical.related_node is not None
        assert not critical.cost_is_estimate
        assert warning.severity == Severity.WARNING
        assert warning.cost_percentage == pytest.approx(15.0)

    def test_coalesce_generic(self):
        findings = NonSargablePredicate().detect(
            "WHERE COALESCE(a.x, a.y) = 1", []
        )

        assert findings[0].severity == Severity.WARNING
        assert findings[0].cost_is_estimate
        assert findings[0].related_node is None
        assert findings[0].optimized_fragment is None
        assert "UNION" in findings[0].fixes[0]

    def test_isnull_default_equals_compared_value(self):
        findings = NonSargablePredicate().detect(
            "WHERE ISNULL(o.status, 'X') = 'X'", []
        )

        assert len(findings) == 1
        assert "UNION ALL" in findings[0].optimized_fragment
        assert "o.status IS NULL" in findings[0].optimized_fragment

    def test_isnull_default_differs(self):
        findings = NonSargablePredicate().detect(
            "WHERE ISNULL(o.status, 'N') = 'Y'", []
        )

        assert findings[0].optimized_fragment == "o.status = 'Y'"

    def test_isnull_without_simple_value(self):
        findings = NonSargablePredicate().detect(
            "WHERE ISNULL(o.qty, 0) = (SELECT 1)", []
        )

        assert findings[0].optimized_fragment == "(o.qty = @value OR o.qty IS NULL)"

    def test_left_becomes_prefix_like(self):
        findings = NonSargablePredicate().detect("WHERE LEFT(c.zip, 5) = '90210'", [])

        assert len(findings) == 1
        assert findings[0].optimized_fragment == "c.zip LIKE '90210%'"
        assert "LEFT()" in findings[0].problem_description

    def test_substring_from_start_becomes_prefix_like(self):
        findings = NonSargablePredicate().detect(
            "WHERE SUBSTRING(c.code, 1, 3) = 'ABC'", []
        )

        assert findings[0].optimized_fragment == "c.code LIKE 'ABC%'"

    def test_upper_drops_function(self):
        findings = NonSargablePredicate().detect("WHERE UPPER(c.email) = @email", [])

        assert findings[0].optimized_fragment == "c.email = @email"
        assert "email_upper" in findings[0].fix_queries[0]

    def test_string_function_without_comparison_is_ignored(self):
        assert NonSargablePredicate().detect("SELECT UPPER(c.name) AS name", []) == []

    def test_clean_query(self):
        assert NonSargablePredicate().detect("SELECT id FROM t WHERE id = 1", []) == []


SUBQUERY_SQL = """\
SELECT d.id,
  (SELECT MAX(g.posted_date)
     FROM gifts g
     WHERE g.donor_id = d.id
       AND g.amount > 0
  ) AS last_gift
FROM donors d"""


class TestCorrelatedSubquery:
    """Tests for per-row aggregate subquery detection."""

    def test_spans_the_whole_subquery(self):
        findings = CorrelatedSubquery().detect(SUBQUERY_SQL, [])

        assert len(findings) == 1
        finding = findings[0]
        assert finding.start_line == 2
        assert finding.end_line == 6
        assert finding.line_number == 2
        assert finding.query_fragment.startswith("(SELECT MAX(g.posted_date)")
        assert finding.query_fragment.endswith(") AS last_gift")
        assert "MAX()" in finding.problem_description
        assert "MAX(column_name)" in finding.optimized_fragment

    def test_default_execution_count_is_warning_estimate(self):
        finding = CorrelatedSubquery().detect(SUBQUERY_SQL, [])[0]

        assert finding.execution_count == 10_000
        assert finding.cost_is_estimate
        assert finding.severity == Severity.WARNING
        assert finding.cost_percentage == 10.0

    def test_outer_rows_from_plan(self):
        plan = [make_node("Nested Loops", cost_percentage=18.0, actual_rows=50_000)]
        finding = CorrelatedSubquery().detect(SUBQUERY_SQL, plan)[0]

        assert finding.execution_count == 50_000
        assert not finding.cost_is_estimate
        assert finding.severity == Severity.CRITICAL
        assert finding.cost_percentage == 20.0
        assert "50.0K" in finding.why_its_slow

    def test_scan_rows_are_not_outer_rows(self):
        plan = [make_node("Table Scan", actual_rows=5_000_000)]
        finding = CorrelatedSubquery().detect(SUBQUERY_SQL, plan)[0]

        assert finding.execution_count == 10_000

    def test_few_executions_is_info(self):
        plan = [make_node("Nested Loops", actual_rows=500)]
        finding = CorrelatedSubquery().detect(SUBQUERY_SQL, plan)[0]

        assert finding.severity == Severity.INFO
        assert finding.cost_percentage == 5.0

    def test_nested_subquery_not_reported_twice(self):
        sql = (
            "SELECT d.id,\n"
            "  (SELECT MAX(g.amount)\n"
            "     FROM gifts g\n"
            "     WHERE g.donor_id = d.id\n"
            "       AND g.fund IN (SELECT MIN(f.id)\n"
            "                      FROM funds f)\n"
            "  ) AS top_gift\n"
            "FROM donors d"
        )
        findings = CorrelatedSubquery().detect(sql, [])

        assert len(findings) == 1
        assert findings[0].end_line == 7

    def test_where_subquery_is_ignored(self):
        sql = "SELECT id FROM t\nWHERE id IN (SELECT MAX(id) FROM u)"
        assert CorrelatedSubquery().detect(sql, []) == []

    def test_commented_out_subquery_is_ignored(self):
        sql = (
            "SELECT d.id\n"
            "-- old: (SELECT MAX(g.dt) FROM gifts g WHERE g.d = d.id) AS last\n"
            "FROM donors d"
        )
        assert CorrelatedSubquery().detect(sql, []) == []

    def test_subquery_after_trailing_comment(self):
        sql = (
            "SELECT d.id, -- see (SELECT note)\n"
            "  (SELECT MAX(g.dt) FROM gifts g WHERE g.d = d.id) AS last\n"
            "FROM donors d"
        )
        findings = CorrelatedSubquery().detect(sql, [])

        assert [f.start_line for f in findings] == [2]

    def test_non_aggregate_subquery_is_ignored(self):
        sql = "SELECT (SELECT TOP 1 name FROM u WHERE u.id = t.id) AS n FROM t"
        assert CorrelatedSubquery().detect(sql, []) == []

    def test_single_line_subquery(self):
        sql = "SELECT (SELECT COUNT(*) FROM u WHERE u.t_id = t.id) AS n FROM t"
        findings = CorrelatedSubquery().detect(sql, [])

        assert len(findings) == 1
        assert findings[0].start_line == findings[0].end_line == 1

    def test_fragment_is_truncated(self):
        detector = CorrelatedSubquery({"max_fragment_length": 20})
        finding = detector.detect(SUBQUERY_SQL, [])[0]

        assert len(finding.query_fragment) == 23
        assert finding.query_fragment.endswith("...")

    def test_thresholds_must_be_ordered(self):
        with pytest.raises(ConfigurationError):
            CorrelatedSubquery({"critical_executions": 100, "warning_executions": 500})

    def test_config_model_rejects_unknown_keys(self):
        with pytest.raises(ValueError):
            CorrelatedSubqueryConfig(bogus=1)


class TestOrCondition:
    """Tests for OR predicate detection."""

    def test_simple_or_without_plan(self):
        findings = OrCondition().detect(
            "WHERE (gd.account = @id OR gd.contact = @id)", []
        )

        assert len(findings) == 1
        finding = findings[0]
        assert finding.severity == Severity.WARNING
        assert finding.cost_percentage == 15.0
        assert finding.cost_is_estimate
        assert "'gd.account'" in finding.problem_description
        assert "'gd.contact'" in finding.problem_description
        assert "UNION ALL" in finding.optimized_fragment

    def test_simple_or_with_expensive_scan(self):
        findings = OrCondition().detect(
            "WHERE (gd.account = @id OR gd.contact = @id)",
            [make_node(cost_percentage=30.0)],
        )

        assert findings[0].severity == Severity.CRITICAL
        assert findings[0].cost_percentage == pytest.approx(30.0)

    def test_complex_or(self):
        findings = OrCondition().detect(
            "  AND (dd.active = 1 OR (dd.bu = 'X' AND dd.dept = 'Y'))", []
        )

        assert len(findings) == 1
        assert findings[0].problem_description == "Complex OR condition may prevent index usage"
        assert findings[0].cost_percentage == 10.0

    def test_coalesce_in_where(self):
        sql = (
            "SELECT *\n"
            "FROM SFDC.dbo.GIVING_DETAIL gd\n"
            "WHERE COALESCE(gd.account, gd.contact) = @donor_id\n"
            "  AND gd.amount > 0"
        )
        scan = make_node(object_name="SFDC.dbo.GIVING_DETAIL")
        findings = OrCondition().detect(sql, [scan])

        assert len(findings) == 1
        finding = findings[0]
        assert finding.severity == Severity.CRITICAL
        assert finding.line_number == 3
        assert finding.query_fragment.startswith("WHERE COALESCE(gd.account, gd.contact) =")
        assert "FROM SFDC.dbo.GIVING_DETAIL" in finding.optimized_fragment
        assert (
            "CREATE INDEX IX_gd_account ON SFDC.dbo.GIVING_DETAIL (gd.account)"
            in finding.fix_queries[0]
        )
        assert "IX_gd_contact" in finding.fix_queries[0]
        assert finding.expected_improvement == "Converts scan to two seeks, typically 10x faster"

    def test_coalesce_without_plan_uses_placeholder_table(self):
        findings = OrCondition().detect("WHERE COALESCE(a, b) = 1", [])

        assert findings[0].severity == Severity.CRITICAL
        assert findings[0].cost_percentage == 25.0
        assert findings[0].cost_is_estimate
        assert "FROM fact_table" in findings[0].optimized_fragment

    def test_coalesce_on_moderate_scan_is_warning(self):
        findings = OrCondition().detect(
            "WHERE COALESCE(a, b) = 1", [make_node(cost_percentage=12.0)]
        )

        assert findings[0].severity == Severity.WARNING
        assert findings[0].cost_percentage == pytest.approx(12.0)
        assert findings[0].related_node is not None

    def test_no_or(self):
        assert OrCondition().detect("WHERE a = 1 AND b = 2", []) == []


LATE_FILTER_SQL = """\
SELECT gd.amount
FROM fact_gifts gd
JOIN dbo.designation_dim dd ON dd.id = gd.designation
WHERE dd.business_unit = 'Dornsife'"""


class TestLateFilter:
    """Tests for dimension filters applied after joins."""

    def test_filter_after_join(self):
        findings = LateFilter().detect(LATE_FILTER_SQL, [])

        assert len(findings) == 1
        finding = findings[0]
        assert finding.severity == Severity.WARNING
        assert finding.line_number == 4
        assert finding.start_line == 3
        assert finding.end_line == 4
        assert finding.problem_description == "Filter on dd.business_unit applied AFTER join"
        assert "line 3" in finding.why_its_slow
        assert "filtered_dd" in finding.optimized_fragment
        assert finding.cost_percentage == 8.0
        assert finding.cost_is_estimate

    def test_cost_from_expensive_join(self):
        join = make_node(
            "Hash Match (Inner Join)", cost_percentage=40.0, elapsed_time_ms=4000.0
        )
        finding = LateFilter().detect(LATE_FILTER_SQL, [join])[0]

        assert finding.cost_percentage == pytest.approx(20.0)
        assert finding.time_impact_seconds == pytest.approx(2.0)
        assert not finding.cost_is_estimate

    def test_filter_in_and_clause(self):
        sql = (
            "FROM fact_gifts gd\n"
            "LEFT JOIN region_dim AS r ON r.id = gd.region_id\n"
            "WHERE gd.amount > 0\n"
            "  AND r.region = 'West'"
        )
        findings = LateFilter().detect(sql, [])

        assert len(findings) == 1
        assert findings[0].line_number == 4
        assert "r.region" in findings[0].problem_description

    def test_fact_filter_is_ignored(self):
        sql = "FROM fact_gifts gd\nWHERE gd.status = 'A'"
        assert LateFilter().detect(sql, []) == []

    def test_commented_filter_is_ignored(self):
        sql = LATE_FILTER_SQL.replace("WHERE dd", "-- WHERE dd")
        assert LateFilter().detect(sql, []) == []

    def test_custom_dimension_columns(self):
        detector = LateFilter({"dimension_columns": ("fiscal_year",)})
        sql = LATE_FILTER_SQL.replace("business_unit", "fiscal_year")

        assert len(detector.detect(sql, [])) == 1
        assert detector.detect(LATE_FILTER_SQL, []) == []


MISSING_INDEX_SQL = """\
SELECT gd.amount, gd.posted_date, gd.account
FROM SFDC.dbo.GIVING_DETAIL gd
WHERE gd.posted_date >= '2023-01-01'
  AND gd.account = @id"""


def make_scan(**kwargs) -> PlanNode:
    values = dict(
        object_name="SFDC.dbo.GIVING_DETAIL",
        actual_rows=18_200_000,
        logical_reads=1_500_000,
        elapsed_time_ms=49_000.0,
    )
    values.update(kwargs)
    return make_node("Table Scan", **values)


class TestMissingIndex:
    """Tests for covering index recommendations."""

    def test_recommends_covering_index(self):
        findings = MissingIndex().detect(MISSING_INDEX_SQL, [make_scan()])

        assert len(findings) == 1
        finding = findings[0]
        assert finding.issue_type == IssueType.MISSING_INDEX
        assert finding.severity == Severity.CRITICAL
        assert finding.cost_percentage == pytest.approx(72.0)
        assert finding.time_impact_seconds == pytest.approx(49.0)
        assert finding.operator_name == "Table Scan on SFDC.dbo.GIVING_DETAIL (18.2M rows)"
        assert finding.problem_description == "Table/Index Scan on SFDC.dbo.GIVING_DETAIL"
        assert "18.2M rows" in finding.why_its_slow
        assert "1.5M logical pages" in finding.why_its_slow

        statement = finding.fix_queries[0]
        assert statement.startswith("CREATE INDEX IX_GIVING_DETAIL_posted_date_account")
        assert "ON SFDC.dbo.GIVING_DETAIL (posted_date, account)" in statement
        assert "INCLUDE (amount, posted_date, account)" in statement
        assert finding.optimized_fragment == statement
        assert len(finding.fixes) == 3
        assert "~95%" in finding.expected_improvement
        assert "910.0K" in finding.expected_improvement

    def test_unknown_alias_gives_generic_advice(self):
        scan = make_scan(object_name="dbo.OTHER_TABLE")
        findings = MissingIndex().detect(MISSING_INDEX_SQL, [scan])

        assert len(findings) == 1
        assert findings[0].fix_queries == ()
        assert findings[0].fixes[0] == "Add index on filtered/joined columns"
        assert "~50%" in findings[0].expected_improvement

    def test_cheap_scans_are_ignored(self):
        assert MissingIndex().detect(MISSING_INDEX_SQL, [make_scan(cost_percentage=3.0)]) == []

    def test_threshold_is_configurable(self):
        detector = MissingIndex({"min_cost_percentage": 80.0})
        assert detector.detect(MISSING_INDEX_SQL, [make_scan()]) == []

    def test_seeks_and_anonymous_scans_are_ignored(self):
        plan = [
            make_node("Index Seek", object_name="SFDC.dbo.GIVING_DETAIL"),
            make_node("Table Scan"),
        ]
        assert MissingIndex().detect(MISSING_INDEX_SQL, plan) == []

    def test_include_columns_are_capped(self):
        detector = MissingIndex({"max_include_columns": 1})
        finding = detector.detect(MISSING_INDEX_SQL, [make_scan()])[0]

        assert "INCLUDE (amount);" in finding.fix_queries[0]

    def test_short_table_name(self):
        assert short_table_name("[SFDC].[dbo].[GIFTS]") == "GIFTS"
        assert short_table_name("gifts") == "gifts"

    def test_find_alias_skips_keywords(self):
        sql = "SELECT * FROM gifts WHERE 1 = 1\nUNION ALL\nSELECT * FROM gifts AS g2"
        assert find_alias(sql, "dbo.gifts") == "g2"

    def test_find_alias_bracketed(self):
        assert find_alias("FROM [dbo].[GIFTS] g WHERE", "[dbo].[GIFTS]") == "g"

    def test_key_columns_include_join_keys(self):
        sql = "JOIN gifts g ON g.donor_id = d.id WHERE g.amount BETWEEN 1 AND 2"
        assert key_columns(sql, "g") == ["donor_id", "amount"]

    def test_create_index_statement(self):
        assert create_index_statement("dbo.t", ["a"], []) == "CREATE INDEX IX_t_a\nON dbo.t (a);"

    @pytest.mark.parametrize("keys,reduction", [(0, 50.0), (1, 80.0), (2, 95.0), (3, 98.0), (7, 98.0)])
    def test_expected_reduction(self, keys, reduction):
        assert expected_reduction(keys) == reduction


class TestHeavyAggregation:
    """Tests for expensive aggregation constructs."""

    def test_string_agg_distinct(self):
        findings = HeavyAggregation().detect(
            "  STRING_AGG(DISTINCT dd.name, ', ') AS names", []
        )

        assert len(findings) == 1
        finding = findings[0]
        assert finding.severity == Severity.WARNING
        assert finding.problem_description == "STRING_AGG with DISTINCT on large result set"
        assert finding.cost_percentage == 5.0
        assert finding.cost_is_estimate
        assert "dd.name AS value" in finding.optimized_fragment

    def test_string_agg_takes_aggregate_cost(self):
        plan = [
            make_node("Table Scan", cost_percentage=50.0),
            make_node("Stream Aggregate", cost_percentage=10.0, elapsed_time_ms=1000.0),
            make_node("Hash Match (Aggregate)", cost_percentage=30.0),
        ]
        finding = HeavyAggregation().detect("STRING_AGG(dd.name, ',')", plan)[0]

        assert finding.problem_description == "STRING_AGG on large result set"
        assert finding.cost_percentage == pytest.approx(6.0)
        assert finding.time_impact_seconds == pytest.approx(0.6)
        assert finding.operator_name == "Stream Aggregate"

    def test_count_distinct(self):
        findings = HeavyAggregation().detect("COUNT(DISTINCT gd.donor_id) AS donors", [])

        assert len(findings) == 1
        assert findings[0].severity == Severity.INFO
        assert findings[0].cost_percentage == 3.0

    def test_many_case_expressions(self):
        line = (
            "SUM(CASE WHEN a = 1 THEN 1 END), COUNT(CASE WHEN b = 1 THEN 1 END), "
            "SUM(CASE WHEN c = 1 THEN 1 END)"
        )
        findings = HeavyAggregation().detect(line, [])

        assert len(findings) == 1
        assert findings[0].problem_description == "3 CASE expressions in aggregation"
        assert findings[0].severity == Severity.INFO

    def test_two_case_expressions_are_fine(self):
        line = "SUM(CASE WHEN a = 1 THEN 1 END), SUM(CASE WHEN b = 1 THEN 1 END)"
        assert HeavyAggregation().detect(line, []) == []

    def test_wide_group_by(self):
        sql = "SELECT a, b, c, d, e, SUM(x)\nFROM t\nGROUP BY a, b, c, d, e"
        findings = HeavyAggregation().detect(sql, [])

        assert len(findings) == 1
        assert "5" in findings[0].problem_description
        assert findings[0].line_number == 3
        assert findings[0].query_fragment == "GROUP BY a, b, c, d, e"

    def test_multi_line_group_by(self):
        sql = "SELECT 1\nFROM t\nGROUP BY a,\n  b,\n  c,\n  d,\n  e\nORDER BY a"
        findings = HeavyAggregation().detect(sql, [])

        assert len(findings) == 1
        assert findings[0].problem_description.startswith("GROUP BY with 5 columns")

    def test_narrow_group_by(self):
        sql = "SELECT 1\nFROM t\nGROUP BY YEAR(d), MONTH(d), a, b"
        assert HeavyAggregation().detect(sql, []) == []

    def test_group_by_width_is_configurable(self):
        detector = HeavyAggregation({"min_group_by_columns": 2})
        assert len(detector.detect("SELECT 1 FROM t GROUP BY a, b", [])) == 1

    def test_group_by_clause_stops_at_terminators(self):
        sql = "GROUP BY a, b HAVING COUNT(*) > 1"
        assert group_by_clause(sql, len("GROUP BY")) == "a, b"

    def test_group_by_clause_stops_at_unopened_paren(self):
        sql = "(SELECT a FROM t GROUP BY a, b) x"
        start = sql.index("GROUP BY") + len("GROUP BY")
        assert group_by_clause(sql, start) == "a, b"

    @pytest.mark.parametrize(
        "clause,count",
        [("", 0), ("a", 1), ("a, b", 2), ("CONVERT(date, x), y", 2)],
    )
    def test_count_columns(self, clause, count):
        assert count_columns(clause) == count
