"""Unit tests for plan validation and normalization."""

import pytest

from data_agent.utils.errors import (
    InvalidPlan,
    UnknownColumn,
    UnknownTable,
    UnsupportedAggregate,
    UnsupportedOperator,
)
from data_agent.utils.plan_validator import PlanValidator, safe_identifier
from data_agent.utils.state import AggregateSpec, SchemaEntry


class TestAcceptedPlans:
    """Plans whose references all exist in the schema."""

    def test_total_revenue_by_region(self, validator):
        """The aggregate example normalizes to the expected plan."""
        schema = [SchemaEntry(table="sales", columns=["region", "revenue"])]
        plan = validator.validate(
            {"table": "sales", "select": [{"agg": "SUM", "column": "revenue"}], "group_by": ["region"]},
            schema,
        )

        assert plan.model_dump() == {
            "table": "sales",
            "select": [{"agg": "SUM", "column": "revenue", "alias": "sum_revenue"}],
            "where": [],
            "group_by": ["region"],
            "limit": 100,
        }
        assert plan.params == []

    @pytest.mark.parametrize("plan", [
        {"table": "sales"},
        {"table": "sales", "select": ["region", "product"], "limit": 5},
        {"table": "sales", "select": [{"agg": "avg", "column": "revenue", "alias": "avg_rev"}], "group_by": ["product"]},
        {"table": "sales", "where": [{"column": "region", "op": "like", "value": "E%"}]},
        {"table": "sales", "select": ["region"], "where": [
            {"column": "revenue", "op": ">=", "value": 50},
            {"column": "product", "op": "=", "value": "widget"},
        ]},
    ])
    def test_normalized_identifiers_come_from_schema(self, validator, sales_schema, plan):
        """Every identifier in a normalized plan is one of the schema's identifiers."""
        normalized = validator.validate(plan, sales_schema)
        columns = set(sales_schema[0].columns)

        assert normalized.table == "sales"
        for item in normalized.select:
            name = item.column if isinstance(item, AggregateSpec) else item
            assert name in columns
        assert {p.column for p in normalized.where} <= columns
        assert set(normalized.group_by) <= columns

    def test_empty_select_means_all_columns_in_order(self, validator, sales_schema):
        plan = validator.validate({"table": "sales", "select": []}, sales_schema)
        assert plan.select == ["region", "revenue", "product"]

    def test_star_expands_to_all_columns(self, validator, sales_schema):
        plan = validator.validate({"table": "sales", "select": ["*"]}, sales_schema)
        assert plan.select == ["region", "revenue", "product"]

    def test_count_star(self, validator, sales_schema):
        plan = validator.validate(
            {"table": "sales", "select": ["region", {"agg": "COUNT", "column": "*"}], "group_by": ["region"]},
            sales_schema,
        )
        assert plan.select[1] == AggregateSpec(agg="COUNT", column="*", alias="count_all")

    def test_aggregate_and_operator_case_is_normalized(self, validator, sales_schema):
        plan = validator.validate(
            {
                "table": "sales",
                "select": [{"agg": "max", "column": "revenue", "alias": "top"}],
                "where": [{"column": "product", "op": "like", "value": "%get"}],
            },
            sales_schema,
        )
        assert plan.select[0].agg == "MAX"
        assert plan.where[0].op == "LIKE"

    def test_params_follow_where_order(self, validator, sales_schema):
        plan = validator.validate(
            {"table": "sales", "where": [
                {"column": "product", "op": "=", "value": "widget"},
                {"column": "revenue", "op": ">", "value": 10},
                {"column": "region", "op": "<=", "value": "M"},
            ]},
            sales_schema,
        )
        assert plan.params == ["widget", 10, "M"]

    def test_table_is_picked_from_several_entries(self, validator, sales_schema):
        schema = [SchemaEntry(table="costs", columns=["region", "cost"])] + sales_schema
        plan = validator.validate({"table": "costs", "select": ["cost"]}, schema)
        assert plan.table == "costs"


class TestRejectedPlans:
    """Each rule produces its own error."""

    def test_unknown_table(self, validator, sales_schema):
        with pytest.raises(UnknownTable) as exc_info:
            validator.validate({"table": "orders"}, sales_schema)
        assert "sales" in str(exc_info.value)

    def test_unknown_table_with_empty_schema(self, validator):
        with pytest.raises(UnknownTable):
            validator.validate({"table": "sales"}, [])

    @pytest.mark.parametrize("plan", [
        {"table": "sales", "select": ["profit"]},
        {"table": "sales", "select": [{"agg": "SUM", "column": "profit"}]},
        {"table": "sales", "where": [{"column": "profit", "op": "=", "value": 1}]},
        {"table": "sales", "group_by": ["profit"]},
        {"table": "sales", "select": ["Region"]},
    ])
    def test_unknown_column(self, validator, sales_schema, plan):
        with pytest.raises(UnknownColumn):
            validator.validate(plan, sales_schema)

    def test_star_only_allowed_for_count(self, validator, sales_schema):
        with pytest.raises(UnknownColumn):
            validator.validate({"table": "sales", "select": [{"agg": "SUM", "column": "*"}]}, sales_schema)

    @pytest.mark.parametrize("agg", ["MEDIAN", "sum(revenue)", 3, None])
    def test_unsupported_aggregate(self, validator, sales_schema, agg):
        with pytest.raises(UnsupportedAggregate):
            validator.validate(
                {"table": "sales", "select": [{"agg": agg, "column": "revenue"}]}, sales_schema
            )

    @pytest.mark.parametrize("op", ["DROP", "!=", "IN", "; DELETE", None])
    def test_unsupported_operator(self, validator, sales_schema, op):
        with pytest.raises(UnsupportedOperator):
            validator.validate(
                {"table": "sales", "where": [{"column": "region", "op": op, "value": "EU"}]}, sales_schema
            )

    def test_rules_apply_in_order(self, validator, sales_schema):
        """Column problems are reported before aggregate and operator problems."""
        with pytest.raises(UnknownColumn):
            validator.validate({
                "table": "sales",
                "select": [{"agg": "MEDIAN", "column": "profit"}],
                "where": [{"column": "region", "op": "DROP", "value": 1}],
            }, sales_schema)

        with pytest.raises(UnsupportedAggregate):
            validator.validate({
                "table": "sales",
                "select": [{"agg": "MEDIAN", "column": "revenue"}],
                "where": [{"column": "region", "op": "DROP", "value": 1}],
            }, sales_schema)

    @pytest.mark.parametrize("plan", [
        "SELECT * FROM sales",
        ["sales"],
        {"select": ["region"]},
        {"table": ""},
        {"table": "sales", "select": "region"},
        {"table": "sales", "select": [42]},
        {"table": "sales", "select": [{"agg": "SUM"}]},
        {"table": "sales", "select": [{"column": "revenue"}]},
        {"table": "sales", "select": [{"agg": "SUM", "column": "revenue", "alias": "x y"}]},
        {"table": "sales", "where": {"column": "region"}},
        {"table": "sales", "where": [{"column": "region", "op": "=", "value": ["EU", "US"]}]},
        {"table": "sales", "where": [{"column": "region", "op": "=", "value": None}]},
        {"table": "sales", "where": [{"column": "region", "op": "=", "value": True}]},
        {"table": "sales", "group_by": [["region"]]},
        {"table": "sales", "order_by": ["revenue"]},
    ])
    def test_invalid_plan_shape(self, validator, sales_schema, plan):
        with pytest.raises(InvalidPlan):
            validator.validate(plan, sales_schema)

    @pytest.mark.parametrize("value", [10 ** 20, 2 ** 63, -(2 ** 63) - 1, "\ud800", "EU\udcff"])
    def test_values_storage_cannot_bind(self, validator, sales_schema, value):
        """Out-of-range integers and unencodable text are plan errors the model can fix."""
        with pytest.raises(InvalidPlan):
            validator.validate(
                {"table": "sales", "where": [{"column": "revenue", "op": ">", "value": value}]},
                sales_schema,
            )

    def test_integer_bounds_are_inclusive(self, validator, sales_schema):
        for value in (2 ** 63 - 1, -(2 ** 63)):
            plan = validator.validate(
                {"table": "sales", "where": [{"column": "revenue", "op": ">", "value": value}]},
                sales_schema,
            )
            assert plan.params == [value]

    @pytest.mark.parametrize("select", [
        ["region", "region"],
        ["*", "region"],
        ["region", {"agg": "MAX", "column": "revenue", "alias": "region"}],
        [{"agg": "SUM", "column": "revenue"}, {"agg": "sum", "column": "revenue"}],
        [{"agg": "MIN", "column": "revenue", "alias": "x"}, {"agg": "MAX", "column": "revenue", "alias": "X"}],
    ])
    def test_duplicate_output_names(self, validator, sales_schema, select):
        with pytest.raises(InvalidPlan, match="more than once"):
            validator.validate({"table": "sales", "select": select}, sales_schema)


class TestLimit:
    """Every limit default is explicit."""

    @pytest.mark.parametrize("value, expected", [
        (None, 100),
        (10, 10),
        (10.0, 10),
        (100, 100),
        (5000, 100),
        (0, 100),
        (-5, 100),
        (2.5, 100),
        ("10", 100),
        ("ten", 100),
        (True, 100),
        (float("nan"), 100),
    ])
    def test_normalize_limit(self, value, expected):
        assert PlanValidator(default_limit=100).normalize_limit(value) == expected

    def test_absent_limit_uses_ceiling(self, sales_schema):
        plan = PlanValidator(default_limit=25).validate({"table": "sales"}, sales_schema)
        assert plan.limit == 25


def test_safe_identifier():
    assert safe_identifier("revenue") == "revenue"
    assert safe_identifier('x"; DROP TABLE sales; --') == "x___DROP_TABLE_sales____"
