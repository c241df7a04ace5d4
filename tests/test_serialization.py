"""Tests for canonical plan/template JSON."""
import json

from workout_planner_api.services.block_library import insert_block
from workout_planner_api.services.plan_editor import create_group
from workout_planner_api.services.serialization import (
    deserialize_plan,
    deserialize_template,
    serialize_plan,
    serialize_template,
)


class TestRoundTrip:
    def test_plan_round_trip_is_byte_identical(self, simple_plan, warmup_template):
        plan = create_group(simple_plan, ["bench", "row"], "superset", rounds=3)
        plan, _ = insert_block(plan, warmup_template)
        first = serialize_plan(plan)
        second = serialize_plan(deserialize_plan(first))
        assert first == second
        assert serialize_plan(deserialize_plan(second)) == second

    def test_template_round_trip(self, warmup_template):
        first = serialize_template(warmup_template)
        assert serialize_template(deserialize_template(first)) == first

    def test_keys_sorted_and_nulls_dropped(self, simple_plan):
        text = serialize_plan(simple_plan)
        data = json.loads(text)
        assert list(data) == sorted(data)
        assert "description" not in data
        assert "percentage" not in data["exercises"][0]

    def test_field_order_does_not_matter(self, simple_plan):
        data = json.loads(serialize_plan(simple_plan))
        reordered = json.dumps(dict(reversed(list(data.items()))))
        assert serialize_plan(deserialize_plan(reordered)) == serialize_plan(simple_plan)
