"""Unit tests for plan editing: scoped ordering, groups and load types."""
import pytest

from workout_planner_api.exceptions import (
    PlanValidationError,
    ReferentialIntegrityError,
    ScopeError,
)
from workout_planner_api.models import ExerciseGroup, LibraryExercise, WorkoutPlan
from workout_planner_api.services import plan_editor
from workout_planner_api.services.plan_editor import (
    add_exercise,
    add_exercise_from_library,
    create_group,
    delete_exercise,
    delete_group,
    execution_sequence,
    group_index,
    move_exercise,
    move_exercise_to_group,
    scope_members,
    scope_of,
    set_weight_type,
    update_exercise,
    update_group,
)


def _assert_dense(plan: WorkoutPlan):
    scopes = {scope_of(ex) for ex in plan.exercises}
    for scope in scopes:
        orders = [ex.order for ex in scope_members(plan.exercises, scope)]
        assert orders == list(range(1, len(orders) + 1)), f"{scope}: {orders}"


def _ids(exercises):
    return [ex.id for ex in exercises]


class TestOrdering:
    """Order values stay dense 1..N inside every scope."""

    def test_add_appends_to_end_of_scope(self, simple_plan, make_exercise):
        plan = add_exercise(simple_plan, make_exercise("deadlift", order=1))
        assert _ids(plan.exercises)[-1] == "deadlift"
        assert plan.exercises[-1].order == 4
        _assert_dense(plan)

    def test_add_blank_exercise_defaults(self, empty_plan):
        plan = add_exercise(empty_plan)
        ex = plan.exercises[0]
        assert ex.exercise_name == "New Exercise"
        assert (ex.sets, ex.reps, ex.rest_time) == (3, 10, 120)
        assert ex.weight_type == "fixed"
        assert ex.order == 1

    def test_add_from_library(self, empty_plan):
        plan = add_exercise_from_library(empty_plan, LibraryExercise(id="lib-ohp", name="Overhead Press"))
        assert plan.exercises[0].exercise_id == "lib-ohp"
        assert plan.exercises[0].exercise_name == "Overhead Press"

    def test_add_rejects_duplicate_id(self, simple_plan, make_exercise):
        with pytest.raises(PlanValidationError):
            add_exercise(simple_plan, make_exercise("bench"))

    def test_add_rejects_blank_name(self, simple_plan, make_exercise):
        with pytest.raises(PlanValidationError):
            add_exercise(simple_plan, make_exercise("blank", name="   "))

    def test_delete_closes_gap(self, simple_plan):
        plan = delete_exercise(simple_plan, "bench")
        assert _ids(plan.exercises) == ["squat", "row"]
        assert [ex.order for ex in plan.exercises] == [1, 2]

    def test_delete_unknown_exercise(self, simple_plan):
        with pytest.raises(ReferentialIntegrityError):
            delete_exercise(simple_plan, "missing")

    def test_move_swaps_with_neighbour(self, simple_plan):
        plan = move_exercise(simple_plan, "row", "up")
        assert _ids(scope_members(plan.exercises, plan_editor.TOP_LEVEL)) == ["squat", "row", "bench"]
        assert _ids(plan.exercises) == ["squat", "row", "bench"]
        _assert_dense(plan)

    @pytest.mark.parametrize("exercise_id,direction", [("squat", "up"), ("row", "down")])
    def test_move_past_edge_is_noop(self, simple_plan, exercise_id, direction):
        assert move_exercise(simple_plan, exercise_id, direction) is simple_plan

    def test_move_does_not_mutate_input(self, simple_plan):
        move_exercise(simple_plan, "row", "up")
        assert [ex.order for ex in simple_plan.exercises] == [1, 2, 3]
        assert _ids(simple_plan.exercises) == ["squat", "bench", "row"]

    def test_move_with_wrong_scope_raises(self, circuit_plan):
        with pytest.raises(ScopeError):
            move_exercise(circuit_plan, "burpee", "down")

    def test_move_inside_group(self, circuit_plan):
        plan = move_exercise(circuit_plan, "swing", "up", scope_group_id="grp-c")
        members = group_index(plan)["grp-c"]
        assert _ids(members) == ["swing", "burpee"]
        _assert_dense(plan)

    def test_random_edit_sequence_keeps_density(self, simple_plan, make_exercise):
        plan = simple_plan
        plan = add_exercise(plan, make_exercise("dip"))
        plan = move_exercise(plan, "dip", "up")
        plan = create_group(plan, ["bench", "dip"], "superset", rounds=3)
        plan = add_exercise(plan, make_exercise("curl"))
        plan = delete_exercise(plan, "squat")
        plan = move_exercise(plan, "curl", "up")
        group_id = plan.groups[0].id
        plan = move_exercise_to_group(plan, "curl", group_id)
        plan = move_exercise(plan, "curl", "up", scope_group_id=group_id)
        plan = delete_group(plan, group_id)
        _assert_dense(plan)
        assert {ex.id for ex in plan.exercises} == {"bench", "dip", "row", "curl"}


class TestGroups:
    """Group membership is a back-reference and always points at a real group."""

    def test_create_group_sets_membership(self, simple_plan):
        plan = create_group(simple_plan, ["bench", "row"], "superset", rounds=3, rest_between_rounds=90)
        group = plan.groups[0]
        assert group.name == "Group 1"
        assert group.rounds == 3
        assert _ids(group_index(plan)[group.id]) == ["bench", "row"]
        assert [ex.order for ex in group_index(plan)[group.id]] == [1, 2]
        _assert_dense(plan)

    def test_create_group_requires_exercises(self, simple_plan):
        with pytest.raises(PlanValidationError):
            create_group(simple_plan, [], "circuit")

    def test_create_group_across_blocks_raises(self, simple_plan):
        plan = simple_plan.model_copy(
            update={
                "exercises": [
                    simple_plan.exercises[0].model_copy(update={"block_instance_id": "block-a"}),
                    *simple_plan.exercises[1:],
                ],
                "block_instances": [],
            }
        )
        with pytest.raises(ScopeError):
            create_group(plan, ["squat", "bench"], "superset")

    def test_delete_group_clears_members(self, circuit_plan):
        plan = delete_group(circuit_plan, "grp-c")
        assert plan.groups == []
        assert all(ex.group_id is None for ex in plan.exercises)
        _assert_dense(plan)

    def test_every_group_reference_resolves(self, circuit_plan, make_exercise):
        plan = add_exercise(circuit_plan, make_exercise("jump", group_id="grp-c"))
        group_ids = {group.id for group in plan.groups}
        assert all(ex.group_id in group_ids for ex in plan.exercises if ex.group_id)

    def test_add_to_unknown_group_raises(self, simple_plan, make_exercise):
        with pytest.raises(ReferentialIntegrityError):
            add_exercise(simple_plan, make_exercise("jump", group_id="nope"))

    def test_move_exercise_into_group_appends_last(self, circuit_plan):
        plan = move_exercise_to_group(circuit_plan, "squat", "grp-c")
        assert _ids(group_index(plan)["grp-c"]) == ["burpee", "swing", "squat"]
        _assert_dense(plan)

    def test_move_into_group_of_other_block_raises(self, circuit_plan):
        groups = [circuit_plan.groups[0].model_copy(update={"block_instance_id": None})]
        other = ExerciseGroup(id="grp-b", name="Other", type="superset", block_instance_id="block-x")
        plan = circuit_plan.model_copy(update={"groups": [*groups, other]})
        with pytest.raises(ScopeError):
            move_exercise_to_group(plan, "squat", "grp-b")

    def test_update_group_keeps_block_instance(self, circuit_plan):
        edited = circuit_plan.groups[0].model_copy(update={"rounds": 4, "block_instance_id": "block-z"})
        plan = update_group(circuit_plan, edited)
        assert plan.groups[0].rounds == 4
        assert plan.groups[0].block_instance_id is None

    def test_update_exercise_cannot_change_group(self, circuit_plan):
        moved = circuit_plan.exercises[0].model_copy(update={"group_id": "grp-c"})
        with pytest.raises(ScopeError):
            update_exercise(circuit_plan, moved)

    def test_dangling_reference_is_logged_when_lenient(self, lenient_references, simple_plan, caplog):
        broken = simple_plan.model_copy(
            update={"exercises": [simple_plan.exercises[0].model_copy(update={"group_id": "ghost"})]}
        )
        plan = plan_editor.rebuild_plan(broken)
        assert plan.exercises[0].group_id == "ghost"
        assert "missing group ghost" in caplog.text


class TestExecutionSequence:
    def test_group_members_run_together(self, circuit_plan):
        assert _ids(execution_sequence(circuit_plan.exercises)) == ["squat", "burpee", "swing", "plank"]

    def test_members_emitted_by_order(self, circuit_plan):
        swapped = [
            ex.model_copy(update={"order": 3 - ex.order}) if ex.group_id else ex
            for ex in circuit_plan.exercises
        ]
        assert _ids(execution_sequence(swapped)) == ["squat", "swing", "burpee", "plank"]

    def test_top_level_follows_order_field(self, simple_plan):
        shuffled = list(reversed(simple_plan.exercises))
        assert _ids(execution_sequence(shuffled)) == ["squat", "bench", "row"]


class TestWeightType:
    """Only the load field that matches the weight type survives."""

    def test_switch_to_bodyweight_clears_loads(self, make_exercise):
        ex = set_weight_type(make_exercise("pushup", weight=20, weight_max=30), "bodyweight")
        assert ex.weight is None and ex.weight_max is None
        assert ex.percentage is None

    def test_switch_fixed_to_percentage(self, make_exercise):
        ex = make_exercise("squat", weight=140)
        ex = set_weight_type(ex, "percentage")
        assert ex.weight is None
        ex = ex.model_copy(update={"percentage": 75})
        ex = set_weight_type(ex, "fixed")
        assert ex.percentage is None

    def test_constructor_drops_irrelevant_fields(self, make_exercise):
        ex = make_exercise("squat", weight_type="percentage", weight=100, percentage=80, percentage_base_kpi="kpi-squat")
        assert ex.weight is None
        assert ex.percentage == 80
        assert ex.percentage_base_kpi == "kpi-squat"

    def test_update_exercise_revalidates_load(self, simple_plan):
        edited = simple_plan.exercises[0].model_copy(update={"weight_type": "bodyweight"})
        plan = update_exercise(simple_plan, edited)
        assert plan.exercises[0].weight is None
        assert plan.exercises[0].order == 1
