"""Tests for block instance customization tracking and reset."""
import pytest

from workout_planner_api.exceptions import ConfirmationRequiredError, PlanValidationError
from workout_planner_api.models import BlockTemplate, Exercise
from workout_planner_api.services.block_customizations import (
    compute_customizations,
    has_customizations,
    reset_to_template,
    save_block_instance,
)
from workout_planner_api.services.block_library import insert_block
from workout_planner_api.services.plan_editor import scope_members


@pytest.fixture
def ab_template(make_exercise):
    return BlockTemplate(
        id="tpl-ab",
        name="Push Pull",
        category="main",
        exercises=[make_exercise("A", "Push-up", order=1), make_exercise("B", "Pull-up", order=2)],
    )


def _instance_contents(plan, instance):
    exercises = [ex for ex in plan.exercises if ex.block_instance_id == instance.id]
    groups = [g for g in plan.groups if g.block_instance_id == instance.id]
    return exercises, groups


class TestCustomizationDiff:
    def test_edit_remove_add(self, simple_plan, ab_template):
        plan, instance = insert_block(simple_plan, ab_template)
        exercises, groups = _instance_contents(plan, instance)
        a_clone, _b_clone = exercises

        edited_a = a_clone.model_copy(update={"sets": 5})
        added_c = Exercise(id="C", exercise_id="lib-dip", exercise_name="Dip", order=3, block_instance_id=instance.id)

        plan, saved = save_block_instance(plan, instance, [edited_a, added_c], groups, ab_template)
        c = saved.customizations
        assert c.modified_exercises == ["A"]
        assert c.removed_exercises == ["B"]
        assert c.added_exercises == ["C"]
        assert (c.modified_groups, c.added_groups, c.removed_groups) == ([], [], [])
        assert has_customizations(saved)

        members = scope_members(plan.exercises, ("block", instance.id))
        assert [ex.id for ex in members] == [a_clone.id, "C"]
        assert [ex.order for ex in members] == [1, 2]

    def test_unchanged_clone_has_no_customizations(self, simple_plan, warmup_template):
        plan, instance = insert_block(simple_plan, warmup_template)
        exercises, groups = _instance_contents(plan, instance)
        plan, saved = save_block_instance(plan, instance, exercises, groups, warmup_template)
        assert not has_customizations(saved)
        assert saved.instance_name is None

    def test_reordering_is_not_a_modification(self, simple_plan, ab_template):
        plan, instance = insert_block(simple_plan, ab_template)
        exercises, groups = _instance_contents(plan, instance)
        swapped = [ex.model_copy(update={"order": 3 - ex.order}) for ex in exercises]
        assert not has_customizations(
            save_block_instance(plan, instance, swapped, groups, ab_template)[1]
        )

    def test_group_changes(self, simple_plan, warmup_template):
        plan, instance = insert_block(simple_plan, warmup_template)
        exercises, groups = _instance_contents(plan, instance)
        group = groups[0].model_copy(update={"rounds": 4})
        c = compute_customizations(exercises, [group], warmup_template)
        assert c.modified_groups == ["t-grp"]
        assert c.modified_exercises == []

    def test_leaving_a_group_marks_exercise_modified(self, simple_plan, warmup_template):
        plan, instance = insert_block(simple_plan, warmup_template)
        exercises, groups = _instance_contents(plan, instance)
        ungrouped = [ex.model_copy(update={"group_id": None}) if ex.source_exercise_id == "t-bridge" else ex for ex in exercises]
        c = compute_customizations(ungrouped, groups, warmup_template)
        assert c.modified_exercises == ["t-bridge"]

    def test_dropped_group_is_removed(self, simple_plan, warmup_template):
        plan, instance = insert_block(simple_plan, warmup_template)
        exercises, _ = _instance_contents(plan, instance)
        flat = [ex.model_copy(update={"group_id": None}) for ex in exercises]
        c = compute_customizations(flat, [], warmup_template)
        assert c.removed_groups == ["t-grp"]
        assert sorted(c.modified_exercises) == ["t-bridge", "t-lunge"]


class TestSaveBlockInstance:
    def test_custom_name_and_notes(self, simple_plan, ab_template):
        plan, instance = insert_block(simple_plan, ab_template)
        exercises, groups = _instance_contents(plan, instance)
        plan, saved = save_block_instance(
            plan, instance, exercises, groups, ab_template, instance_name="Heavy Push Pull", notes="Go slow"
        )
        assert saved.display_name == "Heavy Push Pull"
        assert saved.notes == "Go slow"
        assert plan.block_instances[0].instance_name == "Heavy Push Pull"

    def test_name_equal_to_template_is_not_stored(self, simple_plan, ab_template):
        plan, instance = insert_block(simple_plan, ab_template)
        exercises, groups = _instance_contents(plan, instance)
        _, saved = save_block_instance(plan, instance, exercises, groups, ab_template, instance_name="Push Pull")
        assert saved.instance_name is None

    def test_requires_exercises(self, simple_plan, ab_template):
        plan, instance = insert_block(simple_plan, ab_template)
        with pytest.raises(PlanValidationError):
            save_block_instance(plan, instance, [], [], ab_template)

    def test_uses_estimator(self, simple_plan, ab_template):
        plan, instance = insert_block(simple_plan, ab_template)
        exercises, groups = _instance_contents(plan, instance)
        _, saved = save_block_instance(plan, instance, exercises, groups, ab_template, estimator=lambda exs: 12.5)
        assert saved.estimated_duration == 12.5

    def test_block_keeps_position(self, simple_plan, ab_template, make_exercise):
        plan, instance = insert_block(simple_plan, ab_template)
        plan = plan.model_copy(update={"exercises": [*plan.exercises, make_exercise("tail", order=4)]})
        exercises, groups = _instance_contents(plan, instance)
        plan, _ = save_block_instance(plan, instance, exercises[:1], groups, ab_template)
        assert plan.exercises[-1].id == "tail"


class TestResetToTemplate:
    def test_requires_confirmation(self, simple_plan, ab_template):
        plan, instance = insert_block(simple_plan, ab_template)
        with pytest.raises(ConfirmationRequiredError):
            reset_to_template(plan, instance, ab_template)

    def test_discards_customizations(self, simple_plan, ab_template):
        plan, instance = insert_block(simple_plan, ab_template)
        exercises, groups = _instance_contents(plan, instance)
        plan, edited = save_block_instance(
            plan, instance, [exercises[0].model_copy(update={"reps": 3})], groups, ab_template, instance_name="Mine"
        )
        assert has_customizations(edited)

        renamed = ab_template.model_copy(update={"name": "Push Pull v2"})
        plan, reset = reset_to_template(plan, edited, renamed, confirmed=True)

        assert not has_customizations(reset)
        assert reset.instance_name is None
        assert reset.source_block_name == "Push Pull v2"
        clones, _ = _instance_contents(plan, reset)
        assert [ex.source_exercise_id for ex in clones] == ["A", "B"]
        assert [ex.reps for ex in clones] == [10, 10]
        assert exercises[0].id not in {ex.id for ex in clones}
        assert [ex.order for ex in clones] == [1, 2]

    def test_reset_uses_estimator(self, simple_plan, ab_template):
        plan, instance = insert_block(simple_plan, ab_template)
        _, reset = reset_to_template(plan, instance, ab_template, confirmed=True, estimator=lambda exs: 7.5)
        assert reset.estimated_duration == 7.5
