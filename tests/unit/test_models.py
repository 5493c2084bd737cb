"""
Unit tests for the progress domain models.

These tests verify the core value objects without touching external
services (no database, no HTTP).

Testing philosophy:
- Test behavior, not implementation
- Each test should have a clear "given/when/then" structure
- Use descriptive names that explain what we're testing
"""

import pytest

from swimschool.core.progress.models import (
    Badge,
    BadgeCategory,
    CounterUpdate,
    InvalidLevelError,
    Skill,
    SkillCategory,
    SkillMatrixItem,
    SkillStatus,
    StudentProgress,
    StudentProgressCounters,
    validate_level,
)


# ---------------------------------------------------------------------------
# Level Validation Tests
# ---------------------------------------------------------------------------

class TestValidateLevel:

    @pytest.mark.parametrize("level", [1, 3, 5])
    def test_accepts_levels_in_range(self, level):
        assert validate_level(level) == level

    @pytest.mark.parametrize("level", [0, 6, -1])
    def test_rejects_levels_out_of_range(self, level):
        with pytest.raises(InvalidLevelError, match="between 1 and 5"):
            validate_level(level)

    @pytest.mark.parametrize("level", [2.5, "3", None, True])
    def test_rejects_non_integers(self, level):
        with pytest.raises(InvalidLevelError):
            validate_level(level)

    def test_invalid_level_is_a_value_error(self):
        """Callers catching ValueError still see bad levels."""
        with pytest.raises(ValueError):
            validate_level(9)


# ---------------------------------------------------------------------------
# Skill and Badge Tests
# ---------------------------------------------------------------------------

class TestSkill:

    def test_skill_requires_id(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            Skill(id=" ", name="Float", category=SkillCategory.WATER_SAFETY, level=1)

    def test_skill_level_must_be_valid(self):
        with pytest.raises(InvalidLevelError):
            Skill(id="x-01", name="Float", category=SkillCategory.WATER_SAFETY, level=7)

    def test_skill_is_immutable(self):
        skill = Skill(id="x-01", name="Float", category=SkillCategory.WATER_SAFETY, level=1)
        with pytest.raises(Exception):
            skill.level = 2


class TestBadge:

    def test_badge_requires_id(self):
        with pytest.raises(ValueError):
            Badge(
                id="",
                name="Nameless",
                description="",
                icon="",
                category=BadgeCategory.SOCIAL,
                requirement="",
            )


# ---------------------------------------------------------------------------
# Progress and Status Tests
# ---------------------------------------------------------------------------

class TestStudentProgress:

    def test_new_record_has_one_attempt(self):
        progress = StudentProgress(student_id="s1", skill_id="ws-01", current_level=2)
        assert progress.attempts == 1

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValueError, match="at least one attempt"):
            StudentProgress(student_id="s1", skill_id="ws-01", current_level=2, attempts=0)

    def test_level_four_is_mastered(self):
        assert StudentProgress(student_id="s1", skill_id="ws-01", current_level=4).is_mastered
        assert not StudentProgress(student_id="s1", skill_id="ws-01", current_level=3).is_mastered


class TestSkillMatrixItem:

    @pytest.fixture
    def skill(self) -> Skill:
        return Skill(id="st-01", name="Kick", category=SkillCategory.STROKE_TECHNIQUE, level=1)

    def test_no_record_is_not_started(self, skill):
        assert SkillMatrixItem(skill=skill).status == SkillStatus.NOT_STARTED

    @pytest.mark.parametrize("level", [1, 2, 3])
    def test_below_four_is_in_progress(self, skill, level):
        progress = StudentProgress(student_id="s1", skill_id=skill.id, current_level=level)
        assert SkillMatrixItem(skill=skill, progress=progress).status == SkillStatus.IN_PROGRESS

    @pytest.mark.parametrize("level", [4, 5])
    def test_four_and_above_is_mastered(self, skill, level):
        progress = StudentProgress(student_id="s1", skill_id=skill.id, current_level=level)
        assert SkillMatrixItem(skill=skill, progress=progress).status == SkillStatus.MASTERED


# ---------------------------------------------------------------------------
# Counters Tests
# ---------------------------------------------------------------------------

class TestStudentProgressCounters:

    def test_new_counters_are_zero(self):
        counters = StudentProgressCounters(student_id="s1")

        assert counters.lessons_attended_count == 0
        assert counters.stroke_levels == {}
        assert counters.badges_earned == set()

    def test_stroke_level_defaults_to_zero(self):
        counters = StudentProgressCounters(student_id="s1")
        assert counters.stroke_level("butterfly") == 0

    def test_stroke_level_lookup_ignores_case(self):
        counters = StudentProgressCounters(student_id="s1", stroke_levels={"freestyle": 3})
        assert counters.stroke_level("Freestyle") == 3


class TestCounterUpdate:

    def test_keeps_only_given_fields(self):
        update = CounterUpdate.from_updates({"lessons_attended_count": 5})

        assert update.fields == {"lessons_attended_count": 5}
        assert update.stroke_levels == {}

    def test_stroke_keys_are_lowercased(self):
        update = CounterUpdate.from_updates({"stroke_levels": {"Backstroke": 1}})
        assert update.stroke_levels == {"backstroke": 1}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="Unknown counter fields"):
            CounterUpdate.from_updates({"shoe_size": 4})

    def test_badges_cannot_be_set_through_updates(self):
        with pytest.raises(ValueError, match="badges_earned"):
            CounterUpdate.from_updates({"badges_earned": {"legend"}})

    @pytest.mark.parametrize("value", [-1, 2.5, "3", True])
    def test_non_integer_or_negative_rejected(self, value):
        with pytest.raises(ValueError, match="non-negative"):
            CounterUpdate.from_updates({"lessons_attended_count": 3, "referral_count": value})

    def test_negative_stroke_level_rejected(self):
        with pytest.raises(ValueError, match="freestyle"):
            CounterUpdate.from_updates({"stroke_levels": {"freestyle": -2}})

    def test_empty_update(self):
        assert CounterUpdate.from_updates({}).is_empty
        assert CounterUpdate.from_updates({"stroke_levels": {}}).is_empty
        assert not CounterUpdate.from_updates({"referral_count": 0}).is_empty
