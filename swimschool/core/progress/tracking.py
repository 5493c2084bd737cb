"""
Skill progress tracking.

Builds the skill matrix for a student, rolls it up into an overall level,
and picks what the student should work on next. Framework-agnostic: the
tracker gets its catalog and repository injected and never touches HTTP or
SQL.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from .catalog import SkillCatalog, UnknownSkillError
from .models import (
    MAX_LEVEL,
    OverallStats,
    Skill,
    SkillCategory,
    SkillMatrixItem,
    SkillStatus,
    StudentProgress,
    validate_level,
)
from .repositories import SkillProgressRepository

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 3

# (minimum percentage, suggested level), checked top down
LEVEL_BANDS = (
    (90, 5),
    (70, 4),
    (50, 3),
    (30, 2),
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def suggested_level_for(percentage: float) -> int:
    for threshold, level in LEVEL_BANDS:
        if percentage >= threshold:
            return level
    return 1


# ---------------------------------------------------------------------------
# Recommendation rules
# ---------------------------------------------------------------------------

Selector = Callable[[list[SkillMatrixItem], list[Skill]], list[Skill]]


@dataclass(frozen=True)
class RecommendationRule:
    """
    One step of the recommendation cascade.

    A terminal rule that selects anything ends the cascade with exactly its
    own selection. A non-terminal rule appends to whatever earlier rules
    picked, and only runs while there's room left.
    """
    name: str
    select: Selector
    terminal: bool = False


def _in_category(
    matrix: list[SkillMatrixItem],
    category: SkillCategory,
    *statuses: SkillStatus,
) -> list[SkillMatrixItem]:
    return [
        item for item in matrix
        if item.skill.category == category and item.status in statuses
    ]


def _by_level(items: list[SkillMatrixItem]) -> list[SkillMatrixItem]:
    # sorted() is stable, so equal levels keep catalog order
    return sorted(items, key=lambda item: item.skill.level)


def _water_safety_gaps(matrix, picked):
    gaps = _in_category(
        matrix, SkillCategory.WATER_SAFETY,
        SkillStatus.NOT_STARTED, SkillStatus.IN_PROGRESS,
    )
    return [item.skill for item in _by_level(gaps)[:2]]


def _unstarted_strokes(matrix, picked):
    gaps = _in_category(matrix, SkillCategory.STROKE_TECHNIQUE, SkillStatus.NOT_STARTED)
    return [item.skill for item in gaps[:3]]


def _stroke_to_finish(matrix, picked):
    in_progress = _in_category(matrix, SkillCategory.STROKE_TECHNIQUE, SkillStatus.IN_PROGRESS)
    return [item.skill for item in _by_level(in_progress)[:1]]


def _endurance_gap(matrix, picked):
    gaps = _in_category(
        matrix, SkillCategory.ENDURANCE,
        SkillStatus.NOT_STARTED, SkillStatus.IN_PROGRESS,
    )
    return [item.skill for item in gaps[:1]]


def _competitive_start(matrix, picked):
    gaps = _in_category(matrix, SkillCategory.COMPETITIVE, SkillStatus.NOT_STARTED)
    return [item.skill for item in gaps[:1]]


# Order is product policy: safety gates strokes, strokes gate the rest.
RECOMMENDATION_RULES: tuple[RecommendationRule, ...] = (
    RecommendationRule("water_safety_gaps", _water_safety_gaps, terminal=True),
    RecommendationRule("unstarted_strokes", _unstarted_strokes, terminal=True),
    RecommendationRule("stroke_to_finish", _stroke_to_finish),
    RecommendationRule("endurance_gap", _endurance_gap),
    RecommendationRule("competitive_start", _competitive_start),
)


def recommend(
    matrix: list[SkillMatrixItem],
    rules: tuple[RecommendationRule, ...] = RECOMMENDATION_RULES,
    limit: int = MAX_RECOMMENDATIONS,
) -> list[Skill]:
    """Run the rule cascade over a skill matrix."""
    picked: list[Skill] = []

    for rule in rules:
        if rule.terminal:
            selection = rule.select(matrix, picked)
            if selection:
                return selection[:limit]
            continue

        if len(picked) >= limit:
            break
        picked.extend(rule.select(matrix, picked))

    return picked[:limit]


# ---------------------------------------------------------------------------
# Tracker Service
# ---------------------------------------------------------------------------

class ProgressTracker:
    """
    Skill progress operations for one tenant.

    Holds no state beyond its dependencies, so the API builds one per
    request with the caller's tenant id.
    """

    def __init__(
        self,
        repository: SkillProgressRepository,
        catalog: SkillCatalog,
        tenant_id: str,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repository = repository
        self._catalog = catalog
        self._tenant_id = tenant_id
        self._clock = clock

    @property
    def catalog(self) -> SkillCatalog:
        return self._catalog

    def update_skill_progress(
        self,
        student_id: str,
        skill_id: str,
        new_level: int,
        notes: Optional[str] = None,
    ) -> StudentProgress:
        """
        Record a coach's assessment of a student on one skill.

        Creates the record on the first assessment. Later assessments
        replace level, timestamp and notes (notes included, even with None)
        and bump attempts by one.
        """
        validate_level(new_level)
        if skill_id not in self._catalog:
            raise UnknownSkillError(skill_id)

        progress = self._repository.record_assessment(
            tenant_id=self._tenant_id,
            student_id=student_id,
            skill_id=skill_id,
            level=new_level,
            notes=notes,
            assessed_at=self._clock(),
        )

        logger.info(
            "Skill progress updated",
            extra={
                "tenant_id": self._tenant_id,
                "student_id": student_id,
                "skill_id": skill_id,
                "level": new_level,
                "attempts": progress.attempts,
            }
        )

        return progress

    def get_skill_progress(self, student_id: str, skill_id: str) -> Optional[StudentProgress]:
        return self._repository.get(self._tenant_id, student_id, skill_id)

    def reset_student_progress(self, student_id: str) -> int:
        deleted = self._repository.delete_for_student(self._tenant_id, student_id)
        logger.info(
            "Student progress reset",
            extra={"tenant_id": self._tenant_id, "student_id": student_id, "deleted": deleted}
        )
        return deleted

    def get_student_skill_matrix(self, student_id: str) -> list[SkillMatrixItem]:
        """
        Every catalog skill, in catalog order, with the student's record.

        A student with no records gets an all-NOT_STARTED matrix. Records
        for skills no longer in the catalog are ignored.
        """
        records = {
            progress.skill_id: progress
            for progress in self._repository.list_for_student(self._tenant_id, student_id)
        }
        return [
            SkillMatrixItem(skill=skill, progress=records.get(skill.id))
            for skill in self._catalog
        ]

    def calculate_overall_level(self, student_id: str) -> OverallStats:
        """
        Weighted completion across the full catalog.

        Each skill is worth its own level in points; a student earns
        current_level / 5 of that. Unassessed skills still count in the
        denominator, so 100% means every skill at level 5.
        """
        total_points = 0
        earned_points = 0.0

        for item in self.get_student_skill_matrix(student_id):
            total_points += item.skill.level
            if item.progress is not None:
                earned_points += (item.progress.current_level / MAX_LEVEL) * item.skill.level

        percentage = (earned_points / total_points) * 100 if total_points > 0 else 0.0

        return OverallStats(
            total_levels=total_points,
            earned_levels=_round_half_up(earned_points),
            overall_percentage=_round_half_up(percentage),
            suggested_level=suggested_level_for(percentage),
        )

    def get_skill_recommendations(self, student_id: str) -> list[Skill]:
        """Up to three skills the student should focus on next."""
        return recommend(self.get_student_skill_matrix(student_id))
