"""
Domain models for skill progress and achievements.

These models carry no knowledge of how they're stored or served. Catalog
entries (skills, badges) are frozen values; progress records and counters
are mutable entities owned by a repository.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


MIN_LEVEL = 1
MAX_LEVEL = 5

# A student at this level on a skill has mastered it.
MASTERY_LEVEL = 4


class InvalidLevelError(ValueError):
    """Raised when a level falls outside 1-5."""
    pass


def validate_level(level: int) -> int:
    """Return level unchanged, or raise InvalidLevelError."""
    if isinstance(level, bool) or not isinstance(level, int):
        raise InvalidLevelError(f"Level must be an integer, got {level!r}")
    if not MIN_LEVEL <= level <= MAX_LEVEL:
        raise InvalidLevelError(
            f"Level must be between {MIN_LEVEL} and {MAX_LEVEL}, got {level}"
        )
    return level


class SkillCategory(Enum):
    """How the curriculum groups skills."""
    WATER_SAFETY = "water_safety"
    STROKE_TECHNIQUE = "stroke_technique"
    ENDURANCE = "endurance"
    DIVING = "diving"
    COMPETITIVE = "competitive"


class SkillStatus(Enum):
    """Where a student stands on a single skill."""
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    MASTERED = "MASTERED"


class BadgeCategory(Enum):
    ATTENDANCE = "attendance"
    SKILL = "skill"
    CONSISTENCY = "consistency"
    MILESTONE = "milestone"
    SOCIAL = "social"


@dataclass(frozen=True)
class Skill:
    """
    A single swim competency in the catalog.

    `level` is the skill's own difficulty tier, not anything about a
    student. It doubles as the skill's weight in the overall level.
    """
    id: str
    name: str
    category: SkillCategory
    level: int
    description: str = ""

    def __post_init__(self) -> None:
        if not self.id.strip():
            raise ValueError("Skill id cannot be empty")
        validate_level(self.level)


@dataclass
class StudentProgress:
    """
    A student's latest assessment on one skill.

    There is at most one of these per (tenant, student, skill). Each new
    assessment replaces the previous one and bumps `attempts`.
    """
    student_id: str
    skill_id: str
    current_level: int
    attempts: int = 1
    last_assessed: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    coach_notes: Optional[str] = None

    def __post_init__(self) -> None:
        validate_level(self.current_level)
        if self.attempts < 1:
            raise ValueError("A progress record implies at least one attempt")

    @property
    def is_mastered(self) -> bool:
        return self.current_level >= MASTERY_LEVEL


@dataclass(frozen=True)
class SkillMatrixItem:
    """One row of the skill matrix: a catalog skill joined with progress."""
    skill: Skill
    progress: Optional[StudentProgress] = None

    @property
    def status(self) -> SkillStatus:
        if self.progress is None:
            return SkillStatus.NOT_STARTED
        if self.progress.is_mastered:
            return SkillStatus.MASTERED
        return SkillStatus.IN_PROGRESS


@dataclass(frozen=True)
class OverallStats:
    """Weighted completion across the whole catalog."""
    total_levels: int
    earned_levels: int
    overall_percentage: int
    suggested_level: int


@dataclass(frozen=True)
class Badge:
    """
    An achievement definition.

    `requirement` is display text for students and parents. The rule that
    actually decides eligibility lives in code, keyed by `id`.
    """
    id: str
    name: str
    description: str
    icon: str
    category: BadgeCategory
    requirement: str

    def __post_init__(self) -> None:
        if not self.id.strip():
            raise ValueError("Badge id cannot be empty")


# Fields callers may change through a counters update. `badges_earned`
# is absent: badges only arrive through an award.
COUNTER_FIELDS = (
    "lessons_attended_count",
    "consecutive_weeks_present",
    "total_distance_meters",
    "early_check_ins",
    "lessons_scheduled_this_week",
    "lessons_attended_this_week",
    "referral_count",
    "equipment_purchases",
)


@dataclass
class StudentProgressCounters:
    """
    Per-student activity counters used only for badge eligibility.

    Independent of StudentProgress: nothing here is derived from skill
    assessments. A student nobody has touched yet gets all zeros.
    """
    student_id: str
    lessons_attended_count: int = 0
    consecutive_weeks_present: int = 0
    stroke_levels: dict[str, int] = field(default_factory=dict)
    total_distance_meters: int = 0
    early_check_ins: int = 0
    lessons_scheduled_this_week: int = 0
    lessons_attended_this_week: int = 0
    referral_count: int = 0
    equipment_purchases: int = 0
    badges_earned: set[str] = field(default_factory=set)

    def stroke_level(self, stroke: str) -> int:
        """Level recorded for a stroke, 0 if never recorded."""
        return self.stroke_levels.get(stroke.lower(), 0)

    def has_badge(self, badge_id: str) -> bool:
        return badge_id in self.badges_earned


def _is_non_negative_int(value) -> bool:
    return not isinstance(value, bool) and isinstance(value, int) and value >= 0


@dataclass(frozen=True)
class CounterUpdate:
    """
    A validated partial counters update.

    `fields` holds only the counters being set. `stroke_levels` holds
    lowercased strokes to merge into the stored map; strokes not named
    here keep their level.
    """
    fields: dict[str, int] = field(default_factory=dict)
    stroke_levels: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_updates(cls, updates: dict) -> "CounterUpdate":
        """
        Validate raw keyword updates.

        Rejects unknown fields (`badges_earned` included) and anything
        that isn't a non-negative integer, before anything is written.
        """
        unknown = set(updates) - set(COUNTER_FIELDS) - {"stroke_levels"}
        if unknown:
            raise ValueError(f"Unknown counter fields: {', '.join(sorted(unknown))}")

        fields = {}
        for name in COUNTER_FIELDS:
            if name in updates:
                if not _is_non_negative_int(updates[name]):
                    raise ValueError(f"{name} must be a non-negative integer")
                fields[name] = updates[name]

        stroke_levels = {}
        for stroke, level in (updates.get("stroke_levels") or {}).items():
            if not _is_non_negative_int(level):
                raise ValueError(f"Level for {stroke} must be a non-negative integer")
            stroke_levels[stroke.lower()] = level

        return cls(fields=fields, stroke_levels=stroke_levels)

    @property
    def is_empty(self) -> bool:
        return not self.fields and not self.stroke_levels
