"""
Skill progress and achievement logic.

Contains the catalogs, domain models, progress tracker and badge service.
"""

from .badges import BADGE_RULES, BadgeRule, BadgeService
from .catalog import (
    BadgeCatalog,
    CatalogError,
    SkillCatalog,
    UnknownBadgeError,
    UnknownSkillError,
    load_badge_catalog,
    load_skill_catalog,
)
from .models import (
    Badge,
    CounterUpdate,
    BadgeCategory,
    InvalidLevelError,
    OverallStats,
    Skill,
    SkillCategory,
    SkillMatrixItem,
    SkillStatus,
    StudentProgress,
    StudentProgressCounters,
)
from .repositories import CountersRepository, SkillProgressRepository, StudentLocks
from .tracking import ProgressTracker, RecommendationRule, RECOMMENDATION_RULES

__all__ = [
    "BADGE_RULES",
    "BadgeRule",
    "BadgeService",
    "BadgeCatalog",
    "CatalogError",
    "SkillCatalog",
    "UnknownBadgeError",
    "UnknownSkillError",
    "load_badge_catalog",
    "load_skill_catalog",
    "Badge",
    "CounterUpdate",
    "BadgeCategory",
    "InvalidLevelError",
    "OverallStats",
    "Skill",
    "SkillCategory",
    "SkillMatrixItem",
    "SkillStatus",
    "StudentProgress",
    "StudentProgressCounters",
    "CountersRepository",
    "SkillProgressRepository",
    "StudentLocks",
    "ProgressTracker",
    "RecommendationRule",
    "RECOMMENDATION_RULES",
]
