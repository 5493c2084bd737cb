"""
Skill and badge catalogs.

The catalogs are versioned data files shipped inside the package, not code
constants. Progress records and earned badges point at catalog entries by
string id, so ids must stay stable across catalog versions: retire an
entry by leaving it out of the matrix, never by reusing its id.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

from .models import Badge, BadgeCategory, Skill, SkillCategory

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"
DEFAULT_SKILL_CATALOG_PATH = DATA_DIR / "skills.json"
DEFAULT_BADGE_CATALOG_PATH = DATA_DIR / "badges.json"


class CatalogError(ValueError):
    """Raised when a catalog file is malformed."""
    pass


class UnknownSkillError(LookupError):
    """Raised when a write refers to a skill id the catalog doesn't have."""

    def __init__(self, skill_id: str) -> None:
        super().__init__(f"Unknown skill: {skill_id}")
        self.skill_id = skill_id


class UnknownBadgeError(LookupError):
    """Raised when a write refers to a badge id the catalog doesn't have."""

    def __init__(self, badge_id: str) -> None:
        super().__init__(f"Unknown badge: {badge_id}")
        self.badge_id = badge_id


@dataclass(frozen=True)
class SkillCatalog:
    """
    Ordered, read-only collection of skills.

    Catalog order matters: the skill matrix follows it, and several
    recommendation rules break ties by it.
    """
    version: str
    skills: tuple[Skill, ...]

    def __post_init__(self) -> None:
        _ensure_unique_ids("skill", [skill.id for skill in self.skills])

    def __iter__(self) -> Iterator[Skill]:
        return iter(self.skills)

    def __len__(self) -> int:
        return len(self.skills)

    def __contains__(self, skill_id: object) -> bool:
        return any(skill.id == skill_id for skill in self.skills)

    @property
    def ids(self) -> list[str]:
        return [skill.id for skill in self.skills]

    def get(self, skill_id: str) -> Optional[Skill]:
        for skill in self.skills:
            if skill.id == skill_id:
                return skill
        return None

    def by_category(self, category: SkillCategory) -> list[Skill]:
        return [skill for skill in self.skills if skill.category == category]


@dataclass(frozen=True)
class BadgeCatalog:
    """Ordered, read-only collection of badge definitions."""
    version: str
    badges: tuple[Badge, ...]

    def __post_init__(self) -> None:
        _ensure_unique_ids("badge", [badge.id for badge in self.badges])

    def __iter__(self) -> Iterator[Badge]:
        return iter(self.badges)

    def __len__(self) -> int:
        return len(self.badges)

    def __contains__(self, badge_id: object) -> bool:
        return any(badge.id == badge_id for badge in self.badges)

    @property
    def ids(self) -> list[str]:
        return [badge.id for badge in self.badges]

    def get(self, badge_id: str) -> Optional[Badge]:
        for badge in self.badges:
            if badge.id == badge_id:
                return badge
        return None


def _ensure_unique_ids(kind: str, ids: list[str]) -> None:
    seen: set[str] = set()
    for item_id in ids:
        if item_id in seen:
            raise CatalogError(f"Duplicate {kind} id in catalog: {item_id}")
        seen.add(item_id)


def _read_catalog_file(path: Path, key: str) -> tuple[str, list[dict]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except json.JSONDecodeError as e:
        raise CatalogError(f"Catalog {path} is not valid JSON: {e}") from e

    entries = payload.get(key) if isinstance(payload, dict) else None
    if not isinstance(entries, list):
        raise CatalogError(f"Catalog {path} has no '{key}' list")

    return str(payload.get("version", "unversioned")), entries


def load_skill_catalog(path: Optional[Union[str, Path]] = None) -> SkillCatalog:
    """
    Load the skill catalog from a JSON file.

    Falls back to the catalog shipped with the package when no path is
    given. Any bad entry fails the whole load: a half-loaded catalog would
    silently shift everyone's overall level.
    """
    path = Path(path) if path else DEFAULT_SKILL_CATALOG_PATH
    version, entries = _read_catalog_file(path, "skills")

    skills = []
    for entry in entries:
        try:
            skills.append(Skill(
                id=entry["id"],
                name=entry["name"],
                category=SkillCategory(entry["category"]),
                level=entry["level"],
                description=entry.get("description", ""),
            ))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise CatalogError(f"Invalid skill entry {entry!r}: {e}") from e

    catalog = SkillCatalog(version=version, skills=tuple(skills))

    logger.info(
        "Loaded skill catalog",
        extra={"path": str(path), "version": version, "skill_count": len(catalog)}
    )

    return catalog


def load_badge_catalog(path: Optional[Union[str, Path]] = None) -> BadgeCatalog:
    """Load the badge catalog from a JSON file (package default if no path)."""
    path = Path(path) if path else DEFAULT_BADGE_CATALOG_PATH
    version, entries = _read_catalog_file(path, "badges")

    badges = []
    for entry in entries:
        try:
            badges.append(Badge(
                id=entry["id"],
                name=entry["name"],
                description=entry["description"],
                icon=entry.get("icon", ""),
                category=BadgeCategory(entry["category"]),
                requirement=entry["requirement"],
            ))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise CatalogError(f"Invalid badge entry {entry!r}: {e}") from e

    catalog = BadgeCatalog(version=version, badges=tuple(badges))

    logger.info(
        "Loaded badge catalog",
        extra={"path": str(path), "version": version, "badge_count": len(catalog)}
    )

    return catalog
