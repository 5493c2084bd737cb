"""
Badge eligibility and awarding.

Badge definitions come from the badge catalog; the rule behind each badge
lives here, in code, keyed by badge id. A catalog badge with no registered
rule is never auto-eligible and can only be awarded by a coach.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from .catalog import BadgeCatalog, UnknownBadgeError
from .models import Badge, CounterUpdate, StudentProgressCounters
from .repositories import CountersRepository, StudentLocks

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

Predicate = Callable[[StudentProgressCounters, BadgeCatalog], bool]


@dataclass(frozen=True)
class BadgeRule:
    """
    Eligibility rule for one badge.

    `after_others` marks rules that read other badges from the earned set;
    a full evaluation runs them last so they see this round's awards.
    """
    badge_id: str
    predicate: Predicate
    after_others: bool = False


def _min_lessons(count: int) -> Predicate:
    return lambda c, _: c.lessons_attended_count >= count


def _min_stroke_level(stroke: str, level: int) -> Predicate:
    return lambda c, _: c.stroke_level(stroke) >= level


def _perfect_week(c: StudentProgressCounters, _: BadgeCatalog) -> bool:
    return (
        c.lessons_scheduled_this_week > 0
        and c.lessons_attended_this_week == c.lessons_scheduled_this_week
    )


def _every_other_badge(badge_id: str) -> Predicate:
    def predicate(c: StudentProgressCounters, catalog: BadgeCatalog) -> bool:
        return all(c.has_badge(other) for other in catalog.ids if other != badge_id)
    return predicate


BADGE_RULES: dict[str, BadgeRule] = {
    rule.badge_id: rule
    for rule in (
        BadgeRule("first_splash", _min_lessons(1)),
        BadgeRule("water_baby", _min_lessons(10)),
        BadgeRule("centurion", _min_lessons(100)),
        BadgeRule("distance_king", lambda c, _: c.total_distance_meters >= 1000),
        BadgeRule("stroke_master_freestyle", _min_stroke_level("freestyle", 3)),
        BadgeRule("stroke_master_backstroke", _min_stroke_level("backstroke", 3)),
        BadgeRule("butterfly_begins", _min_stroke_level("butterfly", 1)),
        BadgeRule("perfect_week", _perfect_week),
        BadgeRule("early_bird", lambda c, _: c.early_check_ins >= 5),
        BadgeRule("iron_student", lambda c, _: c.consecutive_weeks_present >= 4),
        BadgeRule("super_sponsor", lambda c, _: c.referral_count >= 1),
        BadgeRule("gear_head", lambda c, _: c.equipment_purchases >= 1),
        BadgeRule("legend", _every_other_badge("legend"), after_others=True),
    )
}


# ---------------------------------------------------------------------------
# Badge Service
# ---------------------------------------------------------------------------

class BadgeService:
    """
    Badge operations for one tenant.

    Counter updates and awards run under the student's lock. Pass the
    same StudentLocks to every service in the process. Across processes
    the repository's single-statement writes keep each change atomic.
    """

    def __init__(
        self,
        repository: CountersRepository,
        catalog: BadgeCatalog,
        tenant_id: str,
        locks: Optional[StudentLocks] = None,
        rules: Optional[dict[str, BadgeRule]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repository = repository
        self._catalog = catalog
        self._tenant_id = tenant_id
        self._locks = locks or StudentLocks()
        self._rules = BADGE_RULES if rules is None else rules
        self._clock = clock

    @property
    def catalog(self) -> BadgeCatalog:
        return self._catalog

    def get_student_counters(self, student_id: str) -> StudentProgressCounters:
        return self._repository.get_or_create(self._tenant_id, student_id)

    def update_student_counters(self, student_id: str, **updates) -> StudentProgressCounters:
        """
        Apply a partial update to a student's counters.

        Only counter fields and `stroke_levels` are accepted; stroke levels
        merge into the existing map. The repository writes just the fields
        given, so updates from other processes to other fields survive.
        """
        update = CounterUpdate.from_updates(updates)

        with self._locks.hold(self._tenant_id, student_id):
            if update.is_empty:
                counters = self._repository.get_or_create(self._tenant_id, student_id)
            else:
                counters = self._repository.update(self._tenant_id, student_id, update)

        logger.info(
            "Student counters updated",
            extra={
                "tenant_id": self._tenant_id,
                "student_id": student_id,
                "fields": sorted(updates),
            }
        )

        return counters

    def reset_student_data(self, student_id: str) -> None:
        with self._locks.hold(self._tenant_id, student_id):
            self._repository.delete(self._tenant_id, student_id)
        logger.info(
            "Student badge data reset",
            extra={"tenant_id": self._tenant_id, "student_id": student_id}
        )

    def check_badge_eligibility(self, student_id: str, badge_id: str) -> bool:
        """
        Whether the student qualifies for a badge they don't hold yet.

        False for unknown badges, badges already earned, and badges with
        no rule. Never raises for a student with no data.
        """
        if badge_id not in self._catalog:
            return False

        counters = self._repository.get_or_create(self._tenant_id, student_id)
        return self._is_eligible(counters, badge_id)

    def _is_eligible(self, counters: StudentProgressCounters, badge_id: str) -> bool:
        if counters.has_badge(badge_id):
            return False
        rule = self._rules.get(badge_id)
        if rule is None:
            return False
        return rule.predicate(counters, self._catalog)

    def _runs_last(self, badge_id: str) -> bool:
        rule = self._rules.get(badge_id)
        return rule is not None and rule.after_others

    def award_badge(self, student_id: str, badge_id: str) -> bool:
        """
        Give a badge to a student. Idempotent.

        Returns True if the badge is new, False if the student already had
        it. Does not check eligibility: coaches award rule-less badges
        through this directly.
        """
        if badge_id not in self._catalog:
            raise UnknownBadgeError(badge_id)

        with self._locks.hold(self._tenant_id, student_id):
            awarded = self._repository.add_badge(
                self._tenant_id, student_id, badge_id, self._clock()
            )

        if awarded:
            logger.info(
                "Badge awarded",
                extra={
                    "tenant_id": self._tenant_id,
                    "student_id": student_id,
                    "badge_id": badge_id,
                }
            )

        return awarded

    def evaluate_badges(self, student_id: str) -> list[Badge]:
        """
        Award every badge the student currently qualifies for.

        Rules that depend on other badges run after the rest, so a student
        who completes the set in this pass also gets `legend`. Returns the
        newly awarded badges in award order.
        """
        ordered = sorted(self._catalog, key=lambda badge: self._runs_last(badge.id))

        awarded: list[Badge] = []
        with self._locks.hold(self._tenant_id, student_id):
            counters = self._repository.get_or_create(self._tenant_id, student_id)
            for badge in ordered:
                if not self._is_eligible(counters, badge.id):
                    continue
                if self._repository.add_badge(
                    self._tenant_id, student_id, badge.id, self._clock()
                ):
                    awarded.append(badge)
                counters.badges_earned.add(badge.id)

        if awarded:
            logger.info(
                "Badges awarded by evaluation",
                extra={
                    "tenant_id": self._tenant_id,
                    "student_id": student_id,
                    "badge_ids": [badge.id for badge in awarded],
                }
            )

        return awarded

    def get_student_badges(self, student_id: str) -> list[Badge]:
        """Earned badges, in catalog order."""
        counters = self._repository.get_or_create(self._tenant_id, student_id)
        return [badge for badge in self._catalog if counters.has_badge(badge.id)]

    def get_available_badges(self, student_id: str) -> list[Badge]:
        """Badges not yet earned, in catalog order."""
        counters = self._repository.get_or_create(self._tenant_id, student_id)
        return [badge for badge in self._catalog if not counters.has_badge(badge.id)]
