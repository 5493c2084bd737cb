"""
Snowflake repository for badge counters and earned badges.

Counters live one row per student; earned badges one row per
(student, badge), which makes awarding a plain insert-if-absent.
Counter writes touch only the columns being changed, so the row is
never rewritten from a stale in-memory copy.
"""

import json
import logging
from datetime import datetime, timezone

from swimschool.core.progress.models import CounterUpdate, StudentProgressCounters
from ..client import SnowflakeConnection
from ..tables import COUNTER_COLUMNS, STUDENT_BADGES_TABLE, STUDENT_COUNTERS_TABLE

logger = logging.getLogger(__name__)


class SnowflakeCountersRepository:
    """Implements CountersRepository from the core."""

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def get_or_create(self, tenant_id: str, student_id: str) -> StudentProgressCounters:
        """
        Load counters and earned badges, creating a zeroed row if needed.

        Creation is insert-if-absent, so two first reads racing each
        other both end up with the same single row.
        """
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {", ".join(COUNTER_COLUMNS)}
                FROM {STUDENT_COUNTERS_TABLE}
                WHERE tenant_id = %s
                  AND student_id = %s
            """, (tenant_id, student_id))

            row = cursor.fetchone()

            if row is None:
                self._insert_if_absent(cursor, tenant_id, student_id)
                self._conn.commit()

                logger.debug(
                    "Created counters row",
                    extra={"tenant_id": tenant_id, "student_id": student_id}
                )
                counters = StudentProgressCounters(student_id=student_id)
            else:
                counters = self._build_counters(student_id, row)

            cursor.execute(f"""
                SELECT badge_id
                FROM {STUDENT_BADGES_TABLE}
                WHERE tenant_id = %s
                  AND student_id = %s
                ORDER BY earned_at
            """, (tenant_id, student_id))

            counters.badges_earned = {badge_id for (badge_id,) in cursor.fetchall()}
            return counters

        finally:
            cursor.close()

    def update(
        self,
        tenant_id: str,
        student_id: str,
        update: CounterUpdate,
    ) -> StudentProgressCounters:
        """
        Write only the given fields, merging stroke levels in SQL.

        One UPDATE statement per call, so another process changing a
        different field of the same row in between can't be overwritten
        by a stale copy of it.
        """
        assignments = [f"{column} = %s" for column in update.fields]
        params: list = list(update.fields.values())

        if update.stroke_levels:
            merged = "COALESCE(stroke_levels::OBJECT, OBJECT_CONSTRUCT())"
            for stroke, level in update.stroke_levels.items():
                merged = f"OBJECT_INSERT({merged}, %s, %s, TRUE)"
                params.extend((stroke, level))
            assignments.append(f"stroke_levels = {merged}")

        assignments.append("updated_at = %s")
        params.extend((datetime.now(timezone.utc), tenant_id, student_id))

        cursor = self._conn.cursor()

        try:
            self._insert_if_absent(cursor, tenant_id, student_id)

            cursor.execute(f"""
                UPDATE {STUDENT_COUNTERS_TABLE}
                SET {", ".join(assignments)}
                WHERE tenant_id = %s
                  AND student_id = %s
            """, tuple(params))

            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to update counters",
                extra={
                    "tenant_id": tenant_id,
                    "student_id": student_id,
                    "fields": sorted(update.fields),
                    "error": str(e),
                }
            )
            raise

        finally:
            cursor.close()

        return self.get_or_create(tenant_id, student_id)

    def add_badge(
        self,
        tenant_id: str,
        student_id: str,
        badge_id: str,
        earned_at: datetime,
    ) -> bool:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                MERGE INTO {STUDENT_BADGES_TABLE} AS target
                USING (
                    SELECT %s AS tenant_id, %s AS student_id, %s AS badge_id, %s AS earned_at
                ) AS source
                ON target.tenant_id = source.tenant_id
                   AND target.student_id = source.student_id
                   AND target.badge_id = source.badge_id
                WHEN NOT MATCHED THEN INSERT (tenant_id, student_id, badge_id, earned_at)
                VALUES (source.tenant_id, source.student_id, source.badge_id, source.earned_at)
            """, (tenant_id, student_id, badge_id, earned_at))

            inserted = (cursor.rowcount or 0) > 0
            self._conn.commit()
            return inserted

        except Exception as e:
            logger.error(
                "Failed to record badge",
                extra={
                    "tenant_id": tenant_id,
                    "student_id": student_id,
                    "badge_id": badge_id,
                    "error": str(e),
                }
            )
            raise

        finally:
            cursor.close()

    def delete(self, tenant_id: str, student_id: str) -> None:
        cursor = self._conn.cursor()

        try:
            for table in (STUDENT_COUNTERS_TABLE, STUDENT_BADGES_TABLE):
                cursor.execute(f"""
                    DELETE FROM {table}
                    WHERE tenant_id = %s
                      AND student_id = %s
                """, (tenant_id, student_id))

            self._conn.commit()

        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    @staticmethod
    def _insert_if_absent(cursor, tenant_id: str, student_id: str) -> None:
        """Create a zeroed counters row unless one exists."""
        cursor.execute(f"""
            MERGE INTO {STUDENT_COUNTERS_TABLE} AS target
            USING (SELECT %s AS tenant_id, %s AS student_id, %s AS updated_at) AS source
            ON target.tenant_id = source.tenant_id
               AND target.student_id = source.student_id
            WHEN NOT MATCHED THEN INSERT (tenant_id, student_id, updated_at)
            VALUES (source.tenant_id, source.student_id, source.updated_at)
        """, (tenant_id, student_id, datetime.now(timezone.utc)))

    @staticmethod
    def _build_counters(student_id: str, row: tuple) -> StudentProgressCounters:
        raw = dict(zip(COUNTER_COLUMNS, row))

        # VARIANT columns come back as JSON text
        stroke_levels = raw.pop("stroke_levels")
        if isinstance(stroke_levels, str):
            stroke_levels = json.loads(stroke_levels)

        return StudentProgressCounters(
            student_id=student_id,
            stroke_levels={k: int(v) for k, v in (stroke_levels or {}).items()},
            **{column: int(value or 0) for column, value in raw.items()},
        )
