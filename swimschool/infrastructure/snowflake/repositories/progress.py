"""
Snowflake repository for skill progress records.

Implements SkillProgressRepository from the core. The application never
writes SQL directly; it asks the repository for what it needs in domain
terms.
"""

import logging
from datetime import datetime
from typing import Optional

from swimschool.core.progress.models import StudentProgress
from ..client import SnowflakeConnection
from ..tables import SKILL_PROGRESS_COLUMNS, SKILL_PROGRESS_TABLE

logger = logging.getLogger(__name__)

_SELECT_COLUMNS = ", ".join(SKILL_PROGRESS_COLUMNS)


class SnowflakeSkillProgressRepository:
    """
    Skill progress persistence.

    `record_assessment` is a single MERGE, so the attempts increment
    happens inside the database and concurrent assessments of the same
    skill can't lose a count.
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def get(self, tenant_id: str, student_id: str, skill_id: str) -> Optional[StudentProgress]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {_SELECT_COLUMNS}
                FROM {SKILL_PROGRESS_TABLE}
                WHERE tenant_id = %s
                  AND student_id = %s
                  AND skill_id = %s
            """, (tenant_id, student_id, skill_id))

            row = cursor.fetchone()
            return self._build_progress(row) if row else None

        finally:
            cursor.close()

    def record_assessment(
        self,
        tenant_id: str,
        student_id: str,
        skill_id: str,
        level: int,
        notes: Optional[str],
        assessed_at: datetime,
    ) -> StudentProgress:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                MERGE INTO {SKILL_PROGRESS_TABLE} AS target
                USING (
                    SELECT
                        %s AS tenant_id,
                        %s AS student_id,
                        %s AS skill_id,
                        %s AS current_level,
                        %s AS coach_notes,
                        %s AS last_assessed
                ) AS source
                ON target.tenant_id = source.tenant_id
                   AND target.student_id = source.student_id
                   AND target.skill_id = source.skill_id
                WHEN MATCHED THEN UPDATE SET
                    current_level = source.current_level,
                    attempts = target.attempts + 1,
                    coach_notes = source.coach_notes,
                    last_assessed = source.last_assessed
                WHEN NOT MATCHED THEN INSERT (
                    tenant_id, student_id, skill_id, current_level,
                    attempts, coach_notes, last_assessed
                ) VALUES (
                    source.tenant_id, source.student_id, source.skill_id,
                    source.current_level, 1, source.coach_notes, source.last_assessed
                )
            """, (tenant_id, student_id, skill_id, level, notes, assessed_at))

            cursor.execute(f"""
                SELECT {_SELECT_COLUMNS}
                FROM {SKILL_PROGRESS_TABLE}
                WHERE tenant_id = %s
                  AND student_id = %s
                  AND skill_id = %s
            """, (tenant_id, student_id, skill_id))

            row = cursor.fetchone()
            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to record assessment",
                extra={
                    "tenant_id": tenant_id,
                    "student_id": student_id,
                    "skill_id": skill_id,
                    "error": str(e),
                }
            )
            raise

        finally:
            cursor.close()

        if row is None:
            raise RuntimeError(
                f"Progress for {student_id}/{skill_id} missing right after MERGE"
            )

        return self._build_progress(row)

    def list_for_student(self, tenant_id: str, student_id: str) -> list[StudentProgress]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {_SELECT_COLUMNS}
                FROM {SKILL_PROGRESS_TABLE}
                WHERE tenant_id = %s
                  AND student_id = %s
                ORDER BY skill_id
            """, (tenant_id, student_id))

            return [self._build_progress(row) for row in cursor.fetchall()]

        finally:
            cursor.close()

    def delete_for_student(self, tenant_id: str, student_id: str) -> int:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                DELETE FROM {SKILL_PROGRESS_TABLE}
                WHERE tenant_id = %s
                  AND student_id = %s
            """, (tenant_id, student_id))

            deleted = cursor.rowcount or 0
            self._conn.commit()
            return deleted

        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    @staticmethod
    def _build_progress(row: tuple) -> StudentProgress:
        """Build domain model from a row in SKILL_PROGRESS_COLUMNS order."""
        student_id, skill_id, current_level, attempts, last_assessed, coach_notes = row
        return StudentProgress(
            student_id=student_id,
            skill_id=skill_id,
            current_level=int(current_level),
            attempts=int(attempts),
            last_assessed=last_assessed,
            coach_notes=coach_notes,
        )
