"""
Table layout for progress data in Snowflake.

Shared by the repositories, the mock connection and the setup script so
column order is defined in exactly one place.
"""

SKILL_PROGRESS_TABLE = "skill_progress"
STUDENT_COUNTERS_TABLE = "student_counters"
STUDENT_BADGES_TABLE = "student_badges"

# Order of columns returned by progress SELECTs
SKILL_PROGRESS_COLUMNS = (
    "student_id",
    "skill_id",
    "current_level",
    "attempts",
    "last_assessed",
    "coach_notes",
)

# Order of counter values in SELECTs and in the full-row MERGE
COUNTER_COLUMNS = (
    "lessons_attended_count",
    "consecutive_weeks_present",
    "stroke_levels",
    "total_distance_meters",
    "early_check_ins",
    "lessons_scheduled_this_week",
    "lessons_attended_this_week",
    "referral_count",
    "equipment_purchases",
)

DDL_STATEMENTS = (
    f"""
    CREATE TABLE IF NOT EXISTS {SKILL_PROGRESS_TABLE} (
        tenant_id VARCHAR NOT NULL,
        student_id VARCHAR NOT NULL,
        skill_id VARCHAR NOT NULL,
        current_level NUMBER(1, 0) NOT NULL,
        attempts NUMBER NOT NULL DEFAULT 1,
        last_assessed TIMESTAMP_TZ NOT NULL,
        coach_notes VARCHAR,
        PRIMARY KEY (tenant_id, student_id, skill_id)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {STUDENT_COUNTERS_TABLE} (
        tenant_id VARCHAR NOT NULL,
        student_id VARCHAR NOT NULL,
        lessons_attended_count NUMBER NOT NULL DEFAULT 0,
        consecutive_weeks_present NUMBER NOT NULL DEFAULT 0,
        stroke_levels VARIANT,
        total_distance_meters NUMBER NOT NULL DEFAULT 0,
        early_check_ins NUMBER NOT NULL DEFAULT 0,
        lessons_scheduled_this_week NUMBER NOT NULL DEFAULT 0,
        lessons_attended_this_week NUMBER NOT NULL DEFAULT 0,
        referral_count NUMBER NOT NULL DEFAULT 0,
        equipment_purchases NUMBER NOT NULL DEFAULT 0,
        updated_at TIMESTAMP_TZ NOT NULL,
        PRIMARY KEY (tenant_id, student_id)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {STUDENT_BADGES_TABLE} (
        tenant_id VARCHAR NOT NULL,
        student_id VARCHAR NOT NULL,
        badge_id VARCHAR NOT NULL,
        earned_at TIMESTAMP_TZ NOT NULL,
        PRIMARY KEY (tenant_id, student_id, badge_id)
    )
    """,
)
