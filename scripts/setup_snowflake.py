#!/usr/bin/env python3
"""
Create the progress tables in Snowflake.

Runs CREATE TABLE IF NOT EXISTS for skill_progress, student_counters and
student_badges, so it is safe to run against an existing schema.

Usage:
    python scripts/setup_snowflake.py
    python scripts/setup_snowflake.py --dry-run

Requires:
    - .env file with Snowflake credentials (same variables as the API)
"""

import sys
from pathlib import Path

# Add the project root to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from swimschool.config import Settings
from swimschool.infrastructure.snowflake.client import (
    SnowflakeConfig,
    SnowflakeConnectionError,
    get_snowflake_connection,
)
from swimschool.infrastructure.snowflake.tables import DDL_STATEMENTS


def create_tables(settings: Settings, dry_run: bool = False) -> bool:
    if dry_run:
        print("\n=== DRY RUN - No statements will be executed ===\n")
        for statement in DDL_STATEMENTS:
            print(statement.strip())
            print()
        print(f"Total: {len(DDL_STATEMENTS)} statements")
        return True

    missing = [
        name for name in settings.validate_required_fields()
        if name.startswith("SNOWFLAKE")
    ]
    if missing:
        print(f"ERROR: Missing {', '.join(missing)}")
        return False

    config = SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        private_key_base64=settings.snowflake_private_key_base64,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )

    print(f"Connecting to Snowflake account: {config.account}")
    try:
        with get_snowflake_connection(config) as conn:
            cursor = conn.cursor()
            try:
                print(f"Using database {config.database}, schema {config.schema}")
                cursor.execute(f"CREATE SCHEMA IF NOT EXISTS {config.database}.{config.schema}")
                cursor.execute(f"USE SCHEMA {config.database}.{config.schema}")

                for statement in DDL_STATEMENTS:
                    cursor.execute(statement)
                    first_line = statement.strip().splitlines()[0]
                    print(f"[OK] {first_line}")

                conn.commit()
            finally:
                cursor.close()

    except SnowflakeConnectionError as e:
        print(f"ERROR connecting to Snowflake: {e}")
        return False

    print("\n=== Setup Complete ===")
    return True


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Create progress tables in Snowflake')
    parser.add_argument('--dry-run', action='store_true', help='Print the DDL, don\'t execute it')
    args = parser.parse_args()

    success = create_tables(Settings(), dry_run=args.dry_run)

    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
