"""Snowflake persistence: connections, table layout and repositories."""
