"""
SwimSchool Progress - skill tracking and achievements for swim schools.

This package contains the complete application:
- core: Framework-agnostic progress and badge logic
- infrastructure: Snowflake persistence
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
