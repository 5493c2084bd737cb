"""
Repository pattern implementations for Snowflake.

Repositories translate between domain models and database representations.
"""

from .counters import SnowflakeCountersRepository
from .progress import SnowflakeSkillProgressRepository

__all__ = ["SnowflakeCountersRepository", "SnowflakeSkillProgressRepository"]
