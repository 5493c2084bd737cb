"""
Service configuration.

Settings come from environment variables (or .env): API keys, the default
tenant, catalog file overrides and Snowflake credentials.
"""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
