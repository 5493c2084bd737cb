"""
Core business logic for swim-school progress tracking.

This module is framework-agnostic - it doesn't import FastAPI, Snowflake,
or any infrastructure concerns. Skill matrices, recommendations and badge
rules can be tested in isolation and served by any framework.
"""
