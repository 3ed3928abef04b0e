"""Pydantic models and closed enums shared by the store and the CLI."""
