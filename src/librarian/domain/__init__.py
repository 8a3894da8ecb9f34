"""Domain layer — entities, lending rules, and command values.

This layer depends only on stdlib and pydantic.
It must never import from services, infrastructure, commands, or config.
"""
