"""Infrastructure layer — database engine, schema, and the lending store.

This layer depends on stdlib and SQLAlchemy. It converts rows to domain
entities but never imports from services, commands, or output.
"""
