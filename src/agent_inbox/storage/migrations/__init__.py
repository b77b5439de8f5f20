"""Alembic environment and revisions for the task store."""
