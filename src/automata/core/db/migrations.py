"""Reusable migration runner for both production and tests."""

from alembic.config import Config

from alembic import command


def run_migrations_sync() -> None:
    """Run Alembic migrations synchronously up to head."""
    alembic_cfg = Config("alembic.ini")
    command.upgrade(alembic_cfg, "head")
