import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)


def _add_missing_columns(engine: Engine, table: str, columns: dict) -> list[str]:
    inspector = inspect(engine)
    if table not in inspector.get_table_names():
        return []
    existing = {column["name"] for column in inspector.get_columns(table)}
    statements = [
        f"ALTER TABLE {table} ADD COLUMN {name} {definition}"
        for name, definition in columns.items()
        if name not in existing
    ]
    if not statements:
        return []
    with engine.begin() as connection:
        for statement in statements:
            connection.execute(text(statement))
            logger.info("Applied migration: %s", statement)
    return statements


def ensure_provider_review_columns(engine: Engine) -> list[str]:
    """Databases created before admin review was added lack the rejection reason."""
    return _add_missing_columns(engine, "service_providers", {"rejection_reason": "TEXT"})


def ensure_gallery_thumbnail_column(engine: Engine) -> list[str]:
    return _add_missing_columns(engine, "galleries", {"thumbnail_url": "VARCHAR"})


def run_migrations(engine: Engine) -> None:
    ensure_provider_review_columns(engine)
    ensure_gallery_thumbnail_column(engine)
