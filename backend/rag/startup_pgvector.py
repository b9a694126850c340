"""Enable the pgvector extension at process start-up."""

import logging

from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


def enable_pgvector(engine: Engine) -> bool:
    """
    Enable pgvector in PostgreSQL.

    Returns:
        True if similarity can be ranked in SQL, False if the retriever
        should rank in Python.
    """
    if engine.dialect.name != "postgresql":
        logger.info("pgvector_skipped", extra={"dialect": engine.dialect.name})
        return False

    try:
        with engine.begin() as conn:
            # Idempotent: no-op if the extension already exists
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            is_enabled = conn.execute(
                text("SELECT EXISTS(SELECT 1 FROM pg_extension WHERE extname = 'vector')")
            ).scalar()
    except SQLAlchemyError as exc:
        logger.warning("pgvector_unavailable", extra={"error": str(exc)[:200]})
        return False

    if is_enabled:
        logger.info("pgvector_enabled")
        return True
    logger.warning("pgvector_unavailable", extra={"error": "extension missing after create"})
    return False
