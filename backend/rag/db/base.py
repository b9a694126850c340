"""Database base configuration and utilities."""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from backend.rag.config import Settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


def get_engine(settings: Settings) -> Engine:
    """Create and configure a SQLAlchemy engine.

    Args:
        settings: RAG settings containing the database URL.

    Returns:
        Configured SQLAlchemy engine.
    """
    if settings.postgres_url.startswith("sqlite"):
        return create_engine(settings.postgres_url)
    return create_engine(
        settings.postgres_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
    )


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory for the given engine.

    Args:
        engine: SQLAlchemy engine to bind sessions to.

    Returns:
        Session factory.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def get_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Context manager for a unit of work.

    Commits when the block exits normally and rolls back on any exception,
    so everything done inside one block is applied together or not at all.

    Args:
        session_factory: Session factory to create sessions from.

    Yields:
        Database session.

    Example:
        >>> factory = get_session_factory(get_engine(settings))
        >>> with get_session(factory) as session:
        ...     session.scalars(select(KnowledgeDocument)).all()
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
