"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - engine: The async database engine
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - enum_column(): String-backed column type for the ledger's str enums
  - get_db(): FastAPI dependency that provides a session per request

Session lifecycle:
  Each API request gets its own session via get_db(). Everything a ledger
  operation writes (balances, transaction legs, goal progress, movements)
  goes through that one session, so the request is the unit of atomicity:
  commit on success, roll back on ANY exception. Domain errors are raised
  before writes, so rolling back on them discards nothing.
"""

import enum

from sqlalchemy import Enum
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from ledger.config import settings


# echo=True in debug mode logs all SQL statements
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
)

# expire_on_commit=False prevents lazy-load errors after commit; attribute
# access on an expired object would need a synchronous DB call.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def enum_column(enum_cls: type[enum.Enum]) -> Enum:
    """
    Column type storing an enum's *values* ("checking", not "CHECKING").

    native_enum=False keeps it a plain VARCHAR on every backend, so adding
    a member never needs an ALTER TYPE migration.
    """
    return Enum(
        enum_cls,
        native_enum=False,
        length=40,
        values_callable=lambda members: [member.value for member in members],
    )


async def get_db():
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
