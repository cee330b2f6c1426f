"""
Account model — a money container owned by one user.

Each account has:
  - A display name and a type (checking, savings, investment, credit, other)
  - A cached balance in integer cents, updated in the same DB transaction as
    the transaction leg that justifies it
  - The opening balance it was created with, so the cached balance can be
    re-derived from history (see account_service.get_balance)
  - A currency code (ISO 4217)
  - A default-account flag (at most one per owner)
  - An optional back-reference to the savings goal it funds

Balance rules:
  The balance is never edited directly. It moves only through account
  transactions, user-level transactions, transfers and goal funding. No
  CHECK constraint keeps it non-negative: credit accounts may start and
  stay below zero.

Why integer cents?
  Floating-point numbers introduce rounding errors (0.1 + 0.2 != 0.3 in
  IEEE 754). Integer cents make every sum exact: $10.99 is stored as 1099
  and the client divides by 100 for display.

Optimistic concurrency:
  `version` is SQLAlchemy's version_id_col. Every UPDATE is issued as
  "... WHERE id = :id AND version = :seen" and bumps the counter. If another
  writer got there first the UPDATE matches no row and SQLAlchemy raises
  StaleDataError, which the services report as ConcurrentModificationError.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, BigInteger, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base, enum_column


class AccountType(str, enum.Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    INVESTMENT = "investment"
    CREDIT = "credit"
    OTHER = "other"


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Opaque id from the identity provider; every query filters on it
    owner_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    account_type: Mapped[AccountType] = mapped_column(
        enum_column(AccountType),
        nullable=False,
        default=AccountType.CHECKING,
    )

    balance_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    initial_balance_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
    )

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    is_default: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # Goal linkage back-reference (plain id, the goal owns the link)
    is_goal_account: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    goal_id: Mapped[uuid.UUID | None] = mapped_column(
        nullable=True,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}
