"""
Goal model — a savings target funded from a linked account.

Progress is a running counter (`current_amount_cents`). Funding moves money
out of the linked account and into this counter in one DB transaction.

Status lifecycle:
  active ──(current >= target)──> completed
  active <──────(user)──────────> canceled

Completion is one-way: once a goal is completed no funding or progress
adjustment moves it back to active, even if the counter is later reduced.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, BigInteger, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base, enum_column


class GoalStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELED = "canceled"


class Goal(Base):
    __tablename__ = "goals"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    owner_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    target_amount_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    current_amount_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
    )

    status: Mapped[GoalStatus] = mapped_column(
        enum_column(GoalStatus),
        nullable=False,
        default=GoalStatus.ACTIVE,
    )

    # Funding source; cleared (not cascaded) when the account is deleted
    account_id: Mapped[uuid.UUID | None] = mapped_column(
        nullable=True,
        index=True,
    )

    deadline: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
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

    @property
    def is_completed(self) -> bool:
        return self.status == GoalStatus.COMPLETED
