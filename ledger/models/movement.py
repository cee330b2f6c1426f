"""
Movement model — the append-only audit trail.

One row is written for every mutation the ledger performs: account
lifecycle, transactions, transfers, goal lifecycle and goal funding. Rows
are never updated. The only delete path is an administrative cleanup that
no ledger operation calls.

Ordering and paging:
  Lists are ordered by (timestamp DESC, id DESC). The id breaks ties
  between rows written in the same microsecond, which makes the keyset
  cursor used by movement_service exact: no gaps, no duplicates.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, BigInteger, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base, enum_column


class MovementType(str, enum.Enum):
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSFER_CREATED = "transfer_created"
    GOAL_CREATED = "goal_created"
    GOAL_UPDATED = "goal_updated"
    GOAL_DELETED = "goal_deleted"
    GOAL_FUNDS_ADDED = "goal_funds_added"
    RECURRING_TRANSACTION_CREATED = "recurring_transaction_created"
    RECURRING_TRANSACTION_UPDATED = "recurring_transaction_updated"
    RECURRING_TRANSACTION_DELETED = "recurring_transaction_deleted"


class MovementEntityType(str, enum.Enum):
    ACCOUNT = "account"
    TRANSACTION = "transaction"
    TRANSFER = "transfer"
    GOAL = "goal"
    RECURRING_TRANSACTION = "recurring_transaction"


class Movement(Base):
    __tablename__ = "movements"

    __table_args__ = (
        Index("ix_movements_owner_timestamp", "owner_id", "timestamp", "id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    owner_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,
    )

    type: Mapped[MovementType] = mapped_column(
        enum_column(MovementType),
        nullable=False,
        index=True,
    )

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    # What the movement is about; a string so any entity id fits
    entity_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    entity_type: Mapped[MovementEntityType | None] = mapped_column(
        enum_column(MovementEntityType),
        nullable=True,
    )

    amount_cents: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
    )
    currency: Mapped[str | None] = mapped_column(
        String(3),
        nullable=True,
    )

    from_account_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    to_account_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    # "metadata" is reserved on declarative classes, hence the attribute name
    details: Mapped[dict] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )
