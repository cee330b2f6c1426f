"""
RecurringTransaction model — a standing income or expense on one account.

A recurring transaction is a template: it records how much, on which
account, and how often. It never moves money by itself; `next_process_date`
is the next date the series falls due, recomputed whenever the start date,
end date or frequency changes.

Dates are calendar dates. A series anchored on the 29th, 30th or 31st falls
on the last day of shorter months.
"""

import enum
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import String, BigInteger, Boolean, Date, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base, enum_column
from ledger.models.transaction import TransactionCategory, TransactionType


class RecurrenceFrequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class RecurringTransaction(Base):
    __tablename__ = "recurring_transactions"

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_recurring_transactions_positive_amount"),
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

    # Plain id (no FK), like Transaction.account_id
    account_id: Mapped[uuid.UUID] = mapped_column(
        nullable=False,
        index=True,
    )

    amount_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
    )

    # income or expense only
    type: Mapped[TransactionType] = mapped_column(
        enum_column(TransactionType),
        nullable=False,
    )

    category: Mapped[TransactionCategory] = mapped_column(
        enum_column(TransactionCategory),
        nullable=False,
        default=TransactionCategory.OTHER,
    )

    description: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    frequency: Mapped[RecurrenceFrequency] = mapped_column(
        enum_column(RecurrenceFrequency),
        nullable=False,
    )

    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    end_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    last_processed: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    # None once the series has run past its end date
    next_process_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        index=True,
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
