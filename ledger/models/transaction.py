"""
Transaction model — the user-level income/expense ledger used for reporting.

This is separate from the account-scoped sub-ledger (AccountTransaction).
A user-level transaction names exactly one account and moves its balance:

  - income:  +amount_cents
  - expense: -amount_cents

The `transfer` type is reserved for reporting rows that describe a transfer
and carry `transfer_account_id`; add_transaction does not accept it (money
moves between accounts only through the transfer coordinator).

Editing or deleting a row reverses its effect on the account first, so the
account balance always agrees with the rows that remain.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, BigInteger, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base, enum_column


class TransactionType(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class TransactionCategory(str, enum.Enum):
    FOOD = "Food"
    TRANSPORT = "Transport"
    SHOPPING = "Shopping"
    SALARY = "Salary"
    UTILITIES = "Utilities"
    ENTERTAINMENT = "Entertainment"
    INVESTMENT = "Investment"
    GIFT = "Gift"
    REFUND = "Refund"
    OTHER = "Other"


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_transactions_positive_amount"),
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

    # Plain id (no FK): rows survive account deletion as history
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

    type: Mapped[TransactionType] = mapped_column(
        enum_column(TransactionType),
        nullable=False,
    )

    category: Mapped[TransactionCategory] = mapped_column(
        enum_column(TransactionCategory),
        nullable=False,
        default=TransactionCategory.OTHER,
    )

    # Free-text source/description ("Employer", "Groceries at ...")
    source: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )

    transfer_account_id: Mapped[uuid.UUID | None] = mapped_column(
        nullable=True,
    )

    # When the money moved (user-supplied, defaults to now); list order key
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
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
