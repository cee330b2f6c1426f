"""
AccountTransaction model — the account-scoped sub-ledger.

Every balance change made through the account ledger, a transfer, or goal
funding writes one row here:

  - A direct deposit/withdrawal creates one CREDIT or DEBIT row
  - A transfer creates TWO rows: a DEBIT on the source and a CREDIT on the
    destination, linked by a shared `transfer_pair_id`; each leg names the
    other side in `counterpart_account_id`
  - Goal funding creates one DEBIT row with category "Goal" and `goal_id`

Why amount_cents is always positive:
  The direction lives in `type`. You never wonder whether a negative number
  means money in or money out.

`account_id` is a plain column, not a foreign key: deleting an account keeps
its rows as audit history pointing at an id that no longer resolves.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, BigInteger, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger.database import Base, enum_column


class AccountTransactionType(str, enum.Enum):
    DEBIT = "debit"
    CREDIT = "credit"


# Category used for the debit leg written by goal funding
GOAL_CONTRIBUTION_CATEGORY = "Goal"
TRANSFER_CATEGORY = "Transfer"


class AccountTransaction(Base):
    __tablename__ = "account_transactions"

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_account_transactions_positive_amount"),
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

    account_id: Mapped[uuid.UUID] = mapped_column(
        nullable=False,
        index=True,
    )

    type: Mapped[AccountTransactionType] = mapped_column(
        enum_column(AccountTransactionType),
        nullable=False,
    )

    amount_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    category: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Transfer legs only: the account on the other side
    counterpart_account_id: Mapped[uuid.UUID | None] = mapped_column(
        nullable=True,
    )

    # Both legs of a transfer share this id
    transfer_pair_id: Mapped[uuid.UUID | None] = mapped_column(
        nullable=True,
        index=True,
    )

    # Goal funding legs only
    goal_id: Mapped[uuid.UUID | None] = mapped_column(
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
