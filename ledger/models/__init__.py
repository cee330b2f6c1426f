"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all() runs
  2. Other modules can import from ledger.models directly
"""

from ledger.models.account import Account, AccountType  # noqa: F401
from ledger.models.account_transaction import AccountTransaction, AccountTransactionType  # noqa: F401
from ledger.models.transaction import Transaction, TransactionCategory, TransactionType  # noqa: F401
from ledger.models.goal import Goal, GoalStatus  # noqa: F401
from ledger.models.movement import Movement, MovementEntityType, MovementType  # noqa: F401
from ledger.models.recurring_transaction import RecurrenceFrequency, RecurringTransaction  # noqa: F401
