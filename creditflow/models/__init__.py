"""SQLAlchemy ORM models for creditflow.

All models are exported from this module for convenient imports:
    from creditflow.models import User, Task, TaskLog, ...

Models are organized by domain:
- user.py: User
- credit.py: CreditLedger, CreditPlan
- transaction.py: Transaction (PIX purchases)
- task.py: Task, TaskLog (batch provisioning jobs)
"""

from creditflow.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from creditflow.models.credit import CreditLedger, CreditPlan
from creditflow.models.task import Task, TaskLog
from creditflow.models.transaction import Transaction
from creditflow.models.user import User

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    # Identity
    "User",
    # Credits
    "CreditLedger",
    "CreditPlan",
    "Transaction",
    # Task pipeline
    "Task",
    "TaskLog",
]
