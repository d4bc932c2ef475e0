from app.db.base import Base
from .project import Project
from .reward import Reward
from .payment_session import PaymentSession
from .transaction import Transaction

__all__ = [
    "Base",
    "Project",
    "Reward",
    "PaymentSession",
    "Transaction",
]
