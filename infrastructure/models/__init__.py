"""Infrastructure models package exports."""
from .base import Base, metadata
from .event import EventModel
from .ticket import TicketModel
from .wallet import WalletModel, WalletTransactionModel

__all__ = [
    "Base",
    "metadata",
    "EventModel",
    "TicketModel",
    "WalletModel",
    "WalletTransactionModel",
]
