"""
Database Models
"""
from app.db.models.user import User
from app.db.models.order import Order
from app.db.models.withdrawal import Withdrawal
from app.db.models.wallet_transaction import WalletTransaction

__all__ = [
    "User",
    "Order",
    "Withdrawal",
    "WalletTransaction",
]
