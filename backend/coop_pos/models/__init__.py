from .auth import User
from .catalog import Product
from .members import Member, CreditEntry
from .sales import Transaction, TransactionItem

__all__ = [
    'User',
    'Product',
    'Member', 'CreditEntry',
    'Transaction', 'TransactionItem',
]
