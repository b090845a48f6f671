from .donations import Donation
from .inventory import InventoryItem, StockTransaction
from .auth import User, SessionToken

__all__ = [
    'Donation',
    'InventoryItem', 'StockTransaction',
    'User', 'SessionToken',
]
