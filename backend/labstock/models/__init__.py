from .catalog import Depot, Product
from .inventory import StockMovement, InventorySubmission
from .auth import User, SessionToken
from .communications import ChatMessage, AlertConfiguration

__all__ = [
    'Depot', 'Product',
    'StockMovement', 'InventorySubmission',
    'User', 'SessionToken',
    'ChatMessage', 'AlertConfiguration',
]
