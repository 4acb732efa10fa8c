from .auth import User, UserRole, SessionToken
from .security import SecurityEvent
from .messaging import Message
from .notifications import Notification
from .catalog import Product
from .orders import Order, OrderItem

__all__ = [
    'User', 'UserRole', 'SessionToken', 'SecurityEvent',
    'Message',
    'Notification',
    'Product',
    'Order', 'OrderItem',
]
