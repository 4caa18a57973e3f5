from .auth import User, SessionToken, ROLES, ROLE_ADMIN, ROLE_MANAGER, ROLE_WAITRESS
from .customers import Customer
from .inventory import Product, InventoryTransaction
from .orders import Order, OrderItem, Payment, OrderSequence
from .settings import BusinessSettings

__all__ = [
    'User', 'SessionToken', 'ROLES', 'ROLE_ADMIN', 'ROLE_MANAGER', 'ROLE_WAITRESS',
    'Customer',
    'Product', 'InventoryTransaction',
    'Order', 'OrderItem', 'Payment', 'OrderSequence',
    'BusinessSettings',
]
