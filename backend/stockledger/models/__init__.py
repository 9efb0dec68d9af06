from .catalog import Product, ProductSize
from .stock import StockRecord, StockMovement, StockRestock
from .offers import Deal, Promotion
from .carts import Cart, CartItem, Coupon
from .orders import Order, OrderItem
from .payments import PaymentNotification, PaymentContext
from .loyalty import LoyaltyAccount, LoyaltyTransaction

__all__ = [
    'Product', 'ProductSize',
    'StockRecord', 'StockMovement', 'StockRestock',
    'Deal', 'Promotion',
    'Cart', 'CartItem', 'Coupon',
    'Order', 'OrderItem',
    'PaymentNotification', 'PaymentContext',
    'LoyaltyAccount', 'LoyaltyTransaction',
]
