from .catalog import Brand, Category, Product
from .pricing import MarginRule
from .inventory import StockHistory
from .customers import Customer, CustomerContact
from .orders import Order, OrderLine, OrderSequence
from .cart import CartItem

__all__ = [
    'Brand', 'Category', 'Product',
    'MarginRule',
    'StockHistory',
    'Customer', 'CustomerContact',
    'Order', 'OrderLine', 'OrderSequence',
    'CartItem',
]
