from .parties import Customer, Supplier
from .inventory import Category, Product
from .orders import Order, OrderItem
from .purchasing import PurchaseOrder, PurchaseOrderItem
from .payments import Payment

__all__ = [
    'Customer', 'Supplier',
    'Category', 'Product',
    'Order', 'OrderItem',
    'PurchaseOrder', 'PurchaseOrderItem',
    'Payment',
]
