from .tenancy import Organization, Dispensary
from .catalog import Product, ProductVariant
from .carts import Cart, CartItem
from .orders import (
    Order,
    OrderItem,
    OrderStatusHistory,
    OrderSequence,
    ORDER_STATUSES,
    PAYMENT_STATUSES,
    FULFILLMENT_TYPES,
)
from .compliance import ComplianceLog, ComplianceOutbox, DailySalesReport, COMPLIANCE_EVENT_TYPES

__all__ = [
    'Organization', 'Dispensary',
    'Product', 'ProductVariant',
    'Cart', 'CartItem',
    'Order', 'OrderItem', 'OrderStatusHistory', 'OrderSequence',
    'ORDER_STATUSES', 'PAYMENT_STATUSES', 'FULFILLMENT_TYPES',
    'ComplianceLog', 'ComplianceOutbox', 'DailySalesReport', 'COMPLIANCE_EVENT_TYPES',
]
