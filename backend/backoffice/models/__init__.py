from .catalog import Category, Customer, Product
from .inventory import InventoryTransaction, ImmutableRecordError, TRANSACTION_TYPES
from .sales import Sale, SaleItem, PAYMENT_METHODS
from .tickets import SalesTicket, TICKET_STATUSES

__all__ = [
    'Category', 'Customer', 'Product',
    'InventoryTransaction', 'ImmutableRecordError', 'TRANSACTION_TYPES',
    'Sale', 'SaleItem', 'PAYMENT_METHODS',
    'SalesTicket', 'TICKET_STATUSES',
]
