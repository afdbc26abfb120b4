from .auth import User
from .audit import AuditLogEntry
from .cash import CashSession, CashMovement
from .inventory import ProductGroup, Product, InventoryGroup, InventoryItem, InventoryMovement
from .sales import PaymentMethod, Sale, SaleItem, SaleTender
from .customers import Customer, CreditPayment, CreditAllocation

__all__ = [
    'User', 'AuditLogEntry',
    'CashSession', 'CashMovement',
    'ProductGroup', 'Product', 'InventoryGroup', 'InventoryItem', 'InventoryMovement',
    'PaymentMethod', 'Sale', 'SaleItem', 'SaleTender',
    'Customer', 'CreditPayment', 'CreditAllocation',
]
