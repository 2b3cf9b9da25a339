from .reference import Category, Unit, Warehouse, Product
from .ledger import StockRecord, Transaction, TransactionItem

__all__ = [
    'Category', 'Unit', 'Warehouse', 'Product',
    'StockRecord', 'Transaction', 'TransactionItem',
]
