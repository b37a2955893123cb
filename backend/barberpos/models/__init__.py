from .inventory import Product, StockMovement, StockCount, InventorySnapshot
from .catalog import ServiceOffering
from .sales import SaleRecord
from .documents import LedgerEvent

__all__ = [
    'Product', 'StockMovement', 'StockCount', 'InventorySnapshot',
    'ServiceOffering',
    'SaleRecord',
    'LedgerEvent',
]
