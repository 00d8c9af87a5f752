from .base import BaseModel
from .auth import User
from .catalog import ProductType, Product, Warehouse, warehouse_managers
from .stock import Stock, StockSerial, InventoryLedger
from .purchase import PurchaseOrder, PurchaseOrderItem, PurchaseReceipt, PurchaseReceiptItem, PurchaseReceiptSerial
from .orders import Order, OrderBomLine, B2BSalesOrder, B2BSalesOrderItem
from .outbound import OutboundDocument, OutboundItem, OutboundItemSerial
from .adjustment import StockAdjustment, StockAdjustmentItem, StockAdjustmentSerial
from .transfer import StockTransfer, StockTransferItem, StockTransferSerial
