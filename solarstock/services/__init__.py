from .stock_service import StockService
from .serial_service import SerialRegistry
from .ledger_service import LedgerService
from .purchase_service import PurchaseReceiptService
from .outbound_service import OutboundService, ChallanPolicy, B2BShipmentPolicy
from .adjustment_service import StockAdjustmentService
from .transfer_service import StockTransferService
from .opening_service import OpeningBalanceService
from .export_service import ExportService, export_service
