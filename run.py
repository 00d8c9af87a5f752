import os
from solarstock import create_app, db
from solarstock.models import (
    User, ProductType, Product, Warehouse,
    Stock, StockSerial, InventoryLedger,
    PurchaseOrder, PurchaseReceipt,
    Order, B2BSalesOrder, OutboundDocument,
    StockAdjustment, StockTransfer,
)

# Config name from FLASK_ENV or FLASK_CONFIG
config_name = os.getenv('FLASK_ENV') or os.getenv('FLASK_CONFIG') or 'default'
if config_name == 'dev':
    config_name = 'development'

app = create_app(config_name)


@app.shell_context_processor
def make_shell_context():
    """Names preloaded into 'flask shell'."""
    return dict(
        db=db,
        app=app,
        User=User,
        ProductType=ProductType,
        Product=Product,
        Warehouse=Warehouse,
        Stock=Stock,
        StockSerial=StockSerial,
        InventoryLedger=InventoryLedger,
        PurchaseOrder=PurchaseOrder,
        PurchaseReceipt=PurchaseReceipt,
        Order=Order,
        B2BSalesOrder=B2BSalesOrder,
        OutboundDocument=OutboundDocument,
        StockAdjustment=StockAdjustment,
        StockTransfer=StockTransfer,
    )


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=5000)
