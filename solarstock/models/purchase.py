"""Purchase orders and goods receipts"""
from solarstock.extensions import db
from solarstock.constants import TrackingType
from .base import BaseModel, utcnow


class PurchaseOrder(BaseModel):
    """Purchase order (maintained by the procurement module)"""
    __tablename__ = 'purchase_orders'

    STATUS_DRAFT = 'DRAFT'
    STATUS_APPROVED = 'APPROVED'
    STATUS_PARTIAL_RECEIVED = 'PARTIAL_RECEIVED'
    STATUS_CLOSED = 'CLOSED'

    RECEIVABLE_STATUSES = (STATUS_APPROVED, STATUS_PARTIAL_RECEIVED)

    po_number = db.Column(db.String(32), unique=True, index=True)
    supplier_name = db.Column(db.String(128))
    warehouse_id = db.Column(db.Integer, db.ForeignKey('company_warehouses.id'))  # ship-to
    status = db.Column(db.String(20), default=STATUS_DRAFT, index=True)

    warehouse = db.relationship('Warehouse')
    items = db.relationship('PurchaseOrderItem', backref='order', cascade='all, delete-orphan',
                            order_by='PurchaseOrderItem.id')

    @property
    def remaining_quantity(self):
        return sum(item.pending_qty for item in self.items)


class PurchaseOrderItem(BaseModel):
    """Purchase order line"""
    __tablename__ = 'purchase_order_items'

    purchase_order_id = db.Column(db.Integer, db.ForeignKey('purchase_orders.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)

    quantity = db.Column(db.Integer, default=1, nullable=False)
    received_quantity = db.Column(db.Integer, default=0, nullable=False)
    rate = db.Column(db.Numeric(14, 2), default=0)
    gst_percent = db.Column(db.Numeric(5, 2), default=0)

    product = db.relationship('Product')

    @property
    def pending_qty(self):
        """Quantity still to be received"""
        return (self.quantity or 0) - (self.received_quantity or 0)


class PurchaseReceipt(BaseModel):
    """Goods receipt against a purchase order (PO inward)"""
    __tablename__ = 'purchase_receipts'

    STATUS_DRAFT = 'DRAFT'
    STATUS_RECEIVED = 'RECEIVED'

    TYPE_PARTIAL = 'PARTIAL'
    TYPE_COMPLETE = 'COMPLETE'

    receipt_number = db.Column(db.String(32), unique=True, index=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey('purchase_orders.id'), nullable=False)
    supplier_name = db.Column(db.String(128))
    warehouse_id = db.Column(db.Integer, db.ForeignKey('company_warehouses.id'), nullable=False)

    supplier_invoice_number = db.Column(db.String(64))
    supplier_invoice_date = db.Column(db.Date)
    receipt_type = db.Column(db.String(20), default=TYPE_PARTIAL)
    status = db.Column(db.String(20), default=STATUS_DRAFT, index=True)

    total_received_quantity = db.Column(db.Integer, default=0)
    total_accepted_quantity = db.Column(db.Integer, default=0)
    total_rejected_quantity = db.Column(db.Integer, default=0)

    inspection_required = db.Column(db.Boolean, default=False)
    remarks = db.Column(db.Text)

    received_by = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    received_at = db.Column(db.DateTime, default=utcnow)
    approved_by = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    approved_at = db.Column(db.DateTime)

    purchase_order = db.relationship('PurchaseOrder')
    warehouse = db.relationship('Warehouse')
    items = db.relationship('PurchaseReceiptItem', backref='receipt', cascade='all, delete-orphan',
                            order_by='PurchaseReceiptItem.id')


class PurchaseReceiptItem(BaseModel):
    """Receipt line; tracking flags are normalized when the line is written"""
    __tablename__ = 'purchase_receipt_items'

    purchase_receipt_id = db.Column(db.Integer, db.ForeignKey('purchase_receipts.id'), nullable=False)
    purchase_order_item_id = db.Column(db.Integer, db.ForeignKey('purchase_order_items.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)

    tracking_type = db.Column(db.String(10), default=TrackingType.LOT)
    serial_required = db.Column(db.Boolean, default=False)

    ordered_quantity = db.Column(db.Integer, default=0)
    received_quantity = db.Column(db.Integer, default=0)
    accepted_quantity = db.Column(db.Integer, default=0)
    rejected_quantity = db.Column(db.Integer, default=0)

    rate = db.Column(db.Numeric(14, 2), default=0)
    gst_percent = db.Column(db.Numeric(5, 2), default=0)
    taxable_amount = db.Column(db.Numeric(14, 2), default=0)
    gst_amount = db.Column(db.Numeric(14, 2), default=0)
    total_amount = db.Column(db.Numeric(14, 2), default=0)
    remarks = db.Column(db.String(255))

    product = db.relationship('Product')
    purchase_order_item = db.relationship('PurchaseOrderItem')
    serials = db.relationship('PurchaseReceiptSerial', backref='item', cascade='all, delete-orphan',
                              order_by='PurchaseReceiptSerial.id')


class PurchaseReceiptSerial(BaseModel):
    """Serial number declared on a receipt line"""
    __tablename__ = 'purchase_receipt_serials'

    STATUS_RECEIVED = 'RECEIVED'

    purchase_receipt_item_id = db.Column(db.Integer, db.ForeignKey('purchase_receipt_items.id'), nullable=False)
    serial_number = db.Column(db.String(100), nullable=False)
    status = db.Column(db.String(20), default=STATUS_RECEIVED)
