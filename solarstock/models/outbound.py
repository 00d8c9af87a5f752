"""Outbound documents: delivery challans and B2B shipments share one table family"""
from solarstock.extensions import db
from solarstock.constants import OutboundKind
from .base import BaseModel, utcnow


class OutboundDocument(BaseModel):
    """
    Stock leaving a warehouse against a confirmed order.
    kind=CHALLAN points order_id at orders, kind=B2B_SHIPMENT at b2b_sales_orders.
    """
    __tablename__ = 'outbound_documents'
    __table_args__ = (
        db.Index('ix_outbound_kind_order', 'kind', 'order_id'),
    )

    kind = db.Column(db.String(20), default=OutboundKind.CHALLAN, nullable=False)
    document_no = db.Column(db.String(32), unique=True, index=True)
    order_id = db.Column(db.Integer, nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey('company_warehouses.id'), nullable=False)

    document_date = db.Column(db.Date)
    transporter = db.Column(db.String(128))
    remarks = db.Column(db.Text)

    created_by = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    deleted_by = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    deleted_at = db.Column(db.DateTime)

    warehouse = db.relationship('Warehouse')
    items = db.relationship('OutboundItem', backref='document', cascade='all, delete-orphan',
                            order_by='OutboundItem.id')

    @property
    def total_quantity(self):
        return sum(item.quantity for item in self.items)

    def mark_deleted(self, user_id):
        self.soft_delete()
        self.deleted_by = user_id
        self.deleted_at = utcnow()


class OutboundItem(BaseModel):
    __tablename__ = 'outbound_items'

    document_id = db.Column(db.Integer, db.ForeignKey('outbound_documents.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    remarks = db.Column(db.String(255))

    product = db.relationship('Product')
    serials = db.relationship('OutboundItemSerial', backref='item', cascade='all, delete-orphan',
                              order_by='OutboundItemSerial.id')

    @property
    def serial_numbers(self):
        return [s.serial_number for s in self.serials]


class OutboundItemSerial(BaseModel):
    """Serial issued on an outbound line"""
    __tablename__ = 'outbound_item_serials'

    outbound_item_id = db.Column(db.Integer, db.ForeignKey('outbound_items.id'), nullable=False)
    serial_number = db.Column(db.String(100), nullable=False)
    stock_serial_id = db.Column(db.Integer, db.ForeignKey('stock_serials.id'))
