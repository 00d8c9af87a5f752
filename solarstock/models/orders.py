"""Sales-side collaborators: internal (installation) orders and B2B sales orders"""
from solarstock.extensions import db
from solarstock.constants import DeliveryStatus
from .base import BaseModel


class Order(BaseModel):
    """Installation order; its BOM lines fix how much of each product may ship"""
    __tablename__ = 'orders'

    STATUS_DRAFT = 'DRAFT'
    STATUS_CONFIRMED = 'CONFIRMED'
    STATUS_CLOSED = 'CLOSED'

    order_number = db.Column(db.String(32), unique=True, index=True)
    customer_name = db.Column(db.String(128))
    status = db.Column(db.String(20), default=STATUS_DRAFT, index=True)
    planned_warehouse_id = db.Column(db.Integer, db.ForeignKey('company_warehouses.id'))

    # pending / partial / complete, derived from surviving challans
    delivery_status = db.Column(db.String(20), default=DeliveryStatus.PENDING)

    planned_warehouse = db.relationship('Warehouse')
    bom_lines = db.relationship('OrderBomLine', backref='order', cascade='all, delete-orphan',
                                order_by='OrderBomLine.id')


class OrderBomLine(BaseModel):
    """Planned (BOM) quantity per product, with a shipped/pending snapshot"""
    __tablename__ = 'order_bom_lines'
    __table_args__ = (
        db.UniqueConstraint('order_id', 'product_id', name='uq_order_bom_product'),
    )

    order_id = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    planned_quantity = db.Column(db.Integer, default=0, nullable=False)
    shipped_quantity = db.Column(db.Integer, default=0, nullable=False)
    pending_quantity = db.Column(db.Integer, default=0, nullable=False)

    product = db.relationship('Product')


class B2BSalesOrder(BaseModel):
    """B2B sales order"""
    __tablename__ = 'b2b_sales_orders'

    STATUS_DRAFT = 'DRAFT'
    STATUS_CONFIRMED = 'CONFIRMED'
    STATUS_CLOSED = 'CLOSED'

    order_no = db.Column(db.String(32), unique=True, index=True)
    client_name = db.Column(db.String(128))
    status = db.Column(db.String(20), default=STATUS_DRAFT, index=True)
    planned_warehouse_id = db.Column(db.Integer, db.ForeignKey('company_warehouses.id'))

    planned_warehouse = db.relationship('Warehouse')
    items = db.relationship('B2BSalesOrderItem', backref='order', cascade='all, delete-orphan',
                            order_by='B2BSalesOrderItem.id')


class B2BSalesOrderItem(BaseModel):
    __tablename__ = 'b2b_sales_order_items'

    b2b_sales_order_id = db.Column(db.Integer, db.ForeignKey('b2b_sales_orders.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    quantity = db.Column(db.Integer, default=0, nullable=False)
    shipped_quantity = db.Column(db.Integer, default=0, nullable=False)
    rate = db.Column(db.Numeric(14, 2), default=0)

    product = db.relationship('Product')
