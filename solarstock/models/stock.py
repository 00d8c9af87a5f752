from sqlalchemy import event
from solarstock.extensions import db
from solarstock.constants import TrackingType, SerialStatus
from solarstock.exceptions import InvariantViolation
from .base import BaseModel, utcnow


class Stock(BaseModel):
    """
    Stock aggregate: one row per (product, warehouse).
    quantity_available tracks on_hand - reserved; reservations are not used,
    so both move together.
    """
    __tablename__ = 'stocks'
    __table_args__ = (
        db.UniqueConstraint('product_id', 'warehouse_id', name='uq_stocks_product_warehouse'),
    )

    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey('company_warehouses.id'), nullable=False)

    quantity_on_hand = db.Column(db.Integer, default=0, nullable=False)
    quantity_reserved = db.Column(db.Integer, default=0, nullable=False)
    quantity_available = db.Column(db.Integer, default=0, nullable=False)

    tracking_type = db.Column(db.String(10), default=TrackingType.LOT)
    serial_required = db.Column(db.Boolean, default=False)
    min_stock_quantity = db.Column(db.Integer, default=0)

    last_inward_at = db.Column(db.DateTime)
    last_outward_at = db.Column(db.DateTime)
    last_updated_by = db.Column(db.Integer, db.ForeignKey('auth_users.id'))

    product = db.relationship('Product', backref=db.backref('stocks', lazy='dynamic'))
    warehouse = db.relationship('Warehouse', backref=db.backref('stocks', lazy='dynamic'))

    @property
    def low_stock(self):
        return (self.quantity_available or 0) < (self.min_stock_quantity or 0)

    def __repr__(self):
        return f'<Stock p={self.product_id} w={self.warehouse_id} on_hand={self.quantity_on_hand}>'


class StockSerial(BaseModel):
    """
    One physically identifiable unit.
    Serial numbers are unique per product type, so two panel models cannot
    share a serial but a panel and an inverter may.
    """
    __tablename__ = 'stock_serials'
    __table_args__ = (
        db.UniqueConstraint('serial_number', 'product_type_id', name='uq_stock_serials_number_type'),
        db.Index('ix_stock_serials_product_warehouse', 'product_id', 'warehouse_id'),
    )

    serial_number = db.Column(db.String(100), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    product_type_id = db.Column(db.Integer, db.ForeignKey('product_types.id'), nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey('company_warehouses.id'), nullable=False)
    stock_id = db.Column(db.Integer, db.ForeignKey('stocks.id'), nullable=False)

    status = db.Column(db.String(20), default=SerialStatus.AVAILABLE, nullable=False, index=True)

    # Document that last moved the unit
    source_type = db.Column(db.String(30))
    source_id = db.Column(db.Integer)
    # Set while ISSUED: which kind of document and its number
    issued_against = db.Column(db.String(30))
    reference_number = db.Column(db.String(50))

    unit_price = db.Column(db.Numeric(14, 2))
    inward_date = db.Column(db.Date)
    outward_date = db.Column(db.Date)

    product = db.relationship('Product')
    stock = db.relationship('Stock', backref=db.backref('serials', lazy='dynamic'))

    def __repr__(self):
        return f'<StockSerial {self.serial_number} {self.status}>'


class InventoryLedger(BaseModel):
    """
    Append-only movement ledger.
    Each row snapshots the aggregate's on_hand before (opening) and after
    (closing) the movement. Rows are never updated or deleted; corrections are
    new rows with a reversal transaction type.
    """
    __tablename__ = 'inventory_ledger'
    __table_args__ = (
        db.Index('ix_ledger_product_warehouse', 'product_id', 'warehouse_id'),
        db.Index('ix_ledger_transaction', 'transaction_type', 'transaction_id'),
        db.CheckConstraint('quantity > 0', name='ck_ledger_quantity_positive'),
    )

    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey('company_warehouses.id'), nullable=False)
    stock_id = db.Column(db.Integer, db.ForeignKey('stocks.id'), nullable=False)

    transaction_type = db.Column(db.String(30), nullable=False)
    transaction_id = db.Column(db.Integer, nullable=False)
    transaction_reference_no = db.Column(db.String(100))

    movement_type = db.Column(db.String(10), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    serial_id = db.Column(db.Integer, db.ForeignKey('stock_serials.id'))

    opening_quantity = db.Column(db.Integer, nullable=False)
    closing_quantity = db.Column(db.Integer, nullable=False)

    rate = db.Column(db.Numeric(14, 2))
    gst_percent = db.Column(db.Numeric(5, 2))
    amount = db.Column(db.Numeric(14, 2))
    reason = db.Column(db.String(255))

    performed_by = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    performed_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    serial = db.relationship('StockSerial')
    stock = db.relationship('Stock')

    def __repr__(self):
        return (f'<InventoryLedger {self.transaction_type}#{self.transaction_id} '
                f'{self.movement_type} {self.quantity}>')


@event.listens_for(InventoryLedger, 'before_update')
def _reject_ledger_update(mapper, connection, target):
    raise InvariantViolation(f'Ledger entry {target.id} is immutable')


@event.listens_for(InventoryLedger, 'before_delete')
def _reject_ledger_delete(mapper, connection, target):
    raise InvariantViolation(f'Ledger entry {target.id} cannot be deleted')
