"""Stock adjustments (found / damage / loss / audit)"""
from solarstock.extensions import db
from solarstock.constants import TrackingType, MovementType
from .base import BaseModel


class StockAdjustment(BaseModel):
    __tablename__ = 'stock_adjustments'

    STATUS_DRAFT = 'DRAFT'
    STATUS_APPROVED = 'APPROVED'
    STATUS_POSTED = 'POSTED'

    TYPE_FOUND = 'FOUND'
    TYPE_DAMAGE = 'DAMAGE'
    TYPE_LOSS = 'LOSS'
    TYPE_AUDIT = 'AUDIT'

    TYPES = (TYPE_FOUND, TYPE_DAMAGE, TYPE_LOSS, TYPE_AUDIT)

    # Direction implied by type; AUDIT lines carry their own
    IMPLIED_DIRECTION = {
        TYPE_FOUND: MovementType.IN,
        TYPE_DAMAGE: MovementType.OUT,
        TYPE_LOSS: MovementType.OUT,
    }

    adjustment_number = db.Column(db.String(32), unique=True, index=True)
    adjustment_date = db.Column(db.Date)
    warehouse_id = db.Column(db.Integer, db.ForeignKey('company_warehouses.id'), nullable=False)
    adjustment_type = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), default=STATUS_DRAFT, index=True)
    total_quantity = db.Column(db.Integer, default=0)
    remarks = db.Column(db.Text)

    requested_by = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    approved_by = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    approved_at = db.Column(db.DateTime)
    posted_by = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    posted_at = db.Column(db.DateTime)

    warehouse = db.relationship('Warehouse')
    items = db.relationship('StockAdjustmentItem', backref='adjustment', cascade='all, delete-orphan',
                            order_by='StockAdjustmentItem.id')


class StockAdjustmentItem(BaseModel):
    __tablename__ = 'stock_adjustment_items'

    stock_adjustment_id = db.Column(db.Integer, db.ForeignKey('stock_adjustments.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    tracking_type = db.Column(db.String(10), default=TrackingType.LOT)
    serial_required = db.Column(db.Boolean, default=False)
    adjustment_quantity = db.Column(db.Integer, nullable=False)
    adjustment_direction = db.Column(db.String(10), nullable=False)
    reason = db.Column(db.String(255))

    product = db.relationship('Product')
    serials = db.relationship('StockAdjustmentSerial', backref='item', cascade='all, delete-orphan',
                              order_by='StockAdjustmentSerial.id')


class StockAdjustmentSerial(BaseModel):
    __tablename__ = 'stock_adjustment_serials'

    stock_adjustment_item_id = db.Column(db.Integer, db.ForeignKey('stock_adjustment_items.id'), nullable=False)
    stock_serial_id = db.Column(db.Integer, db.ForeignKey('stock_serials.id'), nullable=False)
    serial_number = db.Column(db.String(100))

    stock_serial = db.relationship('StockSerial')
