from solarstock.extensions import db
from solarstock.constants import TrackingType, normalize_tracking
from .base import BaseModel

# Warehouse managers (many-to-many: warehouse <-> user)
warehouse_managers = db.Table(
    'warehouse_managers',
    db.Column('warehouse_id', db.Integer, db.ForeignKey('company_warehouses.id'), primary_key=True),
    db.Column('user_id', db.Integer, db.ForeignKey('auth_users.id'), primary_key=True)
)


class ProductType(BaseModel):
    """Product type (panel, inverter, battery...); the scope of serial uniqueness"""
    __tablename__ = 'product_types'
    name = db.Column(db.String(64), unique=True, nullable=False)

    products = db.relationship('Product', backref='product_type', lazy='dynamic')


class Product(BaseModel):
    """Product master"""
    __tablename__ = 'products'

    product_name = db.Column(db.String(128), index=True, nullable=False)
    product_type_id = db.Column(db.Integer, db.ForeignKey('product_types.id'), nullable=False)
    hsn_ssn_code = db.Column(db.String(32))

    tracking_type = db.Column(db.String(10), default=TrackingType.LOT)
    serial_required = db.Column(db.Boolean, default=False)
    gst_percent = db.Column(db.Numeric(5, 2), default=0)
    min_stock_quantity = db.Column(db.Integer, default=0)

    @property
    def is_serialized(self):
        return normalize_tracking(self.tracking_type, self.serial_required)[1]

    def __repr__(self):
        return f'<Product {self.product_name}>'


class Warehouse(BaseModel):
    """Company warehouse"""
    __tablename__ = 'company_warehouses'
    name = db.Column(db.String(64), unique=True, nullable=False)
    address = db.Column(db.String(256))

    managers = db.relationship('User', secondary=warehouse_managers, backref='managed_warehouses')

    def __repr__(self):
        return f'<Warehouse {self.name}>'
