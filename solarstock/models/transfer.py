"""Warehouse-to-warehouse stock transfers"""
from solarstock.extensions import db
from solarstock.constants import TrackingType
from .base import BaseModel


class StockTransfer(BaseModel):
    __tablename__ = 'stock_transfers'

    STATUS_DRAFT = 'DRAFT'
    STATUS_APPROVED = 'APPROVED'
    STATUS_IN_TRANSIT = 'IN_TRANSIT'
    STATUS_RECEIVED = 'RECEIVED'

    transfer_number = db.Column(db.String(32), unique=True, index=True)
    transfer_date = db.Column(db.Date)
    from_warehouse_id = db.Column(db.Integer, db.ForeignKey('company_warehouses.id'), nullable=False)
    to_warehouse_id = db.Column(db.Integer, db.ForeignKey('company_warehouses.id'), nullable=False)
    status = db.Column(db.String(20), default=STATUS_DRAFT, index=True)
    remarks = db.Column(db.Text)

    requested_by = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    approved_by = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    approved_at = db.Column(db.DateTime)
    dispatched_at = db.Column(db.DateTime)
    received_by = db.Column(db.Integer, db.ForeignKey('auth_users.id'))
    received_at = db.Column(db.DateTime)

    from_warehouse = db.relationship('Warehouse', foreign_keys=[from_warehouse_id])
    to_warehouse = db.relationship('Warehouse', foreign_keys=[to_warehouse_id])
    items = db.relationship('StockTransferItem', backref='transfer', cascade='all, delete-orphan',
                            order_by='StockTransferItem.id')


class StockTransferItem(BaseModel):
    __tablename__ = 'stock_transfer_items'

    stock_transfer_id = db.Column(db.Integer, db.ForeignKey('stock_transfers.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    tracking_type = db.Column(db.String(10), default=TrackingType.LOT)
    serial_required = db.Column(db.Boolean, default=False)
    transfer_quantity = db.Column(db.Integer, nullable=False)

    product = db.relationship('Product')
    serials = db.relationship('StockTransferSerial', backref='item', cascade='all, delete-orphan',
                              order_by='StockTransferSerial.id')


class StockTransferSerial(BaseModel):
    __tablename__ = 'stock_transfer_serials'

    stock_transfer_item_id = db.Column(db.Integer, db.ForeignKey('stock_transfer_items.id'), nullable=False)
    stock_serial_id = db.Column(db.Integer, db.ForeignKey('stock_serials.id'), nullable=False)

    stock_serial = db.relationship('StockSerial')
