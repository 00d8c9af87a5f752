"""Append-only inventory movement ledger"""
import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from solarstock.constants import MovementType, TransactionType, OutboundKind
from solarstock.exceptions import NotFound, ValidationError, ConflictError
from solarstock.models import Stock, InventoryLedger, OutboundDocument
from solarstock.utils.numbers import to_decimal, money
from solarstock.utils.pagination import paginate
from solarstock.utils.validators import positive_int

logger = logging.getLogger(__name__)

# (OUT type, reversal IN type) per outbound document kind
OUTBOUND_TRANSACTION_TYPES = {
    OutboundKind.CHALLAN: (TransactionType.DELIVERY_CHALLAN_OUT, TransactionType.DELIVERY_CHALLAN_CANCEL_IN),
    OutboundKind.B2B_SHIPMENT: (TransactionType.B2B_SHIPMENT_OUT, TransactionType.B2B_SHIPMENT_CANCEL_IN),
}


def _day_after(value):
    """Exclusive upper bound for an inclusive date_to"""
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, datetime.min.time()) + timedelta(days=1)


class LedgerService:
    """Writes and reads InventoryLedger rows inside the caller's session"""

    def __init__(self, session):
        self.session = session

    def create_ledger_entry(self, product_id, warehouse_id, stock_id, transaction_type, transaction_id,
                            movement_type, quantity, serial_id=None, rate=None, gst_percent=None,
                            amount=None, reason=None, performed_by=None, transaction_reference_no=None):
        """
        Record one movement against a stock aggregate.
        opening_quantity is the aggregate's on_hand at the time of the call, so
        the entry must be written before the aggregate itself is mutated.
        """
        if movement_type not in MovementType.ALL:
            raise ValidationError(f"Unknown movement type '{movement_type}'", payload={'field': 'movement_type'})
        if transaction_type not in TransactionType.ALL:
            raise ValidationError(f"Unknown transaction type '{transaction_type}'",
                                  payload={'field': 'transaction_type'})
        quantity = positive_int(quantity)

        stock = self.session.get(Stock, stock_id)
        if stock is None:
            raise NotFound(f"Stock {stock_id} not found")
        if stock.product_id != product_id or stock.warehouse_id != warehouse_id:
            raise ValidationError("Ledger entry does not match its stock row",
                                  payload={'stock_id': stock_id})

        opening = stock.quantity_on_hand or 0
        if movement_type == MovementType.IN:
            closing = opening + quantity
        else:
            closing = opening - quantity
            if closing < 0:
                raise ConflictError(f"Insufficient stock: on hand {opening}, requested {quantity}",
                                    payload={'product_id': product_id, 'warehouse_id': warehouse_id})

        entry = InventoryLedger(
            product_id=product_id,
            warehouse_id=warehouse_id,
            stock_id=stock_id,
            transaction_type=transaction_type,
            transaction_id=transaction_id,
            transaction_reference_no=transaction_reference_no,
            movement_type=movement_type,
            quantity=quantity,
            serial_id=serial_id,
            opening_quantity=opening,
            closing_quantity=closing,
            rate=money(rate) if rate is not None else None,
            gst_percent=to_decimal(gst_percent, 'gst_percent') if gst_percent is not None else None,
            amount=money(amount) if amount is not None else None,
            reason=reason,
            performed_by=performed_by,
        )
        self.session.add(entry)
        return entry

    # ---------------------------------------------------------------- reads

    def _filtered(self, filters):
        filters = filters or {}
        query = self.session.query(InventoryLedger)
        for field in ('product_id', 'warehouse_id', 'stock_id', 'transaction_type',
                      'transaction_id', 'movement_type', 'serial_id'):
            value = filters.get(field)
            if value not in (None, ''):
                query = query.filter(getattr(InventoryLedger, field) == value)
        if filters.get('date_from'):
            query = query.filter(InventoryLedger.performed_at >= filters['date_from'])
        if filters.get('date_to'):
            query = query.filter(InventoryLedger.performed_at < _day_after(filters['date_to']))
        return query

    def list_entries(self, filters=None, page=1, per_page=20):
        """Paged ledger listing, newest first"""
        return paginate(self._filtered(filters).order_by(InventoryLedger.id.desc()), page, per_page)

    def export_entries(self, filters=None):
        """Every matching entry in posting order, for spreadsheet export"""
        return self._filtered(filters).order_by(InventoryLedger.id).all()

    def get_entry(self, entry_id):
        entry = self.session.get(InventoryLedger, entry_id)
        if entry is None:
            raise NotFound(f"Ledger entry {entry_id} not found")
        return entry

    def entries_for(self, transaction_types, transaction_id):
        """Entries one document wrote; accepts a type or a tuple of types"""
        if isinstance(transaction_types, str):
            transaction_types = (transaction_types,)
        return (self.session.query(InventoryLedger)
                .filter(InventoryLedger.transaction_type.in_(transaction_types),
                        InventoryLedger.transaction_id == transaction_id)
                .order_by(InventoryLedger.id).all())

    def delivery_report(self, kind=OutboundKind.CHALLAN, order_id=None, warehouse_id=None,
                        date_from=None, date_to=None):
        """
        Quantities delivered per (order, product, warehouse), net of reversals.
        Built from the ledger, so deleted documents still show as delivered-then-reversed.
        """
        if kind not in OUTBOUND_TRANSACTION_TYPES:
            raise ValidationError(f"Unknown outbound kind '{kind}'")
        out_type, cancel_type = OUTBOUND_TRANSACTION_TYPES[kind]

        query = (self.session.query(InventoryLedger, OutboundDocument.order_id)
                 .join(OutboundDocument, OutboundDocument.id == InventoryLedger.transaction_id)
                 .filter(OutboundDocument.kind == kind,
                         InventoryLedger.transaction_type.in_([out_type, cancel_type])))
        if order_id:
            query = query.filter(OutboundDocument.order_id == order_id)
        if warehouse_id:
            query = query.filter(InventoryLedger.warehouse_id == warehouse_id)
        if date_from:
            query = query.filter(InventoryLedger.performed_at >= date_from)
        if date_to:
            query = query.filter(InventoryLedger.performed_at < _day_after(date_to))

        rows = OrderedDict()
        for entry, doc_order_id in query.order_by(InventoryLedger.id):
            key = (doc_order_id, entry.product_id, entry.warehouse_id)
            row = rows.setdefault(key, {
                'order_id': doc_order_id,
                'product_id': entry.product_id,
                'warehouse_id': entry.warehouse_id,
                'delivered_quantity': 0,
                'reversed_quantity': 0,
                'net_quantity': 0,
                'documents': set(),
                'last_movement_at': None,
            })
            if entry.transaction_type == out_type:
                row['delivered_quantity'] += entry.quantity
            else:
                row['reversed_quantity'] += entry.quantity
            row['net_quantity'] = row['delivered_quantity'] - row['reversed_quantity']
            row['documents'].add(entry.transaction_id)
            row['last_movement_at'] = entry.performed_at

        report = []
        for row in rows.values():
            row['document_count'] = len(row.pop('documents'))
            if row['last_movement_at'] is not None:
                row['last_movement_at'] = row['last_movement_at'].isoformat()
            report.append(row)
        return report

    def reconcile(self):
        """
        Check every stock aggregate against its ledger.
        Returns a list of discrepancy dicts (empty when consistent).
        """
        discrepancies = []

        def flag(stock, check, expected, actual, entry_id=None):
            item = {
                'stock_id': stock.id,
                'product_id': stock.product_id,
                'warehouse_id': stock.warehouse_id,
                'entry_id': entry_id,
                'check': check,
                'expected': expected,
                'actual': actual,
            }
            logger.warning("Ledger discrepancy: %s", item)
            discrepancies.append(item)

        for stock in self.session.query(Stock).order_by(Stock.id):
            entries = (self.session.query(InventoryLedger)
                       .filter_by(stock_id=stock.id).order_by(InventoryLedger.id).all())
            previous_closing = 0
            for entry in entries:
                sign = 1 if entry.movement_type == MovementType.IN else -1
                delta = entry.closing_quantity - entry.opening_quantity
                if delta != sign * entry.quantity:
                    flag(stock, 'entry_arithmetic', sign * entry.quantity, delta, entry.id)
                if entry.opening_quantity != previous_closing:
                    flag(stock, 'entry_chain', previous_closing, entry.opening_quantity, entry.id)
                previous_closing = entry.closing_quantity

            if (stock.quantity_on_hand or 0) != previous_closing:
                flag(stock, 'on_hand', previous_closing, stock.quantity_on_hand)
            expected_available = (stock.quantity_on_hand or 0) - (stock.quantity_reserved or 0)
            if (stock.quantity_available or 0) != expected_available:
                flag(stock, 'available', expected_available, stock.quantity_available)

        return discrepancies
