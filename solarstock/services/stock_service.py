"""Stock mutation engine: the only code that changes Stock quantities"""
import logging
from sqlalchemy.dialects import postgresql, sqlite
from solarstock.constants import MovementType, normalize_tracking
from solarstock.exceptions import NotFound, ValidationError, ConflictError, InvariantViolation
from solarstock.models import Stock, Product, Warehouse
from solarstock.models.base import utcnow
from solarstock.utils.validators import positive_int
from .ledger_service import LedgerService

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert,
}


class StockService:
    """
    Per-(product, warehouse) quantity aggregate.
    Every read that precedes a write takes the row FOR UPDATE; the lock lives
    until the caller's transaction ends.
    """

    def __init__(self, session):
        self.session = session
        self.ledger = LedgerService(session)

    def _find(self, product_id, warehouse_id, lock=True):
        query = self.session.query(Stock).filter_by(product_id=product_id, warehouse_id=warehouse_id)
        if lock:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_or_create_stock(self, product_id, warehouse_id, product=None, lock=True):
        """
        Return the aggregate for (product, warehouse), creating an empty one seeded
        from the product's tracking settings. Safe when two transactions race on
        the same key: the insert ignores the unique-key conflict and both re-read
        the single surviving row.
        """
        stock = self._find(product_id, warehouse_id, lock)
        if stock is not None:
            return stock

        if product is None:
            product = self.session.get(Product, product_id)
        if product is None:
            raise NotFound(f"Product {product_id} not found")
        if self.session.get(Warehouse, warehouse_id) is None:
            raise NotFound(f"Warehouse {warehouse_id} not found")

        tracking_type, serial_required = normalize_tracking(product.tracking_type, product.serial_required)
        values = dict(
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity_on_hand=0,
            quantity_reserved=0,
            quantity_available=0,
            tracking_type=tracking_type,
            serial_required=serial_required,
            min_stock_quantity=product.min_stock_quantity or 0,
            is_deleted=False,
            created_at=utcnow(),
            updated_at=utcnow(),
        )

        insert = _UPSERT_DIALECTS.get(self.session.get_bind().dialect.name)
        if insert is not None:
            stmt = insert(Stock.__table__).values(**values).on_conflict_do_nothing(
                index_elements=['product_id', 'warehouse_id'])
            self.session.execute(stmt)
        else:
            self.session.add(Stock(**values))
            self.session.flush()

        stock = self._find(product_id, warehouse_id, lock)
        if stock is None:
            raise InvariantViolation(f"Stock row for product {product_id} / warehouse {warehouse_id} vanished")
        logger.debug("Created stock row %s for product %s at warehouse %s", stock.id, product_id, warehouse_id)
        return stock

    def lock_stocks(self, keys, create=False):
        """
        Lock the stock rows for (product_id, warehouse_id) keys in sorted key order.
        Returns {key: Stock}; missing rows are created when create=True and
        left out of the result otherwise.
        """
        locked = {}
        for product_id, warehouse_id in sorted(set(keys)):
            if create:
                stock = self.get_or_create_stock(product_id, warehouse_id)
            else:
                stock = self._find(product_id, warehouse_id, lock=True)
            if stock is not None:
                locked[(product_id, warehouse_id)] = stock
        return locked

    def update_stock_quantities(self, stock, quantity, last_updated_by, is_inward):
        """Move on_hand and available together by quantity"""
        quantity = positive_int(quantity)
        now = utcnow()
        if is_inward:
            stock.quantity_on_hand = (stock.quantity_on_hand or 0) + quantity
            stock.quantity_available = (stock.quantity_available or 0) + quantity
            stock.last_inward_at = now
        else:
            available = stock.quantity_available or 0
            if quantity > available:
                raise ConflictError(
                    f"Insufficient stock: available {available}, requested {quantity}",
                    payload={'product_id': stock.product_id, 'warehouse_id': stock.warehouse_id,
                             'available': available, 'requested': quantity})
            stock.quantity_on_hand = (stock.quantity_on_hand or 0) - quantity
            stock.quantity_available = available - quantity
            stock.last_outward_at = now
        stock.last_updated_by = last_updated_by
        return stock

    def apply_movement(self, stock, movement_type, quantity, transaction_type, transaction_id,
                       performed_by=None, serial_id=None, rate=None, gst_percent=None, amount=None,
                       reason=None, transaction_reference_no=None):
        """Ledger entry + quantity change as one step; returns the ledger row"""
        if movement_type not in MovementType.ALL:
            raise ValidationError(f"Unknown movement type '{movement_type}'")
        quantity = positive_int(quantity)
        is_inward = movement_type == MovementType.IN
        if not is_inward and quantity > (stock.quantity_available or 0):
            raise ConflictError(
                f"Insufficient stock: available {stock.quantity_available or 0}, requested {quantity}",
                payload={'product_id': stock.product_id, 'warehouse_id': stock.warehouse_id})

        entry = self.ledger.create_ledger_entry(
            product_id=stock.product_id,
            warehouse_id=stock.warehouse_id,
            stock_id=stock.id,
            transaction_type=transaction_type,
            transaction_id=transaction_id,
            movement_type=movement_type,
            quantity=quantity,
            serial_id=serial_id,
            rate=rate,
            gst_percent=gst_percent,
            amount=amount,
            reason=reason,
            performed_by=performed_by,
            transaction_reference_no=transaction_reference_no,
        )
        self.update_stock_quantities(stock, quantity, performed_by, is_inward)

        if entry.closing_quantity != stock.quantity_on_hand:
            raise InvariantViolation(
                f"Ledger closing {entry.closing_quantity} != on hand {stock.quantity_on_hand}",
                payload={'stock_id': stock.id})
        return entry

    # ---------------------------------------------------------------- reads

    def get_stock(self, product_id, warehouse_id):
        stock = self._find(product_id, warehouse_id, lock=False)
        if stock is None:
            raise NotFound(f"No stock for product {product_id} at warehouse {warehouse_id}")
        return stock

    def get_stock_by_id(self, stock_id):
        stock = self.session.get(Stock, stock_id)
        if stock is None or stock.is_deleted:
            raise NotFound(f"Stock {stock_id} not found")
        return stock

    def warehouse_stocks(self, warehouse_id):
        """(warehouse, its stock rows); NotFound for an unknown warehouse"""
        warehouse = self.session.get(Warehouse, warehouse_id)
        if warehouse is None or warehouse.is_deleted:
            raise NotFound(f"Warehouse {warehouse_id} not found")
        return warehouse, self.list_stocks(warehouse_id=warehouse_id)

    def list_stocks(self, warehouse_id=None, product_id=None, low_stock=None):
        query = self.session.query(Stock).filter(Stock.is_deleted.is_(False))
        if warehouse_id:
            query = query.filter(Stock.warehouse_id == warehouse_id)
        if product_id:
            query = query.filter(Stock.product_id == product_id)
        if low_stock:
            query = query.filter(Stock.quantity_available < Stock.min_stock_quantity)
        return query.order_by(Stock.warehouse_id, Stock.product_id).all()

    def find_stock(self, product_id, warehouse_id):
        """Unlocked lookup; None when the aggregate does not exist yet"""
        return self._find(product_id, warehouse_id, lock=False)
