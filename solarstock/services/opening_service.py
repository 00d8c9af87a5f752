"""Opening balance (go-live cutover) loader"""
import csv
import logging
from io import StringIO
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from solarstock.constants import MovementType, TransactionType, normalize_tracking
from solarstock.exceptions import StockError, NotFound, ValidationError, ConflictError
from solarstock.models import Product, Warehouse, User
from solarstock.utils.numbers import to_decimal, amount_with_gst
from solarstock.utils.validators import parse_date
from .stock_service import StockService
from .serial_service import SerialRegistry, clean_serial

logger = logging.getLogger(__name__)

# Cutover movements have no source document
CUTOVER_TRANSACTION_ID = 0


def parse_csv(content):
    """Rows of a CSV text as dicts with trimmed keys and values"""
    reader = csv.DictReader(StringIO(content))
    rows = []
    for raw in reader:
        row = {(k or '').strip(): (v or '').strip() for k, v in raw.items()}
        if any(row.values()):
            rows.append(row)
    return rows


class OpeningBalanceService:
    """
    Loads opening stock from CSV rows.

    LOT rows:    product_name, warehouse_name, quantity, performed_by_email[, rate]
    SERIAL rows: product_name, warehouse_name, serial_number, performed_by_email[, rate, inward_date]

    Every row is its own transaction, so one bad row does not stop the rest.
    Row numbers in errors count the CSV header as row 1.
    """

    def __init__(self, session):
        self.session = session
        self.stock = StockService(session)
        self.serials = SerialRegistry(session)

    def load_lot_rows(self, rows, dry_run=False):
        return self._load(rows, dry_run, serialized=False)

    def load_serial_rows(self, rows, dry_run=False):
        return self._load(rows, dry_run, serialized=True)

    def _load(self, rows, dry_run, serialized):
        result = {'total': len(rows), 'created': 0, 'failed': 0, 'errors': []}
        for index, row in enumerate(rows):
            row_number = index + 2
            try:
                refs = self._resolve(row, serialized)
                if not dry_run:
                    if serialized:
                        self._load_serial(row, *refs)
                    else:
                        self._load_lot(row, *refs)
                    self.session.commit()
                result['created'] += 1
            except (StockError, SQLAlchemyError) as e:
                self.session.rollback()
                message = e.message if isinstance(e, StockError) else str(e)
                result['errors'].append({
                    'row': row_number,
                    'product_name': row.get('product_name', ''),
                    'serial_number': row.get('serial_number', ''),
                    'error': message,
                    'code': e.code if isinstance(e, StockError) else 500,
                })
                result['failed'] += 1

        logger.info("Opening %s load%s: %s rows, %s loaded, %s failed",
                    'serial' if serialized else 'lot', ' (dry run)' if dry_run else '',
                    result['total'], result['created'], result['failed'])
        return result

    def _resolve(self, row, serialized):
        product_name = (row.get('product_name') or '').strip()
        warehouse_name = (row.get('warehouse_name') or '').strip()
        email = (row.get('performed_by_email') or '').strip()
        if not product_name or not warehouse_name or not email:
            raise ValidationError("product_name, warehouse_name and performed_by_email are required")
        if serialized and not clean_serial(row.get('serial_number')):
            raise ValidationError("serial_number is required")

        product = (self.session.query(Product)
                   .filter(func.lower(Product.product_name) == product_name.lower(),
                           Product.is_deleted.is_(False))
                   .order_by(Product.id).first())
        if product is None:
            raise NotFound(f'product not found: "{product_name}"')
        warehouse = (self.session.query(Warehouse)
                     .filter(func.lower(Warehouse.name) == warehouse_name.lower(),
                             Warehouse.is_deleted.is_(False))
                     .first())
        if warehouse is None:
            raise NotFound(f'warehouse not found: "{warehouse_name}"')
        user = self.session.query(User).filter(func.lower(User.email) == email.lower()).first()
        if user is None:
            raise NotFound(f'performed_by_email not found: "{email}"')

        is_serial = normalize_tracking(product.tracking_type, product.serial_required)[1]
        if serialized and not is_serial:
            raise ValidationError("product is LOT-tracked; load it from the lot file")
        if not serialized and is_serial:
            raise ValidationError("product is SERIAL-tracked; load it from the serial file")
        if serialized:
            sn = clean_serial(row.get('serial_number'))
            if self.serials.find_in_type_scope(sn, product.product_type_id) is not None:
                raise ConflictError(f'Serial "{sn}" already exists for this product type')
        else:
            self._quantity(row)
        return product, warehouse, user

    @staticmethod
    def _quantity(row):
        try:
            quantity = int(row.get('quantity') or 0)
        except ValueError:
            quantity = 0
        if quantity < 1:
            raise ValidationError("quantity must be a positive integer")
        return quantity

    def _load_lot(self, row, product, warehouse, user):
        quantity = self._quantity(row)
        rate = to_decimal(row.get('rate'), 'rate') if row.get('rate') else None

        stock = self.stock.get_or_create_stock(product.id, warehouse.id, product)
        self.stock.apply_movement(
            stock, MovementType.IN, quantity,
            transaction_type=TransactionType.CUTOVER_OPENING,
            transaction_id=CUTOVER_TRANSACTION_ID,
            performed_by=user.id,
            rate=rate,
            gst_percent=product.gst_percent or 0,
            amount=amount_with_gst(rate, quantity, product.gst_percent) if rate is not None else None,
        )

    def _load_serial(self, row, product, warehouse, user):
        rate = to_decimal(row.get('rate'), 'rate') if row.get('rate') else None
        stock = self.stock.get_or_create_stock(product.id, warehouse.id, product)
        unit = self.serials.register(
            row.get('serial_number'), product, stock,
            source_type=TransactionType.CUTOVER_OPENING,
            source_id=CUTOVER_TRANSACTION_ID,
            unit_price=rate,
            inward_date=parse_date(row.get('inward_date'), 'inward_date'),
        )
        self.stock.apply_movement(
            stock, MovementType.IN, 1,
            transaction_type=TransactionType.CUTOVER_OPENING,
            transaction_id=CUTOVER_TRANSACTION_ID,
            performed_by=user.id,
            serial_id=unit.id,
            rate=rate,
            gst_percent=product.gst_percent or 0,
            amount=amount_with_gst(rate, 1, product.gst_percent) if rate is not None else None,
        )
