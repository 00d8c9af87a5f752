"""Serial identity registry: one row per physically identifiable unit"""
import logging
from datetime import date
from solarstock.constants import SerialStatus, TransactionType
from solarstock.exceptions import NotFound, ValidationError, ConflictError
from solarstock.models import StockSerial, Product, ProductType, StockAdjustment

logger = logging.getLogger(__name__)

REQUIRED_MESSAGE = "Serial number, product_id and warehouse_id are required"


def clean_serial(serial_number):
    """Trimmed serial number, or None when blank"""
    if serial_number is None:
        return None
    trimmed = str(serial_number).strip()
    return trimmed or None


def clean_serial_list(serial_numbers, field='serial_numbers'):
    """Trim a payload's serial list, rejecting blanks and duplicates"""
    cleaned = []
    seen = set()
    for raw in serial_numbers or []:
        sn = clean_serial(raw)
        if sn is None:
            raise ValidationError("Serial number cannot be blank", payload={'field': field})
        if sn in seen:
            raise ValidationError(f"Duplicate serial '{sn}' in request", payload={'field': field, 'serial': sn})
        seen.add(sn)
        cleaned.append(sn)
    return cleaned


class SerialRegistry:
    """
    Lifecycle of serial units.

        AVAILABLE -> ISSUED     outbound document
        ISSUED    -> AVAILABLE  outbound reversal
        AVAILABLE -> BLOCKED    damage / loss adjustment (terminal)

    Re-homing (transfer) keeps the unit AVAILABLE and moves its binding.
    Units found on an adjustment are registered with the draft but cannot
    move until that adjustment is posted.
    """

    def __init__(self, session):
        self.session = session

    def _product_name(self, product_id):
        product = self.session.get(Product, product_id)
        return product.product_name if product else f"Product #{product_id}"

    # ----------------------------------------------------------- validation

    def validate_serial_available(self, serial_number, product_id, warehouse_id):
        """{'valid': True} or {'valid': False, 'message': ...}"""
        sn = clean_serial(serial_number)
        if not sn or product_id is None or warehouse_id is None:
            return {'valid': False, 'message': REQUIRED_MESSAGE}

        unit = (self.session.query(StockSerial)
                .filter_by(serial_number=sn, product_id=int(product_id), warehouse_id=int(warehouse_id),
                           status=SerialStatus.AVAILABLE, is_deleted=False)
                .first())
        if unit is not None and self.is_unbooked(unit):
            return {'valid': False,
                    'message': f"Serial '{sn}' is on adjustment #{unit.source_id}, which is not posted yet"}
        if unit is not None:
            return {'valid': True}
        return {'valid': False,
                'message': f"Serial '{sn}' is not available for {self._product_name(product_id)} at this warehouse"}

    def validate_serial_not_exists(self, serial_number, product_id, warehouse_id):
        """{'exists': False} or {'exists': True, 'message': ...}; any status counts"""
        sn = clean_serial(serial_number)
        if not sn or product_id is None or warehouse_id is None:
            return {'exists': True, 'message': REQUIRED_MESSAGE}

        unit = (self.session.query(StockSerial)
                .filter_by(serial_number=sn, product_id=int(product_id), warehouse_id=int(warehouse_id),
                           is_deleted=False)
                .first())
        if unit is None:
            return {'exists': False}
        return {'exists': True,
                'message': f"Serial '{sn}' already exists for {self._product_name(product_id)} at this warehouse"}

    # --------------------------------------------------------------- lookup

    def find_in_type_scope(self, serial_number, product_type_id):
        return (self.session.query(StockSerial)
                .filter_by(serial_number=clean_serial(serial_number), product_type_id=product_type_id,
                           is_deleted=False)
                .first())

    def lock_available(self, serial_number, product_id, warehouse_id):
        """Resolve an AVAILABLE unit at (product, warehouse) and hold its row lock"""
        sn = clean_serial(serial_number)
        if not sn:
            raise ValidationError("Serial number is required")
        unit = (self.session.query(StockSerial)
                .filter_by(serial_number=sn, product_id=product_id, is_deleted=False)
                .with_for_update().populate_existing()
                .first())
        if unit is None:
            raise NotFound(f"Serial '{sn}' not found for {self._product_name(product_id)}",
                           payload={'serial': sn})
        if unit.status != SerialStatus.AVAILABLE or unit.warehouse_id != warehouse_id:
            raise ConflictError(
                f"Serial '{sn}' is not available for {self._product_name(product_id)} at this warehouse",
                payload={'serial': sn, 'status': unit.status})
        if self.is_unbooked(unit):
            raise ConflictError(f"Serial '{sn}' is on adjustment #{unit.source_id}, which is not posted yet",
                                payload={'serial': sn, 'adjustment_id': unit.source_id})
        return unit

    def lock_by_ids(self, serial_ids):
        """Lock units by id in ascending order; returns {id: StockSerial}"""
        ids = sorted(set(serial_ids))
        if not ids:
            return {}
        units = (self.session.query(StockSerial)
                 .filter(StockSerial.id.in_(ids), StockSerial.is_deleted.is_(False))
                 .order_by(StockSerial.id)
                 .with_for_update().populate_existing()
                 .all())
        return {unit.id: unit for unit in units}

    def resolve(self, serial_number, product_id, lock=True):
        """Any-status lookup of a product's unit, used by reversals"""
        query = self.session.query(StockSerial).filter_by(
            serial_number=clean_serial(serial_number), product_id=product_id, is_deleted=False)
        if lock:
            query = query.with_for_update().populate_existing()
        return query.first()

    def available_serials(self, product_id, warehouse_id):
        if not product_id or not warehouse_id:
            return []
        units = (self.session.query(StockSerial)
                 .filter_by(product_id=product_id, warehouse_id=warehouse_id,
                            status=SerialStatus.AVAILABLE, is_deleted=False)
                 .order_by(StockSerial.serial_number)
                 .all())
        return [unit for unit in units if not self.is_unbooked(unit)]

    def is_unbooked(self, unit):
        """AVAILABLE unit registered by an adjustment that has not been posted"""
        if unit.status != SerialStatus.AVAILABLE or unit.source_type != TransactionType.STOCK_ADJUSTMENT:
            return False
        adjustment = self.session.get(StockAdjustment, unit.source_id)
        return adjustment is not None and adjustment.status != StockAdjustment.STATUS_POSTED

    # ---------------------------------------------------------- transitions

    def register(self, serial_number, product, stock, source_type, source_id, unit_price=None, inward_date=None):
        """Create a new AVAILABLE unit bound to stock; serials are unique per product type"""
        sn = clean_serial(serial_number)
        if not sn:
            raise ValidationError("Serial number is required")
        existing = self.find_in_type_scope(sn, product.product_type_id)
        if existing is not None:
            product_type = self.session.get(ProductType, product.product_type_id)
            type_name = product_type.name if product_type else f"type #{product.product_type_id}"
            raise ConflictError(f"Serial '{sn}' already exists for product type {type_name}",
                                payload={'serial': sn})
        unit = StockSerial(
            serial_number=sn,
            product_id=product.id,
            product_type_id=product.product_type_id,
            warehouse_id=stock.warehouse_id,
            stock_id=stock.id,
            status=SerialStatus.AVAILABLE,
            source_type=source_type,
            source_id=source_id,
            unit_price=unit_price,
            inward_date=inward_date or date.today(),
        )
        self.session.add(unit)
        self.session.flush()
        return unit

    def issue(self, unit, issued_against, reference_number, source_id, outward_date=None):
        self._require(unit, SerialStatus.AVAILABLE, 'issue')
        unit.status = SerialStatus.ISSUED
        unit.issued_against = issued_against
        unit.reference_number = reference_number
        unit.source_type = issued_against
        unit.source_id = source_id
        unit.outward_date = outward_date or date.today()
        return unit

    def restore(self, unit, stock, source_type, source_id):
        """ISSUED -> AVAILABLE at the stock's warehouse"""
        self._require(unit, SerialStatus.ISSUED, 'restore')
        unit.status = SerialStatus.AVAILABLE
        unit.warehouse_id = stock.warehouse_id
        unit.stock_id = stock.id
        unit.issued_against = None
        unit.reference_number = None
        unit.outward_date = None
        unit.source_type = source_type
        unit.source_id = source_id
        return unit

    def block(self, unit, source_type, source_id):
        self._require(unit, SerialStatus.AVAILABLE, 'block')
        unit.status = SerialStatus.BLOCKED
        unit.source_type = source_type
        unit.source_id = source_id
        unit.outward_date = date.today()
        return unit

    def rehome(self, unit, stock, source_type, source_id):
        """Move an AVAILABLE unit to another warehouse's aggregate"""
        self._require(unit, SerialStatus.AVAILABLE, 'transfer')
        unit.warehouse_id = stock.warehouse_id
        unit.stock_id = stock.id
        unit.source_type = source_type
        unit.source_id = source_id
        return unit

    def bind(self, unit, stock):
        unit.warehouse_id = stock.warehouse_id
        unit.stock_id = stock.id
        return unit

    def discard(self, unit):
        """Remove a unit registered by a draft document that never moved stock"""
        self._require(unit, SerialStatus.AVAILABLE, 'discard')
        self.session.delete(unit)

    @staticmethod
    def _require(unit, status, action):
        if unit.status != status:
            raise ConflictError(
                f"Cannot {action} serial '{unit.serial_number}': status is {unit.status}",
                payload={'serial': unit.serial_number, 'status': unit.status})
