"""Stock adjustment workflow: DRAFT -> APPROVED -> POSTED"""
import logging
from datetime import date
from solarstock.constants import MovementType, TransactionType, SerialStatus, normalize_tracking
from solarstock.exceptions import ValidationError, ConflictError
from solarstock.models import (
    StockAdjustment, StockAdjustmentItem, StockAdjustmentSerial, StockSerial, Product, Warehouse,
)
from solarstock.models.base import utcnow
from solarstock.utils.numbering import generate_document_no
from solarstock.utils.tx import unit_of_work
from solarstock.utils.validators import positive_int, required_id, parse_date
from .base import WorkflowService
from .serial_service import clean_serial_list

logger = logging.getLogger(__name__)


class StockAdjustmentService(WorkflowService):
    """
    FOUND lines bring units in, DAMAGE / LOSS lines take them out, AUDIT lines
    state their own direction. Only DRAFT adjustments can be edited.

    Serials found on an IN line are registered when the draft is written;
    editing or deleting the draft removes them again.
    """

    def create(self, payload, requested_by=None):
        with unit_of_work(self.session, self.autocommit):
            adjustment = StockAdjustment(
                adjustment_number=generate_document_no('ADJ'),
                status=StockAdjustment.STATUS_DRAFT,
                requested_by=requested_by,
            )
            self._apply_header(adjustment, payload)
            self.session.add(adjustment)
            self.session.flush()
            self._build_items(adjustment, payload.get('items'))
        logger.info("Adjustment %s (%s) drafted at warehouse %s",
                    adjustment.adjustment_number, adjustment.adjustment_type, adjustment.warehouse_id)
        return adjustment

    def update(self, adjustment_id, payload):
        with unit_of_work(self.session, self.autocommit):
            adjustment = self._lock(StockAdjustment, adjustment_id, 'Adjustment')
            self._require_status(adjustment, StockAdjustment.STATUS_DRAFT, 'updated')
            previous = (adjustment.adjustment_type, adjustment.warehouse_id)
            self._apply_header(adjustment, payload)
            if 'items' in payload:
                self._clear_items(adjustment)
                self._build_items(adjustment, payload.get('items'))
            elif (adjustment.adjustment_type, adjustment.warehouse_id) != previous:
                raise ValidationError("Changing adjustment type or warehouse requires the items to be resent")
        return adjustment

    def delete(self, adjustment_id):
        with unit_of_work(self.session, self.autocommit):
            adjustment = self._lock(StockAdjustment, adjustment_id, 'Adjustment')
            self._require_status(adjustment, StockAdjustment.STATUS_DRAFT, 'deleted')
            number = adjustment.adjustment_number
            self._clear_items(adjustment)
            self.session.delete(adjustment)
        logger.info("Draft adjustment %s deleted", number)

    def approve(self, adjustment_id, approved_by=None):
        with unit_of_work(self.session, self.autocommit):
            adjustment = self._lock(StockAdjustment, adjustment_id, 'Adjustment')
            self._require_status(adjustment, StockAdjustment.STATUS_DRAFT, 'approved')
            adjustment.status = StockAdjustment.STATUS_APPROVED
            adjustment.approved_by = approved_by
            adjustment.approved_at = utcnow()
        logger.info("Adjustment %s approved", adjustment.adjustment_number)
        return adjustment

    def post(self, adjustment_id, posted_by=None):
        """
        Apply the adjustment to stock.
        Quantities and serials are re-checked with the stock and serial rows
        locked, since anything may have moved since the draft was approved.
        """
        with unit_of_work(self.session, self.autocommit):
            adjustment = self._lock(StockAdjustment, adjustment_id, 'Adjustment')
            self._require_status(adjustment, StockAdjustment.STATUS_APPROVED, 'posted')
            warehouse_id = adjustment.warehouse_id

            stocks = self.stock.lock_stocks(
                [(item.product_id, warehouse_id) for item in adjustment.items], create=True)
            units = self.serials.lock_by_ids(
                [link.stock_serial_id for item in adjustment.items for link in item.serials])

            needed = {}
            for item in adjustment.items:
                if item.adjustment_direction == MovementType.OUT:
                    needed[item.product_id] = needed.get(item.product_id, 0) + item.adjustment_quantity
                for link in item.serials:
                    unit = units.get(link.stock_serial_id)
                    if (unit is None or unit.status != SerialStatus.AVAILABLE
                            or unit.product_id != item.product_id or unit.warehouse_id != warehouse_id
                            or (item.adjustment_direction == MovementType.OUT and self.serials.is_unbooked(unit))):
                        raise ConflictError(
                            f"Serial '{link.serial_number}' is not available for "
                            f"{item.product.product_name} at this warehouse",
                            payload={'serial': link.serial_number})
            for product_id, quantity in needed.items():
                available = stocks[(product_id, warehouse_id)].quantity_available or 0
                if quantity > available:
                    raise ConflictError(
                        f"Insufficient stock for product {product_id}: available {available}, requested {quantity}",
                        payload={'product_id': product_id, 'available': available, 'requested': quantity})

            for item in adjustment.items:
                stock = stocks[(item.product_id, warehouse_id)]
                self.stock.apply_movement(
                    stock, item.adjustment_direction, item.adjustment_quantity,
                    transaction_type=TransactionType.STOCK_ADJUSTMENT,
                    transaction_id=adjustment.id,
                    transaction_reference_no=adjustment.adjustment_number,
                    performed_by=posted_by,
                    serial_id=item.serials[0].stock_serial_id if len(item.serials) == 1 else None,
                    reason=item.reason or adjustment.adjustment_type,
                )
                for link in item.serials:
                    unit = units[link.stock_serial_id]
                    if item.adjustment_direction == MovementType.OUT:
                        self.serials.block(unit, TransactionType.STOCK_ADJUSTMENT, adjustment.id)
                    else:
                        self.serials.bind(unit, stock)

            adjustment.status = StockAdjustment.STATUS_POSTED
            adjustment.posted_by = posted_by
            adjustment.posted_at = utcnow()

        logger.info("Adjustment %s posted (%s units)", adjustment.adjustment_number, adjustment.total_quantity)
        return adjustment

    # ---------------------------------------------------------------- reads

    def get(self, adjustment_id):
        return self._get(StockAdjustment, adjustment_id, 'Adjustment')

    def list(self, filters=None, page=1, per_page=20):
        return self._list(StockAdjustment, filters, ('status', 'warehouse_id', 'adjustment_type'), page, per_page)

    # ------------------------------------------------------------- helpers

    @staticmethod
    def _require_status(adjustment, status, action):
        if adjustment.status != status:
            raise ValidationError(f"Only {status} adjustments can be {action} (is {adjustment.status})")

    @staticmethod
    def _direction(adjustment_type, declared):
        implied = StockAdjustment.IMPLIED_DIRECTION.get(adjustment_type)
        if implied is not None:
            return implied
        direction = (declared or '').upper()
        if direction not in MovementType.ALL:
            raise ValidationError("AUDIT lines need adjustment_direction IN or OUT",
                                  payload={'field': 'adjustment_direction'})
        return direction

    def _apply_header(self, adjustment, payload):
        if 'warehouse_id' in payload or adjustment.warehouse_id is None:
            warehouse_id = required_id(payload.get('warehouse_id'), 'warehouse_id')
            self._get(Warehouse, warehouse_id, 'Warehouse')
            adjustment.warehouse_id = warehouse_id
        if 'adjustment_type' in payload or adjustment.adjustment_type is None:
            adjustment_type = (payload.get('adjustment_type') or '').upper()
            if adjustment_type not in StockAdjustment.TYPES:
                raise ValidationError(f"adjustment_type must be one of {', '.join(StockAdjustment.TYPES)}",
                                      payload={'field': 'adjustment_type'})
            adjustment.adjustment_type = adjustment_type
        if 'adjustment_date' in payload or adjustment.adjustment_date is None:
            adjustment.adjustment_date = parse_date(payload.get('adjustment_date'), 'adjustment_date') or date.today()
        if 'remarks' in payload:
            adjustment.remarks = payload.get('remarks')

    def _build_items(self, adjustment, items):
        if not items:
            raise ValidationError("Adjustment must have at least one item")
        warehouse_id = adjustment.warehouse_id
        seen_serials = set()
        out_needed = {}
        total = 0

        for data in items:
            product = self._get(Product, required_id(data.get('product_id'), 'product_id'), 'Product')
            quantity = positive_int(data.get('adjustment_quantity', data.get('quantity')), 'adjustment_quantity')
            direction = self._direction(adjustment.adjustment_type, data.get('adjustment_direction'))
            tracking_type, serial_required = normalize_tracking(product.tracking_type, product.serial_required)
            serial_numbers = clean_serial_list(data.get('serials') or data.get('serial_numbers'), 'serials')

            item = StockAdjustmentItem(
                product_id=product.id,
                tracking_type=tracking_type,
                serial_required=serial_required,
                adjustment_quantity=quantity,
                adjustment_direction=direction,
                reason=data.get('reason'),
            )
            item.product = product
            adjustment.items.append(item)

            if serial_required:
                if len(serial_numbers) != quantity:
                    raise ValidationError(
                        f"{product.product_name} needs exactly {quantity} serial numbers, got {len(serial_numbers)}",
                        payload={'product_id': product.id})
                for serial_number in serial_numbers:
                    key = (product.product_type_id, serial_number)
                    if key in seen_serials:
                        raise ValidationError(f"Duplicate serial '{serial_number}' in request")
                    seen_serials.add(key)
                    if direction == MovementType.OUT:
                        unit = self._available_unit(serial_number, product, warehouse_id)
                    else:
                        unit = self._register_found(serial_number, product, warehouse_id, adjustment)
                    item.serials.append(StockAdjustmentSerial(stock_serial_id=unit.id, serial_number=serial_number))
            elif serial_numbers:
                raise ValidationError(f"{product.product_name} is not serialized; serials are not accepted")

            if direction == MovementType.OUT:
                out_needed[product] = out_needed.get(product, 0) + quantity
            total += quantity

        for product, quantity in out_needed.items():
            stock = self.stock.find_stock(product.id, warehouse_id)
            available = stock.quantity_available if stock is not None else 0
            if quantity > available:
                raise ConflictError(
                    f"Insufficient stock for {product.product_name}: available {available}, requested {quantity}",
                    payload={'product_id': product.id, 'available': available, 'requested': quantity})

        adjustment.total_quantity = total

    def _available_unit(self, serial_number, product, warehouse_id):
        check = self.serials.validate_serial_available(serial_number, product.id, warehouse_id)
        if not check['valid']:
            raise ConflictError(check['message'], payload={'serial': serial_number})
        return self.serials.resolve(serial_number, product.id, lock=False)

    def _register_found(self, serial_number, product, warehouse_id, adjustment):
        check = self.serials.validate_serial_not_exists(serial_number, product.id, warehouse_id)
        if check['exists']:
            raise ConflictError(check['message'], payload={'serial': serial_number})
        stock = self.stock.get_or_create_stock(product.id, warehouse_id, product)
        return self.serials.register(serial_number, product, stock,
                                     source_type=TransactionType.STOCK_ADJUSTMENT, source_id=adjustment.id)

    def _clear_items(self, adjustment):
        """Drop the draft's lines and any units its IN lines registered"""
        found_ids = [link.stock_serial_id for item in adjustment.items
                     if item.adjustment_direction == MovementType.IN for link in item.serials]
        adjustment.items.clear()
        self.session.flush()
        for serial_id in found_ids:
            unit = self.session.get(StockSerial, serial_id)
            if (unit is not None and unit.source_type == TransactionType.STOCK_ADJUSTMENT
                    and unit.source_id == adjustment.id):
                self.serials.discard(unit)
        self.session.flush()
