"""Warehouse-to-warehouse transfer workflow"""
import logging
from datetime import date
from solarstock.constants import MovementType, TransactionType, SerialStatus, normalize_tracking
from solarstock.exceptions import NotFound, ValidationError, ConflictError
from solarstock.models import (
    StockTransfer, StockTransferItem, StockTransferSerial, StockSerial, Product, Warehouse,
)
from solarstock.models.base import utcnow
from solarstock.utils.numbering import generate_document_no
from solarstock.utils.tx import unit_of_work
from solarstock.utils.validators import positive_int, required_id, parse_date
from .base import WorkflowService

logger = logging.getLogger(__name__)


class StockTransferService(WorkflowService):
    """
    DRAFT -> APPROVED -> (IN_TRANSIT) -> RECEIVED.
    Goods move at approve(); dispatch and receive only record progress.
    """

    def create(self, payload, requested_by=None):
        with unit_of_work(self.session, self.autocommit):
            transfer = StockTransfer(
                transfer_number=generate_document_no('TRF'),
                status=StockTransfer.STATUS_DRAFT,
                requested_by=requested_by,
            )
            self._apply_header(transfer, payload)
            self.session.add(transfer)
            self._build_items(transfer, payload.get('items'))
        logger.info("Transfer %s drafted: warehouse %s -> %s", transfer.transfer_number,
                    transfer.from_warehouse_id, transfer.to_warehouse_id)
        return transfer

    def update(self, transfer_id, payload):
        with unit_of_work(self.session, self.autocommit):
            transfer = self._lock(StockTransfer, transfer_id, 'Transfer')
            self._require_status(transfer, (StockTransfer.STATUS_DRAFT,), 'updated')
            self._apply_header(transfer, payload)
            if 'items' in payload:
                transfer.items.clear()
                self.session.flush()
                self._build_items(transfer, payload.get('items'))
            else:
                self._check_serials_follow_source(transfer)
        return transfer

    def delete(self, transfer_id):
        with unit_of_work(self.session, self.autocommit):
            transfer = self._lock(StockTransfer, transfer_id, 'Transfer')
            self._require_status(transfer, (StockTransfer.STATUS_DRAFT,), 'deleted')
            number = transfer.transfer_number
            self.session.delete(transfer)
        logger.info("Draft transfer %s deleted", number)

    def approve(self, transfer_id, approved_by=None):
        """Move the goods: OUT at the source, IN at the destination, serials re-homed"""
        with unit_of_work(self.session, self.autocommit):
            transfer = self._lock(StockTransfer, transfer_id, 'Transfer')
            self._require_status(transfer, (StockTransfer.STATUS_DRAFT,), 'approved')
            source_id, destination_id = transfer.from_warehouse_id, transfer.to_warehouse_id

            keys = []
            for item in transfer.items:
                keys.append((item.product_id, source_id))
                keys.append((item.product_id, destination_id))
            stocks = self.stock.lock_stocks(keys, create=True)
            units = self.serials.lock_by_ids(
                [link.stock_serial_id for item in transfer.items for link in item.serials])

            needed = {}
            for item in transfer.items:
                needed[item.product_id] = needed.get(item.product_id, 0) + item.transfer_quantity
                for link in item.serials:
                    unit = units.get(link.stock_serial_id)
                    if unit is None:
                        raise NotFound(f"Serial {link.stock_serial_id} not found")
                    if (unit.status != SerialStatus.AVAILABLE or unit.warehouse_id != source_id
                            or unit.product_id != item.product_id
                            or self.serials.is_unbooked(unit)):
                        raise ConflictError(
                            f"Serial '{unit.serial_number}' is not available for "
                            f"{item.product.product_name} at the source warehouse",
                            payload={'serial': unit.serial_number})
            for product_id, quantity in needed.items():
                available = stocks[(product_id, source_id)].quantity_available or 0
                if quantity > available:
                    raise ConflictError(
                        f"Insufficient stock for product {product_id} at source: "
                        f"available {available}, requested {quantity}",
                        payload={'product_id': product_id, 'available': available, 'requested': quantity})

            common = dict(
                transaction_id=transfer.id,
                transaction_reference_no=transfer.transfer_number,
                performed_by=approved_by,
            )
            for item in transfer.items:
                source = stocks[(item.product_id, source_id)]
                destination = stocks[(item.product_id, destination_id)]
                serial_id = item.serials[0].stock_serial_id if len(item.serials) == 1 else None
                self.stock.apply_movement(source, MovementType.OUT, item.transfer_quantity,
                                          transaction_type=TransactionType.TRANSFER_OUT,
                                          serial_id=serial_id, **common)
                for link in item.serials:
                    self.serials.rehome(units[link.stock_serial_id], destination,
                                        TransactionType.TRANSFER_IN, transfer.id)
                self.stock.apply_movement(destination, MovementType.IN, item.transfer_quantity,
                                          transaction_type=TransactionType.TRANSFER_IN,
                                          serial_id=serial_id, **common)

            transfer.status = StockTransfer.STATUS_APPROVED
            transfer.approved_by = approved_by
            transfer.approved_at = utcnow()

        logger.info("Transfer %s approved", transfer.transfer_number)
        return transfer

    def dispatch(self, transfer_id):
        with unit_of_work(self.session, self.autocommit):
            transfer = self._lock(StockTransfer, transfer_id, 'Transfer')
            self._require_status(transfer, (StockTransfer.STATUS_APPROVED,), 'dispatched')
            transfer.status = StockTransfer.STATUS_IN_TRANSIT
            transfer.dispatched_at = utcnow()
        logger.info("Transfer %s in transit", transfer.transfer_number)
        return transfer

    def receive(self, transfer_id, received_by=None):
        with unit_of_work(self.session, self.autocommit):
            transfer = self._lock(StockTransfer, transfer_id, 'Transfer')
            self._require_status(transfer, (StockTransfer.STATUS_APPROVED, StockTransfer.STATUS_IN_TRANSIT),
                                 'received')
            transfer.status = StockTransfer.STATUS_RECEIVED
            transfer.received_by = received_by
            transfer.received_at = utcnow()
        logger.info("Transfer %s received", transfer.transfer_number)
        return transfer

    # ---------------------------------------------------------------- reads

    def get(self, transfer_id):
        return self._get(StockTransfer, transfer_id, 'Transfer')

    def list(self, filters=None, page=1, per_page=20):
        return self._list(StockTransfer, filters, ('status', 'from_warehouse_id', 'to_warehouse_id'),
                          page, per_page)

    # ------------------------------------------------------------- helpers

    @staticmethod
    def _require_status(transfer, statuses, action):
        if transfer.status not in statuses:
            raise ValidationError(
                f"Transfer must be {' or '.join(statuses)} to be {action} (is {transfer.status})")

    def _apply_header(self, transfer, payload):
        if 'from_warehouse_id' in payload or transfer.from_warehouse_id is None:
            transfer.from_warehouse_id = required_id(payload.get('from_warehouse_id'), 'from_warehouse_id')
        if 'to_warehouse_id' in payload or transfer.to_warehouse_id is None:
            transfer.to_warehouse_id = required_id(payload.get('to_warehouse_id'), 'to_warehouse_id')
        if transfer.from_warehouse_id == transfer.to_warehouse_id:
            raise ValidationError("Source and destination warehouse must differ")
        self._get(Warehouse, transfer.from_warehouse_id, 'Warehouse')
        self._get(Warehouse, transfer.to_warehouse_id, 'Warehouse')
        if 'transfer_date' in payload or transfer.transfer_date is None:
            transfer.transfer_date = parse_date(payload.get('transfer_date'), 'transfer_date') or date.today()
        if 'remarks' in payload:
            transfer.remarks = payload.get('remarks')

    def _build_items(self, transfer, items):
        if not items:
            raise ValidationError("Transfer must have at least one item")
        seen = set()
        for data in items:
            product = self._get(Product, required_id(data.get('product_id'), 'product_id'), 'Product')
            quantity = positive_int(data.get('transfer_quantity', data.get('quantity')), 'transfer_quantity')
            tracking_type, serial_required = normalize_tracking(product.tracking_type, product.serial_required)
            serial_ids = [required_id(value, 'serial_ids') for value in (data.get('serial_ids') or [])]

            item = StockTransferItem(
                product_id=product.id,
                tracking_type=tracking_type,
                serial_required=serial_required,
                transfer_quantity=quantity,
            )
            item.product = product
            transfer.items.append(item)

            if serial_required:
                if len(serial_ids) != quantity:
                    raise ValidationError(
                        f"{product.product_name} needs exactly {quantity} serial references, got {len(serial_ids)}",
                        payload={'product_id': product.id})
                for serial_id in serial_ids:
                    if serial_id in seen:
                        raise ValidationError(f"Serial {serial_id} listed more than once")
                    seen.add(serial_id)
                    unit = self.session.get(StockSerial, serial_id)
                    if unit is None or unit.is_deleted:
                        raise NotFound(f"Serial {serial_id} not found")
                    if unit.product_id != product.id:
                        raise ValidationError(
                            f"Serial '{unit.serial_number}' does not belong to {product.product_name}")
                    if unit.warehouse_id != transfer.from_warehouse_id:
                        raise ValidationError(f"Serial '{unit.serial_number}' is not at the source warehouse")
                    if self.serials.is_unbooked(unit):
                        raise ConflictError(
                            f"Serial '{unit.serial_number}' is on adjustment #{unit.source_id}, which is not posted yet",
                            payload={'serial': unit.serial_number})
                    item.serials.append(StockTransferSerial(stock_serial_id=unit.id))
            elif serial_ids:
                raise ValidationError(f"{product.product_name} is not serialized; serials are not accepted")

    def _check_serials_follow_source(self, transfer):
        for item in transfer.items:
            for link in item.serials:
                if link.stock_serial.warehouse_id != transfer.from_warehouse_id:
                    raise ValidationError("Changing the source warehouse requires the items to be resent")
