"""Purchase receipt (PO inward) workflow"""
import logging
from solarstock.constants import MovementType, TransactionType, normalize_tracking
from solarstock.exceptions import NotFound, ValidationError
from solarstock.models import (
    PurchaseOrder, PurchaseOrderItem, PurchaseReceipt, PurchaseReceiptItem, PurchaseReceiptSerial,
    Product, Warehouse,
)
from solarstock.models.base import utcnow
from solarstock.utils.numbering import generate_document_no
from solarstock.utils.numbers import line_amounts, amount_with_gst
from solarstock.utils.tx import unit_of_work
from solarstock.utils.validators import positive_int, non_negative_int, required_id, parse_date
from .base import WorkflowService
from .serial_service import clean_serial_list

logger = logging.getLogger(__name__)


def _serial_values(raw_serials):
    """Serials arrive as plain strings or as {'serial_number': ...} objects"""
    values = []
    for raw in raw_serials or []:
        values.append(raw.get('serial_number') if isinstance(raw, dict) else raw)
    return values


class PurchaseReceiptService(WorkflowService):
    """
    DRAFT -> RECEIVED.
    A draft receipt has no stock effect; approve() receives the goods.
    """

    def create(self, payload, received_by=None):
        with unit_of_work(self.session, self.autocommit):
            po = self._receivable_po(payload.get('purchase_order_id'))
            receipt = PurchaseReceipt(
                receipt_number=generate_document_no('GRN'),
                purchase_order_id=po.id,
                status=PurchaseReceipt.STATUS_DRAFT,
                received_by=received_by,
                received_at=utcnow(),
            )
            self._apply_header(receipt, payload, po)
            self.session.add(receipt)
            self._build_items(receipt, po, payload.get('items'))
        logger.info("Receipt %s created against PO %s (%s units accepted)",
                    receipt.receipt_number, po.po_number, receipt.total_accepted_quantity)
        return receipt

    def update(self, receipt_id, payload):
        with unit_of_work(self.session, self.autocommit):
            receipt = self._lock(PurchaseReceipt, receipt_id, 'Receipt')
            self._require_draft(receipt, 'updated')
            po = self._receivable_po(receipt.purchase_order_id)
            self._apply_header(receipt, payload, po)
            if 'items' in payload:
                receipt.items.clear()
                self.session.flush()
                self._build_items(receipt, po, payload.get('items'))
        return receipt

    def delete(self, receipt_id):
        with unit_of_work(self.session, self.autocommit):
            receipt = self._lock(PurchaseReceipt, receipt_id, 'Receipt')
            self._require_draft(receipt, 'deleted')
            receipt_number = receipt.receipt_number
            self.session.delete(receipt)
        logger.info("Draft receipt %s deleted", receipt_number)

    def approve(self, receipt_id, approved_by=None):
        """
        Receive the goods: bump PO received quantities, recompute PO status,
        register declared serials and post IN movements.
        """
        with unit_of_work(self.session, self.autocommit):
            receipt = self._lock(PurchaseReceipt, receipt_id, 'Receipt')
            if receipt.status != PurchaseReceipt.STATUS_DRAFT:
                raise ValidationError(f"Receipt is already {receipt.status}")

            po = self._lock(PurchaseOrder, receipt.purchase_order_id, 'Purchase order')
            if po.status not in PurchaseOrder.RECEIVABLE_STATUSES:
                raise ValidationError(
                    f"Purchase order must be APPROVED or PARTIAL_RECEIVED to receive goods (is {po.status})")

            # Re-check remaining quantities against locked PO lines
            po_item_ids = sorted({item.purchase_order_item_id for item in receipt.items})
            po_items = {
                row.id: row for row in (self.session.query(PurchaseOrderItem)
                                        .filter(PurchaseOrderItem.id.in_(po_item_ids))
                                        .order_by(PurchaseOrderItem.id)
                                        .with_for_update().populate_existing().all())
            }
            claimed = {}
            for item in receipt.items:
                po_item = po_items[item.purchase_order_item_id]
                claimed[po_item.id] = claimed.get(po_item.id, 0) + item.accepted_quantity
                if claimed[po_item.id] > po_item.pending_qty:
                    raise ValidationError(
                        f"Accepted quantity ({claimed[po_item.id]}) exceeds remaining quantity "
                        f"({po_item.pending_qty}) for PO item id {po_item.id}")
            for item in receipt.items:
                po_item = po_items[item.purchase_order_item_id]
                po_item.received_quantity = (po_item.received_quantity or 0) + item.accepted_quantity

            if all((it.received_quantity or 0) >= (it.quantity or 0) for it in po.items):
                po.status = PurchaseOrder.STATUS_CLOSED
            else:
                po.status = PurchaseOrder.STATUS_PARTIAL_RECEIVED

            receipt.status = PurchaseReceipt.STATUS_RECEIVED
            receipt.approved_by = approved_by
            receipt.approved_at = utcnow()

            stocks = self.stock.lock_stocks(
                [(item.product_id, receipt.warehouse_id) for item in receipt.items], create=True)
            for item in receipt.items:
                self._receive_line(receipt, item, stocks[(item.product_id, receipt.warehouse_id)], approved_by)

        logger.info("Receipt %s approved; PO %s is now %s", receipt.receipt_number, po.po_number, po.status)
        return receipt

    # ---------------------------------------------------------------- reads

    def get(self, receipt_id):
        return self._get(PurchaseReceipt, receipt_id, 'Purchase receipt')

    def list(self, filters=None, page=1, per_page=20):
        return self._list(PurchaseReceipt, filters,
                          ('status', 'purchase_order_id', 'warehouse_id', 'receipt_type'), page, per_page)

    # ------------------------------------------------------------- helpers

    def _receive_line(self, receipt, item, stock, performed_by):
        common = dict(
            transaction_type=TransactionType.PO_INWARD,
            transaction_id=receipt.id,
            transaction_reference_no=receipt.receipt_number,
            performed_by=performed_by,
            rate=item.rate,
            gst_percent=item.gst_percent,
        )
        if not item.serial_required:
            self.stock.apply_movement(stock, MovementType.IN, item.accepted_quantity,
                                      amount=item.total_amount, **common)
            return

        declared = [s.serial_number for s in item.serials]
        for serial_number in declared:
            unit = self.serials.register(serial_number, item.product, stock,
                                         source_type=TransactionType.PO_INWARD, source_id=receipt.id,
                                         unit_price=item.rate)
            self.stock.apply_movement(stock, MovementType.IN, 1, serial_id=unit.id,
                                      amount=amount_with_gst(item.rate, 1, item.gst_percent), **common)

        remainder = item.accepted_quantity - len(declared)
        if remainder > 0:
            self.stock.apply_movement(stock, MovementType.IN, remainder,
                                      amount=amount_with_gst(item.rate, remainder, item.gst_percent),
                                      reason='Serial numbers not declared on receipt', **common)

    def _receivable_po(self, purchase_order_id):
        po = self._get(PurchaseOrder, required_id(purchase_order_id, 'purchase_order_id'), 'Purchase order')
        if po.status not in PurchaseOrder.RECEIVABLE_STATUSES:
            raise ValidationError(
                "Purchase order must be APPROVED or PARTIAL_RECEIVED; CLOSED and DRAFT orders are not eligible")
        return po

    @staticmethod
    def _require_draft(receipt, action):
        if receipt.status != PurchaseReceipt.STATUS_DRAFT:
            raise ValidationError(f"Only DRAFT receipts can be {action}")

    def _apply_header(self, receipt, payload, po):
        warehouse_id = payload.get('warehouse_id') or receipt.warehouse_id or po.warehouse_id
        if not warehouse_id:
            raise ValidationError("warehouse_id is required", payload={'field': 'warehouse_id'})
        self._get(Warehouse, warehouse_id, 'Warehouse')
        receipt.warehouse_id = warehouse_id
        receipt.supplier_name = payload.get('supplier_name') or receipt.supplier_name or po.supplier_name
        if 'supplier_invoice_number' in payload:
            receipt.supplier_invoice_number = payload.get('supplier_invoice_number')
        if 'supplier_invoice_date' in payload:
            receipt.supplier_invoice_date = parse_date(payload.get('supplier_invoice_date'),
                                                       'supplier_invoice_date')
        if 'inspection_required' in payload:
            receipt.inspection_required = bool(payload.get('inspection_required'))
        if 'remarks' in payload:
            receipt.remarks = payload.get('remarks')

    def _build_items(self, receipt, po, items):
        if not items:
            raise ValidationError("Receipt must have at least one item")

        claimed = {}
        seen_serials = set()
        total_received = total_accepted = total_rejected = 0

        for data in items:
            po_item_id = required_id(data.get('purchase_order_item_id'), 'purchase_order_item_id')
            po_item = self.session.get(PurchaseOrderItem, po_item_id)
            if po_item is None or po_item.purchase_order_id != po.id:
                raise NotFound(f"Purchase order item with id {po_item_id} not found")

            product_id = data.get('product_id') or po_item.product_id
            if required_id(product_id, 'product_id') != po_item.product_id:
                raise ValidationError(f"Product {product_id} does not match PO item id {po_item_id}")
            product = self._get(Product, po_item.product_id, 'Product')

            accepted = positive_int(data.get('accepted_quantity'), 'accepted_quantity')
            received = non_negative_int(data.get('received_quantity', accepted), 'received_quantity')
            if received < accepted:
                raise ValidationError(
                    f"Received quantity ({received}) cannot be less than accepted quantity ({accepted})")
            rejected = non_negative_int(data.get('rejected_quantity', received - accepted), 'rejected_quantity')

            claimed[po_item.id] = claimed.get(po_item.id, 0) + accepted
            if claimed[po_item.id] > po_item.pending_qty:
                raise ValidationError(
                    f"Accepted quantity ({claimed[po_item.id]}) exceeds remaining quantity "
                    f"({po_item.pending_qty}) for PO item id {po_item.id}")

            tracking_type, serial_required = normalize_tracking(product.tracking_type, product.serial_required)
            serials = clean_serial_list(_serial_values(data.get('serials')), 'serials')
            if serials and not serial_required:
                raise ValidationError(f"{product.product_name} is not serialized; serials are not accepted")
            if len(serials) > accepted:
                raise ValidationError(
                    f"Serial count ({len(serials)}) cannot exceed accepted quantity ({accepted}) "
                    f"for serialized product")
            for serial_number in serials:
                key = (product.product_type_id, serial_number)
                if key in seen_serials:
                    raise ValidationError(f"Duplicate serial '{serial_number}' in request")
                seen_serials.add(key)

            rate = data['rate'] if data.get('rate') is not None else po_item.rate
            gst_percent = data.get('gst_percent')
            if gst_percent is None:
                gst_percent = po_item.gst_percent if po_item.gst_percent is not None else product.gst_percent
            taxable, gst_amount, total = line_amounts(rate, accepted, gst_percent)

            item = PurchaseReceiptItem(
                purchase_order_item_id=po_item.id,
                product_id=product.id,
                tracking_type=tracking_type,
                serial_required=serial_required,
                ordered_quantity=po_item.quantity,
                received_quantity=received,
                accepted_quantity=accepted,
                rejected_quantity=rejected,
                rate=rate,
                gst_percent=gst_percent,
                taxable_amount=taxable,
                gst_amount=gst_amount,
                total_amount=total,
                remarks=data.get('remarks'),
            )
            item.product = product
            item.serials = [PurchaseReceiptSerial(serial_number=sn) for sn in serials]
            receipt.items.append(item)

            total_received += received
            total_accepted += accepted
            total_rejected += rejected

        receipt.total_received_quantity = total_received
        receipt.total_accepted_quantity = total_accepted
        receipt.total_rejected_quantity = total_rejected
        if total_accepted >= po.remaining_quantity:
            receipt.receipt_type = PurchaseReceipt.TYPE_COMPLETE
        else:
            receipt.receipt_type = PurchaseReceipt.TYPE_PARTIAL
