"""
Outbound movement: delivery challans (internal orders) and B2B shipments.

Both kinds run the same workflow; an OutboundPolicy supplies what differs:
the parent order model, where planned quantities come from, the ledger
transaction types and how the parent's derived delivery state is refreshed.
"""
import logging
from collections import OrderedDict
from datetime import date
from sqlalchemy import func, select
from solarstock.constants import MovementType, OutboundKind, SerialStatus, DeliveryStatus
from solarstock.exceptions import NotFound, ValidationError, ConflictError, UnauthorizedManager
from solarstock.models import (
    Order, B2BSalesOrder, OutboundDocument, OutboundItem, OutboundItemSerial,
    Product, Warehouse, warehouse_managers,
)
from solarstock.utils.numbering import generate_document_no
from solarstock.utils.tx import unit_of_work
from solarstock.utils.validators import positive_int, required_id, parse_date
from .base import WorkflowService
from .ledger_service import OUTBOUND_TRANSACTION_TYPES
from .serial_service import clean_serial_list

logger = logging.getLogger(__name__)


class OutboundPolicy:
    kind = None
    label = None
    prefix = None
    order_model = None

    @property
    def out_type(self):
        return OUTBOUND_TRANSACTION_TYPES[self.kind][0]

    @property
    def cancel_type(self):
        return OUTBOUND_TRANSACTION_TYPES[self.kind][1]

    def lock_order(self, session, order_id, required=True):
        order = None
        if order_id is not None:
            order = (session.query(self.order_model)
                     .filter_by(id=order_id, is_deleted=False)
                     .with_for_update().populate_existing()
                     .first())
        if order is None and required:
            raise NotFound(f"{self.label} {order_id} not found")
        return order

    def is_confirmed(self, order):
        return order.status == self.order_model.STATUS_CONFIRMED

    def planned_quantities(self, order):
        """{product_id: planned quantity}"""
        raise NotImplementedError

    def refresh_order(self, order, shipped):
        """Rewrite the order's derived shipping state from {product_id: shipped}"""
        raise NotImplementedError


class ChallanPolicy(OutboundPolicy):
    kind = OutboundKind.CHALLAN
    label = 'Order'
    prefix = 'CH'
    order_model = Order

    def planned_quantities(self, order):
        planned = {}
        for line in order.bom_lines:
            if line.is_deleted:
                continue
            planned[line.product_id] = planned.get(line.product_id, 0) + (line.planned_quantity or 0)
        return planned

    def refresh_order(self, order, shipped):
        any_shipped = False
        all_done = True
        for line in order.bom_lines:
            if line.is_deleted:
                continue
            line.shipped_quantity = shipped.get(line.product_id, 0)
            line.pending_quantity = max((line.planned_quantity or 0) - line.shipped_quantity, 0)
            any_shipped = any_shipped or line.shipped_quantity > 0
            all_done = all_done and line.pending_quantity == 0
        if any_shipped and all_done:
            order.delivery_status = DeliveryStatus.COMPLETE
        elif any_shipped:
            order.delivery_status = DeliveryStatus.PARTIAL
        else:
            order.delivery_status = DeliveryStatus.PENDING


class B2BShipmentPolicy(OutboundPolicy):
    kind = OutboundKind.B2B_SHIPMENT
    label = 'B2B sales order'
    prefix = 'SH'
    order_model = B2BSalesOrder

    def planned_quantities(self, order):
        planned = {}
        for item in order.items:
            if item.is_deleted:
                continue
            planned[item.product_id] = planned.get(item.product_id, 0) + (item.quantity or 0)
        return planned

    def refresh_order(self, order, shipped):
        # A product may appear on several order items; fill them in order
        remaining = dict(shipped)
        for item in order.items:
            if item.is_deleted:
                continue
            portion = min(remaining.get(item.product_id, 0), item.quantity or 0)
            item.shipped_quantity = portion
            remaining[item.product_id] = remaining.get(item.product_id, 0) - portion


POLICIES = {
    OutboundKind.CHALLAN: ChallanPolicy(),
    OutboundKind.B2B_SHIPMENT: B2BShipmentPolicy(),
}


def resolve_kind(kind):
    """'challan', 'b2b-shipment' and the constant names all resolve"""
    normalized = str(kind or '').strip().upper().replace('-', '_')
    if normalized not in POLICIES:
        raise ValidationError(f"Unknown outbound kind '{kind}'")
    return normalized


class OutboundService(WorkflowService):
    """Create and reverse outbound documents of either kind"""

    def policy_for(self, kind):
        return POLICIES[resolve_kind(kind)]

    def create(self, kind, payload, user_id):
        policy = self.policy_for(kind)
        items = payload.get('items')
        if not items:
            raise ValidationError("At least one item is required")

        with unit_of_work(self.session, self.autocommit):
            order = policy.lock_order(self.session, required_id(payload.get('order_id'), 'order_id'))
            if not policy.is_confirmed(order):
                raise ValidationError(f"{policy.label} must be CONFIRMED (is {order.status})")
            warehouse_id = order.planned_warehouse_id
            if not warehouse_id:
                raise ValidationError(f"{policy.label} has no planned warehouse")
            if payload.get('warehouse_id') and required_id(payload['warehouse_id'], 'warehouse_id') != warehouse_id:
                raise ValidationError(f"Warehouse must be the {policy.label.lower()}'s planned warehouse")
            self._get(Warehouse, warehouse_id, 'Warehouse')
            self.require_manager(warehouse_id, user_id)

            lines = self._validate_lines(policy, order, items)
            # Stock rows before serial rows, the same order every workflow locks in
            stocks = self._check_availability(lines, warehouse_id)
            units = self._lock_line_serials(lines, warehouse_id)

            document_no = payload.get('document_no') or generate_document_no(policy.prefix)
            document = OutboundDocument(
                kind=policy.kind,
                document_no=document_no,
                order_id=order.id,
                warehouse_id=warehouse_id,
                document_date=parse_date(payload.get('document_date'), 'document_date') or date.today(),
                transporter=payload.get('transporter'),
                remarks=payload.get('remarks'),
                created_by=user_id,
            )
            self.session.add(document)
            self.session.flush()

            for product, quantity, serial_numbers, remarks in lines:
                stock = stocks[product.id]
                item = OutboundItem(product_id=product.id, quantity=quantity, remarks=remarks)
                document.items.append(item)
                common = dict(
                    transaction_type=policy.out_type,
                    transaction_id=document.id,
                    transaction_reference_no=document.document_no,
                    performed_by=user_id,
                )
                if serial_numbers:
                    for serial_number in serial_numbers:
                        unit = units[(product.id, serial_number)]
                        self.serials.issue(unit, policy.kind, document.document_no, document.id,
                                           document.document_date)
                        item.serials.append(OutboundItemSerial(serial_number=serial_number,
                                                               stock_serial_id=unit.id))
                        self.stock.apply_movement(stock, MovementType.OUT, 1, serial_id=unit.id, **common)
                else:
                    self.stock.apply_movement(stock, MovementType.OUT, quantity, **common)

            self.session.flush()
            policy.refresh_order(order, self.shipped_quantities(policy.kind, order.id))

        logger.info("%s %s created for %s %s (%s units)", policy.kind, document.document_no,
                    policy.label.lower(), order.id, document.total_quantity)
        return document

    def delete(self, kind, document_id, user_id=None):
        """Reverse every movement of the document, then soft-delete it"""
        policy = self.policy_for(kind)
        with unit_of_work(self.session, self.autocommit):
            document = (self.session.query(OutboundDocument)
                        .filter_by(id=document_id, kind=policy.kind, is_deleted=False)
                        .with_for_update().populate_existing()
                        .first())
            if document is None:
                raise NotFound(f"{policy.kind} {document_id} not found")
            order = policy.lock_order(self.session, document.order_id, required=False)

            stocks = self.stock.lock_stocks(
                [(item.product_id, document.warehouse_id) for item in document.items], create=True)
            units = self.serials.lock_by_ids(
                [link.stock_serial_id for item in document.items for link in item.serials
                 if link.stock_serial_id])

            common = dict(
                transaction_type=policy.cancel_type,
                transaction_id=document.id,
                transaction_reference_no=document.document_no,
                performed_by=user_id,
            )
            for item in document.items:
                stock = stocks[(item.product_id, document.warehouse_id)]
                reversed_qty = 0
                for link in item.serials:
                    unit = units.get(link.stock_serial_id)
                    if (unit is not None and unit.status == SerialStatus.ISSUED
                            and unit.reference_number == document.document_no):
                        self.serials.restore(unit, stock, policy.cancel_type, document.id)
                        self.stock.apply_movement(stock, MovementType.IN, 1, serial_id=unit.id,
                                                  reason='Outbound document deleted', **common)
                    else:
                        logger.warning("Serial %s on %s %s could not be resolved; reversing quantity only",
                                       link.serial_number, policy.kind, document.document_no)
                        self.stock.apply_movement(stock, MovementType.IN, 1,
                                                  reason=f"Serial {link.serial_number} not resolved", **common)
                    reversed_qty += 1
                remainder = item.quantity - reversed_qty
                if remainder > 0:
                    self.stock.apply_movement(stock, MovementType.IN, remainder,
                                              reason='Outbound document deleted', **common)

            document.mark_deleted(user_id)
            self.session.flush()
            if order is not None:
                policy.refresh_order(order, self.shipped_quantities(policy.kind, order.id))

        logger.info("%s %s reversed", policy.kind, document.document_no)
        return document

    def delivery_status(self, kind, order_id):
        """Planned vs shipped per product for one order, plus an overall status"""
        policy = self.policy_for(kind)
        order = self._get(policy.order_model, order_id, policy.label)
        planned = policy.planned_quantities(order)
        shipped = self.shipped_quantities(policy.kind, order.id)

        lines = []
        for product_id, planned_qty in planned.items():
            shipped_qty = shipped.get(product_id, 0)
            pending_qty = max(planned_qty - shipped_qty, 0)
            if pending_qty == 0 and planned_qty > 0:
                status = DeliveryStatus.COMPLETE
            elif shipped_qty > 0:
                status = DeliveryStatus.PARTIAL
            else:
                status = DeliveryStatus.PENDING
            lines.append({
                'product_id': product_id,
                'planned': planned_qty,
                'shipped': shipped_qty,
                'pending': pending_qty,
                'status': status,
            })

        statuses = {line['status'] for line in lines}
        if lines and statuses == {DeliveryStatus.COMPLETE}:
            overall = DeliveryStatus.COMPLETE
        elif statuses - {DeliveryStatus.PENDING}:
            overall = DeliveryStatus.PARTIAL
        else:
            overall = DeliveryStatus.PENDING
        return {'order_id': order.id, 'kind': policy.kind, 'status': overall, 'items': lines}

    def get(self, kind, document_id):
        policy = self.policy_for(kind)
        document = self.session.get(OutboundDocument, document_id)
        if document is None or document.kind != policy.kind or document.is_deleted:
            raise NotFound(f"{policy.kind} {document_id} not found")
        return document

    def list(self, kind, filters=None, page=1, per_page=20):
        filters = dict(filters or {}, kind=self.policy_for(kind).kind)
        return self._list(OutboundDocument, filters, ('kind', 'order_id', 'warehouse_id'), page, per_page)

    # ------------------------------------------------------------- helpers

    def shipped_quantities(self, kind, order_id):
        """{product_id: quantity} across the order's surviving documents"""
        rows = (self.session.query(OutboundItem.product_id, func.sum(OutboundItem.quantity))
                .join(OutboundDocument, OutboundDocument.id == OutboundItem.document_id)
                .filter(OutboundDocument.kind == kind,
                        OutboundDocument.order_id == order_id,
                        OutboundDocument.is_deleted.is_(False))
                .group_by(OutboundItem.product_id)
                .all())
        return {product_id: int(total or 0) for product_id, total in rows}

    def require_manager(self, warehouse_id, user_id):
        if user_id is None:
            raise UnauthorizedManager()
        membership = self.session.execute(
            select(warehouse_managers.c.user_id).where(
                warehouse_managers.c.warehouse_id == warehouse_id,
                warehouse_managers.c.user_id == user_id)
        ).first()
        if membership is None:
            raise UnauthorizedManager()

    def _validate_lines(self, policy, order, items):
        """Ceiling and serial-count checks; returns [(product, quantity, serials, remarks)]"""
        planned = policy.planned_quantities(order)
        shipped = self.shipped_quantities(policy.kind, order.id)
        requested = {}
        seen_serials = set()
        lines = []

        for data in items:
            product = self._get(Product, required_id(data.get('product_id'), 'product_id'), 'Product')
            quantity = positive_int(data.get('quantity'), 'quantity')
            if product.id not in planned:
                raise ValidationError(f"{product.product_name} is not part of this order")

            requested[product.id] = requested.get(product.id, 0) + quantity
            previous = shipped.get(product.id, 0)
            total = previous + requested[product.id]
            if total > planned[product.id]:
                raise ValidationError(
                    f"Total quantity for {product.product_name} ({total}) exceeds planned quantity "
                    f"({planned[product.id]}). Previously shipped: {previous}, current: {requested[product.id]}",
                    payload={'product_id': product.id})

            serial_numbers = clean_serial_list(data.get('serials') or data.get('serial_numbers'), 'serials')
            if product.is_serialized:
                if len(serial_numbers) != quantity:
                    raise ValidationError(
                        f"{product.product_name} needs exactly {quantity} serial numbers, got {len(serial_numbers)}",
                        payload={'product_id': product.id})
                for serial_number in serial_numbers:
                    if (product.id, serial_number) in seen_serials:
                        raise ValidationError(f"Duplicate serial '{serial_number}' in request")
                    seen_serials.add((product.id, serial_number))
            elif serial_numbers:
                raise ValidationError(f"{product.product_name} is not serialized; serials are not accepted")

            lines.append((product, quantity, serial_numbers, data.get('remarks')))
        return lines

    def _lock_line_serials(self, lines, warehouse_id):
        keys = sorted((product.id, sn) for product, _, serials, _ in lines for sn in serials)
        return {
            (product_id, sn): self.serials.lock_available(sn, product_id, warehouse_id)
            for product_id, sn in keys
        }

    def _check_availability(self, lines, warehouse_id):
        needed = OrderedDict()
        for product, quantity, _, _ in lines:
            needed[product] = needed.get(product, 0) + quantity
        locked = self.stock.lock_stocks([(product.id, warehouse_id) for product in needed])

        stocks = {}
        for product, quantity in needed.items():
            stock = locked.get((product.id, warehouse_id))
            available = stock.quantity_available if stock is not None else 0
            if quantity > available:
                raise ConflictError(
                    f"Insufficient stock for {product.product_name}: available {available}, requested {quantity}",
                    payload={'product_id': product.id, 'available': available, 'requested': quantity})
            stocks[product.id] = stock
        return stocks
