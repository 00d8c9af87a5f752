from decimal import Decimal

import pytest

from solarstock.constants import MovementType, SerialStatus, TransactionType
from solarstock.exceptions import ConflictError, ValidationError
from solarstock.models import InventoryLedger, PurchaseOrder, PurchaseReceipt, Stock, StockSerial
from solarstock.services import PurchaseReceiptService


def _po_item(po, product):
    return next(item for item in po.items if item.product_id == product.id)


def test_lot_receipt_updates_stock_and_ledger(session, catalog, warehouses, users, purchase_order):
    service = PurchaseReceiptService(session)
    cable_line = _po_item(purchase_order, catalog['cable'])

    receipt = service.create({
        'purchase_order_id': purchase_order.id,
        'items': [{'purchase_order_item_id': cable_line.id, 'accepted_quantity': 10}],
    }, received_by=users['manager'].id)
    assert receipt.status == PurchaseReceipt.STATUS_DRAFT
    assert receipt.receipt_number.startswith('GRN-')
    assert receipt.items[0].total_amount == Decimal('590.00')
    # Draft has no stock effect
    assert session.query(Stock).count() == 0

    service.approve(receipt.id, approved_by=users['manager'].id)

    stock = session.query(Stock).filter_by(product_id=catalog['cable'].id,
                                           warehouse_id=warehouses['main'].id).one()
    assert stock.quantity_on_hand == 10
    assert stock.quantity_available == 10

    entry = session.query(InventoryLedger).one()
    assert entry.transaction_type == TransactionType.PO_INWARD
    assert entry.movement_type == MovementType.IN
    assert (entry.opening_quantity, entry.closing_quantity) == (0, 10)
    assert entry.transaction_id == receipt.id
    assert entry.amount == Decimal('590.00')

    assert _po_item(purchase_order, catalog['cable']).received_quantity == 10
    assert purchase_order.status == PurchaseOrder.STATUS_PARTIAL_RECEIVED


def test_serial_receipt_registers_units_and_remainder(session, catalog, warehouses, users, purchase_order):
    service = PurchaseReceiptService(session)
    panel_line = _po_item(purchase_order, catalog['panel'])

    receipt = service.create({
        'purchase_order_id': purchase_order.id,
        'items': [{
            'purchase_order_item_id': panel_line.id,
            'received_quantity': 4,
            'accepted_quantity': 3,
            'serials': ['HX-100', {'serial_number': 'HX-101'}],
        }],
    }, received_by=users['manager'].id)
    assert receipt.items[0].rejected_quantity == 1
    service.approve(receipt.id, approved_by=users['manager'].id)

    units = session.query(StockSerial).order_by(StockSerial.serial_number).all()
    assert [u.serial_number for u in units] == ['HX-100', 'HX-101']
    assert all(u.status == SerialStatus.AVAILABLE for u in units)
    assert all(u.warehouse_id == warehouses['main'].id for u in units)

    entries = session.query(InventoryLedger).order_by(InventoryLedger.id).all()
    assert [e.quantity for e in entries] == [1, 1, 1]
    assert entries[0].serial_id == units[0].id
    assert entries[2].serial_id is None
    assert entries[2].reason == 'Serial numbers not declared on receipt'
    assert entries[-1].closing_quantity == 3


def test_full_receipt_closes_po(session, catalog, users, purchase_order):
    service = PurchaseReceiptService(session)
    receipt = service.create({
        'purchase_order_id': purchase_order.id,
        'items': [
            {'purchase_order_item_id': _po_item(purchase_order, catalog['panel']).id, 'accepted_quantity': 10},
            {'purchase_order_item_id': _po_item(purchase_order, catalog['cable']).id, 'accepted_quantity': 100},
        ],
    })
    assert receipt.receipt_type == PurchaseReceipt.TYPE_COMPLETE
    service.approve(receipt.id, approved_by=users['manager'].id)

    assert purchase_order.status == PurchaseOrder.STATUS_CLOSED
    with pytest.raises(ValidationError):
        service.create({
            'purchase_order_id': purchase_order.id,
            'items': [{'purchase_order_item_id': _po_item(purchase_order, catalog['cable']).id,
                       'accepted_quantity': 1}],
        })


def test_accepted_beyond_remaining_is_rejected(session, catalog, purchase_order):
    cable_line = _po_item(purchase_order, catalog['cable'])
    with pytest.raises(ValidationError) as exc:
        PurchaseReceiptService(session).create({
            'purchase_order_id': purchase_order.id,
            'items': [
                {'purchase_order_item_id': cable_line.id, 'accepted_quantity': 60},
                {'purchase_order_item_id': cable_line.id, 'accepted_quantity': 50},
            ],
        })
    assert 'exceeds remaining quantity' in exc.value.message
    assert session.query(PurchaseReceipt).count() == 0


@pytest.mark.parametrize('line, message', [
    ({'accepted_quantity': 5, 'received_quantity': 4}, 'cannot be less than accepted'),
    ({'accepted_quantity': 1, 'serials': ['A', 'B']}, 'cannot exceed accepted quantity'),
    ({'accepted_quantity': 2, 'serials': ['A', ' A ']}, 'Duplicate serial'),
    ({'accepted_quantity': 0}, 'accepted_quantity'),
])
def test_receipt_line_validation(session, catalog, purchase_order, line, message):
    line = dict(line, purchase_order_item_id=_po_item(purchase_order, catalog['panel']).id)
    with pytest.raises(ValidationError) as exc:
        PurchaseReceiptService(session).create({'purchase_order_id': purchase_order.id, 'items': [line]})
    assert message in exc.value.message


def test_draft_po_is_not_receivable(session, catalog, purchase_order):
    purchase_order.status = PurchaseOrder.STATUS_DRAFT
    session.commit()
    with pytest.raises(ValidationError):
        PurchaseReceiptService(session).create({
            'purchase_order_id': purchase_order.id,
            'items': [{'purchase_order_item_id': _po_item(purchase_order, catalog['cable']).id,
                       'accepted_quantity': 1}],
        })


def test_existing_serial_fails_approval_atomically(session, catalog, warehouses, users, purchase_order, stock_in):
    stock_in(catalog['panel_alt'], warehouses['site'], serials=['HX-DUP'])
    service = PurchaseReceiptService(session)
    receipt = service.create({
        'purchase_order_id': purchase_order.id,
        'items': [
            {'purchase_order_item_id': _po_item(purchase_order, catalog['cable']).id, 'accepted_quantity': 5},
            {'purchase_order_item_id': _po_item(purchase_order, catalog['panel']).id, 'accepted_quantity': 1,
             'serials': ['HX-DUP']},
        ],
    })

    with pytest.raises(ConflictError):
        service.approve(receipt.id, approved_by=users['manager'].id)

    assert session.get(PurchaseReceipt, receipt.id).status == PurchaseReceipt.STATUS_DRAFT
    assert _po_item(purchase_order, catalog['cable']).received_quantity == 0
    assert session.query(InventoryLedger).filter_by(transaction_type=TransactionType.PO_INWARD).count() == 0


def test_approved_receipt_is_frozen(session, catalog, users, purchase_order):
    service = PurchaseReceiptService(session)
    receipt = service.create({
        'purchase_order_id': purchase_order.id,
        'items': [{'purchase_order_item_id': _po_item(purchase_order, catalog['cable']).id,
                   'accepted_quantity': 3}],
    })
    service.approve(receipt.id, approved_by=users['manager'].id)

    with pytest.raises(ValidationError):
        service.approve(receipt.id)
    with pytest.raises(ValidationError):
        service.update(receipt.id, {'remarks': 'late edit'})
    with pytest.raises(ValidationError):
        service.delete(receipt.id)


def test_draft_update_and_delete(session, catalog, purchase_order):
    service = PurchaseReceiptService(session)
    cable_line = _po_item(purchase_order, catalog['cable'])
    receipt = service.create({
        'purchase_order_id': purchase_order.id,
        'items': [{'purchase_order_item_id': cable_line.id, 'accepted_quantity': 3}],
    })

    service.update(receipt.id, {'items': [{'purchase_order_item_id': cable_line.id, 'accepted_quantity': 7}],
                                'supplier_invoice_number': 'INV-77'})
    assert receipt.total_accepted_quantity == 7
    assert receipt.supplier_invoice_number == 'INV-77'

    service.delete(receipt.id)
    assert session.query(PurchaseReceipt).count() == 0
