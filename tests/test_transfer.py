import pytest

from solarstock.constants import MovementType, SerialStatus, TransactionType
from solarstock.exceptions import ConflictError, NotFound, ValidationError
from solarstock.models import InventoryLedger, Stock, StockSerial, StockTransfer
from solarstock.services import OutboundService, StockTransferService


def _on_hand(session, product, warehouse):
    stock = session.query(Stock).filter_by(product_id=product.id, warehouse_id=warehouse.id).first()
    return stock.quantity_on_hand if stock else 0


def test_lot_transfer_moves_stock_with_paired_entries(session, catalog, warehouses, users, stock_in):
    stock_in(catalog['cable'], warehouses['main'], 20)
    service = StockTransferService(session)

    transfer = service.create({
        'from_warehouse_id': warehouses['main'].id,
        'to_warehouse_id': warehouses['site'].id,
        'items': [{'product_id': catalog['cable'].id, 'transfer_quantity': 5}],
    }, requested_by=users['manager'].id)
    assert transfer.transfer_number.startswith('TRF-')
    assert _on_hand(session, catalog['cable'], warehouses['main']) == 20

    service.approve(transfer.id, approved_by=users['manager'].id)

    assert _on_hand(session, catalog['cable'], warehouses['main']) == 15
    assert _on_hand(session, catalog['cable'], warehouses['site']) == 5
    entries = (session.query(InventoryLedger)
               .filter(InventoryLedger.transaction_type.in_([TransactionType.TRANSFER_OUT,
                                                             TransactionType.TRANSFER_IN]))
               .order_by(InventoryLedger.id).all())
    assert len(entries) == 2
    out_entry, in_entry = entries
    assert (out_entry.movement_type, out_entry.warehouse_id) == (MovementType.OUT, warehouses['main'].id)
    assert (in_entry.movement_type, in_entry.warehouse_id) == (MovementType.IN, warehouses['site'].id)
    assert out_entry.transaction_id == in_entry.transaction_id == transfer.id
    assert (in_entry.opening_quantity, in_entry.closing_quantity) == (0, 5)


def test_serial_transfer_rehomes_units(session, catalog, warehouses, users, stock_in):
    stock_in(catalog['panel'], warehouses['main'], serials=['HX-1', 'HX-2', 'HX-3'])
    units = {u.serial_number: u for u in session.query(StockSerial).all()}
    service = StockTransferService(session)

    transfer = service.create({
        'from_warehouse_id': warehouses['main'].id,
        'to_warehouse_id': warehouses['site'].id,
        'items': [{'product_id': catalog['panel'].id, 'transfer_quantity': 2,
                   'serial_ids': [units['HX-1'].id, units['HX-3'].id]}],
    })
    service.approve(transfer.id, approved_by=users['manager'].id)

    site_stock = session.query(Stock).filter_by(product_id=catalog['panel'].id,
                                                warehouse_id=warehouses['site'].id).one()
    for sn in ('HX-1', 'HX-3'):
        unit = session.get(StockSerial, units[sn].id)
        assert unit.warehouse_id == warehouses['site'].id
        assert unit.stock_id == site_stock.id
        assert unit.status == SerialStatus.AVAILABLE
    assert session.get(StockSerial, units['HX-2'].id).warehouse_id == warehouses['main'].id
    assert site_stock.quantity_on_hand == 2
    assert _on_hand(session, catalog['panel'], warehouses['main']) == 1


def test_transfer_status_progression(session, catalog, warehouses, users, stock_in):
    stock_in(catalog['cable'], warehouses['main'], 10)
    service = StockTransferService(session)
    payload = {
        'from_warehouse_id': warehouses['main'].id,
        'to_warehouse_id': warehouses['site'].id,
        'items': [{'product_id': catalog['cable'].id, 'transfer_quantity': 1}],
    }

    direct = service.create(payload)
    with pytest.raises(ValidationError):
        service.receive(direct.id)
    service.approve(direct.id)
    service.receive(direct.id, received_by=users['manager'].id)
    assert direct.status == StockTransfer.STATUS_RECEIVED

    shipped = service.create(payload)
    service.approve(shipped.id)
    service.dispatch(shipped.id)
    assert shipped.status == StockTransfer.STATUS_IN_TRANSIT
    service.receive(shipped.id)
    assert shipped.status == StockTransfer.STATUS_RECEIVED

    with pytest.raises(ValidationError):
        service.dispatch(shipped.id)
    # Goods moved once per transfer, at approval
    assert _on_hand(session, catalog['cable'], warehouses['site']) == 2


def test_transfer_requires_distinct_warehouses(session, catalog, warehouses):
    with pytest.raises(ValidationError):
        StockTransferService(session).create({
            'from_warehouse_id': warehouses['main'].id,
            'to_warehouse_id': warehouses['main'].id,
            'items': [{'product_id': catalog['cable'].id, 'transfer_quantity': 1}],
        })


def test_insufficient_source_stock_blocks_approval(session, catalog, warehouses, stock_in):
    stock_in(catalog['cable'], warehouses['main'], 3)
    service = StockTransferService(session)
    transfer = service.create({
        'from_warehouse_id': warehouses['main'].id,
        'to_warehouse_id': warehouses['site'].id,
        'items': [{'product_id': catalog['cable'].id, 'transfer_quantity': 4}],
    })
    with pytest.raises(ConflictError):
        service.approve(transfer.id)
    assert session.get(StockTransfer, transfer.id).status == StockTransfer.STATUS_DRAFT
    assert _on_hand(session, catalog['cable'], warehouses['main']) == 3
    assert _on_hand(session, catalog['cable'], warehouses['site']) == 0


def test_serial_references_are_validated(session, catalog, warehouses, stock_in):
    stock_in(catalog['panel'], warehouses['site'], serials=['HX-9'])
    unit = session.query(StockSerial).one()
    service = StockTransferService(session)
    base = {'from_warehouse_id': warehouses['main'].id, 'to_warehouse_id': warehouses['site'].id}

    with pytest.raises(ValidationError):
        # unit is at the destination, not the source
        service.create(dict(base, items=[{'product_id': catalog['panel'].id, 'transfer_quantity': 1,
                                          'serial_ids': [unit.id]}]))
    with pytest.raises(ValidationError):
        service.create(dict(base, items=[{'product_id': catalog['panel'].id, 'transfer_quantity': 2,
                                          'serial_ids': [unit.id]}]))
    with pytest.raises(NotFound):
        service.create(dict(base, items=[{'product_id': catalog['panel'].id, 'transfer_quantity': 1,
                                          'serial_ids': [unit.id + 100]}]))


def test_serial_issued_after_draft_blocks_approval(session, catalog, warehouses, users, order, stock_in):
    stock_in(catalog['panel'], warehouses['main'], serials=['HX-5', 'HX-6'])
    unit = session.query(StockSerial).filter_by(serial_number='HX-5').one()
    service = StockTransferService(session)
    transfer = service.create({
        'from_warehouse_id': warehouses['main'].id,
        'to_warehouse_id': warehouses['site'].id,
        'items': [{'product_id': catalog['panel'].id, 'transfer_quantity': 1, 'serial_ids': [unit.id]}],
    })
    OutboundService(session).create('challan', {
        'order_id': order.id, 'items': [{'product_id': catalog['panel'].id, 'quantity': 1, 'serials': ['HX-5']}],
    }, users['manager'].id)

    with pytest.raises(ConflictError):
        service.approve(transfer.id)
    assert session.get(StockSerial, unit.id).warehouse_id == warehouses['main'].id
