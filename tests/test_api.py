from io import BytesIO

import openpyxl
import pytest

from solarstock.models import InventoryLedger, PurchaseOrder, Stock, StockSerial


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def headers(users):
    return {'X-User-Id': str(users['manager'].id)}


def test_requests_without_user_are_rejected(client, users):
    response = client.get('/api/stocks')
    assert response.status_code == 401
    assert response.get_json()['success'] is False

    response = client.get('/api/stocks', headers={'X-User-Id': '9999'})
    assert response.status_code == 401


def test_list_stocks(client, headers, catalog, warehouses, stock_in):
    stock_in(catalog['cable'], warehouses['main'], 4)
    response = client.get('/api/stocks', headers=headers)
    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is True
    assert body['data'][0]['quantity_on_hand'] == 4
    assert body['data'][0]['low_stock'] is True


def test_receipt_approval_over_http(client, headers, session, catalog, warehouses, purchase_order):
    cable_line = next(i for i in purchase_order.items if i.product_id == catalog['cable'].id)
    response = client.post('/api/receipts', headers=headers, json={
        'purchase_order_id': purchase_order.id,
        'items': [{'purchase_order_item_id': cable_line.id, 'accepted_quantity': 25}],
    })
    assert response.status_code == 201
    receipt = response.get_json()['data']
    assert receipt['status'] == 'DRAFT'
    assert receipt['items'][0]['accepted_quantity'] == 25

    response = client.post(f"/api/receipts/{receipt['id']}/approve", headers=headers)
    assert response.status_code == 200
    assert response.get_json()['data']['status'] == 'RECEIVED'
    assert session.get(PurchaseOrder, purchase_order.id).status == PurchaseOrder.STATUS_PARTIAL_RECEIVED

    ledger = client.get(f"/api/ledger?product_id={catalog['cable'].id}", headers=headers).get_json()
    assert ledger['pagination']['total'] == 1
    assert ledger['data'][0]['closing_quantity'] == 25


def test_errors_are_json_with_status_codes(client, headers, catalog, warehouses, order, stock_in):
    stock_in(catalog['cable'], warehouses['main'], 2)

    response = client.post('/api/outbound/challan', headers=headers, json={
        'order_id': order.id, 'items': [{'product_id': catalog['cable'].id, 'quantity': 5}]})
    assert response.status_code == 409
    body = response.get_json()
    assert body['error'] == 'ConflictError'
    assert body['available'] == 2

    response = client.post('/api/outbound/crate', headers=headers, json={'order_id': order.id, 'items': [{}]})
    assert response.status_code == 400

    response = client.post('/api/adjustments', headers=headers, data='not json',
                           content_type='text/plain')
    assert response.status_code == 400

    response = client.delete('/api/transfers/404', headers=headers)
    assert response.status_code == 404
    assert response.get_json()['error'] == 'NotFound'


def test_challan_and_delivery_status(client, headers, catalog, warehouses, order, stock_in):
    stock_in(catalog['cable'], warehouses['main'], 10)
    response = client.post('/api/outbound/challan', headers=headers, json={
        'order_id': order.id, 'items': [{'product_id': catalog['cable'].id, 'quantity': 10}]})
    assert response.status_code == 201
    document = response.get_json()['data']
    assert document['items'][0]['quantity'] == 10

    status = client.get(f"/api/outbound/challan/orders/{order.id}/delivery-status", headers=headers).get_json()
    assert status['data']['status'] == 'partial'

    report = client.get(f"/api/ledger/delivery-report?order_id={order.id}", headers=headers).get_json()
    assert report['data'][0]['net_quantity'] == 10

    response = client.delete(f"/api/outbound/challan/{document['id']}", headers=headers)
    assert response.status_code == 200
    status = client.get(f"/api/outbound/challan/orders/{order.id}/delivery-status", headers=headers).get_json()
    assert status['data']['status'] == 'pending'


def test_serial_validation_endpoints(client, headers, session, catalog, warehouses, stock_in):
    stock_in(catalog['panel'], warehouses['main'], serials=['HX-77'])
    query = f"product_id={catalog['panel'].id}&warehouse_id={warehouses['main'].id}"

    available = client.get(f"/api/serials/validate-available?serial_number=HX-77&{query}", headers=headers)
    assert available.get_json()['data'] == {'valid': True}
    exists = client.get(f"/api/serials/validate-not-exists?serial_number=HX-77&{query}", headers=headers)
    assert exists.get_json()['data']['exists'] is True

    listed = client.get(f"/api/stocks/{catalog['panel'].id}/{warehouses['main'].id}/serials", headers=headers)
    unit = session.query(StockSerial).one()
    assert listed.get_json()['data'][0]['id'] == unit.id


def test_transfer_and_adjustment_endpoints(client, headers, catalog, warehouses, stock_in):
    stock_in(catalog['cable'], warehouses['main'], 20)

    created = client.post('/api/transfers', headers=headers, json={
        'from_warehouse_id': warehouses['main'].id, 'to_warehouse_id': warehouses['site'].id,
        'items': [{'product_id': catalog['cable'].id, 'transfer_quantity': 5}]}).get_json()['data']
    for step in ('approve', 'dispatch', 'receive'):
        response = client.post(f"/api/transfers/{created['id']}/{step}", headers=headers)
        assert response.status_code == 200
    assert response.get_json()['data']['status'] == 'RECEIVED'

    adjustment = client.post('/api/adjustments', headers=headers, json={
        'warehouse_id': warehouses['main'].id, 'adjustment_type': 'LOSS',
        'items': [{'product_id': catalog['cable'].id, 'adjustment_quantity': 1}]}).get_json()['data']
    client.post(f"/api/adjustments/{adjustment['id']}/approve", headers=headers)
    posted = client.post(f"/api/adjustments/{adjustment['id']}/post", headers=headers).get_json()['data']
    assert posted['status'] == 'POSTED'

    stocks = client.get(f"/api/stocks?warehouse_id={warehouses['main'].id}", headers=headers).get_json()['data']
    assert stocks[0]['quantity_on_hand'] == 14


def test_non_manager_cannot_create_challan(client, users, catalog, warehouses, order, stock_in):
    stock_in(catalog['cable'], warehouses['main'], 5)
    response = client.post('/api/outbound/challan', headers={'X-User-Id': str(users['outsider'].id)}, json={
        'order_id': order.id, 'items': [{'product_id': catalog['cable'].id, 'quantity': 1}]})
    assert response.status_code == 403
    assert response.get_json()['message'] == 'You are not a manager of this warehouse'


def test_non_numeric_ids_are_validation_errors(client, headers, catalog, warehouses, order, purchase_order, stock_in):
    stock_in(catalog['cable'], warehouses['main'], 5)
    response = client.post('/api/outbound/challan', headers=headers, json={
        'order_id': order.id, 'warehouse_id': 'main',
        'items': [{'product_id': catalog['cable'].id, 'quantity': 1}]})
    assert response.status_code == 400
    assert response.get_json()['field'] == 'warehouse_id'

    cable_line = next(i for i in purchase_order.items if i.product_id == catalog['cable'].id)
    response = client.post('/api/receipts', headers=headers, json={
        'purchase_order_id': purchase_order.id,
        'items': [{'purchase_order_item_id': cable_line.id, 'product_id': 'cable', 'accepted_quantity': 1}]})
    assert response.status_code == 400
    assert response.get_json()['field'] == 'product_id'


def test_document_lists_and_details(client, headers, catalog, warehouses, order, purchase_order, stock_in):
    stock_in(catalog['cable'], warehouses['main'], 20)
    cable_line = next(i for i in purchase_order.items if i.product_id == catalog['cable'].id)
    receipt = client.post('/api/receipts', headers=headers, json={
        'purchase_order_id': purchase_order.id,
        'items': [{'purchase_order_item_id': cable_line.id, 'accepted_quantity': 5}]}).get_json()['data']
    client.post(f"/api/receipts/{receipt['id']}/approve", headers=headers)

    listed = client.get(f"/api/receipts?status=RECEIVED&purchase_order_id={purchase_order.id}",
                        headers=headers).get_json()
    assert [r['id'] for r in listed['data']] == [receipt['id']]
    assert listed['pagination']['total'] == 1
    detail = client.get(f"/api/receipts/{receipt['id']}", headers=headers).get_json()['data']
    assert [m['transaction_type'] for m in detail['movements']] == ['PO_INWARD']
    assert detail['movements'][0]['quantity'] == 5

    challan = client.post('/api/outbound/challan', headers=headers, json={
        'order_id': order.id, 'items': [{'product_id': catalog['cable'].id, 'quantity': 3}]}).get_json()['data']
    listed = client.get(f"/api/outbound/challan?order_id={order.id}", headers=headers).get_json()
    assert [d['id'] for d in listed['data']] == [challan['id']]
    assert client.get('/api/outbound/b2b-shipment', headers=headers).get_json()['data'] == []
    detail = client.get(f"/api/outbound/challan/{challan['id']}", headers=headers).get_json()['data']
    assert [m['movement_type'] for m in detail['movements']] == ['OUT']
    assert client.get(f"/api/outbound/b2b-shipment/{challan['id']}", headers=headers).status_code == 404

    transfer = client.post('/api/transfers', headers=headers, json={
        'from_warehouse_id': warehouses['main'].id, 'to_warehouse_id': warehouses['site'].id,
        'items': [{'product_id': catalog['cable'].id, 'transfer_quantity': 2}]}).get_json()['data']
    for step in ('approve', 'dispatch', 'receive'):
        client.post(f"/api/transfers/{transfer['id']}/{step}", headers=headers)
    listed = client.get(f"/api/transfers?status=RECEIVED&to_warehouse_id={warehouses['site'].id}",
                        headers=headers).get_json()
    assert [t['id'] for t in listed['data']] == [transfer['id']]
    detail = client.get(f"/api/transfers/{transfer['id']}", headers=headers).get_json()['data']
    assert [m['transaction_type'] for m in detail['movements']] == ['TRANSFER_OUT', 'TRANSFER_IN']

    adjustment = client.post('/api/adjustments', headers=headers, json={
        'warehouse_id': warehouses['main'].id, 'adjustment_type': 'DAMAGE',
        'items': [{'product_id': catalog['cable'].id, 'adjustment_quantity': 1}]}).get_json()['data']
    draft = client.get(f"/api/adjustments/{adjustment['id']}", headers=headers).get_json()['data']
    assert draft['movements'] == []
    client.post(f"/api/adjustments/{adjustment['id']}/approve", headers=headers)
    client.post(f"/api/adjustments/{adjustment['id']}/post", headers=headers)
    listed = client.get('/api/adjustments?status=POSTED', headers=headers).get_json()
    assert [a['id'] for a in listed['data']] == [adjustment['id']]
    detail = client.get(f"/api/adjustments/{adjustment['id']}", headers=headers).get_json()['data']
    assert [m['movement_type'] for m in detail['movements']] == ['OUT']

    assert client.get('/api/receipts/999', headers=headers).status_code == 404
    assert client.get('/api/transfers/999', headers=headers).status_code == 404


def test_deleted_documents_drop_out_of_reads(client, headers, catalog, warehouses, order, stock_in):
    stock_in(catalog['cable'], warehouses['main'], 5)
    challan = client.post('/api/outbound/challan', headers=headers, json={
        'order_id': order.id, 'items': [{'product_id': catalog['cable'].id, 'quantity': 1}]}).get_json()['data']
    client.delete(f"/api/outbound/challan/{challan['id']}", headers=headers)

    assert client.get(f"/api/outbound/challan/{challan['id']}", headers=headers).status_code == 404
    assert client.get('/api/outbound/challan', headers=headers).get_json()['pagination']['total'] == 0


def test_stock_and_ledger_lookups(client, headers, session, catalog, warehouses, stock_in):
    stock = stock_in(catalog['cable'], warehouses['main'], 7)
    stock_in(catalog['panel'], warehouses['site'], serials=['HX-01'])

    response = client.get(f"/api/stocks/{stock.id}", headers=headers)
    assert response.get_json()['data']['quantity_on_hand'] == 7
    assert client.get('/api/stocks/999', headers=headers).status_code == 404

    body = client.get(f"/api/stocks/warehouse/{warehouses['site'].id}", headers=headers).get_json()
    assert body['warehouse']['name'] == 'Nashik Site Store'
    assert [s['product_id'] for s in body['data']] == [catalog['panel'].id]
    assert client.get('/api/stocks/warehouse/999', headers=headers).status_code == 404

    entry = session.query(InventoryLedger).filter_by(serial_id=session.query(StockSerial).one().id).one()
    data = client.get(f"/api/ledger/{entry.id}", headers=headers).get_json()['data']
    assert data['serial_number'] == 'HX-01'
    assert data['closing_quantity'] == 1
    assert client.get('/api/ledger/999', headers=headers).status_code == 404


def test_stock_export_is_a_workbook(client, headers, session, catalog, warehouses, stock_in):
    stock_in(catalog['cable'], warehouses['main'], 4)
    stock_in(catalog['cable'], warehouses['site'], 30)

    response = client.get(f"/api/stocks/export?warehouse_id={warehouses['main'].id}", headers=headers)
    assert response.status_code == 200
    assert response.mimetype == 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    assert 'stock.xlsx' in response.headers['Content-Disposition']

    sheet = openpyxl.load_workbook(BytesIO(response.data)).active
    assert sheet['A1'].value == 'Stock'
    assert [c.value for c in sheet[3]][:5] == ['Stock ID', 'Warehouse', 'Product', 'Tracking', 'On Hand']
    assert [c.value for c in sheet[4]][:5] == [
        session.query(Stock).filter_by(warehouse_id=warehouses['main'].id).one().id,
        'Pune Central Depot', '4 sq.mm DC Cable', 'LOT', 4,
    ]
    assert sheet.max_row == 4


def test_ledger_export_follows_filters(client, headers, catalog, warehouses, stock_in):
    stock_in(catalog['cable'], warehouses['main'], 4)
    stock_in(catalog['cable'], warehouses['main'], 6)
    stock_in(catalog['panel'], warehouses['main'], serials=['HX-09'])

    response = client.get(f"/api/ledger/export?product_id={catalog['cable'].id}", headers=headers)
    assert response.status_code == 200
    sheet = openpyxl.load_workbook(BytesIO(response.data)).active
    headers_row = [c.value for c in sheet[3]]
    assert headers_row[:8] == ['Entry ID', 'Date', 'Warehouse', 'Product', 'Transaction',
                               'Reference', 'Movement', 'Qty']
    closing = headers_row.index('Closing')
    assert [sheet.cell(row=r, column=closing + 1).value for r in (4, 5)] == [4, 10]
    assert sheet.max_row == 5
