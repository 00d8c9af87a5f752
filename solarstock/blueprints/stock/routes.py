from flask import request, jsonify, current_app, send_file
from flask_login import login_required, current_user

from . import stock_bp
from solarstock.constants import TransactionType
from solarstock.extensions import db
from solarstock.exceptions import ValidationError
from solarstock.services import (
    StockService, SerialRegistry, LedgerService, PurchaseReceiptService, OutboundService,
    StockAdjustmentService, StockTransferService, export_service,
)
from solarstock.services.export_service import XLSX_MIMETYPE, STOCK_COLUMNS, LEDGER_COLUMNS, stock_rows, ledger_rows
from solarstock.services.outbound_service import resolve_kind
from solarstock.utils.validators import parse_date


def _json_payload():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _page_args():
    default = current_app.config.get('STOCK_DEFAULT_PAGE_SIZE', 20)
    ceiling = current_app.config.get('STOCK_MAX_PAGE_SIZE', 500)
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', default, type=int)
    return max(page, 1), min(max(per_page, 1), ceiling)


def _receipt_dict(receipt):
    return {
        **receipt.to_dict(),
        'items': [{**item.to_dict(), 'serials': [s.serial_number for s in item.serials]}
                  for item in receipt.items],
    }


def _outbound_dict(document):
    return {
        **document.to_dict(),
        'items': [{**item.to_dict(), 'serials': item.serial_numbers} for item in document.items],
    }


def _adjustment_dict(adjustment):
    return {
        **adjustment.to_dict(),
        'items': [{**item.to_dict(), 'serials': [s.serial_number for s in item.serials]}
                  for item in adjustment.items],
    }


def _transfer_dict(transfer):
    return {
        **transfer.to_dict(),
        'items': [{**item.to_dict(), 'serial_ids': [s.stock_serial_id for s in item.serials]}
                  for item in transfer.items],
    }


def _ok(data=None, status=200, **extra):
    body = {'success': True}
    if data is not None:
        body['data'] = data
    body.update(extra)
    return jsonify(body), status


def _paged(result, serialize):
    return _ok([serialize(obj) for obj in result['items']],
               pagination={k: result[k] for k in ('total', 'page', 'per_page', 'pages')})


def _with_movements(data, transaction_types, transaction_id):
    """Attach the ledger entries a document wrote"""
    entries = LedgerService(db.session).entries_for(transaction_types, transaction_id)
    data['movements'] = [entry.to_dict() for entry in entries]
    return data


def _stock_dict(stock):
    return {**stock.to_dict(), 'low_stock': stock.low_stock}


def _stock_filters():
    return dict(
        warehouse_id=request.args.get('warehouse_id', type=int),
        product_id=request.args.get('product_id', type=int),
        low_stock=request.args.get('low_stock', '').lower() in ('1', 'true', 'yes'),
    )


def _ledger_filters():
    return {
        'product_id': request.args.get('product_id', type=int),
        'warehouse_id': request.args.get('warehouse_id', type=int),
        'transaction_type': request.args.get('transaction_type'),
        'transaction_id': request.args.get('transaction_id', type=int),
        'movement_type': request.args.get('movement_type'),
        'serial_id': request.args.get('serial_id', type=int),
        'date_from': parse_date(request.args.get('date_from'), 'date_from'),
        'date_to': parse_date(request.args.get('date_to'), 'date_to'),
    }


def _xlsx(rows, columns, title, filename):
    output = export_service.export_to_excel(rows, columns, sheet_name=title, title=title)
    return send_file(output, mimetype=XLSX_MIMETYPE, as_attachment=True, download_name=filename)


# ==================== Stock ====================

@stock_bp.route('/stocks')
@login_required
def list_stocks():
    stocks = StockService(db.session).list_stocks(**_stock_filters())
    return _ok([_stock_dict(s) for s in stocks])


@stock_bp.route('/stocks/export')
@login_required
def export_stocks():
    stocks = StockService(db.session).list_stocks(**_stock_filters())
    return _xlsx(stock_rows(stocks), STOCK_COLUMNS, 'Stock', 'stock.xlsx')


@stock_bp.route('/stocks/<int:stock_id>')
@login_required
def get_stock(stock_id):
    return _ok(_stock_dict(StockService(db.session).get_stock_by_id(stock_id)))


@stock_bp.route('/stocks/warehouse/<int:warehouse_id>')
@login_required
def warehouse_stocks(warehouse_id):
    warehouse, stocks = StockService(db.session).warehouse_stocks(warehouse_id)
    return _ok([_stock_dict(s) for s in stocks], warehouse=warehouse.to_dict())


@stock_bp.route('/stocks/<int:product_id>/<int:warehouse_id>/serials')
@login_required
def available_serials(product_id, warehouse_id):
    units = SerialRegistry(db.session).available_serials(product_id, warehouse_id)
    return _ok([{'id': u.id, 'serial_number': u.serial_number, 'status': u.status,
                 'inward_date': u.inward_date.isoformat() if u.inward_date else None} for u in units])


@stock_bp.route('/serials/validate-available')
@login_required
def validate_serial_available():
    result = SerialRegistry(db.session).validate_serial_available(
        request.args.get('serial_number'),
        request.args.get('product_id', type=int),
        request.args.get('warehouse_id', type=int),
    )
    return _ok(result)


@stock_bp.route('/serials/validate-not-exists')
@login_required
def validate_serial_not_exists():
    result = SerialRegistry(db.session).validate_serial_not_exists(
        request.args.get('serial_number'),
        request.args.get('product_id', type=int),
        request.args.get('warehouse_id', type=int),
    )
    return _ok(result)


# ==================== Ledger ====================

@stock_bp.route('/ledger')
@login_required
def list_ledger():
    page, per_page = _page_args()
    result = LedgerService(db.session).list_entries(_ledger_filters(), page=page, per_page=per_page)
    return _paged(result, lambda entry: entry.to_dict())


@stock_bp.route('/ledger/export')
@login_required
def export_ledger():
    entries = LedgerService(db.session).export_entries(_ledger_filters())
    return _xlsx(ledger_rows(entries), LEDGER_COLUMNS, 'Stock Ledger', 'stock_ledger.xlsx')


@stock_bp.route('/ledger/<int:entry_id>')
@login_required
def get_ledger_entry(entry_id):
    entry = LedgerService(db.session).get_entry(entry_id)
    data = entry.to_dict()
    data['serial_number'] = entry.serial.serial_number if entry.serial else None
    return _ok(data)


@stock_bp.route('/ledger/delivery-report')
@login_required
def delivery_report():
    report = LedgerService(db.session).delivery_report(
        kind=resolve_kind(request.args.get('kind', 'CHALLAN')),
        order_id=request.args.get('order_id', type=int),
        warehouse_id=request.args.get('warehouse_id', type=int),
        date_from=parse_date(request.args.get('date_from'), 'date_from'),
        date_to=parse_date(request.args.get('date_to'), 'date_to'),
    )
    return _ok(report)


# ==================== Purchase receipts ====================

@stock_bp.route('/receipts')
@login_required
def list_receipts():
    page, per_page = _page_args()
    filters = {
        'status': request.args.get('status'),
        'purchase_order_id': request.args.get('purchase_order_id', type=int),
        'warehouse_id': request.args.get('warehouse_id', type=int),
        'receipt_type': request.args.get('receipt_type'),
    }
    result = PurchaseReceiptService(db.session).list(filters, page=page, per_page=per_page)
    return _paged(result, lambda receipt: receipt.to_dict())


@stock_bp.route('/receipts/<int:receipt_id>')
@login_required
def get_receipt(receipt_id):
    receipt = PurchaseReceiptService(db.session).get(receipt_id)
    return _ok(_with_movements(_receipt_dict(receipt), TransactionType.PO_INWARD, receipt.id))


@stock_bp.route('/receipts', methods=['POST'])
@login_required
def create_receipt():
    receipt = PurchaseReceiptService(db.session).create(_json_payload(), received_by=current_user.id)
    return _ok(_receipt_dict(receipt), 201)


@stock_bp.route('/receipts/<int:receipt_id>', methods=['PUT'])
@login_required
def update_receipt(receipt_id):
    receipt = PurchaseReceiptService(db.session).update(receipt_id, _json_payload())
    return _ok(_receipt_dict(receipt))


@stock_bp.route('/receipts/<int:receipt_id>', methods=['DELETE'])
@login_required
def delete_receipt(receipt_id):
    PurchaseReceiptService(db.session).delete(receipt_id)
    return _ok(message='Receipt deleted')


@stock_bp.route('/receipts/<int:receipt_id>/approve', methods=['POST'])
@login_required
def approve_receipt(receipt_id):
    receipt = PurchaseReceiptService(db.session).approve(receipt_id, approved_by=current_user.id)
    return _ok(_receipt_dict(receipt))


# ==================== Outbound (challan / B2B shipment) ====================

@stock_bp.route('/outbound/<kind>')
@login_required
def list_outbound(kind):
    page, per_page = _page_args()
    filters = {
        'order_id': request.args.get('order_id', type=int),
        'warehouse_id': request.args.get('warehouse_id', type=int),
    }
    result = OutboundService(db.session).list(kind, filters, page=page, per_page=per_page)
    return _paged(result, lambda document: document.to_dict())


@stock_bp.route('/outbound/<kind>/<int:document_id>')
@login_required
def get_outbound(kind, document_id):
    service = OutboundService(db.session)
    policy = service.policy_for(kind)
    document = service.get(kind, document_id)
    return _ok(_with_movements(_outbound_dict(document), (policy.out_type, policy.cancel_type), document.id))


@stock_bp.route('/outbound/<kind>', methods=['POST'])
@login_required
def create_outbound(kind):
    document = OutboundService(db.session).create(kind, _json_payload(), user_id=current_user.id)
    return _ok(_outbound_dict(document), 201)


@stock_bp.route('/outbound/<kind>/<int:document_id>', methods=['DELETE'])
@login_required
def delete_outbound(kind, document_id):
    OutboundService(db.session).delete(kind, document_id, user_id=current_user.id)
    return _ok(message='Document reversed')


@stock_bp.route('/outbound/<kind>/orders/<int:order_id>/delivery-status')
@login_required
def outbound_delivery_status(kind, order_id):
    return _ok(OutboundService(db.session).delivery_status(kind, order_id))


# ==================== Adjustments ====================

@stock_bp.route('/adjustments')
@login_required
def list_adjustments():
    page, per_page = _page_args()
    filters = {
        'status': request.args.get('status'),
        'warehouse_id': request.args.get('warehouse_id', type=int),
        'adjustment_type': request.args.get('adjustment_type'),
    }
    result = StockAdjustmentService(db.session).list(filters, page=page, per_page=per_page)
    return _paged(result, lambda adjustment: adjustment.to_dict())


@stock_bp.route('/adjustments/<int:adjustment_id>')
@login_required
def get_adjustment(adjustment_id):
    adjustment = StockAdjustmentService(db.session).get(adjustment_id)
    return _ok(_with_movements(_adjustment_dict(adjustment), TransactionType.STOCK_ADJUSTMENT, adjustment.id))


@stock_bp.route('/adjustments', methods=['POST'])
@login_required
def create_adjustment():
    adjustment = StockAdjustmentService(db.session).create(_json_payload(), requested_by=current_user.id)
    return _ok(_adjustment_dict(adjustment), 201)


@stock_bp.route('/adjustments/<int:adjustment_id>', methods=['PUT'])
@login_required
def update_adjustment(adjustment_id):
    adjustment = StockAdjustmentService(db.session).update(adjustment_id, _json_payload())
    return _ok(_adjustment_dict(adjustment))


@stock_bp.route('/adjustments/<int:adjustment_id>', methods=['DELETE'])
@login_required
def delete_adjustment(adjustment_id):
    StockAdjustmentService(db.session).delete(adjustment_id)
    return _ok(message='Adjustment deleted')


@stock_bp.route('/adjustments/<int:adjustment_id>/approve', methods=['POST'])
@login_required
def approve_adjustment(adjustment_id):
    adjustment = StockAdjustmentService(db.session).approve(adjustment_id, approved_by=current_user.id)
    return _ok(_adjustment_dict(adjustment))


@stock_bp.route('/adjustments/<int:adjustment_id>/post', methods=['POST'])
@login_required
def post_adjustment(adjustment_id):
    adjustment = StockAdjustmentService(db.session).post(adjustment_id, posted_by=current_user.id)
    return _ok(_adjustment_dict(adjustment))


# ==================== Transfers ====================

@stock_bp.route('/transfers')
@login_required
def list_transfers():
    page, per_page = _page_args()
    filters = {
        'status': request.args.get('status'),
        'from_warehouse_id': request.args.get('from_warehouse_id', type=int),
        'to_warehouse_id': request.args.get('to_warehouse_id', type=int),
    }
    result = StockTransferService(db.session).list(filters, page=page, per_page=per_page)
    return _paged(result, lambda transfer: transfer.to_dict())


@stock_bp.route('/transfers/<int:transfer_id>')
@login_required
def get_transfer(transfer_id):
    transfer = StockTransferService(db.session).get(transfer_id)
    movement_types = (TransactionType.TRANSFER_OUT, TransactionType.TRANSFER_IN)
    return _ok(_with_movements(_transfer_dict(transfer), movement_types, transfer.id))


@stock_bp.route('/transfers', methods=['POST'])
@login_required
def create_transfer():
    transfer = StockTransferService(db.session).create(_json_payload(), requested_by=current_user.id)
    return _ok(_transfer_dict(transfer), 201)


@stock_bp.route('/transfers/<int:transfer_id>', methods=['PUT'])
@login_required
def update_transfer(transfer_id):
    transfer = StockTransferService(db.session).update(transfer_id, _json_payload())
    return _ok(_transfer_dict(transfer))


@stock_bp.route('/transfers/<int:transfer_id>', methods=['DELETE'])
@login_required
def delete_transfer(transfer_id):
    StockTransferService(db.session).delete(transfer_id)
    return _ok(message='Transfer deleted')


@stock_bp.route('/transfers/<int:transfer_id>/approve', methods=['POST'])
@login_required
def approve_transfer(transfer_id):
    transfer = StockTransferService(db.session).approve(transfer_id, approved_by=current_user.id)
    return _ok(_transfer_dict(transfer))


@stock_bp.route('/transfers/<int:transfer_id>/dispatch', methods=['POST'])
@login_required
def dispatch_transfer(transfer_id):
    transfer = StockTransferService(db.session).dispatch(transfer_id)
    return _ok(_transfer_dict(transfer))


@stock_bp.route('/transfers/<int:transfer_id>/receive', methods=['POST'])
@login_required
def receive_transfer(transfer_id):
    transfer = StockTransferService(db.session).receive(transfer_id, received_by=current_user.id)
    return _ok(_transfer_dict(transfer))
