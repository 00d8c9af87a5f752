import pytest

from solarstock import create_app
from solarstock.extensions import db
from solarstock.constants import MovementType, TransactionType, TrackingType
from solarstock.models import (
    User, ProductType, Product, Warehouse,
    PurchaseOrder, PurchaseOrderItem, Order, OrderBomLine, B2BSalesOrder, B2BSalesOrderItem,
)
from solarstock.services import StockService, SerialRegistry


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def users(session):
    manager = User(email='manager@solarstock.local', name='Store Manager')
    outsider = User(email='outsider@solarstock.local', name='Sales Rep')
    session.add_all([manager, outsider])
    session.commit()
    return {'manager': manager, 'outsider': outsider}


@pytest.fixture
def warehouses(session, users):
    main = Warehouse(name='Pune Central Depot', address='Hadapsar, Pune')
    site = Warehouse(name='Nashik Site Store', address='Satpur, Nashik')
    main.managers = [users['manager']]
    site.managers = [users['manager']]
    session.add_all([main, site])
    session.commit()
    return {'main': main, 'site': site}


@pytest.fixture
def catalog(session):
    panel_type = ProductType(name='Solar Panel')
    inverter_type = ProductType(name='Inverter')
    cable_type = ProductType(name='Cable')
    session.add_all([panel_type, inverter_type, cable_type])
    session.flush()

    panel = Product(product_name='Helios 540W Mono PERC', product_type_id=panel_type.id,
                    tracking_type=TrackingType.SERIAL, serial_required=True, gst_percent=12)
    panel_alt = Product(product_name='Helios 550W Bifacial', product_type_id=panel_type.id,
                        tracking_type=TrackingType.SERIAL, serial_required=True, gst_percent=12)
    # Only serial_required is set; still serial-tracked
    inverter = Product(product_name='SunVolt 5kW Hybrid', product_type_id=inverter_type.id,
                       tracking_type=TrackingType.LOT, serial_required=True, gst_percent=18)
    cable = Product(product_name='4 sq.mm DC Cable', product_type_id=cable_type.id,
                    tracking_type=TrackingType.LOT, serial_required=False, gst_percent=18,
                    min_stock_quantity=10)
    session.add_all([panel, panel_alt, inverter, cable])
    session.commit()
    return {'panel': panel, 'panel_alt': panel_alt, 'inverter': inverter, 'cable': cable}


@pytest.fixture
def stock_in(session):
    """Put opening stock in place: stock_in(product, warehouse, qty) or stock_in(product, warehouse, serials=[...])"""
    def _stock_in(product, warehouse, quantity=None, serials=None):
        stocks = StockService(session)
        registry = SerialRegistry(session)
        stock = stocks.get_or_create_stock(product.id, warehouse.id)
        if serials:
            for serial_number in serials:
                unit = registry.register(serial_number, product, stock,
                                         source_type=TransactionType.CUTOVER_OPENING, source_id=0)
                stocks.apply_movement(stock, MovementType.IN, 1, TransactionType.CUTOVER_OPENING, 0,
                                      serial_id=unit.id)
        else:
            stocks.apply_movement(stock, MovementType.IN, quantity, TransactionType.CUTOVER_OPENING, 0)
        session.commit()
        return stock
    return _stock_in


@pytest.fixture
def purchase_order(session, catalog, warehouses):
    po = PurchaseOrder(po_number='PO-0001', supplier_name='Helios Energy Pvt Ltd',
                       warehouse_id=warehouses['main'].id, status=PurchaseOrder.STATUS_APPROVED)
    po.items.append(PurchaseOrderItem(product_id=catalog['panel'].id, quantity=10, rate=12000, gst_percent=12))
    po.items.append(PurchaseOrderItem(product_id=catalog['cable'].id, quantity=100, rate=50, gst_percent=18))
    session.add(po)
    session.commit()
    return po


@pytest.fixture
def order(session, catalog, warehouses):
    order = Order(order_number='ORD-0001', customer_name='Deshmukh Residence',
                  status=Order.STATUS_CONFIRMED, planned_warehouse_id=warehouses['main'].id)
    order.bom_lines.append(OrderBomLine(product_id=catalog['cable'].id, planned_quantity=10,
                                        shipped_quantity=0, pending_quantity=10))
    order.bom_lines.append(OrderBomLine(product_id=catalog['panel'].id, planned_quantity=4,
                                        shipped_quantity=0, pending_quantity=4))
    session.add(order)
    session.commit()
    return order


@pytest.fixture
def b2b_order(session, catalog, warehouses):
    b2b = B2BSalesOrder(order_no='SO-0001', client_name='Sahyadri Solar Traders',
                        status=B2BSalesOrder.STATUS_CONFIRMED, planned_warehouse_id=warehouses['main'].id)
    b2b.items.append(B2BSalesOrderItem(product_id=catalog['cable'].id, quantity=20, shipped_quantity=0, rate=55))
    session.add(b2b)
    session.commit()
    return b2b
