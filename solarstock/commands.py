import click
import random
from flask.cli import with_appcontext
from solarstock.extensions import db
from solarstock.models import (
    User, ProductType, Product, Warehouse, Stock, StockSerial, InventoryLedger,
    PurchaseOrder, PurchaseOrderItem, Order, OrderBomLine, B2BSalesOrder, B2BSalesOrderItem,
)
from solarstock.constants import TrackingType, DeliveryStatus
from solarstock.services import LedgerService, OpeningBalanceService
from solarstock.services.opening_service import parse_csv
from solarstock.utils.fake_gen import fake
from solarstock.utils.numbering import generate_document_no


@click.command('status')
@with_appcontext
def status():
    """Row counts of the stock tables."""
    click.echo(click.style('Solar stock database status:', fg='cyan', bold=True))

    counts = [
        ('Users', User),
        ('Products', Product),
        ('Warehouses', Warehouse),
        ('Stock rows', Stock),
        ('Serial units', StockSerial),
        ('Ledger entries', InventoryLedger),
    ]
    for label, model in counts:
        click.echo(f" - {label}: \t{db.session.query(model).count()}")

    if db.session.query(Product).count() > 0:
        click.echo(click.style('Database reachable, data present.', fg='green'))
    else:
        click.echo(click.style('Database is empty; run "flask forge" to seed demo data.', fg='yellow'))


@click.command('reconcile')
@click.pass_context
@with_appcontext
def reconcile(ctx):
    """Check the ledger against the stock rows; exits 1 on any discrepancy."""
    discrepancies = LedgerService(db.session).reconcile()
    if not discrepancies:
        click.echo(click.style('Ledger and stock agree.', fg='green'))
        return

    click.echo(click.style(f'{len(discrepancies)} discrepancies found:', fg='red', bold=True))
    for d in discrepancies:
        click.echo(f" - [{d['check']}] stock #{d['stock_id']} (product {d['product_id']}, "
                   f"warehouse {d['warehouse_id']}): expected {d['expected']}, actual {d['actual']}")
    ctx.exit(1)


@click.command('load-opening')
@click.option('--file-lot', type=click.Path(exists=True, dir_okay=False), help='CSV of LOT opening quantities')
@click.option('--file-serial', type=click.Path(exists=True, dir_okay=False), help='CSV of serial opening units')
@click.option('--dry-run', is_flag=True, help='Validate every row without writing')
@click.pass_context
@with_appcontext
def load_opening(ctx, file_lot, file_serial, dry_run):
    """
    Load go-live opening balances.
    Each row loads on its own; failed rows are listed and the rest still load.
    """
    if not file_lot and not file_serial:
        raise click.UsageError('Give --file-lot and/or --file-serial')

    service = OpeningBalanceService(db.session)
    failed = 0
    for path, loader, label in ((file_lot, service.load_lot_rows, 'LOT'),
                                (file_serial, service.load_serial_rows, 'SERIAL')):
        if not path:
            continue
        with open(path, encoding='utf-8-sig') as fh:
            rows = parse_csv(fh.read())
        result = loader(rows, dry_run=dry_run)
        failed += result['failed']

        verb = 'valid' if dry_run else 'loaded'
        colour = 'green' if not result['failed'] else 'yellow'
        click.echo(click.style(
            f"{label}: {result['total']} rows, {result['created']} {verb}, {result['failed']} failed",
            fg=colour))
        for error in result['errors']:
            click.echo(f"   row {error['row']} [{error['product_name']}"
                       f"{' / ' + error['serial_number'] if error['serial_number'] else ''}]: {error['error']}")

    if failed:
        ctx.exit(1)


@click.command('forge')
@click.option('--scale', default=1, help='Data volume multiplier (default 1)')
@with_appcontext
def forge(scale):
    """
    Rebuild the database with demo data.
    Warning: this drops every existing table!
    """
    click.echo(click.style(f'Seeding solar stock demo data (scale {scale}x)...', fg='cyan', bold=True))

    db.drop_all()
    db.create_all()

    click.echo('Creating users and warehouses...')
    users, warehouses = init_sites(scale)

    click.echo('Registering product catalog...')
    products = init_catalog(scale)

    click.echo('Loading opening stock...')
    init_opening_stock(products, warehouses, users[0])

    click.echo('Raising purchase and sales orders...')
    init_orders(products, warehouses, scale)

    click.echo(click.style('Demo data ready.', fg='green', bold=True))
    click.echo(f"Admin user: admin@solarstock.local (id {users[0].id}); send it as X-User-Id")


def init_sites(scale=1):
    """Users, warehouses and their managers"""
    admin = User(email='admin@solarstock.local', name='Stock Admin')
    db.session.add(admin)
    users = [admin]
    for i in range(5 * scale):
        user = User(email=f"storekeeper{i}@solarstock.local", name=fake.name())
        db.session.add(user)
        users.append(user)

    warehouses = []
    names = set()
    while len(warehouses) < 3 * scale:
        name = fake.solar_warehouse_name()
        if name in names:
            continue
        names.add(name)
        warehouse = Warehouse(name=name, address=fake.address())
        warehouse.managers = [admin] + random.sample(users[1:], k=min(2, len(users) - 1))
        db.session.add(warehouse)
        warehouses.append(warehouse)
    db.session.commit()
    click.echo(f'  created {len(users)} users, {len(warehouses)} warehouses')
    return users, warehouses


def init_catalog(scale=1):
    products = []
    seen = set()
    for type_name in fake.solar_product_types():
        product_type = ProductType(name=type_name)
        db.session.add(product_type)
        serialized = fake.solar_is_serialized(type_name)
        for _ in range(2 * scale):
            name = fake.solar_product_name(type_name)
            if name in seen:
                continue
            seen.add(name)
            product = Product(
                product_name=name,
                product_type=product_type,
                hsn_ssn_code=fake.solar_hsn(type_name),
                tracking_type=TrackingType.SERIAL if serialized else TrackingType.LOT,
                serial_required=serialized,
                gst_percent=random.choice([5, 12, 18]),
                min_stock_quantity=random.choice([0, 5, 10]),
            )
            db.session.add(product)
            products.append(product)
    db.session.commit()
    click.echo(f'  registered {len(products)} products')
    return products


def init_opening_stock(products, warehouses, admin):
    """Opening balances go through the cutover loader, so the ledger starts consistent"""
    lot_rows, serial_rows = [], []
    for warehouse in warehouses:
        for product in products:
            rate = str(random.randint(500, 25000))
            if product.is_serialized:
                for _ in range(random.randint(2, 6)):
                    serial_rows.append({
                        'product_name': product.product_name,
                        'warehouse_name': warehouse.name,
                        'serial_number': fake.solar_serial(product.product_type.name[:3].upper()),
                        'performed_by_email': admin.email,
                        'rate': rate,
                    })
            else:
                lot_rows.append({
                    'product_name': product.product_name,
                    'warehouse_name': warehouse.name,
                    'quantity': str(random.randint(20, 200)),
                    'performed_by_email': admin.email,
                    'rate': rate,
                })

    service = OpeningBalanceService(db.session)
    for label, result in (('lot', service.load_lot_rows(lot_rows)),
                          ('serial', service.load_serial_rows(serial_rows))):
        click.echo(f"  {label}: {result['created']} rows loaded, {result['failed']} failed")


def init_orders(products, warehouses, scale=1):
    for _ in range(2 * scale):
        po = PurchaseOrder(
            po_number=generate_document_no('PO'),
            supplier_name=fake.company(),
            warehouse_id=random.choice(warehouses).id,
            status=PurchaseOrder.STATUS_APPROVED,
        )
        for product in random.sample(products, k=min(3, len(products))):
            po.items.append(PurchaseOrderItem(
                product_id=product.id,
                quantity=random.randint(5, 50),
                rate=random.randint(500, 25000),
                gst_percent=product.gst_percent,
            ))
        db.session.add(po)

    for _ in range(3 * scale):
        order = Order(
            order_number=generate_document_no('ORD'),
            customer_name=fake.name(),
            status=Order.STATUS_CONFIRMED,
            planned_warehouse_id=random.choice(warehouses).id,
            delivery_status=DeliveryStatus.PENDING,
        )
        for product in random.sample(products, k=min(4, len(products))):
            planned = random.randint(1, 10)
            order.bom_lines.append(OrderBomLine(
                product_id=product.id, planned_quantity=planned, shipped_quantity=0, pending_quantity=planned))
        db.session.add(order)

    for _ in range(2 * scale):
        b2b = B2BSalesOrder(
            order_no=generate_document_no('SO'),
            client_name=fake.company(),
            status=B2BSalesOrder.STATUS_CONFIRMED,
            planned_warehouse_id=random.choice(warehouses).id,
        )
        for product in random.sample(products, k=min(3, len(products))):
            b2b.items.append(B2BSalesOrderItem(
                product_id=product.id, quantity=random.randint(1, 20), shipped_quantity=0,
                rate=random.randint(500, 25000)))
        db.session.add(b2b)

    db.session.commit()
