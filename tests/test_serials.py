import pytest

from solarstock.constants import SerialStatus, TransactionType
from solarstock.exceptions import ConflictError, NotFound, ValidationError
from solarstock.services import SerialRegistry, StockService
from solarstock.services.serial_service import clean_serial_list, REQUIRED_MESSAGE


def test_validate_serial_available(session, catalog, warehouses, stock_in):
    stock_in(catalog['panel'], warehouses['main'], serials=['HX-001'])
    registry = SerialRegistry(session)

    assert registry.validate_serial_available(' HX-001 ', catalog['panel'].id, warehouses['main'].id) == {
        'valid': True}

    elsewhere = registry.validate_serial_available('HX-001', catalog['panel'].id, warehouses['site'].id)
    assert elsewhere['valid'] is False
    assert elsewhere['message'] == (
        "Serial 'HX-001' is not available for Helios 540W Mono PERC at this warehouse")


def test_validate_serial_available_requires_inputs(session):
    result = SerialRegistry(session).validate_serial_available('', 1, 1)
    assert result == {'valid': False, 'message': REQUIRED_MESSAGE}


def test_validate_serial_not_exists(session, catalog, warehouses, stock_in):
    stock_in(catalog['panel'], warehouses['main'], serials=['HX-002'])
    registry = SerialRegistry(session)

    assert registry.validate_serial_not_exists('HX-999', catalog['panel'].id, warehouses['main'].id) == {
        'exists': False}
    taken = registry.validate_serial_not_exists('HX-002', catalog['panel'].id, warehouses['main'].id)
    assert taken['exists'] is True
    assert 'already exists' in taken['message']
    assert registry.validate_serial_not_exists(None, catalog['panel'].id, warehouses['main'].id) == {
        'exists': True, 'message': REQUIRED_MESSAGE}


def test_serials_unique_per_product_type(session, catalog, warehouses, stock_in):
    stock_in(catalog['panel'], warehouses['main'], serials=['SHARED-1'])
    registry = SerialRegistry(session)
    stocks = StockService(session)

    # Same type, different product: rejected
    alt_stock = stocks.get_or_create_stock(catalog['panel_alt'].id, warehouses['site'].id)
    with pytest.raises(ConflictError):
        registry.register('SHARED-1', catalog['panel_alt'], alt_stock, TransactionType.CUTOVER_OPENING, 0)

    # Different type: allowed
    inverter_stock = stocks.get_or_create_stock(catalog['inverter'].id, warehouses['main'].id)
    unit = registry.register('SHARED-1', catalog['inverter'], inverter_stock, TransactionType.CUTOVER_OPENING, 0)
    assert unit.status == SerialStatus.AVAILABLE
    assert unit.product_type_id == catalog['inverter'].product_type_id


def test_serial_lifecycle(session, catalog, warehouses, stock_in):
    stock = stock_in(catalog['panel'], warehouses['main'], serials=['HX-010'])
    registry = SerialRegistry(session)
    unit = registry.lock_available('HX-010', catalog['panel'].id, warehouses['main'].id)

    registry.issue(unit, 'CHALLAN', 'CH-1', 1)
    assert unit.status == SerialStatus.ISSUED
    assert unit.reference_number == 'CH-1'
    with pytest.raises(ConflictError):
        registry.issue(unit, 'CHALLAN', 'CH-2', 2)

    registry.restore(unit, stock, TransactionType.DELIVERY_CHALLAN_CANCEL_IN, 1)
    assert unit.status == SerialStatus.AVAILABLE
    assert unit.reference_number is None

    registry.block(unit, TransactionType.STOCK_ADJUSTMENT, 5)
    assert unit.status == SerialStatus.BLOCKED
    with pytest.raises(ConflictError):
        registry.restore(unit, stock, TransactionType.DELIVERY_CHALLAN_CANCEL_IN, 1)


def test_lock_available_errors(session, catalog, warehouses, stock_in):
    stock_in(catalog['panel'], warehouses['main'], serials=['HX-020'])
    registry = SerialRegistry(session)

    with pytest.raises(NotFound):
        registry.lock_available('NOPE', catalog['panel'].id, warehouses['main'].id)
    with pytest.raises(ConflictError):
        registry.lock_available('HX-020', catalog['panel'].id, warehouses['site'].id)


def test_available_serials_lists_only_available(session, catalog, warehouses, stock_in):
    stock_in(catalog['panel'], warehouses['main'], serials=['HX-B', 'HX-A', 'HX-C'])
    registry = SerialRegistry(session)
    unit = registry.lock_available('HX-C', catalog['panel'].id, warehouses['main'].id)
    registry.block(unit, TransactionType.STOCK_ADJUSTMENT, 1)
    session.commit()

    listed = registry.available_serials(catalog['panel'].id, warehouses['main'].id)
    assert [u.serial_number for u in listed] == ['HX-A', 'HX-B']


def test_clean_serial_list():
    assert clean_serial_list([' A ', 'B']) == ['A', 'B']
    with pytest.raises(ValidationError):
        clean_serial_list(['A', ' A'])
    with pytest.raises(ValidationError):
        clean_serial_list(['A', '  '])
