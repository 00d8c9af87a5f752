"""Vocabularies shared by the stock models and services."""


class TrackingType:
    SERIAL = 'SERIAL'
    LOT = 'LOT'

    ALL = (SERIAL, LOT)


class SerialStatus:
    AVAILABLE = 'AVAILABLE'
    ISSUED = 'ISSUED'
    BLOCKED = 'BLOCKED'  # damaged / lost, terminal


class MovementType:
    IN = 'IN'
    OUT = 'OUT'

    ALL = (IN, OUT)


class TransactionType:
    """Typed source of a ledger entry (and its reversal counterpart)"""
    PO_INWARD = 'PO_INWARD'
    DELIVERY_CHALLAN_OUT = 'DELIVERY_CHALLAN_OUT'
    DELIVERY_CHALLAN_CANCEL_IN = 'DELIVERY_CHALLAN_CANCEL_IN'
    B2B_SHIPMENT_OUT = 'B2B_SHIPMENT_OUT'
    B2B_SHIPMENT_CANCEL_IN = 'B2B_SHIPMENT_CANCEL_IN'
    TRANSFER_OUT = 'TRANSFER_OUT'
    TRANSFER_IN = 'TRANSFER_IN'
    STOCK_ADJUSTMENT = 'STOCK_ADJUSTMENT'
    CUTOVER_OPENING = 'CUTOVER_OPENING'

    ALL = (
        PO_INWARD,
        DELIVERY_CHALLAN_OUT, DELIVERY_CHALLAN_CANCEL_IN,
        B2B_SHIPMENT_OUT, B2B_SHIPMENT_CANCEL_IN,
        TRANSFER_OUT, TRANSFER_IN,
        STOCK_ADJUSTMENT,
        CUTOVER_OPENING,
    )


class OutboundKind:
    CHALLAN = 'CHALLAN'
    B2B_SHIPMENT = 'B2B_SHIPMENT'

    ALL = (CHALLAN, B2B_SHIPMENT)


class DeliveryStatus:
    PENDING = 'pending'
    PARTIAL = 'partial'
    COMPLETE = 'complete'


def normalize_tracking(tracking_type, serial_required):
    """
    Reconcile a product's two tracking flags.
    SERIAL wins: either a SERIAL tracking type or serial_required=True makes the
    product serial-tracked. Returns (tracking_type, serial_required).
    """
    declared = (tracking_type or TrackingType.LOT).upper()
    is_serial = declared == TrackingType.SERIAL or bool(serial_required)
    if is_serial:
        return TrackingType.SERIAL, True
    return declared, False
