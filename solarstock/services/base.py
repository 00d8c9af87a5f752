from solarstock.exceptions import NotFound
from solarstock.utils.pagination import paginate
from .stock_service import StockService
from .serial_service import SerialRegistry
from .ledger_service import LedgerService


class WorkflowService:
    """
    Shared plumbing for document workflows.

    session     transaction-scoped SQLAlchemy session
    autocommit  True: each call commits (or rolls back) its own transaction.
                False: the caller owns the transaction and decides.
    """

    def __init__(self, session, autocommit=True):
        self.session = session
        self.autocommit = autocommit
        self.stock = StockService(session)
        self.serials = SerialRegistry(session)
        self.ledger = LedgerService(session)

    def _get(self, model, object_id, label=None):
        obj = self.session.get(model, object_id) if object_id is not None else None
        if obj is None or getattr(obj, 'is_deleted', False):
            raise NotFound(f"{label or model.__name__} {object_id} not found")
        return obj

    def _lock(self, model, object_id, label=None):
        """Load a header row FOR UPDATE so concurrent transitions serialize on it"""
        obj = None
        if object_id is not None:
            obj = (self.session.query(model)
                   .filter_by(id=object_id, is_deleted=False)
                   .with_for_update().populate_existing()
                   .first())
        if obj is None:
            raise NotFound(f"{label or model.__name__} {object_id} not found")
        return obj

    def _list(self, model, filters, fields, page=1, per_page=20):
        """Paged listing of live headers, newest first, filtered on the named columns"""
        filters = filters or {}
        query = self.session.query(model).filter(model.is_deleted.is_(False))
        for field in fields:
            value = filters.get(field)
            if value not in (None, ''):
                query = query.filter(getattr(model, field) == value)
        return paginate(query.order_by(model.id.desc()), page, per_page)
