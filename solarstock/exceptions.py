class StockError(Exception):
    """Base class for inventory-core errors"""
    def __init__(self, message, code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['code'] = self.code
        rv['error'] = type(self).__name__
        rv['success'] = False
        return rv


class NotFound(StockError):
    """A referenced product, warehouse, order, document or serial is missing"""
    def __init__(self, message="Not found", payload=None):
        super().__init__(message, code=404, payload=payload)


class ValidationError(StockError):
    """Bad input, wrong status for a transition, ceiling exceeded"""
    def __init__(self, message="Invalid data", payload=None, code=400):
        super().__init__(message, code=code, payload=payload)


class UnauthorizedManager(ValidationError):
    """Acting user is not a registered manager of the warehouse"""
    def __init__(self, message="You are not a manager of this warehouse", payload=None):
        super().__init__(message, payload=payload, code=403)


class ConflictError(StockError):
    """Insufficient quantity, serial not AVAILABLE, serial already exists"""
    def __init__(self, message="Conflict", payload=None):
        super().__init__(message, code=409, payload=payload)


class InvariantViolation(StockError):
    """Internal consistency failure; never raised by a correct caller"""
    def __init__(self, message="Invariant violated", payload=None):
        super().__init__(message, code=500, payload=payload)
