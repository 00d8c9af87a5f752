from datetime import datetime, date, timezone
from decimal import Decimal
from solarstock.extensions import db


def utcnow():
    """Naive UTC timestamp, matching the DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseModel(db.Model):
    """
    Base model for every table.
    Provides: integer primary key, created/updated timestamps, soft-delete flag
    and a to_dict() serializer.
    """
    __abstract__ = True

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Soft-delete marker
    is_deleted = db.Column(db.Boolean, default=False, nullable=False, index=True)

    def soft_delete(self):
        """Mark as deleted; the caller's unit of work persists it"""
        self.is_deleted = True

    def to_dict(self):
        """
        Serialize the row's columns for JSON responses.
        Columns starting with '_' are skipped.
        """
        data = {}
        for c in self.__table__.columns:
            if c.name.startswith('_'):
                continue
            val = getattr(self, c.name)
            if isinstance(val, (datetime, date)):
                data[c.name] = val.isoformat()
            elif isinstance(val, Decimal):
                data[c.name] = str(val)
            else:
                data[c.name] = val
        return data
