from flask_login import UserMixin
from solarstock.extensions import db
from .base import BaseModel


class User(UserMixin, BaseModel):
    """User (identity is owned by the upstream auth service)"""
    __tablename__ = 'auth_users'
    email = db.Column(db.String(128), unique=True, index=True)
    name = db.Column(db.String(128))
    is_active_user = db.Column(db.Boolean, default=True)

    @property
    def is_active(self):
        return bool(self.is_active_user)

    def __repr__(self):
        return f'<User {self.email}>'
