import uuid
from datetime import datetime
from src.models import db
from sqlalchemy import JSON

ROLE_ADMIN = 'Admin'
ROLE_SALE = 'Sale'  # restricted: only sees accounts delegated to them


class User(db.Model):
    __tablename__ = 'users'
    
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    api_key = db.Column(db.String(255), nullable=True, unique=True)
    roles = db.Column(JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    
    def has_role(self, role: str) -> bool:
        return role in (self.roles or [])
    
    @property
    def can_schedule(self):
        """Admins and sales staff may create, extend and cancel schedules."""
        return self.has_role(ROLE_ADMIN) or self.has_role(ROLE_SALE)
    
    @property
    def is_restricted(self):
        return self.has_role(ROLE_SALE) and not self.has_role(ROLE_ADMIN)
    
    def to_dict(self):
        return {
            'id': str(self.id),
            'name': self.name,
            'email': self.email,
            'roles': list(self.roles or []),
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
    
    def __repr__(self):
        return f'<User {self.name}>'
