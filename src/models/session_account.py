import uuid
from datetime import datetime
from src.models import db


class SessionAccount(db.Model):
    """Session-based sending account. It keeps no quota state of its own."""
    __tablename__ = 'session_accounts'
    
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account_key = db.Column(db.String(255), nullable=False, unique=True)
    display_name = db.Column(db.String(255), nullable=False, default='')
    avatar = db.Column(db.String(512), nullable=True)
    status = db.Column(db.String(50), nullable=False, default='active', index=True)  # active, disconnected, blocked
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    
    def to_dict(self):
        return {
            'id': str(self.id),
            'account_key': self.account_key,
            'display_name': self.display_name,
            'avatar': self.avatar,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
    
    def __repr__(self):
        return f'<SessionAccount {self.account_key}>'
