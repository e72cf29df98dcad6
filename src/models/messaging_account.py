import uuid
from datetime import datetime
from src.models import db


class MessagingAccount(db.Model):
    """Legacy sending account that carries its own rolling quota counters."""
    __tablename__ = 'messaging_accounts'
    
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    uid = db.Column(db.String(255), nullable=False, unique=True)  # Provider-side own id
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(50), nullable=True)
    avatar = db.Column(db.String(512), nullable=True)
    
    # Quota ceilings
    rate_limit_per_hour = db.Column(db.Integer, nullable=False, default=30)
    rate_limit_per_day = db.Column(db.Integer, nullable=False, default=200)
    
    # Rolling window state, written back after every schedule computation
    actions_used_this_hour = db.Column(db.Integer, nullable=False, default=0)
    actions_used_this_day = db.Column(db.Integer, nullable=False, default=0)
    rate_limit_hour_start = db.Column(db.DateTime, nullable=True)
    rate_limit_day_start = db.Column(db.DateTime, nullable=True)
    
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    
    __mapper_args__ = {'version_id_col': version}
    
    def to_dict(self):
        return {
            'id': str(self.id),
            'uid': self.uid,
            'name': self.name,
            'phone': self.phone,
            'avatar': self.avatar,
            'rate_limit_per_hour': self.rate_limit_per_hour,
            'rate_limit_per_day': self.rate_limit_per_day,
            'actions_used_this_hour': self.actions_used_this_hour,
            'actions_used_this_day': self.actions_used_this_day,
            'rate_limit_hour_start': self.rate_limit_hour_start.isoformat() if self.rate_limit_hour_start else None,
            'rate_limit_day_start': self.rate_limit_day_start.isoformat() if self.rate_limit_day_start else None
        }
    
    def __repr__(self):
        return f'<MessagingAccount {self.name} ({self.uid})>'
