import uuid
from datetime import datetime
from src.models import db


class AccountPermission(db.Model):
    """Delegates a sending account to a restricted-role user."""
    __tablename__ = 'account_permissions'
    
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account_ref = db.Column(db.String(36), nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    
    __table_args__ = (
        db.UniqueConstraint('account_ref', 'user_id', name='uq_account_permission'),
    )
    
    def __repr__(self):
        return f'<AccountPermission {self.user_id} -> {self.account_ref}>'


class AccountJobRef(db.Model):
    """An account's list of active scheduled jobs."""
    __tablename__ = 'account_job_refs'
    
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account_ref = db.Column(db.String(36), nullable=False, index=True)
    job_id = db.Column(db.String(36), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    
    __table_args__ = (
        db.UniqueConstraint('account_ref', 'job_id', name='uq_account_job_ref'),
    )
    
    @classmethod
    def job_ids_for(cls, account_ref: str):
        return [ref.job_id for ref in cls.query.filter_by(account_ref=account_ref).all()]
    
    def __repr__(self):
        return f'<AccountJobRef {self.account_ref} -> {self.job_id}>'
