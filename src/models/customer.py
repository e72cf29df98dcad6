import uuid
from datetime import datetime
from src.models import db


class Customer(db.Model):
    __tablename__ = 'customers'
    
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(255), nullable=False, default='')
    phone = db.Column(db.String(50), nullable=True, index=True)
    kind = db.Column(db.String(50), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    
    # Relationships
    identities = db.relationship('CustomerIdentity', backref='customer', lazy=True, cascade='all, delete-orphan')
    
    def identity_for(self, account_ref: str) -> str:
        """Return the external identity handle this customer has on an account, or ''."""
        for identity in self.identities:
            if identity.account_ref == account_ref and identity.uid:
                return identity.uid
        return ''
    
    def to_dict(self):
        return {
            'id': str(self.id),
            'name': self.name,
            'phone': self.phone,
            'kind': self.kind,
            'identities': [identity.to_dict() for identity in self.identities],
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
    
    def __repr__(self):
        return f'<Customer {self.name} ({self.phone})>'


class CustomerIdentity(db.Model):
    """External identity handle of a customer as seen from one sending account."""
    __tablename__ = 'customer_identities'
    
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    customer_id = db.Column(db.String(36), db.ForeignKey('customers.id'), nullable=False, index=True)
    account_ref = db.Column(db.String(36), nullable=False, index=True)
    uid = db.Column(db.String(255), nullable=True)
    is_friend = db.Column(db.Boolean, nullable=False, default=False)
    friend_requested = db.Column(db.Boolean, nullable=False, default=False)
    
    __table_args__ = (
        db.UniqueConstraint('customer_id', 'account_ref', name='uq_customer_identity_account'),
    )
    
    def to_dict(self):
        return {
            'account_ref': self.account_ref,
            'uid': self.uid,
            'is_friend': self.is_friend,
            'friend_requested': self.friend_requested
        }
    
    def __repr__(self):
        return f'<CustomerIdentity {self.customer_id}@{self.account_ref}>'
