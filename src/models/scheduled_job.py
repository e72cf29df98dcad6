import uuid
from datetime import datetime
from src.models import db

# Action types
ACTION_LOOKUP_IDENTITY = 'lookupIdentity'
ACTION_SEND_MESSAGE = 'sendMessage'
ACTION_ADD_FRIEND = 'addFriend'
ACTION_CHECK_FRIEND = 'checkFriend'

ACTION_TYPES = (ACTION_LOOKUP_IDENTITY, ACTION_SEND_MESSAGE, ACTION_ADD_FRIEND, ACTION_CHECK_FRIEND)


class ScheduledJob(db.Model):
    __tablename__ = 'scheduled_jobs'
    
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(255), nullable=False)
    action_type = db.Column(db.String(32), nullable=False)
    account_ref = db.Column(db.String(36), nullable=False, index=True)
    account_kind = db.Column(db.String(16), nullable=False, default='legacy')  # legacy, session
    
    # Config
    actions_per_hour = db.Column(db.Integer, nullable=False)
    message_template = db.Column(db.Text, nullable=True)
    
    # Statistics. completed/failed are only ever incremented by the task executor.
    total_count = db.Column(db.Integer, nullable=False, default=0)
    completed_count = db.Column(db.Integer, nullable=False, default=0)
    failed_count = db.Column(db.Integer, nullable=False, default=0)
    
    created_by = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    estimated_completion_time = db.Column(db.DateTime, nullable=True)
    is_manual_action = db.Column(db.Boolean, nullable=False, default=True)
    version = db.Column(db.Integer, nullable=False, default=1)
    
    # Relationships
    tasks = db.relationship(
        'ScheduledTask', backref='job', lazy=True,
        order_by='ScheduledTask.position', cascade='all, delete-orphan'
    )
    creator = db.relationship('User', lazy=True)
    
    __table_args__ = (
        db.Index('ix_scheduled_jobs_account_action', 'account_ref', 'action_type'),
    )
    __mapper_args__ = {'version_id_col': version}
    
    @property
    def statistics(self):
        return {
            'total': self.total_count or 0,
            'completed': self.completed_count or 0,
            'failed': self.failed_count or 0
        }
    
    @property
    def in_flight(self):
        return (self.completed_count or 0) + (self.failed_count or 0) < (self.total_count or 0)
    
    @classmethod
    def in_flight_clause(cls):
        return (cls.completed_count + cls.failed_count) < cls.total_count
    
    def append_slots(self, slots):
        """Append scheduled slots as tasks, keeping total_count equal to len(tasks)."""
        offset = len(self.tasks)
        for index, slot in enumerate(slots):
            recipient = slot.recipient
            self.tasks.append(ScheduledTask(
                position=offset + index,
                recipient_id=recipient.id,
                recipient_name=recipient.name,
                recipient_phone=recipient.phone,
                recipient_external_id=recipient.external_id,
                recipient_kind=recipient.kind,
                scheduled_for=slot.scheduled_for,
                completed=False
            ))
        self.total_count = (self.total_count or 0) + len(slots)
    
    def to_dict(self, include_tasks=False):
        data = {
            'id': str(self.id),
            'name': self.name,
            'action_type': self.action_type,
            'account_ref': self.account_ref,
            'account_kind': self.account_kind,
            'config': {
                'actions_per_hour': self.actions_per_hour,
                'message_template': self.message_template
            },
            'statistics': self.statistics,
            'in_flight': self.in_flight,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'estimated_completion_time': self.estimated_completion_time.isoformat() if self.estimated_completion_time else None,
            'is_manual_action': self.is_manual_action
        }
        if include_tasks:
            data['tasks'] = [task.to_dict() for task in self.tasks]
        return data
    
    def __repr__(self):
        return f'<ScheduledJob {self.name} ({self.action_type})>'


class ScheduledTask(db.Model):
    __tablename__ = 'scheduled_tasks'
    
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    job_id = db.Column(db.String(36), db.ForeignKey('scheduled_jobs.id', ondelete='CASCADE'), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    
    # Recipient snapshot taken at scheduling time
    recipient_id = db.Column(db.String(36), nullable=True)
    recipient_name = db.Column(db.String(255), nullable=False, default='')
    recipient_phone = db.Column(db.String(50), nullable=True, index=True)
    recipient_external_id = db.Column(db.String(255), nullable=True)
    recipient_kind = db.Column(db.String(50), nullable=True)
    
    scheduled_for = db.Column(db.DateTime, nullable=False, index=True)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    result_id = db.Column(db.String(36), db.ForeignKey('task_results.id'), nullable=True)
    
    # Relationships
    result = db.relationship('TaskResult', lazy=True, foreign_keys=[result_id])
    
    @property
    def recipient(self):
        return {
            'id': self.recipient_id,
            'name': self.recipient_name,
            'phone': self.recipient_phone,
            'external_id': self.recipient_external_id,
            'kind': self.recipient_kind
        }
    
    def to_dict(self):
        return {
            'id': str(self.id),
            'job_id': str(self.job_id),
            'position': self.position,
            'recipient': self.recipient,
            'scheduled_for': self.scheduled_for.isoformat() if self.scheduled_for else None,
            'completed': self.completed,
            'result_id': self.result_id,
            'result_status': self.result.status if self.result else None
        }
    
    def __repr__(self):
        return f'<ScheduledTask {self.position} of {self.job_id}>'
