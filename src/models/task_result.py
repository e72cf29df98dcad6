import uuid
from datetime import datetime
from src.models import db


class TaskResult(db.Model):
    """Outcome of one executed task, written back by the task executor."""
    __tablename__ = 'task_results'
    
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    job_id = db.Column(db.String(36), nullable=False, index=True)  # kept after the job is cancelled
    task_id = db.Column(db.String(36), nullable=False, index=True)
    action_type = db.Column(db.String(32), nullable=False)
    status = db.Column(db.Boolean, nullable=False, default=False)
    message = db.Column(db.Text, nullable=True)
    error_code = db.Column(db.Integer, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    
    def to_dict(self):
        return {
            'id': str(self.id),
            'job_id': self.job_id,
            'task_id': self.task_id,
            'action_type': self.action_type,
            'status': self.status,
            'message': self.message,
            'error_code': self.error_code,
            'error_message': self.error_message,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
    
    def __repr__(self):
        return f'<TaskResult {self.task_id} status={self.status}>'
