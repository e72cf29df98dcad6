# Import db from extensions to use the same instance
from src.extensions import db

# Import all models to ensure they are registered with SQLAlchemy
from src.models.user import User
from src.models.messaging_account import MessagingAccount
from src.models.session_account import SessionAccount
from src.models.account_link import AccountPermission, AccountJobRef
from src.models.customer import Customer, CustomerIdentity
from src.models.task_result import TaskResult
from src.models.scheduled_job import ScheduledJob, ScheduledTask

__all__ = [
    'db', 'User', 'MessagingAccount', 'SessionAccount', 'AccountPermission', 'AccountJobRef',
    'Customer', 'CustomerIdentity', 'TaskResult', 'ScheduledJob', 'ScheduledTask'
]
