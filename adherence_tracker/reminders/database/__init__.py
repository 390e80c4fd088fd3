from .connection import get_connection, init_database
from .prescription_repository import PrescriptionRepository
from .reminder_repository import ReminderRepository

__all__ = ["get_connection", "init_database", "PrescriptionRepository", "ReminderRepository"]
