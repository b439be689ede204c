"""
Core business logic - independent of the HTTP layer.
Used by the web API, the reminder scheduler and scripts.
"""

# Database (SQLAlchemy)
from .database import get_connection, get_transaction, get_engine, close_engine, is_configured

# Habit store
from .habits import Habit, HabitStore, Recipient, SqlHabitStore

__all__ = [
    "get_connection",
    "get_transaction",
    "get_engine",
    "close_engine",
    "is_configured",
    "Habit",
    "HabitStore",
    "Recipient",
    "SqlHabitStore",
]
