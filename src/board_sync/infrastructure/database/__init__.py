"""Database infrastructure package."""

from .client import DatabaseClient, db_client
from .models import ActiveDeviceDB, Base, CaseDB, CaseHistoryDB

__all__ = [
    "db_client",
    "DatabaseClient",
    "Base",
    "CaseDB",
    "CaseHistoryDB",
    "ActiveDeviceDB",
]
