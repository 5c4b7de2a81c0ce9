"""
Database models - import all models here so Alembic can discover them.
"""
from storesync.models.store import Store
from storesync.models.order import Order
from storesync.models.log_entry import LogEntry
from storesync.models.integration_setting import IntegrationSetting

__all__ = [
    "Store",
    "Order",
    "LogEntry",
    "IntegrationSetting",
]
