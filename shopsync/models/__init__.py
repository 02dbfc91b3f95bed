"""Database models — re-exports all models.

Import from here:  from shopsync.models import InventoryItem, SyncLog, ...
Or from submodules: from shopsync.models.inventory import InventoryItem
"""

from .base import Base  # noqa: F401

# Local inventory cache
from .inventory import InventoryItem  # noqa: F401

# Sync bookkeeping
from .sync import PendingUpdate, SyncConfig, SyncLog  # noqa: F401

# CSV import ledger
from .imports import ImportBatch  # noqa: F401

# Keystone call audit log
from .api_log import KeystoneApiLog  # noqa: F401
