"""Sync status snapshot and publisher."""
from __future__ import annotations

from propertyhub_sync.status.publisher import StatusCallback, StatusPublisher, SyncStatus

__all__ = ["StatusCallback", "StatusPublisher", "SyncStatus"]
