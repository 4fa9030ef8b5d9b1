"""
Working-set store base.

A store holds one user's rows for the viewed date and the sync flags a client
renders: ``loading``, ``error``, ``sync_status`` and ``last_synced``.
"""
import logging
import threading
from typing import Optional, Dict, Any

from .offline import Connectivity
from .remote import RemoteStore, RemoteError
from .schema import SyncStatus, utc_now

logger = logging.getLogger(__name__)


class WorkingSetStore:
    """Sync bookkeeping shared by the habit, task and note stores."""

    def __init__(self, remote: RemoteStore, user_id: str,
                 connectivity: Optional[Connectivity] = None, events=None):
        self.remote = remote
        self.user_id = user_id
        self.connectivity = connectivity
        self.events = events

        self.date: Optional[str] = None
        self.loading = False
        self.error: Optional[str] = None
        self.sync_status = SyncStatus.IDLE
        self.last_synced: Optional[str] = None
        # Guards the working set only; never held across a remote call
        self._lock = threading.Lock()

    def _online(self) -> bool:
        return self.connectivity is None or self.connectivity.is_online(self.user_id)

    def _require_online(self, action: str) -> None:
        if self.connectivity:
            self.connectivity.require_online(action, self.user_id)

    def _emit(self, event_type: str, **kwargs) -> None:
        if self.events:
            self.events.emit(event_type, user_id=self.user_id, **kwargs)

    def _begin(self) -> None:
        self.sync_status = SyncStatus.SYNCING

    def _synced(self) -> None:
        self.sync_status = SyncStatus.SYNCED
        self.last_synced = utc_now()
        self.error = None

    def _failed(self, action: str, error: RemoteError) -> None:
        self.sync_status = SyncStatus.ERROR
        self.error = str(error)
        logger.error(f"Failed to {action} for user {self.user_id}: {error}")
        self._emit("sync_error", action=action)

    def _loaded(self) -> None:
        self.loading = False
        self.last_synced = utc_now()

    def status_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "loading": self.loading,
            "error": self.error,
            "sync_status": self.sync_status.value,
            "last_synced": self.last_synced,
        }
