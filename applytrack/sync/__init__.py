"""Offline-first action sync engine.

Queues user mutations locally and delivers them to the remote service
whenever the application is online, with priority ordering, bounded
batches, retries with exponential backoff and durable storage.

Usage:
    from applytrack.sync import ActionDraft, create_action_queue

    queue = create_action_queue(config.sync)
    await queue.start()
    action_id = queue.enqueue(ActionDraft(
        kind="ADD_APPLICATION",
        payload={"company": "Acme"},
        endpoint="/api/applications",
        method="POST",
    ))
"""

from applytrack.sync.actions import (
    add_application_action,
    delete_application_action,
    update_application_action,
)
from applytrack.sync.connectivity import ConnectivityMonitor, ConnectivityState
from applytrack.sync.dispatcher import Dispatcher
from applytrack.sync.events import Subscribers
from applytrack.sync.models import (
    ActionDraft,
    ActionPriority,
    HttpMethod,
    OfflineAction,
    QueueStatus,
    SyncResult,
)
from applytrack.sync.persistence import (
    JsonFilePersistence,
    MemoryPersistence,
    PersistenceAdapter,
    SqlitePersistence,
)
from applytrack.sync.queue import ActionQueue, create_action_queue, create_persistence
from applytrack.sync.retry import RetryDecision, RetryPolicy
from applytrack.sync.scheduler import SyncScheduler
from applytrack.sync.transport import ActionTransport, BeaconTransport, HttpTransport

__all__ = [
    # Models
    "ActionDraft",
    "ActionPriority",
    "HttpMethod",
    "OfflineAction",
    "QueueStatus",
    "SyncResult",
    # Queue
    "ActionQueue",
    "create_action_queue",
    "create_persistence",
    # Components
    "ConnectivityMonitor",
    "ConnectivityState",
    "Dispatcher",
    "RetryDecision",
    "RetryPolicy",
    "Subscribers",
    "SyncScheduler",
    # Storage
    "JsonFilePersistence",
    "MemoryPersistence",
    "PersistenceAdapter",
    "SqlitePersistence",
    # Transport
    "ActionTransport",
    "BeaconTransport",
    "HttpTransport",
    # Application helpers
    "add_application_action",
    "delete_application_action",
    "update_application_action",
]
