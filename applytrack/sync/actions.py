"""Queue helpers for the job-application endpoints.

Each helper builds the draft for one application mutation and enqueues it,
returning the new action id.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

from applytrack.sync.models import ActionDraft, ActionPriority, HttpMethod
from applytrack.sync.queue import ActionQueue

APPLICATIONS_ENDPOINT = "/api/applications"


def _application_url(application_id: str) -> str:
    return f"{APPLICATIONS_ENDPOINT}/{quote(str(application_id), safe='')}"


def add_application_action(
    queue: ActionQueue,
    data: Mapping[str, Any],
    priority: ActionPriority | str = ActionPriority.MEDIUM,
) -> str:
    """Queue creation of a job application."""
    return queue.enqueue(
        ActionDraft(
            kind="ADD_APPLICATION",
            payload=dict(data),
            endpoint=APPLICATIONS_ENDPOINT,
            method=HttpMethod.POST,
            priority=priority,
            max_retries=3,
        )
    )


def update_application_action(
    queue: ActionQueue,
    application_id: str,
    data: Mapping[str, Any],
    priority: ActionPriority | str = ActionPriority.MEDIUM,
) -> str:
    """Queue an update of an existing application; the payload carries its id."""
    return queue.enqueue(
        ActionDraft(
            kind="UPDATE_APPLICATION",
            payload={"id": application_id, **data},
            endpoint=_application_url(application_id),
            method=HttpMethod.PUT,
            priority=priority,
            max_retries=3,
        )
    )


def delete_application_action(
    queue: ActionQueue,
    application_id: str,
    priority: ActionPriority | str = ActionPriority.HIGH,
) -> str:
    """Queue deletion of an application. Deletes get a larger retry budget."""
    return queue.enqueue(
        ActionDraft(
            kind="DELETE_APPLICATION",
            payload={"id": application_id},
            endpoint=_application_url(application_id),
            method=HttpMethod.DELETE,
            priority=priority,
            max_retries=5,
        )
    )
