# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Failure notifications.

An event subscriber that emails the workflow's notificationEmail through
Resend when an execution ends FAILED. Sending problems are logged and
reported as False; they never reach the engine.

Lives outside hookflow.engine.__init__ for the same reason as the executor:
it depends on hookflow.nodes.
"""

import html
import logging
from typing import Optional

import httpx

from hookflow.core.config import Config, get_config, get_resend_api_key
from hookflow.core.errors import NotFoundError
from hookflow.nodes.notifications import RESEND_API_URL, provider_error_message
from .events import ExecutionCompleteEvent, ExecutionEventEmitter
from .exceptions import WorkflowStructureError
from .models import ExecutionStatus, WorkflowDefinition
from .store import WorkflowRepository

logger = logging.getLogger(__name__)


def format_duration(duration_ms: int) -> str:
    if duration_ms < 1000:
        return f"{duration_ms}ms"
    return f"{duration_ms / 1000:.1f}s"


def build_failure_email(workflow_name: str, event: ExecutionCompleteEvent) -> dict:
    """Subject, HTML and text bodies for a failed execution"""
    duration = format_duration(event.total_duration)
    error = event.error or "Unknown error"

    text = (
        "Workflow Execution Failed\n\n"
        f"Workflow: {workflow_name}\n"
        f"Execution ID: {event.execution_id}\n"
        f"Finished: {event.finished_at}\n"
        f"Duration: {duration}\n\n"
        f"Error:\n{error}\n\n"
        "Please review the execution logs for more details."
    )
    body = (
        "<h2>Workflow Execution Failed</h2>"
        f"<p><strong>Workflow:</strong> {html.escape(workflow_name)}</p>"
        f"<p><strong>Execution ID:</strong> {html.escape(event.execution_id)}<br>"
        f"<strong>Finished:</strong> {html.escape(event.finished_at)}<br>"
        f"<strong>Duration:</strong> {duration}</p>"
        f"<pre>{html.escape(error)}</pre>"
        "<p>Please review the execution logs for more details.</p>"
    )
    return {
        "subject": f"[hookflow] Workflow Failed: {workflow_name}",
        "html": body,
        "text": text,
    }


class FailureNotificationEmitter(ExecutionEventEmitter):
    """
    Emails the workflow owner when an execution fails.

    Args:
        repository: Where the workflow's name and notificationEmail come from
        api_key: Resend API key (default: RESEND_API_KEY from the environment)
        http_client: Shared httpx client (default: a short-lived client per send)
        config: Supplies notification_from_email and the HTTP timeout

    Example:
        emitter = FanoutEventEmitter([
            LoggingEventEmitter(),
            FailureNotificationEmitter(repository),
        ])
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        config: Optional[Config] = None,
    ):
        self.repository = repository
        self.api_key = api_key or get_resend_api_key()
        self.http_client = http_client
        self.config = config or get_config()
        if not self.api_key:
            logger.warning("RESEND_API_KEY not configured - failure notifications disabled")

    async def on_execution_complete(self, event: ExecutionCompleteEvent) -> None:
        if event.status == ExecutionStatus.FAILED.value:
            await self.notify(event)

    async def notify(self, event: ExecutionCompleteEvent) -> bool:
        """
        Send the failure email for one execution.

        Returns:
            True if Resend accepted the message, False if nothing was sent
        """
        if not self.api_key:
            return False

        try:
            definition = await self.repository.load_workflow(event.workflow_id)
        except (NotFoundError, WorkflowStructureError) as e:
            logger.error(f"Cannot load workflow {event.workflow_id} for failure notification: {e}")
            return False

        if not definition.notification_email:
            return False
        return await self._send(definition, event)

    async def _send(self, definition: WorkflowDefinition, event: ExecutionCompleteEvent) -> bool:
        recipient = definition.notification_email
        payload = {
            "from": self.config.notification_from_email,
            "to": [recipient],
            **build_failure_email(definition.name or event.workflow_id, event),
        }
        timeout = httpx.Timeout(self.config.http_timeout_ms / 1000)
        headers = {"Authorization": f"Bearer {self.api_key}"}

        logger.debug(
            f"Sending failure notification to {recipient} for workflow {event.workflow_id}",
            extra={"execution_id": event.execution_id}
        )
        try:
            if self.http_client is not None:
                response = await self.http_client.post(RESEND_API_URL, json=payload, headers=headers, timeout=timeout)
            else:
                async with httpx.AsyncClient(timeout=timeout, follow_redirects=False) as client:
                    response = await client.post(RESEND_API_URL, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Failure notification sending failed: {e}", extra={"execution_id": event.execution_id})
            return False

        if response.status_code >= 400:
            message = provider_error_message(response, f"Resend API error {response.status_code}")
            logger.error(f"Failed to send failure notification: {message}", extra={"execution_id": event.execution_id})
            return False

        logger.info(
            f"Failure notification sent for execution {event.execution_id}",
            extra={"execution_id": event.execution_id, "workflow_id": event.workflow_id}
        )
        return True
