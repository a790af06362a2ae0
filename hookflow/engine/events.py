# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Step/Execution Event Emitter

Abstract publish interface the engine reports progress through. The
real-time transport (websocket gateway, queue, ...) implements it outside
the engine. Emitter failures are logged and never fail a run.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from hookflow.core.logging import log_event

logger = logging.getLogger(__name__)

# Event names as seen by subscribers
EXECUTION_START = "execution:start"
STEP_START = "step:start"
STEP_COMPLETE = "step:complete"
EXECUTION_COMPLETE = "execution:complete"


class _Event(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ExecutionStartEvent(_Event):
    execution_id: str = Field(alias="executionId")
    workflow_id: str = Field(alias="workflowId")
    workflow_name: Optional[str] = Field(default=None, alias="workflowName")
    started_at: str = Field(alias="startedAt")


class StepStartEvent(_Event):
    execution_id: str = Field(alias="executionId")
    node_id: str = Field(alias="nodeId")
    node_name: str = Field(alias="nodeName")
    status: str = "running"


class StepCompleteEvent(_Event):
    execution_id: str = Field(alias="executionId")
    node_id: str = Field(alias="nodeId")
    node_name: str = Field(alias="nodeName")
    status: str
    output: Any = None
    error: Optional[str] = None
    duration: Optional[int] = None
    retry_attempts: Optional[int] = Field(default=None, alias="retryAttempts")


class ExecutionCompleteEvent(_Event):
    execution_id: str = Field(alias="executionId")
    workflow_id: str = Field(alias="workflowId")
    status: str
    output: Any = None
    error: Optional[str] = None
    finished_at: str = Field(alias="finishedAt")
    total_duration: int = Field(alias="totalDuration")


class ExecutionEventEmitter:
    """
    Event contract consumed by the engine.

    Subclasses override the hooks they care about; the defaults do nothing.
    """

    async def on_execution_start(self, event: ExecutionStartEvent) -> None:
        pass

    async def on_step_start(self, event: StepStartEvent) -> None:
        pass

    async def on_step_complete(self, event: StepCompleteEvent) -> None:
        pass

    async def on_execution_complete(self, event: ExecutionCompleteEvent) -> None:
        pass


class NullEventEmitter(ExecutionEventEmitter):
    """Discards every event"""
    pass


class CallbackEventEmitter(ExecutionEventEmitter):
    """
    Forwards events to an async callback as {"type": <event name>, **payload}.

    Example callback payload:
        {"type": "step:complete", "executionId": "...", "nodeId": "http-1",
         "nodeName": "Fetch", "status": "success", "duration": 12}
    """

    def __init__(self, callback: Callable[[Dict[str, Any]], Awaitable[None]]):
        self.callback = callback

    async def _send_update(self, update_type: str, event: _Event) -> None:
        await self.callback({
            "type": update_type,
            **event.to_dict()
        })

    async def on_execution_start(self, event: ExecutionStartEvent) -> None:
        await self._send_update(EXECUTION_START, event)

    async def on_step_start(self, event: StepStartEvent) -> None:
        await self._send_update(STEP_START, event)

    async def on_step_complete(self, event: StepCompleteEvent) -> None:
        await self._send_update(STEP_COMPLETE, event)

    async def on_execution_complete(self, event: ExecutionCompleteEvent) -> None:
        await self._send_update(EXECUTION_COMPLETE, event)


class LoggingEventEmitter(ExecutionEventEmitter):
    """Writes every event as a structured log record"""

    def __init__(self, event_logger: Optional[logging.Logger] = None):
        self.logger = event_logger or logger

    async def on_execution_start(self, event: ExecutionStartEvent) -> None:
        log_event(self.logger, EXECUTION_START, **event.to_dict())

    async def on_step_start(self, event: StepStartEvent) -> None:
        log_event(self.logger, STEP_START, level="DEBUG", **event.to_dict())

    async def on_step_complete(self, event: StepCompleteEvent) -> None:
        fields = event.to_dict()
        # Outputs can be large; the step log already holds them
        fields.pop("output", None)
        level = "WARNING" if event.status == "error" else "INFO"
        log_event(self.logger, STEP_COMPLETE, level=level, **fields)

    async def on_execution_complete(self, event: ExecutionCompleteEvent) -> None:
        fields = event.to_dict()
        fields.pop("output", None)
        level = "WARNING" if event.status == "FAILED" else "INFO"
        log_event(self.logger, EXECUTION_COMPLETE, level=level, **fields)


class FanoutEventEmitter(ExecutionEventEmitter):
    """Delivers each event to several emitters in order; one failing does not stop the rest."""

    def __init__(self, emitters: Iterable[ExecutionEventEmitter]):
        self.emitters: List[ExecutionEventEmitter] = list(emitters)

    async def _fanout(self, hook: str, event: _Event) -> None:
        for emitter in self.emitters:
            await emit_safely(getattr(emitter, hook), event)

    async def on_execution_start(self, event: ExecutionStartEvent) -> None:
        await self._fanout("on_execution_start", event)

    async def on_step_start(self, event: StepStartEvent) -> None:
        await self._fanout("on_step_start", event)

    async def on_step_complete(self, event: StepCompleteEvent) -> None:
        await self._fanout("on_step_complete", event)

    async def on_execution_complete(self, event: ExecutionCompleteEvent) -> None:
        await self._fanout("on_execution_complete", event)


async def emit_safely(hook: Callable[[Any], Awaitable[None]], event: _Event) -> None:
    """Call an emitter hook, logging (not raising) any failure."""
    try:
        await hook(event)
    except Exception as e:
        logger.error(
            f"Event emitter {getattr(hook, '__qualname__', hook)} failed: {e}",
            exc_info=True,
            extra={"event": type(event).__name__}
        )
