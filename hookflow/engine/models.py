# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow Models

Pydantic models for workflow definitions, executions and step logs.
Field aliases are camelCase so stored/emitted JSON matches the editor's
wire format; Python code uses the snake_case names.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hookflow.core.errors import InvalidTransitionError
from hookflow.triggers.payloads import build_trigger_data


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


class NodeType(str, Enum):
    """
    Closed set of node types.

    Triggers:
    - WEBHOOK_TRIGGER, SCHEDULE_TRIGGER, EMAIL_TRIGGER: entry point, output is the trigger payload

    Actions:
    - HTTP_REQUEST: outbound HTTP call (SSRF checked)
    - SEND_EMAIL: Resend API
    - SEND_TELEGRAM: Telegram Bot API
    - DATABASE_QUERY: single SQL statement against a Postgres database
    - AI_REQUEST: OpenAI-compatible chat completion

    Logic:
    - TRANSFORM: JSON-path extraction or sandboxed expression
    - CONDITION: boolean expression choosing the true/false branch
    """
    WEBHOOK_TRIGGER = "webhook-trigger"
    SCHEDULE_TRIGGER = "schedule-trigger"
    EMAIL_TRIGGER = "email-trigger"
    HTTP_REQUEST = "http-request"
    SEND_EMAIL = "send-email"
    SEND_TELEGRAM = "send-telegram"
    DATABASE_QUERY = "database-query"
    TRANSFORM = "transform"
    CONDITION = "condition"
    AI_REQUEST = "ai-request"

    @classmethod
    def _missing_(cls, value):
        # Editor payloads use camelCase (webhookTrigger, httpRequest, ...)
        if isinstance(value, str):
            for member in cls:
                camel = "".join(
                    part if i == 0 else part.capitalize()
                    for i, part in enumerate(member.value.split("-"))
                )
                if value == camel:
                    return member
        return None

    @property
    def is_trigger(self) -> bool:
        return self in TRIGGER_TYPES


TRIGGER_TYPES = frozenset([
    NodeType.WEBHOOK_TRIGGER,
    NodeType.SCHEDULE_TRIGGER,
    NodeType.EMAIL_TRIGGER,
])


class RetryConfig(BaseModel):
    """Per-node retry policy. max_attempts is the total number of attempts (0 = single try)."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    max_attempts: int = Field(default=0, ge=0, alias="maxAttempts")
    initial_delay_ms: int = Field(default=1000, ge=0, alias="initialDelayMs")
    backoff_multiplier: float = Field(default=2.0, ge=1.0, alias="backoffMultiplier")
    max_delay_ms: int = Field(default=30000, ge=0, alias="maxDelayMs")


class Node(BaseModel):
    """Workflow node. `data` holds type-specific configuration."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    type: NodeType
    data: Dict[str, Any] = Field(default_factory=dict)
    retry_config: Optional[RetryConfig] = Field(default=None, alias="retryConfig")
    non_fatal: bool = Field(default=False, alias="nonFatal")
    required_fields: List[str] = Field(default_factory=list, alias="requiredFields")

    @model_validator(mode="before")
    @classmethod
    def _lift_data_options(cls, values: Any) -> Any:
        # retryConfig / nonFatal / requiredFields may also live inside data
        if not isinstance(values, dict):
            return values
        data = values.get("data") or {}
        if not isinstance(data, dict):
            return values
        values = dict(values)
        for key, attr in (
            ("retryConfig", "retry_config"),
            ("nonFatal", "non_fatal"),
            ("requiredFields", "required_fields"),
        ):
            if key in data and key not in values and attr not in values:
                values[key] = data[key]
        return values

    @property
    def label(self) -> str:
        """Display name used in step logs and events"""
        return self.data.get("label") or self.type.value


class Edge(BaseModel):
    """Directed edge. source_handle is "true"/"false" on condition nodes."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: Optional[str] = None
    source: str
    target: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    target_handle: Optional[str] = Field(default=None, alias="targetHandle")


class WorkflowDefinition(BaseModel):
    """Immutable workflow version: a new version is a new definition"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: Optional[str] = None
    name: Optional[str] = None
    nodes: List[Node]
    edges: List[Edge] = Field(default_factory=list)
    variables: Dict[str, str] = Field(default_factory=dict)
    # Failed executions are reported to this address when set
    notification_email: Optional[str] = Field(default=None, alias="notificationEmail")


# =============================================================================
# EXECUTION STATE
# =============================================================================

class ExecutionStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PAUSED = "PAUSED"


TERMINAL_STATUSES = frozenset([ExecutionStatus.SUCCESS, ExecutionStatus.FAILED])

# Allowed execution status changes
_TRANSITIONS = {
    ExecutionStatus.PENDING: {ExecutionStatus.RUNNING, ExecutionStatus.FAILED},
    ExecutionStatus.RUNNING: {ExecutionStatus.SUCCESS, ExecutionStatus.FAILED, ExecutionStatus.PAUSED},
    ExecutionStatus.PAUSED: {ExecutionStatus.RUNNING},
    ExecutionStatus.SUCCESS: set(),
    ExecutionStatus.FAILED: set(),
}


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


class Execution(BaseModel):
    """One run of a workflow. Status changes only through transition()."""
    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: str = Field(default_factory=new_id)
    workflow_id: str = Field(alias="workflowId")
    status: ExecutionStatus = ExecutionStatus.PENDING
    started_at: str = Field(default_factory=_now, alias="startedAt")
    finished_at: Optional[str] = Field(default=None, alias="finishedAt")
    input: Optional[Dict[str, Any]] = None
    output: Any = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def can_transition(self, target: ExecutionStatus) -> bool:
        return target in _TRANSITIONS[self.status]

    def transition(self, target: ExecutionStatus) -> None:
        """
        Move to a new status.

        Raises:
            InvalidTransitionError: If the state machine does not allow the move
        """
        if not self.can_transition(target):
            raise InvalidTransitionError(self.id, self.status.value, target.value)
        self.status = target
        if target in TERMINAL_STATUSES:
            self.finished_at = _now()
        elif target == ExecutionStatus.RUNNING:
            self.finished_at = None


class StepLog(BaseModel):
    """Record of one node visit (success, error or skipped)"""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id)
    execution_id: str = Field(alias="executionId")
    node_id: str = Field(alias="nodeId")
    node_name: str = Field(alias="nodeName")
    status: StepStatus = StepStatus.PENDING
    input: Any = None
    output: Any = None
    error: Optional[str] = None
    duration: int = 0  # milliseconds
    attempts: int = 0
    created_at: str = Field(default_factory=_now, alias="createdAt")


class TriggerEvent(BaseModel):
    """Normalized "trigger fired" event handed to WorkflowEngine.run()"""
    model_config = ConfigDict(populate_by_name=True)

    workflow_id: str = Field(alias="workflowId")
    body: Any = None
    headers: Dict[str, Any] = Field(default_factory=dict)
    query: Dict[str, Any] = Field(default_factory=dict)
    method: str = "POST"
    type: Optional[str] = None  # webhook, schedule, email
    extra: Dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        """Payload stored under the "trigger" context key (headers redacted)."""
        payload = build_trigger_data(
            body=self.body,
            headers=self.headers,
            query=self.query,
            method=self.method,
        )
        if self.type:
            payload["type"] = self.type
        payload.update(self.extra)
        return payload
