# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow engine: models, graph, templating, retry, events and persistence.

WorkflowEngine lives in hookflow.engine.executor (it depends on
hookflow.nodes, which in turn depends on this package).
"""

from hookflow.engine.models import (
    Edge,
    Execution,
    ExecutionStatus,
    Node,
    NodeType,
    RetryConfig,
    StepLog,
    StepStatus,
    TriggerEvent,
    WorkflowDefinition,
)
from hookflow.engine.exceptions import (
    EgressBlockedError,
    ExpressionError,
    NodeConfigurationError,
    NodeExecutionError,
    NodeTimeoutError,
    TemplateValidationError,
    TransientNodeError,
    WorkflowStructureError,
)
from hookflow.engine.graph import WorkflowGraph
from hookflow.engine.context import DataContext
from hookflow.engine.retry import RetryPolicy
from hookflow.engine.events import (
    CallbackEventEmitter,
    ExecutionEventEmitter,
    FanoutEventEmitter,
    LoggingEventEmitter,
    NullEventEmitter,
)
from hookflow.engine.store import (
    ExecutionStore,
    FileExecutionStore,
    FileWorkflowRepository,
    InMemoryExecutionStore,
    InMemoryWorkflowRepository,
    WorkflowRepository,
)

__all__ = [
    "Edge",
    "Execution",
    "ExecutionStatus",
    "Node",
    "NodeType",
    "RetryConfig",
    "StepLog",
    "StepStatus",
    "TriggerEvent",
    "WorkflowDefinition",
    "EgressBlockedError",
    "ExpressionError",
    "NodeConfigurationError",
    "NodeExecutionError",
    "NodeTimeoutError",
    "TemplateValidationError",
    "TransientNodeError",
    "WorkflowStructureError",
    "WorkflowGraph",
    "DataContext",
    "RetryPolicy",
    "CallbackEventEmitter",
    "ExecutionEventEmitter",
    "FanoutEventEmitter",
    "LoggingEventEmitter",
    "NullEventEmitter",
    "ExecutionStore",
    "FileExecutionStore",
    "FileWorkflowRepository",
    "InMemoryExecutionStore",
    "InMemoryWorkflowRepository",
    "WorkflowRepository",
]
