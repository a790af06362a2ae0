# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Node handlers and the NodeType -> handler table.

Every NodeType must have a handler; the table is checked when this
package is imported.
"""

from typing import Dict

from hookflow.engine.models import NodeType
from .ai_request import AiRequestHandler
from .base import NodeContext, NodeHandler
from .condition import ConditionHandler
from .database import DatabaseQueryHandler
from .http_request import HttpRequestHandler
from .notifications import SendEmailHandler, SendTelegramHandler
from .transform import TransformHandler
from .triggers import EmailTriggerHandler, ScheduleTriggerHandler, WebhookTriggerHandler

# ============================================================================
# Node Type Registry
# ============================================================================

NODE_HANDLERS: Dict[NodeType, NodeHandler] = {
    handler.node_type: handler
    for handler in (
        WebhookTriggerHandler(),
        ScheduleTriggerHandler(),
        EmailTriggerHandler(),
        HttpRequestHandler(),
        SendEmailHandler(),
        SendTelegramHandler(),
        DatabaseQueryHandler(),
        TransformHandler(),
        ConditionHandler(),
        AiRequestHandler(),
    )
}

_missing = [node_type.value for node_type in NodeType if node_type not in NODE_HANDLERS]
if _missing:
    raise RuntimeError(f"No handler registered for node type(s): {', '.join(_missing)}")


def get_handler(node_type: NodeType) -> NodeHandler:
    """
    Raises:
        KeyError: If the node type has no handler
    """
    return NODE_HANDLERS[NodeType(node_type)]


__all__ = [
    "NODE_HANDLERS",
    "NodeContext",
    "NodeHandler",
    "get_handler",
]
