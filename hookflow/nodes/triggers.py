# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Trigger nodes - entry points. Their output is the normalized trigger payload.
"""

from typing import Any

from hookflow.engine.graph import TRIGGER_KEY
from hookflow.engine.models import NodeType
from .base import NodeContext, NodeHandler


class TriggerHandler(NodeHandler):
    """Passes the trigger payload through unchanged"""

    async def execute(self, ctx: NodeContext) -> Any:
        return ctx.sources.get(TRIGGER_KEY)


class WebhookTriggerHandler(TriggerHandler):
    node_type = NodeType.WEBHOOK_TRIGGER
    display_name = "Webhook Trigger"


class ScheduleTriggerHandler(TriggerHandler):
    node_type = NodeType.SCHEDULE_TRIGGER
    display_name = "Schedule Trigger"


class EmailTriggerHandler(TriggerHandler):
    node_type = NodeType.EMAIL_TRIGGER
    display_name = "Email Trigger"
