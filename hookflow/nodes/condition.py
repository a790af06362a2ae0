# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Condition node - evaluates a boolean expression and picks the true/false branch
"""

from typing import Any, Dict

from hookflow.engine.graph import FALSE_HANDLE, TRUE_HANDLE
from hookflow.engine.models import NodeType
from .base import NodeContext
from .transform import TransformHandler


class ConditionHandler(TransformHandler):
    """
    Example:
        {"id": "big-order", "type": "condition",
         "data": {"expression": "input.body.amount > 100"}}

    The engine follows the edge whose sourceHandle equals matchedBranch.
    """

    node_type = NodeType.CONDITION
    display_name = "Condition"
    raw_fields = ("expression",)

    async def execute(self, ctx: NodeContext) -> Dict[str, Any]:
        expression = str(self.require(ctx, "expression", "Condition expression is required")).strip()
        result = bool(self.evaluate(ctx, expression))
        return {
            "result": result,
            "expression": expression,
            "matchedBranch": TRUE_HANDLE if result else FALSE_HANDLE,
        }
