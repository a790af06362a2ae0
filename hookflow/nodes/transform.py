# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Transform node - pure data reshaping.

Modes (data.type):
- jsonpath: extraction with `$.trigger.body.items[0]` style paths
- expression: sandboxed expression (`input.amount * 1.2`)
- auto (default): `$`/`@` prefix selects jsonpath, anything else is an expression
"""

from typing import Any, Dict

from hookflow.engine.exceptions import ExpressionError, NodeConfigurationError
from hookflow.engine.expressions import ExpressionSecurityError, build_variables, evaluate_expression
from hookflow.engine.models import NodeType
from hookflow.engine.templates import bind_templates, evaluate_json_path, resolve_string
from .base import NodeContext, NodeHandler

TRANSFORM_TYPES = {"jsonpath", "expression", "auto"}


def _json_path_data(ctx: NodeContext) -> Dict[str, Any]:
    data = dict(ctx.sources)
    data.setdefault("input", ctx.input)
    data.setdefault("variables", dict(ctx.variables))
    return data


class TransformHandler(NodeHandler):
    """
    Example:
        {"id": "total", "type": "transform",
         "data": {"type": "expression", "expression": "input.body.price * input.body.qty"}}
    """

    node_type = NodeType.TRANSFORM
    display_name = "Transform"
    raw_fields = ("expression",)

    async def execute(self, ctx: NodeContext) -> Any:
        expression = ctx.data.get("expression")
        mode = ctx.data.get("type") or "auto"
        if mode not in TRANSFORM_TYPES:
            raise NodeConfigurationError(ctx.node_id, f"Unknown transform type: {mode}")

        # Nothing to compute: pass the context through
        if expression is None or not str(expression).strip():
            return ctx.sources

        expression = str(expression).strip()
        if mode == "auto":
            mode = "jsonpath" if expression.startswith(("$", "@")) else "expression"

        if mode == "jsonpath":
            path = resolve_string(expression, ctx.sources)
            try:
                result = evaluate_json_path(str(path), _json_path_data(ctx))
            except ValueError as e:
                raise ExpressionError(ctx.node_id, str(e))
        else:
            result = self.evaluate(ctx, expression)

        self.logger.debug(
            f"Transform result type: {type(result).__name__}",
            extra={"execution_id": ctx.execution_id, "node_id": ctx.node_id}
        )
        return result

    def evaluate(self, ctx: NodeContext, expression: str) -> Any:
        """Run a sandboxed expression, mapping evaluator errors to ExpressionError."""
        source, bindings = bind_templates(expression, ctx.sources)
        variables = build_variables(ctx.sources, ctx.input, ctx.variables)
        variables.update(bindings)
        try:
            return evaluate_expression(source, variables, max_length=ctx.config.expression_max_length)
        except ExpressionSecurityError as e:
            self.logger.warning(
                f"Expression rejected: {e}",
                extra={"execution_id": ctx.execution_id, "node_id": ctx.node_id}
            )
            raise ExpressionError(ctx.node_id, str(e), security=True)
        except ValueError as e:
            raise ExpressionError(ctx.node_id, str(e))
