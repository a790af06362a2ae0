# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Engine Exceptions

Structural errors are raised to callers at load time. Everything deriving
from NodeExecutionError is caught by the engine and recorded on the StepLog.
"""

from typing import Optional

from hookflow.core.errors import HookflowError


class WorkflowStructureError(HookflowError):
    """Workflow graph is invalid (cycle, dangling edge, bad trigger setup)"""
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class NodeExecutionError(HookflowError):
    """Node execution failed"""

    retryable = True

    def __init__(self, node_id: str, message: str, retryable: Optional[bool] = None,
                 details: Optional[dict] = None):
        super().__init__(message, details=details)
        self.node_id = node_id
        if retryable is not None:
            self.retryable = retryable


class TransientNodeError(NodeExecutionError):
    """Network failure, timeout or non-2xx response. Retried per policy."""
    retryable = True


class NodeTimeoutError(TransientNodeError):
    """Handler call exceeded its timeout"""
    def __init__(self, node_id: str, message: str = "Request timeout", timeout_ms: Optional[int] = None):
        super().__init__(node_id, message, details={"timeout_ms": timeout_ms} if timeout_ms else None)
        self.timeout_ms = timeout_ms


class TemplateValidationError(NodeExecutionError):
    """A required templated field resolved to an empty value"""
    retryable = False

    def __init__(self, node_id: str, missing_fields: list):
        super().__init__(
            node_id,
            f"Required field(s) unresolved: {', '.join(missing_fields)}",
            details={"missing_fields": list(missing_fields)}
        )
        self.missing_fields = list(missing_fields)


class ExpressionError(NodeExecutionError):
    """
    Expression could not be parsed or evaluated.

    Security-classified failures (forbidden syntax, dunder access, oversize
    expressions) are never retried.
    """

    def __init__(self, node_id: str, message: str, security: bool = False):
        super().__init__(node_id, message, retryable=not security)
        self.security = security


class EgressBlockedError(NodeExecutionError):
    """URL Safety Validator rejected the outbound address. Message is surfaced verbatim."""
    retryable = False


class NodeConfigurationError(NodeExecutionError):
    """Missing credentials or required node configuration"""
    retryable = False
