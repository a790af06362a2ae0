# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Custom exceptions for hookflow.

All exceptions inherit from HookflowError for consistent error handling.
"""

from typing import Optional


class HookflowError(Exception):
    """Base exception for all hookflow errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize hookflow error.

        Args:
            message: Human-readable error message
            details: Additional error details
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert error to dictionary for logs and event payloads."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class NotFoundError(HookflowError):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str, details: Optional[dict] = None):
        """
        Initialize not found error.

        Args:
            resource: Type of resource (e.g., "Workflow", "Execution")
            identifier: Resource identifier
            details: Additional error details
        """
        message = f"{resource} not found: {identifier}"
        super().__init__(message, details=details)
        self.resource = resource
        self.identifier = identifier


class ConfigurationError(HookflowError):
    """Configuration error."""

    def __init__(self, message: str, config_file: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details=details)
        self.config_file = config_file


class ExecutionError(HookflowError):
    """Execution error."""

    def __init__(self, message: str, execution_id: Optional[str] = None, details: Optional[dict] = None):
        """
        Initialize execution error.

        Args:
            message: Execution error message
            execution_id: Execution identifier
            details: Additional error details
        """
        super().__init__(message, details=details)
        self.execution_id = execution_id


class InvalidTransitionError(ExecutionError):
    """Execution status change not permitted by the state machine."""

    def __init__(self, execution_id: str, current: str, target: str):
        super().__init__(
            f"Execution {execution_id} cannot move from {current} to {target}",
            execution_id=execution_id,
            details={"from": current, "to": target}
        )
        self.current = current
        self.target = target
