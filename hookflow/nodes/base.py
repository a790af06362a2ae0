# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Base Node Handler - shared plumbing for every node type handler
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional, Tuple

import httpx

from hookflow.core.config import Config, get_config
from hookflow.engine.exceptions import EgressBlockedError, NodeConfigurationError
from hookflow.engine.models import Node, NodeType
from hookflow.security.url_validator import validate_url

logger = logging.getLogger(__name__)


@dataclass
class NodeContext:
    """Everything a handler may use while executing one node"""

    execution_id: str
    node: Node
    # Node data after template resolution
    data: Dict[str, Any]
    # Output of the first predecessor ("trigger" for nodes right after the trigger)
    input: Any = None
    # Snapshot of the DataContext
    sources: Dict[str, Any] = field(default_factory=dict)
    variables: Dict[str, str] = field(default_factory=dict)
    config: Config = field(default_factory=get_config)
    # Shared client supplied by the engine (tests inject a MockTransport here)
    http_client: Optional[httpx.AsyncClient] = None

    @property
    def node_id(self) -> str:
        return self.node.id


class NodeHandler:
    """
    Base class for node handlers.

    Each handler:
    1. Reads its resolved configuration from ctx.data
    2. Validates required configuration / credentials
    3. Performs its effect and returns the node's output
    """

    # Node metadata (override in subclasses)
    node_type: NodeType = None
    display_name: str = "Base Node"

    # Data fields passed to the handler verbatim instead of template-resolved
    raw_fields: Tuple[str, ...] = ()

    def __init__(self):
        self.logger = logging.getLogger(f"hookflow.nodes.{self.node_type.value if self.node_type else 'base'}")

    async def execute(self, ctx: NodeContext) -> Any:
        """
        Execute the node logic.

        Args:
            ctx: Node context with resolved data and run state

        Returns:
            Output value stored in the DataContext under the node id
        """
        raise NotImplementedError

    # -- Helpers --

    def require(self, ctx: NodeContext, key: str, message: Optional[str] = None) -> Any:
        """Get a config value or fail the node with NodeConfigurationError."""
        value = ctx.data.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise NodeConfigurationError(ctx.node_id, message or f"{key} is required")
        return value

    def check_egress(self, ctx: NodeContext, url: str) -> None:
        """Run the URL Safety Validator; blocked URLs never reach the network."""
        result = validate_url(url)
        if not result.valid:
            self.logger.warning(
                f"SSRF protection blocked request to: {url}",
                extra={"execution_id": ctx.execution_id, "node_id": ctx.node_id}
            )
            raise EgressBlockedError(ctx.node_id, result.error or "URL validation failed")

    @asynccontextmanager
    async def client(self, ctx: NodeContext, timeout: Optional[httpx.Timeout] = None) -> AsyncIterator[httpx.AsyncClient]:
        """Engine-provided client if there is one, otherwise a short-lived client."""
        if ctx.http_client is not None:
            yield ctx.http_client
            return
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=False) as client:
            yield client


def timeout_seconds(value: Any, default_ms: int) -> float:
    """Node timeouts are configured in milliseconds."""
    try:
        ms = int(value) if value not in (None, "") else default_ms
    except (TypeError, ValueError):
        ms = default_ms
    if ms <= 0:
        ms = default_ms
    return ms / 1000
