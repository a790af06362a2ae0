# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
HTTP Request node - calls external APIs.

Every URL passes the URL Safety Validator before any connection is made,
and redirects are not followed.
"""

import base64
import json
import time
from typing import Any, Dict

import httpx

from hookflow.engine.exceptions import NodeConfigurationError, NodeTimeoutError, TransientNodeError
from hookflow.engine.models import NodeType
from .base import NodeContext, NodeHandler, timeout_seconds

ALLOWED_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}
BODYLESS_METHODS = {"GET", "DELETE", "HEAD", "OPTIONS"}


def apply_auth(headers: Dict[str, str], auth: Any) -> None:
    """
    Add authentication headers.

    Supported auth types:
    - basic: {"type": "basic", "username": "...", "password": "..."}
    - bearer: {"type": "bearer", "token": "..."}
    - api_key: {"type": "api_key", "apiKey": "...", "headerName": "X-API-Key"}
    """
    if not isinstance(auth, dict):
        return
    auth_type = auth.get("type")

    if auth_type == "basic":
        if auth.get("username") and auth.get("password"):
            credentials = base64.b64encode(f"{auth['username']}:{auth['password']}".encode()).decode()
            headers["Authorization"] = f"Basic {credentials}"
    elif auth_type == "bearer":
        if auth.get("token"):
            headers["Authorization"] = f"Bearer {auth['token']}"
    elif auth_type == "api_key":
        if auth.get("apiKey"):
            headers[auth.get("headerName") or "X-API-Key"] = str(auth["apiKey"])


def _has_header(headers: Dict[str, str], name: str) -> bool:
    return any(key.lower() == name.lower() for key in headers)


def _parse_body(response: httpx.Response) -> Any:
    if "application/json" in response.headers.get("content-type", ""):
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text


class HttpRequestHandler(NodeHandler):
    """
    Make an HTTP request.

    Example:
        {
            "id": "notify",
            "type": "http-request",
            "data": {
                "label": "Notify CRM",
                "method": "POST",
                "url": "https://api.example.com/orders/{{trigger.body.id}}",
                "headers": {"X-Source": "hookflow"},
                "body": {"amount": "{{trigger.body.amount}}"},
                "timeout": 10000,
                "auth": {"type": "bearer", "token": "..."}
            }
        }
    """

    node_type = NodeType.HTTP_REQUEST
    display_name = "HTTP Request"

    async def execute(self, ctx: NodeContext) -> Dict[str, Any]:
        url = str(self.require(ctx, "url", "URL is required"))
        method = str(ctx.data.get("method") or "GET").upper()
        if method not in ALLOWED_METHODS:
            raise NodeConfigurationError(ctx.node_id, f"HTTP method not allowed: {method}")

        # SSRF Protection: runs before the timeout clock starts
        self.check_egress(ctx, url)

        headers = {str(k): str(v) for k, v in (ctx.data.get("headers") or {}).items()}
        apply_auth(headers, ctx.data.get("auth"))

        body = ctx.data.get("body")
        content = None
        if body not in (None, "") and method not in BODYLESS_METHODS:
            if not _has_header(headers, "Content-Type"):
                headers["Content-Type"] = "application/json"
            content = body if isinstance(body, (str, bytes)) else json.dumps(body)

        timeout_s = timeout_seconds(ctx.data.get("timeout"), ctx.config.http_timeout_ms)
        timeout = httpx.Timeout(timeout_s)

        self.logger.debug(f"HTTP {method} {url}", extra={"execution_id": ctx.execution_id, "node_id": ctx.node_id})
        started = time.monotonic()
        try:
            async with self.client(ctx, timeout) as client:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    content=content,
                    timeout=timeout,
                    follow_redirects=False,
                )
        except httpx.TimeoutException:
            raise NodeTimeoutError(ctx.node_id, "Request timeout", int(timeout_s * 1000))
        except httpx.HTTPError as e:
            raise TransientNodeError(ctx.node_id, f"HTTP request failed: {e}")

        duration = int((time.monotonic() - started) * 1000)
        output = {
            "status": response.status_code,
            "statusText": response.reason_phrase,
            "headers": dict(response.headers),
            "body": _parse_body(response),
            "duration": duration,
        }

        self.logger.debug(
            f"HTTP {method} {url} -> {response.status_code} ({duration}ms)",
            extra={"execution_id": ctx.execution_id, "node_id": ctx.node_id}
        )

        # 2xx and 3xx are success
        if not 200 <= response.status_code < 400:
            raise TransientNodeError(
                ctx.node_id,
                f"HTTP {response.status_code}: {response.reason_phrase}",
                details={"response": output}
            )
        return output
