# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Notification nodes - email via the Resend API, messages via the Telegram Bot API.

Both talk to the provider's REST API over httpx; credentials arrive already
resolved in the node data (apiKey, botToken).
"""

from typing import Any, Dict, List

import httpx

from hookflow.engine.exceptions import NodeConfigurationError, NodeTimeoutError, TransientNodeError
from hookflow.engine.models import NodeType
from .base import NodeContext, NodeHandler, timeout_seconds

RESEND_API_URL = "https://api.resend.com/emails"
TELEGRAM_API_URL = "https://api.telegram.org"
TELEGRAM_MAX_MESSAGE_LENGTH = 4096
TELEGRAM_PARSE_MODES = {"HTML", "Markdown", "MarkdownV2"}


def _provider_error(node_id: str, status: int, message: str) -> TransientNodeError:
    # Rate limits and server errors are worth retrying; other 4xx are not
    retryable = status == 429 or status >= 500
    return TransientNodeError(node_id, message, retryable=retryable, details={"status": status})


def provider_error_message(response: httpx.Response, default: str) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or default
    if isinstance(payload, dict):
        return payload.get("message") or payload.get("description") or default
    return default


class SendEmailHandler(NodeHandler):
    """
    Send an email through Resend.

    Example:
        {
            "id": "mail",
            "type": "send-email",
            "data": {
                "to": ["ops@example.com"],
                "subject": "Order {{trigger.body.id}}",
                "body": "<b>New order</b>",
                "html": true,
                "apiKey": "re_..."
            }
        }
    """

    node_type = NodeType.SEND_EMAIL
    display_name = "Send Email"

    async def execute(self, ctx: NodeContext) -> Dict[str, Any]:
        api_key = self.require(ctx, "apiKey", "Resend API key is required. Please configure credentials.")

        to = ctx.data.get("to")
        recipients: List[str] = [str(r) for r in (to if isinstance(to, list) else [to]) if r]
        if not recipients:
            raise NodeConfigurationError(ctx.node_id, "At least one recipient is required")

        subject = str(ctx.data.get("subject") or "")
        body = ctx.data.get("body")
        body = "" if body is None else str(body)

        payload: Dict[str, Any] = {
            "from": ctx.data.get("from") or ctx.config.notification_from_email,
            "to": recipients,
            "subject": subject,
        }
        payload["html" if ctx.data.get("html") else "text"] = body
        if ctx.data.get("replyTo"):
            payload["reply_to"] = ctx.data["replyTo"]

        self.check_egress(ctx, RESEND_API_URL)
        timeout = httpx.Timeout(timeout_seconds(ctx.data.get("timeout"), ctx.config.http_timeout_ms))

        self.logger.debug(
            f"Sending email to {', '.join(recipients)}: {subject}",
            extra={"execution_id": ctx.execution_id, "node_id": ctx.node_id}
        )
        try:
            async with self.client(ctx, timeout) as client:
                response = await client.post(
                    RESEND_API_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {api_key}"},
                    timeout=timeout,
                )
        except httpx.TimeoutException:
            raise NodeTimeoutError(ctx.node_id, "Email request timeout")
        except httpx.HTTPError as e:
            raise TransientNodeError(ctx.node_id, f"Email send failed: {e}")

        if response.status_code >= 400:
            message = provider_error_message(response, f"Resend API error {response.status_code}")
            self.logger.error(f"Email send failed: {message}", extra={"node_id": ctx.node_id})
            raise _provider_error(ctx.node_id, response.status_code, message)

        data = response.json() if response.content else {}
        return {"id": data.get("id", ""), "to": recipients}


def telegram_error_message(description: str) -> str:
    """Map Telegram API error descriptions to actionable messages."""
    if "chat not found" in description:
        return "Chat not found. Please verify the chat ID."
    if "bot was blocked" in description:
        return "Bot was blocked by the user."
    if "Unauthorized" in description:
        return "Invalid bot token. Please check your credentials."
    if "message is too long" in description:
        return f"Message is too long. Maximum length is {TELEGRAM_MAX_MESSAGE_LENGTH} characters."
    return description


class SendTelegramHandler(NodeHandler):
    """
    Send a Telegram message via sendMessage.

    Example:
        {
            "id": "tg",
            "type": "send-telegram",
            "data": {"chatId": "123456", "message": "Paid: {{trigger.body.amount}}", "botToken": "..."}
        }
    """

    node_type = NodeType.SEND_TELEGRAM
    display_name = "Send Telegram"

    async def execute(self, ctx: NodeContext) -> Dict[str, Any]:
        bot_token = self.require(ctx, "botToken", "Telegram bot token is required. Please configure credentials.")
        chat_id = str(self.require(ctx, "chatId", "Chat ID is required."))
        message = ctx.data.get("message")
        if message is None or not str(message).strip():
            raise NodeConfigurationError(ctx.node_id, "Message cannot be empty.")

        payload: Dict[str, Any] = {"chat_id": chat_id, "text": str(message)}
        parse_mode = ctx.data.get("parseMode")
        if parse_mode:
            if parse_mode not in TELEGRAM_PARSE_MODES:
                raise NodeConfigurationError(ctx.node_id, f"Unsupported parse mode: {parse_mode}")
            payload["parse_mode"] = parse_mode

        url = f"{TELEGRAM_API_URL}/bot{bot_token}/sendMessage"
        self.check_egress(ctx, url)
        timeout = httpx.Timeout(timeout_seconds(ctx.data.get("timeout"), ctx.config.http_timeout_ms))

        self.logger.debug(
            f"Sending Telegram message to chat {chat_id}",
            extra={"execution_id": ctx.execution_id, "node_id": ctx.node_id}
        )
        try:
            async with self.client(ctx, timeout) as client:
                response = await client.post(url, json=payload, timeout=timeout)
        except httpx.TimeoutException:
            raise NodeTimeoutError(ctx.node_id, "Telegram request timeout")
        except httpx.HTTPError as e:
            # httpx error text includes the URL, which carries the bot token
            raise TransientNodeError(ctx.node_id, f"Telegram request failed: {type(e).__name__}")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400 or not data.get("ok"):
            description = data.get("description") or f"Telegram API error {response.status_code}"
            message = telegram_error_message(description)
            self.logger.error(f"Telegram action failed: {message}", extra={"node_id": ctx.node_id})
            raise _provider_error(ctx.node_id, response.status_code, message)

        result = data.get("result") or {}
        return {"messageId": result.get("message_id"), "chatId": chat_id}
