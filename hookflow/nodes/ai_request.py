# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
AI Request node - OpenAI-compatible chat completion.

Structured output strategy depends on the provider behind baseUrl:
- OpenAI: json_schema response format in strict mode
- Anything else (DeepSeek, local gateways): json_object mode plus a
  schema description in the system prompt
"""

import json
import time
from typing import Any, Callable, Dict, List

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    BadRequestError,
)

from hookflow.engine.exceptions import NodeConfigurationError, NodeTimeoutError, TransientNodeError
from hookflow.engine.models import NodeType
from .base import NodeContext, NodeHandler, timeout_seconds


def detect_provider(base_url: str) -> str:
    url = base_url.lower()
    if "deepseek" in url:
        return "deepseek"
    if "openai.com" in url:
        return "openai"
    return "other"


def field_to_json_schema(field: Dict[str, Any]) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": field.get("type", "string")}
    if field.get("description"):
        schema["description"] = field["description"]
    if schema["type"] == "array" and field.get("items"):
        schema["items"] = field_to_json_schema(field["items"])
    if schema["type"] == "object" and field.get("properties"):
        schema.update(build_json_schema(field["properties"]))
    return schema


def build_json_schema(fields: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Build a JSON Schema object from outputSchema field definitions."""
    properties = {}
    required = []
    for field in fields:
        properties[field["name"]] = field_to_json_schema(field)
        if field.get("required", True) is not False:
            required.append(field["name"])
    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": False,
    }


def describe_schema(fields: List[Dict[str, Any]], indent: str = "") -> str:
    """Human-readable field list for providers without json_schema support."""
    lines = []
    for field in fields:
        required = " (required)" if field.get("required", True) is not False else " (optional)"
        description = f" - {field['description']}" if field.get("description") else ""
        lines.append(f'{indent}- "{field["name"]}": {field.get("type", "string")}{required}{description}')
        if field.get("type") == "array" and field.get("items"):
            lines.append(f"{indent}  items:")
            lines.append(describe_schema([field["items"]], indent + "    "))
        if field.get("type") == "object" and field.get("properties"):
            lines.append(f"{indent}  properties:")
            lines.append(describe_schema(field["properties"], indent + "    "))
    return "\n".join(lines)


def parse_ai_json(content: str) -> Any:
    """
    Parse JSON from a model response, tolerating markdown code fences.

    Raises:
        ValueError: If the content is not JSON
    """
    cleaned = content.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return json.loads(cleaned.strip())


def _schema_fields(output_schema: Any) -> List[Dict[str, Any]]:
    if not isinstance(output_schema, dict):
        return []
    fields = output_schema.get("fields") or []
    return [f for f in fields if isinstance(f, dict) and f.get("name")]


def _numeric_option(ctx: NodeContext, key: str, default: Any, cast: Callable[[Any], Any]) -> Any:
    value = ctx.data.get(key)
    if value is None:
        return default
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise NodeConfigurationError(ctx.node_id, f"{key} must be a number, got {value!r}")


class AiRequestHandler(NodeHandler):
    """
    Ask a chat model and return its answer.

    Example:
        {
            "id": "classify",
            "type": "ai-request",
            "data": {
                "apiKey": "sk-...",
                "model": "gpt-4o-mini",
                "systemPrompt": "You triage support tickets.",
                "prompt": "Classify: {{trigger.body.text}}",
                "outputSchema": {
                    "name": "triage",
                    "fields": [
                        {"name": "category", "type": "string"},
                        {"name": "urgent", "type": "boolean"}
                    ]
                }
            }
        }
    """

    node_type = NodeType.AI_REQUEST
    display_name = "AI Request"

    async def execute(self, ctx: NodeContext) -> Dict[str, Any]:
        api_key = self.require(ctx, "apiKey", "AI API key not configured")
        prompt = self.require(ctx, "prompt", "Prompt is required")

        base_url = str(ctx.data.get("baseUrl") or ctx.config.ai_base_url).rstrip("/")
        model = ctx.data.get("model") or ctx.config.ai_model
        self.check_egress(ctx, base_url)

        messages = []
        system_prompt = ctx.data.get("systemPrompt")
        if system_prompt and str(system_prompt).strip():
            messages.append({"role": "system", "content": str(system_prompt)})
        messages.append({"role": "user", "content": str(prompt)})

        fields = _schema_fields(ctx.data.get("outputSchema"))
        provider = detect_provider(base_url)
        timeout_s = timeout_seconds(ctx.data.get("timeout"), ctx.config.ai_timeout_ms)

        request = {
            "model": model,
            "messages": messages,
            "temperature": _numeric_option(ctx, "temperature", ctx.config.ai_temperature, float),
            "max_tokens": _numeric_option(ctx, "maxTokens", ctx.config.ai_max_tokens, int),
        }

        client = AsyncOpenAI(
            api_key=str(api_key),
            base_url=base_url,
            timeout=timeout_s,
            max_retries=0,  # retries belong to the node's retry policy
            http_client=ctx.http_client,
        )
        self.logger.debug(
            f"AI request to {base_url} with model {model} (provider: {provider})",
            extra={"execution_id": ctx.execution_id, "node_id": ctx.node_id}
        )
        started = time.monotonic()
        try:
            if fields and provider == "openai":
                response = await self._complete_with_json_schema(ctx, client, request, fields)
            elif fields:
                response = await client.chat.completions.create(**self._json_object_request(request, fields))
            else:
                response = await client.chat.completions.create(**request)
        except APITimeoutError:
            raise NodeTimeoutError(
                ctx.node_id,
                f"AI request timed out after {int(timeout_s)} seconds",
                int(timeout_s * 1000),
            )
        except AuthenticationError as e:
            raise NodeConfigurationError(ctx.node_id, f"AI API authentication failed: {e.message}")
        except APIStatusError as e:
            retryable = e.status_code == 429 or e.status_code >= 500
            raise TransientNodeError(ctx.node_id, e.message, retryable=retryable, details={"status": e.status_code})
        except APIConnectionError as e:
            raise TransientNodeError(ctx.node_id, f"AI request failed: {e.message}")
        finally:
            # The engine's shared client outlives this call
            if ctx.http_client is None:
                await client.close()

        duration = int((time.monotonic() - started) * 1000)
        if not response.choices or response.choices[0].message.content is None:
            raise TransientNodeError(ctx.node_id, "No content in AI response")

        content: Any = response.choices[0].message.content
        if fields:
            try:
                content = parse_ai_json(content)
            except ValueError as e:
                self.logger.warning(f"Failed to parse JSON: {e}", extra={"node_id": ctx.node_id})

        usage = response.usage
        return {
            "content": content,
            "model": response.model or model,
            "usage": {
                "promptTokens": usage.prompt_tokens if usage else 0,
                "completionTokens": usage.completion_tokens if usage else 0,
                "totalTokens": usage.total_tokens if usage else 0,
            },
            "duration": duration,
        }

    async def _complete_with_json_schema(self, ctx: NodeContext, client: AsyncOpenAI,
                                         request: Dict[str, Any], fields: List[Dict[str, Any]]):
        output_schema = ctx.data.get("outputSchema") or {}
        json_schema: Dict[str, Any] = {
            "name": output_schema.get("name") or "response",
            "schema": build_json_schema(fields),
            "strict": True,
        }
        if output_schema.get("description"):
            json_schema["description"] = output_schema["description"]

        try:
            return await client.chat.completions.create(
                **request,
                response_format={"type": "json_schema", "json_schema": json_schema},
            )
        except BadRequestError as e:
            if "response_format" not in e.message and "json_schema" not in e.message:
                raise
            self.logger.warning(
                "json_schema not supported, falling back to json_object mode",
                extra={"node_id": ctx.node_id}
            )
            return await client.chat.completions.create(**self._json_object_request(request, fields))

    def _json_object_request(self, request: Dict[str, Any],
                             fields: List[Dict[str, Any]]) -> Dict[str, Any]:
        instruction = (
            "You must respond with a valid JSON object. Do not include any text outside the JSON.\n\n"
            f"REQUIRED JSON STRUCTURE:\n{describe_schema(fields)}"
        )
        messages: List[Dict[str, str]] = list(request["messages"])
        if messages[0]["role"] == "system":
            messages[0] = {"role": "system", "content": f"{messages[0]['content']}\n\n{instruction}"}
        else:
            messages.insert(0, {"role": "system", "content": instruction})
        return {**request, "messages": messages, "response_format": {"type": "json_object"}}
