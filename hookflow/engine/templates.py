# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Template Resolver

Resolves {{path}} references in node configuration against the DataContext.

- A string that is exactly one template keeps the referenced value's type
- Embedded templates are stringified (objects/lists as JSON)
- Missing paths resolve to None / empty string instead of failing

JSON-path extraction (`$.trigger.body.items[0]`) is delegated to jmespath.
"""

import json
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

import jmespath
from jmespath.exceptions import JMESPathError

from .exceptions import TemplateValidationError

# {{ trigger.body.id }}
TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

# name | [0] | ["key"] | ['key']
_PATH_TOKEN = re.compile(r"""([^.\[\]]+)|\[(\d+)\]|\[\s*["']([^"']*)["']\s*\]""")


def split_path(path: str) -> List[Any]:
    """Split "node.items[0]["key"]" into ["node", "items", 0, "key"]."""
    parts: List[Any] = []
    for name, index, quoted in _PATH_TOKEN.findall(path.strip()):
        if index:
            parts.append(int(index))
        elif quoted:
            parts.append(quoted)
        elif name.strip():
            parts.append(name.strip())
    return parts


def get_path(data: Any, path: str) -> Any:
    """
    Walk a dotted/bracket path into nested dicts and lists.

    Returns None when any segment is missing.
    """
    current = data
    for part in split_path(path):
        if current is None:
            return None
        if isinstance(part, int):
            if isinstance(current, (list, tuple)) and -len(current) <= part < len(current):
                current = current[part]
            elif isinstance(current, Mapping):
                current = current.get(str(part))
            else:
                return None
        elif isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            idx = int(part)
            current = current[idx] if idx < len(current) else None
        else:
            return None
    return current


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def has_templates(value: str) -> bool:
    return isinstance(value, str) and bool(TEMPLATE_PATTERN.search(value))


def extract_template_paths(value: str) -> List[str]:
    return [match.strip() for match in TEMPLATE_PATTERN.findall(value or "")]


def resolve_string(template: str, context: Mapping[str, Any]) -> Any:
    """Resolve templates in a single string."""
    whole = TEMPLATE_PATTERN.fullmatch(template.strip())
    if whole and template.strip() == template:
        return get_path(context, whole.group(1))

    return TEMPLATE_PATTERN.sub(
        lambda match: stringify(get_path(context, match.group(1))),
        template
    )


def resolve_value(value: Any, context: Mapping[str, Any]) -> Any:
    """Resolve templates recursively in strings, dicts and lists."""
    if isinstance(value, str):
        return resolve_string(value, context) if has_templates(value) else value
    if isinstance(value, dict):
        return {key: resolve_value(item, context) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_value(item, context) for item in value]
    return value


def bind_templates(expression: str, context: Mapping[str, Any]) -> tuple:
    """
    Replace {{path}} in an expression with generated variable names.

    Values are bound as variables instead of being pasted into the source,
    so resolved data can never change the expression's syntax.

    Returns:
        (rewritten_expression, bindings)
    """
    bindings: Dict[str, Any] = {}

    def _bind(match):
        name = f"tpl_{len(bindings)}"
        bindings[name] = get_path(context, match.group(1))
        return name

    return TEMPLATE_PATTERN.sub(_bind, expression), bindings


# =============================================================================
# JSON PATH
# =============================================================================

def normalize_json_path(expression: str) -> str:
    expression = expression.strip()
    for prefix in ("$.", "@.", "$", "@"):
        if expression.startswith(prefix):
            return expression[len(prefix):]
    return expression


def evaluate_json_path(expression: str, data: Any) -> Any:
    """
    Extract a value with a JSON-path style expression.

    `$` is the root; the remainder is evaluated as a jmespath query.

    Raises:
        ValueError: If the expression is not a valid query
    """
    query = normalize_json_path(expression)
    if not query:
        return data
    try:
        return jmespath.search(query, data)
    except JMESPathError as e:
        raise ValueError(f"Invalid JSON path {expression!r}: {e}")


# =============================================================================
# REQUIRED FIELDS
# =============================================================================

def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def check_required_fields(node_id: str, resolved: Mapping[str, Any], required: Optional[Iterable[str]]) -> None:
    """
    Raises:
        TemplateValidationError: If any required field resolved to an empty value
    """
    missing = [field for field in (required or []) if is_empty(get_path(resolved, field))]
    if missing:
        raise TemplateValidationError(node_id, missing)
