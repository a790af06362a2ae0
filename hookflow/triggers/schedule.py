# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Schedule Trigger helpers

Cron validation, next-run calculation and the payload a scheduled firing
hands to the engine. The cron daemon itself lives outside hookflow.
"""

import logging
from datetime import datetime, timezone as dt_timezone
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter, CroniterBadCronError, CroniterBadDateError

logger = logging.getLogger(__name__)


def validate_cron(expression: str) -> bool:
    """True if croniter accepts the expression (5 fields, or 6 with seconds)."""
    if not expression or not isinstance(expression, str):
        return False
    fields = expression.split()
    if len(fields) not in (5, 6):
        return False
    return croniter.is_valid(expression)


def _resolve_zone(timezone: Optional[str]):
    if not timezone:
        return dt_timezone.utc
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {timezone!r}, falling back to UTC")
        return dt_timezone.utc


def next_run_time(
    expression: str,
    timezone: Optional[str] = None,
    base: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    Next firing time for a cron expression.

    Args:
        expression: Cron expression
        timezone: IANA zone name the schedule is defined in (default UTC)
        base: Reference time (default now)

    Returns:
        Timezone-aware datetime, or None if the expression is invalid
    """
    if not validate_cron(expression):
        return None

    zone = _resolve_zone(timezone)
    start = base or datetime.now(zone)
    if start.tzinfo is None:
        start = start.replace(tzinfo=zone)
    else:
        start = start.astimezone(zone)

    try:
        return croniter(expression, start).get_next(datetime)
    except (CroniterBadCronError, CroniterBadDateError) as e:
        logger.warning(f"Cannot compute next run for {expression!r}: {e}")
        return None


def build_schedule_trigger_data(
    trigger_id: Optional[str] = None,
    scheduled_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Payload seeded under the "trigger" context key for a scheduled run."""
    now = datetime.now(dt_timezone.utc).isoformat()
    payload: Dict[str, Any] = {
        "type": "schedule",
        "scheduledAt": scheduled_at.isoformat() if scheduled_at else now,
        "timestamp": now,
    }
    if trigger_id:
        payload["triggerId"] = trigger_id
    return payload
