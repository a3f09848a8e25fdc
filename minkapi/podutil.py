"""Helpers for pod status conditions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def get_pod_condition(
    status: dict[str, Any] | None, condition_type: str
) -> tuple[int, dict[str, Any] | None]:
    """Return the index and condition of ``condition_type`` in ``status``, or ``(-1, None)``."""
    if status is None:
        return -1, None
    for index, condition in enumerate(status.get("conditions") or []):
        if condition.get("type") == condition_type:
            return index, condition
    return -1, None


def update_pod_condition(status: dict[str, Any], condition: dict[str, Any]) -> bool:
    """Add or replace a condition in ``status``.

    The transition time is set to now unless the condition status is unchanged.
    Returns True if the condition was added or any of its fields changed.
    """
    condition["lastTransitionTime"] = _now()
    index, old = get_pod_condition(status, condition.get("type"))

    if old is None:
        conditions = status.get("conditions") or []
        conditions.append(condition)
        status["conditions"] = conditions
        return True

    if condition.get("status") == old.get("status"):
        condition["lastTransitionTime"] = old.get("lastTransitionTime")

    is_equal = all(
        (condition.get(field) or None) == (old.get(field) or None)
        for field in ("status", "reason", "message", "lastProbeTime", "lastTransitionTime")
    )
    status["conditions"][index] = condition
    return not is_equal