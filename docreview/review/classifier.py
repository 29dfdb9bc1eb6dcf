from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from .models import RunStatus

UNKNOWN_FAILURE = "processing failed for an unknown reason"


@dataclass(frozen=True)
class ClassifiedResult:
    status: RunStatus
    message: Optional[str] = None


def _field(obj: Any, name: str, *aliases: str) -> Any:
    for key in (name, *aliases):
        if isinstance(obj, Mapping):
            if key in obj:
                return obj[key]
        elif hasattr(obj, key):
            return getattr(obj, key)
    return None


def _step_values(steps: Any) -> Iterable[Any]:
    if isinstance(steps, Mapping):
        return list(steps.values())
    if isinstance(steps, (list, tuple)):
        return list(steps)
    return []


def classify_run(outcome: Any) -> ClassifiedResult:
    """
    Collapse a pipeline outcome into ``success``, ``failed`` or ``suspended``.

    A hard failure of the run wins over suspension, suspension wins over the
    per-step results, and among the steps the first failed one (in enumeration
    order) supplies the message. An outcome that is neither explicitly
    successful nor made of successful steps counts as a failure. Accepts
    ``RunOutcome`` objects as well as plain mappings and never raises.
    """
    try:
        if outcome is None:
            return ClassifiedResult("failed", UNKNOWN_FAILURE)

        status = _field(outcome, "status")
        if status == "failed":
            error = _field(outcome, "error", "error_message")
            message = getattr(error, "message", None) or (str(error) if error else None)
            return ClassifiedResult("failed", message or UNKNOWN_FAILURE)

        if status == "suspended":
            return ClassifiedResult("suspended")

        steps = _step_values(_field(outcome, "steps", "result"))
        for step in steps:
            if _field(step, "status") == "failed":
                message = _field(step, "error_message", "errorMessage")
                return ClassifiedResult("failed", message or UNKNOWN_FAILURE)

        if status == "success" or (steps and all(_field(step, "status") == "success" for step in steps)):
            return ClassifiedResult("success")
        return ClassifiedResult("failed", UNKNOWN_FAILURE)
    except Exception as exc:  # pragma: no cover - a broken outcome object
        return ClassifiedResult("failed", str(exc) or UNKNOWN_FAILURE)


__all__ = ["ClassifiedResult", "classify_run"]
