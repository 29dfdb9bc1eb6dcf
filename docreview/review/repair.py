"""Best-effort repair of checklist-extraction output cut off by the token limit."""

from __future__ import annotations

import json
import logging

from .errors import UnrepairableOutputError

logger = logging.getLogger("docreview")


def repair_truncated_checklist_json(text: str) -> str:
    """
    Close a truncated ``{"isChecklistDocument": ..., "newChecklists": [...]}`` object.

    The fix is chosen from the last character of the output:

    - ``"``: close the array and the object.
    - ``]``: close the object.
    - ``,``: drop the comma, then close the array and the object.
    - anything else: close the string, the array and the object, and drop the
      last array element since it was cut mid-token.

    Only covers truncation inside a ``newChecklists`` string value. A cut inside
    a key or a non-string token is reported as unrepairable.

    Raises:
        UnrepairableOutputError: if the patched text still does not parse.
    """
    try:
        json.loads(text)
        return text
    except json.JSONDecodeError:
        pass

    stripped = text.rstrip()
    drop_last_item = False
    if stripped.endswith('"'):
        repaired = stripped + "]}"
    elif stripped.endswith("]"):
        repaired = stripped + "}"
    elif stripped.endswith(","):
        repaired = stripped[:-1] + "]}"
    else:
        repaired = stripped + '"]}'
        drop_last_item = True

    try:
        parsed = json.loads(repaired)
    except json.JSONDecodeError as exc:
        logger.error("Failed to repair truncated checklist output: %s", exc)
        raise UnrepairableOutputError() from exc

    items = parsed.get("newChecklists") if isinstance(parsed, dict) else None
    if not isinstance(items, list):
        logger.error("Repaired checklist output has no newChecklists array")
        raise UnrepairableOutputError()

    if drop_last_item and items:
        items.pop()
    return json.dumps(parsed, ensure_ascii=False)


__all__ = ["repair_truncated_checklist_json"]
