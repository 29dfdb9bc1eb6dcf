from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from .errors import RunInProgressError

logger = logging.getLogger("docreview")


@dataclass
class RunHandle:
    session_id: str
    token: int
    task: "asyncio.Task[object]"
    cancel_requested: bool = field(default=False)

    def cancel(self) -> None:
        self.cancel_requested = True
        self.task.cancel()


class SessionRunRegistry:
    """
    In-flight pipeline runs keyed by review session id.

    A session holds at most one live run; registering a second one while the
    first is still running raises ``RunInProgressError``.

    Every registration gets a fresh, monotonically increasing token. A run
    that finishes only removes its own handle, so a late cleanup never drops a
    newer run registered under the same session id.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, RunHandle] = {}
        self._tokens = itertools.count(1)

    def register(self, session_id: str, task: "asyncio.Task[object]") -> RunHandle:
        previous = self._runs.get(session_id)
        if previous is not None and not previous.task.done():
            logger.warning("Session %s already has a running pipeline (token %s)", session_id, previous.token)
            raise RunInProgressError()
        handle = RunHandle(session_id=session_id, token=next(self._tokens), task=task)
        self._runs[session_id] = handle
        return handle

    def get(self, session_id: str) -> Optional[RunHandle]:
        return self._runs.get(session_id)

    def is_running(self, session_id: str) -> bool:
        handle = self._runs.get(session_id)
        return handle is not None and not handle.task.done()

    def unregister(self, handle: RunHandle) -> bool:
        current = self._runs.get(handle.session_id)
        if current is None or current.token != handle.token:
            return False
        del self._runs[handle.session_id]
        return True

    def cancel(self, session_id: str, *, token: Optional[int] = None) -> bool:
        """
        Signal the run of ``session_id`` to stop at its next await point.

        With ``token`` set, only the run holding that token is cancelled.
        Returns False when there is nothing (matching) to cancel.
        """
        handle = self._runs.get(session_id)
        if handle is None or (token is not None and handle.token != token):
            return False
        handle.cancel()
        del self._runs[session_id]
        logger.info("Cancelled pipeline run %s of session %s", handle.token, session_id)
        return True

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._runs

    def __len__(self) -> int:
        return len(self._runs)


__all__ = ["RunHandle", "SessionRunRegistry"]
