from __future__ import annotations

import itertools
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Dict, Optional, Protocol, Tuple

from ..review.models import ChecklistItem, Provenance, ReviewResult, ReviewSession

logger = logging.getLogger("docreview")


class ReviewStore(Protocol):
    """Persistence of sessions, checklist items and graded results."""

    async def get_session(self, session_id: str) -> Optional[ReviewSession]: ...

    async def create_session(self, session_id: str, title: str) -> ReviewSession: ...

    async def update_session_title(self, session_id: str, title: str) -> None: ...

    async def delete_system_items(self, session_id: str) -> None: ...

    async def create_item(self, session_id: str, content: str, provenance: Provenance) -> ChecklistItem: ...

    async def list_items(self, session_id: str) -> list[ChecklistItem]: ...

    async def upsert_result(
        self,
        checklist_id: int,
        file_id: str,
        grade: str,
        comment: str,
        *,
        file_name: str | None = None,
    ) -> ReviewResult: ...

    async def list_results(self, session_id: str) -> list[ReviewResult]: ...

    async def delete_results(self, session_id: str) -> None: ...


class InMemoryReviewStore:
    """
    Dict-backed ``ReviewStore``.

    Results are keyed by ``(checklist_id, file_id)`` so re-grading overwrites
    the previous row. ``save``/``load`` keep a JSON snapshot between CLI runs.
    """

    def __init__(self) -> None:
        self.sessions: Dict[str, ReviewSession] = {}
        self.items: Dict[int, ChecklistItem] = {}
        self.results: Dict[Tuple[int, str], ReviewResult] = {}
        self._ids = itertools.count(1)

    async def get_session(self, session_id: str) -> Optional[ReviewSession]:
        return self.sessions.get(session_id)

    async def create_session(self, session_id: str, title: str) -> ReviewSession:
        session = ReviewSession(session_id=session_id, title=title)
        self.sessions[session_id] = session
        return session

    async def update_session_title(self, session_id: str, title: str) -> None:
        session = self.sessions.get(session_id)
        if session is None:
            raise KeyError(f"unknown review session: {session_id}")
        session.title = title

    async def delete_system_items(self, session_id: str) -> None:
        doomed = {
            item_id
            for item_id, item in self.items.items()
            if item.session_id == session_id and item.provenance == "system"
        }
        for item_id in doomed:
            del self.items[item_id]
        for key in [key for key in self.results if key[0] in doomed]:
            del self.results[key]
        if doomed:
            logger.debug("Deleted %s system checklist items of session %s", len(doomed), session_id)

    async def create_item(self, session_id: str, content: str, provenance: Provenance) -> ChecklistItem:
        item = ChecklistItem(id=next(self._ids), session_id=session_id, content=content, provenance=provenance)
        self.items[item.id] = item
        return item

    async def list_items(self, session_id: str) -> list[ChecklistItem]:
        return [item for item in self.items.values() if item.session_id == session_id]

    async def upsert_result(
        self,
        checklist_id: int,
        file_id: str,
        grade: str,
        comment: str,
        *,
        file_name: str | None = None,
    ) -> ReviewResult:
        if checklist_id not in self.items:
            raise KeyError(f"unknown checklist item: {checklist_id}")
        result = ReviewResult(
            checklist_id=checklist_id,
            file_id=file_id,
            grade=grade,
            comment=comment,
            file_name=file_name,
        )
        self.results[(checklist_id, file_id)] = result
        return result

    async def list_results(self, session_id: str) -> list[ReviewResult]:
        return [
            result
            for (checklist_id, _), result in self.results.items()
            if self.items[checklist_id].session_id == session_id
        ]

    async def delete_results(self, session_id: str) -> None:
        stale = [key for key in self.results if self.items[key[0]].session_id == session_id]
        for key in stale:
            del self.results[key]
        if stale:
            logger.debug("Deleted %s review results of session %s", len(stale), session_id)

    # ------------------------------------------------------------------
    # Snapshot persistence
    # ------------------------------------------------------------------
    def save(self, path: str | Path) -> None:
        payload = {
            "sessions": [asdict(session) for session in self.sessions.values()],
            "items": [asdict(item) for item in self.items.values()],
            "results": [asdict(result) for result in self.results.values()],
        }
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")

    @classmethod
    def load(cls, path: str | Path) -> "InMemoryReviewStore":
        store = cls()
        path = Path(path)
        if not path.exists():
            return store

        payload = json.loads(path.read_text(encoding="utf-8"))
        for row in payload.get("sessions", []):
            store.sessions[row["session_id"]] = ReviewSession(**row)
        for row in payload.get("items", []):
            store.items[row["id"]] = ChecklistItem(**row)
        for row in payload.get("results", []):
            result = ReviewResult(**row)
            store.results[(result.checklist_id, result.file_id)] = result

        store._ids = itertools.count(max(store.items, default=0) + 1)
        return store


__all__ = ["InMemoryReviewStore", "ReviewStore"]
