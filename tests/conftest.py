from __future__ import annotations

import asyncio
import re
from typing import Any, Callable, Optional

import pytest
from pydantic import BaseModel

from docreview.review.models import ReviewDocument
from docreview.services.llm_client import parse_structured_output
from docreview.services.store import InMemoryReviewStore


class ScriptedGenerator:
    """
    Stand-in for the text-generation service.

    Replies come from ``responses`` in order, or from ``handler(messages, schema)``.
    A reply may be an exception (raised), a raw string (parsed like real model
    output, repair hook included), a dict (validated) or a model instance.
    """

    def __init__(self, responses: Optional[list] = None, *, handler: Optional[Callable[..., Any]] = None):
        self.responses = list(responses or [])
        self.handler = handler
        self.calls: list[dict] = []

    async def generate(self, messages, schema, *, repair=None):
        self.calls.append({"messages": list(messages), "schema": schema, "repair": repair})
        reply = self.handler(messages, schema) if self.handler else self.responses.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, str):
            return parse_structured_output(reply, schema, repair=repair)
        if isinstance(reply, dict):
            return schema.model_validate(reply)
        assert isinstance(reply, BaseModel)
        return reply

    def calls_for(self, schema_name: str) -> list[dict]:
        return [call for call in self.calls if call["schema"].__name__ == schema_name]


def system_prompt(messages) -> str:
    return messages[0]["content"]


def requested_ids(messages) -> list[int]:
    return [int(match) for match in re.findall(r"ID: (\d+)", system_prompt(messages))]


def document_name(messages) -> str:
    first_part = messages[-1]["content"][1]["text"]
    return first_part.splitlines()[0].lstrip("# ").strip()


def run(coro):
    return asyncio.run(coro)


def make_document(name: str, text: str = "document body", file_id: Optional[str] = None) -> ReviewDocument:
    return ReviewDocument(id=file_id or f"file-{name}", name=name, text=text)


async def seed_session(store: InMemoryReviewStore, session_id: str, contents: list[str]) -> list:
    await store.create_session(session_id, "seeded")
    return [await store.create_item(session_id, content, "system") for content in contents]


@pytest.fixture
def store() -> InMemoryReviewStore:
    return InMemoryReviewStore()
