from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ..services.llm_client import LLMError, TextGenerator
from .errors import ExtractionLimitExceededError, NoChecklistExtractedError, NotChecklistDocumentError, ReviewError
from .messages import build_document_message
from .models import DocumentType, ReviewDocument, RunOutcome, StepResult
from .prompts import build_extraction_prompt, build_topic_checklist_prompt, build_topic_extraction_prompt
from .repair import repair_truncated_checklist_json

if TYPE_CHECKING:
    from ..services.store import ReviewStore

logger = logging.getLogger("docreview")

EXTRACTION_STEP = "checklistExtraction"


class ExtractionOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_checklist_document: bool = Field(
        alias="isChecklistDocument",
        description="Whether the given source is a checklist document",
    )
    new_checklists: list[str] = Field(
        default_factory=list,
        alias="newChecklists",
        description="Newly extracted checklist items",
    )


class ExtractedTopic(BaseModel):
    topic: str = Field(description="Extracted topic")
    reason: str = Field(default="", description="Why the topic needs its own checklist items")


class TopicsOutput(BaseModel):
    topics: list[ExtractedTopic] = Field(default_factory=list, description="Topics of the document")


class TopicChecklistItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    checklist_item: str = Field(alias="checklistItem", description="Checklist item")
    reason: str = Field(default="", description="Why the checklist item is valuable")


class TopicChecklistOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    checklist_items: list[TopicChecklistItem] = Field(
        default_factory=list,
        alias="checklistItems",
        description="Checklist items for the given topic",
    )


def _failure_text(exc: Exception) -> str:
    return str(exc) or type(exc).__name__


class ChecklistExtractionPipeline:
    """
    Builds the system checklist of a review session from uploaded source documents.

    Checklist documents are processed one task per file: the model is asked
    repeatedly, each time with the items found so far, until it returns a
    complete (not truncated) answer or ``max_attempts`` is reached.

    General documents are read together. The model first lists their topics,
    then authors checklist items for each topic in its own call. A topic that
    yields nothing is not an error; a run that yields nothing at all is.

    Items are persisted as soon as they are found.
    """

    def __init__(
        self,
        store: "ReviewStore",
        generator: TextGenerator,
        *,
        max_attempts: int = 5,
        concurrency: int = 4,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.generator = generator
        self.max_attempts = max_attempts
        self.concurrency = max(1, concurrency)

    async def run(
        self,
        session_id: str,
        files: Sequence[ReviewDocument],
        document_type: DocumentType = "checklist",
        *,
        checklist_requirements: Optional[str] = None,
    ) -> RunOutcome:
        logger.info(
            "Extracting checklist for session %s from %s %s file(s)", session_id, len(files), document_type
        )
        await self.store.delete_system_items(session_id)

        if document_type == "general":
            errors = await self._run_general(session_id, files, checklist_requirements)
        else:
            errors = await self._run_checklist(session_id, files)

        if errors:
            return RunOutcome("success", steps={EXTRACTION_STEP: StepResult("failed", "\n".join(errors))})
        return RunOutcome("success", steps={EXTRACTION_STEP: StepResult("success")})

    # ------------------------------------------------------------------
    # Checklist documents
    # ------------------------------------------------------------------
    async def _run_checklist(self, session_id: str, files: Sequence[ReviewDocument]) -> list[str]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def worker(document: ReviewDocument) -> Optional[str]:
            async with semaphore:
                try:
                    items = await self.extract_file(session_id, document)
                except (ReviewError, LLMError) as exc:
                    logger.error("Checklist extraction failed for %s: %s", document.name, exc)
                    return f"{document.name}: {exc}"
                except Exception as exc:
                    logger.exception("Unexpected error while extracting checklist from %s", document.name)
                    return f"{document.name}: {_failure_text(exc)}"
                logger.info("Extracted %s checklist items from %s", len(items), document.name)
                return None

        return [error for error in await asyncio.gather(*(worker(doc) for doc in files)) if error]

    async def extract_file(self, session_id: str, document: ReviewDocument) -> list[str]:
        """Run the extraction loop for one checklist file and return the items it persisted."""

        message = build_document_message([document], "Please extract checklist items from this document")
        accumulated: list[str] = []

        for attempt in range(1, self.max_attempts + 1):
            truncated = False

            def repair(text: str) -> str:
                nonlocal truncated
                truncated = True
                return repair_truncated_checklist_json(text)

            messages = [
                {"role": "system", "content": build_extraction_prompt(accumulated)},
                message,
            ]
            logger.debug("Extraction attempt %s/%s for %s", attempt, self.max_attempts, document.name)
            output = await self.generator.generate(messages, ExtractionOutput, repair=repair)

            if not output.is_checklist_document:
                raise NotChecklistDocumentError(document.name)

            new_items = self._new_items(output.new_checklists, accumulated)
            if not accumulated and not new_items:
                raise NoChecklistExtractedError(document.name)

            for content in new_items:
                await self.store.create_item(session_id, content, "system")
            accumulated.extend(new_items)

            if not truncated:
                return accumulated
            logger.info(
                "Output for %s was truncated after %s items, asking for the rest",
                document.name,
                len(accumulated),
            )

        raise ExtractionLimitExceededError(document.name, self.max_attempts)

    @staticmethod
    def _new_items(candidates: Sequence[str], accumulated: Sequence[str] | set[str]) -> list[str]:
        known = set(accumulated)
        fresh: list[str] = []
        for content in candidates:
            if not content.strip() or content in known:
                continue
            known.add(content)
            fresh.append(content)
        return fresh

    # ------------------------------------------------------------------
    # General documents
    # ------------------------------------------------------------------
    async def _run_general(
        self,
        session_id: str,
        files: Sequence[ReviewDocument],
        requirements: Optional[str],
    ) -> list[str]:
        names = ", ".join(doc.name for doc in files)
        try:
            topics = await self.extract_topics(files, requirements=requirements)
        except (ReviewError, LLMError) as exc:
            logger.error("Topic extraction failed for %s: %s", names, exc)
            return [f"{names}: {exc}"]
        except Exception as exc:
            logger.exception("Unexpected error while extracting topics from %s", names)
            return [f"{names}: {_failure_text(exc)}"]

        if not topics:
            return [str(NoChecklistExtractedError(names))]

        semaphore = asyncio.Semaphore(self.concurrency)
        known: set[str] = set()

        async def worker(topic: str) -> Optional[str]:
            async with semaphore:
                try:
                    created = await self.create_topic_items(
                        session_id, files, topic, known, requirements=requirements
                    )
                except (ReviewError, LLMError) as exc:
                    logger.error("Checklist creation failed for topic '%s': %s", topic, exc)
                    return f"{topic}: {exc}"
                except Exception as exc:
                    logger.exception("Unexpected error while creating checklist for topic '%s'", topic)
                    return f"{topic}: {_failure_text(exc)}"
                if not created:
                    logger.warning("Topic '%s' produced no checklist items", topic)
                return None

        errors = [error for error in await asyncio.gather(*(worker(topic) for topic in topics)) if error]
        if not errors and not known:
            errors.append(str(NoChecklistExtractedError(names)))
        return errors

    async def extract_topics(
        self,
        files: Sequence[ReviewDocument],
        *,
        requirements: Optional[str] = None,
    ) -> list[str]:
        messages = [
            {"role": "system", "content": build_topic_extraction_prompt(requirements)},
            build_document_message(files, "Please extract topics from this document"),
        ]
        output = await self.generator.generate(messages, TopicsOutput)
        topics = [topic.topic.strip() for topic in output.topics if topic.topic.strip()]
        logger.debug("Extracted topics: %s", topics)
        return topics

    async def create_topic_items(
        self,
        session_id: str,
        files: Sequence[ReviewDocument],
        topic: str,
        known: set[str],
        *,
        requirements: Optional[str] = None,
    ) -> list[str]:
        """Author and persist checklist items for one topic; ``known`` is shared across topics."""

        messages = [
            {"role": "system", "content": build_topic_checklist_prompt(topic, requirements)},
            build_document_message(files, f"Please create checklist items from this document for topic: {topic}"),
        ]
        output = await self.generator.generate(messages, TopicChecklistOutput)

        new_items = self._new_items([item.checklist_item for item in output.checklist_items], known)
        # claimed before the first await; topics run concurrently
        known.update(new_items)
        for content in new_items:
            await self.store.create_item(session_id, content, "system")
        return new_items


__all__ = [
    "ChecklistExtractionPipeline",
    "EXTRACTION_STEP",
    "ExtractionOutput",
    "TopicChecklistOutput",
    "TopicsOutput",
]
