from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import PurePath
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Sequence

from ..services.llm_client import OpenAITextGenerator, TextGenerator, create_llm_client
from .categories import CategoryPartitioner
from .classifier import classify_run
from .errors import RunInProgressError, SessionNotFoundError
from .evaluation import ReviewEvaluationPipeline
from .extraction import ChecklistExtractionPipeline
from .models import (
    CancelResult,
    DocumentMode,
    DocumentType,
    EvaluationSettings,
    ReviewDocument,
    RunOutcome,
    RunResult,
)
from .registry import SessionRunRegistry

if TYPE_CHECKING:
    from ..config import Settings
    from ..services.store import ReviewStore

logger = logging.getLogger("docreview")

CANCELLED_MESSAGE = "processing was cancelled"


def generate_review_title(source_names: Sequence[str] = (), *, now: Optional[datetime] = None) -> str:
    if source_names:
        return " / ".join(source_names)
    stamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    return f"New Review-{stamp}"


class ReviewManager:
    """Entry point for running checklist extraction and review evaluation per session."""

    def __init__(
        self,
        store: "ReviewStore",
        generator: TextGenerator,
        *,
        max_items_per_category: int = 3,
        max_categories: int = 20,
        extraction_max_attempts: int = 5,
        evaluation_max_attempts: int = 3,
        extraction_concurrency: int = 4,
        max_question_rounds: int = 3,
        registry: Optional[SessionRunRegistry] = None,
    ) -> None:
        self.store = store
        self.registry = registry or SessionRunRegistry()

        self.extraction = ChecklistExtractionPipeline(
            store,
            generator,
            max_attempts=extraction_max_attempts,
            concurrency=extraction_concurrency,
        )
        self.partitioner = CategoryPartitioner(
            generator,
            max_items_per_category=max_items_per_category,
            max_categories=max_categories,
        )
        self.evaluation = ReviewEvaluationPipeline(
            store,
            generator,
            self.partitioner,
            max_attempts=evaluation_max_attempts,
            max_question_rounds=max_question_rounds,
        )

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        store: "ReviewStore",
        generator: Optional[TextGenerator] = None,
    ) -> "ReviewManager":
        if generator is None:
            client = create_llm_client(settings.openai_api_key, settings.openai_base_url)
            generator = OpenAITextGenerator(client, settings.llm_model, temperature=settings.temperature)
        return cls(
            store,
            generator,
            max_items_per_category=settings.max_items_per_category,
            max_categories=settings.max_categories,
            extraction_max_attempts=settings.extraction_max_attempts,
            evaluation_max_attempts=settings.evaluation_max_attempts,
            extraction_concurrency=settings.extraction_concurrency,
            max_question_rounds=settings.max_question_rounds,
        )

    # ------------------------------------------------------------------
    # Checklist extraction
    # ------------------------------------------------------------------
    async def start_extraction(
        self,
        session_id: str,
        files: Sequence[ReviewDocument],
        document_type: DocumentType = "checklist",
        *,
        checklist_requirements: Optional[str] = None,
    ) -> RunResult:
        try:
            outcome = await self._run(
                session_id,
                lambda: self._extract(session_id, files, document_type, checklist_requirements),
            )
        except RunInProgressError as exc:
            logger.warning("Refusing to start checklist extraction for session %s: %s", session_id, exc)
            outcome = RunOutcome("failed", error=str(exc))
        except Exception as exc:
            logger.exception("Checklist extraction failed for session %s", session_id)
            outcome = RunOutcome("failed", error=f"Checklist extraction failed: {exc}")
        return self._to_result(outcome)

    async def _extract(
        self,
        session_id: str,
        files: Sequence[ReviewDocument],
        document_type: DocumentType,
        checklist_requirements: Optional[str],
    ) -> RunOutcome:
        if await self.store.get_session(session_id) is None:
            await self.store.create_session(session_id, generate_review_title())
            logger.info("Created review session %s", session_id)
        return await self.extraction.run(
            session_id,
            files,
            document_type,
            checklist_requirements=checklist_requirements,
        )

    # ------------------------------------------------------------------
    # Review evaluation
    # ------------------------------------------------------------------
    async def start_evaluation(
        self,
        session_id: str,
        files: Sequence[ReviewDocument],
        instructions: Optional[str] = None,
        *,
        comment_format: Optional[str] = None,
        evaluation_settings: Optional[EvaluationSettings] = None,
        document_mode: DocumentMode = "small",
    ) -> RunResult:
        try:
            outcome = await self._run(
                session_id,
                lambda: self._evaluate(
                    session_id,
                    files,
                    instructions,
                    comment_format=comment_format,
                    evaluation_settings=evaluation_settings,
                    document_mode=document_mode,
                ),
            )
        except RunInProgressError as exc:
            logger.warning("Refusing to start review execution for session %s: %s", session_id, exc)
            outcome = RunOutcome("failed", error=str(exc))
        except Exception as exc:
            logger.exception("Review execution failed for session %s", session_id)
            outcome = RunOutcome("failed", error=f"Review execution failed: {exc}")
        return self._to_result(outcome)

    async def _evaluate(
        self,
        session_id: str,
        files: Sequence[ReviewDocument],
        instructions: Optional[str],
        *,
        comment_format: Optional[str],
        evaluation_settings: Optional[EvaluationSettings],
        document_mode: DocumentMode,
    ) -> RunOutcome:
        session = await self.store.get_session(session_id)
        if session is None:
            return RunOutcome("failed", error=str(SessionNotFoundError(session_id)))

        title = generate_review_title([PurePath(doc.name).stem for doc in files])
        await self.store.update_session_title(session_id, title)

        return await self.evaluation.run(
            session_id,
            files,
            evaluation_settings=evaluation_settings,
            additional_instructions=instructions or session.additional_instructions,
            comment_format=comment_format or session.comment_format,
            document_mode=document_mode,
        )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------
    def cancel(self, session_id: str) -> CancelResult:
        if self.registry.cancel(session_id):
            return CancelResult(ok=True)
        logger.warning("No running pipeline to cancel for session %s", session_id)
        return CancelResult(ok=False, error="no running process found for this review session")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _run(self, session_id: str, pipeline: Callable[[], Awaitable[RunOutcome]]) -> RunOutcome:
        # checked before the task exists; nothing awaits between here and register()
        if self.registry.is_running(session_id):
            raise RunInProgressError()
        task = asyncio.ensure_future(pipeline())
        handle = self.registry.register(session_id, task)
        try:
            return await task
        except asyncio.CancelledError:
            if not handle.cancel_requested:
                raise
            logger.info("Pipeline run %s of session %s stopped after cancellation", handle.token, session_id)
            return RunOutcome("failed", error=CANCELLED_MESSAGE)
        finally:
            self.registry.unregister(handle)

    @staticmethod
    def _to_result(outcome: RunOutcome) -> RunResult:
        classified = classify_run(outcome)
        return RunResult(classified.status, classified.message)


__all__ = ["ReviewManager", "generate_review_title"]
