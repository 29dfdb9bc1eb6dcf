from __future__ import annotations

import logging
from collections import OrderedDict
from typing import TYPE_CHECKING, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ..services.llm_client import TextGenerator
from .categories import CategoryPartitioner
from .errors import MissingChecklistError
from .messages import build_document_message
from .models import (
    Category,
    ChecklistItem,
    DocumentMode,
    EvaluationSettings,
    ReviewDocument,
    RunOutcome,
    StepResult,
)
from .prompts import (
    DOCUMENT_SUMMARY_SYSTEM_PROMPT,
    build_answer_prompt,
    build_questions_prompt,
    build_readiness_prompt,
    build_review_prompt,
    format_checklist,
)

if TYPE_CHECKING:
    from ..services.store import ReviewStore

logger = logging.getLogger("docreview")

CLASSIFY_STEP = "classifyChecklists"
REVIEW_STEP = "reviewExecution"
INCOMPLETE_GRADING = "could not complete grading for all checklist items"


class GradedItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    checklist_id: int = Field(alias="checklistId")
    evaluation: str = Field(description="evaluation label")
    comment: str = Field(description="evaluation comment")


class GradingOutput(BaseModel):
    results: list[GradedItem] = Field(default_factory=list, description="One result per checklist item")


class TopicSummary(BaseModel):
    topic: str = Field(description="Topic title")
    summary: str = Field(description="Concise summary of the topic")


class DocumentSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    topic_and_summary_list: list[TopicSummary] = Field(
        default_factory=list,
        alias="topicAndSummaryList",
        description="Topics of the document with their summaries",
    )


class ReviewQuestions(BaseModel):
    questions: list[str] = Field(default_factory=list, description="Questions to answer from the full text")


class ReviewReadiness(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ready: bool = Field(default=False, description="Whether the notes are enough to review every item")
    additional_questions: list[str] = Field(
        default_factory=list,
        alias="additionalQuestions",
        description="Questions still needed before the review",
    )


class QuestionAnswer(BaseModel):
    question: str
    answer: str


class QuestionAnswers(BaseModel):
    answers: list[QuestionAnswer] = Field(default_factory=list, description="One answer per question")


class ReviewNotes:
    """Topic summaries and answered questions that stand in for a large document."""

    def __init__(self, summaries: Sequence[TopicSummary], qna: Sequence[tuple[str, str]] = ()) -> None:
        self.summaries = list(summaries)
        self.qna = list(qna)

    def render(self, document_name: str) -> str:
        lines = [f"# Document: {document_name}", "", "## Topics and Summaries:"]
        for summary in self.summaries:
            lines.append(f"### {summary.topic}\n{summary.summary}")
        lines.append("")
        lines.append("## Q&A Information:")
        if self.qna:
            lines.extend(f"Q: {question}\nA: {answer}" for question, answer in self.qna)
        else:
            lines.append("(none)")
        return "\n".join(lines)


class ErrorLedger:
    """Per-run, insertion-ordered mapping of file name to error messages."""

    def __init__(self) -> None:
        self._entries: "OrderedDict[str, list[str]]" = OrderedDict()

    def add(self, file_name: str, message: str) -> None:
        self._entries.setdefault(file_name, []).append(message)

    def get(self, file_name: str) -> list[str]:
        return list(self._entries.get(file_name, []))

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def render(self) -> str:
        return "\n".join(
            f"{file_name}:\n  - " + "\n  - ".join(errors) for file_name, errors in self._entries.items()
        )


def _failure_text(exc: Exception) -> str:
    return str(exc) or type(exc).__name__


class ReviewEvaluationPipeline:
    """
    Grades every target file against every checklist category.

    Category/file pairs are processed one after another. Each pair gets up to
    ``max_attempts`` model calls; after every call the graded items are
    persisted and removed from the pair's remaining set, so a retry only asks
    about what is still missing.

    In ``"large"`` document mode the model never sees a file in the grading
    call. The file is summarised by topic once per run, then for each
    category the model asks questions that are answered from the full text
    (up to ``max_question_rounds`` rounds, stopping early once it reports it
    is ready). Grading then works from the summaries and the answers.
    """

    def __init__(
        self,
        store: "ReviewStore",
        generator: TextGenerator,
        partitioner: CategoryPartitioner,
        *,
        max_attempts: int = 3,
        max_question_rounds: int = 3,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.generator = generator
        self.partitioner = partitioner
        self.max_attempts = max_attempts
        self.max_question_rounds = max(1, max_question_rounds)

    async def run(
        self,
        session_id: str,
        files: Sequence[ReviewDocument],
        *,
        evaluation_settings: Optional[EvaluationSettings] = None,
        additional_instructions: Optional[str] = None,
        comment_format: Optional[str] = None,
        document_mode: DocumentMode = "small",
    ) -> RunOutcome:
        items = await self.store.list_items(session_id)
        if not items:
            error = MissingChecklistError(session_id)
            return RunOutcome("success", steps={CLASSIFY_STEP: StepResult("failed", str(error))})

        categories = await self.partitioner.partition(items)
        logger.info(
            "Reviewing %s file(s) in %s mode against %s checklist items in %s categories",
            len(files),
            document_mode,
            len(items),
            len(categories),
        )
        steps = {CLASSIFY_STEP: StepResult("success")}

        # a new run replaces every earlier result of the session
        await self.store.delete_results(session_id)

        settings = evaluation_settings or EvaluationSettings()
        ledger = ErrorLedger()
        summaries: dict[str, list[TopicSummary]] = {}
        for category in categories:
            for document in files:
                await self._review_pair(
                    category,
                    document,
                    ledger,
                    settings=settings,
                    additional_instructions=additional_instructions,
                    comment_format=comment_format,
                    summaries=summaries if document_mode == "large" else None,
                )

        if ledger:
            message = "Errors occurred while reviewing the following documents:\n" + ledger.render()
            steps[REVIEW_STEP] = StepResult("failed", message)
        else:
            steps[REVIEW_STEP] = StepResult("success")
        return RunOutcome("success", steps=steps)

    async def _review_pair(
        self,
        category: Category,
        document: ReviewDocument,
        ledger: ErrorLedger,
        *,
        settings: EvaluationSettings,
        additional_instructions: Optional[str],
        comment_format: Optional[str],
        summaries: Optional[dict[str, list[TopicSummary]]] = None,
    ) -> list[ChecklistItem]:
        """Grade one category against one file; returns the items left ungraded."""

        remaining = list(category.items)
        notes: Optional[ReviewNotes] = None
        if summaries is not None:
            try:
                notes = await self._prepare_notes(category.items, document, summaries, additional_instructions)
            except Exception as exc:
                logger.warning("Preparing notes for '%s' on %s failed: %s", category.name, document.name, exc)
                ledger.add(document.name, f"{category.name}: {_failure_text(exc)}")
                ledger.add(document.name, INCOMPLETE_GRADING)
                return remaining

        for attempt in range(1, self.max_attempts + 1):
            logger.debug(
                "Grading %s item(s) of '%s' against %s (attempt %s/%s)",
                len(remaining),
                category.name,
                document.name,
                attempt,
                self.max_attempts,
            )
            try:
                graded = await self._grade(
                    remaining,
                    document,
                    notes=notes,
                    settings=settings,
                    additional_instructions=additional_instructions,
                    comment_format=comment_format,
                )
                for result in graded:
                    await self.store.upsert_result(
                        result.checklist_id,
                        document.id,
                        result.evaluation,
                        result.comment,
                        file_name=document.name,
                    )
            except Exception as exc:
                logger.warning("Grading '%s' against %s failed: %s", category.name, document.name, exc)
                ledger.add(document.name, f"{category.name}: {_failure_text(exc)}")
                continue

            graded_ids = {result.checklist_id for result in graded}
            remaining = [item for item in remaining if item.id not in graded_ids]
            if not remaining:
                break

        if remaining:
            logger.warning(
                "Items %s were never graded against %s",
                [item.id for item in remaining],
                document.name,
            )
            ledger.add(document.name, INCOMPLETE_GRADING)
        return remaining

    # ------------------------------------------------------------------
    # Large documents
    # ------------------------------------------------------------------
    async def _prepare_notes(
        self,
        items: Sequence[ChecklistItem],
        document: ReviewDocument,
        summaries: dict[str, list[TopicSummary]],
        additional_instructions: Optional[str],
    ) -> ReviewNotes:
        if document.id not in summaries:
            summaries[document.id] = await self.summarize(document)
        notes = ReviewNotes(summaries[document.id])

        for round_no in range(1, self.max_question_rounds + 1):
            if round_no == 1:
                questions = await self._ask_questions(items, notes, document, additional_instructions)
            else:
                readiness = await self._check_readiness(items, notes, document, additional_instructions)
                if readiness.ready:
                    logger.debug("Notes for %s are ready after %s round(s)", document.name, round_no - 1)
                    break
                questions = readiness.additional_questions
            questions = [question for question in questions if question.strip()]
            if not questions:
                break
            notes.qna.extend(await self.answer_questions(items, document, questions))
        return notes

    async def summarize(self, document: ReviewDocument) -> list[TopicSummary]:
        messages = [
            {"role": "system", "content": DOCUMENT_SUMMARY_SYSTEM_PROMPT},
            build_document_message([document], "Please summarize this document by topic"),
        ]
        output = await self.generator.generate(messages, DocumentSummary)
        logger.info("Summarised %s into %s topic(s)", document.name, len(output.topic_and_summary_list))
        return output.topic_and_summary_list

    async def _ask_questions(
        self,
        items: Sequence[ChecklistItem],
        notes: ReviewNotes,
        document: ReviewDocument,
        additional_instructions: Optional[str],
    ) -> list[str]:
        messages = [
            {"role": "system", "content": build_questions_prompt(items, additional_instructions)},
            {"role": "user", "content": notes.render(document.name)},
        ]
        output = await self.generator.generate(messages, ReviewQuestions)
        return output.questions

    async def _check_readiness(
        self,
        items: Sequence[ChecklistItem],
        notes: ReviewNotes,
        document: ReviewDocument,
        additional_instructions: Optional[str],
    ) -> ReviewReadiness:
        messages = [
            {"role": "system", "content": build_readiness_prompt(items, notes.qna, additional_instructions)},
            {"role": "user", "content": notes.render(document.name)},
        ]
        return await self.generator.generate(messages, ReviewReadiness)

    async def answer_questions(
        self,
        items: Sequence[ChecklistItem],
        document: ReviewDocument,
        questions: Sequence[str],
    ) -> list[tuple[str, str]]:
        message = build_document_message([document], "Please answer the questions from this document")
        listing = "\n".join(f"{idx}. {question}" for idx, question in enumerate(questions, start=1))
        message["content"].append({"type": "text", "text": f"## Questions to Answer:\n{listing}"})
        messages = [{"role": "system", "content": build_answer_prompt(items)}, message]
        output = await self.generator.generate(messages, QuestionAnswers)
        logger.debug("Answered %s of %s question(s) for %s", len(output.answers), len(questions), document.name)
        return [(answer.question, answer.answer) for answer in output.answers]

    # ------------------------------------------------------------------
    # Grading
    # ------------------------------------------------------------------
    async def _grade(
        self,
        remaining: Sequence[ChecklistItem],
        document: ReviewDocument,
        *,
        settings: EvaluationSettings,
        additional_instructions: Optional[str],
        comment_format: Optional[str],
        notes: Optional[ReviewNotes] = None,
    ) -> list[GradedItem]:
        if notes is None:
            message = build_document_message(
                [document], "Please review this document against the provided checklist items"
            )
        else:
            message = {"role": "user", "content": [{"type": "text", "text": notes.render(document.name)}]}
        reminder = (
            "## Checklist items to review:\n"
            f"{format_checklist(remaining)}\n\n"
            "Please review the document against the above checklist items."
        )
        message["content"].append({"type": "text", "text": reminder})
        messages = [
            {
                "role": "system",
                "content": build_review_prompt(
                    remaining,
                    settings.active_items,
                    additional_instructions=additional_instructions,
                    comment_format=comment_format,
                    summarized=notes is not None,
                ),
            },
            message,
        ]
        output = await self.generator.generate(messages, GradingOutput)

        wanted = {item.id for item in remaining}
        labels = set(settings.labels)
        accepted: dict[int, GradedItem] = {}
        for result in output.results:
            if result.checklist_id not in wanted:
                logger.debug("Ignoring grade for unexpected checklist id %s", result.checklist_id)
                continue
            if result.evaluation not in labels:
                logger.debug("Ignoring unknown grade %r for checklist id %s", result.evaluation, result.checklist_id)
                continue
            accepted[result.checklist_id] = result
        return list(accepted.values())


__all__ = [
    "CLASSIFY_STEP",
    "DocumentSummary",
    "ErrorLedger",
    "GradedItem",
    "GradingOutput",
    "INCOMPLETE_GRADING",
    "QuestionAnswers",
    "REVIEW_STEP",
    "ReviewEvaluationPipeline",
    "ReviewNotes",
    "ReviewQuestions",
    "ReviewReadiness",
]
