"""Prompt templates for checklist extraction, categorisation and grading."""

from __future__ import annotations

from typing import Sequence

from .models import ChecklistItem, GradeDefinition

CHECKLIST_EXTRACTION_SYSTEM_PROMPT = (
    "You are a specialist in extracting checklist items from documents.\n"
    "If you determine the document is not a checklist document, explicitly set "
    "isChecklistDocument to false.\n\n"
    "{progress}\n\n"
    "{lead} the full document text, find {target} exactly as written, "
    "without changing or paraphrasing them.\n"
    "Never omit or alter any checklist text.\n"
    "Only output the checklist items (and the isChecklistDocument flag). Do not include "
    "any other parts of the document that are not actual checklist entries."
)

TOPIC_EXTRACTION_SYSTEM_PROMPT = (
    "You are a document analysis specialist who extracts independent topics from documents.\n"
    "Identify the distinct topics of the provided document that are worth their own review "
    "checklist items.\n\n"
    "Guidelines:\n"
    "- Write in the same language as the document.\n"
    "- For each topic give a clear, concise title and the reason it needs checklist items.\n"
    "- Topics must be independent and must not overlap.\n"
    "- Aim for 3-8 topics, depending on the complexity of the document.\n"
    "{requirements}"
)

TOPIC_CHECKLIST_SYSTEM_PROMPT = (
    "You are a document review checklist designer. Turn one topic of the provided document "
    "into practical, verifiable checklist items.\n\n"
    "Topic:\n- {topic}\n\n"
    "{requirements}"
    "Each checklist item must be specific, objectively verifiable and actionable, and should "
    "point at the evidence a reviewer has to look for. Provide 5-15 items unless the topic "
    "naturally yields fewer good ones, and give the reason each item is valuable.\n"
    "Stay strictly within the topic, avoid generic items that would apply to any document, "
    "and do not add prefixes or numbering to the items. Write in the same language as the "
    "document."
)

CATEGORY_CLASSIFICATION_SYSTEM_PROMPT = (
    "You are a categorisation assistant.\n"
    "When given a list of checklist items (each with an ID and content), partition them into "
    "up to {max_categories} meaningful categories.\n\n"
    "Constraints:\n"
    "1. Every checklist item must be assigned to exactly one category. No item may be left out.\n"
    "2. You may create at most {max_categories} categories.\n"
    "3. Each category may contain no more than {max_items} checklist items.\n"
    "4. Distribute items as evenly as possible while keeping each category thematically coherent."
)

DEFAULT_COMMENT_FORMAT = (
    "[Reasoning / evidence]\n"
    "   Provide the reasoning and evidence here (cite specific sections of the document).\n\n"
    "[Improvement suggestions]\n"
    "   Provide actionable suggestions for better satisfying the criterion."
)

REVIEW_EXECUTION_SYSTEM_PROMPT = (
    "You are a professional document reviewer. Evaluate the user-provided document against "
    "the following checklist items.\n\n"
    "{note}"
    "Checklist items:\n{checklist}\n\n"
    "Instructions:\n"
    "1. For each checklist item, assign one of these ratings:\n{grades}\n"
    "2. For each item, write a comment following this format:\n\n{comment_format}\n\n"
    "3. In your comments, cite specific parts of the document as evidence and cover every "
    "relevant occurrence, not only a general summary.\n"
    "4. Do not omit any checklist item. Return one result per checklist ID.\n"
    "{instructions}"
)

# Large documents are reviewed from notes: topic summaries first, then
# question/answer rounds against the full text until the notes are sufficient.
DOCUMENT_SUMMARY_SYSTEM_PROMPT = (
    "You are an expert document analyst. Identify every key topic of the given document "
    "without missing anything important.\n"
    "1. Identify between 5 and 15 distinct topics that together cover the full text.\n"
    "2. For each topic write a title and a concise but complete summary.\n"
    "Topics must not overlap. Write in the same language as the document."
)

REVIEW_QUESTIONS_SYSTEM_PROMPT = (
    "You are a review planning expert. The document will be reviewed against these checklist "
    "items:\n{checklist}\n"
    "{instructions}\n"
    "Based on the topic summaries of the document, list the questions that must be answered "
    "from the full document text so that every checklist item can be evaluated. Questions "
    "must be specific and answerable from the document content."
)

REVIEW_READINESS_SYSTEM_PROMPT = (
    "You are a review readiness assessor. The document will be reviewed against these "
    "checklist items:\n{checklist}\n"
    "{instructions}\n"
    "Questions answered so far:\n{qna}\n\n"
    "Decide whether the topic summaries and the answers above are enough to evaluate every "
    "checklist item. If they are, set ready to true. Otherwise set ready to false and list "
    "additional questions that fill the gaps without repeating questions already answered."
)

ANSWER_QUESTIONS_SYSTEM_PROMPT = (
    "You are a document analysis expert. Answer the questions accurately from the provided "
    "document. The answers will be used to review the document against these checklist "
    "items:\n{checklist}\n\n"
    "Base every answer only on the document, quote the relevant passages with their section, "
    "chapter or page, cover every relevant occurrence, and say so when the document does not "
    "contain the information. Answer in the same language as the document."
)

SUMMARIZED_DOCUMENT_NOTE = (
    "The document is large and is provided as topic summaries and question-answer notes "
    "instead of its full text. Write the comments as if you had read the original document: "
    "refer to its sections directly and do not mention the summaries or the notes.\n\n"
)


def format_checklist(items: Sequence[ChecklistItem]) -> str:
    return "\n".join(f"ID: {item.id} - {item.content}" for item in items)


def _numbered(items: Sequence[str]) -> str:
    return "\n".join(f"{idx}. {item}" for idx, item in enumerate(items, start=1))


def _requirements_block(requirements: str | None, heading: str) -> str:
    if not requirements or not requirements.strip():
        return ""
    return f"{heading}:\n{requirements.strip()}\n\n"


def _instructions_line(additional_instructions: str | None) -> str:
    if not additional_instructions or not additional_instructions.strip():
        return ""
    return f"Additional review instructions: {additional_instructions.strip()}\n"


def build_extraction_prompt(extracted: Sequence[str]) -> str:
    if extracted:
        progress = f"So far, you have identified {len(extracted)} items:\n{_numbered(extracted)}"
        lead, target = "From", "additional checklist items that have not yet been captured"
    else:
        progress = "Given a document, first decide whether it is a checklist document."
        lead, target = "Then, from", "every checklist item"
    return CHECKLIST_EXTRACTION_SYSTEM_PROMPT.format(progress=progress, lead=lead, target=target)


def build_topic_extraction_prompt(requirements: str | None = None) -> str:
    extra = _requirements_block(requirements, "\nPrioritise topics that serve these checklist requirements")
    return TOPIC_EXTRACTION_SYSTEM_PROMPT.format(requirements=extra).strip()


def build_topic_checklist_prompt(topic: str, requirements: str | None = None) -> str:
    extra = _requirements_block(requirements, "Checklist requirements")
    return TOPIC_CHECKLIST_SYSTEM_PROMPT.format(topic=topic, requirements=extra)


def build_classification_prompt(max_items: int, max_categories: int) -> str:
    return CATEGORY_CLASSIFICATION_SYSTEM_PROMPT.format(
        max_items=max_items, max_categories=max_categories
    )


def build_review_prompt(
    items: Sequence[ChecklistItem],
    grades: Sequence[GradeDefinition],
    *,
    additional_instructions: str | None = None,
    comment_format: str | None = None,
    summarized: bool = False,
) -> str:
    grade_lines = "\n".join(f"   - {grade.label}: {grade.description}" for grade in grades)
    instructions = ""
    if additional_instructions and additional_instructions.strip():
        instructions = f"\nSpecial instructions:\n{additional_instructions.strip()}\n"
    return REVIEW_EXECUTION_SYSTEM_PROMPT.format(
        note=SUMMARIZED_DOCUMENT_NOTE if summarized else "",
        checklist=format_checklist(items),
        grades=grade_lines,
        comment_format=(comment_format or "").strip() or DEFAULT_COMMENT_FORMAT,
        instructions=instructions,
    )


def build_questions_prompt(items: Sequence[ChecklistItem], additional_instructions: str | None = None) -> str:
    return REVIEW_QUESTIONS_SYSTEM_PROMPT.format(
        checklist=format_checklist(items),
        instructions=_instructions_line(additional_instructions),
    )


def build_readiness_prompt(
    items: Sequence[ChecklistItem],
    qna: Sequence[tuple[str, str]],
    additional_instructions: str | None = None,
) -> str:
    answered = "\n\n".join(f"Q: {question}\nA: {answer}" for question, answer in qna) or "(none)"
    return REVIEW_READINESS_SYSTEM_PROMPT.format(
        checklist=format_checklist(items),
        instructions=_instructions_line(additional_instructions),
        qna=answered,
    )


def build_answer_prompt(items: Sequence[ChecklistItem]) -> str:
    return ANSWER_QUESTIONS_SYSTEM_PROMPT.format(checklist=format_checklist(items))


__all__ = [
    "DEFAULT_COMMENT_FORMAT",
    "DOCUMENT_SUMMARY_SYSTEM_PROMPT",
    "build_answer_prompt",
    "build_classification_prompt",
    "build_extraction_prompt",
    "build_questions_prompt",
    "build_readiness_prompt",
    "build_review_prompt",
    "build_topic_checklist_prompt",
    "build_topic_extraction_prompt",
    "format_checklist",
]
