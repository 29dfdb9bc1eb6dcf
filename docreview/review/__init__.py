"""Checklist extraction and review evaluation pipelines for docreview."""

from .categories import CategoryPartitioner, normalize_proposal, split_checklist_evenly
from .classifier import ClassifiedResult, classify_run
from .evaluation import ErrorLedger, ReviewEvaluationPipeline
from .extraction import ChecklistExtractionPipeline
from .manager import ReviewManager, generate_review_title
from .models import (
    Category,
    ChecklistItem,
    EvaluationSettings,
    GradeDefinition,
    ReviewDocument,
    ReviewResult,
    ReviewSession,
    RunOutcome,
    RunResult,
    StepResult,
)
from .registry import RunHandle, SessionRunRegistry
from .repair import repair_truncated_checklist_json

__all__ = [
    "Category",
    "CategoryPartitioner",
    "ChecklistExtractionPipeline",
    "ChecklistItem",
    "ClassifiedResult",
    "ErrorLedger",
    "EvaluationSettings",
    "GradeDefinition",
    "ReviewDocument",
    "ReviewEvaluationPipeline",
    "ReviewManager",
    "ReviewResult",
    "ReviewSession",
    "RunHandle",
    "RunOutcome",
    "RunResult",
    "SessionRunRegistry",
    "StepResult",
    "classify_run",
    "generate_review_title",
    "normalize_proposal",
    "repair_truncated_checklist_json",
    "split_checklist_evenly",
]
