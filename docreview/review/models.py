from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Sequence

Provenance = Literal["system", "user"]
DocumentType = Literal["checklist", "general"]
DocumentMode = Literal["small", "large"]
RunStatus = Literal["success", "failed", "suspended"]
StepStatus = Literal["success", "failed"]


@dataclass
class ReviewSession:
    session_id: str
    title: str
    additional_instructions: Optional[str] = None
    comment_format: Optional[str] = None


@dataclass(frozen=True)
class ChecklistItem:
    id: int
    session_id: str
    content: str
    provenance: Provenance = "system"


@dataclass
class Category:
    """Transient group of checklist items graded together in one model call."""

    name: str
    items: List[ChecklistItem]

    @property
    def item_ids(self) -> list[int]:
        return [item.id for item in self.items]


@dataclass
class ReviewResult:
    checklist_id: int
    file_id: str
    grade: str
    comment: str
    file_name: Optional[str] = None


@dataclass(frozen=True)
class ReviewDocument:
    """A source or target file with its already-extracted content."""

    id: str
    name: str
    text: Optional[str] = None
    images: Sequence[str] = ()
    mime_type: str = "text/plain"

    @property
    def has_images(self) -> bool:
        return bool(self.images)


@dataclass(frozen=True)
class GradeDefinition:
    label: str
    description: str


DEFAULT_GRADES = (
    GradeDefinition("A", "fully meets the criterion"),
    GradeDefinition("B", "partially meets the criterion"),
    GradeDefinition("C", "does not meet the criterion"),
    GradeDefinition("-", "not applicable or cannot be evaluated"),
)


@dataclass(frozen=True)
class EvaluationSettings:
    items: Sequence[GradeDefinition] = DEFAULT_GRADES

    @property
    def active_items(self) -> Sequence[GradeDefinition]:
        """The configured grade scale, or the default one when none is configured."""
        return self.items or DEFAULT_GRADES

    @property
    def labels(self) -> list[str]:
        return [item.label for item in self.active_items]


@dataclass
class StepResult:
    status: StepStatus
    error_message: Optional[str] = None


@dataclass
class RunOutcome:
    """Raw result of one pipeline execution, before classification."""

    status: RunStatus
    steps: Dict[str, StepResult] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass(frozen=True)
class RunResult:
    status: RunStatus
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


@dataclass(frozen=True)
class CancelResult:
    ok: bool
    error: Optional[str] = None


__all__ = [
    "CancelResult",
    "Category",
    "ChecklistItem",
    "DEFAULT_GRADES",
    "DocumentMode",
    "DocumentType",
    "EvaluationSettings",
    "GradeDefinition",
    "Provenance",
    "ReviewDocument",
    "ReviewResult",
    "ReviewSession",
    "RunOutcome",
    "RunResult",
    "RunStatus",
    "StepResult",
    "StepStatus",
]
