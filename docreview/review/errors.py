from __future__ import annotations


class ReviewError(RuntimeError):
    """Domain failure whose message can be shown to the user as-is."""


class NotChecklistDocumentError(ReviewError):
    def __init__(self, file_name: str) -> None:
        super().__init__(
            f"{file_name} does not look like a checklist document; "
            "upload it as a general document instead"
        )


class NoChecklistExtractedError(ReviewError):
    def __init__(self, file_name: str) -> None:
        super().__init__(f"no checklist items could be extracted from {file_name}")


class ExtractionLimitExceededError(ReviewError):
    def __init__(self, file_name: str, attempts: int) -> None:
        super().__init__(
            f"checklist extraction for {file_name} did not finish within {attempts} attempts; "
            "split the checklist source into smaller files"
        )


class UnrepairableOutputError(ReviewError):
    def __init__(self) -> None:
        super().__init__(
            "the model output was cut off and could not be repaired; "
            "reduce the document size or split the checklist source"
        )


class SessionNotFoundError(ReviewError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"no checklist has been created yet for review session {session_id}")


class MissingChecklistError(ReviewError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"review session {session_id} has no checklist items to review against")


class RunInProgressError(ReviewError):
    def __init__(self) -> None:
        super().__init__("a run is already in progress for this session")


__all__ = [
    "ExtractionLimitExceededError",
    "MissingChecklistError",
    "NoChecklistExtractedError",
    "NotChecklistDocumentError",
    "ReviewError",
    "RunInProgressError",
    "SessionNotFoundError",
    "UnrepairableOutputError",
]
