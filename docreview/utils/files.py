from __future__ import annotations

import base64
import hashlib
import logging
import mimetypes
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger("docreview")

TEXT_SUFFIXES = {".md", ".markdown", ".txt", ".csv", ".tsv", ".json", ".yaml", ".yml", ".html", ".xml"}
IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".webp"}


class UnsupportedDocumentError(ValueError):
    pass


def file_id_for(path: str | Path) -> str:
    """Stable identifier derived from the resolved path."""
    return hashlib.md5(str(Path(path).resolve()).encode("utf-8")).hexdigest()


def read_document_content(file_path: str | Path) -> Dict[str, Optional[str]]:
    """
    Read a text or image file and return its content in a dict structure.

    Text files yield ``{"content": ..., "image": None}``; images yield the
    base64 payload under ``"image"``. Binary office formats are not handled here.

    Raises:
        UnsupportedDocumentError: for any other file type.
    """
    path = Path(file_path)
    suffix = path.suffix.lower()
    mime_type = mimetypes.guess_type(path.name)[0] or "text/plain"

    if suffix in TEXT_SUFFIXES:
        content = path.read_text(encoding="utf-8")
        return {"content": content, "image": None, "mime_type": mime_type}

    if suffix in IMAGE_SUFFIXES:
        payload = base64.b64encode(path.read_bytes()).decode("ascii")
        return {"content": None, "image": payload, "mime_type": mime_type}

    logger.error("Unsupported document type: %s", path)
    raise UnsupportedDocumentError(f"unsupported document type: {path.name}")


__all__ = ["UnsupportedDocumentError", "file_id_for", "read_document_content"]
