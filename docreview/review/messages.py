from __future__ import annotations

from typing import Any, Dict, Sequence

from .models import ReviewDocument


def _image_url(payload: str, mime_type: str) -> str:
    if payload.startswith("data:"):
        return payload
    image_type = mime_type if mime_type.startswith("image/") else "image/png"
    return f"data:{image_type};base64,{payload}"


def build_document_message(documents: Sequence[ReviewDocument], prompt_text: str) -> Dict[str, Any]:
    """Combine several documents into one multimodal user message."""

    names = ", ".join(doc.name for doc in documents)
    content: list[Dict[str, Any]] = [{"type": "text", "text": f"{prompt_text}: {names}"}]

    for doc in documents:
        if doc.has_images:
            total = len(doc.images)
            for page, payload in enumerate(doc.images, start=1):
                content.append({"type": "text", "text": f"# {doc.name}: Page {page}/{total}"})
                content.append(
                    {"type": "image_url", "image_url": {"url": _image_url(payload, doc.mime_type)}}
                )
        else:
            content.append({"type": "text", "text": f"# {doc.name}\n{doc.text or ''}"})

    return {"role": "user", "content": content}


__all__ = ["build_document_message"]
