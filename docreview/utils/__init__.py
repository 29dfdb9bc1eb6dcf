"""
Utility helpers kept intentionally small and stateless.
"""

from .files import UnsupportedDocumentError, file_id_for, read_document_content  # noqa: F401

__all__ = ["UnsupportedDocumentError", "file_id_for", "read_document_content"]
