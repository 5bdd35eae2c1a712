"""Document store errors."""

from __future__ import annotations


class StoreError(Exception):
    """Base class for document store failures."""


class DocumentNotFoundError(StoreError):
    """Raised when a partial update targets a document that does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Document not found: {path}")
        self.path = path


class InvalidPathError(StoreError, ValueError):
    """Raised when a path does not address a document or collection as required."""
