"""
Document insertion: where links to saved recordings end up.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional


class DocumentSink(ABC):
    """The active document, if any."""

    @abstractmethod
    def insert_at_cursor(self, text: str) -> None:
        pass


class NullDocument(DocumentSink):
    """No document is focused; insertion is a no-op."""

    def insert_at_cursor(self, text: str) -> None:
        pass


class MarkdownNoteDocument(DocumentSink):
    """
    A markdown note on disk with its cursor at the end.

    Inserted text is appended on its own line.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def insert_at_cursor(self, text: str) -> None:
        existing: Optional[str] = None
        if self.path.exists():
            existing = self.path.read_text(encoding='utf-8')

        with open(self.path, 'a', encoding='utf-8') as f:
            if existing and not existing.endswith('\n'):
                f.write('\n')
            f.write(text)
            f.write('\n')


def embed_link(path: str) -> str:
    """Embedded wiki-link to a vault file."""
    return f"![[{path}]]"
