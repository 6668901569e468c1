"""File attachments sent along with a prompt.

Text files are passed through as text, images as raw bytes with their
MIME type.  PDF text extraction is not implemented and always fails
with an :class:`InputError`; audio and video are recognised but not
sent to the backend.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Tuple, Union

from .errors import InputError
from .providers import BinaryPart, Part, TextPart


DEFAULT_MAX_SIZE = 100 * 1024 * 1024


class FileType(Enum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    PDF = "pdf"
    VIDEO = "video"


DEFAULT_ALLOWED_TYPES: Dict[FileType, Tuple[str, ...]] = {
    FileType.TEXT: (".txt", ".md", ".json", ".yaml", ".yml"),
    FileType.IMAGE: (".png", ".jpg", ".jpeg", ".gif", ".webp"),
    FileType.AUDIO: (".mp3", ".wav", ".ogg", ".m4a"),
    FileType.PDF: (".pdf",),
    FileType.VIDEO: (".mp4", ".webm", ".mov"),
}


@dataclass(frozen=True)
class FileContent:
    """A file read from disk together with what we know about it."""

    type: FileType
    data: bytes
    mime_type: str
    name: str
    size: int
    metadata: Dict[str, object] = field(default_factory=dict)

    def text(self) -> str:
        if self.type is not FileType.TEXT:
            return ""
        return self.data.decode("utf-8", errors="replace")


class FileReader:
    """Reads attachment files and turns them into backend parts."""

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        allowed_types: Dict[FileType, Tuple[str, ...]] = DEFAULT_ALLOWED_TYPES,
    ) -> None:
        self.max_size = max_size
        self.allowed_types = allowed_types

    def file_type(self, path: Union[str, Path]) -> FileType:
        ext = Path(path).suffix.lower()
        for file_type, extensions in self.allowed_types.items():
            if ext in extensions:
                return file_type
        raise InputError(f"unsupported file extension: {ext or '(none)'}")

    def read(self, path: Union[str, Path]) -> FileContent:
        """Read ``path`` from disk.

        :raises InputError: when the file is missing, too large or has
          an unsupported extension.
        """
        path = Path(path)
        if not path.is_file():
            raise InputError(f"file not found: {path}")
        size = path.stat().st_size
        if size > self.max_size:
            raise InputError(f"file too large: {size} bytes (max {self.max_size})")
        file_type = self.file_type(path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise InputError(f"failed to read file: {path}", exc)
        mime_type, _ = mimetypes.guess_type(path.name)
        return FileContent(
            type=file_type,
            data=data,
            mime_type=mime_type or "application/octet-stream",
            name=path.name,
            size=size,
            metadata={"extension": path.suffix.lower(), "modified": path.stat().st_mtime},
        )

    def to_part(self, content: FileContent) -> Part:
        """Convert ``content`` into something the backend accepts."""
        if content.type is FileType.IMAGE:
            return BinaryPart(mime_type=content.mime_type, data=content.data)
        if content.type is FileType.TEXT:
            return TextPart(content.text())
        if content.type is FileType.PDF:
            return TextPart(extract_pdf_text(content.data))
        raise InputError(f"unsupported file type: {content.type.value}")


def extract_pdf_text(data: bytes) -> str:
    # TODO: add a PDF text extraction backend; until then attachments
    # with a .pdf extension are rejected.
    raise InputError("failed to extract text from PDF: PDF processing not implemented")
