"""Note file uploads: allow-list, size cap, header sniffing and safe storage."""

from __future__ import annotations

import logging
import mimetypes
import os
import uuid
from dataclasses import dataclass
from pathlib import Path

from werkzeug.datastructures import FileStorage

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".pdf", ".doc", ".docx", ".txt", ".jpg", ".jpeg", ".png"}
MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MiB

# Magic byte signatures for file header validation
_MAGIC_BYTES = {
    ".pdf": b"%PDF",
    ".png": b"\x89PNG",
    ".jpg": b"\xff\xd8\xff",
    ".jpeg": b"\xff\xd8\xff",
}


class UploadError(Exception):
    """The uploaded file was rejected; message is user-facing."""


@dataclass
class StoredFile:
    original_name: str
    stored_name: str
    path: Path
    size: int
    file_type: str  # lower-cased extension, e.g. ".pdf"

    @property
    def mime_type(self) -> str:
        return mimetypes.guess_type(self.original_name)[0] or "application/octet-stream"


def _validate_file_header(file_storage: FileStorage, ext: str) -> bool:
    """Check file header magic bytes match the claimed extension."""
    expected = _MAGIC_BYTES.get(ext)
    if not expected:
        return True  # text and Office formats have no single reliable signature
    header = file_storage.stream.read(len(expected))
    file_storage.stream.seek(0)
    return header.startswith(expected)


def _stream_size(file_storage: FileStorage) -> int:
    stream = file_storage.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def save_upload(file_storage: FileStorage, upload_dir: str | Path,
                max_bytes: int = MAX_UPLOAD_BYTES) -> StoredFile:
    """Validate and persist an uploaded file under a random name.

    Raises UploadError when the file is missing, of a disallowed type, empty,
    too large, or its content does not match the extension.
    """
    if file_storage is None or not file_storage.filename:
        raise UploadError("No file uploaded")

    original_name = Path(file_storage.filename.replace("\\", "/")).name
    ext = Path(original_name).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise UploadError("Invalid file type")

    size = _stream_size(file_storage)
    if size == 0:
        raise UploadError("Empty file")
    if size > max_bytes:
        raise UploadError("File too large")

    if not _validate_file_header(file_storage, ext):
        raise UploadError("File content does not match its extension.")

    directory = Path(upload_dir)
    directory.mkdir(parents=True, exist_ok=True)
    stored_name = f"{uuid.uuid4().hex}{ext}"
    path = directory / stored_name
    file_storage.save(str(path))

    logger.info("stored upload %s as %s (%d bytes)", original_name, stored_name, size)
    return StoredFile(
        original_name=original_name,
        stored_name=stored_name,
        path=path,
        size=size,
        file_type=ext,
    )


def discard(stored: StoredFile) -> None:
    """Remove a stored file whose note could not be created."""
    try:
        stored.path.unlink()
    except FileNotFoundError:
        pass
