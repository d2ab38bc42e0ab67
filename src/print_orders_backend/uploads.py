"""
Local filesystem storage for files attached to orders.

Each upload is written under a generated storage name of the form
``<epoch-millis>-<uuid4>-<original-filename>`` so concurrent uploads never
collide while the stored file stays recognisable to a human.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from fastapi import UploadFile

from .utils import ensure_directory, epoch_millis, safe_original_name, truncate_filename

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
CHUNK_SIZE = 1024 * 1024


class UploadTooLargeError(ValueError):
    def __init__(self, filename: str, limit: int):
        super().__init__(f"File '{filename}' exceeds the {limit} byte upload limit")
        self.filename = filename
        self.limit = limit


@dataclass
class StoredFile:
    original_name: str
    file_name: str
    file_path: Path
    file_size: int
    file_type: str

    def as_row(self) -> Dict[str, Any]:
        return {
            "original_name": self.original_name,
            "file_name": self.file_name,
            "file_path": str(self.file_path),
            "file_size": self.file_size,
            "file_type": self.file_type,
        }


class UploadHandler:
    """
    Writes uploaded files into the uploads directory and serves them back.

    Attributes:
        upload_root: Absolute directory holding every stored file
        max_file_bytes: Per-file size ceiling
    """

    def __init__(self, upload_root: Path, max_file_bytes: int) -> None:
        self.upload_root = ensure_directory(Path(upload_root)).resolve()
        self.max_file_bytes = max_file_bytes

    def storage_name(self, original_name: str) -> str:
        return f"{epoch_millis()}-{uuid4()}-{truncate_filename(original_name)}"

    async def store(self, upload: UploadFile) -> StoredFile:
        """
        Stream one upload to disk under a fresh storage name.

        Raises:
            UploadTooLargeError: If the file exceeds max_file_bytes; the
                partially written file is removed first
        """
        original_name = safe_original_name(upload.filename)
        file_name = self.storage_name(original_name)
        destination = self.upload_root / file_name

        size = 0
        try:
            with destination.open("xb") as buffer:
                try:
                    while chunk := await upload.read(CHUNK_SIZE):
                        size += len(chunk)
                        if size > self.max_file_bytes:
                            raise UploadTooLargeError(original_name, self.max_file_bytes)
                        buffer.write(chunk)
                except BaseException:
                    buffer.close()
                    self.remove_path(destination)
                    raise
        finally:
            await upload.close()

        return StoredFile(
            original_name=upload.filename or original_name,
            file_name=file_name,
            file_path=destination,
            file_size=size,
            file_type=upload.content_type or DEFAULT_CONTENT_TYPE,
        )

    async def store_all(self, uploads: Iterable[UploadFile]) -> List[StoredFile]:
        """Store every upload of a request; on failure none of them are kept."""
        stored: List[StoredFile] = []
        try:
            for upload in uploads:
                stored.append(await self.store(upload))
        except BaseException:
            self.discard(stored)
            raise
        return stored

    def discard(self, stored: Iterable[StoredFile]) -> None:
        for item in stored:
            self.remove_path(item.file_path)

    def remove_path(self, path: Path | str) -> bool:
        """
        Delete a stored file without raising.

        Returns:
            True if a file was deleted, False if it was missing or could not
            be removed (the error is logged)
        """
        path = Path(path)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.error(f"Error deleting file {path}: {exc}")
            return False
        return True

    def resolve(self, storage_name: str) -> Optional[Path]:
        """
        Locate a stored file by its storage name.

        Returns:
            The file path, or None if it does not exist or the name points
            outside the uploads directory
        """
        candidate = (self.upload_root / storage_name).resolve()
        if candidate.parent != self.upload_root:
            return None
        if not candidate.is_file():
            return None
        return candidate
