"""Local directory-tree blob store for uploaded file contents."""

from __future__ import annotations

import logging
import os
import time
import uuid
from pathlib import Path
from typing import BinaryIO, Iterator

from flask import current_app
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


class BlobStorageError(Exception):
    """Underlying I/O failure in the blob store."""


class BlobNotFoundError(BlobStorageError):
    """No blob exists at the requested path."""


class BlobStorage:
    """Stores blobs under root; paths handed out are relative to root.

    Writes go to a temporary sibling first and are renamed into place, so a
    reader never sees a half-written blob.
    """

    def __init__(self, root: str | os.PathLike):
        self.root = Path(root)

    def make_path(self, owner_id: str, filename: str) -> str:
        """Collision-resistant relative path: <owner>/<millis>-<random>-<safe name>."""
        safe_name = secure_filename(filename) or "file"
        stamp = int(time.time() * 1000)
        return f"{owner_id}/{stamp}-{uuid.uuid4().hex[:12]}-{safe_name}"

    def _resolve(self, path: str) -> Path:
        full = (self.root / path).resolve()
        root = self.root.resolve()
        if root not in full.parents:
            raise BlobStorageError(f"Path escapes storage root: {path}")
        return full

    def save(self, path: str, stream: BinaryIO) -> int:
        """Write stream to path and return the number of bytes written.

        Raises:
            BlobStorageError: If the write fails.
        """
        full = self._resolve(path)
        tmp = full.with_name(f".{full.name}.part")
        size = 0
        try:
            logger.info("Writing blob: %s", path)
            full.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "wb") as fh:
                while True:
                    chunk = stream.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    fh.write(chunk)
                    size += len(chunk)
            os.replace(tmp, full)
        except OSError as exc:
            logger.exception("Failed to write blob: %s", path)
            tmp.unlink(missing_ok=True)
            raise BlobStorageError(f"Could not write blob {path}") from exc
        logger.info("Stored blob %s (%d bytes)", path, size)
        return size

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def modified_at(self, path: str) -> float:
        """Unix mtime of the blob."""
        try:
            return self._resolve(path).stat().st_mtime
        except FileNotFoundError as exc:
            raise BlobNotFoundError(f"Blob missing: {path}") from exc

    def open(self, path: str) -> BinaryIO:
        """Open blob for reading. Caller closes the handle.

        Raises:
            BlobNotFoundError: If no blob exists at path.
        """
        full = self._resolve(path)
        try:
            return open(full, "rb")
        except FileNotFoundError as exc:
            raise BlobNotFoundError(f"Blob missing: {path}") from exc
        except OSError as exc:
            raise BlobStorageError(f"Could not read blob {path}") from exc

    def delete(self, path: str) -> bool:
        """Remove blob; a blob that is already gone is not an error.

        Returns:
            True if a blob was removed.
        """
        full = self._resolve(path)
        try:
            full.unlink()
        except FileNotFoundError:
            logger.info("Blob already absent: %s", path)
            return False
        except OSError as exc:
            logger.exception("Failed to delete blob: %s", path)
            raise BlobStorageError(f"Could not delete blob {path}") from exc
        logger.info("Deleted blob: %s", path)
        return True

    def discard(self, path: str) -> None:
        """Best-effort delete used when undoing a write; failures leave an orphan for the sweep."""
        try:
            self.delete(path)
        except BlobStorageError:
            logger.warning("Could not discard blob, left as orphan: %s", path)

    def iter_paths(self) -> Iterator[str]:
        """Yield every stored blob path relative to root (temporary files excluded)."""
        if not self.root.is_dir():
            return
        for dirpath, _dirnames, filenames in os.walk(self.root):
            for filename in filenames:
                if filename.startswith(".") and filename.endswith(".part"):
                    continue
                full = Path(dirpath) / filename
                yield full.relative_to(self.root).as_posix()


def get_blob_storage() -> BlobStorage:
    return BlobStorage(current_app.config["UPLOAD_DIR"])
