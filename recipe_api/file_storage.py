import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

from .errors import InvalidInputError, NotFoundError, StorageError
from .file_validation import file_extension

logger = logging.getLogger(__name__)

IMAGE_SUBDIR = ("receitas", "imagens")


@dataclass(frozen=True)
class FileInfo:
    filename: str
    original_filename: str
    absolute_path: str
    relative_path: str
    content_type: Optional[str]
    size: int


class FileStore:
    """Recipe images on local disk, partitioned by upload date.

    Paths handed out and accepted by this class are relative to
    ``{upload_dir}/receitas/imagens`` and always use forward slashes.
    """

    def __init__(self, upload_dir: str, max_file_size: int):
        self.root = Path(upload_dir).expanduser().resolve()
        self.image_root = self.root.joinpath(*IMAGE_SUBDIR)
        self.max_file_size = max_file_size
        try:
            self.image_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Could not create storage directories under {self.root}") from exc
        logger.info(f"Image storage ready at {self.image_root}")

    def save(self, data: bytes, original_filename: str, content_type: Optional[str] = None) -> FileInfo:
        if not data:
            raise InvalidInputError("File is empty")
        if len(data) > self.max_file_size:
            raise InvalidInputError(
                f"File too large. Maximum size allowed: {self.max_file_size} bytes",
                status_code=413,
            )

        original_filename = os.path.basename((original_filename or "").replace("\\", "/"))
        if ".." in original_filename:
            raise InvalidInputError(f"File name contains an invalid path sequence: {original_filename}")
        extension = file_extension(original_filename).lower()

        now = datetime.now()
        date_dir = self.image_root / f"{now.year}" / f"{now.month:02d}" / f"{now.day:02d}"
        try:
            date_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error(f"Could not create upload directory {date_dir}: {exc}")
            raise StorageError("Could not create upload directory") from exc

        filename = self._unique_filename(now, extension)
        target = date_dir / filename
        if target.exists():
            logger.debug(f"{target} already exists, generating a new name")
            filename = self._unique_filename(now, extension)
            target = date_dir / filename

        try:
            target.write_bytes(data)
        except OSError as exc:
            logger.error(f"Could not write {target}: {exc}")
            raise StorageError("Could not save file") from exc

        logger.info(f"File saved: {original_filename} -> {target}")
        return FileInfo(
            filename=filename,
            original_filename=original_filename,
            absolute_path=str(target),
            relative_path=target.relative_to(self.image_root).as_posix(),
            content_type=content_type,
            size=len(data),
        )

    def load(self, relative_path: str) -> bytes:
        path = self._resolve(relative_path)
        if path is None or not path.is_file():
            logger.warning(f"File not found or outside storage: {relative_path}")
            raise NotFoundError(f"File not found: {relative_path}")
        try:
            return path.read_bytes()
        except OSError as exc:
            logger.warning(f"File not readable: {path}: {exc}")
            raise NotFoundError(f"File not found: {relative_path}") from exc

    def delete(self, relative_path: str) -> bool:
        path = self._resolve(relative_path)
        if path is None:
            logger.warning(f"Refusing to delete outside the storage root: {relative_path}")
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning(f"File not found for deletion: {path}")
            return False
        except OSError as exc:
            logger.error(f"Could not delete {path}: {exc}")
            raise StorageError(f"Could not delete file: {relative_path}") from exc

        logger.info(f"File deleted: {path}")
        self._remove_empty_parents(path.parent)
        return True

    def exists(self, relative_path: str) -> bool:
        path = self._resolve(relative_path)
        return path is not None and path.is_file()

    def usage(self) -> Tuple[int, int]:
        """Number of stored files and their total size in bytes."""
        count = total = 0
        for path in self.image_root.rglob("*"):
            if path.is_file():
                count += 1
                total += path.stat().st_size
        return count, total

    def _resolve(self, relative_path: str) -> Optional[Path]:
        try:
            path = (self.image_root / relative_path).resolve()
        except (ValueError, OSError):
            return None
        if path == self.image_root or not path.is_relative_to(self.image_root):
            return None
        return path

    def _remove_empty_parents(self, directory: Path):
        while directory != self.image_root and directory.is_relative_to(self.image_root):
            try:
                directory.rmdir()
            except OSError:
                # not empty (or already gone): stop walking up
                return
            logger.debug(f"Removed empty directory {directory}")
            directory = directory.parent

    @staticmethod
    def _unique_filename(now: datetime, extension: str) -> str:
        suffix = uuid.uuid4().hex[:8]
        name = f"{now:%Y%m%d_%H%M%S}_{suffix}"
        return f"{name}.{extension}" if extension else name
