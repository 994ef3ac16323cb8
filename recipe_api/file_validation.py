"""Validation of uploaded recipe images.

Every rule runs on every upload and each violated rule contributes its own
message, so a client sees all the reasons a file was rejected at once.
"""
import hashlib
import io
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from PIL import Image, UnidentifiedImageError

from .config import Settings

logger = logging.getLogger(__name__)

# magic numbers per declared MIME type
FILE_SIGNATURES = {
    "image/jpeg": b"\xff\xd8\xff",
    "image/png": b"\x89PNG\r\n\x1a\n",
    "image/gif": b"GIF8",
    "image/webp": b"RIFF",
}
MIN_SIGNATURE_BYTES = 8
MAX_FILENAME_LENGTH = 255

FORBIDDEN_CHARACTERS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
RESERVED_NAMES = re.compile(r"^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])$", re.IGNORECASE)
SUSPICIOUS_EXTENSIONS = {
    "exe", "bat", "cmd", "com", "pif", "scr", "vbs", "js", "jar", "php", "asp", "jsp",
}

DECODE_ERRORS = (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError)


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str):
        self.errors.append(message)

    def add_warning(self, message: str):
        self.warnings.append(message)

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def error_message(self) -> str:
        return "; ".join(self.errors)


@dataclass(frozen=True)
class ImageDimensions:
    width: int
    height: int


def file_extension(filename: Optional[str]) -> str:
    """Text after the last dot, or an empty string when there is none."""
    if not filename:
        return ""
    stem, dot, extension = filename.rpartition(".")
    if not dot or not extension:
        return ""
    return extension


def file_hash(data: bytes) -> str:
    """MD5 of the content, used to spot duplicate uploads in the logs."""
    return hashlib.md5(data).hexdigest()


def read_dimensions(data: bytes) -> Optional[ImageDimensions]:
    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
    except DECODE_ERRORS as exc:
        logger.debug(f"Could not read image dimensions: {exc}")
        return None
    return ImageDimensions(width, height)


def is_decodable_image(data: bytes) -> bool:
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.verify()
    except DECODE_ERRORS:
        return False
    return True


class FileValidator:
    def __init__(self, settings: Settings):
        self.settings = settings

    def is_valid_mime_type(self, mime_type: Optional[str]) -> bool:
        if not mime_type or not mime_type.strip():
            return False
        return mime_type.strip().lower() in self.settings.allowed_mime_types

    def is_valid_extension(self, filename: Optional[str]) -> bool:
        return file_extension(filename).lower() in self.settings.allowed_extensions

    def validate(self, data: bytes, filename: Optional[str], content_type: Optional[str],
                 size: Optional[int] = None) -> ValidationResult:
        result = ValidationResult()
        if size is None:
            size = len(data)

        self._check_size(data, size, result)
        self._check_filename(filename, result)
        self._check_mime_type(content_type, result)
        self._check_extension(filename, result)
        self._check_signature(data, content_type, result)
        self._check_image(data, result)

        if result.valid:
            logger.debug(f"File validated: {filename} ({file_hash(data)})")
        else:
            logger.info(f"File rejected: {filename}: {result.error_message}")
        return result

    def _check_size(self, data, size, result):
        if not data or size <= 0:
            result.add_error("File is empty")
            return
        if size < self.settings.min_file_size:
            result.add_error(f"File too small. Minimum size: {self.settings.min_file_size} bytes")
        if size > self.settings.max_file_size:
            result.add_error(f"File too large. Maximum size: {self.settings.max_file_size} bytes")

    def _check_filename(self, filename, result):
        if not filename or not filename.strip():
            result.add_error("File name not provided")
            return

        if FORBIDDEN_CHARACTERS.search(filename) or RESERVED_NAMES.match(filename.split(".")[0]):
            result.add_error("File name contains forbidden characters")
        if ".." in filename:
            result.add_error("File name contains an invalid path sequence")

        parts = filename.split(".")
        if any(part.lower() in SUSPICIOUS_EXTENSIONS for part in parts[1:-1]):
            result.add_error("File name contains a suspicious extension")

        if len(filename) > MAX_FILENAME_LENGTH:
            result.add_error(f"File name too long (maximum {MAX_FILENAME_LENGTH} characters)")

    def _check_mime_type(self, content_type, result):
        if not self.is_valid_mime_type(content_type):
            allowed = ", ".join(self.settings.allowed_mime_types)
            result.add_error(f"MIME type not allowed: {content_type}. Allowed types: {allowed}")

    def _check_extension(self, filename, result):
        if not self.is_valid_extension(filename):
            allowed = ", ".join(self.settings.allowed_extensions)
            result.add_error(
                f"Extension not allowed: {file_extension(filename)}. Allowed extensions: {allowed}"
            )

    def _check_signature(self, data, content_type, result):
        if len(data) < MIN_SIGNATURE_BYTES:
            result.add_error("File too small for signature validation")
            return
        signature = FILE_SIGNATURES.get((content_type or "").strip().lower())
        if signature is None:
            result.add_warning(f"No signature check available for {content_type}")
        elif not data.startswith(signature):
            result.add_error("File signature does not match the declared type")

    def _check_image(self, data, result):
        dimensions = read_dimensions(data)
        if dimensions is None or not is_decodable_image(data):
            result.add_error("File is not a valid image")
            return

        s = self.settings
        if dimensions.width < s.min_image_width or dimensions.height < s.min_image_height:
            result.add_error(
                f"Image too small. Minimum dimensions: {s.min_image_width}x{s.min_image_height} pixels"
            )
        if dimensions.width > s.max_image_width or dimensions.height > s.max_image_height:
            result.add_error(
                f"Image too large. Maximum dimensions: {s.max_image_width}x{s.max_image_height} pixels"
            )
