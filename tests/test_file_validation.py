import pytest

from recipe_api.config import Settings
from recipe_api.file_validation import (
    FileValidator, ImageDimensions, file_extension, file_hash, read_dimensions,
)
from conftest import make_image_bytes


@pytest.fixture
def validator():
    return FileValidator(Settings(jwt_secret="test-secret"))


def test_valid_png_passes(validator):
    data = make_image_bytes("PNG")
    result = validator.validate(data, "bolo.png", "image/png", len(data))
    assert result.valid
    assert result.errors == []


def test_valid_jpeg_passes(validator):
    data = make_image_bytes("JPEG")
    result = validator.validate(data, "bolo.JPG", "IMAGE/JPEG")
    assert result.valid, result.errors


def test_jpeg_signature_declared_as_png_is_rejected(validator):
    data = b"\xff\xd8\xff\xd8" + b"\x00" * 496
    result = validator.validate(data, "photo.png", "image/png", len(data))
    assert not result.valid
    assert "File signature does not match the declared type" in result.errors
    # allow-list checks themselves pass
    assert not any(e.startswith("MIME type not allowed") for e in result.errors)
    assert not any(e.startswith("Extension not allowed") for e in result.errors)


def test_signature_mismatch_regardless_of_extension(validator):
    data = make_image_bytes("PNG")
    result = validator.validate(data, "photo.jpg", "image/jpeg")
    assert "File signature does not match the declared type" in result.errors


def test_all_failures_are_collected(validator):
    data = b"GIF8" + b"\x00" * 10
    result = validator.validate(data, "virus.exe.bmp", "application/pdf")
    assert not result.valid
    messages = result.error_message
    assert "File too small" in messages
    assert "suspicious extension" in messages
    assert "MIME type not allowed" in messages
    assert "Extension not allowed" in messages
    assert "File is not a valid image" in messages
    assert messages.count("; ") == len(result.errors) - 1


def test_empty_file(validator):
    result = validator.validate(b"", "empty.png", "image/png")
    assert "File is empty" in result.errors
    assert "File too small for signature validation" in result.errors


def test_file_too_large():
    validator = FileValidator(Settings(jwt_secret="x", max_file_size=2048))
    data = make_image_bytes("PNG")
    result = validator.validate(data, "big.png", "image/png")
    assert "File too large. Maximum size: 2048 bytes" in result.errors


@pytest.mark.parametrize("filename,message", [
    ("../etc/passwd.png", "File name contains an invalid path sequence"),
    ("bo<lo>.png", "File name contains forbidden characters"),
    ("CON.png", "File name contains forbidden characters"),
    ("bolo.php.png", "File name contains a suspicious extension"),
    ("a" * 252 + ".png" + "x", "File name too long (maximum 255 characters)"),
])
def test_bad_filenames(validator, filename, message):
    data = make_image_bytes("PNG")
    result = validator.validate(data, filename, "image/png")
    assert message in result.errors


def test_missing_filename(validator):
    data = make_image_bytes("PNG")
    result = validator.validate(data, None, "image/png")
    assert "File name not provided" in result.errors


def test_dimension_bounds(validator):
    small = make_image_bytes("PNG", size=(20, 20))
    result = validator.validate(small, "small.png", "image/png")
    assert "Image too small. Minimum dimensions: 50x50 pixels" in result.errors

    strict = FileValidator(Settings(jwt_secret="x", max_image_width=60, max_image_height=60))
    large = make_image_bytes("PNG", size=(64, 64))
    result = strict.validate(large, "large.png", "image/png")
    assert "Image too large. Maximum dimensions: 60x60 pixels" in result.errors


def test_mime_and_extension_helpers(validator):
    assert validator.is_valid_mime_type(" image/WEBP ")
    assert not validator.is_valid_mime_type("")
    assert not validator.is_valid_mime_type(None)
    assert validator.is_valid_extension("x.Jpeg")
    assert not validator.is_valid_extension("noextension")
    assert file_extension("archive.tar.gz") == "gz"
    assert file_extension("trailingdot.") == ""


def test_read_dimensions():
    data = make_image_bytes("PNG", size=(80, 40))
    dimensions = read_dimensions(data)
    assert dimensions == ImageDimensions(80, 40)
    assert read_dimensions(b"not an image") is None


def test_file_hash_is_stable():
    assert file_hash(b"abc") == "900150983cd24fb0d6963f7d28e17f72"


def test_type_without_signature_only_warns():
    settings = Settings(
        jwt_secret="test-secret",
        allowed_mime_types=["image/bmp"],
        allowed_extensions=["bmp"],
    )
    data = make_image_bytes("BMP")
    result = FileValidator(settings).validate(data, "bolo.bmp", "image/bmp")
    assert result.valid, result.errors
    assert result.warnings == ["No signature check available for image/bmp"]
