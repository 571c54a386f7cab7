from __future__ import annotations
from PIL import Image, UnidentifiedImageError
import io

from pngfun.errors import ValidationError

ALLOWED_MIME = {"image/jpeg", "image/png"}
EXT_FOR_MIME = {"image/jpeg": "jpg", "image/png": "png"}
MAX_PHOTO_BYTES = 10 * 1024 * 1024

def sniff_mime(data: bytes) -> str | None:
    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.format == "JPEG":
                return "image/jpeg"
            elif img.format == "PNG":
                return "image/png"
            return None
    except (UnidentifiedImageError, OSError):
        return None

def validate_photo(data: bytes) -> str:
    """Return the detected content-type, or raise ValidationError."""
    if not data:
        raise ValidationError("Empty file")
    if len(data) > MAX_PHOTO_BYTES:
        raise ValidationError("Photo is too large")
    mime = sniff_mime(data)
    if mime not in ALLOWED_MIME:
        raise ValidationError("Unsupported image type")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()  # basic integrity
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise ValidationError("Invalid image file")
    return mime

def ext_for_mime(mime: str) -> str:
    return EXT_FOR_MIME.get(mime, "bin")
