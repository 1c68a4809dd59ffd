"""Image normalization before it is sent to a vision-capable model."""

from __future__ import annotations

from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError
from pydantic_ai import BinaryContent

from gatebot.logging import logger
from gatebot.services.exceptions import ExtractionError

MAX_SIDE_LENGTH = 1280


def prepare_jpeg(raw: bytes, *, source: str = "photo") -> bytes:
    """Re-encode ``raw`` as an RGB JPEG no larger than ``MAX_SIDE_LENGTH`` on either side."""

    try:
        with Image.open(BytesIO(raw)) as image:
            image = ImageOps.exif_transpose(image)
            if max(image.size) > MAX_SIDE_LENGTH:
                image.thumbnail((MAX_SIDE_LENGTH, MAX_SIDE_LENGTH))
            if image.mode not in ("RGB", "RGBA"):
                image = image.convert("RGBA") if "A" in image.mode else image.convert("RGB")
            if image.mode == "RGBA":
                background = Image.new("RGBA", image.size, (255, 255, 255, 255))
                background.paste(image, mask=image.split()[3])
                image = background.convert("RGB")
            buffer = BytesIO()
            image.save(buffer, format="JPEG", quality=90, optimize=True)
        return buffer.getvalue()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        logger.warning("media_transcode_failed", source=source, error=str(exc))
        raise ExtractionError("Failed to normalize image") from exc


def jpeg_attachment(raw: bytes, *, source: str = "photo") -> BinaryContent:
    return BinaryContent(data=prepare_jpeg(raw, source=source), media_type="image/jpeg")


__all__ = ["MAX_SIDE_LENGTH", "jpeg_attachment", "prepare_jpeg"]
