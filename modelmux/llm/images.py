"""Saving generated images and describing them to the caller."""

from __future__ import annotations

import base64
import binascii
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path

from modelmux.llm.errors import ImageGenerationError

logger = logging.getLogger(__name__)


@dataclass
class GeneratedImage:
    path: Path

    @property
    def markdown(self) -> str:
        return f"![Generated Image]({self.path.as_uri()})\n\nImage saved to: {self.path}"

    def as_extra(self) -> dict:
        return {"image_path": str(self.path), "image_markdown": self.markdown}


def slugify_prompt(prompt: str, limit: int = 100) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", prompt.lower())
    return slug.strip("-")[:limit]


def save_base64_image(
    data: str,
    prompt: str,
    images_dir: str | Path,
    prefix: str = "",
) -> GeneratedImage:
    """Decode *data* and write it as ``<prefix><slug>-<ts>.png``."""
    try:
        image_bytes = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageGenerationError("Image data in response is not valid base64") from exc

    directory = Path(images_dir).expanduser()
    directory.mkdir(parents=True, exist_ok=True)

    timestamp = str(int(time.time() * 1000))[-5:]
    path = (directory / f"{prefix}{slugify_prompt(prompt)}-{timestamp}.png").resolve()
    path.write_bytes(image_bytes)
    logger.info("Saved generated image to %s (%d bytes)", path, len(image_bytes))
    return GeneratedImage(path=path)
