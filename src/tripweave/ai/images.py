"""Turn a photo into an image part for multimodal prompts.

Relative URLs (``/uploads/IMG_0042.jpg``) are resolved against the configured
uploads directory; http(s) URLs are downloaded. The image is downscaled and
re-encoded as JPEG before it is attached to a prompt.
"""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Any

import requests
from PIL import Image

from tripweave.core.models import Photo

logger = logging.getLogger(__name__)


class ImageLoader:
    """Load photos as ``{"mime_type", "data"}`` parts.

    Args:
        uploads_dir: Directory holding uploaded files.
        max_dimension: Longest side after downscaling.
        timeout_seconds: Download timeout for remote URLs.
        session: Optional ``requests.Session`` (tests inject a mock).
    """

    _TIMEOUT = 10.0

    def __init__(
        self,
        uploads_dir: Path | None = None,
        max_dimension: int = 1024,
        timeout_seconds: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.uploads_dir = uploads_dir
        self.max_dimension = max_dimension
        self.timeout_seconds = timeout_seconds or self._TIMEOUT
        self._session = session or requests.Session()

    def load(self, photo: Photo) -> dict[str, Any] | None:
        """Return a JPEG part for the photo, or None if it cannot be read."""
        raw = self._read_bytes(photo)
        if raw is None:
            return None
        try:
            return {"mime_type": "image/jpeg", "data": self._encode(raw)}
        except OSError as e:
            # PIL.UnidentifiedImageError is an OSError
            logger.warning(f"Could not decode image for photo {photo.id}: {type(e).__name__}")
            return None

    def _read_bytes(self, photo: Photo) -> bytes | None:
        url = photo.url or ""
        if url.startswith(("http://", "https://")):
            try:
                resp = self._session.get(url, timeout=self.timeout_seconds)
                resp.raise_for_status()
            except requests.RequestException as exc:
                logger.warning(f"Could not download photo {photo.id}: {type(exc).__name__}")
                return None
            return resp.content

        path = self._resolve_path(photo)
        if path is None:
            logger.debug(f"No local file for photo {photo.id}")
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            logger.warning(f"Could not read {path.name}: {type(e).__name__}")
            return None

    def _resolve_path(self, photo: Photo) -> Path | None:
        """First existing file for the photo that stays inside ``uploads_dir``."""
        if self.uploads_dir is None:
            return None
        root = self.uploads_dir.resolve()
        names = [photo.filename, Path(photo.url).name if photo.url else ""]
        candidates = [root / name for name in names if name]
        if photo.url and not photo.url.startswith("/"):
            candidates.append(root / photo.url)

        for candidate in candidates:
            path = candidate.resolve()
            if not path.is_relative_to(root):
                logger.warning(f"Ignoring path outside the uploads directory for photo {photo.id}")
                continue
            if path.is_file():
                return path
        return None

    def _encode(self, raw: bytes) -> bytes:
        with Image.open(BytesIO(raw)) as img:
            if max(img.size) > self.max_dimension:
                img.thumbnail((self.max_dimension, self.max_dimension))
            if img.mode != "RGB":
                img = img.convert("RGB")
            buffer = BytesIO()
            img.save(buffer, format="JPEG", quality=80)
            return buffer.getvalue()
