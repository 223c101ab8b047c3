"""Tests for tripweave.ai.images."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests
from PIL import Image

from tripweave.ai.images import ImageLoader
from tripweave.core.models import Photo


def png_bytes(size: tuple[int, int] = (64, 32), mode: str = "RGBA") -> bytes:
    buffer = BytesIO()
    Image.new(mode, size).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def uploads(tmp_path: Path) -> Path:
    directory = tmp_path / "uploads"
    directory.mkdir()
    return directory


class TestLocalFiles:
    def test_loads_from_uploads_dir(self, uploads) -> None:
        (uploads / "IMG_1.png").write_bytes(png_bytes())
        part = ImageLoader(uploads_dir=uploads).load(Photo(id=1, url="/uploads/IMG_1.png"))
        assert part["mime_type"] == "image/jpeg"
        with Image.open(BytesIO(part["data"])) as img:
            assert img.format == "JPEG"
            assert img.mode == "RGB"

    def test_prefers_filename(self, uploads) -> None:
        (uploads / "stored.png").write_bytes(png_bytes())
        photo = Photo(id=1, url="/uploads/renamed.png", filename="stored.png")
        assert ImageLoader(uploads_dir=uploads).load(photo) is not None

    def test_downscales(self, uploads) -> None:
        (uploads / "big.png").write_bytes(png_bytes((400, 200), "RGB"))
        part = ImageLoader(uploads_dir=uploads, max_dimension=100).load(Photo(id=1, filename="big.png"))
        with Image.open(BytesIO(part["data"])) as img:
            assert max(img.size) == 100

    def test_missing_file(self, uploads) -> None:
        assert ImageLoader(uploads_dir=uploads).load(Photo(id=1, url="/uploads/none.jpg")) is None

    def test_no_uploads_dir(self) -> None:
        assert ImageLoader().load(Photo(id=1, url="/uploads/a.jpg")) is None

    def test_filename_cannot_escape_uploads_dir(self, uploads) -> None:
        (uploads.parent / "secret.png").write_bytes(png_bytes())
        photo = Photo(id=1, filename="../secret.png")
        assert ImageLoader(uploads_dir=uploads).load(photo) is None

    def test_relative_url_cannot_escape_uploads_dir(self, uploads) -> None:
        (uploads.parent / "secret.png").write_bytes(png_bytes())
        photo = Photo(id=1, url="../secret.png")
        assert ImageLoader(uploads_dir=uploads).load(photo) is None

    def test_relative_url_inside_uploads_dir(self, uploads) -> None:
        (uploads / "2024").mkdir()
        (uploads / "2024" / "a.png").write_bytes(png_bytes())
        photo = Photo(id=1, url="2024/a.png")
        assert ImageLoader(uploads_dir=uploads).load(photo) is not None

    def test_undecodable_file(self, uploads) -> None:
        (uploads / "broken.jpg").write_bytes(b"not an image")
        assert ImageLoader(uploads_dir=uploads).load(Photo(id=1, filename="broken.jpg")) is None


class TestRemote:
    def test_download(self) -> None:
        session = MagicMock()
        session.get.return_value.content = png_bytes()
        loader = ImageLoader(timeout_seconds=3, session=session)
        part = loader.load(Photo(id=1, url="https://cdn.example.com/a.png"))
        assert part["mime_type"] == "image/jpeg"
        session.get.assert_called_once_with("https://cdn.example.com/a.png", timeout=3)

    def test_download_failure(self) -> None:
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("offline")
        assert ImageLoader(session=session).load(Photo(id=1, url="http://x/a.jpg")) is None

    def test_http_error(self) -> None:
        session = MagicMock()
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("404")
        assert ImageLoader(session=session).load(Photo(id=1, url="http://x/a.jpg")) is None
