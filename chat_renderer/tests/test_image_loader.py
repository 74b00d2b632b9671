"""Tests for image fetching and decoding."""
import base64
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock

import requests

from chat_renderer.model.document_model import ImageLoadError
from chat_renderer.renderer.image_loader import HEADERS, DefaultImageLoader

PIXEL_PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="


class DefaultImageLoaderTest(unittest.TestCase):
    """Sources: data URIs, HTTP(S) with timeout, and local files."""

    def setUp(self):
        self.session = Mock()
        self.loader = DefaultImageLoader(session=self.session)

    def test_base64_data_uri(self):
        image = self.loader.load(f"data:image/png;base64,{PIXEL_PNG_B64}", 5.0)
        self.assertEqual((image.width_px, image.height_px), (1, 1))
        self.session.get.assert_not_called()

    def test_http_fetch_passes_timeout(self):
        response = Mock()
        response.content = base64.b64decode(PIXEL_PNG_B64)
        self.session.get.return_value = response

        image = self.loader.load("https://example.com/pixel.png", 3.5)

        self.session.get.assert_called_once_with("https://example.com/pixel.png", headers=HEADERS, timeout=3.5)
        response.raise_for_status.assert_called_once_with()
        self.assertEqual(image.width_px, 1)

    def test_http_errors_become_image_load_errors(self):
        self.session.get.side_effect = requests.Timeout("too slow")
        with self.assertRaises(ImageLoadError):
            self.loader.load("https://example.com/slow.png", 0.1)

    def test_local_file_inside_root(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "pixel.png"
            path.write_bytes(base64.b64decode(PIXEL_PNG_B64))
            loader = DefaultImageLoader(session=self.session, local_root=Path(tmp))

            self.assertEqual(loader.load("pixel.png", 1.0).height_px, 1)
            self.assertEqual(loader.load(str(path), 1.0).height_px, 1)
            self.assertEqual(loader.load(path.as_uri(), 1.0).width_px, 1)

    def test_local_reads_are_refused_by_default(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "pixel.png"
            path.write_bytes(base64.b64decode(PIXEL_PNG_B64))
            with self.assertRaises(ImageLoadError):
                self.loader.load(str(path), 1.0)
            with self.assertRaises(ImageLoadError):
                self.loader.load(path.as_uri(), 1.0)

    def test_local_reads_cannot_escape_root(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp) / "images"
            root.mkdir()
            secret = Path(tmp) / "secret.png"
            secret.write_bytes(base64.b64decode(PIXEL_PNG_B64))
            loader = DefaultImageLoader(session=self.session, local_root=root)

            for src in ("../secret.png", str(secret), secret.as_uri(), "ftp://example.com/a.png"):
                with self.assertRaises(ImageLoadError, msg=src):
                    loader.load(src, 1.0)

    def test_missing_file_and_bad_payloads(self):
        for src in ("/nonexistent/image.png", "data:image/png;base64,AAAA", "data:image/png", ""):
            with self.assertRaises(ImageLoadError, msg=src):
                self.loader.load(src, 1.0)


if __name__ == "__main__":
    unittest.main()
