#==============================================================================
# SceneCapture - Persistence and Image Encoding
#==============================================================================
# File: persistence.py
# Description: Storage interface used for every file a run produces, the
#              local filesystem implementation, and the Pillow encoder that
#              turns viewport pixel buffers into image bytes.
#==============================================================================

import io
import logging
from abc import ABC, abstractmethod
from pathlib import Path

import numpy as np
from PIL import Image

from .errors import CaptureError, PersistenceError

logger = logging.getLogger(__name__)


class Persistence(ABC):
    """Where frames, masks and metadata end up."""

    @abstractmethod
    def ensure_directory(self, path: Path) -> None:
        """Create `path` (and parents) if missing."""

    @abstractmethod
    def write_bytes(self, path: Path, data: bytes) -> None:
        """Write binary data, replacing any existing file."""

    @abstractmethod
    def write_text(self, path: Path, data: str) -> None:
        """Write UTF-8 text, replacing any existing file."""

    @abstractmethod
    def remove(self, path: Path) -> None:
        """Delete a file if it exists."""


class LocalFileStore(Persistence):
    """
    Local filesystem storage.

    Every OSError is re-raised as PersistenceError carrying the path.
    """

    def ensure_directory(self, path: Path) -> None:
        path = Path(path)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create directory {path}: {e}", path=path) from e

    def write_bytes(self, path: Path, data: bytes) -> None:
        path = Path(path)
        try:
            path.write_bytes(data)
        except OSError as e:
            raise PersistenceError(f"Cannot write {path}: {e}", path=path) from e
        logger.debug(f"Wrote {len(data)} bytes to {path}")

    def write_text(self, path: Path, data: str) -> None:
        path = Path(path)
        try:
            path.write_text(data, encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Cannot write {path}: {e}", path=path) from e
        logger.debug(f"Wrote {len(data)} characters to {path}")

    def remove(self, path: Path) -> None:
        path = Path(path)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot remove {path}: {e}", path=path) from e


class ImageEncoder:
    """
    Encodes HxWx3 / HxWx4 uint8 buffers with Pillow.

    Formats without alpha support (JPEG, BMP) drop the alpha channel.
    """

    PIL_FORMATS = {
        "png": "PNG",
        "jpg": "JPEG",
        "jpeg": "JPEG",
        "bmp": "BMP",
        "tiff": "TIFF",
    }
    _NO_ALPHA = ("JPEG", "BMP")

    def __init__(self, image_format: str = "png", jpeg_quality: int = 95):
        image_format = image_format.lower()
        if image_format not in self.PIL_FORMATS:
            raise ValueError(f"Unsupported image format: {image_format}")
        self.image_format = image_format
        self.extension = image_format
        self.jpeg_quality = jpeg_quality
        self._pil_format = self.PIL_FORMATS[image_format]

    def encode(self, pixels: np.ndarray) -> bytes:
        """
        Encode a pixel buffer.

        Raises:
            CaptureError: buffer has the wrong shape/dtype, or Pillow fails
        """
        pixels = np.asarray(pixels)
        if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
            raise CaptureError(f"Expected HxWx3 or HxWx4 pixel buffer, got shape {pixels.shape}")
        if pixels.dtype != np.uint8:
            raise CaptureError(f"Expected uint8 pixel buffer, got {pixels.dtype}")

        try:
            image = Image.fromarray(np.ascontiguousarray(pixels))
            if image.mode == "RGBA" and self._pil_format in self._NO_ALPHA:
                image = image.convert("RGB")

            buffer = io.BytesIO()
            if self._pil_format == "JPEG":
                image.save(buffer, format="JPEG", quality=self.jpeg_quality)
            else:
                image.save(buffer, format=self._pil_format)
        except (OSError, ValueError) as e:
            raise CaptureError(f"{self._pil_format} encoding failed: {e}") from e

        return buffer.getvalue()

    @staticmethod
    def decode(data: bytes) -> np.ndarray:
        """Image bytes back to an RGB uint8 array."""
        with Image.open(io.BytesIO(data)) as image:
            return np.array(image.convert("RGB"))
