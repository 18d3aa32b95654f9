"""Raster loader turning image references into uniform pixel buffers."""

from __future__ import annotations

import io
import logging
import os
from typing import Optional

import numpy as np
import requests
from PIL import Image, UnidentifiedImageError

from regen_quality.config import LoaderConfig
from regen_quality.types import RasterRef, RasterSample

logger = logging.getLogger(__name__)


class RasterLoadError(RuntimeError):
    """Raised when an image reference cannot be fetched or decoded."""


def describe_ref(ref: RasterRef, fallback: str) -> str:
    """Path or URL of a reference, or ``fallback`` for in-memory images."""

    if isinstance(ref, str):
        return ref
    if isinstance(ref, os.PathLike):
        return os.fspath(ref)
    return fallback


def candidate_id(ref: RasterRef, index: int) -> str:
    return describe_ref(ref, f"candidate_{index}")


def _is_url(ref: str) -> bool:
    return ref.startswith("http://") or ref.startswith("https://")


class RasterLoader:
    """Decodes paths, URLs, bytes, PIL images and arrays into ``RasterSample``."""

    def __init__(self, config: Optional[LoaderConfig] = None) -> None:
        self.config = config or LoaderConfig()
        # Shared across reranker worker threads.
        self._session = requests.Session()
        self._session.headers["User-Agent"] = self.config.user_agent

    def _fetch(self, url: str) -> bytes:
        try:
            response = self._session.get(url, timeout=self.config.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise RasterLoadError(f"Failed to fetch image {url}: {exc}") from exc
        content_type = response.headers.get("content-type")
        if content_type and not content_type.startswith("image/"):
            raise RasterLoadError(f"URL did not return an image ({content_type}): {url}")
        if not response.content:
            raise RasterLoadError(f"Empty image body: {url}")
        return response.content

    def _decode(self, data: bytes, source: str) -> RasterSample:
        try:
            with Image.open(io.BytesIO(data)) as image:
                return self._from_image(image)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
            raise RasterLoadError(f"Failed to decode image {source}: {exc}") from exc

    def _from_image(self, image: Image.Image) -> RasterSample:
        converted = image.convert(self.config.mode)
        return RasterSample.from_array(np.asarray(converted, dtype=np.uint8))

    def _read_path(self, path: str) -> RasterSample:
        try:
            with open(path, "rb") as handle:
                data = handle.read()
        except OSError as exc:
            raise RasterLoadError(f"Failed to read image {path}: {exc}") from exc
        return self._decode(data, path)

    def load(self, ref: RasterRef) -> RasterSample:
        """Load a single reference into a raster sample."""

        if isinstance(ref, RasterSample):
            return ref
        if isinstance(ref, np.ndarray):
            try:
                return RasterSample.from_array(ref)
            except (ValueError, IndexError) as exc:
                raise RasterLoadError(f"Invalid pixel array: {exc}") from exc
        if isinstance(ref, Image.Image):
            try:
                return self._from_image(ref)
            except ValueError as exc:
                raise RasterLoadError(f"Failed to convert image: {exc}") from exc
        if isinstance(ref, (bytes, bytearray)):
            return self._decode(bytes(ref), "<bytes>")
        if isinstance(ref, os.PathLike):
            return self._read_path(os.fspath(ref))
        if isinstance(ref, str):
            if _is_url(ref):
                logger.debug("Fetching raster %s", ref)
                return self._decode(self._fetch(ref), ref)
            return self._read_path(ref)
        raise RasterLoadError(f"Unsupported raster reference type: {type(ref).__name__}")
