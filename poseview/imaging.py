"""Image decode/encode helpers (Pillow + numpy)."""
from __future__ import annotations

from io import BytesIO
from typing import Optional, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError


class ImageDecodeError(ValueError):
	"""Uploaded or stored bytes are not a decodable image."""


def decode_image(blob: bytes) -> Image.Image:
	"""Decode bytes to an RGB Pillow image. Raises ImageDecodeError."""
	if not blob:
		raise ImageDecodeError("empty image data")
	try:
		with Image.open(BytesIO(blob)) as im:
			im.load()
			return im.convert("RGB")
	except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
		raise ImageDecodeError(f"cannot decode image: {e}") from e


def to_rgb_array(img: Image.Image) -> np.ndarray:
	"""HxWx3 uint8 array as expected by the estimator."""
	return np.asarray(img.convert("RGB"), dtype=np.uint8)


def from_rgb_array(arr: np.ndarray) -> Image.Image:
	return Image.fromarray(np.ascontiguousarray(arr, dtype=np.uint8)).convert("RGB")


def encode_jpeg(img: Image.Image, quality: int = 80) -> bytes:
	buf = BytesIO()
	img.convert("RGB").save(buf, format="JPEG", quality=int(quality), optimize=True)
	return buf.getvalue()


def encode_png(img: Image.Image) -> bytes:
	buf = BytesIO()
	img.save(buf, format="PNG")
	return buf.getvalue()


def make_thumbnail_jpeg(blob: bytes, max_side: int) -> Tuple[bytes, Optional[Tuple[int, int]]]:
	"""
	JPEG thumbnail of an image blob, longest side <= max_side.
	Returns (jpeg, (w, h)) or raises ImageDecodeError.
	"""
	img = decode_image(blob)
	img.thumbnail((int(max_side), int(max_side)))
	return encode_jpeg(img), (img.width, img.height)


def looks_like_image(content_type: Optional[str], filename: Optional[str] = None) -> bool:
	"""Upload filter equivalent to accept="image/*"."""
	if content_type and content_type.lower().startswith("image/"):
		return True
	if not content_type or content_type == "application/octet-stream":
		name = (filename or "").lower()
		return name.endswith((".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".tif", ".tiff"))
	return False
