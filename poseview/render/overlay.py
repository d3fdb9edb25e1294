from __future__ import annotations

from typing import Optional, Sequence, Tuple

from PIL import Image, ImageDraw

from poseview.pose.angles import VISIBILITY_THRESHOLD
from poseview.pose.geometry import POSE_CONNECTIONS
from poseview.pose.types import Landmark

OVERLAY_COLOR = (0x00, 0xFF, 0x88)
DEFAULT_LINE_WIDTH = 1.5
DEFAULT_RADIUS = 2


def _drawable(p: Optional[Landmark]) -> bool:
	# Unlike the angle gate, a missing visibility is drawn.
	return p is not None and (p.visibility is None or float(p.visibility) >= VISIBILITY_THRESHOLD)


def _px(p: Landmark, width: int, height: int) -> Tuple[float, float]:
	return float(p.x) * float(width), float(p.y) * float(height)


def draw_skeleton(
	surface: Image.Image,
	landmarks: Sequence[Landmark],
	width: int,
	height: int,
	line_width: float = DEFAULT_LINE_WIDTH,
	radius: float = DEFAULT_RADIUS,
) -> None:
	"""
	Draw the skeleton onto `surface` in place.

	Coordinates are normalized; width/height scale them to pixels. The caller sizes the
	surface to the source image first. Colours are opaque so overdrawing is idempotent.
	"""
	draw = ImageDraw.Draw(surface)
	lw = max(1, int(round(float(line_width))))
	n = len(landmarks)

	for i, j in POSE_CONNECTIONS:
		if i >= n or j >= n:
			continue
		a, b = landmarks[i], landmarks[j]
		if not _drawable(a) or not _drawable(b):
			continue
		draw.line([_px(a, width, height), _px(b, width, height)], fill=OVERLAY_COLOR, width=lw)

	r = float(radius)
	for p in landmarks:
		if not _drawable(p):
			continue
		x, y = _px(p, width, height)
		draw.ellipse([x - r, y - r, x + r, y + r], fill=OVERLAY_COLOR)


def render_frame(source: Image.Image, landmarks: Optional[Sequence[Landmark]]) -> Image.Image:
	"""Copy of `source` with the skeleton drawn on top (no overlay when landmarks is None)."""
	canvas = source.convert("RGB").copy()
	if landmarks:
		draw_skeleton(canvas, landmarks, canvas.width, canvas.height)
	return canvas
