"""Downloadable snapshot: annotated frame plus a joint-angle text panel."""
from __future__ import annotations

import time
from typing import List, Optional, Sequence

from PIL import Image, ImageDraw, ImageFont

from poseview.pose.types import JointAngleRow

BACKGROUND = (0x18, 0x18, 0x1B)
PANEL_COLOR = (0x00, 0xFF, 0x88)
TEXT_COLOR = (0x0F, 0x0F, 0x12)
PADDING = 18
LINE_HEIGHT = 20
FONT_SIZE = 15


def angle_lines(angles: Sequence[JointAngleRow]) -> List[str]:
	return [f"{row.name}: {row.value:.1f}°" for row in angles if row.value is not None]


def _font(size: int):
	try:
		return ImageFont.load_default(size=size)
	except TypeError:
		# Pillow < 10.1 has no sized default font.
		return ImageFont.load_default()


def compose_snapshot(annotated: Image.Image, angles: Sequence[JointAngleRow], scale: float = 1.35) -> Image.Image:
	"""
	Scale the annotated frame and append one line per non-null angle below it.
	No panel is added when no angle is determinable.
	"""
	lines = angle_lines(angles)
	img_w = max(1, int(round(annotated.width * float(scale))))
	img_h = max(1, int(round(annotated.height * float(scale))))
	text_h = len(lines) * LINE_HEIGHT + PADDING * 2 if lines else 0

	out = Image.new("RGB", (img_w, img_h + text_h), BACKGROUND)
	out.paste(annotated.convert("RGB").resize((img_w, img_h), Image.Resampling.BILINEAR), (0, 0))
	if lines:
		draw = ImageDraw.Draw(out)
		draw.rectangle([0, img_h, img_w, img_h + text_h], fill=PANEL_COLOR)
		font = _font(FONT_SIZE)
		for i, line in enumerate(lines):
			# (i + 1) * LINE_HEIGHT is the baseline; Pillow positions by the top edge.
			baseline = img_h + PADDING + (i + 1) * LINE_HEIGHT
			draw.text((PADDING, baseline - FONT_SIZE), line, fill=TEXT_COLOR, font=font)
	return out


def snapshot_filename(now_ms: Optional[int] = None) -> str:
	ms = int(now_ms if now_ms is not None else time.time() * 1000)
	return f"poseview-{ms}.png"
