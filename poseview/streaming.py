"""MJPEG multipart streaming from a latest-frame getter."""
from __future__ import annotations

import asyncio
import time
from typing import AsyncIterator, Callable, Optional, Tuple

BOUNDARY = b"frame"
MEDIA_TYPE = "multipart/x-mixed-replace; boundary=frame"
NO_CACHE_HEADERS = {
	"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
	"Pragma": "no-cache",
}

LatestJpegFn = Callable[[], Tuple[Optional[bytes], Optional[float]]]


def mjpeg_part(jpeg: bytes) -> bytes:
	return (
		b"--" + BOUNDARY + b"\r\n"
		+ b"Content-Type: image/jpeg\r\n"
		+ b"Content-Length: " + str(len(jpeg)).encode("ascii") + b"\r\n\r\n"
		+ jpeg + b"\r\n"
	)


async def mjpeg_from_latest(
	get_latest_jpeg_fn: LatestJpegFn,
	fps: float,
	max_frames: Optional[int] = None,
) -> AsyncIterator[bytes]:
	"""
	Poll get_latest_jpeg_fn() and yield one multipart chunk per new frame, capped at fps.
	Frames produced faster than the cap are skipped, never queued. Stops after
	max_frames parts when given.
	"""
	last_t = None
	last_sent_mono = 0.0
	try:
		max_fps = float(fps)
	except (TypeError, ValueError):
		max_fps = 15.0
	if not (max_fps > 0.0):
		max_fps = 15.0
	min_interval = 1.0 / max_fps

	sent = 0
	while max_frames is None or sent < max_frames:
		jpeg, t = get_latest_jpeg_fn()
		if jpeg is None or t is None:
			await asyncio.sleep(0.05)
			continue
		if last_t is not None and t == last_t:
			await asyncio.sleep(0.01)
			continue
		elapsed = time.monotonic() - last_sent_mono
		if elapsed < min_interval:
			# Don't send a stale frame; loop and grab the latest.
			await asyncio.sleep(min_interval - elapsed)
			continue
		last_t = t
		last_sent_mono = time.monotonic()
		sent += 1
		yield mjpeg_part(jpeg)
