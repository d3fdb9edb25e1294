from __future__ import annotations

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import numpy as np

from poseview.config import CameraConfig, get_config

logger = logging.getLogger(__name__)


class CameraError(RuntimeError):
	"""Camera access denied or device unavailable."""


class CameraSource(ABC):
	"""
	Media capture collaborator.

	open() acquires the device (raises CameraError on denial/failure), read_rgb() returns
	the next frame as HxWx3 RGB or None when no frame is available, close() releases
	the device and must be safe to call on every exit path, repeatedly.
	"""

	@abstractmethod
	def name(self) -> str: ...

	@abstractmethod
	async def open(self) -> None: ...

	@abstractmethod
	async def read_rgb(self) -> Optional[np.ndarray]: ...

	@abstractmethod
	def close(self) -> None: ...

	@abstractmethod
	def get_status(self) -> Dict[str, Any]: ...


class OpenCvCamera(CameraSource):
	"""
	Local webcam via OpenCV.

	Blocking VideoCapture calls run in the default executor so the event loop keeps
	serving requests while a frame is pending.
	"""

	def __init__(self, cfg: Optional[CameraConfig] = None) -> None:
		self._cfg = cfg or get_config().camera
		self._lock = threading.Lock()
		# One cap.read() at a time; close() never waits on it.
		self._io_lock = threading.Lock()
		self._cap: Any = None
		self._last_error: Optional[str] = None
		self._reading = False
		self._frames = 0
		self._t_last_frame: Optional[float] = None

	def name(self) -> str:
		return f"opencv:{int(self._cfg.device_index)}"

	def _open_blocking(self) -> Any:
		try:
			import cv2  # type: ignore
		except Exception as e:
			raise CameraError(f"OpenCV import failed: {e!r}. Install `opencv-python` (pip).") from e

		cap = cv2.VideoCapture(int(self._cfg.device_index))
		if cap is None or not cap.isOpened():
			if cap is not None:
				cap.release()
			raise CameraError(f"camera {int(self._cfg.device_index)} could not be opened")
		cap.set(cv2.CAP_PROP_FRAME_WIDTH, int(self._cfg.width))
		cap.set(cv2.CAP_PROP_FRAME_HEIGHT, int(self._cfg.height))
		return cap

	async def open(self) -> None:
		loop = asyncio.get_running_loop()
		try:
			cap = await loop.run_in_executor(None, self._open_blocking)
		except CameraError as e:
			with self._lock:
				self._last_error = str(e)
			raise
		with self._lock:
			if self._cap is not None:
				cap.release()
				return
			self._cap = cap
			self._last_error = None
		logger.info("[Camera] %s opened", self.name())

	def _read_blocking(self) -> Optional[np.ndarray]:
		import cv2  # type: ignore

		with self._io_lock:
			with self._lock:
				cap = self._cap
				if cap is None:
					return None
				self._reading = True
			try:
				ok, frame = cap.read()
			finally:
				with self._lock:
					self._reading = False
					orphaned = self._cap is not cap
			if orphaned:
				# close() ran during the read and left the release to us.
				self._release(cap)
				return None
		if not ok or frame is None:
			return None
		with self._lock:
			self._frames += 1
			self._t_last_frame = time.time()
		return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

	async def read_rgb(self) -> Optional[np.ndarray]:
		loop = asyncio.get_running_loop()
		return await loop.run_in_executor(None, self._read_blocking)

	def close(self) -> None:
		"""Never blocks on a pending read; the reader releases the device when it returns."""
		with self._lock:
			cap = self._cap
			self._cap = None
			if cap is None:
				return
			deferred = self._reading
		if deferred:
			logger.debug("[Camera] %s release deferred to in-flight read", self.name())
			return
		self._release(cap)

	def _release(self, cap: Any) -> None:
		try:
			cap.release()
		except Exception as e:
			logger.debug("[Camera] release failed: %r", e)
		logger.info("[Camera] %s released", self.name())

	def get_status(self) -> Dict[str, Any]:
		with self._lock:
			return {
				"name": self.name(),
				"running": self._cap is not None,
				"frames": int(self._frames),
				"t_last_frame": self._t_last_frame,
				"error": self._last_error,
			}
