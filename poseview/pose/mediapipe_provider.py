from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from poseview.config import PoseConfig
from poseview.pose.base import PoseEstimator
from poseview.pose.geometry import NUM_LANDMARKS
from poseview.pose.types import Landmark

logger = logging.getLogger(__name__)


class MediaPipePoseEstimator(PoseEstimator):
	"""
	MediaPipe Pose (BlazePose) estimator.

	Notes:
	- Landmarks stay normalized; rendering scales them to pixels.
	- One engine instance per smoothing setting. A smoothing (tracking) graph carries
	  state between frames and must never see still images from another source.
	- Instances are not thread-safe; each one is guarded by its own lock because
	  calls arrive from executor threads.
	"""

	def __init__(self, cfg: Optional[PoseConfig] = None) -> None:
		self._cfg = cfg or PoseConfig()
		self._mp: Any = None
		self._import_error: Optional[str] = None
		try:
			import mediapipe as mp  # type: ignore

			if not hasattr(mp, "solutions"):
				raise ImportError("this mediapipe build has no solutions.pose")
			self._mp = mp
		except Exception as e:
			self._import_error = repr(e)
			logger.warning("[Pose] MediaPipe is not available: %s", self._import_error)

		self._engines: Dict[bool, Any] = {}
		self._locks: Dict[bool, threading.Lock] = {True: threading.Lock(), False: threading.Lock()}
		self._create_lock = threading.Lock()
		self._closed = False

	def name(self) -> str:
		return "mediapipe_pose"

	def is_available(self) -> bool:
		return self._mp is not None

	def _engine(self, smoothing: bool) -> Any:
		with self._create_lock:
			if self._closed:
				return None
			eng = self._engines.get(smoothing)
			if eng is None:
				eng = self._mp.solutions.pose.Pose(
					static_image_mode=not smoothing,
					model_complexity=int(self._cfg.model_complexity),
					smooth_landmarks=bool(smoothing),
					enable_segmentation=False,
					min_detection_confidence=float(self._cfg.min_detection_confidence),
					min_tracking_confidence=float(self._cfg.min_tracking_confidence),
				)
				self._engines[smoothing] = eng
			return eng

	def infer_rgb(self, rgb, smoothing: bool = False) -> Optional[List[Landmark]]:
		if self._mp is None:
			return None
		eng = self._engine(bool(smoothing))
		if eng is None:
			return None
		with self._locks[bool(smoothing)]:
			if self._closed:
				return None
			res = eng.process(rgb)
		if not res or not getattr(res, "pose_landmarks", None):
			return None

		out: List[Landmark] = []
		for p in list(res.pose_landmarks.landmark)[:NUM_LANDMARKS]:
			vis = getattr(p, "visibility", None)
			out.append(
				Landmark(
					x=float(p.x),
					y=float(p.y),
					z=float(getattr(p, "z", 0.0) or 0.0),
					visibility=float(vis) if vis is not None else None,
				)
			)
		return out

	def close(self) -> None:
		with self._create_lock:
			engines = list(self._engines.items())
			self._engines.clear()
			self._closed = True
		for smoothing, eng in engines:
			# Waits for an in-flight process() on this engine to return.
			with self._locks[smoothing]:
				try:
					eng.close()
				except Exception as e:
					logger.debug("[Pose] close failed: %r", e)
