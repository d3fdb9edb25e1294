from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from poseview.pose.base import PoseEstimator
from poseview.pose.types import Landmark

logger = logging.getLogger(__name__)


class PoseEstimatorAdapter:
	"""
	Async front for a blocking PoseEstimator.

	Every call resolves exactly once, to landmarks or None. An unavailable or failing
	estimator is a data condition ("no pose"), not an exception, because callers always
	need a displayable state.
	"""

	def __init__(self, estimator: Optional[PoseEstimator]) -> None:
		self._estimator = estimator
		self._warned_unavailable = False

	@property
	def estimator_name(self) -> Optional[str]:
		return self._estimator.name() if self._estimator is not None else None

	def is_available(self) -> bool:
		if self._estimator is None:
			return False
		try:
			return bool(self._estimator.is_available())
		except Exception as e:
			logger.warning("[Pose] availability probe failed: %r", e)
			return False

	async def analyze(self, rgb, smoothing: bool = False) -> Optional[List[Landmark]]:
		if not self.is_available():
			if not self._warned_unavailable:
				logger.warning("[Pose] estimator not loaded; all analyses will report no pose.")
				self._warned_unavailable = True
			return None
		loop = asyncio.get_running_loop()
		try:
			return await loop.run_in_executor(None, self._estimator.infer_rgb, rgb, bool(smoothing))
		except asyncio.CancelledError:
			raise
		except Exception as e:
			logger.warning("[Pose] inference failed: %r", e)
			return None

	def close(self) -> None:
		if self._estimator is not None:
			self._estimator.close()
