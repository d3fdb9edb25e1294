from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from poseview.pose.types import Landmark


class PoseEstimator(ABC):
	"""
	Estimator capability interface.

	Implementations take an RGB image (H,W,3 uint8) and return the 33 normalized
	landmarks of a single person, or None if no pose was found. `smoothing` selects
	temporal smoothing across consecutive calls (live video) versus independent
	still images.
	"""

	@abstractmethod
	def name(self) -> str: ...

	@abstractmethod
	def is_available(self) -> bool: ...

	@abstractmethod
	def infer_rgb(self, rgb, smoothing: bool = False) -> Optional[List[Landmark]]: ...

	@abstractmethod
	def close(self) -> None: ...
