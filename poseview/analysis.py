"""Liveness tokens and per-slot analysis state shared by the session and comparison."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Optional, Sequence

from PIL import Image

from poseview.pose.angles import compute_angles, empty_angles, format_angle
from poseview.pose.geometry import AngleMode
from poseview.pose.types import AnalysisResult, Landmark

logger = logging.getLogger(__name__)

NO_POSE_HINT = "No pose detected. Try a clearer full-body image."


class CancelToken:
	"""
	Liveness of one mode session. Every async chain started for a session carries
	its token and checks it before mutating state; cancel() is synchronous and final.
	"""

	__slots__ = ("label", "_cancelled")

	def __init__(self, label: str = "") -> None:
		self.label = label
		self._cancelled = False

	@property
	def cancelled(self) -> bool:
		return self._cancelled

	def cancel(self) -> None:
		self._cancelled = True

	def __repr__(self) -> str:
		return f"CancelToken({self.label!r}, cancelled={self._cancelled})"


def empty_result(source_asset_id: Optional[str] = None) -> AnalysisResult:
	return AnalysisResult(source_asset_id=source_asset_id, landmarks=None, angles=tuple(empty_angles()))


def settled_result(
	source_asset_id: Optional[str],
	landmarks: Optional[Sequence[Landmark]],
	mode: AngleMode,
	width: int = 0,
	height: int = 0,
) -> AnalysisResult:
	lm = tuple(landmarks) if landmarks is not None else None
	angles = compute_angles(lm, mode) if lm is not None else empty_angles()
	return AnalysisResult(
		source_asset_id=source_asset_id,
		landmarks=lm,
		angles=tuple(angles),
		is_loading=False,
		width=int(width),
		height=int(height),
	)


class AnalysisSlot:
	"""
	One displayable analysis (live frame, gallery selection, or a comparison side).

	Each begin() issues a new ticket; settle() only applies the result of the most
	recent ticket, so superseded requests are dropped instead of overwriting newer state.
	The source image is kept for redraws and snapshots.
	"""

	def __init__(self, label: str) -> None:
		self.label = label
		self.result: AnalysisResult = empty_result()
		self.image: Optional[Image.Image] = None
		self.dropped = 0
		self._seq = 0

	def begin(self, source_asset_id: Optional[str]) -> int:
		self._seq += 1
		self.result = AnalysisResult(
			source_asset_id=source_asset_id,
			landmarks=None,
			angles=tuple(empty_angles()),
			is_loading=True,
		)
		self.image = None
		return self._seq

	def is_current(self, ticket: int) -> bool:
		return ticket == self._seq

	def settle(self, ticket: int, result: AnalysisResult, image: Optional[Image.Image]) -> bool:
		if not self.is_current(ticket):
			self.dropped += 1
			logger.debug("[Analysis] %s: dropped superseded result (ticket %d, current %d)", self.label, ticket, self._seq)
			return False
		self.result = result
		self.image = image
		return True

	def replace(self, result: AnalysisResult, image: Optional[Image.Image]) -> None:
		"""Apply a result directly, superseding anything in flight (live frames)."""
		self._seq += 1
		self.result = result
		self.image = image

	def reset(self) -> None:
		"""Back to the empty state; anything in flight is superseded."""
		self._seq += 1
		self.result = empty_result()
		self.image = None

	def recompute(self, mode: AngleMode) -> bool:
		"""Recompute angles from held landmarks. Never touches the estimator."""
		if self.result.is_loading or self.result.landmarks is None:
			return False
		self.result = replace(self.result, angles=tuple(compute_angles(self.result.landmarks, mode)))
		return True

	def to_dict(self) -> Dict[str, Any]:
		d = self.result.to_dict()
		for row in d["angles"]:
			row["display"] = format_angle(row["value"])
		d["hint"] = (
			NO_POSE_HINT
			if not self.result.is_loading and self.result.landmarks is None and self.result.error is None and self.image is not None
			else None
		)
		return d
