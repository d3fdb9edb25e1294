from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class Landmark:
	"""
	A single body landmark as reported by the estimator.

	- x, y are normalized to the source image ([0..1] per axis).
	- z is a relative depth estimate with no fixed unit.
	- visibility is the estimator's confidence that the point is unoccluded, or None
	  if the backend does not report it.
	"""

	x: float
	y: float
	z: float = 0.0
	visibility: Optional[float] = None

	def to_dict(self) -> Dict[str, Any]:
		d: Dict[str, Any] = {"x": self.x, "y": self.y, "z": self.z}
		if self.visibility is not None:
			d["visibility"] = self.visibility
		return d


@dataclass(frozen=True)
class JointAngleSpec:
	name: str
	joint_triple: Tuple[int, int, int]  # (proximal, joint, distal)
	description: str


@dataclass(frozen=True)
class JointAngleRow:
	name: str
	value: Optional[float] = None  # None = undeterminable, never 0

	def to_dict(self) -> Dict[str, Any]:
		return {"name": self.name, "value": self.value}


@dataclass(frozen=True)
class AnalysisResult:
	"""
	Outcome of one analysis request for one slot.

	Results are replaced wholesale on every (re)analysis. Exactly one of two states holds:
	- is_loading=True: a request is in flight, landmarks/angles are placeholders.
	- is_loading=False: settled; landmarks=None means "no pose detected"
	  (or the image could not be decoded, see `error`).
	"""

	source_asset_id: Optional[str]
	landmarks: Optional[Tuple[Landmark, ...]]
	angles: Tuple[JointAngleRow, ...]
	is_loading: bool = False
	width: int = 0
	height: int = 0
	error: Optional[str] = None

	@property
	def has_pose(self) -> bool:
		return not self.is_loading and self.landmarks is not None

	def to_dict(self) -> Dict[str, Any]:
		return {
			"source_asset_id": self.source_asset_id,
			"is_loading": self.is_loading,
			"landmarks": [lm.to_dict() for lm in self.landmarks] if self.landmarks is not None else None,
			"angles": [row.to_dict() for row in self.angles],
			"width": self.width,
			"height": self.height,
			"error": self.error,
		}
