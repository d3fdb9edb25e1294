from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from poseview.analysis import AnalysisSlot, CancelToken
from poseview.db.assets import AssetEntry
from poseview.pose.angles import diff_angles, format_diff
from poseview.pose.geometry import AngleMode
from poseview.pose.types import AnalysisResult, JointAngleRow

logger = logging.getLogger(__name__)

SIDES = ("a", "b")

# (slot, blob, source_asset_id, token) -> applied result or None if dropped
AnalyzeFn = Callable[[AnalysisSlot, bytes, Optional[str], CancelToken], Awaitable[Optional[AnalysisResult]]]


def normalize_side(side: str) -> str:
	s = (side or "").strip().lower()
	if s not in SIDES:
		raise ValueError(f"side must be one of {SIDES}, got {side!r}")
	return s


class ComparisonEngine:
	"""
	Two independent analysis slots (A and B) plus a per-joint A-minus-B diff.

	Each side goes through the same single-shot analysis path as the gallery. Sides
	share nothing but the liveness token of the comparing session: loading one side
	never blocks, cancels or overwrites the other.
	"""

	def __init__(self, analyze: AnalyzeFn, token: CancelToken) -> None:
		self._analyze = analyze
		self._token = token
		self.slots: Dict[str, AnalysisSlot] = {s: AnalysisSlot(f"compare-{s}") for s in SIDES}
		self.entries: Dict[str, Optional[AssetEntry]] = {s: None for s in SIDES}

	async def load_from_gallery(self, side: str, entry: AssetEntry) -> Optional[AnalysisResult]:
		s = normalize_side(side)
		if entry.blob is None:
			raise ValueError(f"asset {entry.id} was fetched without image data")
		self.entries[s] = entry
		return await self._analyze(self.slots[s], entry.blob, entry.id, self._token)

	async def load_upload(self, side: str, blob: bytes, name: str, content_type: Optional[str] = None) -> Optional[AnalysisResult]:
		"""Analyze a file that is not saved to the gallery."""
		s = normalize_side(side)
		now = time.time()
		entry = AssetEntry(
			id=f"tmp-{int(now * 1000)}",
			name=str(name or ""),
			added_at=now,
			blob=bytes(blob),
			content_type=content_type,
			size=len(blob),
		)
		self.entries[s] = entry
		return await self._analyze(self.slots[s], entry.blob, entry.id, self._token)

	def clear(self, side: str) -> None:
		s = normalize_side(side)
		self.slots[s].reset()
		self.entries[s] = None

	def clear_asset(self, asset_id: str) -> List[str]:
		"""Clear every side showing asset_id (after deletion). Returns cleared sides."""
		cleared = []
		for s in SIDES:
			entry = self.entries[s]
			if entry is not None and entry.id == asset_id:
				self.clear(s)
				cleared.append(s)
		return cleared

	def recompute(self, mode: AngleMode) -> None:
		for slot in self.slots.values():
			slot.recompute(mode)

	def diff(self) -> Optional[List[JointAngleRow]]:
		"""None until both sides have settled with a detected pose."""
		a = self.slots["a"].result
		b = self.slots["b"].result
		if not a.has_pose or not b.has_pose:
			return None
		return diff_angles(a.angles, b.angles)

	def to_dict(self) -> Dict[str, Any]:
		sides: Dict[str, Any] = {}
		for s in SIDES:
			entry = self.entries[s]
			d = self.slots[s].to_dict()
			d["entry"] = entry.to_dict() if entry is not None else None
			sides[s] = d
		rows = self.diff()
		return {
			"sides": sides,
			"diff": (
				[{"name": r.name, "value": r.value, "display": format_diff(r.value)} for r in rows]
				if rows is not None
				else None
			),
		}
