from __future__ import annotations

from typing import List, Optional, Sequence

from poseview.pose.geometry import JOINT_ANGLES, AngleMode, angle_at_joint
from poseview.pose.types import JointAngleRow, Landmark

VISIBILITY_THRESHOLD = 0.5


def is_visible(p: Optional[Landmark]) -> bool:
	"""A landmark counts when present and its visibility is absent or >= threshold."""
	if p is None:
		return False
	return p.visibility is None or float(p.visibility) >= VISIBILITY_THRESHOLD


def _get(landmarks: Sequence[Landmark], idx: int) -> Optional[Landmark]:
	if 0 <= idx < len(landmarks):
		return landmarks[idx]
	return None


def compute_angles(landmarks: Sequence[Landmark], mode: AngleMode = AngleMode.PLANAR) -> List[JointAngleRow]:
	"""
	One row per catalog entry, in catalog order.

	Confidence gating wins over geometry: a joint with any member below the
	visibility threshold is None even if the angle would be computable.
	"""
	rows: List[JointAngleRow] = []
	for joint in JOINT_ANGLES:
		i, j, k = joint.joint_triple
		a, b, c = _get(landmarks, i), _get(landmarks, j), _get(landmarks, k)
		value: Optional[float] = None
		if is_visible(a) and is_visible(b) and is_visible(c):
			value = angle_at_joint(a, b, c, mode)
		rows.append(JointAngleRow(name=joint.name, value=value))
	return rows


def empty_angles() -> List[JointAngleRow]:
	return [JointAngleRow(name=joint.name, value=None) for joint in JOINT_ANGLES]


def diff_angles(rows_a: Sequence[JointAngleRow], rows_b: Sequence[JointAngleRow]) -> List[JointAngleRow]:
	"""Per-joint A minus B; None where either side is undeterminable."""
	out: List[JointAngleRow] = []
	for idx, joint in enumerate(JOINT_ANGLES):
		va = rows_a[idx].value if idx < len(rows_a) else None
		vb = rows_b[idx].value if idx < len(rows_b) else None
		out.append(JointAngleRow(name=joint.name, value=(va - vb) if va is not None and vb is not None else None))
	return out


def format_angle(value: Optional[float]) -> str:
	return f"{value:.1f}°" if value is not None else "—"


def format_diff(value: Optional[float]) -> str:
	if value is None:
		return "—"
	sign = "+" if value > 0 else ""
	return f"{sign}{value:.1f}°"
