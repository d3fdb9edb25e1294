"""
Joint geometry and the fixed BlazePose topology.

Landmark indices follow the 33-point BlazePose numbering reported by the estimator
(0 nose, 11/12 shoulders, 13/14 elbows, 15/16 wrists, 23/24 hips, 25/26 knees,
27/28 ankles). They are an external contract and must not be renumbered.
"""
from __future__ import annotations

import enum
import math
from typing import List, Optional, Tuple

from poseview.pose.types import JointAngleSpec, Landmark

# Below this vector length the angle is undefined (coincident points).
EPSILON = 1e-6

NUM_LANDMARKS = 33

# Skeleton connections: (from_index, to_index).
POSE_CONNECTIONS: Tuple[Tuple[int, int], ...] = (
	# shoulders, arms
	(11, 12), (11, 13), (13, 15), (12, 14), (14, 16),
	# torso, legs
	(11, 23), (12, 24), (23, 24), (23, 25), (25, 27), (24, 26), (26, 28),
	# feet
	(27, 29), (29, 31), (28, 30), (30, 32),
	# hands
	(15, 17), (15, 19), (15, 21), (16, 18), (16, 20), (16, 22),
	# face
	(0, 1), (1, 2), (2, 3), (3, 7), (0, 4), (4, 5), (5, 6), (6, 8), (9, 10),
)

JOINT_ANGLES: Tuple[JointAngleSpec, ...] = (
	JointAngleSpec("Left elbow", (11, 13, 15), "Bend at elbow (shoulder–elbow–wrist). 180° straight."),
	JointAngleSpec("Right elbow", (12, 14, 16), "Same for right arm."),
	JointAngleSpec("Left knee", (23, 25, 27), "Bend at knee (hip–knee–ankle). 180° straight."),
	JointAngleSpec("Right knee", (24, 26, 28), "Same for right leg."),
	JointAngleSpec("Left shoulder", (23, 11, 13), "Angle between torso (hip→shoulder) and upper arm."),
	JointAngleSpec("Right shoulder", (24, 12, 14), "Same for right."),
	JointAngleSpec("Left hip", (11, 23, 25), "Angle at hip between torso and thigh."),
	JointAngleSpec("Right hip", (12, 24, 26), "Same for right."),
	JointAngleSpec("Neck (L)", (11, 0, 12), "Head tilt: angle at nose between shoulders."),
	JointAngleSpec("Torso lean", (23, 11, 24), "Angle at left shoulder between the two hips (torso orientation)."),
)


class AngleMode(str, enum.Enum):
	"""
	PLANAR uses x, y only and matches what the overlay shows.
	SPATIAL also uses the relative depth z and can disagree with the overlay when the
	joint bends towards or away from the camera.
	"""

	PLANAR = "2d"
	SPATIAL = "3d"


def _components(p: Landmark, mode: AngleMode) -> List[float]:
	if mode == AngleMode.SPATIAL:
		return [float(p.x), float(p.y), float(p.z)]
	return [float(p.x), float(p.y)]


def angle_at_joint(a: Landmark, b: Landmark, c: Landmark, mode: AngleMode = AngleMode.PLANAR) -> Optional[float]:
	"""
	Angle at B between BA and BC, in degrees.

	180 = fully extended, smaller = more bent. Returns None if either segment is
	shorter than EPSILON.
	"""
	pa = _components(a, mode)
	pb = _components(b, mode)
	pc = _components(c, mode)
	ba = [u - v for u, v in zip(pa, pb)]
	bc = [u - v for u, v in zip(pc, pb)]
	mag_ba = math.sqrt(sum(u * u for u in ba))
	mag_bc = math.sqrt(sum(u * u for u in bc))
	if mag_ba < EPSILON or mag_bc < EPSILON:
		return None
	dot = sum(u * v for u, v in zip(ba, bc))
	cos = max(-1.0, min(1.0, dot / (mag_ba * mag_bc)))
	return math.degrees(math.acos(cos))
