"""Shared fixtures: in-memory asyncpg stand-in, stub estimator, stub camera, pose builders."""
import asyncio
import io
import math
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import numpy as np
import pytest
from PIL import Image

from poseview.camera import CameraError, CameraSource
from poseview.db import pool as pool_mod
from poseview.pose.base import PoseEstimator
from poseview.pose.types import Landmark


def run(coro):
	return asyncio.run(coro)


# ---------------------------------------------------------------- landmarks


def base_pose() -> List[Landmark]:
	"""33 distinct, fully visible landmarks roughly laid out like a standing person."""
	pts = [Landmark(x=0.3 + 0.01 * i, y=0.1 + 0.02 * i, z=0.0, visibility=0.99) for i in range(33)]
	layout = {
		0: (0.50, 0.10),
		11: (0.40, 0.30), 12: (0.60, 0.30),
		13: (0.40, 0.45), 14: (0.60, 0.45),
		15: (0.40, 0.60), 16: (0.60, 0.60),
		23: (0.44, 0.60), 24: (0.56, 0.60),
		25: (0.44, 0.78), 26: (0.56, 0.78),
		27: (0.44, 0.95), 28: (0.56, 0.95),
	}
	for idx, (x, y) in layout.items():
		pts[idx] = Landmark(x=x, y=y, z=0.0, visibility=0.99)
	return pts


def pose_with_left_elbow(deg: float) -> List[Landmark]:
	"""base_pose() with the left wrist placed so the planar left elbow angle is `deg`."""
	pts = base_pose()
	elbow = pts[13]
	rad = math.radians(deg)
	pts[15] = Landmark(
		x=elbow.x + 0.15 * math.sin(rad),
		y=elbow.y - 0.15 * math.cos(rad),
		z=0.0,
		visibility=0.99,
	)
	return pts


def png_bytes(w: int = 64, h: int = 48, color=(120, 90, 60)) -> bytes:
	buf = io.BytesIO()
	Image.new("RGB", (w, h), color).save(buf, format="PNG")
	return buf.getvalue()


# ------------------------------------------------------------ fake asyncpg


class FakeConnection:
	"""Understands exactly the statements poseview.db.assets issues."""

	def __init__(self, rows: Dict[str, Dict[str, Any]], fail: bool = False) -> None:
		self._rows = rows
		self._fail = fail

	def _check(self) -> None:
		if self._fail:
			raise OSError("connection refused")

	async def execute(self, sql: str, *args: Any) -> str:
		self._check()
		return "OK"

	async def fetch(self, sql: str, *args: Any) -> List[Dict[str, Any]]:
		self._check()
		rows = sorted(self._rows.values(), key=lambda r: (r["added_at"], r["id"]), reverse=True)
		with_blob = ", blob" in sql
		return [self._project(r, with_blob) for r in rows]

	async def fetchrow(self, sql: str, *args: Any) -> Optional[Dict[str, Any]]:
		self._check()
		s = " ".join(sql.split())
		if s.startswith("INSERT INTO assets"):
			asset_id, name, content_type, blob, added_at = args
			if asset_id in self._rows:
				return None
			self._rows[asset_id] = {
				"id": asset_id,
				"name": name,
				"content_type": content_type,
				"blob": bytes(blob),
				"added_at": added_at,
			}
			return {"id": asset_id}
		if s.startswith("DELETE FROM assets"):
			row = self._rows.pop(args[0], None)
			return {"id": row["id"]} if row is not None else None
		if s.startswith("SELECT"):
			row = self._rows.get(args[0])
			return self._project(row, True) if row is not None else None
		raise AssertionError(f"unexpected SQL: {s}")

	@staticmethod
	def _project(row: Dict[str, Any], with_blob: bool) -> Dict[str, Any]:
		out = {
			"id": row["id"],
			"name": row["name"],
			"content_type": row["content_type"],
			"added_at": row["added_at"],
			"size": len(row["blob"]),
		}
		if with_blob:
			out["blob"] = row["blob"]
		return out


class FakePool:
	def __init__(self) -> None:
		self.rows: Dict[str, Dict[str, Any]] = {}
		self.fail = False
		self.closed = False

	@asynccontextmanager
	async def acquire(self):
		yield FakeConnection(self.rows, fail=self.fail)

	async def close(self) -> None:
		self.closed = True


@pytest.fixture
def fake_pool(monkeypatch):
	p = FakePool()
	monkeypatch.setattr(pool_mod, "_pool", p)
	return p


# ------------------------------------------------------------------- stubs


class StubEstimator(PoseEstimator):
	"""Synchronous estimator returning a fixed pose (or None) and recording calls."""

	def __init__(self, landmarks: Optional[List[Landmark]] = None, available: bool = True, fail: bool = False) -> None:
		self.landmarks = landmarks
		self.available = available
		self.fail = fail
		self.calls: List[bool] = []
		self.closed = False

	def name(self) -> str:
		return "stub"

	def is_available(self) -> bool:
		return self.available

	def infer_rgb(self, rgb, smoothing: bool = False):
		self.calls.append(bool(smoothing))
		if self.fail:
			raise RuntimeError("graph crashed")
		return list(self.landmarks) if self.landmarks is not None else None

	def close(self) -> None:
		self.closed = True


class GatedAdapter:
	"""
	Adapter stand-in whose analyze() resolves only when the test releases it,
	so a result can be delivered after the session has moved on.
	"""

	estimator_name = "gated"

	def __init__(self, landmarks: Optional[List[Landmark]] = None, available: bool = True) -> None:
		self.landmarks = landmarks
		self.available = available
		self.calls: List[bool] = []
		self.in_flight = 0
		self.max_in_flight = 0
		self._gates: List[asyncio.Event] = []
		self.auto = False

	def is_available(self) -> bool:
		return self.available

	async def analyze(self, rgb, smoothing: bool = False):
		self.calls.append(bool(smoothing))
		self.in_flight += 1
		self.max_in_flight = max(self.max_in_flight, self.in_flight)
		try:
			if not self.auto:
				gate = asyncio.Event()
				self._gates.append(gate)
				await gate.wait()
			else:
				await asyncio.sleep(0)
			return list(self.landmarks) if self.landmarks is not None else None
		finally:
			self.in_flight -= 1

	@property
	def pending(self) -> int:
		return sum(1 for g in self._gates if not g.is_set())

	def release_all(self) -> None:
		for g in self._gates:
			g.set()

	def close(self) -> None:
		pass


class StubCamera(CameraSource):
	def __init__(self, deny: bool = False, width: int = 64, height: int = 48) -> None:
		self.deny = deny
		self.opened = False
		self.closed = 0
		self.reads = 0
		self._frame = np.full((height, width, 3), 100, dtype=np.uint8)

	def name(self) -> str:
		return "stub-camera"

	async def open(self) -> None:
		await asyncio.sleep(0)
		if self.deny:
			raise CameraError("permission denied")
		self.opened = True

	async def read_rgb(self):
		await asyncio.sleep(0)
		self.reads += 1
		return self._frame.copy()

	def close(self) -> None:
		self.closed += 1
		self.opened = False

	def get_status(self) -> Dict[str, Any]:
		return {"name": self.name(), "running": self.opened, "frames": self.reads}


async def wait_for(predicate, timeout: float = 2.0) -> None:
	"""Yield to the loop until predicate() holds."""
	loop = asyncio.get_running_loop()
	deadline = loop.time() + timeout
	while not predicate():
		if loop.time() > deadline:
			raise AssertionError("condition not reached")
		await asyncio.sleep(0.001)
