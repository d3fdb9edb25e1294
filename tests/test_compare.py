import asyncio

import pytest

from conftest import GatedAdapter, base_pose, png_bytes, pose_with_left_elbow, run, wait_for
from poseview import db
from poseview.compare import normalize_side
from poseview.handles import DisplayHandleCache
from poseview.pose.types import Landmark
from poseview.session import SessionOrchestrator


async def _comparing(adapter):
	s = SessionOrchestrator(adapter, camera_factory=lambda: None, handles=DisplayHandleCache(thumbnail_size=32))
	await s.start()
	await s.set_mode("comparing")
	return s


def test_diff_of_elbows(fake_pool):
	async def go():
		adapter = GatedAdapter()
		adapter.auto = True
		s = await _comparing(adapter)
		adapter.landmarks = pose_with_left_elbow(170.0)
		await s.compare_upload("a", png_bytes(), "a.png", "image/png")
		assert s.compare_state()["diff"] is None
		adapter.landmarks = pose_with_left_elbow(150.0)
		await s.compare_upload("B", png_bytes(), "b.png", "image/png")

		diff = s.compare_state()["diff"]
		assert diff[0]["name"] == "Left elbow"
		assert diff[0]["value"] == pytest.approx(20.0)
		assert diff[0]["display"] == "+20.0°"

	run(go())


def test_diff_row_null_when_one_side_undeterminable(fake_pool):
	async def go():
		adapter = GatedAdapter()
		adapter.auto = True
		s = await _comparing(adapter)
		adapter.landmarks = pose_with_left_elbow(170.0)
		await s.compare_upload("a", png_bytes(), "a.png")
		pts = pose_with_left_elbow(150.0)
		pts[15] = Landmark(x=pts[15].x, y=pts[15].y, z=0.0, visibility=0.2)
		adapter.landmarks = pts
		await s.compare_upload("b", png_bytes(), "b.png")

		diff = s.compare_state()["diff"]
		assert diff[0]["value"] is None
		assert diff[0]["display"] == "—"
		assert diff[1]["value"] == pytest.approx(0.0)

	run(go())


def test_no_diff_when_a_side_has_no_pose(fake_pool):
	async def go():
		adapter = GatedAdapter()
		adapter.auto = True
		s = await _comparing(adapter)
		adapter.landmarks = base_pose()
		await s.compare_upload("a", png_bytes(), "a.png")
		adapter.landmarks = None
		await s.compare_upload("b", png_bytes(), "b.png")
		st = s.compare_state()
		assert st["diff"] is None
		assert st["sides"]["a"]["landmarks"] is not None
		assert st["sides"]["b"]["hint"] is not None

	run(go())


def test_sides_load_independently(fake_pool):
	async def go():
		adapter = GatedAdapter(base_pose())
		s = await _comparing(adapter)
		ta = asyncio.create_task(s.compare_upload("a", png_bytes(), "a.png"))
		await wait_for(lambda: adapter.pending == 1)
		tb = asyncio.create_task(s.compare_upload("b", png_bytes(), "b.png"))
		await wait_for(lambda: adapter.pending == 2)
		assert s.mode.engine.slots["a"].result.is_loading
		adapter.release_all()
		ra, rb = await asyncio.gather(ta, tb)
		assert ra is not None and rb is not None
		assert s.compare_state()["diff"] is not None

	run(go())


def test_pick_from_gallery_and_delete_clears_side(fake_pool):
	async def go():
		a = await db.save_asset(png_bytes(), "a.png", "image/png")
		adapter = GatedAdapter(base_pose())
		adapter.auto = True
		s = await _comparing(adapter)
		await s.compare_pick("a", a.id)
		await s.compare_pick("b", a.id)
		st = s.compare_state()
		assert st["sides"]["a"]["entry"]["id"] == a.id
		assert st["diff"] is not None

		await s.delete_asset(a.id)
		st = s.compare_state()
		assert st["sides"]["a"]["entry"] is None and st["sides"]["b"]["entry"] is None
		assert st["diff"] is None

	run(go())


def test_leaving_comparing_drops_pending_side(fake_pool):
	async def go():
		adapter = GatedAdapter(base_pose())
		s = await _comparing(adapter)
		engine = s.mode.engine
		task = asyncio.create_task(s.compare_upload("a", png_bytes(), "a.png"))
		await wait_for(lambda: adapter.pending == 1)
		await s.set_mode("browsing")
		adapter.release_all()
		assert await task is None
		assert engine.slots["a"].result.is_loading

	run(go())


def test_side_names():
	assert normalize_side(" A ") == "a"
	with pytest.raises(ValueError):
		normalize_side("c")
