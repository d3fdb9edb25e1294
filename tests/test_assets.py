import itertools
import re

import pytest

from conftest import png_bytes, run
from poseview import db
from poseview.db.assets import new_asset_id


def test_new_asset_id_format():
	assert re.fullmatch(r"1700000000000-[0-9a-z]{6}", new_asset_id(1700000000.0))


def test_save_list_delete_round_trip(fake_pool):
	async def go():
		blob = png_bytes()
		saved = await db.save_asset(blob, "front.png", "image/png")
		listed = await db.list_assets()
		assert [e.id for e in listed] == [saved.id]
		assert listed[0].name == "front.png"
		assert listed[0].size == len(blob)
		assert listed[0].blob is None

		with_blob = await db.list_assets(include_blob=True)
		assert with_blob[0].blob == blob

		fetched = await db.get_asset(saved.id)
		assert fetched is not None and fetched.blob == blob

		assert await db.delete_asset(saved.id) is True
		assert await db.list_assets() == []
		assert await db.delete_asset(saved.id) is False
		assert await db.get_asset(saved.id) is None

	run(go())


def test_listing_is_newest_first(fake_pool, monkeypatch):
	clock = itertools.count(1000.0)
	monkeypatch.setattr("poseview.db.assets.time.time", lambda: next(clock))

	async def go():
		for name in ("a.png", "b.png", "c.png"):
			await db.save_asset(b"x", name, "image/png")
		return [e.name for e in await db.list_assets()]

	assert run(go()) == ["c.png", "b.png", "a.png"]


def test_no_database_configured(monkeypatch):
	monkeypatch.setattr("poseview.db.pool._pool", None)

	async def go():
		assert await db.list_assets() == []
		assert await db.get_asset("x") is None
		assert await db.delete_asset("x") is False
		with pytest.raises(db.AssetStoreUnavailable):
			await db.save_asset(b"x", "a.png")

	run(go())


def test_io_failure_propagates(fake_pool):
	fake_pool.fail = True
	with pytest.raises(OSError):
		run(db.list_assets())
