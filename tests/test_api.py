import pytest
from fastapi.testclient import TestClient

from conftest import StubCamera, StubEstimator, base_pose, png_bytes, pose_with_left_elbow
from poseview.config import AppConfig
from server import create_app


@pytest.fixture
def estimator():
	return StubEstimator(base_pose())


@pytest.fixture
def client(fake_pool, estimator):
	app = create_app(
		cfg=AppConfig(),
		estimator_factory=lambda cfg: estimator,
		camera_factory=lambda cfg: StubCamera(),
	)
	with TestClient(app) as c:
		yield c


def _upload(client, *files):
	return client.post("/api/assets", files=[("files", f) for f in files])


def test_health_and_joints(client):
	r = client.get("/health")
	assert r.status_code == 200
	body = r.json()
	assert body["status"] == "ok"
	assert body["estimator"]["available"] is True

	joints = client.get("/api/joints").json()["joints"]
	assert len(joints) == 10
	assert joints[0] == {
		"name": "Left elbow",
		"joint_triple": [11, 13, 15],
		"description": "Bend at elbow (shoulder–elbow–wrist). 180° straight.",
	}


def test_gallery_select_and_snapshot(client):
	r = _upload(client, ("a.png", png_bytes(), "image/png"), ("notes.txt", b"hello", "text/plain"))
	assert r.status_code == 200
	body = r.json()
	assert body["skipped"] == ["notes.txt"]
	asset_id = body["assets"][0]["id"]

	listing = client.get("/api/assets").json()
	assert [a["name"] for a in listing["assets"]] == ["a.png"]
	assert listing["error"] is None
	assert client.get(f"/api/assets/{asset_id}/blob").content == png_bytes()

	status = client.get("/session/status").json()
	assert status["mode"] == "browsing"
	assert asset_id in status["browsing"]["handles"]

	r = client.post("/session/select", json={"asset_id": asset_id})
	assert r.status_code == 200
	result = r.json()["result"]
	assert result["source_asset_id"] == asset_id
	assert len(result["angles"]) == 10
	assert all(row["value"] is not None for row in result["angles"])

	snap = client.get("/session/snapshot.png")
	assert snap.status_code == 200
	assert snap.headers["content-type"] == "image/png"
	assert "poseview-" in snap.headers["content-disposition"]


def test_upload_rejects_non_images(client):
	r = _upload(client, ("notes.txt", b"hello", "text/plain"))
	assert r.status_code == 400


def test_select_unknown_asset_is_404(client):
	assert client.post("/session/select", json={"asset_id": "nope"}).status_code == 404


def test_bad_payloads(client):
	assert client.post("/session/mode", json={"mode": "paused"}).status_code == 422
	assert client.post("/session/angle-mode", json={"angle_mode": "4d"}).status_code == 422


def test_snapshot_without_image_is_404(client):
	assert client.get("/session/snapshot.png").status_code == 404


def test_analyze_undecodable_upload(client, estimator):
	r = client.post("/session/analyze", files={"file": ("bad.png", b"not really", "image/png")})
	assert r.status_code == 200
	assert r.json()["result"]["error"] == "Failed to load image."
	assert estimator.calls == []


def test_angle_mode_switch(client):
	r = client.post("/session/angle-mode", json={"angle_mode": "3d"})
	assert r.status_code == 200
	assert r.json()["angle_mode"] == "3d"


def test_handles_and_deletion(client):
	asset_id = _upload(client, ("a.png", png_bytes(), "image/png")).json()["assets"][0]["id"]
	h = client.post(f"/api/views/side-panel/handles/{asset_id}").json()
	assert h["url"] == f"/api/handles/{h['token']}"

	# The browsing view still holds the same handle.
	assert client.delete("/api/views/side-panel").json()["revoked"] == []
	r = client.get(h["url"])
	assert r.status_code == 200
	assert r.headers["content-type"] == "image/jpeg"

	r = client.delete(f"/api/assets/{asset_id}")
	assert r.json() == {"detail": "deleted", "deleted": True}
	assert client.get(h["url"]).status_code == 404
	assert client.get("/api/assets").json()["assets"] == []
	assert client.delete(f"/api/assets/{asset_id}").json()["deleted"] is False
	assert client.post(f"/api/views/side-panel/handles/{asset_id}").status_code == 404


def test_compare_flow(client, estimator):
	assert client.post("/compare/a/upload", files={"file": ("a.png", png_bytes(), "image/png")}).status_code == 409

	r = client.post("/session/mode", json={"mode": "comparing"})
	assert r.status_code == 200 and r.json()["mode"] == "comparing"

	estimator.landmarks = pose_with_left_elbow(170.0)
	assert client.post("/compare/a/upload", files={"file": ("a.png", png_bytes(), "image/png")}).status_code == 200
	assert client.get("/compare/diff").json() == {"diff": None}

	estimator.landmarks = pose_with_left_elbow(150.0)
	r = client.post("/compare/b/upload", files={"file": ("b.png", png_bytes(), "image/png")})
	assert r.status_code == 200
	assert r.json()["diff"][0]["display"] == "+20.0°"
	assert client.get("/compare").json()["sides"]["b"]["entry"]["name"] == "b.png"

	assert client.post("/compare/c/pick", json={"asset_id": "x"}).status_code == 400
	assert client.post("/compare/a/pick", json={"asset_id": "missing"}).status_code == 404
	assert client.post("/session/select", json={"asset_id": "x"}).status_code == 409


def test_live_mode(client):
	r = client.post("/session/mode", json={"mode": "live"})
	assert r.status_code == 200
	assert r.json()["live"]["phase"] == "streaming"
	r = client.post("/session/mode", json={"mode": "browsing"})
	assert r.json()["mode"] == "browsing"
	assert "live" not in r.json()


def test_websocket_sends_state(client):
	with client.websocket_connect("/ws") as ws:
		msg = ws.receive_json()
		assert msg["type"] == "state"
		assert msg["mode"] == "browsing"


def test_save_without_database(estimator, monkeypatch):
	monkeypatch.setattr("poseview.db.pool._pool", None)
	app = create_app(cfg=AppConfig(), estimator_factory=lambda cfg: estimator, camera_factory=lambda cfg: StubCamera())
	with TestClient(app) as c:
		assert _upload(c, ("a.png", png_bytes(), "image/png")).status_code == 503
		assert c.get("/api/assets").json() == {"assets": [], "error": None}
