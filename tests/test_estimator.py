import sys
import threading
import types

import numpy as np

from poseview.config import PoseConfig
from poseview.pose.mediapipe_provider import MediaPipePoseEstimator


class FakePose:
	"""Stands in for mp.solutions.pose.Pose; process() can be held open by the test."""

	instances = []

	def __init__(self, **kwargs):
		self.kwargs = kwargs
		self.events = []
		self.entered = threading.Event()
		self.gate = threading.Event()
		self.gate.set()
		FakePose.instances.append(self)

	def process(self, rgb):
		self.events.append("process-start")
		self.entered.set()
		assert self.gate.wait(5)
		self.events.append("process-end")
		point = types.SimpleNamespace(x=0.5, y=0.25, z=-0.1, visibility=0.9)
		return types.SimpleNamespace(pose_landmarks=types.SimpleNamespace(landmark=[point] * 40))

	def close(self):
		self.events.append("close")


def _estimator(monkeypatch):
	FakePose.instances = []
	mp = types.SimpleNamespace(solutions=types.SimpleNamespace(pose=types.SimpleNamespace(Pose=FakePose)))
	monkeypatch.setitem(sys.modules, "mediapipe", mp)
	return MediaPipePoseEstimator(PoseConfig(model_complexity=0))


def test_one_engine_per_smoothing_setting(monkeypatch):
	est = _estimator(monkeypatch)
	assert est.is_available()
	rgb = np.zeros((4, 4, 3), dtype=np.uint8)
	pts = est.infer_rgb(rgb, smoothing=False)
	est.infer_rgb(rgb, smoothing=False)
	est.infer_rgb(rgb, smoothing=True)
	assert len(pts) == 33
	assert pts[0].x == 0.5 and pts[0].visibility == 0.9
	assert len(FakePose.instances) == 2
	still, tracking = FakePose.instances
	assert still.kwargs["static_image_mode"] is True and still.kwargs["smooth_landmarks"] is False
	assert tracking.kwargs["static_image_mode"] is False
	assert still.kwargs["model_complexity"] == 0


def test_close_waits_for_in_flight_inference(monkeypatch):
	est = _estimator(monkeypatch)
	rgb = np.zeros((4, 4, 3), dtype=np.uint8)
	est.infer_rgb(rgb)
	engine = FakePose.instances[0]
	engine.events.clear()
	engine.gate.clear()
	engine.entered.clear()

	out = []
	worker = threading.Thread(target=lambda: out.append(est.infer_rgb(rgb)))
	worker.start()
	assert engine.entered.wait(5)

	closer = threading.Thread(target=est.close)
	closer.start()
	closer.join(0.1)
	assert closer.is_alive()
	assert "close" not in engine.events

	engine.gate.set()
	worker.join(5)
	closer.join(5)
	assert engine.events == ["process-start", "process-end", "close"]
	assert out[0] is not None

	# Closed estimators answer "no pose" instead of touching a released graph.
	assert est.infer_rgb(rgb) is None
	assert len(FakePose.instances) == 1
