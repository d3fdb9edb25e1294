"""
poseview server: FastAPI app, lifespan and entry point.

Run with `python server.py` (or `uvicorn server:app`). Config is read from
config.json at the repository root; see config.example.json.
"""
import argparse
import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app_state import AppState
from poseview import db
from poseview.camera import CameraSource, OpenCvCamera
from poseview.config import AppConfig, get_config, set_config_path
from poseview.handles import DisplayHandleCache
from poseview.pose.adapter import PoseEstimatorAdapter
from poseview.pose.base import PoseEstimator
from poseview.pose.mediapipe_provider import MediaPipePoseEstimator
from poseview.session import SessionOrchestrator
from routers import api_assets, compare, health, session, ws

logger = logging.getLogger(__name__)


def create_app(
	cfg: Optional[AppConfig] = None,
	estimator_factory: Optional[Callable[[AppConfig], PoseEstimator]] = None,
	camera_factory: Optional[Callable[[AppConfig], CameraSource]] = None,
) -> FastAPI:
	"""
	Build the app. Factories default to MediaPipe and OpenCV; tests pass stubs.
	"""

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		conf = cfg or get_config()
		state = AppState()
		state.cfg = conf
		state.manager = ws.manager

		# Initialise database (if configured). Without it the gallery is empty and saves fail.
		try:
			await db.init_db()
		except Exception as e:
			logger.warning("[DB] init_db failed: %r", e)

		make_estimator = estimator_factory or (lambda c: MediaPipePoseEstimator(c.pose))
		make_camera = camera_factory or (lambda c: OpenCvCamera(c.camera))

		state.adapter = PoseEstimatorAdapter(make_estimator(conf))
		state.handles = DisplayHandleCache(thumbnail_size=conf.handles.thumbnail_size)
		state.session = SessionOrchestrator(
			state.adapter,
			camera_factory=lambda: make_camera(conf),
			handles=state.handles,
			store=db,
			snapshot_scale=conf.snapshot.scale,
			on_event=ws.manager.publish,
		)
		await state.session.start()
		state.estimator_error = state.session.estimator_error
		app.state.state = state
		logger.info("[Server] ready (estimator=%s, db=%s)", state.adapter.estimator_name, db.get_status()["pool_ready"])
		try:
			yield
		finally:
			await state.session.shutdown()
			state.adapter.close()
			await db.close_db()
			app.state.state = None

	app = FastAPI(title="poseview", lifespan=lifespan)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=["*"],
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	app.include_router(health.router)
	app.include_router(session.router)
	app.include_router(api_assets.router)
	app.include_router(compare.router)
	app.include_router(ws.router)
	return app


app = create_app()


def main() -> None:
	import uvicorn

	ap = argparse.ArgumentParser(description="poseview pose analysis server")
	ap.add_argument("--host", default="127.0.0.1")
	ap.add_argument("--port", type=int, default=8000)
	ap.add_argument("--config", default=None, help="Path to config.json (default: repository root)")
	ap.add_argument("--verbose", action="store_true")
	args = ap.parse_args()

	if args.verbose:
		logging.basicConfig(level=logging.DEBUG, format='%(levelname)s:%(name)s:%(message)s')
	else:
		logging.basicConfig(level=logging.INFO, format='%(levelname)s:%(name)s:%(message)s')
	if args.config:
		set_config_path(args.config)

	uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
	main()
