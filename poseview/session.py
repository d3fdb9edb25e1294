"""
Session orchestrator: the live / browsing / comparing mode machine.

The active mode is a single tagged value (LiveMode | BrowsingMode | ComparingMode)
carrying only its own data. Each mode instance owns a CancelToken; leaving a mode
cancels the token synchronously, so any estimator result, camera frame or asset load
that settles afterwards is dropped instead of being applied.
"""
from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from PIL import Image

from poseview import db
from poseview.analysis import AnalysisSlot, CancelToken, settled_result
from poseview.camera import CameraSource
from poseview.compare import ComparisonEngine, normalize_side
from poseview.db.assets import AssetEntry
from poseview.handles import DisplayHandleCache
from poseview.imaging import ImageDecodeError, decode_image, encode_jpeg, encode_png, from_rgb_array, to_rgb_array
from poseview.pose.adapter import PoseEstimatorAdapter
from poseview.pose.angles import empty_angles
from poseview.pose.geometry import AngleMode
from poseview.pose.types import AnalysisResult, Landmark
from poseview.render.overlay import render_frame
from poseview.render.snapshot import compose_snapshot, snapshot_filename

logger = logging.getLogger(__name__)

CAMERA_ERROR = "Camera access denied or unavailable."
CAMERA_ENDED = "Camera stream ended."
ESTIMATOR_MISSING = "Pose not loaded."
GALLERY_ERROR = "Could not load the gallery."

# Consecutive empty reads before a live stream is considered gone.
MAX_EMPTY_READS = 100
EMPTY_READ_SLEEP_S = 0.02


class SessionModeError(RuntimeError):
	"""Operation not valid in the current mode."""


class SnapshotUnavailable(LookupError):
	"""Nothing exportable right now (no frame, or analysis not settled)."""


class LivePhase(str, enum.Enum):
	STARTING = "starting"
	STREAMING = "streaming"
	STOPPED = "stopped"


@dataclass
class LiveMode:
	token: CancelToken
	slot: AnalysisSlot
	phase: LivePhase = LivePhase.STARTING
	camera: Optional[CameraSource] = None
	task: Optional[asyncio.Task] = None
	frames: int = 0
	latest_jpeg: Optional[bytes] = None
	latest_t: Optional[float] = None

	name = "live"


@dataclass
class BrowsingMode:
	token: CancelToken
	view_id: str
	slot: AnalysisSlot
	assets: List[AssetEntry] = field(default_factory=list)
	selected_id: Optional[str] = None
	listing_error: Optional[str] = None

	name = "browsing"


@dataclass
class ComparingMode:
	token: CancelToken
	view_id: str
	engine: ComparisonEngine
	assets: List[AssetEntry] = field(default_factory=list)
	listing_error: Optional[str] = None

	name = "comparing"


Mode = Union[LiveMode, BrowsingMode, ComparingMode]
MODE_NAMES = ("live", "browsing", "comparing")


class SessionOrchestrator:
	"""
	Coordinates camera, estimator, gallery and comparison for one user session.

	All state mutation happens on the event loop. Blocking work (camera reads,
	inference, decoding, JPEG encoding) runs in the default executor; every await is a
	point where the mode may have changed, so results are applied only if the token of
	the mode that requested them is still live and the slot ticket is still current.
	"""

	def __init__(
		self,
		adapter: PoseEstimatorAdapter,
		camera_factory: Callable[[], CameraSource],
		handles: Optional[DisplayHandleCache] = None,
		store: Any = db,
		angle_mode: AngleMode = AngleMode.PLANAR,
		snapshot_scale: float = 1.35,
		on_event: Optional[Callable[[Dict[str, Any]], None]] = None,
	) -> None:
		self._adapter = adapter
		self._camera_factory = camera_factory
		self._handles = handles or DisplayHandleCache()
		self._store = store
		self._snapshot_scale = float(snapshot_scale)
		self._on_event = on_event
		self.angle_mode = AngleMode(angle_mode)
		self.error: Optional[str] = None
		self.estimator_error: Optional[str] = None
		self._view_seq = 0
		self._closed = False
		self._mode: Mode = self._new_browsing()

	# ------------------------------------------------------------------ basics

	@property
	def mode(self) -> Mode:
		return self._mode

	@property
	def handles(self) -> DisplayHandleCache:
		return self._handles

	def _next_view_id(self, prefix: str) -> str:
		self._view_seq += 1
		return f"{prefix}-{self._view_seq}"

	def _new_browsing(self) -> BrowsingMode:
		return BrowsingMode(
			token=CancelToken("browsing"),
			view_id=self._next_view_id("browse"),
			slot=AnalysisSlot("browse"),
		)

	def _emit(self) -> None:
		if self._closed or self._on_event is None:
			return
		try:
			self._on_event({"type": "state", **self.status()})
		except Exception as e:
			logger.warning("[Session] state listener failed: %r", e)

	async def start(self) -> None:
		"""Probe the estimator once and load the initial gallery listing."""
		if not self._adapter.is_available():
			self.estimator_error = ESTIMATOR_MISSING
			logger.warning("[Session] %s All analyses will report no pose.", ESTIMATOR_MISSING)
		if isinstance(self._mode, BrowsingMode):
			await self.refresh_assets()
		self._emit()

	async def shutdown(self) -> None:
		"""
		Component teardown: stop everything, drop late results, release all handles.
		Returns only after the live frame loop has finished, so the estimator can be closed next.
		"""
		mode = self._mode
		task = mode.task if isinstance(mode, LiveMode) else None
		self._teardown(mode)
		self._handles.release_all()
		self._closed = True
		if task is not None:
			with contextlib.suppress(asyncio.CancelledError):
				await task

	# ------------------------------------------------------------- transitions

	async def set_mode(self, name: str) -> Mode:
		name = (name or "").strip().lower()
		if name not in MODE_NAMES:
			raise ValueError(f"mode must be one of {MODE_NAMES}, got {name!r}")
		if self._closed:
			raise SessionModeError("session is shut down")

		cur = self._mode
		if isinstance(cur, LiveMode) and name == "live" and cur.phase != LivePhase.STOPPED:
			return cur

		self._teardown(cur)
		self.error = None
		if name == "live":
			mode: Mode = LiveMode(token=CancelToken("live"), slot=AnalysisSlot("live"))
			self._mode = mode
			self._emit()
			await self._start_live(mode)
		elif name == "browsing":
			mode = self._new_browsing()
			self._mode = mode
			self._emit()
			await self.refresh_assets()
		else:
			token = CancelToken("comparing")
			mode = ComparingMode(
				token=token,
				view_id=self._next_view_id("compare"),
				engine=ComparisonEngine(self.analyze_into, token),
			)
			self._mode = mode
			self._emit()
			await self.refresh_assets()
		return self._mode

	def _teardown(self, mode: Mode) -> None:
		"""Synchronous: after this returns nothing started by `mode` may touch state."""
		mode.token.cancel()
		if isinstance(mode, LiveMode):
			if mode.task is not None and not mode.task.done():
				mode.task.cancel()
			mode.task = None
			self._close_camera(mode)
			if mode.phase != LivePhase.STOPPED:
				mode.phase = LivePhase.STOPPED
		else:
			self._handles.release_view(mode.view_id)

	def _close_camera(self, mode: LiveMode) -> None:
		cam = mode.camera
		mode.camera = None
		if cam is None:
			return
		try:
			cam.close()
		except Exception as e:
			logger.warning("[Session] camera close failed: %r", e)

	# -------------------------------------------------------------------- live

	async def _start_live(self, mode: LiveMode) -> None:
		cam: Optional[CameraSource] = None
		try:
			cam = self._camera_factory()
			await cam.open()
		except Exception as e:
			if cam is not None:
				try:
					cam.close()
				except Exception as close_err:
					logger.debug("[Session] camera close after failed open: %r", close_err)
			if mode.token.cancelled:
				return
			logger.warning("[Session] camera unavailable: %s", e)
			mode.phase = LivePhase.STOPPED
			self.error = CAMERA_ERROR
			self._emit()
			return
		if mode.token.cancelled:
			# Left live while the camera was being acquired.
			try:
				cam.close()
			except Exception as e:
				logger.warning("[Session] camera close failed: %r", e)
			return
		mode.camera = cam
		mode.phase = LivePhase.STREAMING
		mode.task = asyncio.create_task(self._frame_loop(mode, cam))
		logger.info("[Session] live capture started (%s)", cam.name())
		self._emit()

	async def _frame_loop(self, mode: LiveMode, cam: CameraSource) -> None:
		"""
		One frame -> one inference -> apply, strictly in sequence. The next frame is
		read only after the previous result was applied or dropped.
		"""
		token = mode.token
		empty_reads = 0
		loop = asyncio.get_running_loop()
		try:
			while not token.cancelled:
				frame = await cam.read_rgb()
				if token.cancelled:
					break
				if frame is None:
					empty_reads += 1
					if empty_reads >= MAX_EMPTY_READS:
						self._stop_live(mode, CAMERA_ENDED)
						break
					await asyncio.sleep(EMPTY_READ_SLEEP_S)
					continue
				empty_reads = 0

				landmarks = await self._adapter.analyze(frame, smoothing=True)
				if token.cancelled:
					break
				image, jpeg = await loop.run_in_executor(None, _render_live_frame, frame, landmarks)
				if token.cancelled:
					break
				result = settled_result(None, landmarks, self.angle_mode, image.width, image.height)
				mode.slot.replace(result, image)
				mode.frames += 1
				mode.latest_jpeg = jpeg
				mode.latest_t = time.time()
				self._emit()
				# Yield even when camera and estimator answer synchronously.
				await asyncio.sleep(0)
		except asyncio.CancelledError:
			raise
		except Exception as e:
			logger.warning("[Session] live loop failed: %r", e)
			if not token.cancelled:
				self._stop_live(mode, CAMERA_ERROR)

	def _stop_live(self, mode: LiveMode, message: str) -> None:
		if mode.token.cancelled:
			return
		mode.phase = LivePhase.STOPPED
		self._close_camera(mode)
		self.error = message
		self._emit()

	def latest_frame_jpeg(self) -> Tuple[Optional[bytes], Optional[float]]:
		mode = self._mode
		if isinstance(mode, LiveMode) and mode.phase == LivePhase.STREAMING:
			return mode.latest_jpeg, mode.latest_t
		return None, None

	# ------------------------------------------------------- single-shot path

	async def analyze_into(
		self,
		slot: AnalysisSlot,
		blob: bytes,
		source_asset_id: Optional[str],
		token: CancelToken,
	) -> Optional[AnalysisResult]:
		"""
		Decode one image and run one non-smoothed estimator call into `slot`.
		Returns the applied result, or None if it was dropped (token cancelled or a
		newer request was issued for the same slot).
		"""
		ticket = slot.begin(source_asset_id)
		self._emit()
		loop = asyncio.get_running_loop()
		try:
			image = await loop.run_in_executor(None, decode_image, blob)
		except ImageDecodeError as e:
			logger.info("[Session] %s: decode failed for %s: %s", slot.label, source_asset_id, e)
			failed = AnalysisResult(
				source_asset_id=source_asset_id,
				landmarks=None,
				angles=tuple(empty_angles()),
				error="Failed to load image.",
			)
			return self._apply(slot, ticket, token, failed, None)
		if token.cancelled or not slot.is_current(ticket):
			return self._apply(slot, ticket, token, None, None)

		landmarks = await self._adapter.analyze(to_rgb_array(image), smoothing=False)
		result = settled_result(source_asset_id, landmarks, self.angle_mode, image.width, image.height)
		return self._apply(slot, ticket, token, result, image)

	def _apply(
		self,
		slot: AnalysisSlot,
		ticket: int,
		token: CancelToken,
		result: Optional[AnalysisResult],
		image: Optional[Image.Image],
	) -> Optional[AnalysisResult]:
		if token.cancelled:
			slot.dropped += 1
			logger.debug("[Session] %s: dropped result of cancelled %r", slot.label, token)
			return None
		if result is None:
			slot.dropped += 1
			return None
		if not slot.settle(ticket, result, image):
			return None
		self._emit()
		return result

	# ---------------------------------------------------------------- gallery

	async def refresh_assets(self) -> List[AssetEntry]:
		mode = self._mode
		if not isinstance(mode, (BrowsingMode, ComparingMode)):
			raise SessionModeError("gallery listing is only available while browsing or comparing")
		token = mode.token
		try:
			entries = await self._store.list_assets(include_blob=True)
			error = None
		except Exception as e:
			logger.warning("[DB] list_assets failed: %r", e)
			entries, error = [], GALLERY_ERROR
		if token.cancelled:
			return []
		for entry in entries:
			if not await self._hold(mode, entry):
				return []
		mode.assets = list(entries)
		mode.listing_error = error
		self._emit()
		return mode.assets

	async def _hold(self, mode: Union[BrowsingMode, ComparingMode], entry: AssetEntry) -> bool:
		"""Give mode's view a handle on entry, thumbnailing off the loop. False if mode was left meanwhile."""
		if entry.blob is None:
			return not mode.token.cancelled
		content = None
		if self._handles.peek(entry.id) is None:
			loop = asyncio.get_running_loop()
			content = await loop.run_in_executor(None, self._handles.build_content, entry.blob, entry.content_type)
		if mode.token.cancelled:
			return False
		self._handles.acquire(mode.view_id, entry.id, entry.blob, entry.content_type, content=content)
		return True

	async def add_assets(self, files: Sequence[Tuple[bytes, str, Optional[str]]]) -> List[AssetEntry]:
		"""
		Save uploaded images to the gallery (newest first in the listing).

		Files saved before a failing one stay visible in the listing; the error propagates.
		"""
		saved: List[AssetEntry] = []
		try:
			for blob, name, content_type in files:
				saved.append(await self._store.save_asset(blob, name, content_type))
		finally:
			if saved:
				await self._show_saved(saved)
		return saved

	async def _show_saved(self, saved: List[AssetEntry]) -> None:
		mode = self._mode
		if not isinstance(mode, (BrowsingMode, ComparingMode)):
			return
		for entry in saved:
			if not await self._hold(mode, entry):
				return
		ids = {s.id for s in saved}
		mode.assets = list(reversed(saved)) + [a for a in mode.assets if a.id not in ids]
		self._emit()

	async def delete_asset(self, asset_id: str) -> bool:
		deleted = await self._store.delete_asset(asset_id)
		mode = self._mode
		if isinstance(mode, (BrowsingMode, ComparingMode)):
			mode.assets = [a for a in mode.assets if a.id != asset_id]
			self._handles.release(mode.view_id, asset_id)
		if isinstance(mode, BrowsingMode) and mode.selected_id == asset_id:
			mode.selected_id = None
			mode.slot.reset()
		if isinstance(mode, ComparingMode):
			mode.engine.clear_asset(asset_id)
		self._emit()
		return deleted

	async def _fetch_asset(self, asset_id: str) -> AssetEntry:
		entry = await self._store.get_asset(asset_id)
		if entry is None or entry.blob is None:
			raise KeyError(asset_id)
		return entry

	async def select_asset(self, asset_id: str) -> Optional[AnalysisResult]:
		mode = self._require(BrowsingMode)
		entry = await self._fetch_asset(asset_id)
		if mode.token.cancelled:
			return None
		if not await self._hold(mode, entry):
			return None
		mode.selected_id = entry.id
		return await self.analyze_into(mode.slot, entry.blob, entry.id, mode.token)

	async def analyze_upload(self, blob: bytes) -> Optional[AnalysisResult]:
		"""One-off image analysis in browsing mode, not saved to the gallery."""
		mode = self._require(BrowsingMode)
		mode.selected_id = None
		return await self.analyze_into(mode.slot, blob, None, mode.token)

	# ------------------------------------------------------------- comparison

	async def compare_pick(self, side: str, asset_id: str) -> Optional[AnalysisResult]:
		mode = self._require(ComparingMode)
		s = normalize_side(side)
		entry = await self._fetch_asset(asset_id)
		if not await self._hold(mode, entry):
			return None
		return await mode.engine.load_from_gallery(s, entry)

	async def compare_upload(self, side: str, blob: bytes, name: str, content_type: Optional[str] = None) -> Optional[AnalysisResult]:
		mode = self._require(ComparingMode)
		return await mode.engine.load_upload(normalize_side(side), blob, name, content_type)

	def compare_state(self) -> Dict[str, Any]:
		return self._require(ComparingMode).engine.to_dict()

	# ------------------------------------------------------------- angle mode

	def set_angle_mode(self, mode: AngleMode | str) -> None:
		"""Recompute every populated slot from its held landmarks; never re-infers."""
		self.angle_mode = AngleMode(mode)
		cur = self._mode
		if isinstance(cur, LiveMode):
			cur.slot.recompute(self.angle_mode)
		elif isinstance(cur, BrowsingMode):
			cur.slot.recompute(self.angle_mode)
		else:
			cur.engine.recompute(self.angle_mode)
		self._emit()

	# --------------------------------------------------------------- snapshot

	def snapshot_png(self) -> Tuple[str, bytes]:
		"""Annotated frame + angle panel as (filename, PNG bytes)."""
		cur = self._mode
		if isinstance(cur, LiveMode):
			if cur.phase != LivePhase.STREAMING or cur.slot.result.landmarks is None:
				raise SnapshotUnavailable("no live pose to save")
			slot = cur.slot
		elif isinstance(cur, BrowsingMode):
			if cur.slot.result.is_loading:
				raise SnapshotUnavailable("analysis still running")
			slot = cur.slot
		else:
			raise SnapshotUnavailable("snapshots are taken from live capture or the gallery viewer")
		if slot.image is None:
			raise SnapshotUnavailable("no image to save")
		annotated = render_frame(slot.image, slot.result.landmarks)
		composite = compose_snapshot(annotated, slot.result.angles, scale=self._snapshot_scale)
		return snapshot_filename(), encode_png(composite)

	# ----------------------------------------------------------------- status

	def _require(self, kind):
		mode = self._mode
		if not isinstance(mode, kind):
			raise SessionModeError(f"operation requires {kind.name} mode (current: {mode.name})")
		return mode

	def status(self) -> Dict[str, Any]:
		cur = self._mode
		out: Dict[str, Any] = {
			"mode": cur.name,
			"angle_mode": self.angle_mode.value,
			"error": self.error,
			"estimator": {
				"name": self._adapter.estimator_name,
				"available": self._adapter.is_available(),
				"error": self.estimator_error,
			},
		}
		if isinstance(cur, LiveMode):
			out["live"] = {
				"phase": cur.phase.value,
				"frames": cur.frames,
				"camera": cur.camera.get_status() if cur.camera is not None else None,
				"result": cur.slot.to_dict(),
			}
		elif isinstance(cur, BrowsingMode):
			out["browsing"] = {
				"assets": [a.to_dict() for a in cur.assets],
				"handles": self._handle_urls(cur.view_id, cur.assets),
				"listing_error": cur.listing_error,
				"selected_id": cur.selected_id,
				"result": cur.slot.to_dict(),
			}
		else:
			out["comparing"] = {
				"assets": [a.to_dict() for a in cur.assets],
				"handles": self._handle_urls(cur.view_id, cur.assets),
				"listing_error": cur.listing_error,
				**cur.engine.to_dict(),
			}
		return out

	def _handle_urls(self, view_id: str, assets: Sequence[AssetEntry]) -> Dict[str, str]:
		urls: Dict[str, str] = {}
		for a in assets:
			h = self._handles.peek(a.id)
			if h is not None and view_id in h.holders:
				urls[a.id] = h.url()
		return urls


def _render_live_frame(frame: np.ndarray, landmarks: Optional[Sequence[Landmark]]) -> Tuple[Image.Image, bytes]:
	image = from_rgb_array(frame)
	return image, encode_jpeg(render_frame(image, landmarks))
