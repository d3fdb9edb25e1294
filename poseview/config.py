from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class DatabaseConfig:
	# If empty, the gallery is disabled (listing empty, saves refused).
	url: str = ""
	pool_min_size: int = 1
	pool_max_size: int = 5


@dataclass(frozen=True)
class PoseConfig:
	model_complexity: int = 1
	min_detection_confidence: float = 0.5
	min_tracking_confidence: float = 0.5


@dataclass(frozen=True)
class CameraConfig:
	device_index: int = 0
	width: int = 640
	height: int = 480
	# Upper bound for the annotated MJPEG preview.
	mjpeg_fps: float = 15.0


@dataclass(frozen=True)
class SnapshotConfig:
	# Composite PNG scale relative to the source frame.
	scale: float = 1.35


@dataclass(frozen=True)
class HandlesConfig:
	# Longest side of gallery display thumbnails, in pixels.
	thumbnail_size: int = 256


@dataclass(frozen=True)
class AppConfig:
	database: DatabaseConfig = field(default_factory=DatabaseConfig)
	pose: PoseConfig = field(default_factory=PoseConfig)
	camera: CameraConfig = field(default_factory=CameraConfig)
	snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
	handles: HandlesConfig = field(default_factory=HandlesConfig)


_CONFIG_PATH: Optional[Path] = None
_CONFIG_CACHE: Optional[AppConfig] = None


def _repo_root() -> Path:
	# poseview/config.py -> repo root is one level up.
	return Path(__file__).resolve().parents[1]


def get_default_config_path() -> Path:
	return _repo_root() / "config.json"


def set_config_path(path: str | Path) -> None:
	"""
	Override the config path (must be called before first get_config()).
	Intended for tooling and tests; the server normally uses the default path.
	"""
	global _CONFIG_PATH
	global _CONFIG_CACHE
	_CONFIG_PATH = Path(path).expanduser().resolve()
	_CONFIG_CACHE = None


def _deep_get(d: Dict[str, Any], keys: list[str], default: Any = None) -> Any:
	cur: Any = d
	for k in keys:
		if not isinstance(cur, dict):
			return default
		cur = cur.get(k)
	return cur if cur is not None else default


def _as_int(v: Any, default: int) -> int:
	try:
		return int(v)
	except (TypeError, ValueError):
		return int(default)


def _as_str(v: Any, default: str = "") -> str:
	return str(v) if v is not None else str(default)


def _as_float(v: Any, default: float) -> float:
	try:
		return float(v)
	except (TypeError, ValueError):
		return float(default)


def _clamp01(v: float, default: float) -> float:
	return float(v) if 0.0 <= float(v) <= 1.0 else float(default)


def load_config(path: Optional[str | Path] = None) -> AppConfig:
	p = Path(path).expanduser().resolve() if path else (_CONFIG_PATH or get_default_config_path())
	if not p.exists():
		# Defaults-only config; app can still run.
		return AppConfig()
	try:
		raw = json.loads(p.read_text(encoding="utf-8"))
	except (OSError, ValueError):
		# If config is malformed, fail safe to defaults (but keep app running).
		return AppConfig()

	if not isinstance(raw, dict):
		return AppConfig()

	db_url = _as_str(_deep_get(raw, ["database", "url"], ""), "").strip()
	pool_min = max(1, _as_int(_deep_get(raw, ["database", "pool_min_size"], 1), 1))
	pool_max = max(pool_min, _as_int(_deep_get(raw, ["database", "pool_max_size"], 5), 5))

	complexity = _as_int(_deep_get(raw, ["pose", "model_complexity"], 1), 1)
	if complexity not in (0, 1, 2):
		complexity = 1
	det_conf = _clamp01(_as_float(_deep_get(raw, ["pose", "min_detection_confidence"], 0.5), 0.5), 0.5)
	trk_conf = _clamp01(_as_float(_deep_get(raw, ["pose", "min_tracking_confidence"], 0.5), 0.5), 0.5)

	cam_idx = _as_int(_deep_get(raw, ["camera", "device_index"], 0), 0)
	cam_w = _as_int(_deep_get(raw, ["camera", "width"], 640), 640)
	cam_h = _as_int(_deep_get(raw, ["camera", "height"], 480), 480)
	mjpeg_fps = _as_float(_deep_get(raw, ["camera", "mjpeg_fps"], 15.0), 15.0)

	scale = _as_float(_deep_get(raw, ["snapshot", "scale"], 1.35), 1.35)
	thumb = _as_int(_deep_get(raw, ["handles", "thumbnail_size"], 256), 256)

	return AppConfig(
		database=DatabaseConfig(url=db_url, pool_min_size=pool_min, pool_max_size=pool_max),
		pose=PoseConfig(
			model_complexity=complexity,
			min_detection_confidence=det_conf,
			min_tracking_confidence=trk_conf,
		),
		camera=CameraConfig(
			# NOTE: camera index 0 is valid; only negative values fall back.
			device_index=cam_idx if cam_idx >= 0 else 0,
			width=cam_w if cam_w > 0 else 640,
			height=cam_h if cam_h > 0 else 480,
			mjpeg_fps=mjpeg_fps if mjpeg_fps > 0.0 else 15.0,
		),
		snapshot=SnapshotConfig(scale=scale if scale > 0.0 else 1.35),
		handles=HandlesConfig(thumbnail_size=thumb if thumb > 0 else 256),
	)


def get_config() -> AppConfig:
	global _CONFIG_CACHE
	if _CONFIG_CACHE is None:
		_CONFIG_CACHE = load_config()
	return _CONFIG_CACHE
