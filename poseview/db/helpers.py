"""Shared row→object mapping helpers for poseview.db."""
from typing import Any, Optional

Record = Any  # asyncpg Record or dict-like


def _timestamp(val: Any) -> Optional[float]:
	"""Convert datetime to epoch seconds, or None."""
	if val is None:
		return None
	try:
		if hasattr(val, "timestamp"):
			return float(val.timestamp())
		return float(val)
	except (TypeError, ValueError):
		return None


def _opt_str(row: Record, key: str) -> Optional[str]:
	v = row.get(key) if hasattr(row, "get") else getattr(row, key, None)
	if v is None:
		return None
	return str(v) if v else None


def _opt_int(row: Record, key: str) -> Optional[int]:
	v = row.get(key) if hasattr(row, "get") else getattr(row, key, None)
	if v is None:
		return None
	try:
		return int(v)
	except (TypeError, ValueError):
		return None


def _opt_bytes(row: Record, key: str) -> Optional[bytes]:
	v = row.get(key) if hasattr(row, "get") else getattr(row, key, None)
	if v is None:
		return None
	return bytes(v)
