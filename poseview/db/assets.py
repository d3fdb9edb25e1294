"""Gallery assets: save_asset, list_assets, get_asset, delete_asset."""
from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from poseview.db.helpers import Record, _opt_bytes, _opt_int, _opt_str, _timestamp
from poseview.db.pool import _to_dt, get_pool

logger = logging.getLogger(__name__)

_B36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_MAX_ID_ATTEMPTS = 5


class AssetStoreUnavailable(RuntimeError):
	"""No database configured or pool not ready."""


@dataclass(frozen=True)
class AssetEntry:
	"""
	A persisted image. `id` is unique and immutable for the store's lifetime;
	deleted ids are never reused. `blob` is None for listings fetched without data.
	"""

	id: str
	name: str
	added_at: float
	blob: Optional[bytes] = None
	content_type: Optional[str] = None
	size: Optional[int] = None

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"name": self.name,
			"added_at": self.added_at,
			"content_type": self.content_type,
			"size": self.size if self.size is not None else (len(self.blob) if self.blob is not None else None),
		}


def new_asset_id(now: Optional[float] = None) -> str:
	"""`<epoch ms>-<6 base36 chars>`."""
	ms = int((now if now is not None else time.time()) * 1000)
	suffix = "".join(secrets.choice(_B36) for _ in range(6))
	return f"{ms}-{suffix}"


def asset_row_to_entry(row: Record) -> AssetEntry:
	blob = _opt_bytes(row, "blob")
	size = _opt_int(row, "size")
	return AssetEntry(
		id=str(row["id"]),
		name=str(row["name"]) if row.get("name") else "",
		added_at=_timestamp(row.get("added_at")) or 0.0,
		blob=blob,
		content_type=_opt_str(row, "content_type"),
		size=size if size is not None else (len(blob) if blob is not None else None),
	)


async def save_asset(blob: bytes, name: str, content_type: Optional[str] = None) -> AssetEntry:
	"""Persist a new image and return its entry. Raises AssetStoreUnavailable without a DB."""
	pool = get_pool()
	if pool is None:
		raise AssetStoreUnavailable("gallery storage is not configured (database.url)")
	data = bytes(blob or b"")
	added_at = time.time()
	async with pool.acquire() as conn:
		for _ in range(_MAX_ID_ATTEMPTS):
			asset_id = new_asset_id(added_at)
			row = await conn.fetchrow(
				"""
				INSERT INTO assets (id, name, content_type, blob, added_at)
				VALUES ($1,$2,$3,$4,$5)
				ON CONFLICT (id) DO NOTHING
				RETURNING id;
				""",
				asset_id,
				str(name or ""),
				content_type,
				data,
				_to_dt(added_at),
			)
			if row is not None:
				return AssetEntry(
					id=asset_id,
					name=str(name or ""),
					added_at=added_at,
					blob=data,
					content_type=content_type,
					size=len(data),
				)
	raise RuntimeError("could not allocate a unique asset id")


async def list_assets(include_blob: bool = False) -> List[AssetEntry]:
	"""All assets, newest first. Empty without a DB; I/O errors propagate to the caller."""
	pool = get_pool()
	if pool is None:
		logger.debug("[DB] list_assets: pool is None, returning empty listing")
		return []
	cols = "id, name, content_type, added_at, octet_length(blob) AS size"
	if include_blob:
		cols += ", blob"
	async with pool.acquire() as conn:
		rows = await conn.fetch(f"SELECT {cols} FROM assets ORDER BY added_at DESC, id DESC;")
	return [asset_row_to_entry(r) for r in rows]


async def get_asset(asset_id: str) -> Optional[AssetEntry]:
	pool = get_pool()
	if pool is None:
		return None
	aid = (asset_id or "").strip()
	if not aid:
		return None
	async with pool.acquire() as conn:
		row = await conn.fetchrow(
			"SELECT id, name, content_type, added_at, octet_length(blob) AS size, blob FROM assets WHERE id = $1;",
			aid,
		)
	return asset_row_to_entry(row) if row is not None else None


async def delete_asset(asset_id: str) -> bool:
	"""Delete by id. Idempotent: returns False if the id was absent."""
	pool = get_pool()
	if pool is None:
		logger.debug("[DB] delete_asset: pool is None, skipping")
		return False
	aid = (asset_id or "").strip()
	if not aid:
		return False
	async with pool.acquire() as conn:
		row = await conn.fetchrow("DELETE FROM assets WHERE id = $1 RETURNING id;", aid)
	return row is not None
