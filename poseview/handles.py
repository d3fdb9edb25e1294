"""
Display handles for gallery images.

A handle is a revocable, token-addressed thumbnail of one asset's blob, served to
clients while at least one open view shows that asset. Handles are shared: the first
view that asks for an asset creates it, later views reuse it, and it is revoked exactly
once when the last holding view closes.
"""
from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from poseview.imaging import ImageDecodeError, make_thumbnail_jpeg

logger = logging.getLogger(__name__)


class HandleRevoked(KeyError):
	"""Token unknown or already released."""


@dataclass
class DisplayHandle:
	token: str
	asset_id: str
	media_type: str
	_content: Optional[bytes] = field(default=None, repr=False)
	holders: Set[str] = field(default_factory=set)

	@property
	def revoked(self) -> bool:
		return self._content is None

	def read(self) -> bytes:
		if self._content is None:
			raise HandleRevoked(self.token)
		return self._content

	def revoke(self) -> None:
		self._content = None

	def url(self) -> str:
		return f"/api/handles/{self.token}"


def _default_content(blob: bytes, content_type: Optional[str], max_side: int) -> Tuple[bytes, str]:
	try:
		jpeg, _size = make_thumbnail_jpeg(blob, max_side)
		return jpeg, "image/jpeg"
	except ImageDecodeError:
		# Undecodable images still get a handle to their raw bytes.
		return bytes(blob), content_type or "application/octet-stream"


class DisplayHandleCache:
	def __init__(
		self,
		thumbnail_size: int = 256,
		make_content: Optional[Callable[[bytes, Optional[str], int], Tuple[bytes, str]]] = None,
	) -> None:
		self._thumbnail_size = int(thumbnail_size)
		self._make_content = make_content or _default_content
		self._by_asset: Dict[str, DisplayHandle] = {}
		self._by_token: Dict[str, DisplayHandle] = {}
		self._by_view: Dict[str, Set[str]] = {}
		self.created = 0
		self.revoked = 0

	def build_content(self, blob: bytes, content_type: Optional[str] = None) -> Tuple[bytes, str]:
		"""Thumbnail bytes and media type for a blob. Blocking; decodes the image."""
		return self._make_content(blob, content_type, self._thumbnail_size)

	def acquire(
		self,
		view_id: str,
		asset_id: str,
		blob: bytes,
		content_type: Optional[str] = None,
		content: Optional[Tuple[bytes, str]] = None,
	) -> DisplayHandle:
		"""
		Handle for asset_id held by view_id. Reuses an existing handle, never re-creates it.
		A prebuilt `content` (from build_content) skips thumbnailing on the caller's thread.
		"""
		h = self._by_asset.get(asset_id)
		if h is None:
			content, media_type = content or self.build_content(blob, content_type)
			h = DisplayHandle(token=secrets.token_urlsafe(12), asset_id=asset_id, media_type=media_type, _content=content)
			self._by_asset[asset_id] = h
			self._by_token[h.token] = h
			self.created += 1
		h.holders.add(view_id)
		self._by_view.setdefault(view_id, set()).add(asset_id)
		return h

	async def acquire_async(
		self, view_id: str, asset_id: str, blob: bytes, content_type: Optional[str] = None
	) -> DisplayHandle:
		"""acquire() with thumbnailing moved to the default executor."""
		content = None
		if asset_id not in self._by_asset:
			loop = asyncio.get_running_loop()
			content = await loop.run_in_executor(None, self.build_content, blob, content_type)
		return self.acquire(view_id, asset_id, blob, content_type, content=content)

	def peek(self, asset_id: str) -> Optional[DisplayHandle]:
		return self._by_asset.get(asset_id)

	def get(self, token: str) -> DisplayHandle:
		h = self._by_token.get(token)
		if h is None or h.revoked:
			raise HandleRevoked(token)
		return h

	def release(self, view_id: str, asset_id: str) -> bool:
		"""Drop one view's hold on one asset. Returns True if this revoked the handle."""
		held = self._by_view.get(view_id)
		if held is not None:
			held.discard(asset_id)
			if not held:
				self._by_view.pop(view_id, None)
		h = self._by_asset.get(asset_id)
		if h is None:
			return False
		h.holders.discard(view_id)
		if h.holders:
			return False
		self._revoke(h)
		return True

	def release_view(self, view_id: str) -> List[str]:
		"""Close a view: release all of its holds. Returns asset ids whose handles were revoked."""
		revoked: List[str] = []
		for asset_id in sorted(self._by_view.get(view_id, set())):
			if self.release(view_id, asset_id):
				revoked.append(asset_id)
		self._by_view.pop(view_id, None)
		return revoked

	def release_all(self) -> None:
		for h in list(self._by_asset.values()):
			h.holders.clear()
			self._revoke(h)
		self._by_view.clear()

	def views(self) -> Dict[str, List[str]]:
		return {v: sorted(ids) for v, ids in self._by_view.items()}

	def _revoke(self, h: DisplayHandle) -> None:
		self._by_asset.pop(h.asset_id, None)
		self._by_token.pop(h.token, None)
		if not h.revoked:
			h.revoke()
			self.revoked += 1
			logger.debug("[Handles] revoked %s (%s)", h.token, h.asset_id)
