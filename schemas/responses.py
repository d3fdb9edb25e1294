"""Pydantic response models for API docs (routes may also return dicts)."""
from typing import List, Optional

from pydantic import BaseModel


class AssetOut(BaseModel):
	id: str
	name: str
	added_at: float
	content_type: Optional[str] = None
	size: Optional[int] = None


class AssetListResponse(BaseModel):
	"""Response from GET /api/assets."""

	assets: List[AssetOut]
	error: Optional[str] = None


class DeleteResponse(BaseModel):
	"""Response from DELETE /api/assets/{id}."""

	detail: str
	deleted: bool


class JointOut(BaseModel):
	name: str
	joint_triple: List[int]
	description: str


class JointCatalogResponse(BaseModel):
	"""Response from GET /api/joints."""

	joints: List[JointOut]
