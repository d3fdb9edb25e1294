"""Pydantic request/response models for API validation and docs."""
from schemas.requests import (
	AngleModePayload,
	ComparePickPayload,
	ModePayload,
	SelectAssetPayload,
)
from schemas.responses import AssetListResponse, DeleteResponse, JointCatalogResponse

__all__ = [
	"AngleModePayload",
	"AssetListResponse",
	"ComparePickPayload",
	"DeleteResponse",
	"JointCatalogResponse",
	"ModePayload",
	"SelectAssetPayload",
]
