"""Pydantic request body models."""
from typing import Literal

from pydantic import BaseModel, Field


class ModePayload(BaseModel):
	"""Request body for POST /session/mode."""

	mode: Literal["live", "browsing", "comparing"] = Field(..., description="Top-level session mode")


class AngleModePayload(BaseModel):
	"""Request body for POST /session/angle-mode."""

	angle_mode: Literal["2d", "3d"] = Field(..., description="'2d' uses x,y (matches overlay); '3d' adds depth")


class SelectAssetPayload(BaseModel):
	"""Request body for POST /session/select. Analyze one gallery image."""

	asset_id: str = Field(..., min_length=1, description="Gallery asset id")


class ComparePickPayload(BaseModel):
	"""Request body for POST /compare/{side}/pick."""

	asset_id: str = Field(..., min_length=1, description="Gallery asset id to load into this side")
