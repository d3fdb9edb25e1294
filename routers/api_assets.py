"""Gallery assets and display handles. Routes: /api/assets*, /api/views/*, /api/handles/*."""
import logging
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response

from app_state import AppState
from deps import get_state
from poseview import db
from poseview.session import GALLERY_ERROR
from routers.errors import http_error
from routers.uploads import read_image_uploads
from schemas.responses import AssetListResponse, DeleteResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api_assets"])


@router.get("/api/assets", response_model=AssetListResponse)
async def api_list_assets(state: AppState = Depends(get_state)):
	"""All gallery images, newest first. A store failure yields an empty list and an error message."""
	try:
		entries = await db.list_assets()
	except Exception as e:
		logger.warning("[DB] list_assets failed: %r", e)
		return {"assets": [], "error": GALLERY_ERROR}
	return {"assets": [e.to_dict() for e in entries], "error": None}


@router.post("/api/assets")
async def api_add_assets(files: List[UploadFile] = File(...), state: AppState = Depends(get_state)):
	"""Save uploaded images to the gallery. Files that are not images are skipped."""
	try:
		images, skipped = await read_image_uploads(files)
		if not images:
			raise HTTPException(status_code=400, detail="no image files in upload")
		saved = await state.session.add_assets(images)
		return {"assets": [e.to_dict() for e in saved], "skipped": skipped}
	except HTTPException:
		raise
	except Exception as e:
		raise http_error(e)


@router.get("/api/assets/{asset_id}/blob")
async def api_asset_blob(asset_id: str, state: AppState = Depends(get_state)):
	try:
		entry = await db.get_asset(asset_id)
		if entry is None or entry.blob is None:
			raise HTTPException(status_code=404, detail="asset not found")
		return Response(content=entry.blob, media_type=entry.content_type or "application/octet-stream")
	except HTTPException:
		raise
	except Exception as e:
		raise http_error(e)


@router.delete("/api/assets/{asset_id}", response_model=DeleteResponse)
async def api_delete_asset(asset_id: str, state: AppState = Depends(get_state)):
	"""Delete one image. Idempotent; views showing it are reset."""
	try:
		deleted = await state.session.delete_asset(asset_id)
		return {"detail": "deleted" if deleted else "not found", "deleted": deleted}
	except HTTPException:
		raise
	except Exception as e:
		raise http_error(e)


@router.post("/api/views/{view_id}/handles/{asset_id}")
async def api_acquire_handle(view_id: str, asset_id: str, state: AppState = Depends(get_state)):
	"""Hold a display handle for asset_id on behalf of view_id (shared across views)."""
	try:
		entry = await db.get_asset(asset_id)
		if entry is None or entry.blob is None:
			raise HTTPException(status_code=404, detail="asset not found")
		h = await state.handles.acquire_async(view_id, entry.id, entry.blob, entry.content_type)
		return {"asset_id": h.asset_id, "token": h.token, "url": h.url(), "media_type": h.media_type}
	except HTTPException:
		raise
	except Exception as e:
		raise http_error(e)


@router.delete("/api/views/{view_id}")
async def api_release_view(view_id: str, state: AppState = Depends(get_state)):
	"""Close a view: release its holds; handles nobody else holds are revoked."""
	revoked = state.handles.release_view(view_id)
	return {"view_id": view_id, "revoked": revoked}


@router.get("/api/handles/{token}")
async def api_read_handle(token: str, state: AppState = Depends(get_state)):
	try:
		h = state.handles.get(token)
		return Response(content=h.read(), media_type=h.media_type, headers={"Cache-Control": "private, max-age=60"})
	except Exception as e:
		raise http_error(e)
