"""Session mode machine. Routes: /session/*."""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response, StreamingResponse

from app_state import AppState
from deps import get_state
from poseview.pose.types import AnalysisResult
from poseview.streaming import MEDIA_TYPE, NO_CACHE_HEADERS, mjpeg_from_latest
from routers.errors import http_error
from routers.uploads import read_image_upload
from schemas.requests import AngleModePayload, ModePayload, SelectAssetPayload

router = APIRouter(tags=["session"])


def _analysis_response(state: AppState, result: Optional[AnalysisResult]) -> Dict[str, Any]:
	# result is None when a newer request or a mode change superseded this one
	return {
		"applied": result is not None,
		"result": result.to_dict() if result is not None else None,
		"status": state.session.status(),
	}


@router.get("/session/status")
async def session_status(state: AppState = Depends(get_state)):
	return state.session.status()


@router.post("/session/mode")
async def session_mode(payload: ModePayload, state: AppState = Depends(get_state)):
	"""
	Switch between live, browsing and comparing. Leaving a mode cancels its work
	synchronously; camera failures are reported in the returned state, not as HTTP errors.
	"""
	try:
		await state.session.set_mode(payload.mode)
		st = state.session.status()
		if st.get("error") and state.manager is not None:
			state.manager.log_to_clients(f"[Session] {st['error']}")
		return st
	except HTTPException:
		raise
	except Exception as e:
		raise http_error(e)


@router.post("/session/angle-mode")
async def session_angle_mode(payload: AngleModePayload, state: AppState = Depends(get_state)):
	try:
		state.session.set_angle_mode(payload.angle_mode)
		return state.session.status()
	except HTTPException:
		raise
	except Exception as e:
		raise http_error(e)


@router.post("/session/select")
async def session_select(payload: SelectAssetPayload, state: AppState = Depends(get_state)):
	"""Select a gallery image in browsing mode and analyze it."""
	try:
		result = await state.session.select_asset(payload.asset_id)
		return _analysis_response(state, result)
	except HTTPException:
		raise
	except Exception as e:
		raise http_error(e)


@router.post("/session/analyze")
async def session_analyze(file: UploadFile = File(...), state: AppState = Depends(get_state)):
	"""Analyze one uploaded image without saving it to the gallery."""
	try:
		blob, _name, _ctype = await read_image_upload(file)
		result = await state.session.analyze_upload(blob)
		return _analysis_response(state, result)
	except HTTPException:
		raise
	except Exception as e:
		raise http_error(e)


@router.get("/session/mjpeg")
async def session_mjpeg(fps: Optional[float] = None, state: AppState = Depends(get_state)):
	"""
	Live annotated frames as MJPEG. Browser can display via <img src="/session/mjpeg">.
	Only yields while live capture is streaming.
	"""
	max_fps = fps if fps is not None else state.cfg.camera.mjpeg_fps
	return StreamingResponse(
		mjpeg_from_latest(state.session.latest_frame_jpeg, max_fps),
		media_type=MEDIA_TYPE,
		headers={**NO_CACHE_HEADERS, "Connection": "keep-alive"},
	)


@router.get("/session/snapshot.png")
async def session_snapshot(state: AppState = Depends(get_state)):
	"""Annotated frame plus angle panel, as a PNG download."""
	try:
		filename, png = state.session.snapshot_png()
	except Exception as e:
		raise http_error(e)
	return Response(
		content=png,
		media_type="image/png",
		headers={**NO_CACHE_HEADERS, "Content-Disposition": f'attachment; filename="{filename}"'},
	)
