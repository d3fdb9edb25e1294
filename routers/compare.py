"""Side-by-side comparison. Routes: /compare*."""
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from app_state import AppState
from deps import get_state
from routers.errors import http_error
from routers.uploads import read_image_upload
from schemas.requests import ComparePickPayload

router = APIRouter(tags=["compare"])


@router.get("/compare")
async def compare_state(state: AppState = Depends(get_state)):
	try:
		return state.session.compare_state()
	except Exception as e:
		raise http_error(e)


@router.get("/compare/diff")
async def compare_diff(state: AppState = Depends(get_state)):
	"""Per-joint A minus B; diff is null until both sides show a detected pose."""
	try:
		return {"diff": state.session.compare_state()["diff"]}
	except Exception as e:
		raise http_error(e)


@router.post("/compare/{side}/pick")
async def compare_pick(side: str, payload: ComparePickPayload, state: AppState = Depends(get_state)):
	try:
		result = await state.session.compare_pick(side, payload.asset_id)
		return {"applied": result is not None, **state.session.compare_state()}
	except HTTPException:
		raise
	except Exception as e:
		raise http_error(e)


@router.post("/compare/{side}/upload")
async def compare_upload(side: str, file: UploadFile = File(...), state: AppState = Depends(get_state)):
	"""Load a one-off file into one side; it is not saved to the gallery."""
	try:
		blob, name, ctype = await read_image_upload(file)
		result = await state.session.compare_upload(side, blob, name, ctype)
		return {"applied": result is not None, **state.session.compare_state()}
	except HTTPException:
		raise
	except Exception as e:
		raise http_error(e)
