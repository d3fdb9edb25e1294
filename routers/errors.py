"""Map domain exceptions raised by poseview to HTTP errors."""
from fastapi import HTTPException

from poseview.db import AssetStoreUnavailable
from poseview.handles import HandleRevoked
from poseview.imaging import ImageDecodeError
from poseview.session import SessionModeError, SnapshotUnavailable


def http_error(e: Exception) -> HTTPException:
	if isinstance(e, HTTPException):
		return e
	if isinstance(e, SessionModeError):
		return HTTPException(status_code=409, detail=str(e))
	if isinstance(e, HandleRevoked):
		return HTTPException(status_code=404, detail=f"handle not found or revoked: {e.args[0] if e.args else ''}")
	if isinstance(e, KeyError):
		return HTTPException(status_code=404, detail=f"asset not found: {e.args[0] if e.args else ''}")
	if isinstance(e, SnapshotUnavailable):
		return HTTPException(status_code=404, detail=str(e))
	if isinstance(e, AssetStoreUnavailable):
		return HTTPException(status_code=503, detail=str(e))
	if isinstance(e, (ImageDecodeError, ValueError)):
		return HTTPException(status_code=400, detail=str(e))
	return HTTPException(status_code=500, detail=str(e))
