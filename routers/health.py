"""Health and reference data. Routes: /health, /api/joints."""
from fastapi import APIRouter, Request

from poseview import __version__, db
from poseview.pose.geometry import JOINT_ANGLES
from schemas.responses import JointCatalogResponse

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
	state = getattr(request.app.state, "state", None)
	session = state.session if state is not None else None
	return {
		"status": "ok" if session is not None else "starting",
		"service": "poseview",
		"version": __version__,
		"db": db.get_status(),
		"estimator": session.status()["estimator"] if session is not None else None,
	}


@router.get("/api/joints", response_model=JointCatalogResponse)
async def joints():
	"""Joint angle catalog in display order, with what each angle measures."""
	return {
		"joints": [
			{"name": j.name, "joint_triple": list(j.joint_triple), "description": j.description}
			for j in JOINT_ANGLES
		]
	}
