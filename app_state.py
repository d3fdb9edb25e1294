"""
Explicit app state – single source of truth for runtime lifecycle.
Created in lifespan, attached to app.state.state; injected into routes via Depends(get_state).
"""
from typing import Any, Optional


class AppState:
	"""
	Holds all runtime state for the app.
	Populated in server lifespan; routes receive this instance via Depends(get_state).
	"""
	# Config (poseview.config.AppConfig)
	cfg: Any = None

	# WebSocket broadcast manager (routers.ws.ConnectionManager)
	manager: Any = None

	# Pose estimator adapter and session orchestrator
	adapter: Any = None
	session: Any = None

	# Display handle cache shared by all views of the session
	handles: Any = None

	# Set when the estimator probe failed at startup
	estimator_error: Optional[str] = None
