"""WebSocket endpoint and ConnectionManager. Route: /ws."""
import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ws"])


class ConnectionManager:
	def __init__(self) -> None:
		self._clients: Set[WebSocket] = set()
		self._lock = asyncio.Lock()
		self._pending: Set[asyncio.Task] = set()
		# Latest unsent state snapshot; superseded snapshots are never sent.
		self._next_state: Optional[Dict[str, Any]] = None
		self._state_task: Optional[asyncio.Task] = None

	async def connect(self, websocket: WebSocket) -> None:
		await websocket.accept()
		async with self._lock:
			self._clients.add(websocket)

	async def disconnect(self, websocket: WebSocket) -> None:
		async with self._lock:
			self._clients.discard(websocket)

	async def broadcast_json(self, message: Dict[str, Any]) -> None:
		payload = json.dumps(message, separators=(",", ":"))
		async with self._lock:
			if not self._clients:
				return
			send_tasks = [self._send(ws, payload) for ws in list(self._clients)]
			await asyncio.gather(*send_tasks, return_exceptions=True)

	def publish(self, message: Dict[str, Any]) -> None:
		"""
		Broadcast without awaiting. Fire-and-forget; safe to call from non-async code.
		Does nothing when no event loop is running.

		"state" messages are coalesced: at most one broadcast is in flight and only the
		newest snapshot queued behind it is sent, so slow clients cannot pile up tasks.
		"""
		if not self._clients:
			return
		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			return
		if message.get("type") == "state":
			self._next_state = message
			cur = self._state_task
			if cur is not None and not cur.done() and cur.get_loop() is loop:
				return
			task = loop.create_task(self._drain_state())
			self._state_task = task
		else:
			task = loop.create_task(self.broadcast_json(message))
		self._pending.add(task)
		task.add_done_callback(self._pending.discard)

	async def _drain_state(self) -> None:
		while self._next_state is not None:
			message, self._next_state = self._next_state, None
			await self.broadcast_json(message)

	def log_to_clients(self, message: str) -> None:
		"""Send a log line to all connected WebSocket clients."""
		logger.info(message)
		self.publish({"type": "log", "msg": message})

	@staticmethod
	async def _send(ws: WebSocket, payload: str) -> None:
		try:
			await ws.send_text(payload)
		except Exception as e:
			logger.debug("[WS] send failed: %r", e)
			try:
				await ws.close()
			except RuntimeError:
				pass


manager = ConnectionManager()


@router.websocket("/ws")
async def ws_endpoint(websocket: WebSocket):
	await manager.connect(websocket)
	try:
		app_state = getattr(websocket.app.state, "state", None)
		if app_state is not None and app_state.session is not None:
			# New clients get the current state right away.
			await websocket.send_text(json.dumps({"type": "state", **app_state.session.status()}, separators=(",", ":")))
		while True:
			await websocket.receive_text()
	except WebSocketDisconnect:
		pass
	finally:
		await manager.disconnect(websocket)
