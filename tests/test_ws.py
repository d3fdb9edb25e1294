import asyncio
import json

from conftest import run, wait_for
from routers.ws import ConnectionManager


class SlowSocket:
	def __init__(self, delay=0.05):
		self.delay = delay
		self.sent = []

	async def send_text(self, payload):
		await asyncio.sleep(self.delay)
		self.sent.append(json.loads(payload))

	async def close(self):
		pass


def test_state_bursts_are_coalesced_for_slow_clients():
	async def go():
		m = ConnectionManager()
		sock = SlowSocket()
		m._clients.add(sock)
		for n in range(50):
			m.publish({"type": "state", "n": n})
			assert len(m._pending) <= 1
			await asyncio.sleep(0.001)
		await wait_for(lambda: not m._pending)
		return sock.sent

	sent = run(go())
	assert sent[-1]["n"] == 49
	assert len(sent) < 50
	ns = [msg["n"] for msg in sent]
	assert ns == sorted(ns)


def test_log_lines_are_not_coalesced():
	async def go():
		m = ConnectionManager()
		sock = SlowSocket(delay=0)
		m._clients.add(sock)
		m.publish({"type": "state", "n": 1})
		m.log_to_clients("one")
		m.log_to_clients("two")
		await wait_for(lambda: not m._pending)
		return sock.sent

	sent = run(go())
	assert [msg["msg"] for msg in sent if msg["type"] == "log"] == ["one", "two"]
	assert [msg["n"] for msg in sent if msg["type"] == "state"] == [1]


def test_publish_without_clients_or_loop_is_a_noop():
	m = ConnectionManager()
	m.publish({"type": "state"})
	m._clients.add(SlowSocket())
	m.publish({"type": "state"})
	assert not m._pending
