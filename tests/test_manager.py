import asyncio

from savanna.manager import ConnectionManager


class FakeSocket:
    def __init__(self, hang: bool = False, fail: bool = False):
        self.hang = hang
        self.fail = fail
        self.received = []

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket closed")
        if self.hang:
            await asyncio.Event().wait()
        self.received.append(message)


def test_broadcast_drops_slow_and_dead_sockets():
    manager = ConnectionManager(send_timeout=0.05)
    fast, slow, dead, other = FakeSocket(), FakeSocket(hang=True), FakeSocket(fail=True), FakeSocket()
    manager.active_connections = [fast, slow, dead, other]
    message = {"type": "TIMER_UPDATE", "payload": {"minutes_remaining": 42}}

    delivered = asyncio.run(manager.broadcast(message))

    assert delivered == 2
    assert manager.active_connections == [fast, other]
    assert fast.received == [message]
    assert other.received == [message]


def test_broadcast_with_no_viewers():
    assert asyncio.run(ConnectionManager().broadcast({"type": "STATE_SNAPSHOT"})) == 0
