"""
Pytest configuration: an in-memory WebSocket standing in for the Deriv server.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from exchange.deriv_ws import DerivWSClient

TEST_URL = "wss://ws.example.test/websockets/v3?app_id=1089"

Responder = Callable[[Dict[str, Any]], Optional[List[Dict[str, Any]]]]


class FakeWebSocket:
    """Records sent requests; `responder` decides what the server answers."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self.responder: Optional[Responder] = None
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, raw: str):
        request = json.loads(raw)
        self.sent.append(request)
        if self.responder:
            for message in self.responder(request) or []:
                self.push(message)

    def push(self, message: Dict[str, Any]):
        self._incoming.put_nowait(json.dumps(message))

    def push_raw(self, raw: str):
        self._incoming.put_nowait(raw)

    async def close(self):
        self.closed = True
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        raw = await self._incoming.get()
        if raw is None:
            raise StopAsyncIteration
        return raw


def reply(request: Dict[str, Any], msg_type: str, body: Any, subscription_id: Optional[str] = None) -> Dict[str, Any]:
    """Build a server message answering `request`."""
    echo = {k: v for k, v in request.items() if k != "req_id"}
    message = {"echo_req": echo, "msg_type": msg_type, msg_type: body, "req_id": request["req_id"]}
    if subscription_id:
        message["subscription"] = {"id": subscription_id}
    return message


def error_reply(request: Dict[str, Any], msg_type: str, code: str, message: str) -> Dict[str, Any]:
    echo = {k: v for k, v in request.items() if k != "req_id"}
    return {
        "echo_req": echo,
        "msg_type": msg_type,
        "error": {"code": code, "message": message},
        "req_id": request["req_id"],
    }


def tick_message(symbol: str, quote: float, epoch: int, subscription_id: str, req_id: int = 1) -> Dict[str, Any]:
    return {
        "echo_req": {"ticks": symbol, "subscribe": 1},
        "msg_type": "tick",
        "tick": {
            "ask": quote + 0.01,
            "bid": quote - 0.01,
            "epoch": epoch,
            "id": subscription_id,
            "pip_size": 2,
            "quote": quote,
            "symbol": symbol,
        },
        "subscription": {"id": subscription_id},
        "req_id": req_id,
    }


async def drain(rounds: int = 10):
    """Let the client's reader task process queued messages."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fake_ws():
    return FakeWebSocket()


@pytest_asyncio.fixture
async def client(fake_ws):
    with patch("exchange.deriv_ws.websockets.connect", new=AsyncMock(return_value=fake_ws)):
        ws_client = DerivWSClient(TEST_URL, request_timeout=1.0)
        await ws_client.connect()
        yield ws_client
        await ws_client.disconnect()
