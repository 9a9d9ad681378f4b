"""
Deriv WebSocket API client.
Single connection; requests are matched to responses by req_id and
subscription messages are routed to callbacks by subscription id.
Each stream has its own queue and consumer task, so the reader never waits
on a callback. No auto-reconnect: a closed socket fails every pending request.
"""

from __future__ import annotations
import asyncio
import json
from typing import Any, Awaitable, Callable, Coroutine, Dict, Optional, Set, Union
import websockets
import logging

logger = logging.getLogger(__name__)

# Callback receives the full response dict; may be sync or async
StreamCallback = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


class DerivAPIError(Exception):
    """Error object returned by the Deriv API."""

    def __init__(
        self,
        code: str,
        message: str,
        msg_type: Optional[str] = None,
        echo_req: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
        self.msg_type = msg_type
        self.echo_req = echo_req or {}

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "DerivAPIError":
        error = response.get("error") or {}
        return cls(
            code=str(error.get("code", "UnknownError")),
            message=str(error.get("message", "")),
            msg_type=response.get("msg_type"),
            echo_req=response.get("echo_req"),
        )


class Subscription:
    """Handle for an active stream; `unsubscribe()` sends forget."""

    def __init__(self, client: "DerivWSClient", subscription_id: Optional[str], request: Dict[str, Any]):
        self._client = client
        self.id = subscription_id
        self.request = request
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def unsubscribe(self):
        if self._closed:
            return
        self._closed = True
        await self._client._release(self.id)

    def __repr__(self) -> str:
        return f"Subscription(id={self.id!r}, closed={self._closed})"


class DerivWSClient:
    """Async Deriv API v3 WebSocket client."""

    def __init__(
        self,
        url: str,
        ping_interval: int = 20,
        request_timeout: float = 30.0,
    ):
        self.url = url
        self.ping_interval = ping_interval
        self.request_timeout = request_timeout

        self._ws = None
        self._reader: Optional[asyncio.Task] = None
        self._req_id = 0

        self._pending: Dict[int, asyncio.Future] = {}
        self._pending_streams: Dict[int, StreamCallback] = {}  # req_id -> callback until first response
        self._abandoned: Set[int] = set()                      # subscribe req_ids that gave up waiting
        self._streams: Dict[str, asyncio.Queue] = {}           # subscription id -> consumer queue
        self._tasks: Set[asyncio.Task] = set()

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and self._reader is not None and not self._reader.done()

    async def connect(self):
        """Open the WebSocket and start reading."""
        if self.is_connected:
            return

        self._ws = await websockets.connect(
            self.url,
            ping_interval=self.ping_interval,
            ping_timeout=10,
            close_timeout=5,
        )
        self._reader = asyncio.create_task(self._read_loop())
        logger.info(f"[WS] Connected to {self.url}")

    async def disconnect(self):
        """Stop reading and consuming, fail pending requests and close the socket."""
        reader, self._reader = self._reader, None
        ws, self._ws = self._ws, None
        current = asyncio.current_task()

        if reader is not None and reader is not current:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        self._fail_pending(ConnectionError("WebSocket disconnected"))
        self._close_streams()

        tasks = [t for t in self._tasks if t is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if ws is not None:
            await ws.close()
            logger.info("[WS] Disconnected")

    async def send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Send a request and wait for its response."""
        return await self._request(request)

    async def subscribe(self, request: Dict[str, Any], callback: StreamCallback) -> Subscription:
        """
        Start a stream. The first response is returned via the Subscription
        and also delivered to the callback, like every later update.
        Callbacks run outside the reader, so they may send requests themselves.
        """
        payload = dict(request)
        payload["subscribe"] = 1
        response = await self._request(payload, callback=callback)
        subscription_id = (response.get("subscription") or {}).get("id")
        if subscription_id is None:
            logger.warning(f"[WS] No subscription id in response to {request}")
        else:
            logger.info(f"[WS] Subscribed: {subscription_id} ({response.get('msg_type')})")
        return Subscription(self, subscription_id, request)

    async def forget(self, subscription_id: str) -> Dict[str, Any]:
        """Cancel a stream on the server."""
        return await self.send({"forget": subscription_id})

    # ==================== Internal ====================

    async def _request(
        self,
        request: Dict[str, Any],
        callback: Optional[StreamCallback] = None,
    ) -> Dict[str, Any]:
        if not self.is_connected:
            raise ConnectionError("WebSocket is not connected")

        self._req_id += 1
        req_id = self._req_id
        payload = dict(request)
        payload["req_id"] = req_id

        future = asyncio.get_running_loop().create_future()
        self._pending[req_id] = future
        if callback is not None:
            self._pending_streams[req_id] = callback

        try:
            await self._ws.send(json.dumps(payload))
            response = await asyncio.wait_for(future, timeout=self.request_timeout)
        finally:
            self._pending.pop(req_id, None)
            # Still here means no response arrived (timeout, cancel, send failure)
            if self._pending_streams.pop(req_id, None) is not None:
                self._abandoned.add(req_id)

        if "error" in response:
            raise DerivAPIError.from_response(response)
        return response

    async def _release(self, subscription_id: Optional[str]):
        if subscription_id is None:
            return
        queue = self._streams.pop(subscription_id, None)
        if queue is not None:
            queue.put_nowait(None)
        if self.is_connected:
            await self.forget(subscription_id)
            logger.info(f"[WS] Forgot subscription {subscription_id}")

    async def _read_loop(self):
        try:
            async for raw in self._ws:
                self._handle_message(raw)
        except websockets.ConnectionClosed as e:
            logger.warning(f"[WS] Connection closed: {e}")
        except Exception as e:
            logger.error(f"[WS] Reader error: {e}", exc_info=True)
        finally:
            self._fail_pending(ConnectionError("WebSocket connection closed"))
            self._close_streams()

    def _handle_message(self, raw: Union[str, bytes]):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"[WS] Invalid JSON: {raw[:100]!r}")
            return

        req_id = data.get("req_id")
        subscription_id = (data.get("subscription") or {}).get("id")

        future = self._pending.pop(req_id, None) if req_id is not None else None
        if future is not None:
            callback = self._pending_streams.pop(req_id, None)
            if callback is not None and subscription_id and "error" not in data:
                self._open_stream(subscription_id, callback)
            if not future.done():
                future.set_result(data)
        elif req_id in self._abandoned:
            self._abandoned.discard(req_id)
            if subscription_id and "error" not in data:
                logger.warning(f"[WS] Late subscription {subscription_id}, forgetting it")
                self._spawn(self._forget_orphan(subscription_id))
            return

        queue = self._streams.get(subscription_id) if subscription_id else None
        if queue is not None:
            queue.put_nowait(data)
        elif future is None:
            logger.debug(f"[WS] Unmatched message: {data.get('msg_type')}")

    def _open_stream(self, subscription_id: str, callback: StreamCallback):
        queue: asyncio.Queue = asyncio.Queue()
        self._streams[subscription_id] = queue
        self._spawn(self._consume(subscription_id, callback, queue))

    async def _consume(self, subscription_id: str, callback: StreamCallback, queue: asyncio.Queue):
        while True:
            data = await queue.get()
            if data is None:
                return
            try:
                result = callback(data)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(
                    f"[WS] Callback error for {subscription_id}: {e}",
                    exc_info=True,
                )

    async def _forget_orphan(self, subscription_id: str):
        try:
            await self.forget(subscription_id)
        except (DerivAPIError, ConnectionError, asyncio.TimeoutError) as e:
            logger.warning(f"[WS] Could not forget {subscription_id}: {e}")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _close_streams(self):
        # Consumers drain what is already queued, then exit on the sentinel
        for queue in self._streams.values():
            queue.put_nowait(None)
        self._streams.clear()

    def _fail_pending(self, exc: Exception):
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()
        self._pending_streams.clear()
        self._abandoned.clear()
