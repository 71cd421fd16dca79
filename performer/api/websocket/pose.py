"""WebSocket Pose Stream - Push published poses to rendering clients.

Pose publication has state semantics: only the latest pose matters, so a
slow client loses intermediate poses instead of falling behind.
"""

from __future__ import annotations

import asyncio
import itertools

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from performer.animation.pose import Pose
from performer.observability.logging import get_logger

logger = get_logger(__name__)

_client_ids = itertools.count(1)


class PoseWebSocket:
    """One connected rendering client.

    Usage:
        client = PoseWebSocket()
        await client.connect(websocket)
        client.offer(pose)        # from the engine's pose listener
        await client.disconnect()
    """

    def __init__(self, queue_size: int = 4) -> None:
        self._client_id = next(_client_ids)
        self._websocket: WebSocket | None = None
        self._connected = False
        self._queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=queue_size)
        self._send_task: asyncio.Task | None = None
        self.dropped = 0

    @property
    def client_id(self) -> int:
        """Client identifier."""
        return self._client_id

    @property
    def is_connected(self) -> bool:
        """Whether the WebSocket is connected."""
        return self._connected

    async def connect(self, websocket: WebSocket) -> None:
        """Accept the connection and start the send loop."""
        await websocket.accept()
        self._websocket = websocket
        self._connected = True
        self._send_task = asyncio.create_task(self._send_loop())
        logger.info("pose_ws_connected", client_id=self._client_id)

    async def disconnect(self) -> None:
        """Stop the send loop and close the socket."""
        self._connected = False

        if self._send_task:
            self._send_task.cancel()
            try:
                await self._send_task
            except asyncio.CancelledError:
                pass
            self._send_task = None

        if self._websocket and self._websocket.client_state == WebSocketState.CONNECTED:
            try:
                await self._websocket.close()
            except RuntimeError:
                pass

        logger.info("pose_ws_disconnected", client_id=self._client_id, dropped=self.dropped)

    def offer(self, pose: Pose) -> None:
        """Queue a pose, dropping the oldest one if the client is behind."""
        if not self._connected:
            return
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(pose.to_dict())

    async def _send_loop(self) -> None:
        while self._connected:
            try:
                frame = await asyncio.wait_for(self._queue.get(), timeout=0.1)
                if self._websocket and self._connected:
                    await self._websocket.send_json(frame)
            except asyncio.TimeoutError:
                continue
            except WebSocketDisconnect:
                self._connected = False
                break
            except RuntimeError as e:
                # Socket already closed
                logger.info("pose_send_closed", client_id=self._client_id, error=str(e))
                self._connected = False
                break
            except Exception as e:
                logger.warning("pose_send_error", client_id=self._client_id, error=str(e))
                continue


class PoseBroadcaster:
    """Fans engine poses out to every connected client.

    Usage:
        broadcaster = PoseBroadcaster()
        engine.add_pose_listener(broadcaster.publish)
    """

    def __init__(self) -> None:
        self._clients: dict[int, PoseWebSocket] = {}

    async def connect(self, websocket: WebSocket) -> PoseWebSocket:
        """Register a new client."""
        client = PoseWebSocket()
        await client.connect(websocket)
        self._clients[client.client_id] = client
        return client

    async def disconnect(self, client: PoseWebSocket) -> None:
        """Remove and close a client."""
        self._clients.pop(client.client_id, None)
        await client.disconnect()

    async def disconnect_all(self) -> None:
        """Close every client."""
        for client in list(self._clients.values()):
            await self.disconnect(client)

    def publish(self, pose: Pose) -> None:
        """Engine pose listener."""
        for client in list(self._clients.values()):
            client.offer(pose)

    @property
    def active_connections(self) -> int:
        """Number of connected clients."""
        return len(self._clients)
