"""
WebSocket publisher for stable gesture messages.

Handles:
- Async WebSocket connection with optional Bearer token auth
- Exponential backoff reconnection
- Message queue so the frame loop never waits on the network
- Status reporting (connecting / open / reconnecting / idle / error)
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidStatus, WebSocketException

from .message import GestureMessage

logger = logging.getLogger(__name__)

STATUS_IDLE = "idle"
STATUS_CONNECTING = "connecting"
STATUS_OPEN = "open"
STATUS_RECONNECTING = "reconnecting"
STATUS_ERROR = "error"


@dataclass
class ConnectionStats:
    """Statistics about WebSocket connection."""
    connected: bool = False
    connect_time: Optional[float] = None
    disconnect_time: Optional[float] = None
    reconnect_attempts: int = 0
    messages_sent: int = 0
    messages_failed: int = 0
    last_send_time: Optional[float] = None


class GestureWebSocketClient:
    """
    Async WebSocket client with automatic reconnection.

    ``send`` is non-blocking and safe to call from the frame loop; messages
    are dropped (and counted) while disconnected instead of piling up.
    """

    def __init__(
        self,
        server_url: str,
        token: Optional[str] = None,
        max_backoff_seconds: float = 30.0,
        initial_backoff_seconds: float = 1.0,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize WebSocket client.

        Args:
            server_url: WebSocket URL (e.g., ws://127.0.0.1:8080/ws?room=abc)
            token: Bearer token for authentication (optional)
            max_backoff_seconds: Maximum backoff time between reconnect attempts
            initial_backoff_seconds: Initial backoff time
            on_status: Called on every connection status change
        """
        self.server_url = server_url
        self.token = token
        self.max_backoff = max_backoff_seconds
        self.initial_backoff = initial_backoff_seconds
        self.on_status = on_status

        self._ws: Optional[ClientConnection] = None
        self._connected = False
        self._running = False
        self.status = STATUS_IDLE

        self._send_queue: asyncio.Queue = asyncio.Queue(maxsize=100)
        self.stats = ConnectionStats()
        self._current_backoff = initial_backoff_seconds

        self._connect_task: Optional[asyncio.Task] = None
        self._send_task: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        """Check if currently connected."""
        return self._connected and self._ws is not None

    def _set_status(self, status: str) -> None:
        if status == self.status:
            return
        self.status = status
        logger.info(f"WebSocket status: {status}")
        if self.on_status:
            try:
                self.on_status(status)
            except Exception as e:
                logger.warning(f"Status callback failed: {e}")

    async def start(self) -> None:
        """Start the connection and sender tasks."""
        if self._running:
            return

        self._running = True
        self._connect_task = asyncio.create_task(self._connection_loop())
        self._send_task = asyncio.create_task(self._send_loop())
        logger.info(f"WebSocket client started, connecting to {self.server_url}")

    async def stop(self) -> None:
        """Stop the client and close the connection."""
        if not self._running:
            return

        logger.info("WebSocket client stopping...")
        self._running = False

        await self._send_queue.put(None)

        for task in (self._connect_task, self._send_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if self._ws:
            await self._ws.close()
            self._ws = None

        self._connected = False
        self._set_status(STATUS_IDLE)
        logger.info("WebSocket client stopped")

    def send(self, message: GestureMessage) -> bool:
        """
        Queue a message for sending.

        Returns:
            True if queued, False if the queue is full
        """
        try:
            self._send_queue.put_nowait(message.to_json())
            return True
        except asyncio.QueueFull:
            self.stats.messages_failed += 1
            logger.warning("Send queue full, dropping message")
            return False

    async def _connection_loop(self) -> None:
        """Main connection loop with automatic reconnection."""
        while self._running:
            try:
                await self._connect()
                self._current_backoff = self.initial_backoff
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Connection error: {e}")
                self._set_status(STATUS_ERROR)

            if not self._running:
                break

            logger.info(f"Reconnecting in {self._current_backoff:.1f}s...")
            self._set_status(STATUS_RECONNECTING)
            await asyncio.sleep(self._current_backoff)

            self._current_backoff = min(self._current_backoff * 2, self.max_backoff)
            self.stats.reconnect_attempts += 1

    async def _connect(self) -> None:
        """Connect and keep reading until the connection closes."""
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else None

        if self.stats.reconnect_attempts == 0:
            self._set_status(STATUS_CONNECTING)

        try:
            logger.info(f"Connecting to {self.server_url}...")
            self._ws = await connect(
                self.server_url,
                additional_headers=headers,
                ping_interval=20,
                ping_timeout=10,
                close_timeout=5,
            )

            self._connected = True
            self.stats.connected = True
            self.stats.connect_time = time.time()
            self._set_status(STATUS_OPEN)

            try:
                async for message in self._ws:
                    logger.debug(f"Received from server: {message}")
            except ConnectionClosed:
                pass

        except InvalidStatus as e:
            logger.error(f"Server rejected connection: {e.response.status_code}")
            raise
        except ConnectionRefusedError:
            logger.error("Connection refused - is the server running?")
            raise
        finally:
            ws = self._ws
            self._connected = False
            self._ws = None
            self.stats.connected = False
            self.stats.disconnect_time = time.time()
            if ws is not None:
                await ws.close()

    async def _send_loop(self) -> None:
        """Process outgoing message queue."""
        while self._running:
            try:
                try:
                    message = await asyncio.wait_for(self._send_queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue

                # None is shutdown signal
                if message is None:
                    break

                if self.connected:
                    try:
                        await self._ws.send(message)
                        self.stats.messages_sent += 1
                        self.stats.last_send_time = time.time()
                    except (ConnectionClosed, WebSocketException) as e:
                        self.stats.messages_failed += 1
                        logger.warning(f"Send failed: {e}")
                else:
                    self.stats.messages_failed += 1

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Send loop error: {e}")

    def get_stats(self) -> dict:
        """Get connection statistics."""
        return {
            "status": self.status,
            "connected": self.connected,
            "connect_time": self.stats.connect_time,
            "disconnect_time": self.stats.disconnect_time,
            "reconnect_attempts": self.stats.reconnect_attempts,
            "messages_sent": self.stats.messages_sent,
            "messages_failed": self.stats.messages_failed,
            "last_send_time": self.stats.last_send_time,
            "queue_size": self._send_queue.qsize(),
        }
