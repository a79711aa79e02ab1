"""
WebSocket server for the peer connection (aiohttp)

Only one client is active at a time: a handshake promotes its sender and
closes whoever was active before. Everything else a non-active client sends
is ignored.
"""
import asyncio
import errno
import json
import traceback
from typing import Awaitable, Callable, Optional

from aiohttp import WSCloseCode, WSMsgType, web

from .. import config as _cfg
from ..utils.logging import error, is_verbose, vlog

HandshakeCallback = Callable[["PeerChannel", Optional[str], Optional[str]], Awaitable[object]]
MessageCallback = Callable[[dict], Awaitable[object]]
DisconnectCallback = Callable[["PeerChannel"], Awaitable[object]]


class PortInUseError(RuntimeError):
    def __init__(self, port: int):
        super().__init__(f"Port {port} is already in use")
        self.port = port


class PeerChannel:
    """One connected client. send() never raises."""

    def __init__(self, ws: web.WebSocketResponse, conn_id: int):
        self._ws = ws
        self.conn_id = conn_id
        self.handshake_received = False

    def __repr__(self):
        return f"<PeerChannel conn={self.conn_id}>"

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def send(self, message: dict) -> bool:
        msg_type = message.get("type")
        if self._ws.closed:
            vlog(f"[ws] cannot send {msg_type}: conn {self.conn_id} is closed")
            return False
        try:
            await self._ws.send_str(json.dumps(message))
        except (ConnectionError, RuntimeError) as exc:
            vlog(f"[ws] send error for {msg_type}: {exc}")
            return False
        return True

    async def close(self):
        if not self._ws.closed:
            await self._ws.close(code=WSCloseCode.GOING_AWAY)


class ConnectionServer:

    def __init__(self, port: int,
                 on_handshake: HandshakeCallback,
                 on_message: MessageCallback,
                 on_disconnect: DisconnectCallback,
                 host: Optional[str] = None):
        self.port = port
        self.host = host or _cfg.HOST
        self._on_handshake = on_handshake
        self._on_message = on_message
        self._on_disconnect = on_disconnect
        self._active: Optional[PeerChannel] = None
        self._channels: set[PeerChannel] = set()
        self._closers: set[asyncio.Task] = set()
        self._next_id = 0
        self._runner: Optional[web.AppRunner] = None

    @property
    def active(self) -> Optional[PeerChannel]:
        return self._active

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self._handle_ws)
        return app

    async def start(self):
        runner = web.AppRunner(self.build_app())
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        try:
            await site.start()
        except OSError as exc:
            await runner.cleanup()
            if exc.errno == errno.EADDRINUSE:
                error(f"Port {self.port} is already in use.")
                error("This usually means another canvassync is already running for this project.")
                error(f"Stop it, or find it with: lsof -i :{self.port} | grep LISTEN")
                raise PortInUseError(self.port) from exc
            error(f"Failed to start WebSocket server: {exc}")
            raise
        self._runner = runner
        vlog(f"[ws] listening on {self.host}:{self.port}")

    async def close(self):
        for channel in list(self._channels):
            await channel.close()
        self._channels.clear()
        self._active = None
        if self._closers:
            await asyncio.gather(*self._closers, return_exceptions=True)
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    # ── Per-connection loop ──────────────────────────────────────────────────

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self._next_id += 1
        channel = PeerChannel(ws, self._next_id)
        self._channels.add(channel)
        vlog(f"[ws] client connected (conn {channel.conn_id})")

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self._dispatch(channel, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    error(f"WebSocket error: {ws.exception()}")
        finally:
            self._channels.discard(channel)
            vlog(f"[ws] client disconnected (conn {channel.conn_id}, code {ws.close_code})")
            if self._active is channel:
                self._active = None
                await self._safe_call(self._on_disconnect, channel)
            else:
                vlog(f"[ws] ignoring disconnect from stale client (conn {channel.conn_id})")
        return ws

    async def _dispatch(self, channel: PeerChannel, raw: str):
        try:
            message = json.loads(raw)
        except ValueError as exc:
            error(f"Failed to parse message: {exc}")
            return
        if not isinstance(message, dict) or "type" not in message:
            error(f"Malformed message (no type): {raw[:80]}")
            return

        msg_type = message["type"]
        if msg_type == "handshake":
            vlog(f"[ws] handshake (conn {channel.conn_id})")
            channel.handshake_received = True
            previous, self._active = self._active, channel
            if previous is not None and previous is not channel:
                vlog(f"[ws] replacing active client with conn {channel.conn_id}")
                # Closing waits for the old peer; the new one must not
                closer = asyncio.get_running_loop().create_task(previous.close())
                self._closers.add(closer)
                closer.add_done_callback(self._closers.discard)
            await self._safe_call(self._on_handshake, channel,
                                  message.get("projectId"), message.get("projectName"))
        elif self._active is channel:
            await self._safe_call(self._on_message, message)
        elif channel.handshake_received:
            vlog(f"[ws] ignoring {msg_type} from stale client (conn {channel.conn_id})")
        else:
            vlog(f"[ws] ignoring {msg_type} before handshake (conn {channel.conn_id})")

    async def _safe_call(self, callback, *args):
        try:
            await callback(*args)
        except Exception as exc:
            error(f"Error handling message: {exc}")
            if is_verbose():
                traceback.print_exc()
