"""
Tests for the WebSocket connection server (aiohttp test client).

Tests:
  - handshake promotes the client and reports project id/name
  - messages before a handshake and from replaced clients are ignored
  - malformed JSON is skipped without dropping the connection
  - disconnect is reported only for the active client
  - PeerChannel.send delivers JSON and returns False once closed
  - start() reports a busy port as PortInUseError
"""
import asyncio
import socket
import unittest

from aiohttp import WSMsgType
from aiohttp.test_utils import TestClient, TestServer


# ── Helpers ───────────────────────────────────────────────────────────────────

HANDSHAKE = {"type": "handshake", "projectId": "abc12345", "projectName": "Demo"}


class TestConnectionServer(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        from canvassync.core.connection import ConnectionServer
        self.events: asyncio.Queue = asyncio.Queue()
        self.server = ConnectionServer(0, self._on_handshake, self._on_message, self._on_disconnect)
        self.client = TestClient(TestServer(self.server.build_app()))
        await self.client.start_server()

    async def asyncTearDown(self):
        await self.client.close()

    async def _on_handshake(self, channel, project_id, project_name):
        await self.events.put(("handshake", channel, project_id, project_name))

    async def _on_message(self, message):
        await self.events.put(("message", message))

    async def _on_disconnect(self, channel):
        await self.events.put(("disconnect", channel))

    async def _next_event(self):
        return await asyncio.wait_for(self.events.get(), 2)

    # ── Tests ─────────────────────────────────────────────────────────────────

    async def test_handshake_then_messages(self):
        ws = await self.client.ws_connect("/")
        await ws.send_json(HANDSHAKE)
        kind, channel, project_id, project_name = await self._next_event()
        self.assertEqual((kind, project_id, project_name), ("handshake", "abc12345", "Demo"))
        self.assertIs(self.server.active, channel)

        await ws.send_json({"type": "request-files"})
        self.assertEqual(await self._next_event(), ("message", {"type": "request-files"}))
        await ws.close()

    async def test_messages_before_handshake_are_ignored(self):
        ws = await self.client.ws_connect("/")
        await ws.send_json({"type": "file-list", "files": []})
        await ws.send_json(HANDSHAKE)
        await ws.send_json({"type": "request-files"})

        self.assertEqual((await self._next_event())[0], "handshake")
        self.assertEqual(await self._next_event(), ("message", {"type": "request-files"}))
        await ws.close()

    async def test_malformed_json_is_skipped(self):
        ws = await self.client.ws_connect("/")
        await ws.send_str("{not json")
        await ws.send_json(["no", "type"])
        await ws.send_json(HANDSHAKE)
        self.assertEqual((await self._next_event())[0], "handshake")
        await ws.close()

    async def test_new_handshake_replaces_active_client(self):
        first = await self.client.ws_connect("/")
        await first.send_json(HANDSHAKE)
        _, first_channel, _, _ = await self._next_event()

        second = await self.client.ws_connect("/")
        await second.send_json(HANDSHAKE)
        _, second_channel, _, _ = await self._next_event()
        self.assertIsNot(first_channel, second_channel)
        self.assertIs(self.server.active, second_channel)

        # The replaced client is closed; its disconnect is not reported
        msg = await asyncio.wait_for(first.receive(), 2)
        self.assertIn(msg.type, (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED))

        await second.close()
        kind, channel = await self._next_event()
        self.assertEqual(kind, "disconnect")
        self.assertIs(channel, second_channel)
        self.assertIsNone(self.server.active)

    async def test_send_and_send_after_close(self):
        ws = await self.client.ws_connect("/")
        await ws.send_json(HANDSHAKE)
        _, channel, _, _ = await self._next_event()

        self.assertTrue(await channel.send({"type": "request-files"}))
        self.assertEqual(await asyncio.wait_for(ws.receive_json(), 2), {"type": "request-files"})

        await ws.close()
        kind, _ = await self._next_event()
        self.assertEqual(kind, "disconnect")
        self.assertTrue(channel.closed)
        self.assertFalse(await channel.send({"type": "sync-complete"}))

    async def test_handler_errors_do_not_drop_the_connection(self):
        async def broken(message):
            raise RuntimeError("boom")

        self.server._on_message = broken
        ws = await self.client.ws_connect("/")
        await ws.send_json(HANDSHAKE)
        _, channel, _, _ = await self._next_event()
        await ws.send_json({"type": "request-files"})

        self.assertTrue(await channel.send({"type": "sync-complete"}))
        self.assertEqual(await asyncio.wait_for(ws.receive_json(), 2), {"type": "sync-complete"})
        await ws.close()


class TestPortInUse(unittest.IsolatedAsyncioTestCase):

    async def test_busy_port_raises(self):
        from canvassync.core.connection import ConnectionServer, PortInUseError

        async def noop(*args):
            pass

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            sock.listen(1)
            port = sock.getsockname()[1]
            server = ConnectionServer(port, noop, noop, noop, host="127.0.0.1")
            with self.assertRaises(PortInUseError):
                await server.start()


if __name__ == "__main__":
    unittest.main()
