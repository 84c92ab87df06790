# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Web server for readcue.
Bridges a browser speech recognizer to the ScriptTracker over WebSocket
and pushes highlight commands back to every connected client.
"""

import asyncio
import contextlib
import json
import logging
import time
from typing import Any

from aiohttp import web

from .config import DEFAULT_CONFIG, SessionSettings, load_config, save_config, update_config_tracking
from .highlight import HighlightCommand, command_to_dict
from .session import RecognitionErrorKind, RecognitionSession
from .tracker import ScriptTracker, TrackingMode

logger = logging.getLogger(__name__)


class MessageError(ValueError):
    """A client message could not be handled."""


def _int_field(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MessageError(f"'{key}' must be a number")
    return int(value)


class WebServer:
    """
    Serves the tracking engine and manages WebSocket connections.
    """

    def __init__(
        self,
        tracker: ScriptTracker | None = None,
        host: str = "127.0.0.1",
        port: int = 8000,
        session_settings: SessionSettings | None = None
    ) -> None:
        self.host: str = host
        self.port: int = port
        self.app: web.Application = web.Application()
        self.websockets: set[web.WebSocketResponse] = set()
        self.runner: web.AppRunner | None = None

        self.tracker: ScriptTracker = tracker or ScriptTracker()
        self.session: RecognitionSession = RecognitionSession.from_settings(
            self.tracker,
            session_settings or DEFAULT_CONFIG["session"],
            self._request_recognizer_start,
            self._request_recognizer_stop,
            report_error=self._report_recognizer_error,
        )
        self._last_status_sent: str = ""

        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up HTTP routes."""
        self.app.router.add_get('/ws', self._handle_websocket)
        self.app.router.add_post('/script', self._handle_script_upload)
        self.app.router.add_get('/state', self._handle_get_state)

    def _init_message(self) -> dict[str, object]:
        return {
            "type": "init",
            "script": self.tracker.script.source_text,
            "words": list(self.tracker.words),
            "state": self.tracker.snapshot(),
        }

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle WebSocket connections for real-time updates."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self.websockets.add(ws)
        logger.info("WebSocket connected. Total: %d", len(self.websockets))

        try:
            await ws.send_json(self._init_message())

            async for msg in ws:
                if msg.type == web.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError as e:
                        await self._send_error(ws, f"Invalid JSON: {e}")
                        continue
                    if not isinstance(data, dict):
                        await self._send_error(ws, "Message must be a JSON object")
                        continue
                    await self._handle_ws_message(ws, data)
                elif msg.type == web.WSMsgType.ERROR:
                    logger.warning("WebSocket error: %s", ws.exception())
        finally:
            self.websockets.discard(ws)
            logger.info("WebSocket disconnected. Total: %d", len(self.websockets))

        return ws

    async def _handle_ws_message(self, ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle incoming WebSocket messages using dispatch pattern."""
        msg_type: object | None = data.get("type")
        if not isinstance(msg_type, str) or not msg_type:
            await self._send_error(ws, "Message has no type")
            return

        # Message type to handler dispatch
        handlers: dict[str, Any] = {
            "script": self._on_script_message,
            "recognition": self._on_recognition_message,
            "mode": self._on_mode_message,
            "seek": self._on_seek_message,
            "reset": self._on_reset_message,
            "start": self._on_start_message,
            "stop": self._on_stop_message,
            "recognizer_start": self._on_recognizer_start_message,
            "recognizer_end": self._on_recognizer_end_message,
            "recognizer_error": self._on_recognizer_error_message,
            "save_config": self._on_save_config_message,
        }

        handler = handlers.get(msg_type)  # type: ignore[arg-type]
        if handler is None:
            logger.warning("Unhandled WebSocket message: %s", msg_type)
            await self._send_error(ws, f"Unknown message type: {msg_type}")
            return

        try:
            await handler(ws, data)
        except MessageError as e:
            logger.warning("Bad %s message: %s", msg_type, e)
            await self._send_error(ws, str(e))
        await self._flush_status()

    async def _on_script_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle script update message."""
        self.tracker.set_reference_text(str(data.get("text", "")))
        await self._broadcast_script()

    async def _on_recognition_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle a recognition result forwarded from the recognizer."""
        transcript = data.get("transcript", "")
        if not isinstance(transcript, str):
            raise MessageError("'transcript' must be a string")
        samples = data.get("confidence")
        if samples is not None and not isinstance(samples, list):
            samples = [samples]
        commands = await self.session.on_result(
            transcript, bool(data.get("isFinal", False)), samples)
        await self.send_commands(commands)

    async def _on_mode_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle tracking mode switch."""
        try:
            mode = TrackingMode(data.get("mode"))
        except ValueError as e:
            raise MessageError(
                f"'mode' must be one of {[m.value for m in TrackingMode]}") from e
        self.tracker.set_mode(mode)
        await self.broadcast({"type": "mode", "mode": mode.value})

    async def _on_seek_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        """Handle a manual cursor placement (user clicked a word).

        Clients address the word by ``wordIndex`` or by ``charOffset`` into
        the reference text.
        """
        if "charOffset" in data:
            word_index = self.tracker.script.word_index_at(_int_field(data, "charOffset"))
        else:
            word_index = _int_field(data, "wordIndex")
        commands = self.tracker.manual_seek(word_index)
        if not commands:
            raise MessageError(f"Word index out of range: {word_index}")
        await self.send_commands(commands)

    async def _on_reset_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        """Handle reset message."""
        self.tracker.reset()
        await self.broadcast({"type": "reset"})

    async def _on_start_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        await self.session.start()

    async def _on_stop_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        await self.session.stop()

    async def _on_recognizer_start_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        await self.session.on_start()

    async def _on_recognizer_end_message(self, _ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        await self.session.on_end()

    async def _on_recognizer_error_message(self, _ws: web.WebSocketResponse, data: dict[str, Any]) -> None:
        await self.session.on_error(data.get("error"))

    async def _on_save_config_message(self, ws: web.WebSocketResponse, _data: dict[str, Any]) -> None:
        """Persist the current tracking mode to the config file."""
        config = load_config()
        config = update_config_tracking(config, {"mode": self.tracker.mode.value})
        success = save_config(config)
        await ws.send_json({
            "type": "config_saved",
            "success": success
        })

    async def _handle_script_upload(self, request: web.Request) -> web.Response:
        """Handle script upload via POST."""
        try:
            data: object = await request.json()
        except json.JSONDecodeError:
            return web.json_response(
                {"status": "error", "message": "Invalid JSON"}, status=400)
        if not isinstance(data, dict):
            return web.json_response(
                {"status": "error", "message": "Expected a JSON object"}, status=400)
        self.tracker.set_reference_text(str(data.get("text", "")))
        await self._broadcast_script()
        await self._flush_status()
        return web.json_response({
            "status": "ok",
            "wordCount": len(self.tracker.words)
        })

    async def _handle_get_state(self, request: web.Request) -> web.Response:
        """Get the current tracking state."""
        return web.json_response(self.tracker.snapshot())

    # ----- Recognizer control (called by the session) -----

    async def _request_recognizer_start(self) -> None:
        await self.broadcast({"type": "recognizer", "action": "start"})

    async def _request_recognizer_stop(self) -> None:
        await self.broadcast({"type": "recognizer", "action": "stop"})
        await self._flush_status()

    async def _report_recognizer_error(self, code: str, kind: RecognitionErrorKind) -> None:
        await self.broadcast({
            "type": "recognizer_error",
            "error": code,
            "kind": kind.value,
            "fatal": kind is RecognitionErrorKind.PERMISSION_DENIED
        })

    # ----- Outgoing messages -----

    async def _broadcast_script(self) -> None:
        await self.broadcast({
            "type": "script_updated",
            "script": self.tracker.script.source_text,
            "words": list(self.tracker.words),
            "wordCount": len(self.tracker.words)
        })

    async def send_commands(self, commands: list[HighlightCommand]) -> None:
        """Send highlight commands to all clients."""
        for command in commands:
            await self.broadcast({
                "type": "highlight",
                **command_to_dict(command)
            })

    async def _flush_status(self) -> None:
        """Broadcast the tracker status line if it changed."""
        status = self.tracker.status_text
        if status and status != self._last_status_sent:
            self._last_status_sent = status
            await self.broadcast({"type": "status", "text": status})

    async def _send_error(self, ws: web.WebSocketResponse, message: str) -> None:
        await ws.send_json({"type": "error", "message": message})

    async def broadcast(self, message: dict[str, object]) -> None:
        """Send a message to all connected WebSocket clients."""
        if not self.websockets:
            return

        dead: set[web.WebSocketResponse] = set()
        for ws in self.websockets:
            try:
                await ws.send_json(message)
            except (ConnectionError, RuntimeError) as e:
                logger.warning("Error sending to WebSocket: %s", e)
                dead.add(ws)

        self.websockets -= dead

    async def start(self) -> None:
        """Start the web server."""
        start_time = time.time()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site: web.TCPSite = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        logger.info("Server started in %.3fs", time.time() - start_time)
        print(f"Web server running at http://{self.host}:{self.port}")

        # Give event loop a moment to start accepting connections
        await asyncio.sleep(0.1)

    async def stop(self) -> None:
        """Stop the web server."""
        await self.session.close()
        # Close all WebSocket connections
        for ws in list(self.websockets):
            with contextlib.suppress(Exception):
                await ws.close()
        self.websockets.clear()

        if self.runner:
            await self.runner.cleanup()
