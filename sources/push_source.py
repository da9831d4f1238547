"""
Push channel: image references delivered by an external controller.

Payloads are JSON objects shaped like ``{"imageSource": "<locator>"}``. The
transport is newline-delimited JSON over TCP, served by an asyncio loop on a
background thread. Every decoded payload is re-emitted on the Qt UI thread,
so the channel and everything downstream of it stay single-threaded.
"""
from __future__ import annotations

import asyncio
import json
import threading
from typing import Any, Optional, Set

from PySide6.QtCore import QObject, Signal

from core.constants.timing import PUSH_MAX_LINE_BYTES, PUSH_PORT_DEFAULT
from core.errors import MalformedCandidate
from core.logging.logger import get_logger, is_verbose_logging
from core.logging.tags import TAG_LIFECYCLE, TAG_PUSH
from core.threading.manager import ThreadManager
from engine.update_types import ImageReference
from sources.base_channel import ChannelType, SourceChannel, coerce_reference

logger = get_logger(__name__)

IMAGE_SOURCE_KEY = "imageSource"


def parse_push_payload(payload: Any) -> ImageReference:
    """
    Extract the image reference from a push payload.

    Raises:
        MalformedCandidate: If the payload is not an object or lacks a
            non-empty string ``imageSource``
    """
    if not isinstance(payload, dict):
        raise MalformedCandidate(f"payload is {type(payload).__name__}, expected object", payload)
    if IMAGE_SOURCE_KEY not in payload:
        raise MalformedCandidate(f"payload lacks '{IMAGE_SOURCE_KEY}'", payload)
    try:
        return coerce_reference(payload[IMAGE_SOURCE_KEY])
    except MalformedCandidate as e:
        raise MalformedCandidate(f"'{IMAGE_SOURCE_KEY}' {e.reason}", payload) from None


class PushServer(QObject):
    """
    Line-oriented JSON listener.

    Signals (always emitted on the UI thread):
    - payload_received: A decoded JSON value
    - payload_invalid: Raw line and the reason it could not be decoded
    """

    payload_received = Signal(object)
    payload_invalid = Signal(str, str)

    def __init__(self, host: str = "127.0.0.1", port: int = PUSH_PORT_DEFAULT,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self._host = host
        self._port = int(port)
        self._bound_port: Optional[int] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._stop_requested = False
        self._listening = threading.Event()
        self._error: Optional[BaseException] = None
        self._writers: Set[asyncio.StreamWriter] = set()
        self._lines_received = 0

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        """Bound port once listening (useful with port 0), else the configured one."""
        return self._bound_port if self._bound_port is not None else self._port

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop_requested = False
        self._error = None
        self._bound_port = None
        self._listening.clear()
        self._thread = threading.Thread(target=self._run, name="push_server", daemon=True)
        self._thread.start()

    def wait_until_listening(self, timeout: float = 5.0) -> bool:
        """Block until the socket is bound. False on timeout or bind failure."""
        return self._listening.wait(timeout) and self._error is None

    def stop(self, timeout: float = 2.0) -> None:
        thread = self._thread
        if thread is None:
            return
        self._stop_requested = True
        loop, stop_event = self._loop, self._stop_event
        if loop is not None and stop_event is not None:
            try:
                loop.call_soon_threadsafe(stop_event.set)
            except RuntimeError:
                # Loop already closed
                pass
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("%s Push server thread did not exit within %.1fs", TAG_PUSH, timeout)
        self._thread = None
        logger.info("%s Push server stopped", TAG_LIFECYCLE)

    # ------------------------------------------------------------------
    # Background thread
    # ------------------------------------------------------------------

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        self._loop = loop
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._serve())
        except OSError as e:
            self._error = e
            logger.error("%s Cannot listen on %s:%d: %s", TAG_PUSH, self._host, self._port, e)
        finally:
            self._listening.set()
            self._loop = None
            self._stop_event = None
            loop.close()

    async def _serve(self) -> None:
        self._stop_event = asyncio.Event()
        if self._stop_requested:
            return
        server = await asyncio.start_server(
            self._handle_client, self._host, self._port, limit=PUSH_MAX_LINE_BYTES
        )
        self._bound_port = server.sockets[0].getsockname()[1]
        logger.info("%s Listening on %s:%d", TAG_PUSH, self._host, self._bound_port)
        self._listening.set()
        try:
            await self._stop_event.wait()
        finally:
            server.close()
            for writer in list(self._writers):
                writer.close()
            await server.wait_closed()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info('peername')
        logger.debug("%s Client connected: %s", TAG_PUSH, peer)
        self._writers.add(writer)
        try:
            while True:
                try:
                    line = await reader.readline()
                except ValueError:
                    self._emit_invalid("", f"line exceeds {PUSH_MAX_LINE_BYTES} bytes")
                    break
                if not line:
                    break
                text = line.decode('utf-8', errors='replace').strip()
                if text:
                    self._dispatch_line(text)
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            self._writers.discard(writer)
            writer.close()
            logger.debug("%s Client disconnected: %s", TAG_PUSH, peer)

    def _dispatch_line(self, text: str) -> None:
        self._lines_received += 1
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            self._emit_invalid(text, f"invalid JSON: {e.msg}")
            return
        if is_verbose_logging():
            logger.debug("%s Received %r", TAG_PUSH, payload)
        ThreadManager.run_on_ui_thread(self.payload_received.emit, payload)

    def _emit_invalid(self, text: str, reason: str) -> None:
        ThreadManager.run_on_ui_thread(self.payload_invalid.emit, text, reason)


class PushChannel(SourceChannel):
    """
    Validates push payloads and submits their references.

    Works with or without a ``PushServer``: hosts that already have a
    messaging transport can call ``deliver`` directly on the UI thread.
    Payloads arriving while the channel is stopped are dropped.
    """

    def __init__(self, server: Optional[PushServer] = None, channel_id: str = "controller"):
        super().__init__(channel_id, ChannelType.PUSH)
        self._server = server
        self._active = False
        self._delivered = 0
        self._malformed = 0
        if server is not None:
            server.payload_received.connect(self.deliver)
            server.payload_invalid.connect(self._on_invalid)

    @property
    def server(self) -> Optional[PushServer]:
        return self._server

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        if self._server is not None:
            self._server.start()

    def stop(self) -> None:
        self._active = False
        if self._server is not None:
            self._server.stop()

    @property
    def is_active(self) -> bool:
        return self._active

    def deliver(self, payload: Any) -> bool:
        """
        Handle one payload from the external controller.

        Returns:
            True if a reference was submitted and entered the pipeline
        """
        if not self._active:
            self._logger.debug("%s Channel stopped, dropping payload", TAG_PUSH)
            return False
        try:
            ref = parse_push_payload(payload)
        except MalformedCandidate as e:
            self._malformed += 1
            self._report_malformed(e)
            return False
        self._delivered += 1
        self._logger.info("%s Push update: %s", TAG_PUSH, ref)
        return self._emit(ref)

    def _on_invalid(self, text: str, reason: str) -> None:
        if not self._active:
            return
        self._malformed += 1
        self._report_malformed(MalformedCandidate(reason, text))

    def get_stats(self) -> dict:
        stats = super().get_stats()
        stats.update({'delivered': self._delivered, 'malformed': self._malformed})
        return stats
