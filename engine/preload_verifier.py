"""
Preload verification of candidate images.

A candidate is fetched and decoded off screen before the controller commits
to showing it. Nothing here touches the buffers or the display; the result
is handed back to the UI thread as ``Verified`` or ``Failed``.
"""
from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union
from urllib.parse import urlparse
from urllib.request import url2pathname

import requests
from PySide6.QtGui import QImage

from core.constants.timing import (
    PRELOAD_CHUNK_BYTES,
    PRELOAD_MAX_BYTES_DEFAULT,
    PRELOAD_TIMEOUT_DEFAULT_S,
)
from core.errors import PreloadFailure
from core.logging.logger import get_logger, is_perf_metrics_enabled
from core.logging.tags import TAG_PERF, TAG_PRELOAD
from core.threading.manager import TaskResult, ThreadManager
from engine.update_types import ImageReference

logger = get_logger(__name__)

CANCELLED_REASON = "cancelled"

_HTTP_HEADERS = {'User-Agent': 'Mozilla/5.0 (X11; Linux x86_64) RadarImageReceiver'}


class CancellationToken:
    """Thread-safe flag handed to a verify call; set once, never cleared."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise PreloadFailure(CANCELLED_REASON)


@dataclass(frozen=True)
class Verified:
    """The image is fully loaded; ``handle`` is usable by the renderer."""
    reference: ImageReference
    handle: Any
    ok = True


@dataclass(frozen=True)
class Failed:
    """The image could not be loaded (network, decode or cancellation)."""
    reference: ImageReference
    reason: str
    ok = False

    @property
    def cancelled(self) -> bool:
        return self.reason == CANCELLED_REASON


PreloadResult = Union[Verified, Failed]
PreloadCallback = Callable[[PreloadResult], None]


class PreloadVerifier(ABC):
    """
    Asynchronously confirms that a reference is loadable.

    ``verify`` must return immediately and later invoke ``on_done`` exactly
    once, on the UI thread. A cancelled ``token`` yields ``Failed(ref,
    "cancelled")`` as soon as the implementation notices it.
    """

    @abstractmethod
    def verify(self, ref: ImageReference, token: CancellationToken, on_done: PreloadCallback) -> None:
        pass

    def shutdown(self) -> None:
        """Release worker resources."""


class QtImagePreloader(PreloadVerifier):
    """
    Fetches on the IO pool and decodes into a QImage.

    Supports http(s) URLs via requests, ``file://`` URLs and plain local
    paths. The body is streamed in chunks so a cancelled token or an
    oversize body stops the transfer early.
    """

    def __init__(
        self,
        thread_manager: Optional[ThreadManager] = None,
        timeout_s: float = PRELOAD_TIMEOUT_DEFAULT_S,
        max_bytes: int = PRELOAD_MAX_BYTES_DEFAULT,
        session: Optional[requests.Session] = None,
    ):
        self._owns_threads = thread_manager is None
        self._threads = thread_manager or ThreadManager()
        self._timeout_s = float(timeout_s)
        self._max_bytes = int(max_bytes)
        self._session = session or requests.Session()
        self._session.headers.update(_HTTP_HEADERS)

    def verify(self, ref: ImageReference, token: CancellationToken, on_done: PreloadCallback) -> None:
        def _on_task_done(task: TaskResult) -> None:
            if task.success:
                result = task.result
            else:
                logger.error("%s Unexpected preload error for %s: %s", TAG_PRELOAD, ref, task.error)
                result = Failed(ref, f"unexpected error: {task.error}")
            if token.cancelled and result.ok:
                result = Failed(ref, CANCELLED_REASON)
            ThreadManager.run_on_ui_thread(on_done, result)

        self._threads.submit_io_task(self._load, ref, token, callback=_on_task_done)
        logger.debug("%s Verifying %s", TAG_PRELOAD, ref)

    def shutdown(self) -> None:
        self._session.close()
        if self._owns_threads:
            self._threads.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Worker-thread side
    # ------------------------------------------------------------------

    def _load(self, ref: ImageReference, token: CancellationToken) -> PreloadResult:
        start = time.monotonic()
        try:
            token.raise_if_cancelled()
            data = self._fetch(ref.locator, token)
            token.raise_if_cancelled()
            image = QImage()
            if not image.loadFromData(data) or image.isNull():
                raise PreloadFailure("decode failed", ref.locator)
        except PreloadFailure as e:
            return Failed(ref, e.reason)

        if is_perf_metrics_enabled():
            logger.debug(
                "%s %s Verified %s: %dx%d, %d bytes in %.1fms",
                TAG_PERF, TAG_PRELOAD, ref, image.width(), image.height(), len(data),
                (time.monotonic() - start) * 1000.0,
            )
        return Verified(ref, image)

    def _fetch(self, locator: str, token: CancellationToken) -> bytes:
        parsed = urlparse(locator)
        scheme = parsed.scheme.lower()
        if scheme in ("http", "https"):
            return self._fetch_http(locator, token)
        if scheme == "file":
            return self._read_file(Path(url2pathname(parsed.path)), token)
        # Bare paths, including Windows drive letters parsed as a scheme.
        if scheme == "" or len(scheme) == 1:
            return self._read_file(Path(locator), token)
        raise PreloadFailure(f"unsupported scheme: {scheme}", locator)

    def _fetch_http(self, url: str, token: CancellationToken) -> bytes:
        try:
            with self._session.get(url, timeout=self._timeout_s, stream=True) as response:
                response.raise_for_status()
                declared = response.headers.get('Content-Length')
                if declared and declared.isdigit() and int(declared) > self._max_bytes:
                    raise PreloadFailure(f"too large ({declared} bytes)", url)
                buf = bytearray()
                for chunk in response.iter_content(chunk_size=PRELOAD_CHUNK_BYTES):
                    token.raise_if_cancelled()
                    buf.extend(chunk)
                    if len(buf) > self._max_bytes:
                        raise PreloadFailure(f"too large (>{self._max_bytes} bytes)", url)
                return bytes(buf)
        except requests.RequestException as e:
            raise PreloadFailure(f"network error: {e}", url) from e

    def _read_file(self, path: Path, token: CancellationToken) -> bytes:
        if not path.is_file():
            raise PreloadFailure("file not found", str(path))
        buf = bytearray()
        try:
            with open(path, 'rb') as f:
                while True:
                    token.raise_if_cancelled()
                    chunk = f.read(PRELOAD_CHUNK_BYTES)
                    if not chunk:
                        break
                    buf.extend(chunk)
                    if len(buf) > self._max_bytes:
                        raise PreloadFailure(f"too large (>{self._max_bytes} bytes)", str(path))
        except OSError as e:
            raise PreloadFailure(f"read error: {e}", str(path)) from e
        return bytes(buf)
