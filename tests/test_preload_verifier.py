"""
Tests for QtImagePreloader (fetch + decode on the IO pool).
"""
import io

import pytest
import requests
from PIL import Image
from PySide6.QtCore import QThread
from PySide6.QtGui import QImage

from engine.preload_verifier import CancellationToken, Failed, QtImagePreloader, Verified
from engine.update_types import ImageReference


def _png_bytes(size=(8, 6), color="red") -> bytes:
    bio = io.BytesIO()
    Image.new("RGB", size, color).save(bio, "PNG")
    return bio.getvalue()


class FakeResponse:
    def __init__(self, body=b"", status=200, headers=None, on_chunk=None):
        self.body = body
        self.status = status
        self.headers = headers or {}
        self.on_chunk = on_chunk

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} Client Error")

    def iter_content(self, chunk_size=1):
        for offset in range(0, len(self.body), chunk_size):
            if self.on_chunk is not None:
                self.on_chunk(offset)
            yield self.body[offset:offset + chunk_size]


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.headers = {}
        self.requested = []
        self.closed = False

    def get(self, url, timeout=None, stream=False):
        self.requested.append((url, timeout, stream))
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


@pytest.fixture
def run_verify(qt_app, qtbot, thread_manager):
    """Run one verify and return (result, ran_on_ui_thread)."""

    def _run(locator, token=None, **preloader_kwargs):
        preloader = QtImagePreloader(thread_manager, **preloader_kwargs)
        results = []

        def on_done(result):
            results.append((result, QThread.currentThread() == qt_app.thread()))

        preloader.verify(ImageReference(locator), token or CancellationToken(), on_done)
        qtbot.waitUntil(lambda: len(results) == 1, timeout=5000)
        qtbot.wait(20)
        assert len(results) == 1, "on_done must run exactly once"
        return results[0]

    return _run


def test_local_png_verifies_on_ui_thread(run_verify, temp_image):
    result, on_ui = run_verify(str(temp_image))
    assert on_ui
    assert isinstance(result, Verified)
    assert result.ok
    assert isinstance(result.handle, QImage)
    assert result.handle.width() == 100
    assert result.reference == ImageReference(str(temp_image))


def test_file_url(run_verify, temp_image):
    result, _ = run_verify(temp_image.as_uri())
    assert isinstance(result, Verified)


def test_jpeg_written_by_pillow(run_verify, tmp_path):
    path = tmp_path / "radar.jpg"
    Image.new("RGB", (32, 18), (0, 128, 255)).save(path, "JPEG")
    result, _ = run_verify(str(path))
    assert isinstance(result, Verified)
    assert (result.handle.width(), result.handle.height()) == (32, 18)


def test_missing_file_fails(run_verify, tmp_path):
    result, on_ui = run_verify(str(tmp_path / "nope.png"))
    assert on_ui
    assert isinstance(result, Failed)
    assert not result.ok
    assert result.reason == "file not found"


def test_undecodable_file_fails(run_verify, tmp_path):
    path = tmp_path / "broken.png"
    path.write_bytes(b"definitely not an image")
    result, _ = run_verify(str(path))
    assert isinstance(result, Failed)
    assert result.reason == "decode failed"


def test_truncated_image_fails(run_verify, tmp_path):
    path = tmp_path / "half.png"
    path.write_bytes(_png_bytes((64, 64))[:40])
    result, _ = run_verify(str(path))
    assert isinstance(result, Failed)


def test_oversize_file_fails(run_verify, temp_image):
    result, _ = run_verify(str(temp_image), max_bytes=16)
    assert isinstance(result, Failed)
    assert result.reason.startswith("too large")


def test_unsupported_scheme_fails(run_verify):
    result, _ = run_verify("ftp://example.com/a.png")
    assert isinstance(result, Failed)
    assert "unsupported scheme" in result.reason


def test_cancelled_token_yields_cancelled(run_verify, temp_image):
    token = CancellationToken()
    token.cancel()
    result, _ = run_verify(str(temp_image), token=token)
    assert isinstance(result, Failed)
    assert result.cancelled


class TestHttp:

    def test_success(self, run_verify):
        session = FakeSession(FakeResponse(_png_bytes()))
        result, on_ui = run_verify("https://example.com/img.png", session=session, timeout_s=3.0)
        assert on_ui
        assert isinstance(result, Verified)
        assert session.requested == [("https://example.com/img.png", 3.0, True)]
        assert 'User-Agent' in session.headers

    def test_http_error(self, run_verify):
        session = FakeSession(FakeResponse(b"", status=404))
        result, _ = run_verify("https://example.com/missing.png", session=session)
        assert isinstance(result, Failed)
        assert result.reason.startswith("network error")

    def test_connection_error(self, run_verify):
        session = FakeSession(error=requests.ConnectionError("refused"))
        result, _ = run_verify("http://127.0.0.1:9/x.png", session=session)
        assert isinstance(result, Failed)
        assert "refused" in result.reason

    def test_declared_length_too_large(self, run_verify):
        response = FakeResponse(_png_bytes(), headers={'Content-Length': str(10 ** 9)})
        result, _ = run_verify("https://example.com/huge.png", session=FakeSession(response), max_bytes=1024)
        assert isinstance(result, Failed)
        assert result.reason.startswith("too large")

    def test_cancel_mid_stream(self, run_verify):
        token = CancellationToken()
        response = FakeResponse(b"x" * 200_000, on_chunk=lambda offset: token.cancel())
        result, _ = run_verify("https://example.com/slow.png", token=token, session=FakeSession(response))
        assert isinstance(result, Failed)
        assert result.cancelled

    def test_shutdown_closes_session(self, thread_manager):
        session = FakeSession()
        QtImagePreloader(thread_manager, session=session).shutdown()
        assert session.closed
        assert not thread_manager.is_shutdown
