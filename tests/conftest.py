"""
Shared pytest fixtures for receiver tests.
"""
import os
import sys
from types import SimpleNamespace

import pytest

# Run Qt headless when no display is available.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtWidgets import QApplication

from tests._receiver_test_utils import (
    ManualScheduler,
    ManualVerifier,
    RecordingObserver,
    RecordingRenderer,
)


@pytest.fixture(scope='session')
def qt_app():
    """Create QApplication instance for tests."""
    app = QApplication.instance()
    if app is None:
        app = QApplication(sys.argv)
    yield app
    # Don't quit - causes issues with pytest


@pytest.fixture
def settings_manager(qt_app, tmp_path):
    """SettingsManager backed by a throwaway INI file."""
    from core.settings import SettingsManager
    manager = SettingsManager(ini_path=tmp_path / "receiver.ini")
    yield manager
    manager.clear()


@pytest.fixture
def thread_manager(qt_app):
    """Create ThreadManager instance for testing."""
    from core.threading.manager import ThreadManager
    manager = ThreadManager()
    yield manager
    manager.shutdown(wait=True)


@pytest.fixture
def event_system():
    """Create EventSystem instance for testing."""
    from core.events import EventSystem
    system = EventSystem()
    yield system
    system.clear()


@pytest.fixture
def temp_image(tmp_path):
    """Create a temporary test image."""
    from PySide6.QtGui import QImage, QColor
    from PySide6.QtCore import QSize

    image = QImage(QSize(100, 100), QImage.Format.Format_RGB32)
    image.fill(QColor(255, 0, 0))

    image_path = tmp_path / "test_image.png"
    image.save(str(image_path))

    return image_path


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def verifier():
    return ManualVerifier()


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def make_controller(qt_app, scheduler, verifier, renderer, observer):
    """Factory for a started UpdateController wired to manual collaborators."""
    from core.settings import ReceiverConfig
    from engine.update_controller import UpdateController

    created = []

    def _make(config=None, channels=(), start=True, **overrides):
        parts = dict(renderer=renderer, verifier=verifier, scheduler=scheduler, observer=observer)
        parts.update(overrides)
        controller = UpdateController(
            parts['renderer'],
            parts['verifier'],
            parts['scheduler'],
            config=config or ReceiverConfig(),
            channels=channels,
            observer=parts['observer'],
        )
        if start:
            controller.start()
        created.append(controller)
        return controller

    yield _make
    for controller in created:
        controller.stop()


@pytest.fixture
def rig(make_controller, scheduler, verifier, renderer, observer):
    """A started controller plus its manual collaborators."""
    controller = make_controller()
    return SimpleNamespace(
        controller=controller,
        scheduler=scheduler,
        verifier=verifier,
        renderer=renderer,
        observer=observer,
    )
