"""
Radar Image Receiver - Main Entry Point

Shows one image at a time and replaces it with a radar-style reveal
whenever the periodic poller or an external controller supplies a new one.
"""
import argparse
import sys
from dataclasses import dataclass
from typing import List, Optional

from PySide6.QtCore import Qt
from PySide6.QtGui import QImageReader
from PySide6.QtWidgets import QApplication

from core.errors import ConfigError
from core.events import EventSystem, EventType
from core.logging.logger import get_logger, setup_logging
from core.settings import ReceiverConfig, SettingsManager
from core.threading import ThreadManager
from engine import (
    DoubleBuffer,
    EventBusObserver,
    LoggingObserver,
    ObserverGroup,
    QtImagePreloader,
    QtScheduler,
    UpdateController,
)
from rendering import RadarDisplayWidget, RadarRenderer
from sources import PeriodicSource, PushChannel, PushServer
from versioning import APP_DESCRIPTION, APP_EXE_NAME, APP_NAME, APP_VERSION

logger = get_logger(__name__)

EXIT_CONFIG_ERROR = 2
WINDOWED_SIZE = (800, 450)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=APP_EXE_NAME, description=APP_DESCRIPTION)
    parser.add_argument('--version', action='version', version=f"%(prog)s {APP_VERSION}")
    parser.add_argument('-d', '--debug', action='store_true', help="enable debug logging and console output")
    parser.add_argument('-v', '--verbose', action='store_true', help="log every tick and state change")
    parser.add_argument('--source', help="default image source polled every interval")
    parser.add_argument('--interval-ms', type=int, help="refresh interval in milliseconds")
    parser.add_argument('--reveal-ms', type=int, help="reveal duration in milliseconds")
    parser.add_argument('--push-port', type=int,
                        help="listen for {\"imageSource\": ...} lines on this TCP port")
    parser.add_argument('--no-cache-bust', action='store_true',
                        help="poll the default source without a random query parameter")
    parser.add_argument('--windowed', action='store_true', help="run in a window instead of full screen")
    return parser


def load_config(settings: SettingsManager, args: argparse.Namespace) -> ReceiverConfig:
    """
    Stored settings with command-line overrides applied for this session.

    Raises:
        ConfigError: If any resulting value is invalid
    """
    config = ReceiverConfig.from_settings(settings)
    return config.with_overrides(
        default_source=args.source,
        refresh_interval_ms=args.interval_ms,
        reveal_duration_ms=args.reveal_ms,
        push_port=args.push_port,
        push_enabled=True if args.push_port is not None else None,
        cache_bust=False if args.no_cache_bust else None,
        fullscreen=False if args.windowed else None,
    )


@dataclass
class ReceiverRuntime:
    """Everything wired together for one run."""
    controller: UpdateController
    widget: RadarDisplayWidget
    scheduler: QtScheduler
    verifier: QtImagePreloader
    periodic: PeriodicSource
    push: Optional[PushChannel]
    threads: ThreadManager
    events: EventSystem

    def shutdown(self) -> None:
        self.controller.stop()
        self.verifier.shutdown()
        self.threads.shutdown(wait=False)
        self.events.publish(EventType.RECEIVER_STOPPED, source=self.controller)


def build_runtime(config: ReceiverConfig, events: Optional[EventSystem] = None) -> ReceiverRuntime:
    """Construct the controller and its collaborators from ``config``."""
    events = events or EventSystem()
    threads = ThreadManager()
    buffer = DoubleBuffer()

    widget = RadarDisplayWidget(
        buffer,
        reveal_duration_ms=config.reveal_duration_ms,
        radar_overlay=config.radar_overlay,
    )
    scheduler = QtScheduler(config.refresh_interval_ms)
    verifier = QtImagePreloader(
        threads,
        timeout_s=config.preload_timeout_s,
        max_bytes=config.preload_max_bytes,
    )

    periodic = PeriodicSource(scheduler, config.default_source, cache_bust=config.cache_bust)
    channels: List = [periodic]
    push = None
    if config.push_enabled:
        push = PushChannel(PushServer(config.push_host, config.push_port))
        channels.append(push)

    observer = ObserverGroup([LoggingObserver(), EventBusObserver(events)])
    controller = UpdateController(
        RadarRenderer(widget),
        verifier,
        scheduler,
        config=config,
        channels=channels,
        observer=observer,
        buffer=buffer,
    )
    controller.state_changed.connect(
        lambda state: events.publish(EventType.STATE_CHANGED, data={'state': state}, source=controller)
    )
    scheduler.setParent(controller)
    return ReceiverRuntime(controller, widget, scheduler, verifier, periodic, push, threads, events)


def bind_live_settings(settings: SettingsManager, runtime: ReceiverRuntime) -> None:
    """Apply setting changes made while running."""

    def _refresh_interval(new, _old):
        try:
            runtime.controller.set_refresh_interval_ms(SettingsManager.to_int(new, 0))
        except ConfigError as e:
            logger.warning("Ignoring refresh interval change: %s", e)

    def _reveal_duration(new, _old):
        try:
            runtime.controller.set_reveal_duration_ms(SettingsManager.to_int(new, 0))
        except ConfigError as e:
            logger.warning("Ignoring reveal duration change: %s", e)
            return
        runtime.widget.set_reveal_duration_ms(runtime.controller.reveal_duration_ms)

    settings.on_changed('timing.refresh_interval_ms', _refresh_interval)
    settings.on_changed('timing.reveal_duration_ms', _reveal_duration)
    settings.on_changed('sources.default', lambda new, _old: runtime.periodic.set_default_source(new))
    settings.on_changed('sources.cache_bust',
                        lambda new, _old: runtime.periodic.set_cache_bust(SettingsManager.to_bool(new, True)))
    settings.on_changed('display.radar_overlay',
                        lambda new, _old: runtime.widget.set_radar_overlay(SettingsManager.to_bool(new, True)))

    settings.settings_changed.connect(
        lambda key, value: runtime.events.publish(
            EventType.SETTINGS_CHANGED, data={'key': key, 'value': value}, source=settings
        )
    )


def run_receiver(app: QApplication, config: ReceiverConfig, settings: SettingsManager) -> int:
    """
    Run the receiver until the window is closed or an exit key is pressed.

    Returns:
        Exit code
    """
    runtime = build_runtime(config)
    bind_live_settings(settings, runtime)

    runtime.widget.exit_requested.connect(app.quit)
    app.aboutToQuit.connect(runtime.shutdown)

    if config.fullscreen:
        runtime.widget.showFullScreen()
    else:
        runtime.widget.resize(*WINDOWED_SIZE)
        runtime.widget.showNormal()

    runtime.controller.start()
    runtime.events.publish(EventType.RECEIVER_STARTED, data={'config': config}, source=runtime.controller)
    logger.info("Receiver running (source=%s, push=%s)", config.default_source,
                f"{config.push_host}:{config.push_port}" if config.push_enabled else "off")
    return app.exec()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the receiver application."""
    args = build_arg_parser().parse_args(argv)
    setup_logging(debug=args.debug, verbose=args.verbose)

    logger.info("=" * 60)
    logger.info("%s %s Starting", APP_NAME, APP_VERSION)
    logger.info("=" * 60)

    QApplication.setHighDpiScaleFactorRoundingPolicy(
        Qt.HighDpiScaleFactorRoundingPolicy.PassThrough
    )
    app = QApplication.instance() or QApplication(sys.argv[:1])
    app.setApplicationName(APP_EXE_NAME)
    app.setOrganizationName(APP_NAME)
    app.setApplicationVersion(APP_VERSION)

    # Large radar composites exceed Qt's default 256MB decode limit.
    QImageReader.setAllocationLimit(1024)

    settings = SettingsManager()
    try:
        config = load_config(settings, args)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        print(f"{APP_EXE_NAME}: invalid configuration: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    exit_code = 0
    try:
        exit_code = run_receiver(app, config, settings)
    except Exception as e:
        logger.exception("Fatal error in main: %s", e)
        exit_code = 1
    finally:
        settings.save()

    logger.info("=" * 60)
    logger.info("%s Exiting (code=%s)", APP_NAME, exit_code)
    logger.info("=" * 60)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
