"""
Centralized logging configuration for the image receiver.

Uses rotating file handler with logs stored in logs/ directory.
Includes colored console output for debug mode.
"""
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


_VERBOSE: bool = False
_PERF_METRICS_ENABLED: bool = True
# Base directory for logs. Initialised to the project root and updated by
# setup_logging() for frozen builds so get_log_dir() always points at the
# effective runtime location.
_BASE_DIR: Path = Path(__file__).parent.parent.parent

_env_perf = os.getenv("RECEIVER_PERF_METRICS")
if _env_perf is not None:
    if _env_perf.strip().lower() in ("0", "false", "off", "no"):
        _PERF_METRICS_ENABLED = False
    elif _env_perf.strip().lower() in ("1", "true", "on", "yes"):
        _PERF_METRICS_ENABLED = True


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to console output."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',       # Cyan
        'INFO': '\033[32m',        # Green
        'WARNING': '\033[33m',     # Yellow
        'ERROR': '\033[31m',       # Red
        'CRITICAL': '\033[35m',    # Magenta
    }
    FALLBACK_COLOR = '\033[38;5;208m'
    TRANSITION_COLOR = '\033[38;5;135m'   # Purple for reveal diagnostics
    RESET = '\033[0m'
    BOLD = '\033[1m'

    def format(self, record):
        original_levelname = record.levelname
        original_msg = record.msg

        msg_text = str(record.msg)
        is_fallback = '[FALLBACK]' in msg_text
        is_transition = '[TRANSITION]' in msg_text

        color = None
        if is_fallback:
            # Fallback paths stand out regardless of level.
            color = self.FALLBACK_COLOR
        elif is_transition and record.levelno < logging.WARNING:
            color = self.TRANSITION_COLOR
        elif record.levelname in self.COLORS:
            color = self.COLORS[record.levelname]

        if color is not None:
            record.levelname = f"{self.BOLD}{color}{record.levelname}{self.RESET}"
            message = super().format(record)
            colored_message = f"{color}{message}{self.RESET}"
            record.levelname = original_levelname
            record.msg = original_msg
            return colored_message

        record.levelname = original_levelname
        record.msg = original_msg
        return super().format(record)


class SuppressingStreamHandler(logging.StreamHandler):
    """Stream handler that suppresses consecutive duplicate sources.

    Repeated DEBUG/INFO lines from the same logger/level are collapsed into a
    single summary line like "[N Suppressed: CHECK LOG]" while file logs
    remain unaffected. Periodic polling makes this the common case.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._last_name: Optional[str] = None
        self._last_level: Optional[int] = None
        self._suppress_count: int = 0
        self._last_record: Optional[logging.LogRecord] = None

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._emit_with_suppression(record)
        except Exception:
            self.handleError(record)

    def _emit_with_suppression(self, record: logging.LogRecord) -> None:
        if record.levelno >= logging.WARNING:
            self._flush_summary()
            self._emit_record(record)
            self._reset_tracking()
            return

        name = record.name
        level = record.levelno

        if self._last_name is None:
            self._emit_record(record)
            self._remember(record)
            return

        if name == self._last_name and level == self._last_level:
            self._suppress_count += 1
            if self._last_record is None:
                self._last_record = record
            return

        self._flush_summary()
        self._emit_record(record)
        self._remember(record)

    def _remember(self, record: logging.LogRecord) -> None:
        self._last_name = record.name
        self._last_level = record.levelno
        self._suppress_count = 0
        self._last_record = record

    def _reset_tracking(self) -> None:
        self._last_name = None
        self._last_level = None
        self._suppress_count = 0
        self._last_record = None

    def _emit_record(self, record: logging.LogRecord) -> None:
        """Emit a single record to the underlying stream with Unicode-safe fallback.

        File handlers always receive the original record; this handler is only
        responsible for console output. When the console encoding cannot
        represent some characters we degrade the console line using
        replacement characters instead of raising a logging error.
        """
        try:
            msg = self.format(record)
            stream = self.stream
            if stream is None:
                return
            text = msg + self.terminator
            try:
                stream.write(text)
            except UnicodeEncodeError:
                encoding = getattr(stream, "encoding", None) or "ascii"
                stream.write(text.encode(encoding, errors="replace").decode(encoding, errors="replace"))
            self.flush()
        except Exception:
            self.handleError(record)

    def _flush_summary(self) -> None:
        if self._suppress_count <= 0 or self._last_record is None:
            self._suppress_count = 0
            self._last_record = None
            return

        last = self._last_record
        summary = logging.LogRecord(
            last.name,
            last.levelno,
            last.pathname,
            last.lineno,
            f"[{self._suppress_count} Suppressed: CHECK LOG]",
            args=None,
            exc_info=None,
        )
        summary.created = last.created
        summary.msecs = last.msecs
        summary.relativeCreated = last.relativeCreated
        summary.thread = last.thread
        summary.threadName = last.threadName
        summary.process = last.process
        summary.processName = last.processName
        self._emit_record(summary)

        self._suppress_count = 0
        self._last_record = None

    def close(self) -> None:
        try:
            self._flush_summary()
        finally:
            super().close()


def get_log_dir() -> Path:
    """Return the directory used for log files.

    setup_logging() should be called once at startup so that _BASE_DIR is
    updated for frozen builds and the returned path matches the location used
    by the active RotatingFileHandler.
    """
    return _BASE_DIR / "logs"


def setup_logging(debug: bool = False, verbose: bool = False, log_dir: Optional[Path] = None) -> None:
    """
    Configure application logging with file rotation.

    Args:
        debug: If True, set log level to DEBUG and enable console output.
        verbose: When True, enables additional high-volume debug logs
            (every poll tick, every renderer call). Verbose mode also implies
            debug-level logging.
        log_dir: Optional override for the log directory.
    """
    global _VERBOSE, _BASE_DIR

    debug_enabled = debug or verbose

    # Frozen builds keep logs/ next to the executable.
    if getattr(sys, "frozen", False):
        exe_path = Path(getattr(sys, "executable", "") or "")
        if exe_path.exists():
            _BASE_DIR = exe_path.parent

    target_dir = log_dir or get_log_dir()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_file = target_dir / "receiver.log"

    level = logging.DEBUG if debug_enabled else logging.INFO

    formatter = logging.Formatter(
        '%(asctime)s - %(name)-30s - %(levelname)-8s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # File handler with rotation (1MB max, keep 5 backups)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)

    console_handler = SuppressingStreamHandler(sys.stdout)
    console_format = '%(asctime)s - %(name)-30s - %(levelname)-8s - %(message)s'
    if debug_enabled and sys.stdout.isatty():
        console_handler.setFormatter(ColoredFormatter(console_format, datefmt='%H:%M:%S'))
    else:
        console_handler.setFormatter(logging.Formatter(console_format, datefmt='%H:%M:%S'))
    console_handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(file_handler)

    if debug_enabled:
        root_logger.addHandler(console_handler)

    # HTTP connection pools and asyncio internals only show up when
    # explicit verbose logging is requested.
    noisy_level = logging.DEBUG if verbose else logging.INFO
    for name in ("urllib3", "urllib3.connectionpool", "asyncio"):
        logging.getLogger(name).setLevel(noisy_level)

    _VERBOSE = bool(verbose)

    root_logger.info("=" * 60)
    root_logger.info(
        "Receiver logging initialized (debug=%s, verbose=%s)",
        debug_enabled,
        _VERBOSE,
    )
    root_logger.info("=" * 60)


_SHORT_NAME_OVERRIDES = {
    "engine.update_controller": "engine.controller",
    "engine.source_ingestion": "engine.ingestion",
    "engine.preload_verifier": "engine.preload",
    "rendering.radar_display": "rendering.radar",
}


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with optional short-name overrides for noisy modules."""
    actual = _SHORT_NAME_OVERRIDES.get(name, name)
    return logging.getLogger(actual)


def is_verbose_logging() -> bool:
    """Return True when verbose debug logging is enabled globally."""
    return _VERBOSE


def set_verbose_logging(enabled: bool) -> None:
    """Toggle verbose logging without reconfiguring handlers."""
    global _VERBOSE
    _VERBOSE = bool(enabled)


def is_perf_metrics_enabled() -> bool:
    """Return True when PERF metrics/telemetry are enabled globally."""
    return _PERF_METRICS_ENABLED
