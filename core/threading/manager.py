"""
Thread Manager for the image receiver.

Centralized thread management with a pool for IO work (image fetch/decode)
and helpers for dispatching results back to the Qt UI thread.
"""
import threading
import time
from concurrent.futures import ThreadPoolExecutor, Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional
from PySide6.QtCore import QObject, QThread, QCoreApplication, Signal
from core.logging.logger import get_logger, is_verbose_logging

logger = get_logger(__name__)


# UI-thread invoker for reliable main thread dispatch
class _UiInvoker(QObject):
    invoke = Signal(object, object, object)

    def __init__(self):
        super().__init__()
        self.invoke.connect(self._on_invoke)

    def _on_invoke(self, func, args, kwargs):
        try:
            func(*args, **(kwargs or {}))
        except Exception as e:
            logger.exception("UI invoker callable raised: %s", e)


_ui_invoker: Optional[_UiInvoker] = None
_ui_invoker_lock = threading.Lock()


def _ensure_ui_invoker() -> Optional[_UiInvoker]:
    global _ui_invoker
    app = QCoreApplication.instance()
    if app is None:
        logger.error("run_on_ui_thread: No QCoreApplication instance")
        return None
    with _ui_invoker_lock:
        if _ui_invoker is None:
            inv = _UiInvoker()
            inv.moveToThread(app.thread())
            _ui_invoker = inv
        return _ui_invoker


class ThreadPoolType(Enum):
    """Thread pool types for receiver workloads"""
    IO = "io"               # Network fetch, file reads, decode


@dataclass
class TaskResult:
    """Container for task execution results"""
    success: bool
    result: Any = None
    error: Optional[Exception] = None
    execution_time: float = 0.0
    task_id: Optional[str] = None


class ThreadManager:
    """
    Centralized thread manager.

    Features:
    - IO thread pool for blocking fetch/decode work
    - Result callbacks (invoked on the worker thread)
    - UI thread dispatch utilities
    - Per-pool statistics
    """

    def __init__(self, config: Optional[Dict[ThreadPoolType, int]] = None):
        """
        Initialize thread manager.

        Args:
            config: Dictionary mapping ThreadPoolType to max_workers count
        """
        self._shutdown = False
        default_config = {
            ThreadPoolType.IO: 2,
        }
        self.config = {**default_config, **(config or {})}

        self._executors: Dict[ThreadPoolType, ThreadPoolExecutor] = {}
        self._active: Dict[str, Future] = {}
        self._stats = {pool_type: {'submitted': 0, 'completed': 0, 'failed': 0}
                       for pool_type in ThreadPoolType}
        self._stats_lock = threading.Lock()
        self._task_seq = 0

        for pool_type, max_workers in self.config.items():
            self._executors[pool_type] = ThreadPoolExecutor(
                max_workers=max_workers,
                thread_name_prefix=f"{pool_type.value}_pool",
            )
            logger.debug("Initialized %s pool with %d workers", pool_type.value, max_workers)

        # Create the invoker while on the UI thread so worker threads never
        # construct QObjects.
        app = QCoreApplication.instance()
        if app is not None and QThread.currentThread() == app.thread():
            _ensure_ui_invoker()

    def submit_task(self, pool_type: ThreadPoolType, func: Callable, *args,
                    task_id: Optional[str] = None,
                    callback: Optional[Callable[[TaskResult], None]] = None, **kwargs) -> str:
        """
        Submit a task to the specified thread pool.

        Args:
            pool_type: Which thread pool to use
            func: Function to execute
            *args: Positional arguments for func
            task_id: Optional unique identifier
            callback: Optional callback for result, called on the worker thread
            **kwargs: Keyword arguments for func

        Returns:
            str: Task ID for tracking

        Raises:
            RuntimeError: If the manager has been shut down
        """
        if self._shutdown:
            raise RuntimeError("Thread manager is shut down")

        with self._stats_lock:
            self._task_seq += 1
            task_id = task_id or f"{pool_type.value}_task_{self._task_seq}"

        def wrapped_func():
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                task_result = TaskResult(
                    success=True,
                    result=result,
                    execution_time=time.time() - start_time,
                    task_id=task_id,
                )
                self._bump(pool_type, 'completed')
            except Exception as e:
                task_result = TaskResult(
                    success=False,
                    error=e,
                    execution_time=time.time() - start_time,
                    task_id=task_id,
                )
                logger.error("Task %s failed: %s", task_id, e)
                self._bump(pool_type, 'failed')

            if callback:
                try:
                    callback(task_result)
                except Exception as e:
                    logger.error("Callback for task %s failed: %s", task_id, e, exc_info=True)

            return task_result

        future = self._executors[pool_type].submit(wrapped_func)
        with self._stats_lock:
            self._active[task_id] = future
        future.add_done_callback(lambda _f: self._forget(task_id))
        self._bump(pool_type, 'submitted')

        if is_verbose_logging():
            logger.debug("Submitted task %s to %s pool", task_id, pool_type.value)
        return task_id

    def submit_io_task(self, func: Callable, *args, **kwargs) -> str:
        """Convenience method for IO pool submissions"""
        return self.submit_task(ThreadPoolType.IO, func, *args, **kwargs)

    def _forget(self, task_id: str) -> None:
        with self._stats_lock:
            self._active.pop(task_id, None)

    def _bump(self, pool_type: ThreadPoolType, key: str) -> None:
        with self._stats_lock:
            self._stats[pool_type][key] += 1

    def get_active_count(self) -> int:
        """Number of tasks submitted but not yet finished."""
        with self._stats_lock:
            return len(self._active)

    def get_pool_stats(self) -> Dict[str, Dict[str, int]]:
        """Get statistics for all thread pools"""
        with self._stats_lock:
            return {pool_type.value: stats.copy() for pool_type, stats in self._stats.items()}

    def shutdown(self, wait: bool = True) -> None:
        """
        Shutdown all thread pools.

        Args:
            wait: Whether to wait for running tasks
        """
        if self._shutdown:
            return
        self._shutdown = True
        logger.info("Shutting down thread manager...")

        with self._stats_lock:
            pending = list(self._active.values())
        for future in pending:
            future.cancel()

        for executor in self._executors.values():
            executor.shutdown(wait=wait, cancel_futures=True)
        logger.info("Thread manager shut down")

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    # UI dispatch utilities ----------------------------------------------
    @staticmethod
    def run_on_ui_thread(func: Callable, *args, **kwargs) -> None:
        """Dispatch a callable to the Qt UI thread"""
        app = QCoreApplication.instance()
        if app is None:
            logger.debug("run_on_ui_thread called without QCoreApplication")
            return

        if QThread.currentThread() == app.thread():
            func(*args, **(kwargs or {}))
            return

        inv = _ensure_ui_invoker()
        if inv is None:
            raise RuntimeError("UI invoker unavailable")
        inv.invoke.emit(func, args, kwargs or {})
