"""Thread pool management and UI-thread dispatch."""

from .manager import ThreadManager, ThreadPoolType, TaskResult

__all__ = ['ThreadManager', 'ThreadPoolType', 'TaskResult']
