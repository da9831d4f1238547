"""Engine module for the single-flight image update pipeline."""

from .double_buffer import BufferSlot, DoubleBuffer
from .observer import EventBusObserver, LoggingObserver, ObserverGroup, UpdateObserver
from .preload_verifier import CancellationToken, Failed, PreloadVerifier, QtImagePreloader, Verified
from .scheduler import QtScheduler, Scheduler, TimerHandle
from .source_ingestion import SourceIngestion
from .update_controller import UpdateController
from .update_types import BufferRole, ImageReference, TransitionState, UpdatePhase

__all__ = [
    'BufferRole', 'BufferSlot', 'CancellationToken', 'DoubleBuffer', 'EventBusObserver',
    'Failed', 'ImageReference', 'LoggingObserver', 'ObserverGroup', 'PreloadVerifier',
    'QtImagePreloader', 'QtScheduler', 'Scheduler', 'SourceIngestion', 'TimerHandle',
    'TransitionState', 'UpdateController', 'UpdateObserver', 'UpdatePhase', 'Verified',
]
