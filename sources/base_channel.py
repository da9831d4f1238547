"""
Base source channel interface for the receiver.

A channel produces candidate image references and hands them to a
``SourceIngestion``. Channels never talk to the controller directly.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional, TYPE_CHECKING

from core.errors import MalformedCandidate
from core.logging.logger import get_logger
from engine.update_types import ImageReference

if TYPE_CHECKING:
    from engine.source_ingestion import SourceIngestion

logger = get_logger(__name__)


class ChannelType(Enum):
    """Type of source channel."""
    PERIODIC = "periodic"
    PUSH = "push"


class SourceChannel(ABC):
    """
    Abstract base class for source channels.

    Subclasses implement ``start``/``stop`` and call ``_emit`` (or
    ``_report_malformed``) whenever they have something for ingestion.
    """

    def __init__(self, channel_id: str, channel_type: ChannelType):
        """
        Initialize the channel.

        Args:
            channel_id: Unique identifier for this channel
            channel_type: Type of channel
        """
        self.channel_id = channel_id
        self.channel_type = channel_type
        self._ingestion: Optional["SourceIngestion"] = None
        self._logger = logger.getChild(f"{channel_type.value}.{channel_id}")
        self._emitted = 0

    @property
    def name(self) -> str:
        return f"{self.channel_type.value}:{self.channel_id}"

    def attach(self, ingestion: "SourceIngestion") -> None:
        """Connect this channel to the ingestion it feeds."""
        self._ingestion = ingestion

    @abstractmethod
    def start(self) -> None:
        """Begin producing candidates."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop producing candidates. Safe to call when not started."""
        pass

    @property
    @abstractmethod
    def is_active(self) -> bool:
        pass

    def _emit(self, ref: ImageReference) -> bool:
        if self._ingestion is None:
            self._logger.warning("No ingestion attached, dropping %s", ref)
            return False
        self._emitted += 1
        return self._ingestion.submit(ref)

    def _report_malformed(self, error: MalformedCandidate) -> None:
        if self._ingestion is None:
            self._logger.warning("No ingestion attached, dropping malformed payload: %s", error.reason)
            return
        self._ingestion.reject(error.payload, f"{self.name}: {error.reason}")

    def get_stats(self) -> dict:
        return {'name': self.name, 'active': self.is_active, 'emitted': self._emitted}

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.name})"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name} active={self.is_active}>"


def coerce_reference(value: Any) -> ImageReference:
    """
    Build an ImageReference from a channel value.

    Raises:
        MalformedCandidate: If the value is not a non-empty string
    """
    if isinstance(value, ImageReference):
        return value
    if not isinstance(value, str) or not value.strip():
        raise MalformedCandidate("missing or empty image reference", value)
    return ImageReference(value.strip())
