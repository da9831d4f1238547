"""
Value types shared by the update pipeline.

ImageReference is the unit flowing from the sources to the display; the
controller state and buffer roles are small immutable values so they can be
compared and logged freely.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class ImageReference:
    """
    Opaque locator for an image (URL, file:// URL or local path).

    Equality is by value: two references name "the same update" only when
    their locators are identical strings.
    """
    locator: str

    def __post_init__(self):
        if not isinstance(self.locator, str):
            raise TypeError(f"ImageReference locator must be str, got {type(self.locator).__name__}")
        if not self.locator.strip():
            raise ValueError("ImageReference locator must be a non-empty string")

    def __str__(self) -> str:
        return self.locator


class UpdatePhase(Enum):
    """Phase of the single-flight update cycle."""
    IDLE = "idle"
    PRELOADING = "preloading"
    REVEALING = "revealing"


@dataclass(frozen=True)
class TransitionState:
    """Controller state: Idle, Preloading(ref) or Revealing(ref)."""
    phase: UpdatePhase = UpdatePhase.IDLE
    reference: Optional[ImageReference] = None

    def __post_init__(self):
        if self.phase is UpdatePhase.IDLE and self.reference is not None:
            raise ValueError("Idle state carries no reference")
        if self.phase is not UpdatePhase.IDLE and self.reference is None:
            raise ValueError(f"{self.phase.value} state requires a reference")

    @classmethod
    def idle(cls) -> "TransitionState":
        return cls()

    @classmethod
    def preloading(cls, ref: ImageReference) -> "TransitionState":
        return cls(UpdatePhase.PRELOADING, ref)

    @classmethod
    def revealing(cls, ref: ImageReference) -> "TransitionState":
        return cls(UpdatePhase.REVEALING, ref)

    @property
    def is_idle(self) -> bool:
        return self.phase is UpdatePhase.IDLE

    def __str__(self) -> str:
        if self.reference is None:
            return self.phase.value
        return f"{self.phase.value}({self.reference})"


class BufferRole(Enum):
    """Role of a buffer slot. Exactly one slot is ACTIVE at any time."""
    ACTIVE = "active"
    STANDBY = "standby"

    @property
    def other(self) -> "BufferRole":
        return BufferRole.STANDBY if self is BufferRole.ACTIVE else BufferRole.ACTIVE
