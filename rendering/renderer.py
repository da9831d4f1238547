"""
Renderer interface driven by the update controller.

The controller only ever says *what* happens (load standby, start the
effect, end it, hide standby). Everything visual lives behind this
interface.
"""
from abc import ABC, abstractmethod
from typing import Any

from engine.update_types import BufferRole


class Renderer(ABC):
    """
    Abstract presentation surface with two layers, one per buffer slot.

    Implementations resolve roles to slots through the shared DoubleBuffer
    at paint time, so a role swap is seen by the surface in one step.
    """

    @abstractmethod
    def show(self, role: BufferRole, handle: Any) -> None:
        """Load verified content into the layer holding ``role``.

        Loading the standby layer does not make it visible; the reveal
        effect does.
        """
        pass

    @abstractmethod
    def start_transition_effect(self) -> None:
        """Begin the two-phase reveal of the standby layer."""
        pass

    @abstractmethod
    def end_transition_effect(self) -> None:
        """Clear any transition-scoped overlay."""
        pass

    @abstractmethod
    def reset_standby(self) -> None:
        """Hide the standby layer and clear its reveal mask."""
        pass
