"""
Double buffer for the displayed image.

Two indexed slots hold verified content; a role map (slot index -> role)
decides which one is on screen. Promotion is a relabeling of the role map,
never a copy of image content.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from core.logging.logger import get_logger, is_verbose_logging
from core.logging.tags import TAG_BUFFER
from engine.update_types import BufferRole, ImageReference

logger = get_logger(__name__)


@dataclass
class BufferSlot:
    """One of the two slots. ``handle`` is whatever the renderer draws."""
    index: int
    reference: Optional[ImageReference] = None
    handle: Any = None

    @property
    def is_empty(self) -> bool:
        return self.reference is None

    def clear(self) -> None:
        self.reference = None
        self.handle = None


class DoubleBuffer:
    """
    Active/standby slot pair.

    The role map is stored as a single tuple indexed by slot and replaced in
    one assignment, so any reader sees either the old or the new labeling and
    never a state with zero or two ACTIVE slots.
    """

    def __init__(self):
        self._slots: Tuple[BufferSlot, BufferSlot] = (BufferSlot(0), BufferSlot(1))
        self._roles: Tuple[BufferRole, BufferRole] = (BufferRole.ACTIVE, BufferRole.STANDBY)
        self._swap_count = 0

    # ------------------------------------------------------------------
    # Role map
    # ------------------------------------------------------------------

    def slot_for(self, role: BufferRole) -> int:
        """Index of the slot currently holding ``role``."""
        return self._roles.index(role)

    def role_of(self, slot: int) -> BufferRole:
        """Role currently held by slot ``slot`` (0 or 1)."""
        return self._roles[slot]

    def roles(self) -> Dict[int, BufferRole]:
        """Snapshot of the role map."""
        roles = self._roles
        return {0: roles[0], 1: roles[1]}

    def active_count(self) -> int:
        """Number of slots labelled ACTIVE. Always 1."""
        return sum(1 for role in self._roles if role is BufferRole.ACTIVE)

    def swap(self) -> None:
        """Promote standby to active in O(1) by relabeling both slots at once."""
        self._roles = (self._roles[1], self._roles[0])
        self._swap_count += 1
        if is_verbose_logging():
            logger.debug(
                "%s Swapped roles: active slot=%d (%s)",
                TAG_BUFFER, self.slot_for(BufferRole.ACTIVE), self.active_reference,
            )

    @property
    def swap_count(self) -> int:
        return self._swap_count

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def slot(self, index: int) -> BufferSlot:
        return self._slots[index]

    def write(self, role: BufferRole, ref: ImageReference, handle: Any) -> int:
        """
        Assign verified content to the slot currently holding ``role``.

        Returns:
            Index of the slot written
        """
        index = self.slot_for(role)
        slot = self._slots[index]
        slot.reference = ref
        slot.handle = handle
        logger.debug("%s Wrote %s into slot %d (%s)", TAG_BUFFER, ref, index, role.value)
        return index

    def current(self, role: BufferRole) -> Tuple[Optional[ImageReference], Any]:
        """Pure read of ``(reference, handle)`` for the slot holding ``role``."""
        slot = self._slots[self.slot_for(role)]
        return slot.reference, slot.handle

    def clear(self, role: BufferRole) -> None:
        """Drop the content of the slot holding ``role``."""
        self._slots[self.slot_for(role)].clear()

    @property
    def active_reference(self) -> Optional[ImageReference]:
        return self.current(BufferRole.ACTIVE)[0]

    @property
    def standby_reference(self) -> Optional[ImageReference]:
        return self.current(BufferRole.STANDBY)[0]

    def __repr__(self) -> str:
        return (
            f"<DoubleBuffer active={self.slot_for(BufferRole.ACTIVE)}:{self.active_reference} "
            f"standby={self.slot_for(BufferRole.STANDBY)}:{self.standby_reference}>"
        )
