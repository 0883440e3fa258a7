"""Library rotation — crash recovery for the three library slots.

A library update moves through three directories: the active library
(``lib``), the staged next generation (``lib.new``) and the previous
generation during the swap (``lib.old``). Which of them exist is enough to
tell where an interrupted update stopped:

=====  =====  =====  ==================  ==========================================
lib    new    old    state               recovery
=====  =====  =====  ==================  ==========================================
yes    no     no     STABLE              nothing
yes    any    any    CLEANUP_PENDING     delete lib.new (unverified), delete lib.old
no     yes    any    PROMOTION_PENDING   rename lib.new -> lib, delete lib.old
no     no     yes    ROLLBACK_PENDING    rename lib.old -> lib
no     no     no     STABLE              nothing (no library yet)
=====  =====  =====  ==================  ==========================================

Observation and planning are pure functions; ``recover`` executes the plan.
Running recovery again after it finished, or after it was itself
interrupted, is always safe.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from hoard.config import ProjectContext
from hoard.errors import LibraryCorrupted

logger = logging.getLogger(__name__)


class RotationState(Enum):
    STABLE = "stable"
    CLEANUP_PENDING = "cleanup_pending"
    PROMOTION_PENDING = "promotion_pending"
    ROLLBACK_PENDING = "rollback_pending"


class Slot(Enum):
    CURRENT = "lib"
    NEW = "lib.new"
    OLD = "lib.old"


@dataclass(frozen=True)
class RecoveryStep:
    """One filesystem action: delete a slot, or rename one slot onto another."""

    action: str  # delete | rename
    source: Slot
    target: Slot | None = None

    def describe(self) -> str:
        if self.action == "rename":
            return f"rename {self.source.value} -> {self.target.value}"
        return f"delete {self.source.value}"


def observe_rotation(current: bool, new: bool, old: bool) -> RotationState:
    """Classify the rotation state from which slots exist."""
    if current:
        if new or old:
            return RotationState.CLEANUP_PENDING
        return RotationState.STABLE
    if new:
        return RotationState.PROMOTION_PENDING
    if old:
        return RotationState.ROLLBACK_PENDING
    return RotationState.STABLE


def recovery_steps(state: RotationState, new: bool = True, old: bool = True) -> list[RecoveryStep]:
    """The ordered steps that bring *state* back to STABLE.

    *new* and *old* say which staging slots exist, so the plan never touches
    a slot that is not there.
    """
    if state == RotationState.CLEANUP_PENDING:
        steps = []
        if new:
            steps.append(RecoveryStep("delete", Slot.NEW))
        if old:
            steps.append(RecoveryStep("delete", Slot.OLD))
        return steps
    if state == RotationState.PROMOTION_PENDING:
        steps = [RecoveryStep("rename", Slot.NEW, Slot.CURRENT)]
        if old:
            steps.append(RecoveryStep("delete", Slot.OLD))
        return steps
    if state == RotationState.ROLLBACK_PENDING:
        return [RecoveryStep("rename", Slot.OLD, Slot.CURRENT)]
    return []


def slot_path(context: ProjectContext, slot: Slot) -> Path:
    return {
        Slot.CURRENT: context.library_dir,
        Slot.NEW: context.new_library_dir,
        Slot.OLD: context.old_library_dir,
    }[slot]


def current_state(context: ProjectContext) -> RotationState:
    return observe_rotation(
        context.library_dir.exists(),
        context.new_library_dir.exists(),
        context.old_library_dir.exists(),
    )


def recover(context: ProjectContext) -> RotationState:
    """Bring the library slots of *context* back to a stable state.

    Returns the state that was found. Callers that may race with an apply
    must hold the library lock.

    Raises:
        LibraryCorrupted: If a recovery rename fails and no library remains.
    """
    new = context.new_library_dir.exists()
    old = context.old_library_dir.exists()
    state = observe_rotation(context.library_dir.exists(), new, old)
    if state == RotationState.STABLE:
        return state

    logger.warning("Recovering interrupted library update (%s)", state.value)
    for step in recovery_steps(state, new=new, old=old):
        source = slot_path(context, step.source)
        logger.info("Recovery: %s", step.describe())
        if step.action == "delete":
            shutil.rmtree(source, ignore_errors=True)
            continue
        try:
            os.rename(source, slot_path(context, step.target))
        except OSError as e:
            raise LibraryCorrupted(
                f"Could not {step.describe()} in {context.hoard_dir}: {e}. "
                "Move the surviving library directory to 'lib' by hand."
            ) from e
    return state
