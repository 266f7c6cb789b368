"""
Session state for one multi-angle generation.

State is an immutable value carried through the angle loop. Each settled
angle produces the next state through apply_outcome(); nothing is mutated
in place, so every transition can be checked on its own.

Reference chaining:
  - original_image          always sent, never changes
  - canonical_anchor_image  first successful angle, set exactly once
  - previous_angle_image    most recent successful angle
"""

import dataclasses
from dataclasses import dataclass
from typing import Optional

from ..models.domain import AngleStatus, AngleTask, ReferenceImage


@dataclass(frozen=True)
class SessionState:
    original_image: ReferenceImage
    canonical_anchor_image: Optional[ReferenceImage] = None
    previous_angle_image: Optional[ReferenceImage] = None
    tasks: tuple[AngleTask, ...] = ()

    def references(self) -> list[ReferenceImage]:
        """Reference images in prompt order: original, canonical, previous."""
        refs = [self.original_image]
        if self.canonical_anchor_image is not None:
            refs.append(self.canonical_anchor_image)
        if self.previous_angle_image is not None:
            refs.append(self.previous_angle_image)
        return refs

    @property
    def completed(self) -> list[AngleTask]:
        return [t for t in self.tasks if t.status == AngleStatus.COMPLETED]

    @property
    def failed(self) -> list[AngleTask]:
        return [t for t in self.tasks if t.status == AngleStatus.FAILED]


def apply_outcome(
    state: SessionState,
    task: AngleTask,
    image: Optional[ReferenceImage] = None,
) -> SessionState:
    """
    Fold one settled angle into the session.

    A completed task must carry its image. Failed tasks leave both
    chained references untouched.
    """
    if not task.is_settled:
        raise ValueError(f"Angle task '{task.angle.value}' is not settled")

    if task.status == AngleStatus.FAILED:
        return dataclasses.replace(state, tasks=state.tasks + (task,))

    if image is None:
        raise ValueError(f"Completed angle '{task.angle.value}' has no image")

    return dataclasses.replace(
        state,
        canonical_anchor_image=state.canonical_anchor_image or image,
        previous_angle_image=image,
        tasks=state.tasks + (task,),
    )
