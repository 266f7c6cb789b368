"""
Main generation loop.

ordered angles → for each: compose prompt → render → composite → store →
fold outcome into SessionState.

Angles run strictly one after another: each prompt references the images
produced by earlier angles. A failed angle never stops the loop; only a
session where every angle failed raises.
"""

import logging
import time
from typing import Any, Awaitable, Callable, Optional

from ..core.config import get_settings
from ..core.errors import AllAnglesFailed
from ..core.prompt_debug import log_prompt_debug
from ..core.redis import ANGLE_COMPLETED, ANGLE_FAILED, ANGLE_STARTED, SESSION_COMPLETED
from ..core.storage import StorageBackend
from ..models.domain import AngleTask, CameraAngle, ReferenceImage, order_angles
from ..prompts.angle import AnglePromptContext, build_angle_notes, build_angle_prompt
from ..services.logo import LogoCompositor
from ..services.renderer import NO_IMAGE_MESSAGE, Renderer
from .state import SessionState, apply_outcome

logger = logging.getLogger(__name__)

Notifier = Callable[[str, Any], Awaitable[None]]


async def _no_notify(event_type: str, data: Any = None) -> None:
    return None


class GenerationOrchestrator:
    """Runs the angle loop for one session against injected collaborators."""

    def __init__(
        self,
        renderer: Renderer,
        storage: StorageBackend,
        compositor: Optional[LogoCompositor] = None,
        max_attempts: Optional[int] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.renderer = renderer
        self.storage = storage
        self.compositor = compositor
        self.max_attempts = max(1, max_attempts or get_settings().max_render_attempts)
        self.notify = notifier or _no_notify

    async def run(
        self,
        context: AnglePromptContext,
        original_image: ReferenceImage,
        angles: list[CameraAngle],
        base_notes: str = "",
    ) -> SessionState:
        """
        Generate every angle and return the final session state.

        Raises AllAnglesFailed (with the first angle's error) if nothing succeeded.
        """
        start = time.monotonic()
        ordered = order_angles(angles)
        state = SessionState(original_image=original_image)

        for index, angle in enumerate(ordered):
            task, image = await self.generate_angle(
                state, context, angle, is_anchor=index == 0, base_notes=base_notes,
            )
            state = apply_outcome(state, task, image)
            event = ANGLE_COMPLETED if image is not None else ANGLE_FAILED
            await self.notify(event, task.to_dict())

        summary = {
            "total": len(state.tasks),
            "successCount": len(state.completed),
            "failedCount": len(state.failed),
            "generatedImages": [t.to_dict() for t in state.tasks],
        }
        log_prompt_debug("ai-response", {"mode": "multi-angle-result", **summary})
        logger.info(
            "Angle set done in %.1fs: %d/%d completed",
            time.monotonic() - start, summary["successCount"], summary["total"],
        )

        if not state.completed:
            first_error = state.tasks[0].error_message if state.tasks else ""
            await self.notify(SESSION_COMPLETED, {**summary, "status": "failed"})
            raise AllAnglesFailed(first_error or NO_IMAGE_MESSAGE, tasks=list(state.tasks))

        await self.notify(SESSION_COMPLETED, {**summary, "status": "completed"})
        return state

    async def generate_angle(
        self,
        state: SessionState,
        context: AnglePromptContext,
        angle: CameraAngle,
        is_anchor: bool = False,
        base_notes: str = "",
    ) -> tuple[AngleTask, Optional[ReferenceImage]]:
        """
        Up to max_attempts renders for one angle with the current references.

        Returns the settled task and, on success, the stored image to chain.
        """
        task = AngleTask(angle=angle).start()
        await self.notify(ANGLE_STARTED, {"angle": angle.value, "isAnchor": is_anchor})

        references = state.references()
        notes = build_angle_notes(angle, base_notes)
        last_error = ""

        for attempt in range(self.max_attempts):
            prompt = build_angle_prompt(
                context,
                angle,
                notes=notes,
                is_anchor=is_anchor,
                has_canonical_ref=state.canonical_anchor_image is not None,
                has_previous_ref=state.previous_angle_image is not None,
                retry_level=attempt,
            )
            log_prompt_debug("prompt-built", {
                "mode": "single-angle",
                "cameraAngle": angle.value,
                "attempt": attempt + 1,
                "isAnchor": is_anchor,
                "referenceCount": len(references),
                "prompt": prompt,
            })

            try:
                image = await self.renderer.render(prompt, references)
                if self.compositor is not None:
                    image = await self.compositor.composite(image)
                url = await self.storage.save_image(image.data, image.mime_type)
            except Exception as e:
                last_error = str(e) or e.__class__.__name__
                logger.warning(
                    "Angle %s attempt %d/%d failed: %s",
                    angle.value, attempt + 1, self.max_attempts, last_error,
                )
                log_prompt_debug("ai-response-error", {
                    "cameraAngle": angle.value,
                    "attempt": attempt + 1,
                    "error": last_error,
                })
                continue

            log_prompt_debug("ai-response", {
                "mode": "single-angle",
                "cameraAngle": angle.value,
                "imageUrl": url,
            })
            stored = ReferenceImage(data=image.data, mime_type=image.mime_type, url=url)
            return task.complete(url, retry_count=attempt), stored

        return task.fail(last_error or NO_IMAGE_MESSAGE, retry_count=self.max_attempts), None
